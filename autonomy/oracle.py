"""
Balance Oracle - reads SOL and USDC holdings once per heartbeat.

A failed read yields None ("unknown"), never 0. Only an explicit
AccountNotFound for the stable token account is a confirmed zero: the
associated token account is created the first time USDC is received.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from solders.pubkey import Pubkey

from autonomy.errors import AccountNotFound, LedgerError
from autonomy.ledger import LAMPORTS_PER_SOL, LedgerClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BalanceSnapshot:
    """Point-in-time holdings. ``None`` means the read failed."""
    native: Optional[Decimal]
    stable: Optional[Decimal]
    taken_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_complete(self) -> bool:
        return self.native is not None and self.stable is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "native": None if self.native is None else str(self.native),
            "stable": None if self.stable is None else str(self.stable),
            "taken_at": self.taken_at.isoformat(),
        }


class BalanceOracle:
    def __init__(self, ledger: LedgerClient, owner: Pubkey, stable_mint: str):
        self.ledger = ledger
        self.owner = owner
        self.stable_mint = Pubkey.from_string(stable_mint)

    async def read_native(self) -> Optional[Decimal]:
        try:
            lamports = await self.ledger.get_native_balance(self.owner)
        except LedgerError as e:
            logger.warning(f"SOL balance unknown: {e}")
            return None
        return Decimal(lamports) / Decimal(LAMPORTS_PER_SOL)

    async def read_stable(self) -> Optional[Decimal]:
        try:
            balance = await self.ledger.get_token_balance(self.owner, self.stable_mint)
        except AccountNotFound:
            # Token account never created: genuinely zero
            return Decimal("0")
        except LedgerError as e:
            logger.warning(f"USDC balance unknown: {e}")
            return None
        return Decimal(balance.amount).scaleb(-balance.decimals)

    async def snapshot(self) -> BalanceSnapshot:
        native, stable = await asyncio.gather(self.read_native(), self.read_stable())
        snapshot = BalanceSnapshot(native=native, stable=stable)
        logger.debug(f"Snapshot: SOL={native} USDC={stable}")
        return snapshot
