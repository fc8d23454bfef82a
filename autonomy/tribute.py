"""
Tribute Harvester - forwards surplus stable holdings to the master wallet.

Anything above the tribute threshold is sent; the threshold itself stays
behind as working capital. The balance is always re-read at invocation.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Any, Dict, Optional

from autonomy.audit import AuditCategory, AuditTrail
from autonomy.errors import ConfirmationAmbiguous, ExecutionError
from autonomy.executor import MarketAction, TransactionRef
from autonomy.logging_config import short_address
from autonomy.oracle import BalanceOracle

logger = logging.getLogger(__name__)

USDC_DECIMALS = 6


@dataclass(frozen=True)
class TributeResult:
    status: str                    # "sent", "skipped" or "failed"
    amount: Optional[Decimal] = None
    transaction_ref: Optional[TransactionRef] = None
    reason: Optional[str] = None

    @property
    def sent(self) -> bool:
        return self.status == "sent"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "amount": None if self.amount is None else str(self.amount),
            "transaction_ref": self.transaction_ref.to_dict() if self.transaction_ref else None,
            "reason": self.reason,
        }


class TributeHarvester:
    def __init__(
        self,
        oracle: BalanceOracle,
        executor: MarketAction,
        audit: AuditTrail,
        master_wallet: Optional[str],
        threshold: Decimal,
        stable_mint: str,
        stable_decimals: int = USDC_DECIMALS,
    ):
        self.oracle = oracle
        self.executor = executor
        self.audit = audit
        self.master_wallet = master_wallet
        self.threshold = threshold
        self.stable_mint = stable_mint
        self.stable_decimals = stable_decimals

    async def harvest(self) -> TributeResult:
        """
        Send ``stable - threshold`` to the master wallet.

        Definite failures come back as a ``failed`` result.
        ConfirmationAmbiguous is raised to the caller.
        """
        if not self.master_wallet:
            logger.info("Tribute intent: surplus available but no MASTER_WALLET configured")
            return TributeResult("skipped", reason="no_master_wallet")

        stable = await self.oracle.read_stable()
        if stable is None:
            return TributeResult("skipped", reason="balance_unknown")
        if stable <= self.threshold:
            return TributeResult("skipped", reason="no_surplus")

        surplus = stable - self.threshold
        base_units = int((surplus.scaleb(self.stable_decimals)).to_integral_value(rounding=ROUND_DOWN))
        if base_units <= 0:
            return TributeResult("skipped", reason="no_surplus")
        amount = Decimal(base_units).scaleb(-self.stable_decimals)

        logger.info(f"Harvesting {amount} USDC tribute -> {short_address(self.master_wallet)}")
        try:
            ref = await self.executor.transfer(self.stable_mint, self.master_wallet, base_units)
        except ConfirmationAmbiguous as e:
            e.details["amount"] = base_units
            raise
        except ExecutionError as e:
            logger.error(f"Tribute failed: {e}")
            return TributeResult("failed", amount=amount, reason=str(e))

        self.audit.record(
            AuditCategory.TRIBUTE,
            "tribute_sent",
            {
                "amount": str(amount),
                "recipient": self.master_wallet,
                "signature": ref.signature,
                "balance_before": str(stable),
            },
        )
        logger.info(f"Tribute sent: {ref.signature}")
        return TributeResult("sent", amount=amount, transaction_ref=ref)
