"""Solana RPC access with bounded timeouts and a typed failure surface."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Optional, Tuple

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus
from spl.token.instructions import get_associated_token_address

from autonomy.errors import AccountNotFound, LedgerError
from autonomy.logging_config import short_address

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000

# solders enums are not hashable, so match by equality
_CONFIRMATION_NAMES = (
    (TransactionConfirmationStatus.Processed, "processed"),
    (TransactionConfirmationStatus.Confirmed, "confirmed"),
    (TransactionConfirmationStatus.Finalized, "finalized"),
)


def confirmation_name(status: Any) -> Optional[str]:
    """Lower-case name for a confirmation status, None when not reported."""
    if status is None:
        return None
    for member, name in _CONFIRMATION_NAMES:
        if status == member:
            return name
    return str(status).rsplit(".", 1)[-1].lower() or None


@dataclass(frozen=True)
class TokenBalance:
    amount: int
    decimals: int


@dataclass(frozen=True)
class SignatureState:
    confirmation_status: Optional[str]
    err: Optional[str] = None


class LedgerClient:
    """
    Thin wrapper around solana-py's AsyncClient.

    Every call is bounded by ``timeout`` seconds. Failures surface as
    LedgerError; a missing account surfaces as AccountNotFound so callers can
    tell "never funded" apart from "could not ask".
    """

    def __init__(self, rpc_url: str, timeout: float = 10):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._client: Optional[AsyncClient] = None

    def _get_client(self) -> AsyncClient:
        if self._client is None:
            self._client = AsyncClient(self.rpc_url, commitment=Confirmed, timeout=self.timeout)
        return self._client

    async def close(self):
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def _call(self, operation: str, awaitable: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError:
            raise LedgerError(f"{operation} timed out after {self.timeout}s")
        except LedgerError:
            raise
        except Exception as e:
            raise LedgerError(f"{operation} failed: {e}")

    async def get_native_balance(self, owner: Pubkey) -> int:
        """Lamport balance of ``owner``."""
        resp = await self._call("getBalance", self._get_client().get_balance(owner))
        return int(resp.value)

    async def get_token_balance(self, owner: Pubkey, mint: Pubkey) -> TokenBalance:
        """Balance of the owner's associated token account for ``mint``."""
        ata = get_associated_token_address(owner, mint)
        resp = await self._call(
            "getAccountInfo",
            self._get_client().get_account_info_json_parsed(ata),
        )
        if resp.value is None:
            raise AccountNotFound(str(ata))

        parsed = getattr(resp.value.data, "parsed", None)
        try:
            token_amount = parsed["info"]["tokenAmount"]
            return TokenBalance(
                amount=int(token_amount["amount"]),
                decimals=int(token_amount["decimals"]),
            )
        except (KeyError, TypeError, ValueError):
            raise LedgerError(f"Unexpected token account layout for {short_address(str(ata))}")

    async def get_latest_blockhash(self) -> Tuple[Hash, int]:
        """Latest blockhash and the last block height at which it is valid."""
        resp = await self._call("getLatestBlockhash", self._get_client().get_latest_blockhash())
        return resp.value.blockhash, int(resp.value.last_valid_block_height)

    async def get_block_height(self) -> int:
        resp = await self._call("getBlockHeight", self._get_client().get_block_height())
        return int(resp.value)

    async def get_slot(self) -> int:
        resp = await self._call("getSlot", self._get_client().get_slot())
        return int(resp.value)

    async def send_raw_transaction(self, raw: bytes) -> str:
        opts = TxOpts(skip_preflight=False, preflight_commitment=Confirmed)
        resp = await self._call(
            "sendTransaction",
            self._get_client().send_raw_transaction(raw, opts=opts),
        )
        return str(resp.value)

    async def get_signature_status(self, signature: str) -> Optional[SignatureState]:
        """None while the cluster has not seen the signature."""
        resp = await self._call(
            "getSignatureStatuses",
            self._get_client().get_signature_statuses([Signature.from_string(signature)]),
        )
        status = resp.value[0] if resp.value else None
        if status is None:
            return None
        return SignatureState(
            confirmation_status=confirmation_name(status.confirmation_status),
            err=str(status.err) if status.err is not None else None,
        )
