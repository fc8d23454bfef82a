"""
Action Executor - builds, signs, submits and confirms one transaction.

Failure semantics:
- QuoteUnavailable / BuildFailed: nothing was signed, no funds moved.
- SubmissionFailed: every broadcast was rejected, no funds moved.
- ConfirmationFailed: the transaction landed with an on-chain error.
- ConfirmationAmbiguous: submitted (or a broadcast timed out) but finality
  was not observed. Funds may have moved. Callers must never retry this as
  a fresh action.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer as system_transfer
from solders.transaction import Transaction, VersionedTransaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    TransferCheckedParams,
    create_idempotent_associated_token_account,
    get_associated_token_address,
    transfer_checked,
)

from autonomy.config import SOL_MINT
from autonomy.errors import (
    AccountNotFound,
    BuildFailed,
    ConfirmationAmbiguous,
    ConfirmationFailed,
    LedgerError,
    SubmissionFailed,
)
from autonomy.identity import Identity
from autonomy.jupiter import JupiterClient
from autonomy.ledger import LedgerClient
from autonomy.logging_config import short_address

logger = logging.getLogger(__name__)

# Preflight errors that will not go away by re-sending the same bytes
_PERMANENT_MARKERS = (
    "insufficient",
    "signatureverificationfailed",
    "invalidaccountdata",
    "custom program error",
    "blockhash not found",
)


def is_retryable_submission_error(error: str) -> bool:
    lower = error.lower()
    return not any(marker in lower for marker in _PERMANENT_MARKERS)


def is_already_processed(error: str) -> bool:
    lower = error.lower()
    return "alreadyprocessed" in lower or "already been processed" in lower


@dataclass(frozen=True)
class TransactionRef:
    """Reference to a confirmed transaction."""
    signature: str
    kind: str                      # "swap" or "transfer"
    input_mint: str
    output_mint: str
    amount: int                    # base units in
    expected_out: Optional[int] = None
    recipient: Optional[str] = None
    confirmation_status: str = "confirmed"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class MarketAction(ABC):
    """Capability to move funds on the agent's behalf."""

    @abstractmethod
    async def swap(self, input_mint: str, output_mint: str, amount: int) -> TransactionRef:
        ...

    @abstractmethod
    async def transfer(self, asset: str, recipient: str, amount: int) -> TransactionRef:
        ...


class ActionExecutor(MarketAction):
    """
    Performs exactly one ledger transaction per call.

    Calls are serialized by an internal lock; there is no queue.
    """

    def __init__(
        self,
        identity: Identity,
        ledger: LedgerClient,
        jupiter: JupiterClient,
        slippage_bps: int = 50,
        submit_attempts: int = 3,
        confirm_timeout: float = 30,
        poll_interval: float = 0.5,
        retry_delay: float = 2.0,
    ):
        self.identity = identity
        self.ledger = ledger
        self.jupiter = jupiter
        self.slippage_bps = slippage_bps
        self.submit_attempts = submit_attempts
        self.confirm_timeout = confirm_timeout
        self.poll_interval = poll_interval
        self.retry_delay = retry_delay
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Public actions
    # ------------------------------------------------------------------

    async def swap(self, input_mint: str, output_mint: str, amount: int) -> TransactionRef:
        if amount <= 0:
            raise ValueError(f"swap amount must be positive, got {amount}")

        async with self._lock:
            logger.info(f"Swap {amount} {short_address(input_mint)} -> {short_address(output_mint)}")
            quote = await self.jupiter.get_quote(input_mint, output_mint, amount, self.slippage_bps)
            raw = await self.jupiter.get_swap_transaction(quote, self.identity.address)
            signed = self._sign_versioned(raw)

            signature = await self._submit(bytes(signed), str(signed.signatures[0]))
            status = await self._confirm(signature)
            logger.info(f"Swap confirmed: {signature}")
            return TransactionRef(
                signature=signature,
                kind="swap",
                input_mint=input_mint,
                output_mint=output_mint,
                amount=amount,
                expected_out=quote.output_amount,
                confirmation_status=status,
            )

    async def transfer(self, asset: str, recipient: str, amount: int) -> TransactionRef:
        if amount <= 0:
            raise ValueError(f"transfer amount must be positive, got {amount}")
        try:
            destination = Pubkey.from_string(recipient)
        except ValueError:
            raise BuildFailed(f"Invalid recipient address: {recipient!r}")

        async with self._lock:
            logger.info(f"Transfer {amount} of {short_address(asset)} -> {short_address(recipient)}")
            if asset == SOL_MINT:
                instructions = [self._sol_transfer_ix(destination, amount)]
            else:
                try:
                    mint = Pubkey.from_string(asset)
                except ValueError:
                    raise BuildFailed(f"Invalid token mint: {asset!r}")
                instructions = await self._token_transfer_ixs(mint, destination, amount)

            signed = await self._sign_legacy(instructions)
            signature = await self._submit(bytes(signed), str(signed.signatures[0]))
            status = await self._confirm(signature)
            logger.info(f"Transfer confirmed: {signature}")
            return TransactionRef(
                signature=signature,
                kind="transfer",
                input_mint=asset,
                output_mint=asset,
                amount=amount,
                recipient=recipient,
                confirmation_status=status,
            )

    # ------------------------------------------------------------------
    # Build & sign
    # ------------------------------------------------------------------

    def _sign_versioned(self, raw: bytes) -> VersionedTransaction:
        """Sign an aggregator-built transaction locally."""
        try:
            unsigned = VersionedTransaction.from_bytes(raw)
            signed = VersionedTransaction(unsigned.message, [self.identity.keypair])
        except Exception as e:
            raise BuildFailed(f"Could not sign swap transaction: {type(e).__name__}")
        return signed

    async def _sign_legacy(self, instructions: List[Instruction]) -> Transaction:
        try:
            blockhash, _ = await self.ledger.get_latest_blockhash()
        except LedgerError as e:
            raise BuildFailed(f"No recent blockhash: {e}")
        message = Message(instructions, self.identity.pubkey)
        return Transaction([self.identity.keypair], message, blockhash)

    def _sol_transfer_ix(self, destination: Pubkey, lamports: int) -> Instruction:
        return system_transfer(
            TransferParams(
                from_pubkey=self.identity.pubkey,
                to_pubkey=destination,
                lamports=lamports,
            )
        )

    async def _token_transfer_ixs(self, mint: Pubkey, destination: Pubkey, amount: int) -> List[Instruction]:
        owner = self.identity.pubkey
        try:
            source_balance = await self.ledger.get_token_balance(owner, mint)
        except AccountNotFound:
            raise BuildFailed(f"No token account for {short_address(str(mint))}")
        except LedgerError as e:
            raise BuildFailed(f"Token account lookup failed: {e}")

        if source_balance.amount < amount:
            raise BuildFailed(
                f"Insufficient token balance: have {source_balance.amount}, need {amount}"
            )

        source_ata = get_associated_token_address(owner, mint)
        dest_ata = get_associated_token_address(destination, mint)
        return [
            create_idempotent_associated_token_account(payer=owner, owner=destination, mint=mint),
            transfer_checked(
                TransferCheckedParams(
                    program_id=TOKEN_PROGRAM_ID,
                    source=source_ata,
                    mint=mint,
                    dest=dest_ata,
                    owner=owner,
                    amount=amount,
                    decimals=source_balance.decimals,
                )
            ),
        ]

    # ------------------------------------------------------------------
    # Submit & confirm
    # ------------------------------------------------------------------

    async def _submit(self, raw: bytes, signature: str) -> str:
        """
        Broadcast the identical signed bytes up to ``submit_attempts`` times.

        ``signature`` is the first signature of the signed bytes. A resend
        reported as already processed counts as submitted. If any broadcast
        timed out, exhaustion raises ConfirmationAmbiguous, not
        SubmissionFailed.
        """
        last_error = "no attempts made"
        timed_out = False
        for attempt in range(1, self.submit_attempts + 1):
            try:
                return await self.ledger.send_raw_transaction(raw)
            except LedgerError as e:
                last_error = str(e)
                if is_already_processed(last_error):
                    logger.info(f"Transaction {signature[:16]}... already processed; confirming")
                    return signature
                if "timed out" in last_error.lower():
                    timed_out = True
                if not is_retryable_submission_error(last_error):
                    logger.error(f"Submission rejected: {last_error}")
                    break
                logger.warning(f"Submission attempt {attempt}/{self.submit_attempts} failed: {last_error}")
                if attempt < self.submit_attempts:
                    await asyncio.sleep(self.retry_delay)
        if timed_out:
            raise ConfirmationAmbiguous(signature, f"broadcast outcome unknown: {last_error}")
        raise SubmissionFailed(f"Submission failed: {last_error}")

    async def _confirm(self, signature: str) -> str:
        """
        Poll until confirmed against a checkpoint fetched after submission.

        Returns the confirmation status ("confirmed" or "finalized").
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.confirm_timeout

        try:
            _, last_valid_height = await self.ledger.get_latest_blockhash()
        except LedgerError as e:
            logger.warning(f"No fresh checkpoint, confirming on timeout only: {e}")
            last_valid_height = None

        while True:
            state = None
            try:
                state = await self.ledger.get_signature_status(signature)
            except LedgerError as e:
                logger.debug(f"Status check failed: {e}")

            if state is not None:
                if state.err:
                    raise ConfirmationFailed(f"Transaction failed on chain: {state.err}", signature)
                if state.confirmation_status in ("confirmed", "finalized"):
                    return state.confirmation_status

            expired = False
            if last_valid_height is not None:
                try:
                    expired = await self.ledger.get_block_height() > last_valid_height
                except LedgerError as e:
                    logger.debug(f"Block height check failed: {e}")
            if expired:
                raise ConfirmationAmbiguous(signature, "block height exceeded before confirmation")

            if loop.time() >= deadline:
                raise ConfirmationAmbiguous(signature, f"not confirmed within {self.confirm_timeout}s")

            await asyncio.sleep(self.poll_interval)
