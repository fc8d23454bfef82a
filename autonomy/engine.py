"""
Survival Engine - one decision per heartbeat.

Each cycle reads balances, classifies the agent into a tier, optionally
harvests tribute, then takes at most one market action. Every cycle ends
with exactly one ActionOutcome appended to the mission audit trail.

Tier precedence:
    UNKNOWN > CRITICAL > STABILIZING > NOMINAL
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_DOWN, Decimal
from enum import Enum
from typing import Any, Dict, Optional

from autonomy.audit import AuditCategory, AuditTrail
from autonomy.config import SOL_MINT, AgentConfig
from autonomy.errors import ConfirmationAmbiguous, ExecutionError, InsufficientReserve, UnknownBalance
from autonomy.executor import MarketAction, TransactionRef
from autonomy.ledger import LAMPORTS_PER_SOL
from autonomy.logging_config import CorrelationContext, short_address
from autonomy.oracle import BalanceOracle, BalanceSnapshot
from autonomy.scanner import OpportunityScanner
from autonomy.tribute import TributeHarvester, TributeResult

logger = logging.getLogger(__name__)


class Tier(Enum):
    UNKNOWN = "unknown"
    CRITICAL = "critical"
    STABILIZING = "stabilizing"
    NOMINAL = "nominal"


class ActionKind(Enum):
    NONE = "none"
    STABILIZE = "stabilize"
    HARVEST = "harvest"
    INVEST = "invest"
    HIBERNATE = "hibernate"


@dataclass(frozen=True)
class ActionOutcome:
    """Immutable record of one heartbeat cycle."""
    cycle_id: str
    success: bool
    tier: Tier
    action_taken: ActionKind
    snapshot: Optional[BalanceSnapshot] = None
    transaction_ref: Optional[TransactionRef] = None
    error: Optional[str] = None
    ambiguous: bool = False
    tribute: Optional[TributeResult] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "success": self.success,
            "tier": self.tier.value,
            "action_taken": self.action_taken.value,
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
            "transaction_ref": self.transaction_ref.to_dict() if self.transaction_ref else None,
            "error": self.error,
            "ambiguous": self.ambiguous,
            "tribute": self.tribute.to_dict() if self.tribute else None,
            "created_at": self.created_at.isoformat(),
        }


def classify(snapshot: BalanceSnapshot, reserve_floor: Decimal, low_water: Decimal) -> Tier:
    if not snapshot.is_complete:
        return Tier.UNKNOWN
    if snapshot.native <= reserve_floor:
        return Tier.CRITICAL
    if snapshot.stable < low_water:
        return Tier.STABILIZING
    return Tier.NOMINAL


def bounded_spend(native: Decimal, reserve_floor: Decimal, default_swap: Decimal) -> Decimal:
    """SOL available to spend without touching the fee reserve (may be <= 0)."""
    return min(default_swap, native - reserve_floor)


def to_lamports(sol: Decimal) -> int:
    return int((sol * LAMPORTS_PER_SOL).to_integral_value(rounding=ROUND_DOWN))


@dataclass
class _CycleDraft:
    """Mutable state accumulated while a cycle runs."""
    cycle_id: str
    tier: Tier = Tier.UNKNOWN
    action: ActionKind = ActionKind.NONE
    snapshot: Optional[BalanceSnapshot] = None
    tribute: Optional[TributeResult] = None

    def finish(
        self,
        success: bool,
        error: Optional[str] = None,
        transaction_ref: Optional[TransactionRef] = None,
        ambiguous: bool = False,
    ) -> ActionOutcome:
        return ActionOutcome(
            cycle_id=self.cycle_id,
            success=success,
            tier=self.tier,
            action_taken=self.action,
            snapshot=self.snapshot,
            transaction_ref=transaction_ref,
            error=error,
            ambiguous=ambiguous,
            tribute=self.tribute,
        )


class SurvivalEngine:
    """
    Decision core. Never schedules itself; call ``run_cycle`` per heartbeat.

    ``executor`` and ``harvester`` are optional: without an executor the
    engine only observes and reports.
    """

    def __init__(
        self,
        config: AgentConfig,
        oracle: BalanceOracle,
        scanner: OpportunityScanner,
        audit: AuditTrail,
        executor: Optional[MarketAction] = None,
        harvester: Optional[TributeHarvester] = None,
    ):
        self.config = config
        self.oracle = oracle
        self.scanner = scanner
        self.audit = audit
        self.executor = executor
        self.harvester = harvester
        self._lock = asyncio.Lock()

    async def run_cycle(self) -> ActionOutcome:
        async with self._lock:
            with CorrelationContext() as ctx:
                draft = _CycleDraft(cycle_id=ctx.cycle_id)
                try:
                    outcome = await self._cycle(draft)
                except asyncio.CancelledError:
                    logger.warning("Cycle cancelled")
                    self._record(draft.finish(False, error="cycle cancelled"))
                    raise
                except (UnknownBalance, InsufficientReserve) as e:
                    logger.warning(f"No action: {e}")
                    outcome = draft.finish(False, error=str(e))
                except Exception as e:
                    logger.exception(f"Unexpected error in cycle: {e}")
                    outcome = draft.finish(False, error=f"{type(e).__name__}: {e}")
                self._record(outcome)
                return outcome

    def _record(self, outcome: ActionOutcome):
        self.audit.record(
            AuditCategory.OUTCOME,
            outcome.action_taken.value,
            outcome.to_dict(),
            success=outcome.success,
        )
        logger.info(
            f"Cycle {outcome.cycle_id}: tier={outcome.tier.value} "
            f"action={outcome.action_taken.value} success={outcome.success}"
            + (f" error={outcome.error}" if outcome.error else "")
        )

    async def _cycle(self, draft: _CycleDraft) -> ActionOutcome:
        cfg = self.config
        snapshot = await self.oracle.snapshot()
        draft.snapshot = snapshot
        draft.tier = classify(snapshot, cfg.reserve_floor, cfg.low_water)
        logger.info(f"Vitals: SOL={snapshot.native} USDC={snapshot.stable} tier={draft.tier.value}")

        if draft.tier is Tier.UNKNOWN:
            raise UnknownBalance("balances unknown")

        if self.harvester is not None and snapshot.stable > cfg.low_water + cfg.tribute_threshold:
            ended = await self._harvest(draft)
            if ended is not None:
                return ended
            if draft.tribute is not None and draft.tribute.sent:
                snapshot = BalanceSnapshot(
                    native=snapshot.native,
                    stable=snapshot.stable - draft.tribute.amount,
                    taken_at=snapshot.taken_at,
                )
                draft.tier = classify(snapshot, cfg.reserve_floor, cfg.low_water)
                logger.info(f"After tribute: USDC={snapshot.stable} tier={draft.tier.value}")

        if draft.tier is Tier.CRITICAL:
            logger.warning(f"SOL at or below reserve floor ({cfg.reserve_floor}); hibernating")
            draft.action = ActionKind.HIBERNATE
            return draft.finish(False)

        spend = bounded_spend(snapshot.native, cfg.reserve_floor, cfg.default_swap)

        if draft.tier is Tier.STABILIZING:
            lamports = to_lamports(spend)
            if lamports <= 0:
                raise InsufficientReserve("insufficient reserve to stabilize")
            if self.executor is None:
                return draft.finish(False, error="no market action available")
            draft.action = ActionKind.STABILIZE
            logger.info(f"USDC below {cfg.low_water}; stabilizing with {spend} SOL")
            return await self._swap(draft, cfg.stable_mint, lamports)

        candidates = await self.scanner.scan()
        if not candidates:
            logger.info("No safe opportunities; idling")
            return draft.finish(True)

        top = candidates[0]
        lamports = to_lamports(spend)
        if self.executor is None or lamports <= 0:
            logger.info(f"Top candidate {top.symbol} ({short_address(top.address)}) not acted on")
            return draft.finish(True)

        draft.action = ActionKind.INVEST
        logger.info(f"Investing {spend} SOL into {top.symbol} (trust={top.trust_score})")
        return await self._swap(draft, top.address, lamports)

    async def _harvest(self, draft: _CycleDraft) -> Optional[ActionOutcome]:
        """Run the harvester; returns an outcome only when the cycle must end."""
        try:
            draft.tribute = await self.harvester.harvest()
        except ConfirmationAmbiguous as e:
            logger.error(f"Tribute confirmation ambiguous: {e}")
            draft.action = ActionKind.HARVEST
            ref = TransactionRef(
                signature=e.signature,
                kind="transfer",
                input_mint=self.config.stable_mint,
                output_mint=self.config.stable_mint,
                amount=e.details.get("amount", 0),
                recipient=self.config.master_wallet,
                confirmation_status="ambiguous",
            )
            return draft.finish(False, error=str(e), transaction_ref=ref, ambiguous=True)
        logger.info(f"Tribute: {draft.tribute.status}" + (f" ({draft.tribute.reason})" if draft.tribute.reason else ""))
        return None

    async def _swap(self, draft: _CycleDraft, output_mint: str, lamports: int) -> ActionOutcome:
        try:
            ref = await self.executor.swap(SOL_MINT, output_mint, lamports)
        except ConfirmationAmbiguous as e:
            ref = TransactionRef(
                signature=e.signature,
                kind="swap",
                input_mint=SOL_MINT,
                output_mint=output_mint,
                amount=lamports,
                confirmation_status="ambiguous",
            )
            return draft.finish(False, error=str(e), transaction_ref=ref, ambiguous=True)
        except ExecutionError as e:
            return draft.finish(False, error=str(e))
        return draft.finish(True, transaction_ref=ref)
