"""Status report and ecosystem health for the dashboard / CLI."""

import asyncio
import logging
from typing import Any, Dict

from autonomy.config import SOL_MINT, AgentConfig
from autonomy.engine import classify
from autonomy.errors import LedgerError
from autonomy.identity import Identity
from autonomy.jupiter import JupiterClient
from autonomy.ledger import LedgerClient
from autonomy.oracle import BalanceOracle

logger = logging.getLogger(__name__)


async def check_ecosystem(ledger: LedgerClient, jupiter: JupiterClient, stable_mint: str) -> Dict[str, bool]:
    """Is the RPC node reachable, and can Jupiter quote a tiny SOL->USDC swap?"""

    async def rpc_ok() -> bool:
        try:
            await ledger.get_slot()
            return True
        except LedgerError as e:
            logger.debug(f"RPC health check failed: {e}")
            return False

    rpc, jup = await asyncio.gather(rpc_ok(), jupiter.ping(SOL_MINT, stable_mint))
    return {"rpc": rpc, "jupiter": jup, "online": rpc and jup}


async def collect_status(
    config: AgentConfig,
    identity: Identity,
    oracle: BalanceOracle,
    ledger: LedgerClient,
    jupiter: JupiterClient,
) -> Dict[str, Any]:
    snapshot, ecosystem = await asyncio.gather(
        oracle.snapshot(),
        check_ecosystem(ledger, jupiter, config.stable_mint),
    )
    native, stable = snapshot.native, snapshot.stable
    return {
        "address": identity.address,
        "sol": None if native is None else str(native),
        "usdc": None if stable is None else str(stable),
        "tier": classify(snapshot, config.reserve_floor, config.low_water).value,
        "sol_low": native is not None and native <= config.reserve_floor,
        "usdc_low": stable is not None and stable < config.low_water,
        "rpc_unreachable": native is None or stable is None,
        "ecosystem": ecosystem,
        "config": config.describe(),
    }
