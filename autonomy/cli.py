"""
Automaton command line.

    automaton identity          print the agent's public address
    automaton status            balances, tier and ecosystem health as JSON
    automaton cycle             run exactly one heartbeat cycle
    automaton run --interval N  run a cycle every N seconds until stopped
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import List, Optional

from autonomy.audit import AuditTrail
from autonomy.config import AgentConfig
from autonomy.dexscreener import DexScreenerClient
from autonomy.engine import SurvivalEngine
from autonomy.errors import AutonomyError
from autonomy.executor import ActionExecutor
from autonomy.identity import Identity
from autonomy.jupiter import JupiterClient
from autonomy.ledger import LedgerClient
from autonomy.logging_config import setup_logging
from autonomy.oracle import BalanceOracle
from autonomy.scanner import OpportunityScanner
from autonomy.security import BirdeyeClient, SecurityScorer, StrictListClient
from autonomy.status import collect_status
from autonomy.tribute import TributeHarvester

logger = logging.getLogger(__name__)


class Agent:
    """Wires every component from one AgentConfig."""

    def __init__(self, config: AgentConfig):
        self.config = config
        timeouts = config.timeouts

        self.identity = Identity.load_or_create(config.wallet_path)
        self.ledger = LedgerClient(config.rpc_url, timeout=timeouts["rpc"])
        self.jupiter = JupiterClient(
            config.jupiter_api_url,
            api_key=config.jupiter_api_key,
            timeout=timeouts["http"],
            priority_fee_lamports=config.priority_fee_lamports,
        )
        self.dexscreener = DexScreenerClient(timeout=timeouts["http"])
        self.birdeye = BirdeyeClient(config.birdeye_api_key, timeout=timeouts["http"])
        self.strict_list = StrictListClient(timeout=timeouts["strict_list"], ttl_seconds=config.strict_list_ttl)

        self.oracle = BalanceOracle(self.ledger, self.identity.pubkey, config.stable_mint)
        self.scorer = SecurityScorer(
            self.birdeye,
            self.strict_list,
            safe_cutoff=config.safe_cutoff,
            strict_list_score=config.strict_list_score,
        )
        self.scanner = OpportunityScanner(self.dexscreener, self.scorer, config)
        self.executor = ActionExecutor(
            self.identity,
            self.ledger,
            self.jupiter,
            slippage_bps=config.slippage_bps,
            submit_attempts=config.submit_attempts,
            confirm_timeout=timeouts["confirm"],
        )
        self.harvester = TributeHarvester(
            self.oracle,
            self.executor,
            AuditTrail(config.tribute_log_path),
            config.master_wallet,
            config.tribute_threshold,
            config.stable_mint,
        )
        self.engine = SurvivalEngine(
            config,
            self.oracle,
            self.scanner,
            AuditTrail(config.mission_log_path),
            executor=self.executor,
            harvester=self.harvester,
        )

    async def close(self):
        await asyncio.gather(
            self.ledger.close(),
            self.jupiter.close(),
            self.dexscreener.close(),
            self.birdeye.close(),
            self.strict_list.close(),
        )


def _print_json(data):
    print(json.dumps(data, indent=2, default=str))


async def _status(config: AgentConfig) -> int:
    agent = Agent(config)
    try:
        report = await collect_status(config, agent.identity, agent.oracle, agent.ledger, agent.jupiter)
    finally:
        await agent.close()
    _print_json(report)
    return 0


async def _cycle(config: AgentConfig) -> int:
    agent = Agent(config)
    try:
        outcome = await agent.engine.run_cycle()
    finally:
        await agent.close()
    _print_json(outcome.to_dict())
    return 0


async def _run(config: AgentConfig, interval: float) -> int:
    """External heartbeat: one cycle every ``interval`` seconds until SIGINT/SIGTERM."""
    agent = Agent(config)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows: fall back to KeyboardInterrupt
            pass

    logger.info(f"Automaton {agent.identity.address} running every {interval}s")
    try:
        while not stop.is_set():
            cycle = asyncio.create_task(agent.engine.run_cycle())
            stopper = asyncio.create_task(stop.wait())
            done, _ = await asyncio.wait({cycle, stopper}, return_when=asyncio.FIRST_COMPLETED)
            if cycle not in done:
                cycle.cancel()
                try:
                    await cycle
                except asyncio.CancelledError:
                    pass
                break
            stopper.cancel()
            cycle.result()

            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
    finally:
        logger.info("Shutting down automaton...")
        await agent.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="automaton", description="Autonomous Solana survival agent")
    parser.add_argument("--home", help="Agent home directory (default: $AUTONOMY_HOME or ~/.automaton)")
    parser.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--quiet", action="store_true", help="Do not log to the console")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("identity", help="Print the agent's public address")
    sub.add_parser("status", help="Balances, tier and ecosystem health")
    sub.add_parser("cycle", help="Run one heartbeat cycle")
    run = sub.add_parser("run", help="Run heartbeat cycles until stopped")
    run.add_argument("--interval", type=float, default=60.0, help="Seconds between cycles (default: 60)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = AgentConfig.from_env(home=args.home)
        setup_logging(
            config.thoughts_log_path,
            level=args.log_level,
            console_output=not args.quiet,
            extra_fields={"service": "automaton"},
        )

        if args.command == "identity":
            print(Identity.load_or_create(config.wallet_path).address)
            return 0
        if args.command == "status":
            return asyncio.run(_status(config))
        if args.command == "cycle":
            return asyncio.run(_cycle(config))
        if args.command == "run":
            if args.interval <= 0:
                print("--interval must be positive", file=sys.stderr)
                return 2
            return asyncio.run(_run(config, args.interval))
    except AutonomyError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    return 2


if __name__ == "__main__":
    sys.exit(main())
