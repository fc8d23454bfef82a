"""
Survival Agent Configuration
Environment variables and tunable thresholds

Loads configuration from <home>/.env using python-dotenv. Values already
present in the process environment take precedence over the file.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import dotenv_values

from autonomy.errors import ConfigurationError
from autonomy.logging_config import short_address

SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

DEFAULT_HOME = Path.home() / ".automaton"
DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"

# Network timeouts (in seconds)
TIMEOUTS = {
    "rpc": 10,
    "http": 15,
    "strict_list": 8,
    "confirm": 30,
}


def _decimal(env: Mapping[str, str], key: str, default: str) -> Decimal:
    raw = env.get(key) or default
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise ConfigurationError(f"{key} must be a number, got {raw!r}")
    if not value.is_finite() or value < 0:
        raise ConfigurationError(f"{key} must be a non-negative number, got {raw!r}")
    return value


def _int(env: Mapping[str, str], key: str, default: int, minimum: int = 0) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigurationError(f"{key} must be >= {minimum}, got {value}")
    return value


def _optional(env: Mapping[str, str], key: str) -> Optional[str]:
    value = (env.get(key) or "").strip()
    return value or None


@dataclass
class AgentConfig:
    """Everything a component needs, passed in at construction."""
    home: Path = DEFAULT_HOME
    rpc_url: str = DEFAULT_RPC_URL

    # Optional credentials
    birdeye_api_key: Optional[str] = None
    jupiter_api_key: Optional[str] = None

    # Tribute
    master_wallet: Optional[str] = None
    tribute_threshold: Decimal = Decimal("50")

    # Survival thresholds
    reserve_floor: Decimal = Decimal("0.015")
    low_water: Decimal = Decimal("5.00")
    default_swap: Decimal = Decimal("0.05")
    slippage_bps: int = 50

    # Opportunity scanning
    min_volume_usd: Decimal = Decimal("100000")
    min_pair_age_hours: int = 24
    scan_depth: int = 10
    max_candidates: int = 3
    safe_cutoff: int = 60
    strict_list_score: int = 70
    strict_list_ttl: int = 600

    # Execution
    submit_attempts: int = 3
    priority_fee_lamports: int = 1000

    stable_mint: str = USDC_MINT
    timeouts: Dict[str, int] = field(default_factory=lambda: dict(TIMEOUTS))

    @property
    def wallet_path(self) -> Path:
        return self.home / "solana-wallet.json"

    @property
    def env_path(self) -> Path:
        return self.home / ".env"

    @property
    def thoughts_log_path(self) -> Path:
        return self.home / "thoughts.log"

    @property
    def mission_log_path(self) -> Path:
        return self.home / "mission.jsonl"

    @property
    def tribute_log_path(self) -> Path:
        return self.home / "tribute.jsonl"

    @property
    def tribute_enabled(self) -> bool:
        return bool(self.master_wallet)

    @property
    def jupiter_api_url(self) -> str:
        # lite-api is free and rate-limited; api.jup.ag needs a key
        if self.jupiter_api_key:
            return "https://api.jup.ag/swap/v1"
        return "https://lite-api.jup.ag/swap/v1"

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        home: Optional[Path] = None,
    ) -> "AgentConfig":
        environ = os.environ if environ is None else environ
        home = Path(home or environ.get("AUTONOMY_HOME") or DEFAULT_HOME).expanduser()

        env: Dict[str, str] = {}
        env_file = home / ".env"
        if env_file.exists():
            env.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
        env.update(environ)

        return cls(
            home=home,
            rpc_url=env.get("SOLANA_RPC_URL") or DEFAULT_RPC_URL,
            birdeye_api_key=_optional(env, "BIRDEYE_API_KEY"),
            jupiter_api_key=_optional(env, "JUPITER_API_KEY"),
            master_wallet=_optional(env, "MASTER_WALLET"),
            tribute_threshold=_decimal(env, "AUTONOMY_TRIBUTE_THRESHOLD_USDC", "50"),
            reserve_floor=_decimal(env, "AUTONOMY_RESERVE_FLOOR_SOL", "0.015"),
            low_water=_decimal(env, "AUTONOMY_USDC_LOW_WATER", "5.00"),
            default_swap=_decimal(env, "AUTONOMY_DEFAULT_SWAP_SOL", "0.05"),
            slippage_bps=_int(env, "AUTONOMY_SLIPPAGE_BPS", 50, minimum=1),
            min_volume_usd=_decimal(env, "AUTONOMY_MIN_VOLUME_USD", "100000"),
            min_pair_age_hours=_int(env, "AUTONOMY_MIN_PAIR_AGE_HOURS", 24),
            submit_attempts=_int(env, "AUTONOMY_SUBMIT_ATTEMPTS", 3, minimum=1),
        )

    def describe(self) -> Dict[str, object]:
        """Public view of the configuration, credentials redacted."""
        return {
            "home": str(self.home),
            "rpc_url": self.rpc_url,
            "birdeye": "ACTIVE" if self.birdeye_api_key else "FREE_MODE",
            "jupiter": "KEYED" if self.jupiter_api_key else "LITE",
            "tribute_target": short_address(self.master_wallet) if self.master_wallet else "UNSET",
            "tribute_threshold": str(self.tribute_threshold),
            "reserve_floor": str(self.reserve_floor),
            "low_water": str(self.low_water),
            "default_swap": str(self.default_swap),
        }
