"""
Automaton - an autonomous Solana survival agent.

Exports are resolved lazily so that importing a leaf module (for example
`autonomy.security`) does not pull in the whole runtime graph.
"""

from __future__ import annotations

import importlib
from typing import Any

__version__ = "0.1.0"

_EXPORT_MAP: dict[str, tuple[str, str]] = {
    "AgentConfig": ("autonomy.config", "AgentConfig"),
    "Identity": ("autonomy.identity", "Identity"),
    "BalanceOracle": ("autonomy.oracle", "BalanceOracle"),
    "BalanceSnapshot": ("autonomy.oracle", "BalanceSnapshot"),
    "SecurityScorer": ("autonomy.security", "SecurityScorer"),
    "OpportunityScanner": ("autonomy.scanner", "OpportunityScanner"),
    "ActionExecutor": ("autonomy.executor", "ActionExecutor"),
    "MarketAction": ("autonomy.executor", "MarketAction"),
    "TributeHarvester": ("autonomy.tribute", "TributeHarvester"),
    "SurvivalEngine": ("autonomy.engine", "SurvivalEngine"),
    "ActionOutcome": ("autonomy.engine", "ActionOutcome"),
    "Tier": ("autonomy.engine", "Tier"),
}

__all__ = list(_EXPORT_MAP.keys())


def __getattr__(name: str) -> Any:
    if name in _EXPORT_MAP:
        module_name, attr_name = _EXPORT_MAP[name]
        value = getattr(importlib.import_module(module_name), attr_name)
        globals()[name] = value
        return value
    raise AttributeError(f"module 'autonomy' has no attribute '{name}'")
