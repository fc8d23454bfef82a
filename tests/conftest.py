"""
Automaton Test Configuration

Shared fixtures: a throwaway agent home, a config pointing at it, and fake
collaborators for the engine (oracle, scanner, executor).
"""

from decimal import Decimal
from pathlib import Path
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from autonomy.audit import AuditTrail
from autonomy.config import AgentConfig
from autonomy.executor import MarketAction, TransactionRef
from autonomy.oracle import BalanceOracle, BalanceSnapshot
from autonomy.scanner import OpportunityScanner

MASTER = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"


def make_snapshot(native: Optional[str], stable: Optional[str]) -> BalanceSnapshot:
    return BalanceSnapshot(
        native=None if native is None else Decimal(native),
        stable=None if stable is None else Decimal(stable),
    )


@pytest.fixture
def home(tmp_path) -> Path:
    return tmp_path / "automaton"


@pytest.fixture
def config(home) -> AgentConfig:
    return AgentConfig(
        home=home,
        reserve_floor=Decimal("0.01"),
        low_water=Decimal("5"),
        default_swap=Decimal("0.05"),
        tribute_threshold=Decimal("50"),
    )


@pytest.fixture
def tribute_config(config) -> AgentConfig:
    config.master_wallet = MASTER
    return config


@pytest.fixture
def mission_trail(config) -> AuditTrail:
    return AuditTrail(config.mission_log_path)


@pytest.fixture
def mock_oracle():
    oracle = MagicMock(spec=BalanceOracle)
    oracle.snapshot = AsyncMock(return_value=make_snapshot("1", "10"))
    oracle.read_stable = AsyncMock(return_value=Decimal("10"))
    oracle.read_native = AsyncMock(return_value=Decimal("1"))
    return oracle


@pytest.fixture
def mock_scanner():
    scanner = MagicMock(spec=OpportunityScanner)
    scanner.scan = AsyncMock(return_value=[])
    return scanner


@pytest.fixture
def mock_executor():
    executor = MagicMock(spec=MarketAction)
    executor.swap = AsyncMock(side_effect=lambda i, o, amount: TransactionRef(
        signature="5wapSig",
        kind="swap",
        input_mint=i,
        output_mint=o,
        amount=amount,
        expected_out=1,
    ))
    executor.transfer = AsyncMock(side_effect=lambda asset, recipient, amount: TransactionRef(
        signature="7ransferSig",
        kind="transfer",
        input_mint=asset,
        output_mint=asset,
        amount=amount,
        recipient=recipient,
    ))
    return executor


class FakeResponse:
    """Minimal stand-in for an aiohttp response used as an async context manager.

    An exception passed as ``payload`` is raised from ``json()``.
    """

    def __init__(self, status: int = 200, payload=None, text: str = ""):
        self.status = status
        self._payload = payload
        self._text = text

    async def json(self):
        if isinstance(self._payload, BaseException):
            raise self._payload
        return self._payload

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return False


class FakeSession:
    """Records requests and replays queued responses (or raises queued exceptions)."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    def _next(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def get(self, url, **kwargs):
        return self._next("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._next("POST", url, **kwargs)

    async def close(self):
        self.closed = True
