"""Tests for status reporting and ecosystem health."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from solders.keypair import Keypair

from autonomy.errors import LedgerError
from autonomy.identity import Identity
from autonomy.jupiter import JupiterClient
from autonomy.ledger import LedgerClient
from autonomy.status import check_ecosystem, collect_status

from conftest import make_snapshot


@pytest.fixture
def ledger():
    ledger = MagicMock(spec=LedgerClient)
    ledger.get_slot = AsyncMock(return_value=250_000_000)
    return ledger


@pytest.fixture
def jupiter():
    jupiter = MagicMock(spec=JupiterClient)
    jupiter.ping = AsyncMock(return_value=True)
    return jupiter


class TestStatus:
    """Tests for collect_status()."""

    @pytest.mark.asyncio
    async def test_healthy_report(self, config, mock_oracle, ledger, jupiter):
        identity = Identity(Keypair())
        mock_oracle.snapshot.return_value = make_snapshot("0.5", "12.5")

        report = await collect_status(config, identity, mock_oracle, ledger, jupiter)

        assert report["address"] == identity.address
        assert report["sol"] == "0.5"
        assert report["usdc"] == "12.5"
        assert report["tier"] == "nominal"
        assert report["sol_low"] is False
        assert report["usdc_low"] is False
        assert report["rpc_unreachable"] is False
        assert report["ecosystem"] == {"rpc": True, "jupiter": True, "online": True}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("native, stable", [(None, "3"), ("0.5", None)])
    async def test_one_failed_read_is_unreachable(self, config, mock_oracle, ledger, jupiter, native, stable):
        mock_oracle.snapshot.return_value = make_snapshot(native, stable)

        report = await collect_status(config, Identity(Keypair()), mock_oracle, ledger, jupiter)

        assert report["tier"] == "unknown"
        assert report["rpc_unreachable"] is True

    @pytest.mark.asyncio
    async def test_low_and_unreachable_flags(self, config, mock_oracle, ledger, jupiter):
        mock_oracle.snapshot.return_value = make_snapshot(None, None)

        report = await collect_status(config, Identity(Keypair()), mock_oracle, ledger, jupiter)

        assert report["tier"] == "unknown"
        assert report["rpc_unreachable"] is True
        assert report["sol"] is None
        assert report["sol_low"] is False

    @pytest.mark.asyncio
    async def test_critical_flags(self, config, mock_oracle, ledger, jupiter):
        mock_oracle.snapshot.return_value = make_snapshot("0.001", "1")

        report = await collect_status(config, Identity(Keypair()), mock_oracle, ledger, jupiter)

        assert report["sol_low"] is True
        assert report["usdc_low"] is True
        assert report["tier"] == "critical"

    @pytest.mark.asyncio
    async def test_ecosystem_degraded(self, ledger, jupiter):
        ledger.get_slot.side_effect = LedgerError("getSlot timed out after 10s")

        health = await check_ecosystem(ledger, jupiter, "mint")

        assert health == {"rpc": False, "jupiter": True, "online": False}
