"""Tests for the Balance Oracle and the ledger wrapper."""

import asyncio
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.transaction_status import TransactionConfirmationStatus

from autonomy.config import USDC_MINT
from autonomy.errors import AccountNotFound, LedgerError
from autonomy.ledger import LedgerClient, SignatureState, TokenBalance, confirmation_name
from autonomy.oracle import BalanceOracle

OWNER = Keypair().pubkey()


@pytest.fixture
def ledger():
    ledger = MagicMock(spec=LedgerClient)
    ledger.get_native_balance = AsyncMock(return_value=20_000_000)
    ledger.get_token_balance = AsyncMock(return_value=TokenBalance(amount=10_500_000, decimals=6))
    return ledger


@pytest.fixture
def oracle(ledger):
    return BalanceOracle(ledger, OWNER, USDC_MINT)


class TestBalanceOracle:
    """Tests for snapshot reads."""

    @pytest.mark.asyncio
    async def test_snapshot(self, oracle):
        snapshot = await oracle.snapshot()

        assert snapshot.native == Decimal("0.02")
        assert snapshot.stable == Decimal("10.5")
        assert snapshot.is_complete

    @pytest.mark.asyncio
    async def test_native_failure_is_unknown_not_zero(self, oracle, ledger):
        ledger.get_native_balance.side_effect = LedgerError("getBalance timed out after 10s")

        snapshot = await oracle.snapshot()

        assert snapshot.native is None
        assert snapshot.stable == Decimal("10.5")
        assert not snapshot.is_complete

    @pytest.mark.asyncio
    async def test_stable_failure_is_unknown(self, oracle, ledger):
        ledger.get_token_balance.side_effect = LedgerError("getAccountInfo failed: 502")
        assert await oracle.read_stable() is None

    @pytest.mark.asyncio
    async def test_missing_token_account_is_zero(self, oracle, ledger):
        ledger.get_token_balance.side_effect = AccountNotFound("ata")
        assert await oracle.read_stable() == Decimal("0")

    @pytest.mark.asyncio
    async def test_reads_run_concurrently(self, oracle, ledger):
        """Test each read only completes once the other has started."""
        native_started = asyncio.Event()
        stable_started = asyncio.Event()

        async def native(*args):
            native_started.set()
            await asyncio.wait_for(stable_started.wait(), timeout=1)
            return 0

        async def stable(*args):
            stable_started.set()
            await asyncio.wait_for(native_started.wait(), timeout=1)
            return TokenBalance(amount=0, decimals=6)

        ledger.get_native_balance.side_effect = native
        ledger.get_token_balance.side_effect = stable

        snapshot = await oracle.snapshot()

        assert snapshot.native == Decimal("0")
        assert snapshot.stable == Decimal("0")

    def test_snapshot_to_dict_keeps_unknown(self):
        from autonomy.oracle import BalanceSnapshot

        data = BalanceSnapshot(native=None, stable=Decimal("0")).to_dict()
        assert data["native"] is None
        assert data["stable"] == "0"


class TestLedgerClient:
    """Tests for RPC error mapping."""

    @pytest.fixture
    def client(self):
        ledger = LedgerClient("http://localhost:8899", timeout=1)
        ledger._client = MagicMock()
        return ledger

    @pytest.mark.asyncio
    async def test_missing_account(self, client):
        client._client.get_account_info_json_parsed = AsyncMock(return_value=SimpleNamespace(value=None))
        with pytest.raises(AccountNotFound):
            await client.get_token_balance(OWNER, Keypair().pubkey())

    @pytest.mark.asyncio
    async def test_parsed_token_amount(self, client):
        parsed = {"info": {"tokenAmount": {"amount": "1234567", "decimals": 6}}}
        value = SimpleNamespace(data=SimpleNamespace(parsed=parsed))
        client._client.get_account_info_json_parsed = AsyncMock(return_value=SimpleNamespace(value=value))

        balance = await client.get_token_balance(OWNER, Keypair().pubkey())

        assert balance == TokenBalance(amount=1_234_567, decimals=6)

    @pytest.mark.asyncio
    async def test_transport_error_becomes_ledger_error(self, client):
        client._client.get_balance = AsyncMock(side_effect=OSError("connection refused"))
        with pytest.raises(LedgerError) as exc:
            await client.get_native_balance(OWNER)
        assert not isinstance(exc.value, AccountNotFound)

    @pytest.mark.asyncio
    async def test_timeout_becomes_ledger_error(self, client):
        async def hang(*args, **kwargs):
            await asyncio.sleep(5)

        client.timeout = 0.01
        client._client.get_slot = hang
        with pytest.raises(LedgerError, match="timed out"):
            await client.get_slot()

    @pytest.mark.asyncio
    async def test_latest_blockhash(self, client):
        blockhash = Hash.default()
        value = SimpleNamespace(blockhash=blockhash, last_valid_block_height=123_456)
        client._client.get_latest_blockhash = AsyncMock(return_value=SimpleNamespace(value=value))

        assert await client.get_latest_blockhash() == (blockhash, 123_456)

    @pytest.mark.asyncio
    async def test_send_raw_transaction_returns_signature(self, client):
        signature = Keypair().sign_message(b"tx")
        client._client.send_raw_transaction = AsyncMock(return_value=SimpleNamespace(value=signature))

        assert await client.send_raw_transaction(b"raw") == str(signature)
        assert client._client.send_raw_transaction.await_args.args[0] == b"raw"
        assert client._client.send_raw_transaction.await_args.kwargs["opts"].skip_preflight is False

    @pytest.mark.asyncio
    async def test_send_raw_transaction_rejection(self, client):
        client._client.send_raw_transaction = AsyncMock(
            side_effect=RuntimeError("Transaction simulation failed: This transaction has already been processed")
        )
        with pytest.raises(LedgerError, match="already been processed"):
            await client.send_raw_transaction(b"raw")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("member, expected", [
        ("Processed", "processed"),
        ("Confirmed", "confirmed"),
        ("Finalized", "finalized"),
        (None, None),
    ])
    async def test_signature_status(self, client, member, expected):
        status = getattr(TransactionConfirmationStatus, member) if member else None
        signature = str(Keypair().sign_message(b"tx"))
        entry = SimpleNamespace(confirmation_status=status, err=None)
        client._client.get_signature_statuses = AsyncMock(return_value=SimpleNamespace(value=[entry]))

        state = await client.get_signature_status(signature)

        assert state == SignatureState(confirmation_status=expected, err=None)

    @pytest.mark.asyncio
    async def test_signature_status_with_error(self, client):
        entry = SimpleNamespace(
            confirmation_status=TransactionConfirmationStatus.Confirmed,
            err="InstructionError(0, Custom(1))",
        )
        client._client.get_signature_statuses = AsyncMock(return_value=SimpleNamespace(value=[entry]))

        state = await client.get_signature_status(str(Keypair().sign_message(b"tx")))

        assert state.confirmation_status == "confirmed"
        assert state.err == "InstructionError(0, Custom(1))"

    @pytest.mark.asyncio
    async def test_unseen_signature_is_none(self, client):
        client._client.get_signature_statuses = AsyncMock(return_value=SimpleNamespace(value=[None]))
        assert await client.get_signature_status(str(Keypair().sign_message(b"tx"))) is None


def test_confirmation_name():
    assert confirmation_name(TransactionConfirmationStatus.Finalized) == "finalized"
    assert confirmation_name("confirmed") == "confirmed"
    assert confirmation_name(None) is None
