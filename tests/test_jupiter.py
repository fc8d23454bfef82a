"""Tests for the Jupiter aggregator client."""

import asyncio
import base64
import json

import pytest

from autonomy.config import SOL_MINT, USDC_MINT
from autonomy.errors import BuildFailed, QuoteUnavailable
from autonomy.jupiter import JupiterClient, SwapQuote

from conftest import FakeResponse, FakeSession

QUOTE = {
    "inputMint": SOL_MINT,
    "outputMint": USDC_MINT,
    "inAmount": "40000000",
    "outAmount": "7512345",
    "otherAmountThreshold": "7474783",
    "priceImpactPct": "0.0001",
    "routePlan": [{"swapInfo": {"label": "Whirlpool"}}],
}


@pytest.fixture
def client():
    return JupiterClient("https://lite-api.jup.ag/swap/v1")


class TestQuote:
    """Tests for get_quote()."""

    @pytest.mark.asyncio
    async def test_parses_quote(self, client):
        client._session = FakeSession(FakeResponse(200, QUOTE))

        quote = await client.get_quote(SOL_MINT, USDC_MINT, 40_000_000, 50)

        assert quote.output_amount == 7_512_345
        assert quote.min_output_amount == 7_474_783
        method, url, kwargs = client._session.calls[0]
        assert url == "https://lite-api.jup.ag/swap/v1/quote"
        assert kwargs["params"]["amount"] == "40000000"
        assert kwargs["params"]["slippageBps"] == 50

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        FakeResponse(400, text="bad request"),
        FakeResponse(200, {"error": "No routes found"}),
        FakeResponse(200, {"inputMint": SOL_MINT}),
        FakeResponse(200, dict(QUOTE, outAmount="0")),
        FakeResponse(200, json.JSONDecodeError("Expecting value", "<html>", 0)),
    ])
    async def test_unusable_quotes(self, client, response):
        client._session = FakeSession(response)
        with pytest.raises(QuoteUnavailable):
            await client.get_quote(SOL_MINT, USDC_MINT, 1_000)

    @pytest.mark.asyncio
    async def test_timeout(self, client):
        client._session = FakeSession(asyncio.TimeoutError())
        with pytest.raises(QuoteUnavailable):
            await client.get_quote(SOL_MINT, USDC_MINT, 1_000)

    @pytest.mark.asyncio
    async def test_ping(self, client):
        client._session = FakeSession(FakeResponse(200, QUOTE), FakeResponse(503))
        assert await client.ping(SOL_MINT, USDC_MINT) is True
        assert await client.ping(SOL_MINT, USDC_MINT) is False


class TestSwapBuild:
    """Tests for get_swap_transaction()."""

    @pytest.mark.asyncio
    async def test_returns_decoded_bytes(self, client):
        quote = SwapQuote.from_response(QUOTE, 50)
        client._session = FakeSession(
            FakeResponse(200, {"swapTransaction": base64.b64encode(b"unsigned-tx").decode()})
        )

        raw = await client.get_swap_transaction(quote, "Owner111")

        assert raw == b"unsigned-tx"
        method, url, kwargs = client._session.calls[0]
        assert method == "POST"
        assert kwargs["json"]["userPublicKey"] == "Owner111"
        assert kwargs["json"]["quoteResponse"] is QUOTE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        FakeResponse(500, text="oops"),
        FakeResponse(200, {}),
        FakeResponse(200, {"swapTransaction": "***"}),
        FakeResponse(200, json.JSONDecodeError("Expecting value", "<html>", 0)),
    ])
    async def test_build_failures(self, client, response):
        client._session = FakeSession(response)
        with pytest.raises(BuildFailed):
            await client.get_swap_transaction(SwapQuote.from_response(QUOTE, 50), "Owner111")
