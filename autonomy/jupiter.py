"""
Jupiter Aggregator Integration
Provides best-route quotes and prebuilt unsigned swap transactions.
"""

import asyncio
import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from autonomy.errors import BuildFailed, QuoteUnavailable
from autonomy.logging_config import short_address

logger = logging.getLogger(__name__)


@dataclass
class SwapQuote:
    """Quote for a token swap."""
    input_mint: str
    output_mint: str
    input_amount: int          # In lamports/smallest unit
    output_amount: int         # Expected output in smallest unit
    min_output_amount: int     # After slippage
    price_impact_pct: float
    slippage_bps: int
    route_plan: List[Dict]
    quote_response: Dict       # Raw Jupiter response for the build call

    @classmethod
    def from_response(cls, data: Dict[str, Any], slippage_bps: int) -> "SwapQuote":
        return cls(
            input_mint=data["inputMint"],
            output_mint=data["outputMint"],
            input_amount=int(data["inAmount"]),
            output_amount=int(data["outAmount"]),
            min_output_amount=int(data.get("otherAmountThreshold") or 0),
            price_impact_pct=float(data.get("priceImpactPct") or 0),
            slippage_bps=slippage_bps,
            route_plan=data.get("routePlan", []),
            quote_response=data,
        )


class JupiterClient:
    """
    Jupiter swap API client.

    The free lite-api is used unless an API key is configured, in which case
    requests go to api.jup.ag with the ``x-api-key`` header.
    """

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        timeout: float = 15,
        priority_fee_lamports: int = 1000,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.priority_fee_lamports = priority_fee_lamports
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            headers = {"x-api-key": self.api_key} if self.api_key else {}
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self):
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def get_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int = 50,
    ) -> SwapQuote:
        """
        Get a swap quote from Jupiter.

        Args:
            input_mint: Input token mint address
            output_mint: Output token mint address
            amount: Amount in smallest unit (lamports for SOL)
            slippage_bps: Slippage tolerance in basis points (50 = 0.5%)

        Raises:
            QuoteUnavailable: on transport failure, non-200, or an empty route
        """
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": slippage_bps,
            "onlyDirectRoutes": "false",
        }
        session = await self._get_session()
        try:
            async with session.get(f"{self.api_url}/quote", params=params) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    raise QuoteUnavailable(f"Quote failed: HTTP {resp.status} {body[:200]}")
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise QuoteUnavailable(f"Quote request failed: {e or type(e).__name__}")
        except ValueError as e:
            raise QuoteUnavailable(f"Quote response is not valid JSON: {e}")

        if not isinstance(data, dict) or "error" in data:
            error = data.get("error") if isinstance(data, dict) else data
            raise QuoteUnavailable(f"Quote error: {error}")

        try:
            quote = SwapQuote.from_response(data, slippage_bps)
        except (KeyError, TypeError, ValueError) as e:
            raise QuoteUnavailable(f"Malformed quote response: missing {e}")

        if quote.output_amount <= 0:
            raise QuoteUnavailable("Quote has no output")

        logger.info(
            f"Quote {short_address(input_mint)} -> {short_address(output_mint)}: "
            f"in={quote.input_amount} out={quote.output_amount} (min {quote.min_output_amount})"
        )
        return quote

    async def get_swap_transaction(self, quote: SwapQuote, user_public_key: str) -> bytes:
        """
        Request the prebuilt unsigned transaction for ``quote``.

        Returns:
            Serialized VersionedTransaction bytes, ready to sign locally

        Raises:
            BuildFailed: on transport failure, non-200, or missing payload
        """
        payload = {
            "quoteResponse": quote.quote_response,
            "userPublicKey": user_public_key,
            "wrapAndUnwrapSol": True,
            "dynamicComputeUnitLimit": True,
            "prioritizationFeeLamports": self.priority_fee_lamports,
        }
        session = await self._get_session()
        try:
            async with session.post(f"{self.api_url}/swap", json=payload) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    raise BuildFailed(f"Swap build failed: HTTP {resp.status} {body[:200]}")
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise BuildFailed(f"Swap build request failed: {e or type(e).__name__}")
        except ValueError as e:
            raise BuildFailed(f"Swap build response is not valid JSON: {e}")

        encoded = data.get("swapTransaction") if isinstance(data, dict) else None
        if not encoded:
            raise BuildFailed("Swap build response has no transaction")
        try:
            raw = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError):
            raise BuildFailed("Swap transaction is not valid base64")
        if not raw:
            raise BuildFailed("Swap transaction is empty")
        return raw

    async def ping(self, input_mint: str, output_mint: str) -> bool:
        """True when a tiny quote can be fetched."""
        try:
            await self.get_quote(input_mint, output_mint, 1_000_000)
            return True
        except QuoteUnavailable as e:
            logger.debug(f"Jupiter ping failed: {e}")
            return False
