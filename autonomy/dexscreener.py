"""DexScreener API client for trending Solana pairs."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import aiohttp

from autonomy.errors import ProviderError

logger = logging.getLogger(__name__)

BASE_URL = "https://api.dexscreener.com"
USER_AGENT = "automaton/1.0 (DexScreener Client)"


@dataclass(frozen=True)
class TokenPair:
    """Normalized token pair data."""
    chain_id: str
    pair_address: str
    base_token_address: str
    base_token_symbol: str
    price_usd: Optional[Decimal]
    liquidity_usd: Decimal
    volume_24h: Decimal
    created_at_ms: Optional[int] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "TokenPair":
        """Create TokenPair from DexScreener API response."""
        base = data.get("baseToken") or {}
        liquidity = data.get("liquidity") or {}
        volume = data.get("volume") or {}
        created = data.get("pairCreatedAt")
        return cls(
            chain_id=data.get("chainId", ""),
            pair_address=data.get("pairAddress", ""),
            base_token_address=base.get("address", ""),
            base_token_symbol=base.get("symbol", ""),
            price_usd=_safe_decimal(data.get("priceUsd"), None),
            liquidity_usd=_safe_decimal(liquidity.get("usd")),
            volume_24h=_safe_decimal(volume.get("h24")),
            created_at_ms=int(created) if isinstance(created, (int, float)) else None,
        )

    def age_hours(self, now_ms: int) -> Optional[float]:
        if self.created_at_ms is None:
            return None
        return (now_ms - self.created_at_ms) / 3_600_000


def _safe_decimal(value: Any, default: Optional[Decimal] = Decimal("0")) -> Optional[Decimal]:
    """Safely convert value to Decimal."""
    if value is None:
        return default
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default
    return result if result.is_finite() else default


class DexScreenerClient:
    def __init__(self, base_url: str = BASE_URL, timeout: float = 15):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": USER_AGENT},
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        session = await self._get_session()
        url = f"{self.base_url}{path}"
        try:
            async with session.get(url, params=params) as resp:
                if resp.status == 429:
                    raise ProviderError("DexScreener rate limit hit", provider="dexscreener")
                if resp.status != 200:
                    raise ProviderError(f"DexScreener HTTP {resp.status}", provider="dexscreener")
                return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderError(f"DexScreener request failed: {e or type(e).__name__}", provider="dexscreener")
        except ValueError as e:
            raise ProviderError(f"DexScreener returned invalid JSON: {e}", provider="dexscreener")

    async def trending_pairs(self, chain: str = "solana") -> List[TokenPair]:
        """
        Top pairs for ``chain`` from the search endpoint.

        Pairs from other chains and entries that fail to parse are dropped.
        """
        data = await self._get_json("/latest/dex/search", params={"q": chain})
        if not isinstance(data, dict):
            raise ProviderError("DexScreener payload is not an object", provider="dexscreener")
        raw_pairs = data.get("pairs") or []
        if not isinstance(raw_pairs, list):
            raise ProviderError("DexScreener pairs field is not a list", provider="dexscreener")

        pairs: List[TokenPair] = []
        for raw in raw_pairs:
            if not isinstance(raw, dict) or raw.get("chainId") != chain:
                continue
            try:
                pairs.append(TokenPair.from_api(raw))
            except (TypeError, ValueError, AttributeError) as e:
                logger.debug(f"Skipping malformed pair: {e}")
        return pairs
