"""
Token security scoring.

Primary source is Birdeye's token_security endpoint (needs an API key).
Without a key, or when Birdeye fails, membership in Jupiter's strict token
list is the fallback. When neither source vouches for a token it is unsafe.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional

import aiohttp

from autonomy.errors import NoCredential, ProviderError
from autonomy.logging_config import short_address

logger = logging.getLogger(__name__)

BIRDEYE_API = "https://public-api.birdeye.so"
JUPITER_STRICT_LIST = "https://token.jup.ag/strict"

# Points per independent risk signal; sums to 100.
SIGNAL_WEIGHTS = {
    "owner_renounced": 30,
    "liquidity_locked": 30,
    "not_honeypot": 20,
    "not_freezeable": 10,
    "no_transfer_fee": 10,
}

DEFAULT_SAFE_CUTOFF = 60


class ScoreSource(Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"
    NONE = "none"


@dataclass(frozen=True)
class SecurityVerdict:
    trust_score: int
    is_safe: bool
    source: ScoreSource


def _flag(data: Mapping[str, Any], *keys: str) -> Optional[bool]:
    """True if any key is True, False if one is explicitly False, else None."""
    seen_false = False
    for key in keys:
        value = data.get(key)
        if value is True:
            return True
        if value is False:
            seen_false = True
    return False if seen_false else None


def extract_signals(data: Mapping[str, Any]) -> Dict[str, bool]:
    """Map a Birdeye token_security payload onto the five scored signals.

    A signal only counts when the payload states it; missing fields never
    earn points.
    """
    honeypot = _flag(data, "isHoneypot", "is_honeypot")
    freezeable = _flag(data, "freezeable", "freezeAble")
    transfer_fee = _flag(data, "transferFeeEnable", "transfer_fee_enable")
    return {
        "owner_renounced": _flag(data, "ownerAddressInJupStrictList", "owner_renounced", "ownerRenounced") is True,
        "liquidity_locked": _flag(data, "liquidityLocked", "liquidity_locked") is True,
        "not_honeypot": honeypot is False,
        "not_freezeable": freezeable is False,
        "no_transfer_fee": transfer_fee is False,
    }


def score_signals(signals: Mapping[str, bool]) -> int:
    return sum(weight for name, weight in SIGNAL_WEIGHTS.items() if signals.get(name))


class BirdeyeClient:
    def __init__(self, api_key: Optional[str], timeout: float = 15, base_url: str = BIRDEYE_API):
        self.api_key = api_key
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def token_security(self, address: str) -> Optional[Dict[str, Any]]:
        """Raw risk signals for ``address``; None when Birdeye has no data."""
        if not self.api_key:
            raise NoCredential("birdeye")

        session = await self._get_session()
        headers = {"X-API-KEY": self.api_key, "x-chain": "solana"}
        try:
            async with session.get(
                f"{self.base_url}/defi/token_security",
                params={"address": address},
                headers=headers,
            ) as resp:
                if resp.status != 200:
                    raise ProviderError(f"Birdeye HTTP {resp.status}", provider="birdeye")
                payload = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderError(f"Birdeye request failed: {e or type(e).__name__}", provider="birdeye")
        except ValueError as e:
            raise ProviderError(f"Birdeye returned invalid JSON: {e}", provider="birdeye")

        data = payload.get("data") if isinstance(payload, dict) else None
        return data if isinstance(data, dict) and data else None


class StrictListClient:
    """Jupiter's curated strict token list, cached for ``ttl_seconds``."""

    def __init__(self, url: str = JUPITER_STRICT_LIST, timeout: float = 8, ttl_seconds: int = 600):
        self.url = url
        self.timeout = timeout
        self.ttl_seconds = ttl_seconds
        self._addresses: Optional[FrozenSet[str]] = None
        self._fetched_at: float = 0.0
        self._lock = asyncio.Lock()
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def _fetch(self) -> FrozenSet[str]:
        session = await self._get_session()
        try:
            async with session.get(self.url) as resp:
                if resp.status != 200:
                    raise ProviderError(f"Strict list HTTP {resp.status}", provider="jupiter_strict")
                tokens = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderError(f"Strict list request failed: {e or type(e).__name__}", provider="jupiter_strict")
        except ValueError as e:
            raise ProviderError(f"Strict list returned invalid JSON: {e}", provider="jupiter_strict")

        if not isinstance(tokens, list):
            raise ProviderError("Strict list payload is not a list", provider="jupiter_strict")
        return frozenset(t["address"] for t in tokens if isinstance(t, dict) and t.get("address"))

    async def addresses(self) -> FrozenSet[str]:
        async with self._lock:
            fresh = time.monotonic() - self._fetched_at < self.ttl_seconds
            if self._addresses is None or not fresh:
                self._addresses = await self._fetch()
                self._fetched_at = time.monotonic()
                logger.debug(f"Strict list refreshed: {len(self._addresses)} tokens")
            return self._addresses

    async def contains(self, address: str) -> bool:
        return address in await self.addresses()


class SecurityScorer:
    """Computes a 0-100 trust score. Safe to call concurrently."""

    def __init__(
        self,
        birdeye: BirdeyeClient,
        strict_list: StrictListClient,
        safe_cutoff: int = DEFAULT_SAFE_CUTOFF,
        strict_list_score: int = 70,
    ):
        self.birdeye = birdeye
        self.strict_list = strict_list
        self.safe_cutoff = safe_cutoff
        self.strict_list_score = strict_list_score

    async def score(self, address: str) -> SecurityVerdict:
        if self.birdeye.has_api_key:
            try:
                data = await self.birdeye.token_security(address)
            except (NoCredential, ProviderError) as e:
                logger.info(f"Birdeye unavailable for {short_address(address)}, using strict list: {e}")
            else:
                if data is None:
                    return SecurityVerdict(0, False, ScoreSource.PRIMARY)
                trust = score_signals(extract_signals(data))
                return SecurityVerdict(trust, trust >= self.safe_cutoff, ScoreSource.PRIMARY)

        try:
            verified = await self.strict_list.contains(address)
        except ProviderError as e:
            logger.warning(f"Strict list unavailable: {e}")
            verified = False

        if verified:
            return SecurityVerdict(self.strict_list_score, True, ScoreSource.FALLBACK)
        return SecurityVerdict(0, False, ScoreSource.NONE)
