"""
Opportunity Scanner - finds high-volume, aged, security-vetted tokens.

The scanner never raises: if market data cannot be fetched the answer is
"nothing to do this cycle", which the engine treats as idle.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from autonomy.config import AgentConfig
from autonomy.dexscreener import DexScreenerClient, TokenPair
from autonomy.errors import ProviderError
from autonomy.logging_config import short_address
from autonomy.security import ScoreSource, SecurityScorer, SecurityVerdict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    symbol: str
    address: str
    volume: Decimal
    trust_score: int
    price_hint: Optional[Decimal]
    data_source: ScoreSource


class OpportunityScanner:
    def __init__(self, market: DexScreenerClient, scorer: SecurityScorer, config: AgentConfig):
        self.market = market
        self.scorer = scorer
        self.min_volume = config.min_volume_usd
        self.min_age_hours = config.min_pair_age_hours
        self.scan_depth = config.scan_depth
        self.max_candidates = config.max_candidates

    def rank(self, pairs: List[TokenPair], now_ms: Optional[int] = None) -> List[TokenPair]:
        """Filter by volume and age, sort by volume, keep the top ``scan_depth`` tokens."""
        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        eligible = []
        for pair in pairs:
            if not pair.base_token_address:
                continue
            if pair.volume_24h <= self.min_volume:
                continue
            age = pair.age_hours(now_ms)
            # No creation time means we cannot vet the age
            if age is None or age <= self.min_age_hours:
                continue
            eligible.append(pair)

        eligible.sort(key=lambda p: p.volume_24h, reverse=True)

        ranked: List[TokenPair] = []
        seen = set()
        for pair in eligible:
            if pair.base_token_address in seen:
                continue
            seen.add(pair.base_token_address)
            ranked.append(pair)
            if len(ranked) >= self.scan_depth:
                break
        return ranked

    async def _score(self, pair: TokenPair) -> Optional[SecurityVerdict]:
        try:
            return await self.scorer.score(pair.base_token_address)
        except Exception as e:
            logger.warning(f"Scoring failed for {pair.base_token_symbol} ({short_address(pair.base_token_address)}): {e}")
            return None

    async def scan(self) -> List[Candidate]:
        logger.info("Scanning for market opportunities...")
        try:
            return await self._scan()
        except ProviderError as e:
            logger.error(f"Opportunity scan failed: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error during opportunity scan: {e}")
        return []

    async def _scan(self) -> List[Candidate]:
        pairs = await self.market.trending_pairs("solana")
        ranked = self.rank(pairs)
        accepted: List[Candidate] = []

        # Score in rank-ordered batches so we stop early once enough are safe
        for start in range(0, len(ranked), self.max_candidates):
            batch = ranked[start:start + self.max_candidates]
            verdicts = await asyncio.gather(*(self._score(p) for p in batch))
            for pair, verdict in zip(batch, verdicts):
                if verdict is None or not verdict.is_safe:
                    continue
                accepted.append(Candidate(
                    symbol=pair.base_token_symbol,
                    address=pair.base_token_address,
                    volume=pair.volume_24h,
                    trust_score=verdict.trust_score,
                    price_hint=pair.price_usd,
                    data_source=verdict.source,
                ))
                if len(accepted) >= self.max_candidates:
                    break
            if len(accepted) >= self.max_candidates:
                break

        logger.info(f"Found {len(accepted)} safe candidates out of {len(ranked)} ranked")
        return accepted
