"""
Price aggregation across venues.

Fast primary probes first; the broad fallback only when the primary cannot
produce a comparable pair of venues.
"""

from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from solarb.clock import Clock, get_clock
from solarb.config import get_config, get_token_mint
from solarb.models import PricePoint
from solarb.prices.base import BasePriceSource
from solarb.prices.dexscreener import DexScreenerSource
from solarb.prices.jupiter_quotes import JupiterQuoteSource
from solarb.logger import get_logger


logger = get_logger("price_aggregator")


class PriceAggregator:
    """
    Fetches per-venue price points for a token.

    Responsibilities:
    - Query the primary source and accept it only with >= 2 distinct venues
    - Otherwise query the fallback and drop thin or illiquid pools
    - Cache each token's result for a short TTL
    """

    MIN_VENUES = 2

    def __init__(
        self,
        primary: Optional[BasePriceSource] = None,
        fallback: Optional[BasePriceSource] = None,
        clock: Optional[Clock] = None,
    ):
        config = get_config()
        self._clock = clock or get_clock()
        self.primary = primary or JupiterQuoteSource(clock=self._clock)
        self.fallback = fallback or DexScreenerSource(clock=self._clock)

        self.cache_ttl = config.prices.price_cache_ttl_ms / 1000
        self.min_liquidity_usd = Decimal(str(config.prices.min_liquidity_usd))
        self.min_volume_24h_usd = Decimal(str(config.prices.min_volume_24h_usd))

        # token symbol -> (fetched at, points)
        self._cache: Dict[str, Tuple[float, List[PricePoint]]] = {}

        # Stats
        self._primary_hits = 0
        self._fallback_hits = 0

    async def connect(self) -> None:
        await self.primary.connect()
        await self.fallback.connect()

    async def disconnect(self) -> None:
        await self.primary.disconnect()
        await self.fallback.disconnect()

    async def get_prices(self, token: str) -> List[PricePoint]:
        """
        Get price points for a token symbol.

        Never raises for remote failure; returns an empty or partial list.
        Unknown symbols return an empty list.
        """
        mint = get_token_mint(token)
        if not mint:
            logger.warning(f"Unknown token: {token}")
            return []

        cached = self._cache.get(token)
        if cached and self._clock.time() - cached[0] < self.cache_ttl:
            return list(cached[1])

        points = await self._fetch_primary(token, mint)
        if self._venue_count(points) >= self.MIN_VENUES:
            self._primary_hits += 1
        else:
            logger.debug(
                "Primary source insufficient, using fallback",
                token=token,
                venues=self._venue_count(points),
            )
            points = self._filter_quality(await self._fetch_fallback(token, mint))
            self._fallback_hits += 1

        self._cache[token] = (self._clock.time(), points)
        return list(points)

    def clear_cache(self) -> None:
        """Drop every cached token result."""
        self._cache.clear()

    async def _fetch_primary(self, token: str, mint: str) -> List[PricePoint]:
        try:
            return await self.primary.fetch(token, mint)
        except Exception as e:
            logger.warning(f"Primary price source failed for {token}", error=str(e))
            return []

    async def _fetch_fallback(self, token: str, mint: str) -> List[PricePoint]:
        try:
            return await self.fallback.fetch(token, mint)
        except Exception as e:
            logger.warning(f"Fallback price source failed for {token}", error=str(e))
            return []

    def _filter_quality(self, points: List[PricePoint]) -> List[PricePoint]:
        """Drop pools whose quoted price is not executable at size."""
        kept = []
        for point in points:
            liquidity = point.liquidity_usd if point.liquidity_usd is not None else Decimal("0")
            volume = point.volume_24h_usd if point.volume_24h_usd is not None else Decimal("0")
            if liquidity < self.min_liquidity_usd or volume < self.min_volume_24h_usd:
                continue
            kept.append(point)
        return kept

    @staticmethod
    def _venue_count(points: List[PricePoint]) -> int:
        return len({p.venue for p in points})

    def get_stats(self) -> Dict[str, int]:
        return {
            "primary_hits": self._primary_hits,
            "fallback_hits": self._fallback_hits,
            "cached_tokens": len(self._cache),
        }
