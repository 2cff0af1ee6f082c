"""
Per-venue prices from Jupiter direct-route quote probes.

For each target DEX we ask Jupiter for a SOL -> TOKEN quote restricted to
that DEX only. Whichever venue returns more tokens for the same SOL is
cheaper. Prices are lamports of SOL per token base unit, so they compare
directly across venues for the same token.
"""

import asyncio
from decimal import Decimal
from typing import List, Optional

import httpx
from aiolimiter import AsyncLimiter

from solarb.clock import Clock
from solarb.config import get_config
from solarb.models import PricePoint
from solarb.prices.base import BasePriceSource
from solarb.logger import get_logger


logger = get_logger("jupiter_quotes")


class JupiterQuoteSource(BasePriceSource):
    """Primary price source: one concurrent direct-route probe per venue."""

    name = "jupiter"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Clock] = None,
        limiter: Optional[AsyncLimiter] = None,
    ):
        # Probes are cheap; a slow one is treated as "no route"
        super().__init__(client=client, clock=clock, timeout=5.0)
        config = get_config()
        self.quote_url = config.prices.jupiter_quote_api
        self.probe_lamports = config.prices.probe_lamports
        self.dexes = config.prices.dexes
        self.base_mint = config.base_mint
        self._limiter = limiter or AsyncLimiter(config.prices.jupiter_requests_per_second, 1)

    async def fetch(self, token: str, mint: str) -> List[PricePoint]:
        results = await asyncio.gather(
            *(self._probe(dex, mint) for dex in self.dexes),
            return_exceptions=True,
        )
        points = [r for r in results if isinstance(r, PricePoint)]
        logger.debug(
            "Jupiter probes finished",
            token=token,
            venues=[p.venue for p in points],
        )
        return points

    async def _probe(self, dex: str, output_mint: str) -> Optional[PricePoint]:
        """Quote PROBE_LAMPORTS of SOL into the token on a single venue."""
        params = {
            "inputMint": self.base_mint,
            "outputMint": output_mint,
            "amount": self.probe_lamports,
            "dexes": dex,
            "onlyDirectRoutes": "true",
            # Pure price discovery, not for execution
            "slippageBps": 0,
        }

        try:
            client = await self._get_client()
            async with self._limiter:
                response = await client.get(self.quote_url, params=params, timeout=self._timeout)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            # Venue has no pool for this pair, or we are rate limited
            logger.debug(f"No {dex} quote", mint=output_mint, error=str(e))
            return None

        if not data or not data.get("outAmount") or not data.get("routePlan"):
            return None

        try:
            tokens_out = int(data["outAmount"])
        except (TypeError, ValueError):
            return None
        if tokens_out <= 0:
            return None

        return PricePoint(
            venue=dex,
            price=Decimal(self.probe_lamports) / Decimal(tokens_out),
            observed_at=self._clock.now(),
            liquidity_usd=None,
            volume_24h_usd=None,
            source=self.name,
        )
