"""
DexScreener API source: broad pool coverage, slower to update.
https://docs.dexscreener.com/api/reference
"""

from decimal import Decimal
from typing import Dict, List, Optional

import httpx

from solarb.clock import Clock
from solarb.config import get_config
from solarb.models import PricePoint
from solarb.prices.base import BasePriceSource
from solarb.logger import get_logger


logger = get_logger("dexscreener")


class DexScreenerSource(BasePriceSource):
    """Fallback price source: every Solana pool quoted in SOL is a point."""

    name = "dexscreener"

    DEX_NAMES: Dict[str, str] = {
        "raydium": "Raydium",
        "orca": "Orca",
        "jupiter": "Jupiter",
        "phoenix": "Phoenix",
        "meteora": "Meteora",
        "lifinity": "Lifinity",
        "saber": "Saber",
    }

    SOL_SYMBOLS = ("SOL", "WSOL")

    def __init__(self, client: Optional[httpx.AsyncClient] = None, clock: Optional[Clock] = None):
        super().__init__(client=client, clock=clock, timeout=10.0)
        config = get_config()
        self.api_base = config.prices.dexscreener_api
        self.base_mint = config.base_mint

    @classmethod
    def normalize_dex_name(cls, dex_id: str) -> str:
        return cls.DEX_NAMES.get(dex_id.lower(), dex_id)

    async def fetch(self, token: str, mint: str) -> List[PricePoint]:
        try:
            client = await self._get_client()
            response = await client.get(f"{self.api_base}/tokens/{mint}")
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"DexScreener fetch failed for {token}", error=str(e))
            return []

        pairs = (data or {}).get("pairs") or []
        points = []
        for pair in pairs:
            point = self._parse_pair(pair)
            if point is not None:
                points.append(point)

        if not points:
            logger.debug(f"No SOL pools on DexScreener for {token}")
        return points

    def _parse_pair(self, pair: dict) -> Optional[PricePoint]:
        """One point per pool; only Solana pools quoted in SOL qualify."""
        if pair.get("chainId") != "solana":
            return None

        quote = pair.get("quoteToken") or {}
        if quote.get("address") != self.base_mint and quote.get("symbol") not in self.SOL_SYMBOLS:
            return None

        # priceNative is SOL per whole token
        price = self.to_decimal(pair.get("priceNative"))
        if price is None or price <= 0:
            return None

        return PricePoint(
            venue=self.normalize_dex_name(pair.get("dexId") or "unknown"),
            price=price,
            observed_at=self._clock.now(),
            liquidity_usd=self.to_decimal((pair.get("liquidity") or {}).get("usd")) or Decimal("0"),
            volume_24h_usd=self.to_decimal((pair.get("volume") or {}).get("h24")) or Decimal("0"),
            source=self.name,
            pool_address=pair.get("pairAddress"),
        )
