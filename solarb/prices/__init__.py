"""
Venue price sources and aggregation.

Source priority:
1. JupiterQuoteSource - direct-route quote probes (fresh, per venue)
2. DexScreenerSource - pool listings (broad coverage, lagging)
"""

from solarb.prices.base import BasePriceSource
from solarb.prices.jupiter_quotes import JupiterQuoteSource
from solarb.prices.dexscreener import DexScreenerSource
from solarb.prices.aggregator import PriceAggregator

__all__ = [
    "BasePriceSource",
    "JupiterQuoteSource",
    "DexScreenerSource",
    "PriceAggregator",
]
