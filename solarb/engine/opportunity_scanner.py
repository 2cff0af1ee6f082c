"""
Cross-venue opportunity detection.
Finds venue pairs whose spread survives slippage on both legs.
"""

from decimal import Decimal
from itertools import combinations
from typing import List, Optional

from solarb.clock import Clock, get_clock
from solarb.config import get_config
from solarb.models import Opportunity, PricePoint, ScanResult, SpreadClass, SpreadReport
from solarb.logger import get_logger


logger = get_logger("scanner")

HUNDRED = Decimal("100")


class OpportunityScanner:
    """
    Compares every pair of venue prices for one token.

    If venue A sells RAY at 100 and venue B buys it at 105, buying on A and
    selling on B earns the spread minus slippage on each leg. Only pairs whose
    slippage-adjusted profit clears the minimum are emitted. The widest raw
    spread is reported separately so the threshold can be tuned.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        slippage: Optional[float] = None,
        min_profit_pct: Optional[float] = None,
        staleness_seconds: Optional[float] = None,
        near_miss_margin_pct: Optional[float] = None,
    ):
        config = get_config()
        self._clock = clock or get_clock()

        self.base_token = config.trading.base_token
        self.slippage = Decimal(str(
            config.trading.slippage_tolerance if slippage is None else slippage
        ))
        # min_profit_pct is a fraction; comparisons happen in percent units
        self.threshold_percent = Decimal(str(
            config.trading.min_profit_pct if min_profit_pct is None else min_profit_pct
        )) * HUNDRED
        self.staleness_seconds = (
            config.scan.staleness_seconds if staleness_seconds is None else staleness_seconds
        )
        self.near_miss_margin = Decimal(str(
            config.scan.near_miss_margin_pct if near_miss_margin_pct is None else near_miss_margin_pct
        ))

        self._evaluations = 0
        self._opportunities_found = 0

    def find_opportunities(self, prices: List[PricePoint], token: str) -> List[Opportunity]:
        """Opportunities for one token, most profitable first."""
        return self.evaluate(prices, token).opportunities

    def evaluate(self, prices: List[PricePoint], token: str) -> ScanResult:
        """
        Evaluate all unordered pairs of price points.

        Args:
            prices: Price points for a single token
            token: Token symbol, e.g. "RAY"

        Returns:
            Opportunities sorted by profit percent descending, plus the
            best raw spread seen across pairs that passed the freshness
            and venue filters.
        """
        self._evaluations += 1
        now = self._clock.now()
        token_pair = f"{token}/{self.base_token}"

        opportunities: List[Opportunity] = []
        best: Optional[tuple] = None  # (spread percent, low point, high point)

        for a, b in combinations(prices, 2):
            if not (self._is_fresh(a, now) and self._is_fresh(b, now)):
                continue
            # Two pools on one venue: the router already picks the better one
            if a.venue == b.venue:
                continue

            low, high = (a, b) if a.price <= b.price else (b, a)
            if low.price <= 0:
                continue

            raw_spread = (high.price - low.price) / low.price * HUNDRED
            if best is None or raw_spread > best[0]:
                best = (raw_spread, low, high)

            buy_adjusted = low.price * (1 + self.slippage)
            sell_adjusted = high.price * (1 - self.slippage)
            profit_percent = (sell_adjusted - buy_adjusted) / buy_adjusted * HUNDRED

            if profit_percent >= self.threshold_percent:
                opportunities.append(Opportunity(
                    token_pair=token_pair,
                    buy_venue=low.venue,
                    sell_venue=high.venue,
                    buy_price=buy_adjusted,
                    sell_price=sell_adjusted,
                    profit_percent=profit_percent,
                    raw_spread_percent=raw_spread,
                    detected_at=now,
                ))

        opportunities.sort(key=lambda o: o.profit_percent, reverse=True)
        self._opportunities_found += len(opportunities)
        logger.debug(
            "Evaluated prices",
            token=token,
            points=len(prices),
            opportunities=len(opportunities),
        )

        best_spread = None
        if best is not None:
            spread, low, high = best
            best_spread = SpreadReport(
                token=token,
                best_spread_percent=spread,
                buy_venue=low.venue,
                sell_venue=high.venue,
                buy_price=low.price,
                sell_price=high.price,
                threshold_percent=self.threshold_percent,
                classification=self.classify(spread),
            )

        return ScanResult(opportunities=opportunities, best_spread=best_spread)

    def classify(self, spread_percent: Decimal) -> SpreadClass:
        """Tag a raw spread as met, near-miss or far from the threshold."""
        if spread_percent >= self.threshold_percent:
            return SpreadClass.MET
        if spread_percent >= self.threshold_percent - self.near_miss_margin:
            return SpreadClass.NEAR_MISS
        return SpreadClass.FAR

    def _is_fresh(self, point: PricePoint, now) -> bool:
        age = (now - point.observed_at).total_seconds()
        return age <= self.staleness_seconds

    @property
    def metrics(self) -> dict:
        """Get scanner metrics."""
        return {
            "evaluations": self._evaluations,
            "opportunities_found": self._opportunities_found,
        }
