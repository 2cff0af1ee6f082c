"""
Tests for cross-venue opportunity detection.
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from conftest import FakeClock

from solarb.engine.opportunity_scanner import OpportunityScanner
from solarb.models import Opportunity, PricePoint, SpreadClass


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scanner(clock):
    """Scanner with 1% slippage and a 0.5% profit threshold."""
    return OpportunityScanner(
        clock=clock,
        slippage=0.01,
        min_profit_pct=0.005,
        staleness_seconds=10,
        near_miss_margin_pct=0.2,
    )


def point(clock, venue, price, age_seconds=0, **kwargs):
    return PricePoint(
        venue=venue,
        price=Decimal(str(price)),
        observed_at=clock.now() - timedelta(seconds=age_seconds),
        **kwargs,
    )


class TestOpportunityScanner:
    """Test spread evaluation."""

    def test_slippage_erases_small_spread(self, scanner, clock):
        """A 2% spread with 1% slippage per leg is not profitable."""
        prices = [
            point(clock, "X", 100, liquidity_usd=Decimal("50000"), volume_24h_usd=Decimal("10000")),
            point(clock, "Y", 102, liquidity_usd=Decimal("50000"), volume_24h_usd=Decimal("10000")),
        ]

        result = scanner.evaluate(prices, "RAY")

        assert result.opportunities == []
        assert result.best_spread is not None
        assert result.best_spread.best_spread_percent == Decimal("2")
        assert result.best_spread.buy_venue == "X"
        assert result.best_spread.sell_venue == "Y"

    def test_wide_spread_emits_opportunity(self, scanner, clock):
        prices = [point(clock, "X", 100), point(clock, "Y", 105)]

        opportunities = scanner.find_opportunities(prices, "RAY")

        assert len(opportunities) == 1
        opp = opportunities[0]
        assert opp.token_pair == "RAY/SOL"
        assert opp.buy_venue == "X"
        assert opp.sell_venue == "Y"
        assert opp.buy_price == Decimal("101.00")
        assert opp.sell_price == Decimal("103.95")
        assert float(opp.profit_percent) == pytest.approx(2.9208, abs=1e-3)
        assert opp.raw_spread_percent == Decimal("5")
        assert opp.detected_at == clock.now()

    def test_order_of_points_does_not_matter(self, scanner, clock):
        prices = [point(clock, "Y", 105), point(clock, "X", 100)]

        opp = scanner.find_opportunities(prices, "RAY")[0]

        assert opp.buy_venue == "X"
        assert opp.sell_venue == "Y"

    def test_same_venue_pairs_skipped(self, scanner, clock):
        prices = [
            point(clock, "Raydium", 100, pool_address="pool1"),
            point(clock, "Raydium", 110, pool_address="pool2"),
        ]

        result = scanner.evaluate(prices, "RAY")

        assert result.opportunities == []
        assert result.best_spread is None

    def test_stale_points_excluded(self, scanner, clock):
        prices = [point(clock, "X", 100, age_seconds=11), point(clock, "Y", 110)]

        result = scanner.evaluate(prices, "RAY")

        assert result.opportunities == []
        assert result.best_spread is None

    def test_point_at_staleness_limit_is_fresh(self, scanner, clock):
        prices = [point(clock, "X", 100, age_seconds=10), point(clock, "Y", 110)]

        assert len(scanner.find_opportunities(prices, "RAY")) == 1

    def test_sorted_by_profit_descending(self, scanner, clock):
        prices = [
            point(clock, "Raydium", 100),
            point(clock, "Orca", 104),
            point(clock, "Meteora", 108),
        ]

        opportunities = scanner.find_opportunities(prices, "RAY")

        assert len(opportunities) == 3
        profits = [o.profit_percent for o in opportunities]
        assert profits == sorted(profits, reverse=True)
        assert (opportunities[0].buy_venue, opportunities[0].sell_venue) == ("Raydium", "Meteora")

    def test_best_spread_uses_best_pair_prices(self, scanner, clock):
        prices = [
            point(clock, "Raydium", 100),
            point(clock, "Orca", 101),
            point(clock, "Meteora", 103),
        ]

        report = scanner.evaluate(prices, "RAY").best_spread

        assert report.buy_venue == "Raydium"
        assert report.sell_venue == "Meteora"
        assert report.buy_price == Decimal("100")
        assert report.sell_price == Decimal("103")

    def test_higher_slippage_never_increases_profit(self, clock):
        prices = [point(clock, "X", 100), point(clock, "Y", 110)]

        profits = []
        for slippage in (0.0, 0.005, 0.01, 0.02, 0.04):
            scanner = OpportunityScanner(clock=clock, slippage=slippage, min_profit_pct=0.0)
            profits.append(scanner.find_opportunities(prices, "RAY")[0].profit_percent)

        assert all(a >= b for a, b in zip(profits, profits[1:]))

    def test_single_point_gives_nothing(self, scanner, clock):
        result = scanner.evaluate([point(clock, "X", 100)], "RAY")

        assert result.opportunities == []
        assert result.best_spread is None

    def test_metrics(self, scanner, clock):
        scanner.evaluate([point(clock, "X", 100), point(clock, "Y", 105)], "RAY")
        scanner.evaluate([point(clock, "X", 100), point(clock, "Y", 100.1)], "RAY")

        assert scanner.metrics == {"evaluations": 2, "opportunities_found": 1}


class TestSpreadClassification:
    """Best-spread tagging against the 0.5% threshold with a 0.2 point margin."""

    def test_met(self, scanner, clock):
        report = scanner.evaluate([point(clock, "X", 100), point(clock, "Y", 105)], "RAY").best_spread
        assert report.classification == SpreadClass.MET

    def test_near_miss(self, scanner, clock):
        report = scanner.evaluate([point(clock, "X", 100), point(clock, "Y", 100.4)], "RAY").best_spread
        assert report.classification == SpreadClass.NEAR_MISS
        assert report.gap_percent == Decimal("0.1")

    def test_far(self, scanner, clock):
        report = scanner.evaluate([point(clock, "X", 100), point(clock, "Y", 100.1)], "RAY").best_spread
        assert report.classification == SpreadClass.FAR

    def test_classify_boundaries(self, scanner):
        assert scanner.classify(Decimal("0.5")) == SpreadClass.MET
        assert scanner.classify(Decimal("0.3")) == SpreadClass.NEAR_MISS
        assert scanner.classify(Decimal("0.29")) == SpreadClass.FAR


class TestOpportunityModel:

    def test_same_venue_rejected(self):
        with pytest.raises(ValueError):
            Opportunity(
                token_pair="RAY/SOL",
                buy_venue="Orca",
                sell_venue="Orca",
                buy_price=Decimal("1"),
                sell_price=Decimal("2"),
                profit_percent=Decimal("1"),
            )

    def test_buy_above_sell_rejected(self):
        with pytest.raises(ValueError):
            Opportunity(
                token_pair="RAY/SOL",
                buy_venue="Raydium",
                sell_venue="Orca",
                buy_price=Decimal("2"),
                sell_price=Decimal("1"),
                profit_percent=Decimal("1"),
            )

    def test_token_properties(self):
        opp = Opportunity(
            token_pair="BONK/SOL",
            buy_venue="Raydium",
            sell_venue="Orca",
            buy_price=Decimal("1"),
            sell_price=Decimal("2"),
            profit_percent=Decimal("1"),
        )
        assert opp.token == "BONK"
        assert opp.base_token == "SOL"
