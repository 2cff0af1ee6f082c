"""
Tests for the daily-loss circuit breaker and adaptive profit threshold.
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from conftest import FakeClock

from solarb.engine.risk import RiskManager


@pytest.fixture
def clock():
    return FakeClock(start=datetime(2026, 3, 10, 22, 0, tzinfo=timezone.utc))


@pytest.fixture
def risk(clock):
    manager = RiskManager(clock=clock)
    manager.max_daily_loss = Decimal("2")
    manager.base_threshold = Decimal("0.0167")
    manager.raised_threshold = Decimal("0.025")
    manager.failure_threshold = 3
    return manager


class TestCircuitBreaker:

    def test_halts_exactly_at_limit(self, risk):
        assert risk.record_loss(Decimal("1.5")) is False
        assert not risk.is_halted

        assert risk.record_loss(Decimal("0.5")) is True
        assert risk.is_halted
        assert risk.daily_loss == Decimal("2")

    def test_activation_reported_once(self, risk):
        assert risk.record_loss(Decimal("3")) is True
        assert risk.record_loss(Decimal("1")) is False
        assert risk.is_halted

    def test_non_positive_amounts_ignored(self, risk):
        assert risk.record_loss(Decimal("0")) is False
        assert risk.record_loss(Decimal("-1")) is False
        assert risk.daily_loss == Decimal("0")

    def test_profit_does_not_unhalt(self, risk):
        risk.record_loss(Decimal("2"))

        # Profits are never recorded against the tally
        risk.record_loss(Decimal("-5"))

        assert risk.is_halted

    def test_resets_at_utc_midnight(self, risk, clock):
        risk.record_loss(Decimal("2.5"))
        assert risk.is_halted

        clock.set_now(datetime(2026, 3, 10, 23, 59, 59, tzinfo=timezone.utc))
        assert risk.is_halted

        clock.set_now(datetime(2026, 3, 11, 0, 0, 0, tzinfo=timezone.utc))
        assert not risk.is_halted
        assert risk.daily_loss == Decimal("0")

    def test_losses_from_previous_day_do_not_accumulate(self, risk, clock):
        risk.record_loss(Decimal("1.5"))

        clock.set_now(datetime(2026, 3, 11, 1, 0, tzinfo=timezone.utc))
        assert risk.record_loss(Decimal("1.5")) is False
        assert risk.daily_loss == Decimal("1.5")

    def test_next_reset_at(self, risk):
        assert risk.next_reset_at() == datetime(2026, 3, 11, tzinfo=timezone.utc)


class TestAdaptiveThreshold:

    PAIR = "RAY/SOL"

    def test_default_threshold(self, risk):
        assert risk.effective_threshold(self.PAIR) == Decimal("0.0167")

    def test_raised_after_n_failures(self, risk):
        assert risk.record_sell_failure(self.PAIR) == 1
        assert risk.record_sell_failure(self.PAIR) == 2
        assert risk.effective_threshold(self.PAIR) == Decimal("0.0167")

        assert risk.record_sell_failure(self.PAIR) == 3
        assert risk.is_threshold_raised(self.PAIR)
        assert risk.effective_threshold(self.PAIR) == Decimal("0.025")

    def test_other_pairs_unaffected(self, risk):
        for _ in range(3):
            risk.record_sell_failure(self.PAIR)

        assert risk.effective_threshold("BONK/SOL") == Decimal("0.0167")

    def test_success_resets(self, risk):
        for _ in range(4):
            risk.record_sell_failure(self.PAIR)

        assert risk.record_sell_success(self.PAIR) is True
        assert risk.sell_failures(self.PAIR) == 0
        assert risk.effective_threshold(self.PAIR) == Decimal("0.0167")

    def test_success_below_threshold_is_not_a_revert(self, risk):
        risk.record_sell_failure(self.PAIR)

        assert risk.record_sell_success(self.PAIR) is False
        assert risk.sell_failures(self.PAIR) == 0

    def test_stats(self, risk):
        for _ in range(3):
            risk.record_sell_failure(self.PAIR)
        risk.record_loss(Decimal("0.25"))

        stats = risk.get_stats()

        assert stats["raised_pairs"] == [self.PAIR]
        assert stats["daily_loss"] == pytest.approx(0.25)
        assert stats["halted"] is False
