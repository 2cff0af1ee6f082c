"""
Risk posture for live execution: daily-loss circuit breaker and the
per-pair adaptive profit threshold.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Optional

from solarb.clock import Clock, get_clock
from solarb.config import get_config
from solarb.models import RiskState
from solarb.logger import get_logger


logger = get_logger("risk")


class RiskManager:
    """
    Owns RiskState on behalf of the execution engine.

    The breaker latches once the UTC day's losses reach the limit; profits
    never clear it. The first observation at or after the next UTC midnight
    resets both the tally and the latch.

    A pair whose sells fail repeatedly is held to a raised profit threshold
    until one of its sells succeeds.
    """

    def __init__(self, clock: Optional[Clock] = None):
        config = get_config()
        self._clock = clock or get_clock()

        self.max_daily_loss = Decimal(str(config.risk.max_daily_loss_usd))
        self.base_threshold = Decimal(str(config.trading.min_profit_pct))
        self.raised_threshold = Decimal(str(config.risk.raised_min_profit_pct))
        self.failure_threshold = config.risk.sell_failure_threshold

        self.state = RiskState(daily_loss_reset_at=self._day_start(self._clock.now()))

    # Circuit breaker

    @property
    def is_halted(self) -> bool:
        self._roll_day()
        return self.state.halted

    @property
    def daily_loss(self) -> Decimal:
        self._roll_day()
        return self.state.daily_loss

    def record_loss(self, amount: Decimal) -> bool:
        """
        Add a loss to today's tally.

        Returns:
            True if this loss activated the breaker
        """
        self._roll_day()
        if amount <= 0:
            return False

        self.state.daily_loss += amount
        if not self.state.halted and self.state.daily_loss >= self.max_daily_loss:
            self.state.halted = True
            logger.critical(
                "🛑 Circuit breaker activated",
                daily_loss=f"${self.state.daily_loss:.4f}",
                limit=f"${self.max_daily_loss:.2f}",
            )
            return True
        return False

    def _roll_day(self) -> None:
        today = self._day_start(self._clock.now())
        if self.state.daily_loss_reset_at is None or today > self.state.daily_loss_reset_at:
            if self.state.halted or self.state.daily_loss > 0:
                logger.info(
                    "Daily loss tally reset",
                    previous_loss=f"${self.state.daily_loss:.4f}",
                    was_halted=self.state.halted,
                )
            self.state.daily_loss = Decimal("0")
            self.state.halted = False
            self.state.daily_loss_reset_at = today

    @staticmethod
    def _day_start(moment: datetime) -> datetime:
        return moment.replace(hour=0, minute=0, second=0, microsecond=0)

    def next_reset_at(self) -> datetime:
        """When the breaker will next be cleared."""
        return self._day_start(self._clock.now()) + timedelta(days=1)

    # Adaptive threshold

    def sell_failures(self, pair_key: str) -> int:
        return self.state.consecutive_sell_failures.get(pair_key, 0)

    def is_threshold_raised(self, pair_key: str) -> bool:
        return self.sell_failures(pair_key) >= self.failure_threshold

    def effective_threshold(self, pair_key: str) -> Decimal:
        """Minimum profit for a pair, as a fraction."""
        if self.is_threshold_raised(pair_key):
            return self.raised_threshold
        return self.base_threshold

    def record_sell_failure(self, pair_key: str) -> int:
        count = self.sell_failures(pair_key) + 1
        self.state.consecutive_sell_failures[pair_key] = count
        if count == self.failure_threshold:
            logger.warning(
                "Raising profit threshold after repeated sell failures",
                pair=pair_key,
                failures=count,
                threshold=f"{self.raised_threshold:.2%}",
            )
        return count

    def record_sell_success(self, pair_key: str) -> bool:
        """
        Clear a pair's failure streak.

        Returns:
            True if the pair's threshold had been raised and is now reverted
        """
        was_raised = self.is_threshold_raised(pair_key)
        self.state.consecutive_sell_failures.pop(pair_key, None)
        if was_raised:
            logger.info("Profit threshold reverted", pair=pair_key)
        return was_raised

    def get_stats(self) -> Dict:
        return {
            "daily_loss": float(self.daily_loss),
            "halted": self.state.halted,
            "raised_pairs": [
                pair for pair in self.state.consecutive_sell_failures
                if self.is_threshold_raised(pair)
            ],
        }
