"""
Scheduled performance reports: a daily summary late in the UTC day and a
biweekly performance report.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from solarb.clock import Clock, get_clock
from solarb.logger import get_logger, trade_logger


logger = get_logger("reports")


class ReportScheduler:
    """Checks once a minute whether a report is due and sends it."""

    DAILY_SUMMARY_HOUR = 23
    BIWEEKLY_PERIOD = timedelta(days=14)
    CHECK_INTERVAL_SECONDS = 60

    def __init__(
        self,
        ledger,
        notifier,
        balance_provider: Callable[[], Decimal],
        clock: Optional[Clock] = None,
    ):
        self.ledger = ledger
        self.notifier = notifier
        self._balance = balance_provider
        self._clock = clock or get_clock()

        self.last_daily_summary: Optional[date] = None
        # First biweekly report goes out two weeks after startup
        self.last_biweekly_report: datetime = self._clock.now()

    def should_send_daily_summary(self, now: datetime) -> bool:
        if now.hour != self.DAILY_SUMMARY_HOUR:
            return False
        return self.last_daily_summary != now.date()

    def should_send_biweekly_report(self, now: datetime) -> bool:
        return now - self.last_biweekly_report >= self.BIWEEKLY_PERIOD

    async def check(self) -> None:
        """Send whichever reports are due."""
        now = self._clock.now()
        try:
            if self.should_send_daily_summary(now):
                logger.info("Sending daily summary")
                stats = self.ledger.get_daily_stats(now.date())
                balance = self._balance()
                trade_logger.log_daily_summary(
                    trades=stats["total_trades"],
                    win_rate=stats["win_rate"],
                    pnl=stats["total_profit"],
                    balance=float(balance),
                )
                await self.notifier.notify_daily_summary(stats, balance)
                self.last_daily_summary = now.date()

            if self.should_send_biweekly_report(now):
                logger.info("Sending biweekly report")
                summary = self.ledger.get_performance_summary()
                period = self.ledger.get_period_stats(now - self.BIWEEKLY_PERIOD, now)
                best_pairs = period.get("best_pairs") or []
                summary["best_pair"] = best_pairs[0][0] if best_pairs else None
                await self.notifier.notify_biweekly_report(summary)
                self.last_biweekly_report = now

        except Exception as e:
            logger.error(f"Error in scheduled reports: {e}")

    async def run_forever(self, is_running: Callable[[], bool]) -> None:
        while is_running():
            await self.check()
            await self._clock.sleep(self.CHECK_INTERVAL_SECONDS)
