"""
Scan trigger scheduling.

Merges live swap signals and a fallback timer into scan invocations that
never overlap and never run more often than the cooldown allows.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from solarb.clock import Clock, get_clock
from solarb.config import get_config
from solarb.models import ScanGate
from solarb.logger import get_logger


logger = get_logger("scheduler")


class SchedulerState(Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    SCANNING = "scanning"


ScanPipeline = Callable[[str], Awaitable[Any]]


class ScanScheduler:
    """
    Runs the scan-and-trade pipeline at most once at a time.

    Flow:
    1. A push signal starts (or restarts) a short debounce timer
    2. When the debounce fires, a scan starts unless the cooldown since the
       last completed scan has not elapsed, in which case the trigger is dropped
    3. The fallback timer starts a scan regardless of signals; any scan
       start re-arms it
    4. Signals arriving while a scan runs are dropped, never queued
    """

    def __init__(
        self,
        pipeline: ScanPipeline,
        clock: Optional[Clock] = None,
        debounce_ms: Optional[int] = None,
        min_scan_interval_ms: Optional[int] = None,
        fallback_poll_ms: Optional[int] = None,
    ):
        config = get_config()
        self._pipeline = pipeline
        self._clock = clock or get_clock()

        self.debounce_seconds = (
            config.scan.debounce_ms if debounce_ms is None else debounce_ms
        ) / 1000
        self.min_scan_interval = (
            config.scan.min_scan_interval_ms if min_scan_interval_ms is None else min_scan_interval_ms
        ) / 1000
        self.fallback_interval = (
            config.scan.fallback_poll_ms if fallback_poll_ms is None else fallback_poll_ms
        ) / 1000

        self.gate = ScanGate()
        self._fallback_handle: Optional[Any] = None
        self._scan_task: Optional[asyncio.Task] = None
        self._is_running = False

        # Counters
        self._signals_received = 0
        self._signals_dropped = 0
        self._triggers_throttled = 0
        self._scans_started = 0
        self._scans_completed = 0
        self._scans_failed = 0

    @property
    def state(self) -> SchedulerState:
        if self.gate.scan_in_progress:
            return SchedulerState.SCANNING
        if self.gate.pending_debounce is not None:
            return SchedulerState.DEBOUNCING
        return SchedulerState.IDLE

    @property
    def is_running(self) -> bool:
        return self._is_running

    def start(self) -> None:
        """Arm the fallback timer and begin accepting signals."""
        if self._is_running:
            return
        self._is_running = True
        self._arm_fallback()
        logger.info(
            "Scan scheduler started",
            debounce_ms=int(self.debounce_seconds * 1000),
            cooldown_s=self.min_scan_interval,
            fallback_s=self.fallback_interval,
        )

    async def stop(self) -> None:
        """Cancel both timers and wait for an in-flight scan to finish."""
        self._is_running = False
        self._cancel_debounce()
        if self._fallback_handle is not None:
            self._fallback_handle.cancel()
            self._fallback_handle = None

        task = self._scan_task
        if task is not None and not task.done():
            logger.info("Waiting for in-flight scan to finish")
            await asyncio.shield(task)
        logger.info("Scan scheduler stopped", **self.get_stats())

    def on_signal(self, source: str = "event") -> None:
        """Handle a push signal from the live event stream."""
        if not self._is_running:
            return
        self._signals_received += 1

        if self.gate.scan_in_progress:
            self._signals_dropped += 1
            logger.debug("Signal dropped, scan in progress", source=source)
            return

        # Restarting the timer coalesces a burst into one trigger
        self._cancel_debounce()
        self.gate.pending_debounce = self._clock.call_later(
            self.debounce_seconds, self._on_debounce_elapsed, source
        )

    async def trigger_now(self, reason: str = "manual") -> bool:
        """
        Run a scan immediately and wait for it.

        Returns False without scanning if a scan is already in flight.
        """
        if self.gate.scan_in_progress:
            logger.debug("Immediate scan refused, scan in progress", reason=reason)
            return False
        task = self._launch(reason)
        # Cancelling the caller must not abort the scan itself
        await asyncio.shield(task)
        return True

    def _on_debounce_elapsed(self, source: str) -> None:
        self.gate.pending_debounce = None
        if not self._is_running:
            return

        if self.gate.scan_in_progress:
            self._signals_dropped += 1
            return

        if self.gate.last_scan_at is not None:
            since_last = self._clock.time() - self.gate.last_scan_at
            if since_last < self.min_scan_interval:
                self._triggers_throttled += 1
                logger.debug(
                    "Trigger dropped, cooldown active",
                    source=source,
                    since_last_s=round(since_last, 2),
                )
                return

        self._launch(f"event:{source}")

    def _on_fallback_elapsed(self) -> None:
        self._fallback_handle = None
        if not self._is_running:
            return

        if self.gate.scan_in_progress:
            self._arm_fallback()
            return

        logger.debug("Fallback timer fired")
        self._launch("fallback")

    def _launch(self, trigger: str) -> asyncio.Task:
        self.gate.scan_in_progress = True
        self._cancel_debounce()
        if self._is_running:
            self._arm_fallback()

        self._scans_started += 1
        self._scan_task = asyncio.ensure_future(self._run_scan(trigger))
        return self._scan_task

    async def _run_scan(self, trigger: str) -> None:
        logger.debug("Scan started", trigger=trigger)
        try:
            await self._pipeline(trigger)
            self._scans_completed += 1
        except Exception as e:
            self._scans_failed += 1
            logger.error(f"Scan pipeline error: {e}", trigger=trigger, exc_info=True)
        finally:
            self.gate.last_scan_at = self._clock.time()
            self.gate.scan_in_progress = False

    def _arm_fallback(self) -> None:
        if self._fallback_handle is not None:
            self._fallback_handle.cancel()
        self._fallback_handle = self._clock.call_later(
            self.fallback_interval, self._on_fallback_elapsed
        )

    def _cancel_debounce(self) -> None:
        if self.gate.pending_debounce is not None:
            self.gate.pending_debounce.cancel()
            self.gate.pending_debounce = None

    def get_stats(self) -> Dict[str, int]:
        return {
            "signals_received": self._signals_received,
            "signals_dropped": self._signals_dropped,
            "triggers_throttled": self._triggers_throttled,
            "scans_started": self._scans_started,
            "scans_completed": self._scans_completed,
            "scans_failed": self._scans_failed,
        }
