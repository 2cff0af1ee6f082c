"""
Core opportunity detection, scheduling and execution engine.
"""

from solarb.engine.opportunity_scanner import OpportunityScanner
from solarb.engine.scan_scheduler import ScanScheduler, SchedulerState
from solarb.engine.risk import RiskManager
from solarb.engine.execution_engine import ExecutionEngine
from solarb.engine.sweeper import AutoSweeper, SweepOutcome
from solarb.engine.arbitrage_bot import ArbitrageBot

__all__ = [
    "OpportunityScanner",
    "ScanScheduler",
    "SchedulerState",
    "RiskManager",
    "ExecutionEngine",
    "AutoSweeper",
    "SweepOutcome",
    "ArbitrageBot",
]
