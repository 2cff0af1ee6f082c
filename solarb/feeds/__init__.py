"""
Live event feeds that trigger scans.
"""

from solarb.feeds.swap_monitor import SwapEventMonitor

__all__ = [
    "SwapEventMonitor",
]
