"""
Structured logging configuration for the Solana DEX Arbitrage Bot.
Uses structlog for rich, structured logging output.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from rich.console import Console
from rich.logging import RichHandler

from solarb.config import get_config


# Rich console for pretty output
console = Console()


def add_timestamp(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Add ISO timestamp to log events."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def add_component(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Ensure component is present in log events."""
    if "component" not in event_dict:
        event_dict["component"] = "main"
    return event_dict


def setup_logging() -> None:
    """Configure structured logging for the application."""
    config = get_config()
    log_level = getattr(logging, config.monitoring.log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=console,
                rich_tracebacks=True,
                show_time=True,
                show_path=False,
            )
        ],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    processors = [
        structlog.stdlib.filter_by_level,
        add_timestamp,
        add_component,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if config.development.debug_mode:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance bound to a specific component."""
    # Lazy proxy: modules can bind at import time before setup_logging runs
    return structlog.get_logger(component=component)


class TradeLogger:
    """Specialized logger for trade activity."""

    def __init__(self):
        self.logger = get_logger("trades")

    def log_opportunity_detected(
        self,
        token_pair: str,
        buy_venue: str,
        sell_venue: str,
        profit_percent: float,
    ) -> None:
        """Log detection of a trading opportunity."""
        self.logger.info(
            "opportunity_detected",
            pair=token_pair,
            buy=buy_venue,
            sell=sell_venue,
            profit=f"{profit_percent:.3f}%",
        )

    def log_best_spread(
        self,
        token: str,
        spread_percent: float,
        threshold_percent: float,
        classification: str,
        buy_venue: Optional[str] = None,
        sell_venue: Optional[str] = None,
    ) -> None:
        """Log the widest raw spread seen for a token during a scan."""
        self.logger.info(
            "best_spread",
            token=token,
            spread=f"{spread_percent:.3f}%",
            threshold=f"{threshold_percent:.3f}%",
            classification=classification,
            buy=buy_venue,
            sell=sell_venue,
        )

    def log_leg_submitted(
        self,
        token_pair: str,
        leg: str,
        signature: Optional[str],
        attempt: int = 1,
    ) -> None:
        """Log a buy or sell leg submission."""
        self.logger.info(
            "leg_submitted",
            pair=token_pair,
            leg=leg,
            signature=signature,
            attempt=attempt,
        )

    def log_trade_finished(
        self,
        token_pair: str,
        status: str,
        profit_usd: float,
        reason: Optional[str] = None,
    ) -> None:
        """Log the outcome of an execution attempt."""
        emoji = "🟢" if profit_usd > 0 else "🔴" if profit_usd < 0 else "⚪"
        self.logger.info(
            f"{emoji} trade_finished",
            pair=token_pair,
            status=status,
            profit=f"${profit_usd:.4f}",
            reason=reason,
        )

    def log_daily_summary(
        self,
        trades: int,
        win_rate: float,
        pnl: float,
        balance: float,
    ) -> None:
        """Log daily trading summary."""
        self.logger.info(
            "📊 daily_summary",
            total_trades=trades,
            win_rate=f"{win_rate:.1%}",
            net_pnl=f"${pnl:.2f}",
            balance=f"${balance:.2f}",
        )


# Global logger instance
trade_logger = TradeLogger()
