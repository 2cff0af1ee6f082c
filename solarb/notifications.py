"""
Notification system for trade alerts.
Supports Discord webhooks and Telegram bots.
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

import httpx

from solarb.config import get_config
from solarb.models import ExecutionResult, SpreadReport
from solarb.logger import get_logger


logger = get_logger("notifications")


def solscan_link(signature: Optional[str]) -> str:
    if not signature or signature.startswith("dry-run"):
        return signature or "-"
    return f"https://solscan.io/tx/{signature}"


class NotificationService:
    """
    Send notifications about trading activity.

    Supports:
    - Discord webhooks
    - Telegram bots

    Every method swallows delivery failures after logging them; alerting
    must never interrupt trading.
    """

    def __init__(self):
        self.config = get_config()
        self._client: Optional[httpx.AsyncClient] = None

    async def connect(self) -> None:
        """Initialize HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=10.0)

    async def disconnect(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def is_enabled(self) -> bool:
        return self.config.monitoring.enable_notifications

    async def send_discord(self, message: str, embed: Optional[dict] = None) -> bool:
        """Send message to Discord webhook."""
        webhook_url = self.config.monitoring.discord_webhook_url
        if not webhook_url or not self._client:
            return False

        try:
            payload = {"content": message}
            if embed:
                payload["embeds"] = [embed]

            response = await self._client.post(webhook_url, json=payload)
            return response.status_code in (200, 204)
        except Exception as e:
            logger.error(f"Discord notification failed: {e}")
            return False

    async def send_telegram(self, message: str) -> bool:
        """Send message to Telegram."""
        bot_token = self.config.monitoring.telegram_bot_token
        chat_id = self.config.monitoring.telegram_chat_id

        if not bot_token or not chat_id or not self._client:
            return False

        try:
            url = f"https://api.telegram.org/bot{bot_token}/sendMessage"
            payload = {
                "chat_id": chat_id,
                "text": message,
                "parse_mode": "HTML",
            }

            response = await self._client.post(url, json=payload)
            return response.status_code == 200
        except Exception as e:
            logger.error(f"Telegram notification failed: {e}")
            return False

    async def _broadcast(self, message: str, embed: Optional[dict] = None) -> None:
        if not self.is_enabled:
            return
        await asyncio.gather(
            self.send_discord("" if embed else message, embed=embed),
            self.send_telegram(message.replace("**", "")),
        )

    @staticmethod
    def _embed(title: str, color: int, fields: List[Dict], description: Optional[str] = None) -> dict:
        embed = {
            "title": title,
            "color": color,
            "fields": fields,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if description:
            embed["description"] = description
        return embed

    async def notify(self, message: str) -> None:
        """Send a plain text alert."""
        await self._broadcast(message)

    async def notify_startup(self, balance_usd: Decimal, dry_run: bool, pairs: List[str]) -> None:
        mode = "DRY RUN" if dry_run else "LIVE"
        message = (
            f"🚀 **Arbitrage bot started** ({mode})\n"
            f"Balance: ${float(balance_usd):.2f}\n"
            f"Pairs: {', '.join(pairs)}"
        )
        embed = self._embed("🚀 Arbitrage Bot Started", 0x3498db, [
            {"name": "Mode", "value": mode, "inline": True},
            {"name": "Balance", "value": f"${float(balance_usd):.2f}", "inline": True},
            {"name": "Pairs", "value": ", ".join(pairs) or "-", "inline": False},
        ])
        await self._broadcast(message, embed)

    async def notify_trade(self, result: ExecutionResult) -> None:
        """Notify about a completed arbitrage trade."""
        opp = result.opportunity
        profit = float(result.realized_profit)
        emoji = "🟢" if profit >= 0 else "🔴"
        color = 0x00ff00 if profit >= 0 else 0xff0000
        tag = " (dry run)" if result.simulated else ""

        message = (
            f"{emoji} **Trade executed{tag}**: {opp.token_pair}\n"
            f"Buy {opp.buy_venue} / Sell {opp.sell_venue}\n"
            f"Size: ${float(result.amount_usd):.2f}\n"
            f"Profit: ${profit:+.4f} ({float(result.profit_percent):.3f}%)\n"
            f"Buy TX: {solscan_link(result.buy_ref)}\n"
            f"Sell TX: {solscan_link(result.sell_ref)}"
        )
        embed = self._embed(f"{emoji} Trade Executed{tag}", color, [
            {"name": "Pair", "value": opp.token_pair, "inline": True},
            {"name": "Route", "value": f"{opp.buy_venue} → {opp.sell_venue}", "inline": True},
            {"name": "Size", "value": f"${float(result.amount_usd):.2f}", "inline": True},
            {"name": "Profit", "value": f"${profit:+.4f}", "inline": True},
            {"name": "Profit %", "value": f"{float(result.profit_percent):.3f}%", "inline": True},
            {"name": "Buy TX", "value": solscan_link(result.buy_ref), "inline": False},
            {"name": "Sell TX", "value": solscan_link(result.sell_ref), "inline": False},
        ])
        await self._broadcast(message, embed)

    async def notify_partial_failure(self, result: ExecutionResult) -> None:
        """Buy landed but every sell attempt failed; tokens are stranded."""
        opp = result.opportunity
        message = (
            f"⚠️ **Partial trade**: BUY succeeded but SELL failed for {opp.token_pair}\n"
            f"Buy TX: {solscan_link(result.buy_ref)}\n"
            f"Attempts: {result.sell_attempts}\n"
            f"Trade amount: ${float(result.amount_usd):.2f}\n"
            f"Please investigate."
        )
        await self._broadcast(message, self._embed("⚠️ Partial Trade", 0xff9900, [], message))

    async def notify_threshold_raised(self, pair: str, failures: int, threshold: Decimal) -> None:
        await self.notify(
            f"⚠️ Adaptive: raising required profit to {float(threshold) * 100:.2f}% for {pair} "
            f"after {failures} consecutive sell failures."
        )

    async def notify_threshold_reverted(self, pair: str, threshold: Decimal) -> None:
        await self.notify(
            f"✅ Sell succeeded for {pair}, reverting required profit to {float(threshold) * 100:.2f}%"
        )

    async def notify_circuit_breaker(self, daily_loss: Decimal, limit: Decimal) -> None:
        message = (
            f"🛑 **Circuit breaker triggered**\n"
            f"Daily loss ${float(daily_loss):.2f} >= limit ${float(limit):.2f}\n"
            f"Trading halted until 00:00 UTC."
        )
        await self._broadcast(message, self._embed("🛑 Circuit Breaker", 0xff0000, [], message))

    async def notify_near_miss(self, report: SpreadReport) -> None:
        await self.notify(
            f"👀 Near miss on {report.token}: {float(report.best_spread_percent):.3f}% "
            f"({report.buy_venue} → {report.sell_venue}), "
            f"threshold {float(report.threshold_percent):.3f}%"
        )

    async def notify_quote_discrepancy(
        self, pair: str, quoted_usd: Decimal, realized_usd: Decimal, result: ExecutionResult
    ) -> None:
        diff = abs(realized_usd - quoted_usd)
        await self.notify(
            f"⚠️ Profit discrepancy for {pair}: quoted=${float(quoted_usd):.4f} "
            f"realized=${float(realized_usd):.4f} diff=${float(diff):.4f}\n"
            f"Buy TX: {solscan_link(result.buy_ref)}\nSell TX: {solscan_link(result.sell_ref)}"
        )

    async def notify_daily_summary(self, stats: Dict, balance_usd: Decimal) -> None:
        """Send daily trading summary."""
        pnl = float(stats.get("total_profit", 0))
        trades = int(stats.get("total_trades", 0))
        wins = int(stats.get("winning_trades", 0))
        win_rate = wins / trades if trades else 0.0
        emoji = "📈" if pnl >= 0 else "📉"
        color = 0x00ff00 if pnl >= 0 else 0xff0000

        message = (
            f"{emoji} **Daily Summary**\n"
            f"Trades: {trades}\n"
            f"Win Rate: {win_rate:.1%}\n"
            f"P&L: ${pnl:+.2f}\n"
            f"Opportunities: {int(stats.get('opportunities', 0))}\n"
            f"Balance: ${float(balance_usd):.2f}"
        )
        embed = self._embed(f"{emoji} Daily Summary", color, [
            {"name": "Trades", "value": str(trades), "inline": True},
            {"name": "Win Rate", "value": f"{win_rate:.1%}", "inline": True},
            {"name": "P&L", "value": f"${pnl:+.2f}", "inline": True},
            {"name": "Opportunities", "value": str(int(stats.get("opportunities", 0))), "inline": True},
            {"name": "Balance", "value": f"${float(balance_usd):.2f}", "inline": True},
        ])
        await self._broadcast(message, embed)

    async def notify_biweekly_report(self, summary: Dict) -> None:
        """Send the two-week performance report."""
        ret = float(summary.get("return_percent", 0))
        emoji = "📈" if ret >= 0 else "📉"
        message = (
            f"{emoji} **Biweekly Report**\n"
            f"Starting: ${float(summary.get('starting_balance', 0)):.2f}\n"
            f"Current: ${float(summary.get('current_balance', 0)):.2f}\n"
            f"Return: {ret:+.2f}%\n"
            f"Trades: {int(summary.get('total_trades', 0))} "
            f"(win rate {float(summary.get('win_rate', 0)):.1%})\n"
            f"Best pair: {summary.get('best_pair') or '-'}"
        )
        await self._broadcast(message, self._embed(f"{emoji} Biweekly Report", 0x9b59b6, [], message))

    async def notify_error(self, error: str, component: str = "bot") -> None:
        """Notify about an error."""
        message = f"⚠️ **Error in {component}**\n{error[:500]}"
        embed = self._embed(f"⚠️ Error in {component}", 0xff9900, [], error[:1000])
        await self._broadcast(message, embed)

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()


# Global notification service
_notification_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    """Get or create the global notification service."""
    global _notification_service
    if _notification_service is None:
        _notification_service = NotificationService()
    return _notification_service
