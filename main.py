#!/usr/bin/env python3
"""
Solana DEX Arbitrage Bot

Watches the same tokens on several Solana DEXes and, when one venue prices a
token far enough below another, buys on the cheap venue and sells on the
expensive one through Jupiter.

Usage:
    python main.py run          # Start the bot
    python main.py scan         # One read-only scan of current spreads
    python main.py sweep        # Sell leftover token balances back to SOL
    python main.py status       # Show current status
    python main.py history      # Show trade history
"""

import asyncio
import signal
import sys
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box

from solarb.config import get_config
from solarb.logger import setup_logging, get_logger
from solarb.database import get_database

load_dotenv()

# Initialize
app = typer.Typer(
    name="solana-dex-arb",
    help="Solana Cross-DEX Arbitrage Bot",
    add_completion=False,
)
console = Console()
logger = None

# Global bot reference for signal handling
_bot = None


def setup():
    """Initialize logging and configuration."""
    global logger
    setup_logging()
    logger = get_logger("main")


@app.command()
def run(
    dry_run: bool = typer.Option(True, "--dry-run/--live", help="Simulate trades without submitting"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt (for automated deployments)"),
):
    """
    Start the arbitrage bot.

    By default runs in dry-run mode. Use --live for real trading.
    """
    config = get_config()
    config.development.dry_run = dry_run
    if debug:
        config.development.debug_mode = True
        config.monitoring.log_level = "DEBUG"
    setup()

    console.print(Panel.fit(
        "[bold green]⚡ Solana DEX Arbitrage Bot[/bold green]\n\n"
        f"Mode: [yellow]{'Dry Run' if dry_run else '🔴 LIVE TRADING'}[/yellow]\n"
        f"Pairs: [cyan]{', '.join(config.trading.pairs)}[/cyan]\n"
        f"Venues: [cyan]{', '.join(config.prices.dexes)}[/cyan]\n"
        f"Min Profit: [cyan]{config.trading.min_profit_pct:.2%}[/cyan]\n"
        f"Max Trade: [cyan]${config.risk.max_trade_amount_usd:.2f}[/cyan]",
        title="Configuration",
        border_style="green",
    ))

    if not config.solana.is_configured():
        console.print("[red]Error: WALLET_PRIVATE_KEY and SOLANA_RPC_URL must be set[/red]")
        raise typer.Exit(1)

    if not dry_run and not yes:
        confirm = typer.confirm(
            "⚠️  You are about to start LIVE trading with real money. Continue?",
            default=False,
        )
        if not confirm:
            console.print("[yellow]Aborted.[/yellow]")
            raise typer.Exit()

    from solarb.engine.arbitrage_bot import ArbitrageBot

    global _bot
    try:
        _bot = ArbitrageBot()
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    def signal_handler(sig, frame):
        console.print("\n[yellow]Shutting down gracefully...[/yellow]")
        if _bot:
            asyncio.create_task(_bot.stop())

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        asyncio.run(_bot.run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        if debug:
            raise
        raise typer.Exit(1)


@app.command()
def scan(
    token: Optional[str] = typer.Option(None, "--token", "-t", help="Scan a single token (e.g. RAY)"),
):
    """Fetch venue prices once and show spreads. Read-only, no wallet needed."""
    setup()

    from solarb.engine.opportunity_scanner import OpportunityScanner
    from solarb.prices.aggregator import PriceAggregator

    config = get_config()
    tokens = [token.upper()] if token else config.trading.tokens

    async def fetch_all():
        aggregator = PriceAggregator()
        scanner = OpportunityScanner()
        await aggregator.connect()
        try:
            results = {}
            for symbol in tokens:
                prices = await aggregator.get_prices(symbol)
                results[symbol] = (prices, scanner.evaluate(prices, symbol))
            return results
        finally:
            await aggregator.disconnect()

    console.print("[dim]Fetching prices...[/dim]")

    try:
        results = asyncio.run(fetch_all())
    except Exception as e:
        console.print(f"[red]Error fetching prices: {e}[/red]")
        raise typer.Exit(1)

    for symbol, (prices, result) in results.items():
        table = Table(title=f"💱 {symbol}/{config.trading.base_token}", box=box.ROUNDED)
        table.add_column("Venue", style="cyan")
        table.add_column("Price (SOL)", justify="right")
        table.add_column("Source", style="dim")
        table.add_column("Liquidity", justify="right")

        for point in sorted(prices, key=lambda p: p.price):
            table.add_row(
                point.venue,
                f"{point.price:.10f}",
                point.source,
                f"${point.liquidity_usd:,.0f}" if point.liquidity_usd is not None else "-",
            )
        console.print(table)

        report = result.best_spread
        if report is None:
            console.print("[dim]Not enough venues to compare[/dim]\n")
            continue

        style = {"met": "green", "near_miss": "yellow"}.get(report.classification.value, "dim")
        console.print(
            f"Best spread: [{style}]{report.best_spread_percent:.3f}%[/{style}] "
            f"({report.buy_venue} → {report.sell_venue}), "
            f"threshold {report.threshold_percent:.3f}%"
        )
        for opp in result.opportunities:
            console.print(
                f"  [green]✓[/green] buy {opp.buy_venue} / sell {opp.sell_venue}: "
                f"{opp.profit_percent:.3f}% after slippage"
            )
        console.print()


@app.command()
def sweep():
    """Sell leftover token balances back to SOL once."""
    setup()

    from solarb.engine.execution_engine import ExecutionEngine
    from solarb.engine.sweeper import AutoSweeper
    from solarb.notifications import get_notification_service
    from solarb.trading.jupiter_client import JupiterClient

    async def run_sweep():
        router = JupiterClient()
        notifier = get_notification_service()
        await router.connect()
        await notifier.connect()
        try:
            engine = ExecutionEngine(router, get_database(), notifier)
            await engine.init()
            return await AutoSweeper(engine).sweep_once()
        finally:
            await router.disconnect()
            await notifier.disconnect()

    try:
        outcomes = asyncio.run(run_sweep())
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if not outcomes:
        console.print("[dim]No token balances found[/dim]")
        return

    from solarb.config import get_token_symbol

    table = Table(title="🧹 Sweep", box=box.ROUNDED)
    table.add_column("Token", style="cyan")
    table.add_column("Mint", style="dim")
    table.add_column("Outcome")
    for mint, outcome in outcomes.items():
        table.add_row(get_token_symbol(mint) or "?", mint[:8] + "...", outcome.value)
    console.print(table)


@app.command()
def status():
    """Show current balance and performance."""
    setup()

    db = get_database()
    summary = db.get_performance_summary()
    today = db.get_daily_stats()

    # Overall performance table
    table = Table(title="📊 Performance Summary", box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Starting Balance", f"${summary.get('starting_balance', 0):.2f}")
    table.add_row("Current Balance", f"${summary.get('current_balance', 0):.2f}")
    table.add_row("Return", f"{summary.get('return_percent', 0):+.2f}%")
    table.add_row("Total Trades", str(summary.get("total_trades", 0)))
    table.add_row("Partial Failures", str(summary.get("partial_failures", 0)))
    table.add_row("Win Rate", f"{summary.get('win_rate', 0):.1%}")
    table.add_row("Total Profit", f"${summary.get('total_profit', 0):.4f}")
    table.add_row("Avg Profit/Trade", f"${summary.get('avg_profit_per_trade', 0):.4f}")

    console.print(table)

    # Today's stats
    if today.get("total_trades") or today.get("opportunities"):
        console.print()
        today_table = Table(title=f"📅 Today ({today['date']})", box=box.ROUNDED)
        today_table.add_column("Metric", style="cyan")
        today_table.add_column("Value", style="green")

        today_table.add_row("Trades", str(today.get("total_trades", 0)))
        today_table.add_row("Win Rate", f"{today.get('win_rate', 0):.1%}")
        today_table.add_row("Profit", f"${today.get('total_profit', 0):.4f}")
        today_table.add_row("Opportunities", str(today.get("opportunities", 0)))

        console.print(today_table)
    else:
        console.print("[dim]No activity today[/dim]")


@app.command()
def history(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of trades to show"),
    pair: Optional[str] = typer.Option(None, "--pair", "-p", help="Filter by pair (e.g. RAY/SOL)"),
):
    """Show recent trade history."""
    setup()

    db = get_database()
    trades = db.get_trades(pair=pair.upper() if pair else None, limit=limit)

    if not trades:
        console.print("[dim]No trades found[/dim]")
        return

    table = Table(title="📜 Trade History", box=box.ROUNDED)
    table.add_column("Time", style="dim")
    table.add_column("Pair", style="cyan")
    table.add_column("Route")
    table.add_column("Size", justify="right")
    table.add_column("Profit", justify="right")
    table.add_column("Status")
    table.add_column("Notes", style="dim")

    for trade in trades:
        profit = trade["profit_usd"]
        profit_style = "green" if profit > 0 else "red" if profit < 0 else "white"
        status_str = trade["status"] + (" (dry)" if trade["simulated"] else "")

        table.add_row(
            trade["timestamp"].strftime("%m/%d %H:%M") if trade["timestamp"] else "",
            trade["pair"],
            f"{trade['buy_exchange']} → {trade['sell_exchange']}",
            f"${trade['amount']:.2f}",
            f"[{profit_style}]${profit:+.4f}[/{profit_style}]",
            status_str,
            trade["notes"] or "",
        )

    console.print(table)


@app.command()
def config():
    """Show current configuration."""
    setup()

    cfg = get_config()

    console.print(Panel.fit(
        f"[bold]Trading Parameters[/bold]\n"
        f"  Pairs: {', '.join(cfg.trading.pairs)}\n"
        f"  Starting Capital: ${cfg.trading.starting_capital:.2f}\n"
        f"  Slippage Tolerance: {cfg.trading.slippage_tolerance:.2%}\n"
        f"  Min Profit: {cfg.trading.min_profit_pct:.2%}\n"
        f"  Min Profit (absolute): ${cfg.trading.min_profit_absolute:.2f}\n"
        f"  Max Opportunities/Scan: {cfg.trading.max_opportunities_per_scan}\n\n"
        f"[bold]Risk Management[/bold]\n"
        f"  Max Trade: ${cfg.risk.max_trade_amount_usd:.2f}\n"
        f"  Daily Loss Limit: ${cfg.risk.max_daily_loss_usd:.2f}\n"
        f"  Sell Retries: {cfg.risk.sell_retry_count} (backoff {cfg.risk.sell_retry_backoff_seconds}s)\n"
        f"  Raised Min Profit: {cfg.risk.raised_min_profit_pct:.2%} "
        f"after {cfg.risk.sell_failure_threshold} sell failures\n"
        f"  SOL Gas Reserve: {cfg.risk.sol_gas_reserve} SOL\n\n"
        f"[bold]Scanning[/bold]\n"
        f"  Venues: {', '.join(cfg.prices.dexes)}\n"
        f"  Debounce: {cfg.scan.debounce_ms}ms\n"
        f"  Cooldown: {cfg.scan.min_scan_interval_ms}ms\n"
        f"  Fallback Poll: {cfg.scan.fallback_poll_ms}ms\n"
        f"  Event Feed: {'Yes' if cfg.solana.helius_rpc_url else 'No (poll only)'}\n\n"
        f"[bold]Mode[/bold]\n"
        f"  Dry Run: {'Yes' if cfg.development.dry_run else 'No'}\n"
        f"  Auto Sweep: {'Yes' if cfg.sweep.enable_sweep else 'No'}\n"
        f"  Debug Mode: {'Yes' if cfg.development.debug_mode else 'No'}",
        title="⚙️ Configuration",
        border_style="blue",
    ))


@app.command()
def version():
    """Show version information."""
    from solarb import __version__

    console.print(Panel.fit(
        f"[bold]Solana DEX Arbitrage Bot[/bold]\n"
        f"Version: {__version__}\n"
        f"Python: {sys.version.split()[0]}",
        border_style="blue",
    ))


if __name__ == "__main__":
    app()
