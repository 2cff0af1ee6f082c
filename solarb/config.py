"""
Configuration management for the Solana DEX Arbitrage Bot.
Uses Pydantic for validation and type safety.
"""

from pathlib import Path
from typing import Dict, List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Solana mainnet mint addresses for every symbol the bot can trade
TOKEN_MINTS: Dict[str, str] = {
    "SOL": "So11111111111111111111111111111111111111112",
    "USDC": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
    "USDT": "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB",
    "RAY": "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R",
    "BONK": "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263",
    "JUP": "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN",
    "ORCA": "orcaEKTdK7LKz57vaAYr9QeNsVEPfiu6QeMU1kektZE",
}

LAMPORTS_PER_SOL = 1_000_000_000


def get_token_mint(symbol: str) -> Optional[str]:
    """Look up the mint address for a token symbol."""
    return TOKEN_MINTS.get(symbol.upper())


def get_token_symbol(mint: str) -> Optional[str]:
    """Reverse lookup of a mint address."""
    for symbol, token_mint in TOKEN_MINTS.items():
        if token_mint == mint:
            return symbol
    return None


class SolanaConfig(BaseSettings):
    """Solana RPC and wallet configuration."""

    rpc_url: str = Field("https://api.mainnet-beta.solana.com", alias="SOLANA_RPC_URL")
    # Helius is used for websocket log subscriptions
    helius_rpc_url: str = Field("", alias="HELIUS_RPC_URL")
    # Base58 string or JSON byte array
    wallet_private_key: str = Field("", alias="WALLET_PRIVATE_KEY")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def is_configured(self) -> bool:
        """Check if wallet credentials are configured for live trading."""
        return bool(self.rpc_url and self.wallet_private_key)


class TradingConfig(BaseSettings):
    """Trading parameters configuration."""

    starting_capital: float = Field(20.0, alias="STARTING_CAPITAL")
    slippage_tolerance: float = Field(0.04, alias="SLIPPAGE_TOLERANCE")
    min_profit_pct: float = Field(0.0167, alias="MIN_PROFIT_PERCENT")
    min_profit_absolute: float = Field(0.17, alias="MIN_PROFIT_ABSOLUTE")
    balance_fraction: float = Field(0.95, alias="BALANCE_FRACTION")
    max_opportunities_per_scan: int = Field(3, alias="MAX_OPPORTUNITIES_PER_SCAN")
    base_token: str = Field("SOL", alias="BASE_TOKEN")
    monitor_pairs: str = Field("RAY/SOL,BONK/SOL,JUP/SOL,ORCA/SOL", alias="MONITOR_PAIRS")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("slippage_tolerance", "min_profit_pct", "balance_fraction")
    @classmethod
    def validate_percentage(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("Percentage must be between 0.0 and 1.0")
        return v

    @property
    def pairs(self) -> List[str]:
        return [p.strip() for p in self.monitor_pairs.split(",") if p.strip()]

    @property
    def tokens(self) -> List[str]:
        """Tokens traded against the base token, e.g. RAY for RAY/SOL."""
        return [pair.split("/")[0] for pair in self.pairs]


class RiskConfig(BaseSettings):
    """Live trading safety limits."""

    max_trade_amount_usd: float = Field(10.0, alias="MAX_TRADE_AMOUNT_USD")
    max_daily_loss_usd: float = Field(2.0, alias="MAX_DAILY_LOSS_USD")
    # Extra sell attempts after the first one
    sell_retry_count: int = Field(3, alias="SELL_RETRY_COUNT")
    sell_retry_backoff_seconds: float = Field(1.5, alias="SELL_RETRY_BACKOFF_SECONDS")
    sell_failure_threshold: int = Field(3, alias="SELL_FAILURE_THRESHOLD")
    raised_min_profit_pct: float = Field(0.025, alias="RAISED_MIN_PROFIT_PERCENT")
    # Two legs per arb cost ~0.002 SOL at high priority; 0.01 SOL covers ~5 round trips
    sol_gas_reserve: float = Field(0.01, alias="SOL_GAS_RESERVE")
    alert_quote_diff_usd: float = Field(0.0, alias="ALERT_QUOTE_DIFF_USD")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("raised_min_profit_pct")
    @classmethod
    def validate_percentage(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("Percentage must be between 0.0 and 1.0")
        return v


class ScanConfig(BaseSettings):
    """Scan trigger and detection timing."""

    debounce_ms: int = Field(150, alias="DEBOUNCE_MS")
    min_scan_interval_ms: int = Field(8000, alias="MIN_SCAN_INTERVAL_MS")
    fallback_poll_ms: int = Field(180_000, alias="FALLBACK_POLL_MS")
    staleness_seconds: float = Field(10.0, alias="STALENESS_SECONDS")
    near_miss_margin_pct: float = Field(0.2, alias="NEAR_MISS_MARGIN_PCT")
    token_scan_delay_ms: int = Field(300, alias="TOKEN_SCAN_DELAY_MS")
    status_interval_seconds: int = Field(300, alias="STATUS_INTERVAL_SECONDS")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class PriceSourceConfig(BaseSettings):
    """Quote and price source endpoints."""

    jupiter_quote_api: str = Field("https://lite-api.jup.ag/swap/v1/quote", alias="JUPITER_QUOTE_API")
    jupiter_swap_api: str = Field("https://lite-api.jup.ag/swap/v1/swap", alias="JUPITER_SWAP_API")
    dexscreener_api: str = Field("https://api.dexscreener.com/latest/dex", alias="DEXSCREENER_API")
    sol_price_api: str = Field("https://api.coinbase.com/v2/prices/SOL-USD/spot", alias="SOL_PRICE_API")
    # 0.05 SOL: realistic size without moving the pool
    probe_lamports: int = Field(50_000_000, alias="PROBE_LAMPORTS")
    target_dexes: str = Field("Raydium,Orca,Meteora", alias="TARGET_DEXES")
    price_cache_ttl_ms: int = Field(2000, alias="PRICE_CACHE_TTL_MS")
    min_liquidity_usd: float = Field(10_000.0, alias="MIN_LIQUIDITY_USD")
    min_volume_24h_usd: float = Field(500.0, alias="MIN_VOLUME_24H_USD")
    jupiter_requests_per_second: int = Field(10, alias="JUPITER_REQUESTS_PER_SECOND")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def dexes(self) -> List[str]:
        return [d.strip() for d in self.target_dexes.split(",") if d.strip()]


class SweepConfig(BaseSettings):
    """Residual token cleanup configuration."""

    enable_sweep: bool = Field(True, alias="ENABLE_SWEEP")
    sweep_interval_seconds: int = Field(900, alias="SWEEP_INTERVAL_SECONDS")
    # Balances worth less than this are ignored entirely
    dust_usd: float = Field(0.50, alias="DUST_USD")
    # Balances worth less than this are not worth the fees to liquidate
    cleanup_min_usd: float = Field(1.00, alias="CLEANUP_MIN_USD")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class MonitoringConfig(BaseSettings):
    """Monitoring and notification configuration."""

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    enable_notifications: bool = Field(False, alias="ENABLE_NOTIFICATIONS")
    discord_webhook_url: str = Field("", alias="DISCORD_WEBHOOK_URL")
    telegram_bot_token: str = Field("", alias="TELEGRAM_BOT_TOKEN")
    telegram_chat_id: str = Field("", alias="TELEGRAM_CHAT_ID")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class DatabaseConfig(BaseSettings):
    """Database configuration."""

    database_path: Path = Field(Path("./data/trading.db"), alias="DATABASE_PATH")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class DevelopmentConfig(BaseSettings):
    """Development and testing configuration."""

    # Builds, signs and simulates transactions but never submits them
    dry_run: bool = Field(True, alias="DRY_RUN")
    debug_mode: bool = Field(False, alias="DEBUG_MODE")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class BotConfig:
    """Master configuration class that aggregates all config sections."""

    def __init__(self):
        self.solana = SolanaConfig()
        self.trading = TradingConfig()
        self.risk = RiskConfig()
        self.scan = ScanConfig()
        self.prices = PriceSourceConfig()
        self.sweep = SweepConfig()
        self.monitoring = MonitoringConfig()
        self.database = DatabaseConfig()
        self.development = DevelopmentConfig()

        # Ensure data directory exists
        self.database.database_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def is_dry_run(self) -> bool:
        return self.development.dry_run

    @property
    def is_debug(self) -> bool:
        return self.development.debug_mode

    @property
    def base_mint(self) -> str:
        return TOKEN_MINTS[self.trading.base_token.upper()]


# Global config instance
_config: Optional[BotConfig] = None


def get_config() -> BotConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = BotConfig()
    return _config
