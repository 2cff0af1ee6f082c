"""
Solana cross-venue DEX arbitrage bot.
"""

__version__ = "0.1.0"
