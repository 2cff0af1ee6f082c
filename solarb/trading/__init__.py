"""
Jupiter swap routing and Solana transaction submission.
"""

from solarb.trading.jupiter_client import JupiterClient, load_keypair

__all__ = [
    "JupiterClient",
    "load_keypair",
]
