"""
Base class for venue price sources.
"""

from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import List, Optional

import httpx

from solarb.clock import Clock, get_clock
from solarb.models import PricePoint


class BasePriceSource(ABC):
    """Abstract base class for price sources feeding the aggregator."""

    name: str = "base"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Clock] = None,
        timeout: float = 10.0,
    ):
        self._client = client
        self._owns_client = client is None
        self._clock = clock or get_clock()
        self._timeout = timeout

    async def connect(self) -> None:
        """Create the HTTP client if one was not injected."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True

    async def disconnect(self) -> None:
        """Close the HTTP client if this source created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            await self.connect()
        return self._client

    @abstractmethod
    async def fetch(self, token: str, mint: str) -> List[PricePoint]:
        """
        Fetch price points for a token.

        Args:
            token: Token symbol, e.g. "RAY"
            mint: Token mint address

        Returns:
            Price points, possibly empty. Never raises for remote failures.
        """
        pass

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    @staticmethod
    def to_decimal(value) -> Optional[Decimal]:
        """Parse an API number or numeric string; None if unparseable."""
        if value is None:
            return None
        try:
            return Decimal(str(value))
        except (InvalidOperation, ValueError):
            return None
