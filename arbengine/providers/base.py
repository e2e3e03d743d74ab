"""
Interfaces for the engine's external collaborators.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional

from arbengine.models import PoolReserves, PriceQuote, Venue


class PriceFeedProvider(ABC):
    """Source of venue price quotes."""

    @abstractmethod
    async def get_quote(self, token_symbol: str, venue: Venue) -> Optional[PriceQuote]:
        """
        Get the current quote for a token on one venue.

        Args:
            token_symbol: Token symbol, e.g. "WETH"
            venue: Venue from the venue catalogue

        Returns:
            The quote, or None if the venue does not list the token
        """
        pass

    async def get_quotes(self, token_symbol: str) -> Optional[List[PriceQuote]]:
        """
        Get every quote the provider holds for a token in one call.

        Feeds backed by a single aggregated snapshot override this. The
        scanner calls it first, keeps the quotes of catalogued venues, and
        falls back to one ``get_quote`` per venue when it returns None or
        fails.

        Returns:
            All quotes for the token, or None if the feed only answers per venue
        """
        return None

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()


class PoolReserveProvider(ABC):
    """Source of pool reserve snapshots."""

    @abstractmethod
    async def get_reserves(self, pool_id: str) -> PoolReserves:
        """
        Get a fresh reserve snapshot for a pool.

        Raises:
            DataUnavailable: If the pool cannot be read
        """
        pass


class GasOracle(ABC):
    """Source of live gas prices and native token prices."""

    @abstractmethod
    async def get_gas_price(self, network: str) -> float:
        """Current gas price in gwei."""
        pass

    @abstractmethod
    async def get_native_usd_price(self, network: str) -> float:
        """USD price of the network's native gas token."""
        pass

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware."""
        pass


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)
