"""
In-memory collaborators.

Serve quotes, reserves and gas readings that the host loaded from its own
data source. Nothing here generates prices.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from arbengine.config import EngineConfig
from arbengine.errors import DataUnavailable, UnsupportedNetwork
from arbengine.gas.networks import NETWORKS, NetworkGasConfig
from arbengine.models import PoolReserves, PriceQuote, Venue
from arbengine.providers.base import GasOracle, PoolReserveProvider, PriceFeedProvider


class StaticPriceFeed(PriceFeedProvider):
    """Price feed backed by a fixed set of quotes, keyed by (token, network, venue)."""

    def __init__(self, quotes: Optional[Iterable[PriceQuote]] = None):
        self._quotes: Dict[Tuple[str, str, str], PriceQuote] = {}
        for quote in quotes or ():
            self.set_quote(quote)

    def set_quote(self, quote: PriceQuote) -> None:
        self._quotes[(quote.token_symbol.upper(), quote.network, quote.venue)] = quote

    async def get_quote(self, token_symbol: str, venue: Venue) -> Optional[PriceQuote]:
        return self._quotes.get((token_symbol.upper(), venue.network, venue.name))

    async def get_quotes(self, token_symbol: str) -> List[PriceQuote]:
        symbol = token_symbol.upper()
        return [quote for (token, _, _), quote in self._quotes.items() if token == symbol]


class StaticPoolReserveProvider(PoolReserveProvider):
    """Reserve provider backed by a dict of pool id to snapshot."""

    def __init__(self, pools: Optional[Dict[str, PoolReserves]] = None):
        self._pools = dict(pools or {})

    def set_reserves(self, pool_id: str, reserves: PoolReserves) -> None:
        self._pools[pool_id] = reserves

    async def get_reserves(self, pool_id: str) -> PoolReserves:
        reserves = self._pools.get(pool_id)
        if reserves is None:
            raise DataUnavailable(f"No reserves for pool {pool_id}")
        return reserves


class StaticGasOracle(GasOracle):
    """
    Gas oracle answering from the static network tables.

    Gas price defaults to base fee plus priority fee; native prices come from
    ``GasConfig.native_usd_prices``. Either can be overridden per network.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        gas_prices: Optional[Dict[str, float]] = None,
        native_prices: Optional[Dict[str, float]] = None,
        networks: Optional[Dict[str, NetworkGasConfig]] = None,
    ):
        config = config or EngineConfig()
        self._networks = dict(networks or NETWORKS)
        self._gas_prices = {
            name: net.default_gas_price_gwei for name, net in self._networks.items()
        }
        self._gas_prices.update(gas_prices or {})
        self._native_prices = dict(config.gas.native_usd_prices)
        self._native_prices.update(native_prices or {})

    async def get_gas_price(self, network: str) -> float:
        price = self._gas_prices.get(network)
        if price is None:
            raise UnsupportedNetwork(f"Unsupported network: {network}")
        return price

    async def get_native_usd_price(self, network: str) -> float:
        price = self._native_prices.get(network)
        if price is None:
            raise UnsupportedNetwork(f"No native token price for {network}")
        return price
