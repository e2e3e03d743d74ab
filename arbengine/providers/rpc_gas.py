"""
Live gas oracle.

Reads gas prices from each network's JSON-RPC endpoint (``eth_gasPrice``)
and native token prices from the DefiLlama coins API.
"""

import asyncio
from typing import Any, Dict, Optional

import aiohttp

from arbengine.errors import DataUnavailable, UnsupportedNetwork
from arbengine.logger import get_logger
from arbengine.providers.base import GasOracle


logger = get_logger("gas_oracle")


class JsonRpcGasOracle(GasOracle):
    """
    Gas oracle backed by JSON-RPC nodes and DefiLlama.

    Every call hits the network; readings are never cached.

    Usage:
        async with JsonRpcGasOracle({"ethereum": "https://eth.llamarpc.com"}) as oracle:
            gwei = await oracle.get_gas_price("ethereum")
    """

    PRICES_BASE_URL = "https://coins.llama.fi"

    # DefiLlama coin ids of each network's gas token
    NATIVE_COIN_IDS: Dict[str, str] = {
        "ethereum": "coingecko:ethereum",
        "polygon": "coingecko:matic-network",
        "bsc": "coingecko:binancecoin",
        "arbitrum": "coingecko:ethereum",
    }

    def __init__(
        self,
        rpc_urls: Dict[str, str],
        prices_base_url: Optional[str] = None,
        timeout_seconds: float = 5.0,
        native_coin_ids: Optional[Dict[str, str]] = None,
    ):
        self._rpc_urls = dict(rpc_urls)
        self._prices_base_url = (prices_base_url or self.PRICES_BASE_URL).rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._coin_ids = dict(self.NATIVE_COIN_IDS)
        self._coin_ids.update(native_coin_ids or {})
        self._http_session: Optional[aiohttp.ClientSession] = None
        self._request_id = 0

    async def connect(self) -> None:
        """Initialize HTTP session."""
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession(timeout=self._timeout)
            logger.info("Gas oracle connected", networks=list(self._rpc_urls))

    async def disconnect(self) -> None:
        if self._http_session:
            await self._http_session.close()
            self._http_session = None
            logger.info("Gas oracle disconnected")

    async def get_gas_price(self, network: str) -> float:
        url = self._rpc_urls.get(network)
        if url is None:
            raise UnsupportedNetwork(f"No RPC endpoint configured for {network}")

        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": "eth_gasPrice",
            "params": [],
            "id": self._request_id,
        }
        data = await self._request_json("POST", url, json=payload)
        gwei = self.parse_gas_price(data)
        logger.debug("Gas price fetched", network=network, gwei=gwei)
        return gwei

    async def get_native_usd_price(self, network: str) -> float:
        coin_id = self._coin_ids.get(network)
        if coin_id is None:
            raise UnsupportedNetwork(f"No native token mapping for {network}")

        url = f"{self._prices_base_url}/prices/current/{coin_id}"
        data = await self._request_json("GET", url)
        return self.parse_native_price(data, coin_id)

    @staticmethod
    def parse_gas_price(data: Dict[str, Any]) -> float:
        """Convert an ``eth_gasPrice`` response (hex wei) to gwei."""
        if "error" in data:
            error = data["error"] or {}
            raise DataUnavailable(f"RPC error: {error.get('message', error)}")
        result = data.get("result")
        if not isinstance(result, str):
            raise DataUnavailable(f"Malformed eth_gasPrice response: {data}")
        try:
            wei = int(result, 16)
        except ValueError:
            raise DataUnavailable(f"Malformed gas price: {result}") from None
        if wei <= 0:
            raise DataUnavailable(f"Node reported non-positive gas price: {result}")
        return wei / 1e9

    @staticmethod
    def parse_native_price(data: Dict[str, Any], coin_id: str) -> float:
        """Extract a USD price from a DefiLlama ``/prices/current`` response."""
        coin = (data.get("coins") or {}).get(coin_id)
        if not coin or "price" not in coin:
            raise DataUnavailable(f"No price returned for {coin_id}")
        price = float(coin["price"])
        if price <= 0:
            raise DataUnavailable(f"Non-positive price for {coin_id}: {price}")
        return price

    async def _request_json(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        if self._http_session is None:
            await self.connect()
        try:
            async with self._http_session.request(method, url, **kwargs) as response:
                if response.status != 200:
                    raise DataUnavailable(f"HTTP {response.status} from {url}")
                return await response.json(content_type=None)
        except asyncio.TimeoutError:
            raise DataUnavailable(f"Timed out requesting {url}") from None
        except aiohttp.ClientError as e:
            raise DataUnavailable(f"Request to {url} failed: {e}") from e
