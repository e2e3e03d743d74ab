"""
External collaborators: price feeds, pool reserves, gas oracles, clocks.
"""

from arbengine.providers.base import (
    Clock,
    GasOracle,
    PoolReserveProvider,
    PriceFeedProvider,
    SystemClock,
)
from arbengine.providers.rpc_gas import JsonRpcGasOracle
from arbengine.providers.static import StaticGasOracle, StaticPoolReserveProvider, StaticPriceFeed

__all__ = [
    "Clock",
    "GasOracle",
    "JsonRpcGasOracle",
    "PoolReserveProvider",
    "PriceFeedProvider",
    "StaticGasOracle",
    "StaticPoolReserveProvider",
    "StaticPriceFeed",
    "SystemClock",
]
