"""
Pytest configuration and shared fixtures.
"""

import os
from datetime import datetime, timedelta, timezone

import pytest

# Set test environment
os.environ["DEBUG_MODE"] = "true"
os.environ["LOG_LEVEL"] = "WARNING"

from arbengine.config import EngineConfig
from arbengine.models import MarketSnapshot, OpportunityInput, PoolReserves, PriceQuote
from arbengine.providers.base import Clock
from arbengine.providers.static import StaticGasOracle, StaticPoolReserveProvider, StaticPriceFeed


NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class FixedClock(Clock):
    """Clock frozen at a given instant."""

    def __init__(self, now: datetime = NOW):
        self.current = now

    def now(self) -> datetime:
        return self.current


def make_quote(
    venue: str = "Uniswap V2",
    price: float = 2500.0,
    network: str = "ethereum",
    token: str = "WETH",
    fee_rate: float = 0.003,
    reliability: float = 0.95,
    protocol: str = "uniswapV2",
    source: str = "live",
    age_seconds: float = 5.0,
) -> PriceQuote:
    return PriceQuote(
        venue=venue,
        token_symbol=token,
        price=price,
        fee_rate=fee_rate,
        reliability=reliability,
        network=network,
        timestamp=NOW - timedelta(seconds=age_seconds),
        protocol=protocol,
        source=source,
    )


def make_pool(
    protocol: str = "uniswapV2",
    reserve_in: float = 1_000.0,
    reserve_out: float = 2_500_000.0,
    reserve_in_usd: float = 2_500_000.0,
    reserve_out_usd: float = 2_500_000.0,
    volume_24h: float = 1_000_000.0,
    source: str = "live",
    age_seconds: float = 5.0,
    **kwargs,
) -> PoolReserves:
    return PoolReserves(
        protocol=protocol,
        reserve_in=reserve_in,
        reserve_out=reserve_out,
        reserve_in_usd=reserve_in_usd,
        reserve_out_usd=reserve_out_usd,
        volume_24h=volume_24h,
        timestamp=NOW - timedelta(seconds=age_seconds),
        source=source,
        **kwargs,
    )


@pytest.fixture
def config():
    """Default engine configuration."""
    return EngineConfig()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def buy_quote():
    return make_quote(venue="Uniswap V2", price=2500.0)


@pytest.fixture
def sell_quote():
    return make_quote(venue="SushiSwap", price=2550.0, protocol="sushiswap", reliability=0.90)


@pytest.fixture
def deep_pool():
    """WETH/USDC constant-product pool with $5M TVL."""
    return make_pool()


@pytest.fixture
def opportunity(buy_quote, sell_quote, deep_pool):
    """Same-chain WETH opportunity with a 2% spread."""
    return OpportunityInput(
        token_symbol="WETH",
        buy_quote=buy_quote,
        sell_quote=sell_quote,
        pool=deep_pool,
        market=MarketSnapshot(volatility=0.02, congestion_pct=30.0),
        timestamp=NOW - timedelta(seconds=5),
    )


@pytest.fixture
def price_feed(buy_quote, sell_quote):
    return StaticPriceFeed([buy_quote, sell_quote])


@pytest.fixture
def reserve_provider(buy_quote, deep_pool):
    return StaticPoolReserveProvider({buy_quote.resolved_pool_id: deep_pool})


@pytest.fixture
def gas_oracle(config):
    return StaticGasOracle(config)
