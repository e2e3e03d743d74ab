"""
Data models for the arbitrage analysis engine.
Defines the core data structures shared by every component.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from arbengine.errors import InvalidInput
from arbengine.formulas import spread_percentage

if TYPE_CHECKING:
    from arbengine.gas.estimator import StrategyEvaluation
    from arbengine.liquidity.validator import LiquidityValidation


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RiskLevel(Enum):
    """Risk tiers, ordered from safest to riskiest."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class ProtocolFamily(Enum):
    """AMM pricing families."""
    CONSTANT_PRODUCT = "constant_product"  # Uniswap V2 style, x * y = k
    CONCENTRATED_LIQUIDITY = "concentrated_liquidity"  # Uniswap V3 style
    STABLE_SWAP = "stable_swap"  # Curve style

    @classmethod
    def from_protocol(cls, protocol: Optional[str]) -> "ProtocolFamily":
        """
        Resolve a venue protocol name to its pricing family.

        Unknown protocols resolve to CONSTANT_PRODUCT, the most conservative
        rule, never to "no validation".
        """
        if not protocol:
            return cls.CONSTANT_PRODUCT
        key = protocol.strip().lower()
        for family in cls:
            if key == family.value:
                return family
        return _PROTOCOL_FAMILIES.get(key, cls.CONSTANT_PRODUCT)


_PROTOCOL_FAMILIES: Dict[str, ProtocolFamily] = {
    "uniswapv2": ProtocolFamily.CONSTANT_PRODUCT,
    "sushiswap": ProtocolFamily.CONSTANT_PRODUCT,
    "pancakeswap": ProtocolFamily.CONSTANT_PRODUCT,
    "quickswap": ProtocolFamily.CONSTANT_PRODUCT,
    "biswap": ProtocolFamily.CONSTANT_PRODUCT,
    "uniswapv3": ProtocolFamily.CONCENTRATED_LIQUIDITY,
    "curve": ProtocolFamily.STABLE_SWAP,
}


class OperationType(Enum):
    """On-chain operation kinds with distinct gas limits."""
    TRANSFER = "transfer"
    SWAP = "swap"
    FLASHLOAN = "flashloan"
    ARBITRAGE = "arbitrage"
    COMPLEX = "complex"


class SpreadDirection(Enum):
    """Which side of a price pair to buy."""
    BUY_A_SELL_B = "buy_a_sell_b"
    BUY_B_SELL_A = "buy_b_sell_a"
    NONE = "none"


class RecommendedAction(Enum):
    EXECUTE = "EXECUTE"
    EXECUTE_WITH_CAUTION = "EXECUTE_WITH_CAUTION"
    MONITOR = "MONITOR"
    AVOID = "AVOID"
    DO_NOT_EXECUTE = "DO_NOT_EXECUTE"


@dataclass(frozen=True)
class Venue:
    """A trading venue on a specific network."""
    name: str
    network: str
    protocol: str
    fee_rate: float
    reliability: float


@dataclass(frozen=True)
class PriceQuote:
    """A price for one token on one venue. Immutable once fetched."""
    venue: str
    token_symbol: str
    price: float
    fee_rate: float
    reliability: float
    network: str
    timestamp: datetime = field(default_factory=utc_now)
    protocol: str = "uniswapV2"
    liquidity_usd: Optional[float] = None
    pool_id: Optional[str] = None
    source: str = "live"

    @property
    def resolved_pool_id(self) -> str:
        """Pool identifier used to request reserves for this quote."""
        return self.pool_id or f"{self.network}:{self.venue}:{self.token_symbol}"


@dataclass(frozen=True)
class PoolReserves:
    """Reserve snapshot of a liquidity pool."""
    protocol: str
    reserve_in: float
    reserve_out: float
    reserve_in_usd: float
    reserve_out_usd: float
    volume_24h: float = 0.0
    fees_24h: float = 0.0
    fee_rate: Optional[float] = None

    # Stable-swap amplification coefficient (Curve "A")
    amplification: Optional[float] = None
    # Virtual liquidity multiplier for concentrated positions
    concentration: Optional[float] = None

    timestamp: datetime = field(default_factory=utc_now)
    source: str = "live"

    @property
    def family(self) -> ProtocolFamily:
        return ProtocolFamily.from_protocol(self.protocol)

    @property
    def total_liquidity_usd(self) -> float:
        return self.reserve_in_usd + self.reserve_out_usd

    @property
    def min_side_usd(self) -> float:
        return min(self.reserve_in_usd, self.reserve_out_usd)


@dataclass(frozen=True)
class ArbitrageCandidate:
    """
    A buy/sell venue pair for one token.

    The spread is always derived from the two quote prices; it cannot be
    assigned.
    """
    buy_quote: PriceQuote
    sell_quote: PriceQuote
    token_symbol: str
    trade_amount: float
    timestamp: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if self.buy_quote.price <= 0 or self.sell_quote.price <= 0:
            raise InvalidInput("Candidate prices must be positive")

    @property
    def spread_pct(self) -> float:
        return spread_percentage(self.buy_quote.price, self.sell_quote.price)

    @property
    def fees_pct(self) -> float:
        return (self.buy_quote.fee_rate + self.sell_quote.fee_rate) * 100

    @property
    def net_spread_pct(self) -> float:
        """Spread left after paying both venues' fees."""
        return self.spread_pct - self.fees_pct

    @property
    def combined_reliability(self) -> float:
        return self.buy_quote.reliability + self.sell_quote.reliability

    @property
    def cross_chain(self) -> bool:
        return self.buy_quote.network != self.sell_quote.network

    @property
    def candidate_id(self) -> str:
        return (
            f"{self.token_symbol}:{self.buy_quote.network}:{self.buy_quote.venue}"
            f"->{self.sell_quote.network}:{self.sell_quote.venue}"
        )


@dataclass(frozen=True)
class CostBreakdown:
    """All costs of executing one arbitrage, in USD."""
    gas_cost_usd: float
    protocol_fee_usd: float
    slippage_cost_usd: float
    bridge_fee_usd: Optional[float] = None  # cross-chain only

    @property
    def total_usd(self) -> float:
        return (
            self.gas_cost_usd
            + self.protocol_fee_usd
            + self.slippage_cost_usd
            + (self.bridge_fee_usd or 0.0)
        )


@dataclass(frozen=True)
class RiskFactor:
    """Contribution of one risk dimension to the composite score."""
    name: str
    score: float
    weight: float
    weighted_score: float


@dataclass(frozen=True)
class RiskAssessment:
    """Composite risk score with its per-factor breakdown."""
    score: float
    tier: RiskLevel
    factors: Tuple[RiskFactor, ...]
    is_acceptable: bool
    recommended_action: RecommendedAction

    def factor(self, name: str) -> RiskFactor:
        for item in self.factors:
            if item.name == name:
                return item
        raise KeyError(name)

    @property
    def weights_total(self) -> float:
        return sum(item.weight for item in self.factors)


@dataclass(frozen=True)
class MarketSnapshot:
    """Market context used for risk scoring."""
    volatility: float = 0.02  # fractional, e.g. 0.02 = 2%
    congestion_pct: float = 30.0
    expected_execution_seconds: Optional[float] = None


@dataclass(frozen=True)
class OpportunityInput:
    """Everything the engine needs to analyze one opportunity."""
    token_symbol: str
    buy_quote: PriceQuote
    sell_quote: PriceQuote
    pool: PoolReserves
    operations: Tuple[Any, ...] = ()  # GasOperation items
    market: MarketSnapshot = field(default_factory=MarketSnapshot)
    protocol_fee_rate: Optional[float] = None
    bridge_fee_usd: Optional[float] = None
    timestamp: datetime = field(default_factory=utc_now)
    source: str = "live"

    @property
    def cross_chain(self) -> bool:
        return self.buy_quote.network != self.sell_quote.network


@dataclass(frozen=True)
class OpportunityDecision:
    """
    Final profitability/risk decision for one opportunity.

    Created once per analysis call and handed to the execution collaborator.
    It is only actionable until ``expires_at``.
    """
    candidate: ArbitrageCandidate
    costs: CostBreakdown
    risk: RiskAssessment
    gross_profit_usd: float
    net_profit_usd: float
    is_profitable: bool
    gas_strategy: "StrategyEvaluation"
    liquidity: "LiquidityValidation"
    recommendation: RecommendedAction
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) >= self.expires_at

    @property
    def ttl(self) -> timedelta:
        return self.expires_at - self.created_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidate_id": self.candidate.candidate_id,
            "token_symbol": self.candidate.token_symbol,
            "buy_venue": self.candidate.buy_quote.venue,
            "sell_venue": self.candidate.sell_quote.venue,
            "trade_amount": self.candidate.trade_amount,
            "spread_pct": self.candidate.spread_pct,
            "costs": {
                "gas_cost_usd": self.costs.gas_cost_usd,
                "protocol_fee_usd": self.costs.protocol_fee_usd,
                "slippage_cost_usd": self.costs.slippage_cost_usd,
                "bridge_fee_usd": self.costs.bridge_fee_usd,
                "total_usd": self.costs.total_usd,
            },
            "risk": {
                "score": self.risk.score,
                "tier": self.risk.tier.value,
                "factors": {f.name: f.weighted_score for f in self.risk.factors},
            },
            "gross_profit_usd": self.gross_profit_usd,
            "net_profit_usd": self.net_profit_usd,
            "is_profitable": self.is_profitable,
            "gas_strategy": self.gas_strategy.key,
            "recommendation": self.recommendation.value,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }


@dataclass
class MarketConditions:
    """Summary of the quotes collected for one token."""
    quote_count: int = 0
    dispersion_pct: float = 0.0
    volatility: RiskLevel = RiskLevel.LOW
    average_reliability: float = 0.0
    networks: List[str] = field(default_factory=list)

    @property
    def dispersion(self) -> float:
        """Dispersion as a fraction, usable as a volatility proxy."""
        return self.dispersion_pct / 100
