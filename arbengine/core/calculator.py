"""
Spread, net profit and execution risk math.

Every method is a pure function of its arguments and the configuration the
calculator was built with; the calculator holds no mutable state.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from arbengine.config import EngineConfig
from arbengine.errors import InvalidInput
from arbengine.formulas import clamp, spread_percentage, to_precision
from arbengine.liquidity.amm import ImpactResult, constant_product_impact
from arbengine.models import (
    CostBreakdown,
    RecommendedAction,
    RiskAssessment,
    RiskFactor,
    RiskLevel,
    SpreadDirection,
)


_TIER_ACTIONS: Dict[RiskLevel, RecommendedAction] = {
    RiskLevel.LOW: RecommendedAction.EXECUTE,
    RiskLevel.MEDIUM: RecommendedAction.EXECUTE_WITH_CAUTION,
    RiskLevel.HIGH: RecommendedAction.MONITOR,
    RiskLevel.CRITICAL: RecommendedAction.AVOID,
}


@dataclass(frozen=True)
class SpreadResult:
    price_a: float
    price_b: float
    spread_abs: float
    spread_pct: float
    direction: SpreadDirection
    higher_price: float
    lower_price: float
    potential_profit_ratio: float
    is_valid_spread: bool


@dataclass(frozen=True)
class ProfitCosts:
    """Cost inputs for a net profit calculation."""
    gas_fee: float = 0.0
    protocol_fee_rate: float = 0.0
    slippage_rate: float = 0.0
    bridge_fee: float = 0.0


@dataclass(frozen=True)
class ProfitAnalysis:
    gross_profit: float
    gross_profit_pct: float
    net_profit: float
    net_profit_pct: float
    trade_value: float
    costs: CostBreakdown
    total_costs: float
    cost_ratio: Optional[float]  # None when there is no gross profit to spend
    efficiency: float
    roi: float
    profitability_score: float
    min_profit_floor: float
    is_profitable: bool


@dataclass(frozen=True)
class ExecutionRiskInputs:
    expected_slippage: float  # fraction of trade value
    execution_seconds: float


@dataclass(frozen=True)
class MarketRiskInputs:
    volatility: float  # fraction, e.g. 0.02
    liquidity_usd: float
    congestion_pct: float


class SpreadAndProfitCalculator:
    """
    Pure arbitrage math.

    Computes the spread between two prices, the net profit of a trade after
    every cost, and a weighted execution-risk score.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        config = config or EngineConfig()
        self.config = config.calculator
        self.weights = config.risk_weights.as_dict()

    def spread(self, price_a: float, price_b: float) -> SpreadResult:
        """
        Spread between two venue prices.

        The spread is measured against the lower price, so
        ``spread(a, b).spread_pct == spread(b, a).spread_pct``.

        Raises:
            InvalidInput: If either price is missing or non-positive
        """
        spread_pct = spread_percentage(price_a, price_b)
        higher = max(price_a, price_b)
        lower = min(price_a, price_b)

        if price_a < price_b:
            direction = SpreadDirection.BUY_A_SELL_B
        elif price_b < price_a:
            direction = SpreadDirection.BUY_B_SELL_A
        else:
            direction = SpreadDirection.NONE

        ratio = (higher - lower) / lower
        return SpreadResult(
            price_a=price_a,
            price_b=price_b,
            spread_abs=to_precision(higher - lower),
            spread_pct=to_precision(spread_pct),
            direction=direction,
            higher_price=higher,
            lower_price=lower,
            potential_profit_ratio=to_precision(ratio),
            is_valid_spread=ratio >= self.config.min_profit_threshold,
        )

    def net_profit(
        self,
        price_in: float,
        price_out: float,
        amount: float,
        costs: Optional[ProfitCosts] = None,
    ) -> ProfitAnalysis:
        """
        Net profit of buying ``amount`` at ``price_in`` and selling at ``price_out``.

        Protocol fees are charged on the sale value and slippage on the
        purchase value; gas and bridge fees are flat USD amounts. A trade is
        profitable only when its net profit beats the minimum profit floor,
        ``min_profit_threshold`` of the trade value.

        Args:
            price_in: Buy price
            price_out: Sell price
            amount: Quantity traded
            costs: Cost inputs; all zero when omitted

        Returns:
            ProfitAnalysis with the full cost breakdown
        """
        costs = costs or ProfitCosts()
        self._validate_profit_inputs(price_in, price_out, amount, costs)

        trade_value = price_in * amount
        gross_value = price_out * amount
        gross_profit = (price_out - price_in) * amount

        breakdown = CostBreakdown(
            gas_cost_usd=to_precision(costs.gas_fee),
            protocol_fee_usd=to_precision(costs.protocol_fee_rate * gross_value),
            slippage_cost_usd=to_precision(costs.slippage_rate * trade_value),
            bridge_fee_usd=to_precision(costs.bridge_fee) if costs.bridge_fee else None,
        )
        total_costs = breakdown.total_usd
        net_profit = gross_profit - total_costs

        if gross_profit > 0:
            cost_ratio = total_costs / gross_profit
            efficiency = max(0.0, 1 - cost_ratio)
        else:
            cost_ratio = None
            efficiency = 0.0

        net_profit_pct = net_profit / trade_value * 100
        profit_score = min(net_profit_pct / 10, 1.0)
        min_profit_floor = self.config.min_profit_threshold * trade_value

        return ProfitAnalysis(
            gross_profit=to_precision(gross_profit),
            gross_profit_pct=to_precision(gross_profit / trade_value * 100),
            net_profit=to_precision(net_profit),
            net_profit_pct=to_precision(net_profit_pct),
            trade_value=to_precision(trade_value),
            costs=breakdown,
            total_costs=to_precision(total_costs),
            cost_ratio=to_precision(cost_ratio) if cost_ratio is not None else None,
            efficiency=to_precision(efficiency),
            roi=to_precision(net_profit_pct),
            profitability_score=to_precision((profit_score + efficiency) / 2),
            min_profit_floor=to_precision(min_profit_floor),
            is_profitable=net_profit > min_profit_floor,
        )

    def risk_score(
        self, execution: ExecutionRiskInputs, market: MarketRiskInputs
    ) -> RiskAssessment:
        """
        Weighted execution-risk score in [0, 1].

        Each factor is normalised to [0, 1] before weighting:
            slippage        expected_slippage / max_slippage
            execution_time  execution_seconds / max_execution_seconds
            volatility      volatility / max_volatility
            liquidity       1 - liquidity_usd / reference_liquidity_usd
            congestion      congestion_pct / 100
        """
        self._validate_risk_inputs(execution, market)
        cfg = self.config

        raw = {
            "slippage": clamp(execution.expected_slippage / cfg.max_slippage),
            "execution_time": clamp(execution.execution_seconds / cfg.max_execution_seconds),
            "volatility": clamp(market.volatility / cfg.max_volatility),
            "liquidity": clamp(1 - market.liquidity_usd / cfg.reference_liquidity_usd),
            "congestion": clamp(market.congestion_pct / 100),
        }

        factors = []
        total = 0.0
        for name, score in raw.items():
            weight = self.weights[name]
            weighted = score * weight
            total += weighted
            factors.append(RiskFactor(
                name=name,
                score=to_precision(score),
                weight=weight,
                weighted_score=to_precision(weighted),
            ))

        score = to_precision(clamp(total))
        tier = self.classify_risk(score)

        return RiskAssessment(
            score=score,
            tier=tier,
            factors=tuple(factors),
            is_acceptable=score <= cfg.max_acceptable_risk,
            recommended_action=_TIER_ACTIONS[tier],
        )

    def classify_risk(self, score: float) -> RiskLevel:
        """Map a score to its tier using half-open buckets."""
        if score < self.config.risk_low_threshold:
            return RiskLevel.LOW
        if score < self.config.risk_medium_threshold:
            return RiskLevel.MEDIUM
        if score < self.config.risk_high_threshold:
            return RiskLevel.HIGH
        return RiskLevel.CRITICAL

    def price_impact(
        self,
        amount_in: float,
        reserve_in: float,
        reserve_out: float,
        fee_rate: float = 0.003,
    ) -> ImpactResult:
        """Constant-product price impact of a trade."""
        return constant_product_impact(reserve_in, reserve_out, amount_in, fee_rate)

    def _validate_profit_inputs(
        self, price_in: float, price_out: float, amount: float, costs: ProfitCosts
    ) -> None:
        if price_in is None or price_out is None or price_in <= 0 or price_out <= 0:
            raise InvalidInput(f"Prices must be positive (got {price_in}, {price_out})")
        if amount is None or amount <= 0:
            raise InvalidInput(f"Amount must be positive (got {amount})")
        for name in ("gas_fee", "protocol_fee_rate", "slippage_rate", "bridge_fee"):
            if getattr(costs, name) < 0:
                raise InvalidInput(f"Cost '{name}' must be non-negative")

    def _validate_risk_inputs(
        self, execution: ExecutionRiskInputs, market: MarketRiskInputs
    ) -> None:
        values = {
            "expected_slippage": execution.expected_slippage,
            "execution_seconds": execution.execution_seconds,
            "volatility": market.volatility,
            "liquidity_usd": market.liquidity_usd,
            "congestion_pct": market.congestion_pct,
        }
        for name, value in values.items():
            if value is None or value < 0:
                raise InvalidInput(f"Risk input '{name}' must be non-negative (got {value})")

    def get_calculator_stats(self) -> dict:
        return {
            "min_profit_threshold": self.config.min_profit_threshold,
            "max_acceptable_risk": self.config.max_acceptable_risk,
            "risk_weights": dict(self.weights),
        }
