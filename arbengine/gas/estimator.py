"""
Gas cost estimation and execution strategy selection.

Costs are computed from static per-network tables plus whatever live gas
price and native token price the caller passes in. The estimator never
fetches or caches prices itself.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

from arbengine.config import EngineConfig
from arbengine.errors import InvalidInput, UnsupportedNetwork, UnsupportedOperationType
from arbengine.formulas import to_precision
from arbengine.gas.networks import (
    NETWORKS,
    OPTIMIZATION_FACTORS,
    PRIORITY_LEVELS,
    STRATEGY_CATALOGUE,
    GasStrategy,
    NetworkGasConfig,
)
from arbengine.logger import get_logger
from arbengine.models import OperationType, RiskLevel


logger = get_logger("gas")

GWEI = 1e-9


@dataclass(frozen=True)
class GasParams:
    """Per-call overrides for a gas cost calculation."""
    gas_price_gwei: Optional[float] = None
    native_usd_price: Optional[float] = None
    complexity_factor: float = 1.0
    usage_ratio: Optional[float] = None
    optimizations: Tuple[str, ...] = ()
    transaction_value_usd: float = 1000.0


@dataclass(frozen=True)
class GasOperation:
    """One on-chain step of an arbitrage."""
    network: str
    op_type: Union[OperationType, str]
    params: GasParams = field(default_factory=GasParams)
    step: Optional[int] = None


@dataclass(frozen=True)
class PriorityLevel:
    gas_price_gwei: float
    cost_multiplier: float
    estimated_time: str


@dataclass(frozen=True)
class ConfirmationTimes:
    fast: int
    standard: int
    slow: int


@dataclass(frozen=True)
class GasCostResult:
    network: str
    operation_type: OperationType
    gas_limit: int
    gas_used: int
    gas_price_gwei: float
    base_fee_gwei: float
    priority_fee_gwei: float
    native_usd_price: float
    cost_native: float
    cost_usd: float
    optimized_cost_usd: float
    savings_usd: float
    applied_optimizations: Tuple[str, ...]
    priority_levels: Dict[str, PriorityLevel]
    confirmation: ConfirmationTimes
    efficiency: float


@dataclass(frozen=True)
class StepCost:
    step: int
    network: str
    operation_type: OperationType
    cost_usd: float
    confirmation_seconds: int
    share_pct: float = 0.0


@dataclass(frozen=True)
class ArbitrageGasCosts:
    """Aggregated gas costs of a multi-step arbitrage."""
    total_operations: int
    total_cost_usd: float
    total_gas_used: int
    average_cost_usd: float
    max_confirmation_seconds: int
    steps: Tuple[StepCost, ...]
    bottleneck: StepCost
    time_risk: float
    risk_level: RiskLevel
    risk_factors: Tuple[str, ...]
    recommendations: Tuple[str, ...]


@dataclass(frozen=True)
class TimeConstraints:
    max_time_seconds: float = 300.0


@dataclass(frozen=True)
class StrategyEvaluation:
    """How one catalogue strategy performs against an expected profit."""
    key: str
    name: str
    gas_cost_usd: float
    time_seconds: float
    success_rate: float
    net_profit: float
    profit_ratio: float
    time_score: float
    composite_score: float
    is_viable: bool
    modifications: Tuple[str, ...] = ()


@dataclass(frozen=True)
class GasStrategyPlan:
    """
    Result of strategy optimisation.

    ``recommended`` is None when no strategy leaves a positive net profit
    within the time limit.
    """
    expected_profit: float
    max_time_seconds: float
    base_costs: ArbitrageGasCosts
    evaluations: Tuple[StrategyEvaluation, ...]
    recommended: Optional[StrategyEvaluation]
    optimization_opportunities: Tuple[str, ...] = ()

    @property
    def has_viable_strategy(self) -> bool:
        return self.recommended is not None


class GasCostEstimator:
    """
    Estimates gas costs per operation and picks an execution strategy.

    Usage:
        estimator = GasCostEstimator(config)
        cost = estimator.gas_cost("polygon", "swap", GasParams(gas_price_gwei=45))
        plan = estimator.optimize_gas_strategy(25.0, operations)
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        networks: Optional[Dict[str, NetworkGasConfig]] = None,
    ):
        self.config = (config or EngineConfig()).gas
        self.networks = dict(networks or NETWORKS)

    def gas_cost(
        self,
        network: str,
        op_type: Union[OperationType, str],
        params: Optional[GasParams] = None,
    ) -> GasCostResult:
        """
        Gas cost of one operation.

        gas_used = gas_limit * complexity * usage_ratio
        cost_usd = gas_used * gas_price_gwei * 1e-9 * native_usd_price

        Raises:
            UnsupportedNetwork: Network has no gas table
            UnsupportedOperationType: Operation is not in the network table
            InvalidInput: Non-positive gas price, native price or complexity
        """
        params = params or GasParams()
        net = self._network(network)
        operation = self._operation(net, op_type)

        gas_price = params.gas_price_gwei
        if gas_price is None:
            gas_price = net.default_gas_price_gwei
        if gas_price <= 0:
            raise InvalidInput(f"Gas price must be positive (got {gas_price})")
        native_price = self._native_price(net.name, params.native_usd_price)
        if params.complexity_factor <= 0:
            raise InvalidInput(f"Complexity factor must be positive (got {params.complexity_factor})")
        usage_ratio = params.usage_ratio if params.usage_ratio is not None else self.config.usage_ratio
        if not 0 < usage_ratio <= 1:
            raise InvalidInput(f"Gas usage ratio must be in (0, 1] (got {usage_ratio})")

        gas_limit = round(net.gas_limits[operation] * params.complexity_factor)
        gas_used = gas_limit * usage_ratio
        cost_native = gas_used * gas_price * GWEI
        cost_usd = cost_native * native_price

        optimized, applied = self._apply_optimizations(cost_usd, params.optimizations)

        if params.transaction_value_usd > 0:
            efficiency = max(0.0, 1 - cost_usd / params.transaction_value_usd)
        else:
            efficiency = 0.0

        return GasCostResult(
            network=net.name,
            operation_type=operation,
            gas_limit=gas_limit,
            gas_used=round(gas_used),
            gas_price_gwei=gas_price,
            base_fee_gwei=net.base_fee_gwei,
            priority_fee_gwei=net.priority_fee_gwei,
            native_usd_price=native_price,
            cost_native=to_precision(cost_native),
            cost_usd=to_precision(cost_usd),
            optimized_cost_usd=to_precision(optimized),
            savings_usd=to_precision(cost_usd - optimized),
            applied_optimizations=applied,
            priority_levels=self.priority_levels(gas_price),
            confirmation=self.confirmation_times(net.name, gas_price),
            efficiency=to_precision(efficiency),
        )

    def arbitrage_gas_costs(self, operations: Sequence[GasOperation]) -> ArbitrageGasCosts:
        """
        Aggregate gas costs over every step of an arbitrage.

        The bottleneck is the step with the slowest fast-confirmation time.
        """
        if not operations:
            raise InvalidInput("At least one gas operation is required")

        steps: List[StepCost] = []
        total_cost = 0.0
        total_gas = 0
        bottleneck_index = 0

        for index, operation in enumerate(operations, start=1):
            result = self.gas_cost(operation.network, operation.op_type, operation.params)
            step = StepCost(
                step=operation.step or index,
                network=result.network,
                operation_type=result.operation_type,
                cost_usd=result.optimized_cost_usd,
                confirmation_seconds=result.confirmation.fast,
            )
            steps.append(step)
            total_cost += result.optimized_cost_usd
            total_gas += result.gas_used
            if step.confirmation_seconds > steps[bottleneck_index].confirmation_seconds:
                bottleneck_index = len(steps) - 1

        steps = [
            StepCost(
                step=s.step,
                network=s.network,
                operation_type=s.operation_type,
                cost_usd=s.cost_usd,
                confirmation_seconds=s.confirmation_seconds,
                share_pct=to_precision(s.cost_usd / total_cost * 100) if total_cost > 0 else 0.0,
            )
            for s in steps
        ]
        bottleneck = steps[bottleneck_index]
        max_time = bottleneck.confirmation_seconds

        risk_factors = []
        if total_cost > self.config.high_cost_usd:
            risk_factors.append("HIGH_COST")
        if max_time > self.config.slow_execution_seconds:
            risk_factors.append("SLOW_EXECUTION")

        recommendations = []
        most_expensive = max(steps, key=lambda s: s.cost_usd)
        if most_expensive.cost_usd > self.config.high_cost_usd / 2:
            recommendations.append(
                f"HIGH_COST_OPERATION: step {most_expensive.step} on "
                f"{most_expensive.network} costs ${most_expensive.cost_usd:.2f}; "
                "consider a cheaper network or batching"
            )

        return ArbitrageGasCosts(
            total_operations=len(steps),
            total_cost_usd=to_precision(total_cost),
            total_gas_used=total_gas,
            average_cost_usd=to_precision(total_cost / len(steps)),
            max_confirmation_seconds=max_time,
            steps=tuple(steps),
            bottleneck=bottleneck,
            time_risk=to_precision(min(max_time / self.config.slow_execution_seconds, 2.0)),
            risk_level=RiskLevel.HIGH if risk_factors else RiskLevel.LOW,
            risk_factors=tuple(risk_factors),
            recommendations=tuple(recommendations),
        )

    def optimize_gas_strategy(
        self,
        expected_profit: float,
        operations: Sequence[GasOperation],
        time_constraints: Optional[TimeConstraints] = None,
    ) -> GasStrategyPlan:
        """
        Pick the best execution strategy for an expected (pre-gas) profit.

        Each strategy is scored as profit_ratio * success_rate * time_score.
        Only strategies with a positive net profit that finish within the time
        limit are eligible; ties go to the earlier catalogue entry.

        Args:
            expected_profit: Profit in USD before gas
            operations: Steps of the arbitrage
            time_constraints: Execution deadline; config default when omitted

        Returns:
            GasStrategyPlan, with ``recommended=None`` when nothing is viable
        """
        if time_constraints is None:
            time_constraints = TimeConstraints(self.config.default_max_time_seconds)
        max_time = time_constraints.max_time_seconds
        if max_time is None or max_time <= 0:
            raise InvalidInput(f"Max execution time must be positive (got {max_time})")

        base = self.arbitrage_gas_costs(operations)

        evaluations = [
            self._evaluate(strategy, base, expected_profit, max_time)
            for strategy in STRATEGY_CATALOGUE
        ]

        recommended: Optional[StrategyEvaluation] = None
        for evaluation in evaluations:
            if not evaluation.is_viable:
                continue
            if recommended is None or evaluation.composite_score > recommended.composite_score:
                recommended = evaluation

        opportunities = []
        if base.total_cost_usd > self.config.high_cost_usd / 2:
            opportunities.append(
                f"BATCH_OPERATIONS: batching could save ${base.total_cost_usd * 0.3:.2f}"
            )

        logger.debug(
            "Gas strategy evaluated",
            expected_profit=expected_profit,
            base_cost=base.total_cost_usd,
            recommended=recommended.key if recommended else None,
        )

        return GasStrategyPlan(
            expected_profit=expected_profit,
            max_time_seconds=max_time,
            base_costs=base,
            evaluations=tuple(evaluations),
            recommended=recommended,
            optimization_opportunities=tuple(opportunities),
        )

    def priority_levels(self, gas_price_gwei: float) -> Dict[str, PriorityLevel]:
        return {
            name: PriorityLevel(
                gas_price_gwei=to_precision(gas_price_gwei * multiplier),
                cost_multiplier=multiplier,
                estimated_time=label,
            )
            for name, (multiplier, label) in PRIORITY_LEVELS.items()
        }

    def confirmation_times(self, network: str, gas_price_gwei: float) -> ConfirmationTimes:
        """Confirmation time estimates, faster when paying above the base fee."""
        net = self._network(network)
        ratio = max(gas_price_gwei / net.base_fee_gwei, 0.5)
        base = net.base_confirmation_seconds
        return ConfirmationTimes(
            fast=round(base / ratio),
            standard=round(base * 2 / ratio),
            slow=round(base * 5 / ratio),
        )

    def supported_networks(self) -> List[str]:
        return list(self.networks)

    def get_estimator_stats(self) -> dict:
        return {
            "supported_networks": self.supported_networks(),
            "operation_types": [op.value for op in OperationType],
            "optimization_factors": dict(OPTIMIZATION_FACTORS),
            "strategies": [strategy.key for strategy in STRATEGY_CATALOGUE],
        }

    def _evaluate(
        self,
        strategy: GasStrategy,
        base: ArbitrageGasCosts,
        expected_profit: float,
        max_time: float,
    ) -> StrategyEvaluation:
        cost = base.total_cost_usd * strategy.cost_multiplier
        time_seconds = base.max_confirmation_seconds * strategy.time_multiplier
        net = expected_profit - cost
        profit_ratio = net / expected_profit if expected_profit > 0 else 0.0
        time_score = 0.0 if time_seconds > max_time else 1 - time_seconds / max_time
        composite = profit_ratio * strategy.success_rate * time_score

        return StrategyEvaluation(
            key=strategy.key,
            name=strategy.name,
            gas_cost_usd=to_precision(cost),
            time_seconds=to_precision(time_seconds),
            success_rate=strategy.success_rate,
            net_profit=to_precision(net),
            profit_ratio=to_precision(profit_ratio),
            time_score=to_precision(time_score),
            composite_score=to_precision(composite),
            is_viable=net > 0 and time_seconds <= max_time,
            modifications=strategy.modifications,
        )

    def _apply_optimizations(
        self, cost_usd: float, optimizations: Sequence[str]
    ) -> Tuple[float, Tuple[str, ...]]:
        optimized = cost_usd
        applied = []
        for name in optimizations:
            factor = OPTIMIZATION_FACTORS.get(name)
            if factor is None:
                raise InvalidInput(f"Unknown gas optimization: {name}")
            optimized *= factor
            applied.append(name)
        return optimized, tuple(applied)

    def _network(self, network: str) -> NetworkGasConfig:
        net = self.networks.get((network or "").lower())
        if net is None:
            raise UnsupportedNetwork(f"Unsupported network: {network}")
        return net

    def _operation(
        self, net: NetworkGasConfig, op_type: Union[OperationType, str]
    ) -> OperationType:
        if isinstance(op_type, OperationType):
            operation = op_type
        else:
            try:
                operation = OperationType((op_type or "").lower())
            except ValueError:
                raise UnsupportedOperationType(f"Unsupported operation type: {op_type}") from None
        if operation not in net.gas_limits:
            raise UnsupportedOperationType(
                f"Operation {operation.value} not supported on {net.name}"
            )
        return operation

    def _native_price(self, network: str, override: Optional[float]) -> float:
        price = override if override is not None else self.config.native_usd_prices.get(network)
        if price is None:
            raise InvalidInput(f"No native token price for {network}")
        if price <= 0:
            raise InvalidInput(f"Native token price must be positive (got {price})")
        return price
