"""
Tests for gas cost estimation and strategy selection.
"""

import pytest

from arbengine.errors import InvalidInput, UnsupportedNetwork, UnsupportedOperationType
from arbengine.gas.estimator import (
    GasCostEstimator,
    GasOperation,
    GasParams,
    TimeConstraints,
)
from arbengine.models import OperationType, RiskLevel


@pytest.fixture
def estimator():
    """Create an estimator with default configuration."""
    return GasCostEstimator()


@pytest.fixture
def two_swaps():
    """Two ethereum swaps at 20 gwei, $6 each."""
    params = GasParams(gas_price_gwei=20.0, native_usd_price=2500.0)
    return [
        GasOperation("ethereum", OperationType.SWAP, params, step=1),
        GasOperation("ethereum", OperationType.SWAP, params, step=2),
    ]


class TestGasCost:
    """Tests for single-operation gas costs."""

    def test_ethereum_swap(self, estimator):
        result = estimator.gas_cost("ethereum", "swap", GasParams(gas_price_gwei=20.0, native_usd_price=2500.0))

        assert result.gas_limit == 150_000
        assert result.gas_used == 120_000
        assert result.cost_native == pytest.approx(0.0024)
        assert result.cost_usd == pytest.approx(6.0)
        assert result.optimized_cost_usd == pytest.approx(6.0)
        assert result.savings_usd == 0

    def test_confirmation_times_at_base_fee(self, estimator):
        result = estimator.gas_cost("ethereum", OperationType.SWAP, GasParams(gas_price_gwei=20.0))
        assert (result.confirmation.fast, result.confirmation.standard, result.confirmation.slow) == (60, 120, 300)

    def test_paying_more_confirms_faster(self, estimator):
        assert estimator.confirmation_times("ethereum", 40.0).fast == 30
        # Ratio is floored at 0.5
        assert estimator.confirmation_times("ethereum", 5.0).fast == 120

    def test_cost_scales_with_gas_price(self, estimator):
        low = estimator.gas_cost("ethereum", "swap", GasParams(gas_price_gwei=20.0))
        high = estimator.gas_cost("ethereum", "swap", GasParams(gas_price_gwei=40.0))
        assert high.cost_usd == pytest.approx(low.cost_usd * 2)

    def test_defaults_from_network_table(self, estimator):
        result = estimator.gas_cost("ethereum", "swap", GasParams(complexity_factor=1.2))
        assert result.gas_price_gwei == pytest.approx(22.0)
        assert result.native_usd_price == 2500.0
        assert result.gas_limit == 180_000
        assert result.cost_usd == pytest.approx(7.92)

    def test_operation_type_is_case_insensitive(self, estimator):
        assert estimator.gas_cost("Ethereum", "SWAP").operation_type == OperationType.SWAP

    def test_optimizations_apply_multipliers(self, estimator):
        params = GasParams(gas_price_gwei=20.0, native_usd_price=2500.0, optimizations=("batchTransactions",))
        result = estimator.gas_cost("ethereum", "swap", params)
        assert result.optimized_cost_usd == pytest.approx(4.2)
        assert result.savings_usd == pytest.approx(1.8)
        assert result.applied_optimizations == ("batchTransactions",)

    def test_unknown_optimization_rejected(self, estimator):
        with pytest.raises(InvalidInput):
            estimator.gas_cost("ethereum", "swap", GasParams(optimizations=("teleport",)))

    def test_priority_levels(self, estimator):
        levels = estimator.priority_levels(20.0)
        assert levels["slow"].gas_price_gwei == pytest.approx(16.0)
        assert levels["fast"].gas_price_gwei == pytest.approx(26.0)
        assert levels["instant"].gas_price_gwei == pytest.approx(40.0)

    def test_unsupported_network(self, estimator):
        with pytest.raises(UnsupportedNetwork):
            estimator.gas_cost("solana", "swap")

    def test_unsupported_operation(self, estimator):
        with pytest.raises(UnsupportedOperationType):
            estimator.gas_cost("ethereum", "bridge")

    @pytest.mark.parametrize("params", [
        GasParams(gas_price_gwei=0.0),
        GasParams(gas_price_gwei=-5.0),
        GasParams(native_usd_price=0.0),
        GasParams(complexity_factor=0.0),
        GasParams(usage_ratio=1.5),
    ])
    def test_invalid_params_rejected(self, estimator, params):
        with pytest.raises(InvalidInput):
            estimator.gas_cost("ethereum", "swap", params)

    def test_supported_networks(self, estimator):
        assert set(estimator.supported_networks()) == {"ethereum", "polygon", "bsc", "arbitrum"}


class TestArbitrageGasCosts:
    """Tests for multi-step aggregation."""

    def test_totals_and_bottleneck(self, estimator):
        operations = [
            GasOperation("ethereum", "swap", GasParams(gas_price_gwei=20.0, native_usd_price=2500.0)),
            GasOperation("polygon", "swap"),
        ]
        result = estimator.arbitrage_gas_costs(operations)

        assert result.total_operations == 2
        assert result.total_cost_usd == pytest.approx(6.004608)
        assert result.total_gas_used == 216_000
        assert result.bottleneck.network == "ethereum"
        assert result.max_confirmation_seconds == 60
        assert result.risk_level == RiskLevel.LOW
        assert result.recommendations == ()
        assert sum(step.share_pct for step in result.steps) == pytest.approx(100.0)

    def test_bottleneck_with_repeated_step_numbers(self, estimator):
        operations = [
            GasOperation("polygon", "swap", step=1),
            GasOperation("ethereum", "swap", step=1),
        ]
        result = estimator.arbitrage_gas_costs(operations)
        assert result.bottleneck.network == "ethereum"

    def test_expensive_operation_flagged(self, estimator):
        operations = [
            GasOperation("ethereum", "complex", GasParams(gas_price_gwei=100.0, native_usd_price=2500.0)),
        ]
        result = estimator.arbitrage_gas_costs(operations)

        assert result.total_cost_usd == pytest.approx(160.0)
        assert result.risk_factors == ("HIGH_COST",)
        assert result.risk_level == RiskLevel.HIGH
        assert result.recommendations[0].startswith("HIGH_COST_OPERATION")

    def test_empty_operations_rejected(self, estimator):
        with pytest.raises(InvalidInput):
            estimator.arbitrage_gas_costs([])


class TestOptimizeGasStrategy:
    """Tests for strategy selection."""

    def test_high_priority_wins_large_profit(self, estimator, two_swaps):
        plan = estimator.optimize_gas_strategy(100.0, two_swaps)

        assert plan.base_costs.total_cost_usd == pytest.approx(12.0)
        assert plan.recommended.key == "high_priority"
        assert plan.recommended.composite_score == pytest.approx(0.73226)
        assert plan.recommended.net_profit == pytest.approx(82.0)
        assert [e.key for e in plan.evaluations] == ["standard", "batch", "high_priority", "flash_loan"]

    def test_batch_wins_thin_profit(self, estimator, two_swaps):
        plan = estimator.optimize_gas_strategy(20.0, two_swaps)
        assert plan.recommended.key == "batch"
        assert plan.recommended.gas_cost_usd == pytest.approx(8.4)
        assert plan.recommended.net_profit == pytest.approx(11.6)

    def test_only_positive_net_is_viable(self, estimator, two_swaps):
        plan = estimator.optimize_gas_strategy(10.0, two_swaps)
        viable = [e.key for e in plan.evaluations if e.is_viable]
        assert viable == ["batch"]
        assert plan.recommended.key == "batch"

    def test_no_viable_strategy(self, estimator, two_swaps):
        plan = estimator.optimize_gas_strategy(5.0, two_swaps)
        assert plan.recommended is None
        assert not plan.has_viable_strategy

    def test_time_limit_excludes_slow_strategies(self, estimator, two_swaps):
        plan = estimator.optimize_gas_strategy(100.0, two_swaps, TimeConstraints(max_time_seconds=50))
        viable = {e.key for e in plan.evaluations if e.is_viable}
        assert viable == {"high_priority", "flash_loan"}
        assert plan.recommended.key == "high_priority"
        standard = plan.evaluations[0]
        assert standard.time_score == 0

    def test_non_positive_time_limit_rejected(self, estimator, two_swaps):
        with pytest.raises(InvalidInput):
            estimator.optimize_gas_strategy(100.0, two_swaps, TimeConstraints(max_time_seconds=0))
