"""
Tests for spread, net profit and risk scoring.
"""

import pytest

from arbengine.core.calculator import (
    ExecutionRiskInputs,
    MarketRiskInputs,
    ProfitCosts,
    SpreadAndProfitCalculator,
)
from arbengine.errors import InvalidInput
from arbengine.models import RecommendedAction, RiskLevel, SpreadDirection


@pytest.fixture
def calculator():
    """Create a calculator with default configuration."""
    return SpreadAndProfitCalculator()


class TestSpread:
    """Tests for spread calculation."""

    @pytest.mark.parametrize("a,b", [(100.0, 105.0), (0.998, 1.002), (2500.0, 2437.5), (1e-6, 3e-6)])
    def test_spread_is_symmetric(self, calculator, a, b):
        """Swapping the prices keeps the magnitude."""
        assert calculator.spread(a, b).spread_pct == calculator.spread(b, a).spread_pct

    def test_spread_of_equal_prices_is_zero(self, calculator):
        result = calculator.spread(42.0, 42.0)
        assert result.spread_pct == 0
        assert result.direction == SpreadDirection.NONE
        assert not result.is_valid_spread

    def test_spread_measured_against_lower_price(self, calculator):
        result = calculator.spread(100.0, 105.0)
        assert result.spread_pct == pytest.approx(5.0)
        assert result.spread_abs == pytest.approx(5.0)
        assert result.lower_price == 100.0
        assert result.higher_price == 105.0

    def test_direction_buys_the_cheaper_side(self, calculator):
        assert calculator.spread(100.0, 105.0).direction == SpreadDirection.BUY_A_SELL_B
        assert calculator.spread(105.0, 100.0).direction == SpreadDirection.BUY_B_SELL_A

    @pytest.mark.parametrize("a,b", [(0.0, 100.0), (100.0, -1.0), (None, 100.0)])
    def test_non_positive_price_rejected(self, calculator, a, b):
        with pytest.raises(InvalidInput):
            calculator.spread(a, b)

    def test_spread_is_idempotent(self, calculator):
        assert calculator.spread(1234.5678, 1240.1) == calculator.spread(1234.5678, 1240.1)


class TestNetProfit:
    """Tests for net profit calculation."""

    def test_reference_example(self, calculator):
        """Buy 10 at 100, sell at 105 with gas, protocol, slippage and bridge costs."""
        result = calculator.net_profit(
            100, 105, 10,
            ProfitCosts(gas_fee=5, protocol_fee_rate=0.003, slippage_rate=0.01, bridge_fee=2),
        )

        assert result.gross_profit == 50
        assert result.costs.protocol_fee_usd == pytest.approx(3.15)
        assert result.costs.slippage_cost_usd == pytest.approx(10.0)
        assert result.costs.bridge_fee_usd == 2
        assert result.total_costs == pytest.approx(20.15)
        assert result.net_profit == pytest.approx(29.85)
        assert result.net_profit > 0
        assert result.is_profitable

    def test_profit_floor_is_share_of_trade_value(self, calculator):
        # Net profit of 0.5 on a $1000 trade is below the 0.1% floor
        result = calculator.net_profit(100, 100.05, 10)
        assert result.net_profit == pytest.approx(0.5)
        assert result.min_profit_floor == pytest.approx(1.0)
        assert not result.is_profitable

    def test_losing_trade(self, calculator):
        result = calculator.net_profit(105, 100, 10, ProfitCosts(gas_fee=1))
        assert result.gross_profit == -50
        assert result.cost_ratio is None
        assert result.efficiency == 0
        assert not result.is_profitable

    def test_bridge_fee_absent_for_same_chain(self, calculator):
        result = calculator.net_profit(100, 105, 10)
        assert result.costs.bridge_fee_usd is None
        assert result.net_profit == result.gross_profit

    @pytest.mark.parametrize("args", [(0, 105, 10), (100, 0, 10), (100, 105, 0), (100, 105, -1)])
    def test_invalid_inputs_rejected(self, calculator, args):
        with pytest.raises(InvalidInput):
            calculator.net_profit(*args)

    def test_negative_cost_rejected(self, calculator):
        with pytest.raises(InvalidInput):
            calculator.net_profit(100, 105, 10, ProfitCosts(gas_fee=-1))

    def test_net_profit_is_idempotent(self, calculator):
        costs = ProfitCosts(gas_fee=3.3, protocol_fee_rate=0.0025, slippage_rate=0.004)
        first = calculator.net_profit(1999.99, 2011.37, 3.7, costs)
        second = calculator.net_profit(1999.99, 2011.37, 3.7, costs)
        assert first == second


class TestRiskScore:
    """Tests for composite risk scoring."""

    def _score(self, calculator, slippage=0.0, seconds=0.0, volatility=0.0, liquidity=1e9, congestion=0.0):
        return calculator.risk_score(
            ExecutionRiskInputs(expected_slippage=slippage, execution_seconds=seconds),
            MarketRiskInputs(volatility=volatility, liquidity_usd=liquidity, congestion_pct=congestion),
        )

    def test_minimal_risk(self, calculator):
        result = self._score(calculator)
        assert result.score == 0
        assert result.tier == RiskLevel.LOW
        assert result.recommended_action == RecommendedAction.EXECUTE
        assert result.is_acceptable

    def test_maximal_risk_is_clamped(self, calculator):
        result = self._score(
            calculator, slippage=1.0, seconds=600, volatility=5.0, liquidity=0, congestion=400
        )
        assert result.score == 1.0
        assert result.tier == RiskLevel.CRITICAL
        assert result.recommended_action == RecommendedAction.AVOID
        assert not result.is_acceptable

    @pytest.mark.parametrize("slippage,seconds,volatility,liquidity,congestion", [
        (0.01, 12, 0.03, 50_000, 40),
        (0.2, 100, 0.5, 10, 100),
        (0.0, 0, 0.0, 0, 0),
        (0.049, 29, 0.099, 99_999, 99),
    ])
    def test_score_always_in_unit_interval(self, calculator, slippage, seconds, volatility, liquidity, congestion):
        result = self._score(calculator, slippage, seconds, volatility, liquidity, congestion)
        assert 0.0 <= result.score <= 1.0
        for factor in result.factors:
            assert 0.0 <= factor.score <= 1.0

    def test_weights_sum_to_one(self, calculator):
        result = self._score(calculator, 0.01, 10, 0.02, 50_000, 30)
        assert result.weights_total == pytest.approx(1.0)
        assert {f.name for f in result.factors} == {
            "slippage", "execution_time", "volatility", "liquidity", "congestion",
        }

    def test_factor_normalisation(self, calculator):
        result = self._score(calculator, slippage=0.025, seconds=15, volatility=0.05, liquidity=25_000, congestion=50)
        assert result.factor("slippage").score == pytest.approx(0.5)
        assert result.factor("execution_time").score == pytest.approx(0.5)
        assert result.factor("volatility").score == pytest.approx(0.5)
        assert result.factor("liquidity").score == pytest.approx(0.75)
        assert result.factor("congestion").score == pytest.approx(0.5)

    @pytest.mark.parametrize("score,tier", [
        (0.0, RiskLevel.LOW),
        (0.2499, RiskLevel.LOW),
        (0.25, RiskLevel.MEDIUM),
        (0.4999, RiskLevel.MEDIUM),
        (0.5, RiskLevel.HIGH),
        (0.7499, RiskLevel.HIGH),
        (0.75, RiskLevel.CRITICAL),
        (1.0, RiskLevel.CRITICAL),
    ])
    def test_bucket_boundaries(self, calculator, score, tier):
        assert calculator.classify_risk(score) == tier

    def test_negative_input_rejected(self, calculator):
        with pytest.raises(InvalidInput):
            self._score(calculator, volatility=-0.1)


class TestPriceImpact:
    """The calculator delegates to the shared constant-product formula."""

    def test_matches_constant_product(self, calculator):
        result = calculator.price_impact(10.0, 1000.0, 2_500_000.0, fee_rate=0.003)
        after_fee = 10.0 * 0.997
        assert result.amount_out == pytest.approx(after_fee * 2_500_000.0 / (1000.0 + after_fee))
        assert result.impact_pct == pytest.approx(after_fee / (1000.0 + after_fee) * 100)

    def test_price_impact_is_idempotent(self, calculator):
        assert calculator.price_impact(3.3, 700.0, 900.0) == calculator.price_impact(3.3, 700.0, 900.0)
