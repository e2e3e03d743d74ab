"""
Gas cost estimation across supported networks.
"""

from arbengine.gas.estimator import (
    ArbitrageGasCosts,
    GasCostEstimator,
    GasCostResult,
    GasOperation,
    GasParams,
    GasStrategyPlan,
    StrategyEvaluation,
    TimeConstraints,
)
from arbengine.gas.networks import NETWORKS, STRATEGY_CATALOGUE

__all__ = [
    "ArbitrageGasCosts",
    "GasCostEstimator",
    "GasCostResult",
    "GasOperation",
    "GasParams",
    "GasStrategyPlan",
    "NETWORKS",
    "STRATEGY_CATALOGUE",
    "StrategyEvaluation",
    "TimeConstraints",
]
