"""
Pure arbitrage math: spread, net profit, risk scoring.
"""

from arbengine.core.calculator import SpreadAndProfitCalculator
from arbengine.formulas import spread_percentage, to_precision

__all__ = [
    "SpreadAndProfitCalculator",
    "spread_percentage",
    "to_precision",
]
