"""
Pool liquidity validation and AMM impact models.
"""

from arbengine.liquidity.amm import (
    AMMModel,
    ConcentratedLiquidityModel,
    ConstantProductModel,
    ImpactResult,
    StableSwapModel,
    constant_product_impact,
)
from arbengine.liquidity.validator import LiquidityValidator, LiquidityValidation

__all__ = [
    "AMMModel",
    "ConcentratedLiquidityModel",
    "ConstantProductModel",
    "ImpactResult",
    "LiquidityValidation",
    "LiquidityValidator",
    "StableSwapModel",
    "constant_product_impact",
]
