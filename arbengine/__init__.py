"""
Arbitrage math and opportunity analysis engine.
"""

from arbengine.config import EngineConfig
from arbengine.core.calculator import SpreadAndProfitCalculator
from arbengine.engine.facade import ENGINE_VERSION, ArbitrageEngine
from arbengine.engine.scanner import OpportunityScanner
from arbengine.errors import EngineError, ErrorKind
from arbengine.gas.estimator import GasCostEstimator
from arbengine.liquidity.validator import LiquidityValidator
from arbengine.logger import setup_logging

__version__ = ENGINE_VERSION

__all__ = [
    "ArbitrageEngine",
    "EngineConfig",
    "EngineError",
    "ErrorKind",
    "GasCostEstimator",
    "LiquidityValidator",
    "OpportunityScanner",
    "SpreadAndProfitCalculator",
    "setup_logging",
]
