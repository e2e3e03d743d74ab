"""
Structured error kinds raised by the analysis engine.

Every error carries a kind, a message and (once it has passed through the
engine facade) the name of the stage that failed.
"""

from enum import Enum
from typing import Dict, Optional


class ErrorKind(Enum):
    """Kinds of engine failure."""
    INVALID_INPUT = "invalid_input"
    UNSUPPORTED_NETWORK = "unsupported_network"
    UNSUPPORTED_OPERATION_TYPE = "unsupported_operation_type"
    STALE_DATA = "stale_data"
    SIMULATED_DATA_REJECTED = "simulated_data_rejected"
    INSUFFICIENT_LIQUIDITY = "insufficient_liquidity"
    NO_VIABLE_GAS_STRATEGY = "no_viable_gas_strategy"
    DATA_UNAVAILABLE = "data_unavailable"


class EngineError(Exception):
    """Base class for all engine errors."""

    kind: ErrorKind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "stage": self.stage,
        }

    def __str__(self) -> str:
        if self.stage:
            return f"[{self.stage}] {self.kind.value}: {self.message}"
        return f"{self.kind.value}: {self.message}"


class InvalidInput(EngineError):
    """Non-positive price, amount or reserve, or otherwise malformed input."""
    kind = ErrorKind.INVALID_INPUT


class UnsupportedNetwork(EngineError):
    kind = ErrorKind.UNSUPPORTED_NETWORK


class UnsupportedOperationType(EngineError):
    kind = ErrorKind.UNSUPPORTED_OPERATION_TYPE


class StaleData(EngineError):
    """Input timestamp is older than the configured max age."""
    kind = ErrorKind.STALE_DATA


class SimulatedDataRejected(EngineError):
    """Input is tagged as simulated or otherwise non-real."""
    kind = ErrorKind.SIMULATED_DATA_REJECTED


class InsufficientLiquidity(EngineError):
    kind = ErrorKind.INSUFFICIENT_LIQUIDITY


class NoViableGasStrategy(EngineError):
    kind = ErrorKind.NO_VIABLE_GAS_STRATEGY


class DataUnavailable(EngineError):
    """An external collaborator failed or timed out."""
    kind = ErrorKind.DATA_UNAVAILABLE
