"""
Static gas tables per network and the execution strategy catalogue.
"""

from dataclasses import dataclass
from typing import Dict, Tuple

from arbengine.models import OperationType


@dataclass(frozen=True)
class NetworkGasConfig:
    """Gas parameters for one network. Fees are in gwei."""
    name: str
    chain_id: int
    gas_limits: Dict[OperationType, int]
    base_fee_gwei: float
    priority_fee_gwei: float
    max_fee_multiplier: float
    base_confirmation_seconds: float

    @property
    def default_gas_price_gwei(self) -> float:
        return self.base_fee_gwei + self.priority_fee_gwei


def _limits(transfer: int, swap: int, flashloan: int, arbitrage: int, complex_: int):
    return {
        OperationType.TRANSFER: transfer,
        OperationType.SWAP: swap,
        OperationType.FLASHLOAN: flashloan,
        OperationType.ARBITRAGE: arbitrage,
        OperationType.COMPLEX: complex_,
    }


NETWORKS: Dict[str, NetworkGasConfig] = {
    "ethereum": NetworkGasConfig(
        name="ethereum",
        chain_id=1,
        gas_limits=_limits(21_000, 150_000, 300_000, 450_000, 800_000),
        base_fee_gwei=20.0,
        priority_fee_gwei=2.0,
        max_fee_multiplier=2.0,
        base_confirmation_seconds=60.0,
    ),
    "polygon": NetworkGasConfig(
        name="polygon",
        chain_id=137,
        gas_limits=_limits(21_000, 120_000, 250_000, 350_000, 600_000),
        base_fee_gwei=30.0,
        priority_fee_gwei=30.0,
        max_fee_multiplier=1.5,
        base_confirmation_seconds=10.0,
    ),
    "bsc": NetworkGasConfig(
        name="bsc",
        chain_id=56,
        gas_limits=_limits(21_000, 100_000, 200_000, 300_000, 500_000),
        base_fee_gwei=3.0,
        priority_fee_gwei=1.0,
        max_fee_multiplier=1.2,
        base_confirmation_seconds=10.0,
    ),
    "arbitrum": NetworkGasConfig(
        name="arbitrum",
        chain_id=42161,
        gas_limits=_limits(21_000, 180_000, 400_000, 600_000, 1_000_000),
        base_fee_gwei=0.1,
        priority_fee_gwei=0.01,
        max_fee_multiplier=1.1,
        base_confirmation_seconds=10.0,
    ),
}


# Cost multipliers applied on request
OPTIMIZATION_FACTORS: Dict[str, float] = {
    "batchTransactions": 0.7,
    "gasTokens": 0.85,
    "flashLoans": 1.2,
    "crossChain": 1.5,
    "highCongestion": 2.0,
}

PRIORITY_LEVELS: Dict[str, Tuple[float, str]] = {
    "slow": (0.8, "5-10 minutes"),
    "standard": (1.0, "2-5 minutes"),
    "fast": (1.3, "30-60 seconds"),
    "instant": (2.0, "10-30 seconds"),
}


@dataclass(frozen=True)
class GasStrategy:
    """One way of executing the arbitrage, relative to the base cost and time."""
    key: str
    name: str
    cost_multiplier: float
    time_multiplier: float
    success_rate: float
    modifications: Tuple[str, ...] = ()


# Order matters: ties between strategies go to the earlier entry
STRATEGY_CATALOGUE: Tuple[GasStrategy, ...] = (
    GasStrategy("standard", "Standard Execution", 1.0, 1.0, 0.85),
    GasStrategy("batch", "Batch Transactions", 0.7, 1.1, 0.90, ("batch_operations",)),
    GasStrategy("high_priority", "High Priority Gas", 1.5, 0.3, 0.95, ("priority_gas",)),
    GasStrategy(
        "flash_loan", "Flash Loan Optimization", 1.08, 0.8, 0.88,
        ("flash_loans", "reduced_steps"),
    ),
)
