"""
Configuration management for the arbitrage analysis engine.
Uses Pydantic for validation and type safety.
"""

from typing import Dict, List

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CalculatorConfig(BaseSettings):
    """Spread, profit and risk-scoring thresholds."""

    # 0.1% of trade value is the minimum net profit worth acting on
    min_profit_threshold: float = Field(0.001, alias="MIN_PROFIT_THRESHOLD")
    max_slippage: float = Field(0.05, alias="MAX_SLIPPAGE")

    # Risk tier boundaries: [0, low) LOW, [low, medium) MEDIUM, ...
    risk_low_threshold: float = Field(0.25, alias="RISK_LOW_THRESHOLD")
    risk_medium_threshold: float = Field(0.5, alias="RISK_MEDIUM_THRESHOLD")
    risk_high_threshold: float = Field(0.75, alias="RISK_HIGH_THRESHOLD")
    max_acceptable_risk: float = Field(0.7, alias="MAX_ACCEPTABLE_RISK")

    # Normalisation references for risk sub-scores
    reference_liquidity_usd: float = Field(100_000.0, alias="REFERENCE_LIQUIDITY_USD")
    max_execution_seconds: float = Field(30.0, alias="MAX_EXECUTION_SECONDS")
    max_volatility: float = Field(0.1, alias="MAX_VOLATILITY")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    @field_validator(
        "min_profit_threshold", "max_slippage", "max_acceptable_risk",
        "risk_low_threshold", "risk_medium_threshold", "risk_high_threshold",
    )
    @classmethod
    def validate_percentage(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("Percentage must be between 0.0 and 1.0")
        return v

    @model_validator(mode="after")
    def validate_bucket_order(self) -> "CalculatorConfig":
        if not self.risk_low_threshold < self.risk_medium_threshold < self.risk_high_threshold:
            raise ValueError("Risk thresholds must be strictly increasing")
        return self


class RiskWeightsConfig(BaseSettings):
    """Weights of the composite risk score. Must sum to 1."""

    volatility: float = Field(0.25, alias="RISK_WEIGHT_VOLATILITY")
    liquidity: float = Field(0.20, alias="RISK_WEIGHT_LIQUIDITY")
    slippage: float = Field(0.20, alias="RISK_WEIGHT_SLIPPAGE")
    execution_time: float = Field(0.15, alias="RISK_WEIGHT_EXECUTION_TIME")
    congestion: float = Field(0.20, alias="RISK_WEIGHT_CONGESTION")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    @model_validator(mode="after")
    def validate_sum(self) -> "RiskWeightsConfig":
        weights = self.as_dict()
        if any(w < 0 for w in weights.values()):
            raise ValueError("Risk weights must be non-negative")
        if abs(sum(weights.values()) - 1.0) > 1e-9:
            raise ValueError("Risk weights must sum to 1.0")
        return self

    def as_dict(self) -> Dict[str, float]:
        return {
            "slippage": self.slippage,
            "execution_time": self.execution_time,
            "volatility": self.volatility,
            "liquidity": self.liquidity,
            "congestion": self.congestion,
        }


class LiquidityConfig(BaseSettings):
    """Pool validation limits."""

    min_trade_size_usd: float = Field(100.0, alias="MIN_TRADE_SIZE_USD")
    max_trade_size_usd: float = Field(1_000_000.0, alias="MAX_TRADE_SIZE_USD")
    max_price_impact: float = Field(0.05, alias="MAX_PRICE_IMPACT")
    min_liquidity_usd: float = Field(10_000.0, alias="MIN_LIQUIDITY_USD")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)


class GasConfig(BaseSettings):
    """Gas estimation parameters."""

    usage_ratio: float = Field(0.8, alias="GAS_USAGE_RATIO")
    high_cost_usd: float = Field(100.0, alias="GAS_HIGH_COST_USD")
    slow_execution_seconds: float = Field(300.0, alias="GAS_SLOW_EXECUTION_SECONDS")
    default_max_time_seconds: float = Field(300.0, alias="GAS_MAX_TIME_SECONDS")

    # Native token prices are injected, never fetched by the estimator
    native_usd_prices: Dict[str, float] = Field(
        default_factory=lambda: {
            "ethereum": 2500.0,
            "polygon": 0.8,
            "bsc": 300.0,
            "arbitrum": 2500.0,
        },
        alias="NATIVE_USD_PRICES",
    )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    @field_validator("usage_ratio")
    @classmethod
    def validate_ratio(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError("Gas usage ratio must be in (0, 1]")
        return v


class ScannerConfig(BaseSettings):
    """Opportunity scanning parameters."""

    min_margin_bps: float = Field(50.0, alias="MIN_MARGIN_BPS")
    venue_timeout_seconds: float = Field(5.0, alias="VENUE_TIMEOUT_SECONDS")
    reserve_timeout_seconds: float = Field(5.0, alias="RESERVE_TIMEOUT_SECONDS")
    max_concurrency: int = Field(8, alias="SCAN_MAX_CONCURRENCY")
    # Trade size when the caller gives none, converted to token units per candidate
    default_amount_usd: float = Field(1000.0, alias="SCAN_DEFAULT_AMOUNT_USD")
    top_opportunities: int = Field(10, alias="SCAN_TOP_OPPORTUNITIES")
    bridge_fee_usd: float = Field(10.0, alias="BRIDGE_FEE_USD")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)


class FreshnessConfig(BaseSettings):
    """Input freshness and anti-simulation policy."""

    max_data_age_seconds: float = Field(120.0, alias="MAX_DATA_AGE_SECONDS")
    decision_ttl_seconds: float = Field(30.0, alias="DECISION_TTL_SECONDS")
    # Timestamps further than this ahead of the clock are rejected
    max_clock_skew_seconds: float = Field(5.0, alias="MAX_CLOCK_SKEW_SECONDS")
    simulated_source_tags: List[str] = Field(
        default_factory=lambda: ["simulation", "simulated", "mock", "test", "demo", "fake"],
        alias="SIMULATED_SOURCE_TAGS",
    )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)


class MonitoringConfig(BaseSettings):
    """Logging configuration."""

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    debug_mode: bool = Field(False, alias="DEBUG_MODE")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)


class EngineConfig:
    """Master configuration class that aggregates all config sections."""

    def __init__(
        self,
        calculator: CalculatorConfig = None,
        risk_weights: RiskWeightsConfig = None,
        liquidity: LiquidityConfig = None,
        gas: GasConfig = None,
        scanner: ScannerConfig = None,
        freshness: FreshnessConfig = None,
        monitoring: MonitoringConfig = None,
    ):
        self.calculator = calculator or CalculatorConfig()
        self.risk_weights = risk_weights or RiskWeightsConfig()
        self.liquidity = liquidity or LiquidityConfig()
        self.gas = gas or GasConfig()
        self.scanner = scanner or ScannerConfig()
        self.freshness = freshness or FreshnessConfig()
        self.monitoring = monitoring or MonitoringConfig()

    @property
    def is_debug(self) -> bool:
        return self.monitoring.debug_mode
