"""
Pool liquidity validation.
Checks a trade against pool depth using the rules of the pool's AMM family.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from arbengine.config import EngineConfig
from arbengine.errors import InvalidInput
from arbengine.formulas import to_precision
from arbengine.liquidity.amm import AMM_MODELS, ImpactResult, constant_product_impact, model_for
from arbengine.logger import get_logger
from arbengine.models import PoolReserves, ProtocolFamily, RiskLevel


logger = get_logger("liquidity")


@dataclass(frozen=True)
class ProtocolRule:
    """Acceptable trade-to-pool ratios for one AMM family."""
    family: ProtocolFamily
    low_ratio: float
    medium_ratio: float
    max_trade_ratio: float
    min_liquidity_usd: float
    default_fee_rate: float

    def tier_for(self, ratio: float) -> RiskLevel:
        if ratio < self.low_ratio:
            return RiskLevel.LOW
        if ratio < self.medium_ratio:
            return RiskLevel.MEDIUM
        if ratio < self.max_trade_ratio:
            return RiskLevel.HIGH
        return RiskLevel.CRITICAL


PROTOCOL_RULES: Dict[ProtocolFamily, ProtocolRule] = {
    ProtocolFamily.CONSTANT_PRODUCT: ProtocolRule(
        family=ProtocolFamily.CONSTANT_PRODUCT,
        low_ratio=0.01,
        medium_ratio=0.05,
        max_trade_ratio=0.10,
        min_liquidity_usd=1_000.0,
        default_fee_rate=0.003,
    ),
    ProtocolFamily.CONCENTRATED_LIQUIDITY: ProtocolRule(
        family=ProtocolFamily.CONCENTRATED_LIQUIDITY,
        low_ratio=0.02,
        medium_ratio=0.08,
        max_trade_ratio=0.15,
        min_liquidity_usd=500.0,
        default_fee_rate=0.003,
    ),
    ProtocolFamily.STABLE_SWAP: ProtocolRule(
        family=ProtocolFamily.STABLE_SWAP,
        low_ratio=0.05,
        medium_ratio=0.15,
        max_trade_ratio=0.30,
        min_liquidity_usd=10_000.0,
        default_fee_rate=0.0004,
    ),
}


@dataclass(frozen=True)
class ProtocolValidation:
    """Family-specific verdict for one trade."""
    protocol: str
    family: ProtocolFamily
    trade_ratio: float
    risk_tier: RiskLevel
    max_trade_ratio: float
    min_liquidity_usd: float
    liquidity_check: bool
    fee_rate: float
    impact: ImpactResult
    is_valid: bool


@dataclass(frozen=True)
class LiquidityMetrics:
    total_liquidity_usd: float
    volume_24h: float
    fees_24h: float
    volume_to_liquidity_ratio: float
    utilization: float
    is_liquidity_adequate: bool


@dataclass(frozen=True)
class LiquidityRisk:
    type: str
    score: float
    description: str


@dataclass(frozen=True)
class LiquidityValidation:
    """Full result of validating a trade against a pool."""
    is_valid: bool
    trade_amount_usd: float
    trade_ratio: float
    risk_tier: RiskLevel
    protocol: ProtocolValidation
    metrics: LiquidityMetrics
    risks: Tuple[LiquidityRisk, ...]
    risk_score: float
    recommendations: Tuple[str, ...]

    @property
    def impact(self) -> ImpactResult:
        return self.protocol.impact

    @property
    def family(self) -> ProtocolFamily:
        return self.protocol.family


class LiquidityValidator:
    """
    Validates trades against pool depth.

    The trade-to-pool ratio is measured against the shallower side of the
    pool. Each AMM family has its own tiers and maximum ratio; pools whose
    protocol is not recognised are held to the constant-product rule.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = (config or EngineConfig()).liquidity
        self.rules = dict(PROTOCOL_RULES)

    def constant_product_impact(
        self,
        reserves: PoolReserves,
        amount_in: float,
        fee_rate: Optional[float] = None,
    ) -> ImpactResult:
        """Constant-product impact of ``amount_in`` native units against ``reserves``."""
        if fee_rate is None:
            fee_rate = reserves.fee_rate if reserves.fee_rate is not None else 0.003
        return constant_product_impact(
            reserves.reserve_in, reserves.reserve_out, amount_in, fee_rate
        )

    def validate_by_protocol(self, pool: PoolReserves, trade_amount: float) -> ProtocolValidation:
        """
        Validate a USD trade amount with the rules of the pool's family.

        Args:
            pool: Reserve snapshot of the pool
            trade_amount: Trade size in USD

        Returns:
            ProtocolValidation with ratio, tier and impact
        """
        self._validate_pool(pool, trade_amount)

        family = pool.family
        rule = self.rules.get(family, self.rules[ProtocolFamily.CONSTANT_PRODUCT])
        fee_rate = pool.fee_rate if pool.fee_rate is not None else rule.default_fee_rate

        trade_ratio = trade_amount / pool.min_side_usd
        risk_tier = rule.tier_for(trade_ratio)
        liquidity_check = pool.min_side_usd >= rule.min_liquidity_usd

        # Impact formulas work in native units of the input token
        price_in_usd = pool.reserve_in_usd / pool.reserve_in
        amount_in = trade_amount / price_in_usd
        impact = model_for(family).compute_impact(pool, amount_in, fee_rate)

        is_valid = liquidity_check and trade_ratio < rule.max_trade_ratio

        logger.debug(
            "Protocol validation",
            protocol=pool.protocol,
            family=family.value,
            trade_ratio=f"{trade_ratio:.4f}",
            tier=risk_tier.value,
            impact=f"{impact.impact_pct:.4f}%",
            valid=is_valid,
        )

        return ProtocolValidation(
            protocol=pool.protocol,
            family=family,
            trade_ratio=to_precision(trade_ratio),
            risk_tier=risk_tier,
            max_trade_ratio=rule.max_trade_ratio,
            min_liquidity_usd=rule.min_liquidity_usd,
            liquidity_check=liquidity_check,
            fee_rate=fee_rate,
            impact=impact,
            is_valid=is_valid,
        )

    def validate_pool_liquidity(self, pool: PoolReserves, trade_amount: float) -> LiquidityValidation:
        """
        Validate a trade against a pool.

        Args:
            pool: Reserve snapshot of the pool
            trade_amount: Trade size in USD

        Returns:
            LiquidityValidation; ``is_valid`` is False when the trade is too
            large for the pool family or the pool is below its minimum depth
        """
        if trade_amount is None or trade_amount <= 0:
            raise InvalidInput(f"Trade amount must be positive (got {trade_amount})")
        if trade_amount < self.config.min_trade_size_usd:
            raise InvalidInput(
                f"Trade amount ${trade_amount:,.2f} is below the minimum "
                f"${self.config.min_trade_size_usd:,.2f}"
            )
        if trade_amount > self.config.max_trade_size_usd:
            raise InvalidInput(
                f"Trade amount ${trade_amount:,.2f} exceeds the maximum "
                f"${self.config.max_trade_size_usd:,.2f}"
            )

        protocol = self.validate_by_protocol(pool, trade_amount)
        metrics = self._liquidity_metrics(pool)
        risks = self._assess_risks(metrics)
        risk_score = to_precision(sum(risk.score for risk in risks))
        recommendations = self._recommendations(protocol)

        return LiquidityValidation(
            is_valid=protocol.is_valid,
            trade_amount_usd=trade_amount,
            trade_ratio=protocol.trade_ratio,
            risk_tier=protocol.risk_tier,
            protocol=protocol,
            metrics=metrics,
            risks=risks,
            risk_score=risk_score,
            recommendations=recommendations,
        )

    def _validate_pool(self, pool: PoolReserves, trade_amount: float) -> None:
        if pool is None:
            raise InvalidInput("Pool reserves are required")
        if trade_amount is None or trade_amount <= 0:
            raise InvalidInput(f"Trade amount must be positive (got {trade_amount})")
        if pool.reserve_in <= 0 or pool.reserve_out <= 0:
            raise InvalidInput("Pool reserves must be positive")
        if pool.reserve_in_usd <= 0 or pool.reserve_out_usd <= 0:
            raise InvalidInput("Pool USD reserves must be positive")

    def _liquidity_metrics(self, pool: PoolReserves) -> LiquidityMetrics:
        total = pool.total_liquidity_usd
        volume_ratio = pool.volume_24h / total if pool.volume_24h > 0 else 0.0
        return LiquidityMetrics(
            total_liquidity_usd=to_precision(total),
            volume_24h=pool.volume_24h,
            fees_24h=pool.fees_24h,
            volume_to_liquidity_ratio=to_precision(volume_ratio),
            utilization=to_precision(min(volume_ratio, 1.0)),
            is_liquidity_adequate=total >= self.config.min_liquidity_usd,
        )

    def _assess_risks(self, metrics: LiquidityMetrics) -> Tuple[LiquidityRisk, ...]:
        risks = []
        if not metrics.is_liquidity_adequate:
            risks.append(LiquidityRisk(
                type="INSUFFICIENT_LIQUIDITY",
                score=0.8,
                description="Pool liquidity below the recommended minimum",
            ))
        if metrics.utilization < 0.1:
            risks.append(LiquidityRisk(
                type="LOW_UTILIZATION",
                score=0.3,
                description="Low 24h volume relative to pool size",
            ))
        return tuple(risks)

    def _recommendations(self, protocol: ProtocolValidation) -> Tuple[str, ...]:
        recommendations = []
        if protocol.impact.impact_pct > self.config.max_price_impact * 100:
            recommendations.append(
                f"REDUCE_TRADE_SIZE: price impact {protocol.impact.impact_pct:.2f}%"
            )
        if protocol.risk_tier == RiskLevel.HIGH:
            recommendations.append("SPLIT_TRADE: consider splitting across transactions")
        if protocol.risk_tier == RiskLevel.CRITICAL:
            recommendations.append("AVOID_TRADE: trade too large for this pool")
        if not protocol.liquidity_check:
            recommendations.append("FIND_DEEPER_POOL: pool below family minimum liquidity")
        return tuple(recommendations)

    def get_validator_stats(self) -> dict:
        """Get validator configuration summary."""
        return {
            "supported_families": [family.value for family in AMM_MODELS],
            "max_trade_ratios": {
                family.value: rule.max_trade_ratio for family, rule in self.rules.items()
            },
            "min_trade_size_usd": self.config.min_trade_size_usd,
            "max_trade_size_usd": self.config.max_trade_size_usd,
            "max_price_impact": self.config.max_price_impact,
        }
