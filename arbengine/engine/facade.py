"""
Arbitrage engine facade.

Runs one opportunity through freshness, liquidity, profit, risk and gas
stages in that order and assembles the final decision. Any stage failure
aborts the analysis; the error is re-raised carrying the stage name.
"""

import asyncio
import re
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from arbengine.config import EngineConfig
from arbengine.core.calculator import (
    ExecutionRiskInputs,
    MarketRiskInputs,
    ProfitAnalysis,
    ProfitCosts,
    SpreadAndProfitCalculator,
)
from arbengine.engine.scanner import BatchScanResult, OpportunityScanner, ScanOptions
from arbengine.errors import (
    DataUnavailable,
    EngineError,
    InsufficientLiquidity,
    InvalidInput,
    NoViableGasStrategy,
    SimulatedDataRejected,
    StaleData,
)
from arbengine.formulas import to_precision
from arbengine.gas.estimator import GasCostEstimator, GasOperation, GasParams, TimeConstraints
from arbengine.liquidity.validator import LiquidityValidator
from arbengine.logger import analysis_logger, get_logger
from arbengine.models import (
    ArbitrageCandidate,
    CostBreakdown,
    MarketSnapshot,
    OperationType,
    OpportunityDecision,
    OpportunityInput,
    RecommendedAction,
)
from arbengine.providers.base import (
    Clock,
    GasOracle,
    PoolReserveProvider,
    PriceFeedProvider,
    SystemClock,
)


logger = get_logger("engine")

ENGINE_VERSION = "1.0.0"

# Execution-time heuristic when the market snapshot has no estimate
BASE_EXECUTION_SECONDS = 30.0
CROSS_CHAIN_TIME_MULTIPLIER = 3.0

DEFAULT_SWAP_COMPLEXITY = 1.2
HIGH_CONGESTION_PCT = 80.0


class AnalysisStage(Enum):
    """Stages of a single analysis, in execution order."""
    FRESHNESS = "freshness"
    LIQUIDITY = "liquidity"
    PROFIT = "profit"
    RISK = "risk"
    GAS = "gas"
    DECISION = "decision"


# Reserve fetch failures happen before an analysis starts
RESERVES_STAGE = "reserves"


@dataclass(frozen=True)
class AnalysisConstraints:
    max_time_seconds: Optional[float] = None


@dataclass
class AnalyzedOpportunity:
    candidate: ArbitrageCandidate
    decision: OpportunityDecision


@dataclass
class CandidateFailure:
    candidate_id: str
    stage: Optional[str]
    kind: str
    message: str


@dataclass
class ScanAndAnalyzeResult:
    scan_summary: Dict[str, Any]
    analyzed_opportunities: List[AnalyzedOpportunity] = field(default_factory=list)
    failures: List[CandidateFailure] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    @property
    def profitable(self) -> List[AnalyzedOpportunity]:
        return [item for item in self.analyzed_opportunities if item.decision.is_profitable]


@dataclass(frozen=True)
class Scenario:
    """What-if overrides for one analysis run."""
    name: str
    trade_amount: Optional[float] = None
    market: Optional[MarketSnapshot] = None
    max_time_seconds: Optional[float] = None


@dataclass
class ScenarioOutcome:
    scenario: Scenario
    decision: Optional[OpportunityDecision] = None
    error: Optional[EngineError] = None

    @property
    def succeeded(self) -> bool:
        return self.decision is not None


@dataclass
class ScenarioReport:
    outcomes: List[ScenarioOutcome]
    best: Optional[ScenarioOutcome] = None


@dataclass
class EngineStats:
    version: str
    component_health: Dict[str, str]
    last_updated: Optional[datetime]
    metrics: Dict[str, Any]
    components: Dict[str, Dict[str, Any]] = field(default_factory=dict)


class ArbitrageEngine:
    """
    Facade over the analysis components.

    Constructed once by the host with its collaborators and passed by
    reference; there is no process-wide instance.

    Usage:
        engine = ArbitrageEngine(price_feed, reserves, gas_oracle, config=config)
        decision = await engine.analyze(opportunity, trade_amount=2.5)
    """

    def __init__(
        self,
        price_feed: PriceFeedProvider,
        reserve_provider: PoolReserveProvider,
        gas_oracle: GasOracle,
        config: Optional[EngineConfig] = None,
        clock: Optional[Clock] = None,
        calculator: Optional[SpreadAndProfitCalculator] = None,
        validator: Optional[LiquidityValidator] = None,
        gas_estimator: Optional[GasCostEstimator] = None,
        scanner: Optional[OpportunityScanner] = None,
    ):
        self.config = config or EngineConfig()
        self.clock = clock or SystemClock()
        self.price_feed = price_feed
        self.reserve_provider = reserve_provider
        self.gas_oracle = gas_oracle

        self.calculator = calculator or SpreadAndProfitCalculator(self.config)
        self.validator = validator or LiquidityValidator(self.config)
        self.gas_estimator = gas_estimator or GasCostEstimator(self.config)
        self.scanner = scanner or OpportunityScanner(
            price_feed, calculator=self.calculator, config=self.config
        )

        self._simulated_tags = {tag.lower() for tag in self.config.freshness.simulated_source_tags}

        # Per-engine metrics
        self._stats_lock = threading.Lock()
        self._analyses = 0
        self._decisions = 0
        self._profitable = 0
        self._failures_by_kind: Dict[str, int] = {}
        self._failures_by_stage: Dict[str, int] = {}
        self._total_duration_ms = 0.0
        self._scans = 0
        self._last_updated: Optional[datetime] = None

    async def analyze(
        self,
        opportunity: OpportunityInput,
        trade_amount: float,
        constraints: Optional[AnalysisConstraints] = None,
    ) -> OpportunityDecision:
        """
        Analyze one opportunity.

        Args:
            opportunity: Quotes, pool and market context for the trade
            trade_amount: Quantity of the token to trade
            constraints: Optional execution deadline

        Returns:
            OpportunityDecision valid until ``expires_at``

        Raises:
            EngineError: The first failing stage's error, with ``stage`` set
        """
        return await self._analyze(opportunity, trade_amount, constraints, self.clock.now())

    async def _analyze(
        self,
        opportunity: OpportunityInput,
        trade_amount: float,
        constraints: Optional[AnalysisConstraints],
        now: datetime,
    ) -> OpportunityDecision:
        constraints = constraints or AnalysisConstraints()
        started = time.perf_counter()
        stage = AnalysisStage.FRESHNESS
        candidate_id = self._describe(opportunity)

        try:
            self._check_freshness(opportunity, now)

            stage = AnalysisStage.LIQUIDITY
            if trade_amount is None or trade_amount <= 0:
                raise InvalidInput(f"Trade amount must be positive (got {trade_amount})")
            trade_value_usd = trade_amount * opportunity.buy_quote.price
            liquidity = self.validator.validate_pool_liquidity(opportunity.pool, trade_value_usd)
            if not liquidity.is_valid:
                raise InsufficientLiquidity(
                    f"Trade of ${trade_value_usd:,.2f} is {liquidity.trade_ratio:.2%} of the "
                    f"pool's shallow side ({liquidity.family.value}, tier {liquidity.risk_tier.value})"
                )

            stage = AnalysisStage.PROFIT
            candidate = ArbitrageCandidate(
                buy_quote=opportunity.buy_quote,
                sell_quote=opportunity.sell_quote,
                token_symbol=opportunity.token_symbol,
                trade_amount=trade_amount,
                timestamp=now,
            )
            slippage_rate = liquidity.impact.impact_pct / 100
            profit = self.calculator.net_profit(
                opportunity.buy_quote.price,
                opportunity.sell_quote.price,
                trade_amount,
                ProfitCosts(
                    gas_fee=0.0,
                    protocol_fee_rate=self._protocol_fee_rate(opportunity),
                    slippage_rate=slippage_rate,
                    bridge_fee=self._bridge_fee(opportunity),
                ),
            )

            stage = AnalysisStage.RISK
            risk = self.calculator.risk_score(
                ExecutionRiskInputs(
                    expected_slippage=slippage_rate,
                    execution_seconds=self._execution_seconds(opportunity),
                ),
                MarketRiskInputs(
                    volatility=opportunity.market.volatility,
                    liquidity_usd=opportunity.pool.min_side_usd,
                    congestion_pct=opportunity.market.congestion_pct,
                ),
            )

            stage = AnalysisStage.GAS
            operations = await self._priced_operations(opportunity, trade_value_usd)
            max_time = constraints.max_time_seconds or self.config.gas.default_max_time_seconds
            plan = self.gas_estimator.optimize_gas_strategy(
                profit.net_profit, operations, TimeConstraints(max_time)
            )
            if plan.recommended is None:
                raise NoViableGasStrategy(
                    f"No gas strategy leaves a profit on ${profit.net_profit:.2f} "
                    f"within {max_time:.0f}s (base gas ${plan.base_costs.total_cost_usd:.2f})"
                )
            strategy = plan.recommended

            stage = AnalysisStage.DECISION
            decision = self._assemble(candidate, profit, risk, strategy, liquidity, now)

        except EngineError as exc:
            exc.stage = stage.value
            self._record_failure(exc, started, now)
            analysis_logger.log_stage_failure(candidate_id, stage.value, exc.kind.value, exc.message)
            raise
        except (ArithmeticError, ValueError) as exc:
            error = InvalidInput(str(exc), stage=stage.value)
            self._record_failure(error, started, now)
            analysis_logger.log_stage_failure(candidate_id, stage.value, error.kind.value, error.message)
            raise error from exc

        duration_ms = self._record_success(decision, started, now)
        analysis_logger.log_decision(
            candidate_id=decision.candidate.candidate_id,
            net_profit_usd=decision.net_profit_usd,
            risk_score=decision.risk.score,
            recommendation=decision.recommendation.value,
            strategy=decision.gas_strategy.key,
            duration_ms=duration_ms,
        )
        return decision

    async def scan_and_analyze(
        self,
        tokens: Iterable[str],
        options: Optional[ScanOptions] = None,
    ) -> ScanAndAnalyzeResult:
        """
        Scan tokens and analyze every candidate found.

        Candidate failures (reserve fetch or any analysis stage) are
        recorded and never abort the run. Every candidate is checked for
        freshness against the same instant, read once the scan completes.
        """
        options = options or ScanOptions()
        batch = await self.scanner.scan_multiple_tokens(tokens, options)
        with self._stats_lock:
            self._scans += 1
        now = self.clock.now()

        jobs: List[Tuple[ArbitrageCandidate, MarketSnapshot]] = []
        for result in batch.results:
            market = MarketSnapshot(volatility=result.market_conditions.dispersion)
            jobs.extend((candidate, market) for candidate in result.opportunities)

        limit = options.max_concurrency or self.config.scanner.max_concurrency
        semaphore = asyncio.Semaphore(max(1, limit))
        cancel_event = options.cancel_event

        async def run(candidate: ArbitrageCandidate, market: MarketSnapshot):
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    return None
                return await self._analyze_candidate(candidate, market, now)

        outcomes = await asyncio.gather(*(run(c, m) for c, m in jobs))

        summary = self._scan_summary(batch)
        output = ScanAndAnalyzeResult(scan_summary=summary)
        for outcome in outcomes:
            if isinstance(outcome, AnalyzedOpportunity):
                output.analyzed_opportunities.append(outcome)
            elif isinstance(outcome, CandidateFailure):
                output.failures.append(outcome)

        output.analyzed_opportunities.sort(key=lambda item: -item.decision.net_profit_usd)
        output.recommendations = self._recommendations(output)
        summary["analyzed"] = len(output.analyzed_opportunities)
        summary["analysis_failures"] = len(output.failures)
        summary["cancelled"] = bool(cancel_event and cancel_event.is_set())
        return output

    async def analyze_scenarios(
        self,
        opportunity: OpportunityInput,
        trade_amount: float,
        scenarios: Sequence[Scenario],
    ) -> ScenarioReport:
        """
        Re-run the analysis under what-if overrides.

        The best outcome is the profitable decision with the highest net
        profit; failing scenarios keep their error.
        """
        if not scenarios:
            raise InvalidInput("At least one scenario is required")

        now = self.clock.now()
        outcomes: List[ScenarioOutcome] = []
        for scenario in scenarios:
            variant = opportunity
            if scenario.market is not None:
                variant = replace(opportunity, market=scenario.market)
            amount = scenario.trade_amount if scenario.trade_amount is not None else trade_amount
            try:
                decision = await self._analyze(
                    variant, amount, AnalysisConstraints(scenario.max_time_seconds), now
                )
            except EngineError as exc:
                outcomes.append(ScenarioOutcome(scenario=scenario, error=exc))
            else:
                outcomes.append(ScenarioOutcome(scenario=scenario, decision=decision))

        viable = [o for o in outcomes if o.decision is not None and o.decision.is_profitable]
        best = max(viable, key=lambda o: o.decision.net_profit_usd, default=None)
        return ScenarioReport(outcomes=outcomes, best=best)

    def get_engine_stats(self) -> EngineStats:
        """Version, component health and this engine's metrics."""
        components: Dict[str, Dict[str, Any]] = {}
        health: Dict[str, str] = {}
        probes = {
            "calculator": self.calculator.get_calculator_stats,
            "liquidity_validator": self.validator.get_validator_stats,
            "gas_estimator": self.gas_estimator.get_estimator_stats,
            "scanner": self.scanner.get_scanner_stats,
        }
        for name, probe in probes.items():
            try:
                components[name] = probe()
                health[name] = "healthy"
            except Exception as e:
                logger.error("Component health probe failed", component=name, error=str(e))
                health[name] = "unhealthy"

        with self._stats_lock:
            average_ms = self._total_duration_ms / self._analyses if self._analyses else 0.0
            metrics = {
                "analyses": self._analyses,
                "decisions": self._decisions,
                "profitable_decisions": self._profitable,
                "failures_by_kind": dict(self._failures_by_kind),
                "failures_by_stage": dict(self._failures_by_stage),
                "average_duration_ms": round(average_ms, 3),
                "scans": self._scans,
            }
            last_updated = self._last_updated

        return EngineStats(
            version=ENGINE_VERSION,
            component_health=health,
            last_updated=last_updated,
            metrics=metrics,
            components=components,
        )

    # === Stages ===

    def _check_freshness(self, opportunity: OpportunityInput, now: datetime) -> None:
        max_age = timedelta(seconds=self.config.freshness.max_data_age_seconds)
        max_skew = timedelta(seconds=self.config.freshness.max_clock_skew_seconds)
        entities = (
            ("opportunity", opportunity.source, opportunity.timestamp),
            ("buy quote", opportunity.buy_quote.source, opportunity.buy_quote.timestamp),
            ("sell quote", opportunity.sell_quote.source, opportunity.sell_quote.timestamp),
            ("pool reserves", opportunity.pool.source, opportunity.pool.timestamp),
        )
        for label, source, timestamp in entities:
            if self.is_simulated_source(source):
                raise SimulatedDataRejected(f"{label} is tagged as non-real data (source={source!r})")
            if timestamp is None or timestamp.tzinfo is None:
                raise InvalidInput(f"{label} timestamp must be timezone-aware")
            age = now - timestamp
            if -age > max_skew:
                raise InvalidInput(
                    f"{label} timestamp is {-age.total_seconds():.0f}s ahead of the clock "
                    f"(max skew {max_skew.total_seconds():.0f}s)"
                )
            if age > max_age:
                raise StaleData(
                    f"{label} is {age.total_seconds():.0f}s old "
                    f"(max {max_age.total_seconds():.0f}s)"
                )

    def is_simulated_source(self, source: Optional[str]) -> bool:
        """True when any word of the source tag is a simulated-data marker."""
        if not source:
            return False
        words = re.split(r"[^a-z0-9]+", source.lower())
        return any(word in self._simulated_tags for word in words)

    async def _priced_operations(
        self, opportunity: OpportunityInput, trade_value_usd: float
    ) -> List[GasOperation]:
        operations = list(opportunity.operations) or self._default_operations(opportunity)
        networks = sorted({op.network for op in operations})
        readings = await asyncio.gather(*(self._gas_reading(network) for network in networks))
        prices = dict(zip(networks, readings))

        priced = []
        for op in operations:
            gas_price, native_price = prices[op.network]
            params = replace(
                op.params,
                gas_price_gwei=op.params.gas_price_gwei if op.params.gas_price_gwei is not None else gas_price,
                native_usd_price=(
                    op.params.native_usd_price if op.params.native_usd_price is not None else native_price
                ),
                transaction_value_usd=trade_value_usd,
            )
            priced.append(replace(op, params=params))
        return priced

    def _default_operations(self, opportunity: OpportunityInput) -> List[GasOperation]:
        """A buy swap and a sell swap, with overhead factors for the conditions."""
        optimizations = []
        if opportunity.cross_chain:
            optimizations.append("crossChain")
        if opportunity.market.congestion_pct >= HIGH_CONGESTION_PCT:
            optimizations.append("highCongestion")
        params = GasParams(
            complexity_factor=DEFAULT_SWAP_COMPLEXITY,
            optimizations=tuple(optimizations),
        )
        return [
            GasOperation(opportunity.buy_quote.network, OperationType.SWAP, params, step=1),
            GasOperation(opportunity.sell_quote.network, OperationType.SWAP, params, step=2),
        ]

    async def _gas_reading(self, network: str) -> Tuple[float, float]:
        timeout = self.config.scanner.venue_timeout_seconds
        try:
            return await asyncio.wait_for(
                asyncio.gather(
                    self.gas_oracle.get_gas_price(network),
                    self.gas_oracle.get_native_usd_price(network),
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise DataUnavailable(f"Gas oracle timed out for {network}") from None
        except EngineError:
            raise
        except Exception as e:
            raise DataUnavailable(f"Gas oracle failed for {network}: {e}") from e

    def _assemble(self, candidate, profit: ProfitAnalysis, risk, strategy, liquidity, now: datetime):
        costs = CostBreakdown(
            gas_cost_usd=strategy.gas_cost_usd,
            protocol_fee_usd=profit.costs.protocol_fee_usd,
            slippage_cost_usd=profit.costs.slippage_cost_usd,
            bridge_fee_usd=profit.costs.bridge_fee_usd,
        )
        net_profit = to_precision(strategy.net_profit)
        is_profitable = net_profit > profit.min_profit_floor
        recommendation = (
            risk.recommended_action if is_profitable else RecommendedAction.DO_NOT_EXECUTE
        )
        ttl = timedelta(seconds=self.config.freshness.decision_ttl_seconds)

        return OpportunityDecision(
            candidate=candidate,
            costs=costs,
            risk=risk,
            gross_profit_usd=profit.gross_profit,
            net_profit_usd=net_profit,
            is_profitable=is_profitable,
            gas_strategy=strategy,
            liquidity=liquidity,
            recommendation=recommendation,
            created_at=now,
            expires_at=now + ttl,
        )

    # === Helpers ===

    def _protocol_fee_rate(self, opportunity: OpportunityInput) -> float:
        if opportunity.protocol_fee_rate is not None:
            return opportunity.protocol_fee_rate
        return opportunity.buy_quote.fee_rate + opportunity.sell_quote.fee_rate

    def _bridge_fee(self, opportunity: OpportunityInput) -> float:
        if opportunity.bridge_fee_usd is not None:
            return opportunity.bridge_fee_usd
        return self.config.scanner.bridge_fee_usd if opportunity.cross_chain else 0.0

    def _execution_seconds(self, opportunity: OpportunityInput) -> float:
        if opportunity.market.expected_execution_seconds is not None:
            return opportunity.market.expected_execution_seconds
        if opportunity.cross_chain:
            return BASE_EXECUTION_SECONDS * CROSS_CHAIN_TIME_MULTIPLIER
        return BASE_EXECUTION_SECONDS

    async def _analyze_candidate(
        self, candidate: ArbitrageCandidate, market: MarketSnapshot, now: datetime
    ):
        pool_id = candidate.buy_quote.resolved_pool_id
        try:
            pool = await asyncio.wait_for(
                self.reserve_provider.get_reserves(pool_id),
                timeout=self.config.scanner.reserve_timeout_seconds,
            )
        except asyncio.TimeoutError:
            return CandidateFailure(
                candidate.candidate_id, RESERVES_STAGE, DataUnavailable.kind.value,
                f"Timed out fetching reserves for {pool_id}",
            )
        except EngineError as exc:
            return CandidateFailure(candidate.candidate_id, RESERVES_STAGE, exc.kind.value, exc.message)
        except Exception as exc:
            logger.warning("Reserve fetch failed", pool=pool_id, error=str(exc))
            return CandidateFailure(
                candidate.candidate_id, RESERVES_STAGE, DataUnavailable.kind.value,
                f"Reserve fetch failed for {pool_id}: {exc}",
            )

        opportunity = OpportunityInput(
            token_symbol=candidate.token_symbol,
            buy_quote=candidate.buy_quote,
            sell_quote=candidate.sell_quote,
            pool=pool,
            market=market,
            timestamp=min(candidate.buy_quote.timestamp, candidate.sell_quote.timestamp),
            source="scanner",
        )
        try:
            decision = await self._analyze(opportunity, candidate.trade_amount, None, now)
        except EngineError as exc:
            return CandidateFailure(candidate.candidate_id, exc.stage, exc.kind.value, exc.message)
        return AnalyzedOpportunity(candidate=decision.candidate, decision=decision)

    def _scan_summary(self, batch: BatchScanResult) -> Dict[str, Any]:
        return {
            "total_tokens_scanned": batch.total_tokens_scanned,
            "successful_scans": batch.successful_scans,
            "failed_scans": batch.failed_scans,
            "skipped": list(batch.skipped),
            "total_opportunities": batch.total_opportunities,
            "token_failures": [
                {"token": f.token_symbol, "kind": f.kind, "message": f.message}
                for f in batch.failures
            ],
            "market": batch.market_summary,
        }

    def _recommendations(self, result: ScanAndAnalyzeResult) -> List[str]:
        profitable = result.profitable
        if not profitable:
            return ["No profitable opportunities after costs and risk; keep monitoring"]

        recommendations = []
        for item in profitable[: self.config.scanner.top_opportunities]:
            decision = item.decision
            recommendations.append(
                f"{decision.recommendation.value} {decision.candidate.candidate_id}: "
                f"net ${decision.net_profit_usd:.2f}, risk {decision.risk.tier.value}, "
                f"strategy {decision.gas_strategy.key}"
            )
        return recommendations

    @staticmethod
    def _describe(opportunity: OpportunityInput) -> str:
        buy, sell = opportunity.buy_quote, opportunity.sell_quote
        return f"{opportunity.token_symbol}:{buy.network}:{buy.venue}->{sell.network}:{sell.venue}"

    def _record_success(self, decision: OpportunityDecision, started: float, now: datetime) -> float:
        duration_ms = (time.perf_counter() - started) * 1000
        with self._stats_lock:
            self._analyses += 1
            self._decisions += 1
            if decision.is_profitable:
                self._profitable += 1
            self._total_duration_ms += duration_ms
            self._last_updated = now
        return duration_ms

    def _record_failure(self, error: EngineError, started: float, now: datetime) -> None:
        duration_ms = (time.perf_counter() - started) * 1000
        with self._stats_lock:
            self._analyses += 1
            kind = error.kind.value
            self._failures_by_kind[kind] = self._failures_by_kind.get(kind, 0) + 1
            if error.stage:
                self._failures_by_stage[error.stage] = self._failures_by_stage.get(error.stage, 0) + 1
            self._total_duration_ms += duration_ms
            self._last_updated = now
