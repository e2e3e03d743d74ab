"""
Opportunity scanning across venues and networks.

Collects quotes for a token from every catalogued venue on the token's
networks, then pairs venues whose spread covers both fees plus a margin.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from arbengine.config import EngineConfig
from arbengine.core.calculator import SpreadAndProfitCalculator
from arbengine.errors import DataUnavailable, EngineError, InvalidInput
from arbengine.formulas import to_precision
from arbengine.logger import analysis_logger, get_logger
from arbengine.models import (
    ArbitrageCandidate,
    MarketConditions,
    PriceQuote,
    RiskLevel,
    Venue,
    utc_now,
)
from arbengine.providers.base import PriceFeedProvider


logger = get_logger("scanner")


def _venues(network: str, *entries: Tuple[str, str, float, float]) -> Tuple[Venue, ...]:
    return tuple(
        Venue(name=name, network=network, protocol=protocol, fee_rate=fee, reliability=reliability)
        for name, protocol, fee, reliability in entries
    )


VENUE_CATALOGUE: Dict[str, Tuple[Venue, ...]] = {
    "ethereum": _venues(
        "ethereum",
        ("Uniswap V2", "uniswapV2", 0.003, 0.95),
        ("Uniswap V3", "uniswapV3", 0.0005, 0.98),
        ("SushiSwap", "sushiswap", 0.003, 0.90),
        ("1inch", "aggregator", 0.002, 0.85),
        ("Balancer", "balancer", 0.003, 0.88),
    ),
    "polygon": _venues(
        "polygon",
        ("QuickSwap", "quickswap", 0.003, 0.92),
        ("SushiSwap", "sushiswap", 0.003, 0.90),
        ("Uniswap V3", "uniswapV3", 0.0005, 0.95),
    ),
    "bsc": _venues(
        "bsc",
        ("PancakeSwap", "pancakeswap", 0.0025, 0.93),
        ("BiSwap", "biswap", 0.001, 0.85),
        ("1inch BSC", "aggregator", 0.002, 0.87),
    ),
    "arbitrum": _venues(
        "arbitrum",
        ("Uniswap V3", "uniswapV3", 0.0005, 0.96),
        ("SushiSwap", "sushiswap", 0.003, 0.91),
        ("Balancer", "balancer", 0.003, 0.89),
    ),
}


@dataclass(frozen=True)
class TokenConfig:
    symbol: str
    priority: str
    networks: Tuple[str, ...]


TOKEN_CATALOGUE: Dict[str, TokenConfig] = {
    token.symbol: token
    for token in (
        TokenConfig("WETH", "HIGH", ("ethereum", "polygon", "arbitrum")),
        TokenConfig("USDC", "HIGH", ("ethereum", "polygon", "bsc", "arbitrum")),
        TokenConfig("USDT", "HIGH", ("ethereum", "polygon", "bsc", "arbitrum")),
        TokenConfig("WBTC", "MEDIUM", ("ethereum", "polygon", "arbitrum")),
        TokenConfig("DAI", "MEDIUM", ("ethereum", "polygon", "arbitrum")),
        TokenConfig("LINK", "MEDIUM", ("ethereum", "polygon", "bsc", "arbitrum")),
    )
}


@dataclass
class ScanOptions:
    """Options for a batch scan."""
    amount: Optional[float] = None
    max_concurrency: Optional[int] = None
    top_n: Optional[int] = None
    # Setting this event stops new work and abandons in-flight fetches
    cancel_event: Optional[asyncio.Event] = None


@dataclass
class TokenScanResult:
    token_symbol: str
    scan_amount: Optional[float]
    opportunities: List[ArbitrageCandidate]
    market_conditions: MarketConditions
    quotes: List[PriceQuote] = field(default_factory=list)
    failed_venues: List[str] = field(default_factory=list)
    cancelled: bool = False
    # Set when scan_amount is None and candidates were sized from a USD notional
    scan_notional_usd: Optional[float] = None
    scanned_at: datetime = field(default_factory=utc_now)

    @property
    def quote_count(self) -> int:
        return len(self.quotes)


@dataclass
class TokenScanFailure:
    token_symbol: str
    kind: str
    message: str


@dataclass
class BatchScanResult:
    total_tokens_scanned: int
    results: List[TokenScanResult] = field(default_factory=list)
    failures: List[TokenScanFailure] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    top_opportunities: List[ArbitrageCandidate] = field(default_factory=list)
    cancelled: bool = False

    @property
    def successful_scans(self) -> int:
        return len(self.results)

    @property
    def failed_scans(self) -> int:
        return len(self.failures)

    @property
    def total_opportunities(self) -> int:
        return sum(len(result.opportunities) for result in self.results)

    @property
    def market_summary(self) -> Dict[str, float]:
        with_opportunities = [r for r in self.results if r.opportunities]
        average = 0.0
        if with_opportunities:
            average = to_precision(self.total_opportunities / len(with_opportunities))
        return {
            "tokens_analyzed": len(self.results),
            "tokens_with_opportunities": len(with_opportunities),
            "average_opportunities_per_token": average,
        }


class OpportunityScanner:
    """
    Scans venues for cross-venue price discrepancies.

    Quotes come from the injected price feed: its one-call snapshot when it
    serves one, otherwise one fetch per venue, each under its own timeout.
    A slow or failing venue is skipped; the scan only fails when no venue
    answers at all.
    """

    def __init__(
        self,
        price_feed: PriceFeedProvider,
        calculator: Optional[SpreadAndProfitCalculator] = None,
        config: Optional[EngineConfig] = None,
        venues: Optional[Dict[str, Sequence[Venue]]] = None,
        tokens: Optional[Dict[str, TokenConfig]] = None,
    ):
        config = config or EngineConfig()
        self.config = config.scanner
        self.price_feed = price_feed
        self.calculator = calculator or SpreadAndProfitCalculator(config)
        self.venues = {network: tuple(items) for network, items in (venues or VENUE_CATALOGUE).items()}
        self.tokens = dict(tokens or TOKEN_CATALOGUE)

    def token_config(self, token_symbol: str) -> TokenConfig:
        token = self.tokens.get((token_symbol or "").upper())
        if token is None:
            raise InvalidInput(f"Token {token_symbol} is not monitored")
        return token

    def venues_for(self, token: TokenConfig) -> List[Venue]:
        venues: List[Venue] = []
        for network in token.networks:
            venues.extend(self.venues.get(network, ()))
        return venues

    async def scan_token(
        self,
        token_symbol: str,
        amount: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TokenScanResult:
        """
        Scan every venue for one token.

        Args:
            token_symbol: Monitored token symbol
            amount: Trade amount in token units. When omitted each candidate
                is sized from ``default_amount_usd`` at its buy price
            cancel_event: Abandons outstanding venue fetches once set

        Returns:
            TokenScanResult; an empty opportunity list is a valid outcome

        Raises:
            InvalidInput: Unknown token or non-positive amount
            DataUnavailable: Every venue failed
        """
        token = self.token_config(token_symbol)
        if amount is not None and amount <= 0:
            raise InvalidInput(f"Scan amount must be positive (got {amount})")
        if amount is None and self.config.default_amount_usd <= 0:
            raise InvalidInput(
                f"Default scan amount must be positive (got {self.config.default_amount_usd})"
            )

        venues = self.venues_for(token)
        quotes, failed, cancelled = await self._collect_quotes(token.symbol, venues, cancel_event)

        if venues and not quotes and len(failed) == len(venues):
            raise DataUnavailable(f"All {len(venues)} venues failed for {token.symbol}")

        opportunities = self.detect_opportunities(quotes, amount)
        for candidate in opportunities:
            analysis_logger.log_opportunity_detected(
                candidate_id=candidate.candidate_id,
                spread_pct=candidate.spread_pct,
                net_spread_pct=candidate.net_spread_pct,
                cross_chain=candidate.cross_chain,
            )

        logger.info(
            "Token scanned",
            token=token.symbol,
            quotes=len(quotes),
            failed_venues=len(failed),
            opportunities=len(opportunities),
            cancelled=cancelled,
        )

        return TokenScanResult(
            token_symbol=token.symbol,
            scan_amount=amount,
            opportunities=opportunities,
            market_conditions=self.assess_market_conditions(quotes),
            quotes=quotes,
            failed_venues=failed,
            cancelled=cancelled,
            scan_notional_usd=self.config.default_amount_usd if amount is None else None,
        )

    async def scan_multiple_tokens(
        self,
        tokens: Iterable[str],
        options: Optional[ScanOptions] = None,
    ) -> BatchScanResult:
        """
        Scan several tokens concurrently.

        A failing token is recorded in ``failures`` and never aborts the
        batch. Tokens not yet started when ``options.cancel_event`` is set
        are listed in ``skipped``.
        """
        options = options or ScanOptions()
        tokens = list(tokens)
        limit = options.max_concurrency or self.config.max_concurrency
        semaphore = asyncio.Semaphore(max(1, limit))
        cancel_event = options.cancel_event

        async def scan_one(symbol: str):
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    return None
                return await self.scan_token(symbol, options.amount, cancel_event)

        outcomes = await asyncio.gather(
            *(scan_one(symbol) for symbol in tokens), return_exceptions=True
        )

        batch = BatchScanResult(total_tokens_scanned=len(tokens))
        for symbol, outcome in zip(tokens, outcomes):
            if outcome is None:
                batch.skipped.append(symbol)
            elif isinstance(outcome, EngineError):
                batch.failures.append(TokenScanFailure(symbol, outcome.kind.value, outcome.message))
                logger.warning("Token scan failed", token=symbol, error=str(outcome))
            elif isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                batch.failures.append(TokenScanFailure(symbol, "unexpected", str(outcome)))
                logger.error("Token scan crashed", token=symbol, error=str(outcome))
            else:
                batch.results.append(outcome)

        all_opportunities = [c for result in batch.results for c in result.opportunities]
        batch.top_opportunities = self.rank(all_opportunities)[: options.top_n or self.config.top_opportunities]
        batch.cancelled = bool(cancel_event and cancel_event.is_set())

        analysis_logger.log_scan_summary(
            tokens=len(tokens),
            successful=batch.successful_scans,
            failed=batch.failed_scans,
            opportunities=batch.total_opportunities,
            cancelled=batch.cancelled,
        )
        return batch

    def detect_opportunities(
        self, prices: Sequence[PriceQuote], amount: Optional[float] = None
    ) -> List[ArbitrageCandidate]:
        """
        Pair every two venues quoting the same token.

        A pair is kept when its spread, less both venues' fees, still clears
        ``min_margin_bps``. The cheaper venue is always the buy side. Without
        an ``amount`` each candidate trades ``default_amount_usd`` worth of
        the token at its buy price.
        """
        min_net_pct = self.config.min_margin_bps / 100
        candidates: List[ArbitrageCandidate] = []

        for i, quote_a in enumerate(prices):
            for quote_b in prices[i + 1:]:
                if quote_a.token_symbol.upper() != quote_b.token_symbol.upper():
                    continue
                if (quote_a.network, quote_a.venue) == (quote_b.network, quote_b.venue):
                    continue

                spread = self.calculator.spread(quote_a.price, quote_b.price)
                fees_pct = (quote_a.fee_rate + quote_b.fee_rate) * 100
                if spread.spread_pct - fees_pct < min_net_pct:
                    continue

                buy, sell = (quote_a, quote_b) if quote_a.price < quote_b.price else (quote_b, quote_a)
                candidates.append(ArbitrageCandidate(
                    buy_quote=buy,
                    sell_quote=sell,
                    token_symbol=buy.token_symbol.upper(),
                    trade_amount=amount if amount is not None else self.config.default_amount_usd / buy.price,
                ))

        return self.rank(candidates)

    @staticmethod
    def rank(candidates: Iterable[ArbitrageCandidate]) -> List[ArbitrageCandidate]:
        """Net spread descending, then combined reliability descending."""
        return sorted(
            candidates,
            key=lambda c: (-c.net_spread_pct, -c.combined_reliability),
        )

    def assess_market_conditions(self, prices: Sequence[PriceQuote]) -> MarketConditions:
        if not prices:
            return MarketConditions()

        values = [quote.price for quote in prices]
        low, high = min(values), max(values)
        dispersion = (high - low) / low

        if dispersion > 0.02:
            volatility = RiskLevel.HIGH
        elif dispersion > 0.01:
            volatility = RiskLevel.MEDIUM
        else:
            volatility = RiskLevel.LOW

        return MarketConditions(
            quote_count=len(prices),
            dispersion_pct=to_precision(dispersion * 100),
            volatility=volatility,
            average_reliability=to_precision(sum(q.reliability for q in prices) / len(prices)),
            networks=sorted({quote.network for quote in prices}),
        )

    def get_scanner_stats(self) -> dict:
        return {
            "supported_networks": list(self.venues),
            "total_venues": sum(len(items) for items in self.venues.values()),
            "monitored_tokens": list(self.tokens),
            "min_margin_bps": self.config.min_margin_bps,
            "venue_timeout_seconds": self.config.venue_timeout_seconds,
        }

    async def _fetch_quote(self, token_symbol: str, venue: Venue) -> Optional[PriceQuote]:
        return await asyncio.wait_for(
            self.price_feed.get_quote(token_symbol, venue),
            timeout=self.config.venue_timeout_seconds,
        )

    async def _collect_quotes(
        self,
        token_symbol: str,
        venues: Sequence[Venue],
        cancel_event: Optional[asyncio.Event],
    ) -> Tuple[List[PriceQuote], List[str], bool]:
        """Fetch quotes for every venue. Returns (quotes, failed venues, cancelled)."""
        if not venues:
            return [], [], False

        snapshot = await self._collect_snapshot(token_symbol, venues, cancel_event)
        if snapshot is not None:
            return snapshot

        tasks = {
            asyncio.ensure_future(self._fetch_quote(token_symbol, venue)): venue
            for venue in venues
        }
        abandoned = await self._wait_all(set(tasks), cancel_event)

        quotes: List[PriceQuote] = []
        failed: List[str] = []
        for task, venue in tasks.items():
            if task in abandoned or task.cancelled():
                continue
            label = f"{venue.network}:{venue.name}"
            error = task.exception()
            if error is not None:
                failed.append(label)
                reason = "timeout" if isinstance(error, asyncio.TimeoutError) else str(error)
                logger.warning("Venue fetch failed", token=token_symbol, venue=label, error=reason)
                continue
            quote = task.result()
            if quote is None:
                continue
            if self._valid_price(token_symbol, quote, label):
                quotes.append(quote)
            else:
                failed.append(label)

        return quotes, failed, bool(abandoned)

    async def _collect_snapshot(
        self,
        token_symbol: str,
        venues: Sequence[Venue],
        cancel_event: Optional[asyncio.Event],
    ) -> Optional[Tuple[List[PriceQuote], List[str], bool]]:
        """One-call quote snapshot from the feed. None means fetch venue by venue."""
        task = asyncio.ensure_future(asyncio.wait_for(
            self.price_feed.get_quotes(token_symbol),
            timeout=self.config.venue_timeout_seconds,
        ))
        if await self._wait_all({task}, cancel_event):
            return [], [], True

        error = task.exception()
        if error is not None:
            reason = "timeout" if isinstance(error, asyncio.TimeoutError) else str(error)
            logger.warning("Quote snapshot failed, fetching per venue", token=token_symbol, error=reason)
            return None
        snapshot = task.result()
        if snapshot is None:
            return None

        listed = {(venue.network, venue.name) for venue in venues}
        quotes: List[PriceQuote] = []
        failed: List[str] = []
        for quote in snapshot:
            if (quote.network, quote.venue) not in listed:
                continue
            label = f"{quote.network}:{quote.venue}"
            if self._valid_price(token_symbol, quote, label):
                quotes.append(quote)
            else:
                failed.append(label)
        return quotes, failed, False

    @staticmethod
    async def _wait_all(
        tasks: Set[asyncio.Future], cancel_event: Optional[asyncio.Event]
    ) -> Set[asyncio.Future]:
        """
        Wait for every task, or until ``cancel_event`` is set.

        Returns the tasks abandoned on cancellation. Unfinished tasks are
        cancelled on every exit path, including cancellation of the caller.
        """
        pending = set(tasks)
        waiter = asyncio.ensure_future(cancel_event.wait()) if cancel_event is not None else None
        try:
            while pending and not (cancel_event is not None and cancel_event.is_set()):
                watched = pending | {waiter} if waiter is not None else pending
                _, pending = await asyncio.wait(watched, return_when=asyncio.FIRST_COMPLETED)
                pending.discard(waiter)
        finally:
            if waiter is not None:
                waiter.cancel()
            for task in pending:
                task.cancel()

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return pending

    @staticmethod
    def _valid_price(token_symbol: str, quote: PriceQuote, label: str) -> bool:
        if quote.price is None or quote.price <= 0:
            logger.warning("Venue returned invalid price", token=token_symbol, venue=label)
            return False
        return True
