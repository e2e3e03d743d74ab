"""
Tests for the opportunity scanner.
"""

import asyncio
from collections import Counter

import pytest

from arbengine.config import EngineConfig, ScannerConfig
from arbengine.engine.scanner import OpportunityScanner, ScanOptions, TokenConfig
from arbengine.errors import DataUnavailable, InvalidInput
from arbengine.models import RiskLevel, Venue
from arbengine.providers.base import PriceFeedProvider

from tests.conftest import make_quote


VENUES = {
    "ethereum": (
        Venue("Alpha", "ethereum", "uniswapV2", 0.003, 0.80),
        Venue("Beta", "ethereum", "sushiswap", 0.003, 0.90),
        Venue("Gamma", "ethereum", "uniswapV3", 0.0005, 0.95),
    ),
}

TOKENS = {
    "WETH": TokenConfig("WETH", "HIGH", ("ethereum",)),
    "USDC": TokenConfig("USDC", "HIGH", ("ethereum",)),
    "LINK": TokenConfig("LINK", "MEDIUM", ("ethereum",)),
}


class ScriptedFeed(PriceFeedProvider):
    """Price feed answering from a (token, venue) table, with scripted failures and delays."""

    def __init__(self, prices, fail_tokens=(), fail_venues=(), slow_venues=(), delay=0.0):
        self.prices = prices
        self.fail_tokens = set(fail_tokens)
        self.fail_venues = set(fail_venues)
        self.slow_venues = set(slow_venues)
        self.delay = delay
        self.in_flight = Counter()
        self.max_tokens_in_flight = 0

    async def get_quote(self, token_symbol, venue):
        self.in_flight[token_symbol] += 1
        self.max_tokens_in_flight = max(self.max_tokens_in_flight, len(+self.in_flight))
        try:
            await asyncio.sleep(0.01)
            if token_symbol in self.fail_tokens or venue.name in self.fail_venues:
                raise DataUnavailable(f"{venue.name} is down")
            if venue.name in self.slow_venues:
                await asyncio.sleep(self.delay)
            price = self.prices.get((token_symbol, venue.name))
            if price is None:
                return None
            return make_quote(
                venue=venue.name,
                price=price,
                network=venue.network,
                token=token_symbol,
                fee_rate=venue.fee_rate,
                reliability=venue.reliability,
                protocol=venue.protocol,
            )
        finally:
            self.in_flight[token_symbol] -= 1


class SnapshotFeed(PriceFeedProvider):
    """Price feed serving a whole-token snapshot, with an optional failure."""

    def __init__(self, quotes, fail=False):
        self.quotes = quotes
        self.fail = fail
        self.venue_calls = 0

    async def get_quotes(self, token_symbol):
        if self.fail:
            raise DataUnavailable("snapshot endpoint down")
        return [q for q in self.quotes if q.token_symbol == token_symbol]

    async def get_quote(self, token_symbol, venue):
        self.venue_calls += 1
        for quote in self.quotes:
            if quote.token_symbol == token_symbol and quote.venue == venue.name:
                return quote
        return None


PRICES = {
    ("WETH", "Alpha"): 2500.0,
    ("WETH", "Beta"): 2550.0,
    ("WETH", "Gamma"): 2510.0,
    ("USDC", "Alpha"): 1.0,
    ("USDC", "Beta"): 1.001,
    ("LINK", "Alpha"): 15.0,
    ("LINK", "Beta"): 15.6,
}


def make_scanner(feed, **scanner_overrides):
    config = EngineConfig(scanner=ScannerConfig(**scanner_overrides))
    return OpportunityScanner(feed, config=config, venues=VENUES, tokens=TOKENS)


class TestDetectOpportunities:
    """Tests for venue pairing and ranking."""

    @pytest.fixture
    def scanner(self):
        return make_scanner(ScriptedFeed(PRICES))

    def test_pairs_clearing_fees_and_margin(self, scanner):
        quotes = [
            make_quote(venue="Alpha", price=2500.0, fee_rate=0.003),
            make_quote(venue="Beta", price=2550.0, fee_rate=0.003),
            make_quote(venue="Gamma", price=2510.0, fee_rate=0.0005),
        ]
        candidates = scanner.detect_opportunities(quotes, 2.0)

        # Alpha/Gamma nets 0.05% after fees, below the 50 bps margin
        assert [(c.buy_quote.venue, c.sell_quote.venue) for c in candidates] == [
            ("Alpha", "Beta"),
            ("Gamma", "Beta"),
        ]
        assert candidates[0].net_spread_pct == pytest.approx(1.4)
        assert candidates[0].trade_amount == 2.0

    def test_cheaper_venue_is_buy_side(self, scanner):
        quotes = [
            make_quote(venue="Beta", price=2550.0),
            make_quote(venue="Alpha", price=2500.0),
        ]
        (candidate,) = scanner.detect_opportunities(quotes, 1.0)
        assert candidate.buy_quote.venue == "Alpha"
        assert candidate.spread_pct == pytest.approx(2.0)

    def test_ties_broken_by_reliability(self, scanner):
        quotes = [
            make_quote(venue="Alpha", price=100.0, reliability=0.80),
            make_quote(venue="Gamma", price=100.0, reliability=0.95),
            make_quote(venue="Beta", price=102.0, reliability=0.90),
        ]
        candidates = scanner.detect_opportunities(quotes, 1.0)
        assert [c.buy_quote.venue for c in candidates] == ["Gamma", "Alpha"]

    def test_no_pairs_for_single_quote(self, scanner):
        assert scanner.detect_opportunities([make_quote()], 1.0) == []

    def test_tight_market_yields_nothing(self, scanner):
        quotes = [make_quote(venue="Alpha", price=1.0), make_quote(venue="Beta", price=1.001)]
        assert scanner.detect_opportunities(quotes, 1.0) == []


class TestScanToken:

    @pytest.mark.asyncio
    async def test_scan_collects_every_venue(self):
        scanner = make_scanner(ScriptedFeed(PRICES))
        result = await scanner.scan_token("weth", amount=2.0)

        assert result.token_symbol == "WETH"
        assert result.quote_count == 3
        assert result.failed_venues == []
        assert len(result.opportunities) == 2
        assert result.market_conditions.dispersion_pct == pytest.approx(2.0)
        assert result.market_conditions.volatility == RiskLevel.MEDIUM
        assert not result.cancelled

    @pytest.mark.asyncio
    async def test_default_amount_sized_from_usd_notional(self):
        scanner = make_scanner(ScriptedFeed(PRICES))
        result = await scanner.scan_token("WETH")

        assert result.scan_amount is None
        assert result.scan_notional_usd == 1000.0
        amounts = {c.buy_quote.venue: c.trade_amount for c in result.opportunities}
        assert amounts["Alpha"] == pytest.approx(0.4)
        assert amounts["Gamma"] == pytest.approx(1000.0 / 2510.0)

    @pytest.mark.asyncio
    async def test_explicit_amount_is_token_units(self):
        scanner = make_scanner(ScriptedFeed(PRICES))
        result = await scanner.scan_token("WETH", amount=2.0)
        assert result.scan_notional_usd is None
        assert {c.trade_amount for c in result.opportunities} == {2.0}

    @pytest.mark.asyncio
    async def test_failing_venue_is_skipped(self):
        scanner = make_scanner(ScriptedFeed(PRICES, fail_venues={"Gamma"}))
        result = await scanner.scan_token("WETH", amount=2.0)
        assert result.quote_count == 2
        assert result.failed_venues == ["ethereum:Gamma"]
        assert len(result.opportunities) == 1

    @pytest.mark.asyncio
    async def test_slow_venue_times_out(self):
        feed = ScriptedFeed(PRICES, slow_venues={"Beta"}, delay=5.0)
        scanner = make_scanner(feed, venue_timeout_seconds=0.1)
        result = await asyncio.wait_for(scanner.scan_token("WETH", amount=2.0), timeout=2.0)

        assert result.failed_venues == ["ethereum:Beta"]
        assert {q.venue for q in result.quotes} == {"Alpha", "Gamma"}

    @pytest.mark.asyncio
    async def test_all_venues_failing(self):
        scanner = make_scanner(ScriptedFeed(PRICES, fail_tokens={"WETH"}))
        with pytest.raises(DataUnavailable):
            await scanner.scan_token("WETH")

    @pytest.mark.asyncio
    async def test_unlisted_token_is_empty_not_failed(self):
        scanner = make_scanner(ScriptedFeed({}))
        result = await scanner.scan_token("LINK")
        assert result.quotes == []
        assert result.opportunities == []

    @pytest.mark.asyncio
    async def test_unknown_token(self):
        scanner = make_scanner(ScriptedFeed(PRICES))
        with pytest.raises(InvalidInput):
            await scanner.scan_token("DOGE")

    @pytest.mark.asyncio
    async def test_non_positive_amount(self):
        scanner = make_scanner(ScriptedFeed(PRICES))
        with pytest.raises(InvalidInput):
            await scanner.scan_token("WETH", amount=0)

    @pytest.mark.asyncio
    async def test_cancel_abandons_outstanding_fetches(self):
        feed = ScriptedFeed(PRICES, slow_venues={"Beta"}, delay=30.0)
        scanner = make_scanner(feed, venue_timeout_seconds=60.0)
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.1, cancel.set)

        result = await asyncio.wait_for(scanner.scan_token("WETH", 2.0, cancel), timeout=2.0)

        assert result.cancelled
        assert {q.venue for q in result.quotes} == {"Alpha", "Gamma"}
        assert result.failed_venues == []


    @pytest.mark.asyncio
    async def test_outer_cancellation_stops_venue_fetches(self):
        feed = ScriptedFeed(PRICES, slow_venues={"Beta"}, delay=30.0)
        scanner = make_scanner(feed, venue_timeout_seconds=60.0)
        task = asyncio.ensure_future(scanner.scan_token("WETH", 2.0))
        await asyncio.sleep(0.1)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(0.05)

        assert sum(feed.in_flight.values()) == 0


class TestQuoteSnapshot:
    """Feeds that serve a whole-token snapshot."""

    @pytest.mark.asyncio
    async def test_snapshot_replaces_venue_fetches(self):
        feed = SnapshotFeed([
            make_quote(venue="Alpha", price=2500.0),
            make_quote(venue="Beta", price=2550.0),
            make_quote(venue="Gamma", price=0.0),
            make_quote(venue="Delta", price=2400.0),
        ])
        result = await make_scanner(feed).scan_token("WETH", amount=2.0)

        assert feed.venue_calls == 0
        # Delta is not catalogued for ethereum
        assert {q.venue for q in result.quotes} == {"Alpha", "Beta"}
        assert result.failed_venues == ["ethereum:Gamma"]
        assert len(result.opportunities) == 1

    @pytest.mark.asyncio
    async def test_failed_snapshot_falls_back_to_venues(self):
        feed = SnapshotFeed(
            [make_quote(venue="Alpha", price=2500.0), make_quote(venue="Beta", price=2550.0)],
            fail=True,
        )
        result = await make_scanner(feed).scan_token("WETH", amount=2.0)

        assert feed.venue_calls == 3
        assert {q.venue for q in result.quotes} == {"Alpha", "Beta"}
        assert result.failed_venues == []

    @pytest.mark.asyncio
    async def test_feeds_without_snapshot_answer_none(self):
        assert await ScriptedFeed(PRICES).get_quotes("WETH") is None


class TestScanMultipleTokens:

    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_batch(self):
        scanner = make_scanner(ScriptedFeed(PRICES, fail_tokens={"USDC"}))
        batch = await scanner.scan_multiple_tokens(["WETH", "USDC", "LINK"], ScanOptions(amount=2.0))

        assert batch.total_tokens_scanned == 3
        assert batch.successful_scans == 2
        assert batch.failed_scans == 1
        assert batch.failures[0].token_symbol == "USDC"
        assert batch.failures[0].kind == "data_unavailable"

    @pytest.mark.asyncio
    async def test_unknown_token_recorded_as_failure(self):
        scanner = make_scanner(ScriptedFeed(PRICES))
        batch = await scanner.scan_multiple_tokens(["WETH", "DOGE"])
        assert batch.successful_scans == 1
        assert batch.failures[0].kind == "invalid_input"

    @pytest.mark.asyncio
    async def test_top_opportunities_ranked_across_tokens(self):
        scanner = make_scanner(ScriptedFeed(PRICES))
        batch = await scanner.scan_multiple_tokens(["WETH", "LINK"], ScanOptions(amount=1.0, top_n=2))

        assert batch.total_opportunities == 3
        assert len(batch.top_opportunities) == 2
        # LINK spread is 4%, the widest
        assert batch.top_opportunities[0].token_symbol == "LINK"
        net = [c.net_spread_pct for c in batch.top_opportunities]
        assert net == sorted(net, reverse=True)
        assert batch.market_summary["tokens_with_opportunities"] == 2

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        feed = ScriptedFeed(PRICES)
        scanner = make_scanner(feed)
        await scanner.scan_multiple_tokens(["WETH", "USDC", "LINK"], ScanOptions(max_concurrency=1))
        assert feed.max_tokens_in_flight == 1

    @pytest.mark.asyncio
    async def test_cancelled_before_start_skips_everything(self):
        scanner = make_scanner(ScriptedFeed(PRICES))
        cancel = asyncio.Event()
        cancel.set()
        batch = await scanner.scan_multiple_tokens(["WETH", "LINK"], ScanOptions(cancel_event=cancel))

        assert batch.skipped == ["WETH", "LINK"]
        assert batch.results == []
        assert batch.cancelled

    def test_scanner_stats(self):
        scanner = make_scanner(ScriptedFeed(PRICES))
        stats = scanner.get_scanner_stats()
        assert stats["total_venues"] == 3
        assert stats["monitored_tokens"] == ["WETH", "USDC", "LINK"]
