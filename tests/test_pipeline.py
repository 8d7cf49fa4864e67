"""Tests for the orchestration pipeline."""

import pytest

from signalbot.config import Settings
from signalbot.errors import InputError, PipelineTimeout, SourceDegraded
from signalbot.nlp.classifier import ImpactClassifier
from signalbot.orchestration.acquisition import AcquisitionCoordinator
from signalbot.orchestration.tasks import SignalPipeline, analysis_scope, build_pipeline, healthcheck
from signalbot.services.types import Position, WatchlistItem
from signalbot.trading.ranker import RankerPolicy, SuggestionRanker


def _pipeline(primary, fallback, budget=5.0, prices=None):
    prices = {"AAPL": 175.0} if prices is None else prices
    lookups = []

    def lookup(symbol):
        lookups.append(symbol)
        return prices.get(symbol)

    pipeline = SignalPipeline(
        acquisition=AcquisitionCoordinator(primary, fallback, budget=2.0),
        classifier=ImpactClassifier(fanout=4),
        ranker=SuggestionRanker(RankerPolicy()),
        price_lookup=lookup,
        budget=budget,
    )
    pipeline.lookups = lookups
    return pipeline


@pytest.fixture
def aapl_posts(make_post):
    return [
        make_post("p1", "$AAPL strong earnings"),
        make_post("p2", "$AAPL weak guidance", minutes_ago=5),
        make_post("p3", "$AAPL strong earnings", minutes_ago=10, username="other"),
    ]


def test_healthcheck():
    """Test health check returns ok status."""
    result = healthcheck()
    assert result["status"] == "ok"
    assert "timestamp" in result
    assert "version" in result


class TestAnalyze:
    """End-to-end analysis over stub sources."""

    @pytest.mark.asyncio
    async def test_aapl_two_bullish_one_bearish(self, aapl_posts, stub_source, now):
        pipeline = _pipeline(stub_source("platform", aapl_posts), stub_source("inferred"))

        result = await pipeline.analyze(["AAPL"], [], [], now=now)

        aapl = result.sentiment.tickers["AAPL"]
        assert (aapl.bullish, aapl.bearish, aapl.neutral, aapl.overall) == (2, 1, 0, "bullish")
        assert result.status == "ok"
        assert result.sentiment.market.overall == "bullish"
        assert result.posts_found == 3
        assert result.posts_classified == 3
        assert result.source == "platform"
        assert [s.action for s in result.stock_suggestions] == ["buy"]
        assert result.stock_suggestions[0].supporting_post_ids == ["p1", "p3"]
        assert [o.option_type for o in result.option_suggestions] == ["call"]

    @pytest.mark.asyncio
    async def test_no_data_is_no_signal(self, stub_source, now):
        """Both sources empty for XYZ: neutral, no suggestions, no error."""
        pipeline = _pipeline(stub_source("platform"), stub_source("inferred"))

        result = await pipeline.analyze(["XYZ"], [], [], now=now)

        xyz = result.sentiment.tickers["XYZ"]
        assert result.status == "no_signal"
        assert (xyz.bullish, xyz.bearish, xyz.neutral, xyz.overall) == (0, 0, 0, "neutral")
        assert result.sentiment.market.overall == "neutral"
        assert result.stock_suggestions == []
        assert result.option_suggestions == []
        assert result.posts_found == 0

    @pytest.mark.asyncio
    async def test_unrelated_posts_are_no_signal(self, make_post, stub_source, now):
        posts = [make_post("p1", "Great coffee this morning")]
        result = await _pipeline(stub_source("platform", posts), stub_source("inferred")).analyze(["AAPL"], now=now)

        assert result.status == "no_signal"
        assert result.posts_found == 1
        assert result.posts_classified == 0

    @pytest.mark.asyncio
    async def test_timeout_is_distinct_from_no_signal(self, aapl_posts, stub_source, now):
        pipeline = _pipeline(stub_source("platform", aapl_posts, delay=1.0), stub_source("inferred"), budget=0.1)

        with pytest.raises(PipelineTimeout):
            await pipeline.analyze(["AAPL"], [], [], now=now)

    @pytest.mark.asyncio
    async def test_fallback_reported(self, aapl_posts, stub_source, now):
        primary = stub_source("platform", error=SourceDegraded("platform", "X API rate limited"))
        result = await _pipeline(primary, stub_source("inferred", aapl_posts)).analyze(["AAPL"], now=now)

        assert result.source == "inferred"
        assert result.degraded_sources == ["platform: X API rate limited"]
        assert result.sentiment.tickers["AAPL"].bullish == 2

    @pytest.mark.asyncio
    async def test_watchlist_and_positions_join_scope(self, make_post, stub_source, now):
        posts = [make_post("p1", "$TSLA plunge after recall"), make_post("p2", "$NVDA record high")]
        pipeline = _pipeline(stub_source("platform", posts), stub_source("inferred"), prices={})
        positions = [Position(ticker="NVDA", quantity=3, entry_price=900.0, current_price=950.0)]

        result = await pipeline.analyze(["AAPL"], ["TSLA"], positions, now=now)

        assert list(result.sentiment.tickers) == ["AAPL", "TSLA", "NVDA"]
        actions = {s.ticker: s.action for s in result.stock_suggestions}
        assert actions == {"TSLA": "sell", "NVDA": "hold"}
        # NVDA price came from the position, TSLA had to be looked up
        assert pipeline.lookups == ["TSLA"]

    @pytest.mark.asyncio
    async def test_supplied_watchlist_price_used(self, make_post, stub_source, now):
        posts = [make_post("p1", "$TSLA rally")]
        pipeline = _pipeline(stub_source("platform", posts), stub_source("inferred"), prices={})

        result = await pipeline.analyze(["TSLA"], [WatchlistItem(ticker="TSLA", price=250.0)], [], now=now)

        assert result.option_suggestions[0].strike == 250.0
        assert pipeline.lookups == []

    @pytest.mark.asyncio
    async def test_accounts_passed_to_sources(self, aapl_posts, stub_source, now):
        primary = stub_source("platform", aapl_posts)
        await _pipeline(primary, stub_source("inferred")).analyze(["AAPL"], accounts=["@WSJ"], now=now)

        assert primary.targets[0].tickers == ("AAPL",)
        assert primary.targets[0].usernames == ("WSJ",)

    @pytest.mark.asyncio
    async def test_default_accounts_read_every_request(self, aapl_posts, stub_source, now):
        primary = stub_source("platform", aapl_posts)
        pipeline = _pipeline(primary, stub_source("inferred"))
        pipeline.accounts = ("Bloomberg", "@WSJ")

        await pipeline.analyze(["AAPL"], now=now)
        await pipeline.analyze(["AAPL"], accounts=[], now=now)

        assert primary.targets[0].usernames == ("Bloomberg", "WSJ")
        assert primary.targets[1].usernames == ()

    @pytest.mark.asyncio
    async def test_cashtag_position_is_held(self, make_post, stub_source, now):
        """A "$tsla" position is the held TSLA, so bullish chatter means hold."""
        posts = [make_post(f"p{i}", "$TSLA strong rally", minutes_ago=i) for i in range(3)]
        pipeline = _pipeline(stub_source("platform", posts), stub_source("inferred"), prices={})
        positions = [Position(ticker="$tsla", quantity=10, entry_price=200.0, current_price=210.0)]

        result = await pipeline.analyze([], positions=positions, now=now)

        assert list(result.sentiment.tickers) == ["TSLA"]
        assert [(s.ticker, s.action) for s in result.stock_suggestions] == [("TSLA", "hold")]
        assert result.option_suggestions == []

    @pytest.mark.asyncio
    async def test_cashtag_position_price_used_for_put(self, make_post, stub_source, now):
        posts = [make_post("p1", "$TSLA plunge after recall")]
        pipeline = _pipeline(stub_source("platform", posts), stub_source("inferred"), prices={})
        positions = [Position(ticker=" $tsla", quantity=10, entry_price=200.0, current_price=210.0)]

        result = await pipeline.analyze([], positions=positions, now=now)

        assert result.stock_suggestions[0].action == "sell"
        [put] = result.option_suggestions
        assert (put.option_type, put.strike) == ("put", 210.0)
        assert pipeline.lookups == []

    @pytest.mark.asyncio
    async def test_empty_tickers_is_input_error(self, stub_source):
        with pytest.raises(InputError):
            await _pipeline(stub_source("platform"), stub_source("inferred")).analyze([], [], [])

    @pytest.mark.asyncio
    async def test_non_positive_max_count(self, stub_source):
        with pytest.raises(InputError):
            await _pipeline(stub_source("platform"), stub_source("inferred")).analyze(["AAPL"], max_count=0)


def test_analysis_scope_order_and_dedup():
    watchlist = [WatchlistItem(ticker="tsla"), WatchlistItem(ticker="AAPL")]
    positions = [Position(ticker="NVDA", quantity=1, entry_price=1.0)]
    assert analysis_scope(["$aapl", "MARKET"], watchlist, positions) == ["AAPL", "TSLA", "NVDA"]


def test_build_pipeline_defaults():
    pipeline = build_pipeline()
    assert isinstance(pipeline.classifier, ImpactClassifier)
    assert isinstance(pipeline.acquisition, AcquisitionCoordinator)
    assert pipeline.budget == 30.0


def test_analysis_scope_resolves_company_names():
    assert analysis_scope(["Apple", "tesla", "$NVDA"], [], []) == ["AAPL", "TSLA", "NVDA"]


def test_build_pipeline_reads_market_accounts():
    pipeline = build_pipeline(Settings(market_accounts="Bloomberg, @WSJ ,"))
    assert pipeline.accounts == ("Bloomberg", "@WSJ")
