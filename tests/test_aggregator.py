"""Tests for sentiment aggregation."""

import pytest
from pydantic import ValidationError

from signalbot.aggregation.sentiment import SentimentAggregator, mentions_of
from signalbot.services.types import PostClassification, SentimentBreakdown, TickerMention


def _mentions(ticker, bullish=0, bearish=0, neutral=0, prefix="p"):
    out = []
    for direction, count in (("bullish", bullish), ("bearish", bearish), ("neutral", neutral)):
        for i in range(count):
            out.append(TickerMention(post_id=f"{prefix}-{ticker}-{direction}-{i}", ticker=ticker, direction=direction))
    return out


class TestSentimentAggregator:
    """Folding mentions into breakdowns."""

    def test_counts_sum_to_contributing_mentions(self, now):
        mentions = _mentions("AAPL", 3, 2, 4) + _mentions("TSLA", 1, 0, 0)
        result = SentimentAggregator().aggregate(mentions, ["AAPL", "TSLA"], now=now)

        aapl = result.tickers["AAPL"]
        assert (aapl.bullish, aapl.bearish, aapl.neutral) == (3, 2, 4)
        assert aapl.total == 9
        assert result.tickers["TSLA"].total == 1
        assert result.market.total == len(mentions)

    def test_tie_resolves_to_neutral(self, now):
        """Equal bullish and bearish with fewer neutral is neutral overall."""
        result = SentimentAggregator().aggregate(_mentions("AAPL", 2, 2, 1), ["AAPL"], now=now)
        assert result.tickers["AAPL"].overall == "neutral"

    def test_market_is_mention_weighted(self, now):
        """100 bullish on A and 1 bearish on B makes the market bullish."""
        mentions = _mentions("AAA", bullish=100) + _mentions("BBB", bearish=1)
        result = SentimentAggregator().aggregate(mentions, ["AAA", "BBB"], now=now)

        assert result.tickers["AAA"].overall == "bullish"
        assert result.tickers["BBB"].overall == "bearish"
        assert result.market.overall == "bullish"
        assert (result.market.bullish, result.market.bearish) == (100, 1)

    def test_empty_input(self, now):
        """No mentions is all-zero neutral, not an error."""
        result = SentimentAggregator().aggregate([], ["XYZ"], now=now)

        xyz = result.tickers["XYZ"]
        assert (xyz.bullish, xyz.bearish, xyz.neutral, xyz.overall) == (0, 0, 0, "neutral")
        assert result.market.total == 0
        assert result.market.overall == "neutral"

    def test_out_of_scope_mentions_ignored(self, now):
        mentions = _mentions("AAPL", bullish=1) + _mentions("GME", bearish=5)
        result = SentimentAggregator().aggregate(mentions, ["AAPL"], now=now)

        assert "GME" not in result.tickers
        assert result.market.total == 1
        assert result.market.overall == "bullish"

    def test_scope_normalized(self, now):
        result = SentimentAggregator().aggregate(_mentions("AAPL", bullish=1), ["$aapl", "AAPL"], now=now)
        assert list(result.tickers) == ["AAPL"]
        assert result.tickers["AAPL"].bullish == 1

    def test_last_updated(self, now):
        result = SentimentAggregator().aggregate([], ["AAPL"], now=now)
        assert result.tickers["AAPL"].last_updated == now
        assert result.market.last_updated == now


def test_mentions_of_skips_excluded_posts():
    """Posts classified as 'none' contribute nothing."""
    mention = TickerMention(post_id="p1", ticker="AAPL", direction="bullish")
    classifications = [
        PostClassification(post_id="p1", mentions=[mention], market_impact="bullish"),
        PostClassification(post_id="p2"),
    ]
    assert mentions_of(classifications) == [mention]


class TestSentimentBreakdown:
    """Breakdown model validation."""

    def test_overall_must_match_counts(self):
        with pytest.raises(ValidationError):
            SentimentBreakdown(bullish=3, bearish=1, overall="neutral")

    def test_counts_non_negative(self):
        with pytest.raises(ValidationError):
            SentimentBreakdown.from_counts(bullish=-1)

    def test_percentages_sum_to_100(self):
        breakdown = SentimentBreakdown.from_counts(bullish=1, bearish=1, neutral=1)
        pct = breakdown.percentages()
        assert sum(pct.values()) == 100
        assert pct["bullish"] == 33

    def test_percentages_empty(self):
        assert SentimentBreakdown.from_counts().percentages() == {"bullish": 0, "bearish": 0, "neutral": 0}
