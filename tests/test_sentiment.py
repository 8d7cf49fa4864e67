"""Test keyword direction scoring and sarcasm detection."""

import pytest

from signalbot.nlp.sentiment import detect_sarcasm, direction_of, keyword_hits


class TestDirection:
    """Keyword-based direction."""

    def test_bullish(self):
        assert direction_of("AAPL to the moon! Strong buy") == "bullish"

    def test_bearish(self):
        assert direction_of("Stock is crashing hard. Sell now to cut losses") == "bearish"

    def test_neutral(self):
        assert direction_of("The company reported results today") == "neutral"

    def test_balanced_is_neutral(self):
        assert direction_of("strong sales, weak margins") == "neutral"

    def test_word_boundaries(self):
        """'up' inside another word is not a hit."""
        assert keyword_hits("supply chain update") == (0, 0)

    def test_phrases(self):
        bullish, bearish = keyword_hits("Earnings beat expectations, record high")
        assert bullish >= 2
        assert bearish == 0


class TestSarcasm:
    """Sarcasm probability."""

    @pytest.mark.parametrize("text", [
        "Yeah right, definitely going up",
        "Totally not worried about this drop",
        "Leveraged longs into earnings, what could go wrong",
        "Great quarter 🙄",
    ])
    def test_detected(self, text):
        assert detect_sarcasm(text) >= 0.5

    def test_default_low(self):
        assert detect_sarcasm("Solid quarter with good margins") == 0.05

    def test_weak_indicator_below_threshold(self):
        assert detect_sarcasm("lol nice") < 0.5
