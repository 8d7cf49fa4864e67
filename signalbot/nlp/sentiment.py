import re
from typing import List, Tuple
from signalbot.services.types import Direction

BULLISH_TERMS = [
    'bullish', 'buy', 'buying', 'long', 'up', 'growth', 'strong', 'positive', 'rise', 'gain',
    'rally', 'surge', 'soar', 'climb', 'boost', 'momentum', 'breakout', 'outperform', 'bull',
    'higher', 'increase', 'advance', 'profit', 'earnings beat', 'beat expectations', 'beats',
    'optimistic', 'recovery', 'expansion', 'upside', 'bull market', 'moon', 'record high',
    'upgrade', 'calls',
]
BEARISH_TERMS = [
    'bearish', 'sell', 'selling', 'short', 'down', 'weak', 'negative', 'drop', 'fall', 'crash',
    'plunge', 'decline', 'dip', 'slump', 'correction', 'underperform', 'bear', 'lower',
    'decrease', 'loss', 'losses', 'miss', 'missed expectations', 'disappoint', 'disappointing',
    'pessimistic', 'recession', 'bear market', 'concern', 'worried', 'fear', 'dump',
    'downgrade', 'lawsuit', 'bankruptcy', 'puts',
]

# Phrases that flip the meaning of whatever follows, probability of sarcasm
SARCASM_INDICATORS = {
    'yeah right': 0.8,
    '🙄': 0.9,
    '😏': 0.6,
    'totally not': 0.7,
    'obviously': 0.6,
    'what could go wrong': 0.8,
    'lol': 0.3,
    'sure': 0.3,
    'brilliant': 0.4,  # Context-dependent
}


def _compile(terms: List[str]) -> List[re.Pattern]:
    return [re.compile(rf"(?<![a-z]){re.escape(term)}(?![a-z])") for term in terms]


_BULLISH = _compile(BULLISH_TERMS)
_BEARISH = _compile(BEARISH_TERMS)


def keyword_hits(text: str) -> Tuple[int, int]:
    """Count (bullish, bearish) keyword hits in text."""
    lowered = text.lower()
    bullish = sum(1 for pattern in _BULLISH if pattern.search(lowered))
    bearish = sum(1 for pattern in _BEARISH if pattern.search(lowered))
    return bullish, bearish


def direction_of(text: str) -> Direction:
    bullish, bearish = keyword_hits(text)
    if bullish > bearish:
        return "bullish"
    if bearish > bullish:
        return "bearish"
    return "neutral"


def detect_sarcasm(text: str) -> float:
    """
    Detect potential sarcasm in text.

    Returns probability between 0.0 and 1.0
    """
    text_lower = text.lower()
    max_sarcasm = 0.0

    for indicator, score in SARCASM_INDICATORS.items():
        if indicator in text_lower:
            max_sarcasm = max(max_sarcasm, score)

    # Default low probability if no indicators
    return max_sarcasm if max_sarcasm > 0 else 0.05
