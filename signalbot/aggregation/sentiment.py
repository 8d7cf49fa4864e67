"""
Fold ticker mentions into sentiment breakdowns.

The market-wide breakdown counts every in-scope mention, so a heavily
discussed ticker moves the headline number more than a quiet one.
"""

import logging
from collections import Counter
from datetime import datetime
from typing import Dict, Iterable, Optional

from signalbot.services.resolver import normalize_ticker
from signalbot.services.types import (
    AggregateSentiment, PostClassification, SentimentBreakdown, TickerMention, utcnow,
)

logger = logging.getLogger(__name__)


def mentions_of(classifications: Iterable[PostClassification]) -> list:
    """Flatten classifications into mentions; excluded posts contribute nothing."""
    return [m for c in classifications if c.market_impact != "none" for m in c.mentions]


class SentimentAggregator:
    def aggregate(self, mentions: Iterable[TickerMention], scope_tickers: Iterable[str],
                  now: Optional[datetime] = None) -> AggregateSentiment:
        now = now or utcnow()
        scope = []
        for ticker in scope_tickers:
            symbol = normalize_ticker(ticker)
            if symbol and symbol not in scope:
                scope.append(symbol)

        per_ticker: Dict[str, Counter] = {t: Counter() for t in scope}
        market: Counter = Counter()
        ignored = 0

        for mention in mentions:
            counts = per_ticker.get(mention.ticker)
            if counts is None:
                ignored += 1
                continue
            counts[mention.direction] += 1
            market[mention.direction] += 1

        if ignored:
            logger.debug(f"Ignored {ignored} mentions outside scope {scope}")

        breakdowns = {
            ticker: SentimentBreakdown.from_counts(
                bullish=counts["bullish"],
                bearish=counts["bearish"],
                neutral=counts["neutral"],
                ticker=ticker,
                last_updated=now,
            )
            for ticker, counts in per_ticker.items()
        }
        market_breakdown = SentimentBreakdown.from_counts(
            bullish=market["bullish"],
            bearish=market["bearish"],
            neutral=market["neutral"],
            last_updated=now,
        )
        return AggregateSentiment(tickers=breakdowns, market=market_breakdown)
