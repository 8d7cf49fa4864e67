"""
Turn sentiment breakdowns into ranked stock and option suggestions.

Confidence (0-100) combines:
- Directional skew: |bullish - bearish| / total mentions
- Volume: recency-weighted mention count, saturating (1 - exp(-n / scale))
- A small boost for tickers on the user's watchlist

Holding a position changes the framing when `position_bias` is on: a bullish
signal on a held ticker becomes "hold" at reduced confidence instead of
"buy", and no bullish option is suggested for it. This is a product policy,
switchable through RankerPolicy / settings.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from signalbot.config import Settings, get_settings
from signalbot.services.resolver import canonical_ticker
from signalbot.services.types import (
    MARKET, OptionContract, OptionSuggestion, Position, SentimentBreakdown,
    StockSuggestion, TickerMention, WatchlistItem, utcnow,
)
from signalbot.trading.options import generate_chain

logger = logging.getLogger(__name__)

ChainProvider = Callable[[str, float, datetime], List[OptionContract]]


@dataclass(frozen=True)
class RankerPolicy:
    position_bias: bool = True
    position_penalty: float = 0.8
    watchlist_boost: float = 5.0
    half_life_hours: float = 24.0
    skew_weight: float = 0.6
    volume_weight: float = 0.4
    volume_scale: float = 5.0
    option_target_days: int = 14
    option_target_move: float = 0.05
    option_confidence_factor: float = 0.9

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RankerPolicy":
        settings = settings or get_settings()
        return cls(
            position_bias=settings.ranker_position_bias,
            position_penalty=settings.ranker_position_penalty,
            watchlist_boost=settings.ranker_watchlist_boost,
            half_life_hours=settings.ranker_half_life_hours,
            option_target_days=settings.option_target_days,
            option_target_move=settings.option_target_move,
            option_confidence_factor=settings.option_confidence_factor,
        )


@dataclass
class Suggestions:
    stock_suggestions: List[StockSuggestion] = field(default_factory=list)
    option_suggestions: List[OptionSuggestion] = field(default_factory=list)


def _clamp_confidence(value: float) -> int:
    return int(round(min(100.0, max(0.0, value))))


def _unique(ids: Iterable[str]) -> List[str]:
    seen = []
    for i in ids:
        if i not in seen:
            seen.append(i)
    return seen


class SuggestionRanker:
    def __init__(self, policy: Optional[RankerPolicy] = None, chain_provider: Optional[ChainProvider] = None):
        self.policy = policy or RankerPolicy.from_settings()
        self.chain_provider = chain_provider

    def recency_weight(self, mention: TickerMention, now: datetime) -> float:
        if mention.posted_at is None:
            return 1.0
        age_hours = max(0.0, (now - mention.posted_at).total_seconds() / 3600)
        return 0.5 ** (age_hours / self.policy.half_life_hours)

    def score(self, breakdown: SentimentBreakdown, mentions: Sequence[TickerMention],
              on_watchlist: bool, now: datetime) -> float:
        """Raw confidence before position policy and clamping."""
        if breakdown.total == 0:
            return 0.0
        skew = abs(breakdown.bullish - breakdown.bearish) / breakdown.total
        weighted = (sum(self.recency_weight(m, now) for m in mentions)
                    if mentions else float(breakdown.total))
        volume = 1 - math.exp(-weighted / self.policy.volume_scale)
        raw = 100 * (self.policy.skew_weight * skew + self.policy.volume_weight * volume)
        if on_watchlist:
            raw += self.policy.watchlist_boost
        return raw

    def rank(self, breakdowns: Mapping[str, SentimentBreakdown],
             watchlist: Sequence[Union[WatchlistItem, str]],
             positions: Sequence[Position],
             mentions: Iterable[TickerMention] = (),
             spot_prices: Optional[Mapping[str, float]] = None,
             now: Optional[datetime] = None) -> Suggestions:
        """
        Rank suggestions for every ticker with at least one mention.

        Args:
            breakdowns: Per-ticker sentiment
            watchlist: Watched tickers (items or plain symbols)
            positions: Open positions; drive the position-aware framing
            mentions: Mentions behind the breakdowns, for recency weighting
                and supporting post ids
            spot_prices: Underlying prices; tickers without one get no option idea
            now: Reference time for recency and option expirations

        Returns:
            Suggestions, each list sorted by confidence descending then ticker
        """
        now = now or utcnow()
        spot_prices = {canonical_ticker(k): v for k, v in (spot_prices or {}).items()}
        watched = {canonical_ticker(w if isinstance(w, str) else w.ticker) for w in watchlist}
        held = {canonical_ticker(p.ticker) for p in positions if p.quantity}

        by_ticker: Dict[str, List[TickerMention]] = {}
        for mention in mentions:
            by_ticker.setdefault(mention.ticker, []).append(mention)

        result = Suggestions()
        for ticker in sorted(breakdowns):
            breakdown = breakdowns[ticker]
            if ticker == MARKET or breakdown.total == 0:
                continue

            ticker_mentions = by_ticker.get(ticker, [])
            raw = self.score(breakdown, ticker_mentions, ticker in watched, now)
            stock = self._stock_suggestion(ticker, breakdown, ticker_mentions, raw, ticker in held)
            if stock is None:
                continue
            result.stock_suggestions.append(stock)

            spot = spot_prices.get(ticker)
            if spot is not None and breakdown.overall != "neutral":
                option = self._option_suggestion(ticker, breakdown, stock, spot, ticker in held, now)
                if option is not None:
                    result.option_suggestions.append(option)

        result.stock_suggestions.sort(key=lambda s: (-s.confidence, s.ticker))
        result.option_suggestions.sort(key=lambda s: (-s.confidence, s.ticker))
        logger.info(f"Ranked {len(result.stock_suggestions)} stock and "
                    f"{len(result.option_suggestions)} option suggestions")
        return result

    def _stock_suggestion(self, ticker: str, breakdown: SentimentBreakdown,
                          mentions: Sequence[TickerMention], raw: float,
                          is_held: bool) -> Optional[StockSuggestion]:
        counts = f"{breakdown.bullish} bullish / {breakdown.bearish} bearish / {breakdown.neutral} neutral"
        biased = is_held and self.policy.position_bias

        if breakdown.overall == "bullish":
            if biased:
                action, raw = "hold", raw * self.policy.position_penalty
                reason = f"Bullish chatter ({counts}) on a ticker you already hold; hold rather than add"
            else:
                action, reason = "buy", f"Bullish chatter ({counts})"
        elif breakdown.overall == "bearish":
            action = "sell"
            reason = (f"Bearish chatter ({counts}) against an open position"
                      if is_held else f"Bearish chatter ({counts})")
        elif is_held:
            action, reason = "hold", f"Mixed or neutral chatter ({counts}) on an open position"
        else:
            return None

        wanted = breakdown.overall
        supporting = _unique(m.post_id for m in mentions if wanted == "neutral" or m.direction == wanted)
        return StockSuggestion(
            id=f"stock-{ticker}-{action}",
            ticker=ticker,
            action=action,
            confidence=_clamp_confidence(raw),
            reason=reason,
            supporting_post_ids=supporting,
        )

    def _chain(self, ticker: str, spot: float, now: datetime) -> List[OptionContract]:
        if self.chain_provider is not None:
            try:
                chain = self.chain_provider(ticker, spot, now)
                if chain:
                    return chain
                logger.info(f"Live option chain empty for {ticker}, using synthetic chain")
            except Exception as e:
                logger.warning(f"Live option chain failed for {ticker}, using synthetic chain: {e}")
        return generate_chain(ticker, spot, now)

    def _option_suggestion(self, ticker: str, breakdown: SentimentBreakdown, stock: StockSuggestion,
                           spot: float, is_held: bool, now: datetime) -> Optional[OptionSuggestion]:
        bullish = breakdown.overall == "bullish"
        if bullish and is_held and self.policy.position_bias:
            logger.debug(f"Skipping bullish option on held ticker {ticker}")
            return None

        option_type = "call" if bullish else "put"
        candidates = [c for c in self._chain(ticker, spot, now) if c.option_type == option_type]
        if not candidates:
            return None

        def days_out(contract: OptionContract) -> float:
            return (contract.expiration - now).total_seconds() / 86400

        target = self.policy.option_target_days
        best_gap = min(abs(days_out(c) - target) for c in candidates)
        at_expiry = [c for c in candidates if abs(days_out(c) - target) == best_gap]
        # Ties go to the strike on the out-of-the-money side
        contract = min(at_expiry, key=lambda c: (abs(c.strike - spot), -c.strike if bullish else c.strike))

        move = self.policy.option_target_move
        target_price = round(spot * (1 + move) if bullish else spot * (1 - move), 2)
        return OptionSuggestion(
            id=f"option-{ticker}-{option_type}-{contract.strike:g}-{contract.expiration:%Y%m%d}",
            ticker=ticker,
            action="buy",
            confidence=_clamp_confidence(stock.confidence * self.policy.option_confidence_factor),
            reason=f"{stock.reason}; {option_type} near the money for a {move:.0%} move",
            supporting_post_ids=stock.supporting_post_ids,
            strike=contract.strike,
            expiration=contract.expiration,
            option_type=option_type,
            premium_estimate=contract.premium,
            target_price=target_price,
            strategy="long_call" if bullish else "long_put",
        )
