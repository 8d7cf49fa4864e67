"""
Per-post market impact classification.

ImpactClassifier is rule based and deterministic: it finds which watched
tickers a post names and scores bullish/bearish keywords in the clauses
around each mention. LLMImpactClassifier asks the model instead and drops
back to the rules for any batch the model cannot answer.

Posts the classifiers are unsure about are excluded (market impact "none"),
never forced into a direction.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from signalbot.config import get_settings
from signalbot.errors import ClassificationUncertain, SourceDegraded
from signalbot.nlp.clean import find_mentioned, mentions_ticker, normalize_post, split_clauses
from signalbot.nlp.sentiment import detect_sarcasm, direction_of
from signalbot.services.grok_client import GrokClient
from signalbot.services.resolver import base_ticker, normalize_ticker
from signalbot.services.types import (
    DIRECTIONS, MarketImpact, Post, PostClassification, TickerMention, majority_label,
)

logger = logging.getLogger(__name__)

SARCASM_THRESHOLD = 0.5


def _watch_list(watched: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for ticker in watched:
        symbol = normalize_ticker(ticker)
        if symbol and symbol not in seen:
            seen.append(symbol)
    return seen


def _impact_of(mentions: Sequence[TickerMention]) -> MarketImpact:
    if not mentions:
        return "none"
    counts = {d: 0 for d in DIRECTIONS}
    for mention in mentions:
        counts[mention.direction] += 1
    return majority_label(counts["bullish"], counts["bearish"], counts["neutral"])


class ImpactClassifier:
    def __init__(self, fanout: Optional[int] = None):
        self.fanout = fanout or get_settings().classification_fanout

    def classify(self, post: Post, watched_tickers: Iterable[str]) -> PostClassification:
        watched = _watch_list(watched_tickers)
        try:
            mentions = self._mentions(post, watched)
        except ClassificationUncertain as e:
            logger.debug(f"Excluding uncertain post: {e}")
            return PostClassification(post_id=post.id)
        return PostClassification(post_id=post.id, mentions=mentions, market_impact=_impact_of(mentions))

    async def classify_many(self, posts: Sequence[Post], watched_tickers: Iterable[str]) -> List[PostClassification]:
        watched = _watch_list(watched_tickers)
        semaphore = asyncio.Semaphore(self.fanout)

        async def run(post: Post) -> PostClassification:
            async with semaphore:
                return self.classify(post, watched)

        return list(await asyncio.gather(*(run(p) for p in posts)))

    def _mentions(self, post: Post, watched: List[str]) -> List[TickerMention]:
        text = normalize_post(post.content)
        tagged = {normalize_ticker(t) for t in post.mentioned_tickers}
        in_text = find_mentioned(text, watched)

        mentioned = [
            t for t in watched
            if t in in_text or t in tagged or base_ticker(t) in tagged
        ]
        if not mentioned:
            return []

        if detect_sarcasm(text) >= SARCASM_THRESHOLD:
            raise ClassificationUncertain(post.id, "sarcasm indicators")

        clauses = split_clauses(text)
        mentions = []
        for ticker in mentioned:
            relevant = [c for c in clauses if mentions_ticker(c, ticker)]
            # Clause scoping keeps one ticker's news from colouring another's
            scoped = " ".join(relevant) if relevant else text
            direction = direction_of(scoped)
            if direction == "neutral" and relevant and len(mentioned) == 1:
                direction = direction_of(text)
            mentions.append(TickerMention(
                post_id=post.id,
                ticker=ticker,
                direction=direction,
                posted_at=post.timestamp,
            ))
        return mentions


def _truncate(content: str, max_len: int = 200) -> str:
    if len(content) <= max_len:
        return content
    truncated = content[:max_len]
    last_space = truncated.rfind(" ")
    if last_space > max_len * 0.8:
        truncated = truncated[:last_space]
    return truncated + "..."


class LLMImpactClassifier:
    """Classifies posts in batches through the LLM."""

    def __init__(self, client: Optional[GrokClient] = None, fallback: Optional[ImpactClassifier] = None,
                 batch_size: int = 15, fanout: Optional[int] = None):
        self.client = client or GrokClient()
        self.fallback = fallback or ImpactClassifier(fanout=fanout)
        self.batch_size = batch_size
        self.fanout = fanout or get_settings().classification_fanout

    def classify(self, post: Post, watched_tickers: Iterable[str]) -> PostClassification:
        # Single synchronous calls use the deterministic rules
        return self.fallback.classify(post, watched_tickers)

    async def classify_many(self, posts: Sequence[Post], watched_tickers: Iterable[str]) -> List[PostClassification]:
        watched = _watch_list(watched_tickers)
        batches = [list(posts[i:i + self.batch_size]) for i in range(0, len(posts), self.batch_size)]
        semaphore = asyncio.Semaphore(self.fanout)

        async def run(batch: List[Post]) -> List[PostClassification]:
            async with semaphore:
                try:
                    return await self._classify_batch(batch, watched)
                except SourceDegraded as e:
                    logger.warning(f"LLM classification degraded, using rules for {len(batch)} posts: {e}")
                    return [self.fallback.classify(p, watched) for p in batch]

        results = await asyncio.gather(*(run(b) for b in batches))
        return [c for batch in results for c in batch]

    def build_prompt(self, batch: Sequence[Post], watched: Sequence[str]) -> str:
        tweet_data = [
            {
                "i": p.id[:50],
                "u": p.author.username[:30],
                "t": _truncate(p.content),
                "l": min(p.engagement.likes, 999999),
                "r": min(p.engagement.retweets, 999999),
            }
            for p in batch
        ]
        return f"""Analyze tweets for stock impact. Watchlist: {','.join(watched) or 'none'}

Tweets: {json.dumps(tweet_data)}

For each tweet (use "i" as tweetId), return:
{{
  "tweetAnalyses": [
    {{
      "tweetId": "i value",
      "impactedTickers": ["AAPL", "MARKET"],
      "sentimentPerTicker": {{"AAPL": "bullish", "MARKET": "neutral"}},
      "overallMarketImpact": "bullish|bearish|neutral|none"
    }}
  ]
}}

Rules:
- Only tag tickers EXPLICITLY mentioned or CLEARLY impacted
- Use "MARKET" for general market news
- Be conservative - only tag clear connections"""

    async def _classify_batch(self, batch: List[Post], watched: List[str]) -> List[PostClassification]:
        parsed = await self.client.complete_json(self.build_prompt(batch, watched), temperature=0.3, max_tokens=2000)
        analyses = parsed.get("tweetAnalyses")
        if not isinstance(analyses, list):
            raise SourceDegraded("llm", "Response did not contain a 'tweetAnalyses' array")

        by_id: Dict[str, Dict[str, Any]] = {}
        for analysis in analyses:
            if isinstance(analysis, dict) and analysis.get("tweetId") is not None:
                by_id[str(analysis["tweetId"])] = analysis

        results = []
        for post in batch:
            analysis = by_id.get(post.id) or by_id.get(post.id[:50])
            try:
                results.append(self._interpret(post, analysis, watched))
            except ClassificationUncertain as e:
                logger.debug(f"Excluding uncertain post: {e}")
                results.append(PostClassification(post_id=post.id))
        return results

    def _interpret(self, post: Post, analysis: Optional[Dict[str, Any]], watched: List[str]) -> PostClassification:
        if analysis is None:
            raise ClassificationUncertain(post.id, "no analysis returned")

        per_ticker = analysis.get("sentimentPerTicker") or {}
        if not isinstance(per_ticker, dict):
            raise ClassificationUncertain(post.id, "malformed sentimentPerTicker")
        per_ticker = {normalize_ticker(str(k)): str(v).lower() for k, v in per_ticker.items()}

        raw_impacted = analysis.get("impactedTickers") or []
        if not isinstance(raw_impacted, list):
            raise ClassificationUncertain(post.id, "malformed impactedTickers")
        impacted = [normalize_ticker(str(t)) for t in raw_impacted]
        mentions = []
        for ticker in watched:
            if ticker not in impacted and base_ticker(ticker) not in impacted:
                continue
            direction = per_ticker.get(ticker) or per_ticker.get(base_ticker(ticker))
            if direction not in DIRECTIONS:
                logger.debug(f"Dropping {ticker} on post {post.id}: direction {direction!r}")
                continue
            mentions.append(TickerMention(
                post_id=post.id, ticker=ticker, direction=direction, posted_at=post.timestamp,
            ))

        if impacted and not mentions and any(t in watched for t in impacted):
            raise ClassificationUncertain(post.id, "no usable direction for impacted tickers")

        impact = str(analysis.get("overallMarketImpact") or "").lower()
        if not mentions:
            impact = "none"
        elif impact not in DIRECTIONS:
            impact = _impact_of(mentions)
        return PostClassification(post_id=post.id, mentions=mentions, market_impact=impact)
