import asyncio
import datetime as dt
import logging
from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Sequence, Union

from signalbot.aggregation.sentiment import SentimentAggregator, mentions_of
from signalbot.config import Settings, get_settings
from signalbot.errors import InputError, PipelineTimeout
from signalbot.nlp.classifier import ImpactClassifier, LLMImpactClassifier
from signalbot.orchestration.acquisition import AcquisitionCoordinator
from signalbot.orchestration.cache import CachedAcquisition
from signalbot.services.grok_client import GrokClient
from signalbot.services.inferred_source import InferredSource
from signalbot.services.resolver import canonical_ticker
from signalbot.services.sources import FetchTargets
from signalbot.services.types import (
    MARKET, AggregateSentiment, AnalysisResult, Position, SentimentBreakdown, WatchlistItem, utcnow,
)
from signalbot.services.x_client import PlatformSource
from signalbot.trading.quotes import PriceLookup, known_prices, resolve_spot_prices, yfinance_spot_price
from signalbot.trading.ranker import SuggestionRanker

logger = logging.getLogger(__name__)

WatchlistInput = Iterable[Union[WatchlistItem, str]]


def healthcheck() -> Dict:
    """Health check with timestamp."""
    return {
        "status": "ok",
        "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
        "version": "1.0.0"
    }


def _as_watchlist(watchlist: WatchlistInput) -> List[WatchlistItem]:
    return [WatchlistItem(ticker=w) if isinstance(w, str) else w for w in watchlist]


def analysis_scope(tickers: Iterable[str], watchlist: Sequence[WatchlistItem],
                   positions: Sequence[Position]) -> List[str]:
    """Requested tickers, then watchlist, then positions; resolved to symbols and deduplicated."""
    scope: List[str] = []
    candidates = list(tickers) + [w.ticker for w in watchlist] + [p.ticker for p in positions]
    for raw in candidates:
        symbol = canonical_ticker(raw)
        if symbol and symbol != MARKET and symbol not in scope:
            scope.append(symbol)
    return scope


class SignalPipeline:
    """
    One analysis request: acquire posts, classify, aggregate, rank.

    Holds no per-request state, so a single instance can serve concurrent
    requests.
    """

    def __init__(self, acquisition: Union[AcquisitionCoordinator, CachedAcquisition],
                 classifier: Union[ImpactClassifier, LLMImpactClassifier],
                 aggregator: Optional[SentimentAggregator] = None,
                 ranker: Optional[SuggestionRanker] = None,
                 price_lookup: Optional[PriceLookup] = None,
                 budget: Optional[float] = None,
                 accounts: Iterable[str] = ()):
        self.acquisition = acquisition
        self.classifier = classifier
        self.aggregator = aggregator or SentimentAggregator()
        self.ranker = ranker or SuggestionRanker()
        self.price_lookup = price_lookup
        self.budget = get_settings().pipeline_budget_seconds if budget is None else budget
        # Read on every request alongside the ticker search
        self.accounts = tuple(accounts)

    async def analyze(self, tickers: Iterable[str], watchlist: WatchlistInput = (),
                      positions: Iterable[Position] = (), max_count: Optional[int] = None,
                      accounts: Optional[Iterable[str]] = None,
                      now: Optional[dt.datetime] = None) -> AnalysisResult:
        """
        Run the full analysis for a set of tickers.

        Args:
            tickers: Tickers the user asked about
            watchlist: Watched tickers; added to the analysis scope
            positions: Open positions; added to the scope and used by the ranker
            max_count: Maximum posts to acquire; defaults to settings
            accounts: Usernames to read; defaults to the pipeline's market accounts
            now: Reference time; defaults to the current UTC time

        Returns:
            AnalysisResult; status "no_signal" when no post mentioned the scope

        Raises:
            InputError: No tickers in scope or non-positive max_count
            PipelineTimeout: The overall budget ran out
        """
        watch_items = _as_watchlist(watchlist)
        position_list = list(positions)
        scope = analysis_scope(tickers, watch_items, position_list)
        if not scope:
            raise InputError("At least one ticker is required")

        max_count = get_settings().default_max_count if max_count is None else max_count
        if max_count <= 0:
            raise InputError(f"max_count must be positive, got {max_count}")

        accounts = self.accounts if accounts is None else accounts
        usernames = tuple(dict.fromkeys(a.strip().lstrip("@") for a in accounts if a.strip("@ ")))
        targets = FetchTargets(tickers=tuple(scope), usernames=usernames)

        logger.info(f"Starting analysis for {', '.join(scope)} (max_count={max_count})")
        try:
            return await asyncio.wait_for(
                self._run(targets, scope, watch_items, position_list, max_count, now or utcnow()),
                timeout=self.budget,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Analysis for {', '.join(scope)} exceeded {self.budget:.1f}s")
            raise PipelineTimeout(self.budget) from None

    async def _run(self, targets: FetchTargets, scope: List[str], watchlist: List[WatchlistItem],
                   positions: List[Position], max_count: int, now: dt.datetime) -> AnalysisResult:
        acquired = await self.acquisition.fetch_with_report(targets, max_count)
        posts = acquired.posts

        classifications = await self.classifier.classify_many(posts, scope)
        mentions = mentions_of(classifications)
        sentiment = self.aggregator.aggregate(mentions, scope, now=now)
        classified = sum(1 for c in classifications if c.market_impact != "none")

        if not mentions:
            logger.info(f"No signal for {', '.join(scope)} from {len(posts)} posts")
            return AnalysisResult(
                status="no_signal",
                sentiment=sentiment,
                posts_found=len(posts),
                posts_classified=0,
                source=acquired.source,
                degraded_sources=acquired.degraded,
                generated_at=now,
            )

        spot_prices = await self._spot_prices(sentiment, watchlist, positions)
        suggestions = self.ranker.rank(
            sentiment.tickers, watchlist, positions,
            mentions=mentions, spot_prices=spot_prices, now=now,
        )
        logger.info(f"Analysis complete: {len(posts)} posts, {classified} classified, "
                    f"market {sentiment.market.overall}")
        return AnalysisResult(
            status="ok",
            sentiment=sentiment,
            stock_suggestions=suggestions.stock_suggestions,
            option_suggestions=suggestions.option_suggestions,
            posts_found=len(posts),
            posts_classified=classified,
            source=acquired.source,
            degraded_sources=acquired.degraded,
            generated_at=now,
        )

    async def _spot_prices(self, sentiment: AggregateSentiment, watchlist: List[WatchlistItem],
                           positions: List[Position]) -> Dict[str, float]:
        # Only directional tickers can become option ideas
        wanted = [t for t, b in sentiment.tickers.items() if _directional(b)]
        if not wanted:
            return {}
        supplied = known_prices(watchlist, positions)
        # yfinance is blocking
        return await asyncio.to_thread(resolve_spot_prices, wanted, supplied, self.price_lookup)


def _directional(breakdown: SentimentBreakdown) -> bool:
    return breakdown.total > 0 and breakdown.overall != "neutral"


def build_pipeline(settings: Optional[Settings] = None) -> SignalPipeline:
    """Wire the production pipeline from settings."""
    settings = settings or get_settings()
    grok = GrokClient()
    acquisition = AcquisitionCoordinator(PlatformSource(), InferredSource(grok))
    if settings.cache_bucket_seconds > 0:
        acquisition = CachedAcquisition(acquisition, settings.cache_bucket_seconds)
    classifier = LLMImpactClassifier(grok) if settings.use_llm_classifier else ImpactClassifier()
    return SignalPipeline(
        acquisition=acquisition,
        classifier=classifier,
        aggregator=SentimentAggregator(),
        ranker=SuggestionRanker(),
        price_lookup=yfinance_spot_price,
        budget=settings.pipeline_budget_seconds,
        accounts=settings.market_account_list,
    )


@lru_cache()
def default_pipeline() -> SignalPipeline:
    return build_pipeline()


async def analyze(tickers: Iterable[str], watchlist: WatchlistInput = (),
                  positions: Iterable[Position] = (), max_count: Optional[int] = None) -> AnalysisResult:
    """Analyze with the default pipeline (30 s budget unless configured otherwise)."""
    return await default_pipeline().analyze(tickers, watchlist, positions, max_count=max_count)
