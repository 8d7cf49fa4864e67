"""
Post acquisition with primary/fallback sources.

The coordinator asks the primary source (the X API) first and only falls
back to the LLM-backed source when the primary comes back empty, fails, or
runs out of its share of the time budget. Source failures are logged as
degradation events and never raised to the caller.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union

from signalbot.config import get_settings
from signalbot.errors import InputError, SourceDegraded
from signalbot.services.sources import FetchTargets, PostSource
from signalbot.services.types import Post

logger = logging.getLogger(__name__)


@dataclass
class AcquisitionResult:
    posts: List[Post] = field(default_factory=list)
    source: Optional[str] = None
    degraded: List[str] = field(default_factory=list)


class AcquisitionCoordinator:
    def __init__(self, primary: PostSource, fallback: PostSource,
                 budget: Optional[float] = None,
                 primary_share: Optional[float] = None,
                 fallback_floor: Optional[float] = None):
        settings = get_settings()
        self.primary = primary
        self.fallback = fallback
        self.budget = settings.acquisition_budget_seconds if budget is None else budget
        self.primary_share = settings.primary_share if primary_share is None else primary_share
        self.fallback_floor = settings.fallback_floor_seconds if fallback_floor is None else fallback_floor

        if not 0 < self.primary_share <= 1:
            raise ValueError("primary_share must be in (0, 1]")

    async def fetch_posts(self, targets: Union[FetchTargets, Iterable[str]], max_count: int,
                          budget: Optional[float] = None) -> List[Post]:
        result = await self.fetch_with_report(targets, max_count, budget)
        return result.posts

    async def fetch_with_report(self, targets: Union[FetchTargets, Iterable[str]], max_count: int,
                                budget: Optional[float] = None) -> AcquisitionResult:
        """
        Fetch posts, primary first, fallback on empty/failure/timeout.

        Args:
            targets: Tickers and/or usernames, or an already parsed FetchTargets
            max_count: Maximum number of posts wanted (> 0)
            budget: Wall-clock seconds for the whole call; defaults to settings

        Returns:
            AcquisitionResult; its posts are empty when neither source had data

        Raises:
            InputError: Empty target set, non-positive max_count or budget
        """
        parsed = targets if isinstance(targets, FetchTargets) else FetchTargets.parse(targets)
        if max_count <= 0:
            raise InputError(f"max_count must be positive, got {max_count}")
        budget = self.budget if budget is None else budget
        if budget <= 0:
            raise InputError(f"budget must be positive, got {budget}")

        loop = asyncio.get_running_loop()
        started = loop.time()
        result = AcquisitionResult()

        posts = await self._attempt(self.primary, parsed, max_count, budget * self.primary_share, result)
        if posts:
            result.posts = posts
            result.source = self.primary.name
            return result

        remaining = budget - (loop.time() - started)
        window = max(remaining, self.fallback_floor)
        logger.info(f"Falling back to {self.fallback.name} source with {window:.1f}s")

        posts = await self._attempt(self.fallback, parsed, max_count, window, result)
        if posts:
            result.posts = posts
            result.source = self.fallback.name
            return result

        logger.warning(f"No posts from any source for {', '.join(parsed.as_list())}")
        return result

    async def _attempt(self, source: PostSource, targets: FetchTargets, max_count: int,
                       timeout: float, result: AcquisitionResult) -> List[Post]:
        # wait_for cancels the in-flight fetch on timeout, so a late answer is never seen
        try:
            posts = await asyncio.wait_for(source.fetch(targets, max_count), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Source degraded: {source.name} timed out after {timeout:.1f}s")
            result.degraded.append(f"{source.name}: timed out")
            return []
        except SourceDegraded as e:
            logger.warning(f"Source degraded: {e}")
            result.degraded.append(str(e))
            return []
        except Exception as e:
            logger.warning(f"Source degraded: {source.name} failed: {e}", exc_info=True)
            result.degraded.append(f"{source.name}: {e}")
            return []

        if not posts:
            logger.info(f"Source {source.name} returned no posts")
            return []
        return list(posts)
