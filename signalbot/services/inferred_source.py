import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from signalbot.errors import LLMResponseError
from signalbot.services.grok_client import GrokClient
from signalbot.services.sources import FetchTargets
from signalbot.services.types import Author, Engagement, Post

logger = logging.getLogger(__name__)

_IMPACT_LABELS = {"high", "medium", "low"}


def inferred_post_id(username: str, content: str) -> str:
    """Stable id for a post that came back without one."""
    digest = hashlib.sha1(f"{username}\n{content}".encode("utf-8")).hexdigest()
    return f"inferred-{digest[:16]}"


def _count(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def _timestamp(value: Any, fallback: datetime) -> datetime:
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
        except ValueError:
            pass
    return fallback


def build_prompt(targets: FetchTargets, max_count: int) -> str:
    if targets.tickers:
        subject = f"about {', '.join('$' + t for t in targets.tickers)} OR general market-moving tweets"
    else:
        subject = "general market-moving tweets and financial insights"
    users = (f"from these specific users: {', '.join(targets.usernames)}"
             if targets.usernames else
             "from influential financial analysts, traders, news outlets and verified accounts")

    return f"""Extract {max_count} REAL tweets {subject} {users} from the last 24h.

Return JSON:
{{
  "tweets": [
    {{
      "id": "tweet id if known",
      "content": "exact tweet text",
      "username": "username_no_@",
      "displayName": "Display Name",
      "verified": true/false,
      "impact": "high|medium|low",
      "likes": num,
      "retweets": num,
      "timestamp": "ISO8601",
      "tickers": ["AAPL"],
      "imageUrls": []
    }}
  ]
}}

Rules:
- Only REAL tweets from the last 24h
- "tickers" lists only symbols the tweet explicitly mentions
- Mix bullish/bearish/neutral
- Return ONLY valid JSON."""


def tweet_payload_to_post(item: Dict[str, Any], now: datetime) -> Optional[Post]:
    content = str(item.get("content") or "").strip()
    username = str(item.get("username") or "").lstrip("@").strip()
    if not content or not username:
        return None

    impact = str(item.get("impact") or "medium").lower()
    tickers = [str(t).lstrip("$").upper() for t in item.get("tickers") or [] if str(t).strip()]
    images = [str(u) for u in item.get("imageUrls") or [] if u]

    return Post(
        id=str(item.get("id") or "") or inferred_post_id(username, content),
        author=Author(
            username=username,
            display_name=str(item.get("displayName") or username),
            verified=bool(item.get("verified", False)),
        ),
        content=content,
        timestamp=_timestamp(item.get("timestamp"), now),
        engagement=Engagement(likes=_count(item.get("likes")), retweets=_count(item.get("retweets"))),
        attached_image_urls=images,
        impact_label=impact if impact in _IMPACT_LABELS else "medium",
        mentioned_tickers=tickers,
        source="inferred",
    )


class InferredSource:
    """LLM-backed source: asks the model for recent posts about the targets."""

    name = "inferred"

    def __init__(self, client: Optional[GrokClient] = None):
        self.client = client or GrokClient()

    async def fetch(self, targets: FetchTargets, max_count: int) -> List[Post]:
        """
        Raises:
            SourceDegraded: If the LLM is unreachable or its answer is unusable
        """
        parsed = await self.client.complete_json(build_prompt(targets, max_count), temperature=0.7, max_tokens=2000)
        raw_tweets = parsed.get("tweets")
        if raw_tweets is None:
            raise LLMResponseError("Response did not contain a 'tweets' array")
        if not isinstance(raw_tweets, list):
            raise LLMResponseError("'tweets' is not an array")

        now = datetime.now(timezone.utc)
        posts: List[Post] = []
        seen = set()
        for item in raw_tweets:
            if not isinstance(item, dict):
                continue
            post = tweet_payload_to_post(item, now)
            if post is None or post.id in seen:
                continue
            seen.add(post.id)
            posts.append(post)

        logger.info(f"Inferred {len(posts)} posts for {', '.join(targets.as_list())}")
        return posts[:max_count]
