from typing import Any, Dict, List, Optional
from datetime import datetime, timedelta, timezone
import httpx
import logging
from signalbot.nlp.clean import extract_cashtags
from signalbot.services.types import Author, Engagement, Post
from signalbot.services.sources import FetchTargets
from signalbot.errors import SourceDegraded
from signalbot.config import get_settings

logger = logging.getLogger(__name__)

TWEET_FIELDS = "created_at,public_metrics,author_id,attachments,entities"
USER_FIELDS = "username,name,verified"
MEDIA_FIELDS = "type,url,preview_image_url"


def _parse_created_at(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _media_map(includes: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    return {m["media_key"]: m for m in includes.get("media", []) if m.get("media_key")}


def tweet_to_post(tweet: Dict[str, Any], user: Dict[str, Any],
                  media_by_key: Dict[str, Dict[str, Any]]) -> Post:
    """
    Map an X API v2 tweet object to a Post.

    Raises:
        KeyError, ValueError: If required tweet fields are missing or malformed
    """
    metrics = tweet.get("public_metrics", {})
    username = user.get("username") or f"user_{tweet.get('author_id', '')}"
    verified = bool(user.get("verified", False))

    image_urls = []
    for key in tweet.get("attachments", {}).get("media_keys", []):
        media = media_by_key.get(key)
        if media and media.get("type") in ("photo", "animated_gif"):
            url = media.get("url") or media.get("preview_image_url")
            if url:
                image_urls.append(url)

    cashtags = [c["tag"].upper() for c in tweet.get("entities", {}).get("cashtags", []) if c.get("tag")]
    if not cashtags:
        # X omits cashtag entities on some tweets
        cashtags = list(dict.fromkeys(tag.upper() for tag in extract_cashtags(tweet["text"])))

    return Post(
        id=tweet["id"],
        author=Author(username=username, display_name=user.get("name") or username, verified=verified),
        content=tweet["text"],
        timestamp=_parse_created_at(tweet["created_at"]),
        engagement=Engagement(
            likes=metrics.get("like_count", 0) or 0,
            retweets=metrics.get("retweet_count", 0) or 0,
        ),
        attached_image_urls=image_urls,
        impact_label="high" if verified else "medium",
        mentioned_tickers=cashtags,
        source="platform",
    )


class PlatformSource:
    """Direct X (Twitter) API v2 source: user timelines and cashtag search."""

    name = "platform"

    def __init__(self, bearer_token: Optional[str] = None, base_url: Optional[str] = None,
                 http_client: Optional[httpx.AsyncClient] = None, lookback: timedelta = timedelta(hours=24)):
        settings = get_settings()
        self.bearer_token = settings.x_bearer_token if bearer_token is None else bearer_token
        self.base_url = (base_url or settings.x_api_base_url).rstrip("/")
        self.lookback = lookback
        self._http_client = http_client

    async def fetch(self, targets: FetchTargets, max_count: int) -> List[Post]:
        """
        Fetch recent posts for the given tickers and usernames.

        Returns an empty list when no bearer token is configured or nothing
        was found; unknown users are skipped.

        Raises:
            SourceDegraded: On authentication, rate-limit, server or transport errors
        """
        if not self.bearer_token:
            logger.info("X bearer token not configured, platform source disabled")
            return []

        if self._http_client is not None:
            posts = await self._fetch_all(self._http_client, targets, max_count)
        else:
            async with httpx.AsyncClient(timeout=10.0) as client:
                posts = await self._fetch_all(client, targets, max_count)

        posts.sort(key=lambda p: p.timestamp, reverse=True)
        logger.info(f"Retrieved {len(posts)} posts from X for {', '.join(targets.as_list())}")
        return posts[:max_count]

    async def _fetch_all(self, client: httpx.AsyncClient, targets: FetchTargets, max_count: int) -> List[Post]:
        since = datetime.now(timezone.utc) - self.lookback
        posts: List[Post] = []
        seen = set()

        batches = []
        if targets.tickers:
            batches.append(await self._search(client, targets.tickers, max_count, since))
        for username in targets.usernames:
            batches.append(await self._user_timeline(client, username, max_count, since))

        for batch in batches:
            for post in batch:
                if post.id not in seen:
                    seen.add(post.id)
                    posts.append(post)
        return posts

    async def _get(self, client: httpx.AsyncClient, path: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        headers = {
            "Authorization": f"Bearer {self.bearer_token}",
            "User-Agent": "signal-bot/1.0",
        }
        try:
            response = await client.get(f"{self.base_url}{path}", headers=headers, params=params)
        except httpx.HTTPError as e:
            raise SourceDegraded(self.name, f"X API request failed: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code == 429:
            raise SourceDegraded(self.name, "X API rate limited")
        if response.status_code in (401, 403):
            raise SourceDegraded(self.name, f"X API authentication failed ({response.status_code})")
        if response.status_code >= 400:
            raise SourceDegraded(self.name, f"X API error: {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise SourceDegraded(self.name, "X API returned non-JSON response") from e

    def _parse_tweets(self, data: Dict[str, Any], users_by_id: Dict[str, Dict[str, Any]],
                      since: datetime) -> List[Post]:
        media_by_key = _media_map(data.get("includes", {}))
        posts = []
        for tweet in data.get("data", []) or []:
            try:
                user = users_by_id.get(tweet.get("author_id", ""), {})
                post = tweet_to_post(tweet, user, media_by_key)
            except (KeyError, ValueError) as e:
                logger.warning(f"Failed to parse tweet {tweet.get('id', 'unknown')}: {e}")
                continue
            if post.timestamp >= since:
                posts.append(post)
        return posts

    async def _search(self, client: httpx.AsyncClient, tickers, max_count: int, since: datetime) -> List[Post]:
        cashtags = " OR ".join(f"${t}" for t in tickers)
        params = {
            "query": f"({cashtags}) -is:retweet lang:en",
            "tweet.fields": TWEET_FIELDS,
            "user.fields": USER_FIELDS,
            "media.fields": MEDIA_FIELDS,
            "expansions": "author_id,attachments.media_keys",
            "max_results": max(10, min(max_count, 100)),
            "start_time": since.strftime("%Y-%m-%dT%H:%M:%SZ"),
        }
        data = await self._get(client, "/tweets/search/recent", params)
        if not data or "data" not in data:
            return []
        users_by_id = {u["id"]: u for u in data.get("includes", {}).get("users", [])}
        return self._parse_tweets(data, users_by_id, since)

    async def _user_timeline(self, client: httpx.AsyncClient, username: str, max_count: int,
                             since: datetime) -> List[Post]:
        lookup = await self._get(client, f"/users/by/username/{username}", {"user.fields": USER_FIELDS})
        user = (lookup or {}).get("data")
        if not user:
            logger.warning(f"X user {username} not found")
            return []

        params = {
            "tweet.fields": TWEET_FIELDS,
            "media.fields": MEDIA_FIELDS,
            "expansions": "attachments.media_keys",
            "max_results": max(5, min(max_count, 100)),
            "start_time": since.strftime("%Y-%m-%dT%H:%M:%SZ"),
        }
        data = await self._get(client, f"/users/{user['id']}/tweets", params)
        if not data or "data" not in data:
            return []
        return self._parse_tweets(data, {user["id"]: user}, since)
