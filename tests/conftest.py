"""Shared fixtures: a fixed clock, a post factory and stub post sources."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from signalbot.services.types import Author, Engagement, Post

NOW = datetime(2024, 6, 3, 15, 0, tzinfo=timezone.utc)


def build_post(post_id, content, minutes_ago=0, username="trader", tickers=(),
               source="static", verified=False, now=NOW):
    return Post(
        id=post_id,
        author=Author(username=username, display_name=username.title(), verified=verified),
        content=content,
        timestamp=now - timedelta(minutes=minutes_ago),
        engagement=Engagement(likes=10, retweets=2),
        impact_label="high" if verified else "medium",
        mentioned_tickers=list(tickers),
        source=source,
    )


class StubSource:
    """Post source with scripted latency, result and failure."""

    def __init__(self, name, posts=(), delay=0.0, error=None):
        self.name = name
        self.posts = list(posts)
        self.delay = delay
        self.error = error
        self.calls = 0
        self.cancelled = False
        self.targets = []

    async def fetch(self, targets, max_count):
        self.calls += 1
        self.targets.append(targets)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return self.posts[:max_count]


class FakeGrok:
    """Returns queued JSON payloads (or raises queued exceptions) from complete_json."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts = []

    async def complete_json(self, prompt, temperature=0.7, max_tokens=2000):
        self.prompts.append(prompt)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_post():
    return build_post


@pytest.fixture
def stub_source():
    return StubSource


@pytest.fixture
def fake_grok():
    return FakeGrok
