from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Protocol, Sequence, runtime_checkable

from signalbot.errors import InputError
from signalbot.services.types import Post

_TICKER = re.compile(r"^[A-Z]{1,5}(?:-[A-Z]{2,4})?$")


@dataclass(frozen=True)
class FetchTargets:
    """Targets of one fetch, split into tickers and usernames."""

    tickers: tuple = ()
    usernames: tuple = ()

    @classmethod
    def parse(cls, raw: Iterable[str]) -> "FetchTargets":
        """
        `$AAPL` and bare upper-case symbols are tickers; `@name` and anything
        else are usernames. Order is kept, duplicates dropped.

        Raises:
            InputError: If no usable target remains
        """
        if isinstance(raw, str):
            raw = [raw]
        tickers: List[str] = []
        usernames: List[str] = []
        for item in raw:
            token = (item or "").strip()
            if not token:
                continue
            if token.startswith("@"):
                name = token[1:]
                if name and name not in usernames:
                    usernames.append(name)
            elif token.startswith("$") or _TICKER.match(token):
                symbol = token.lstrip("$").upper()
                if symbol and symbol not in tickers:
                    tickers.append(symbol)
            elif token not in usernames:
                usernames.append(token)

        if not tickers and not usernames:
            raise InputError("At least one ticker or username is required")
        return cls(tickers=tuple(tickers), usernames=tuple(usernames))

    def as_list(self) -> List[str]:
        return [f"${t}" for t in self.tickers] + [f"@{u}" for u in self.usernames]


@runtime_checkable
class PostSource(Protocol):
    """Anything that turns targets into normalized posts."""

    name: str

    async def fetch(self, targets: FetchTargets, max_count: int) -> List[Post]:
        ...


@dataclass
class StaticPostSource:
    """Deterministic source for demos/tests (no network, no API keys)."""

    posts: Sequence[Post] = field(default_factory=list)
    name: str = "static"

    async def fetch(self, targets: FetchTargets, max_count: int) -> List[Post]:
        return list(self.posts)[:max_count]
