"""
Saved watchlist and positions per user, keyed by email.

The pipeline never reads this directly; the API layer loads a user's
portfolio and passes it in.
"""

import threading
from typing import Dict, List, Optional, Protocol

from pydantic import BaseModel

from signalbot.logging_config import get_logger
from signalbot.services.types import Position, WatchlistItem

logger = get_logger(__name__)


class Portfolio(BaseModel):
    watchlist: List[WatchlistItem] = []
    positions: List[Position] = []


class SessionStore(Protocol):
    def get(self, email: str) -> Optional[Portfolio]: ...

    def set(self, email: str, portfolio: Portfolio) -> None: ...

    def clear(self, email: str) -> bool: ...


def _key(email: str) -> str:
    key = (email or "").strip().lower()
    if not key:
        raise ValueError("email is required")
    return key


class InMemorySessionStore:
    """In-memory session store using a dict behind a lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._portfolios: Dict[str, Portfolio] = {}
        logger.info("Initialized in-memory session store")

    def get(self, email: str) -> Optional[Portfolio]:
        with self._lock:
            portfolio = self._portfolios.get(_key(email))
            return portfolio.model_copy(deep=True) if portfolio is not None else None

    def set(self, email: str, portfolio: Portfolio) -> None:
        with self._lock:
            self._portfolios[_key(email)] = portfolio.model_copy(deep=True)
            logger.debug(f"Saved portfolio for {email}: {len(portfolio.watchlist)} watched, "
                         f"{len(portfolio.positions)} positions")

    def clear(self, email: str) -> bool:
        """Returns True if something was removed."""
        with self._lock:
            return self._portfolios.pop(_key(email), None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._portfolios)
