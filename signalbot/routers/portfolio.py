"""
Portfolio endpoints: saved watchlist and positions per user.
"""

import logging
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException

from signalbot.storage.session_store import InMemorySessionStore, Portfolio, SessionStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/portfolio", tags=["portfolio"])


@lru_cache()
def get_session_store() -> SessionStore:
    """Process-wide store; override this dependency to inject another backend."""
    return InMemorySessionStore()


@router.get("/{email}", response_model=Portfolio)
def get_portfolio(email: str, store: SessionStore = Depends(get_session_store)):
    """Get the saved watchlist and positions for a user."""
    try:
        portfolio = store.get(email)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid input: {e}")
    if portfolio is None:
        raise HTTPException(status_code=404, detail="Portfolio not found")
    return portfolio


@router.put("/{email}", response_model=Portfolio)
def save_portfolio(email: str, portfolio: Portfolio, store: SessionStore = Depends(get_session_store)):
    """
    Replace the saved portfolio for a user.

    Args:
        email: User key
        portfolio: Watchlist and positions to save

    Returns:
        The saved portfolio
    """
    logger.info(f"Saving portfolio for {email}")
    try:
        store.set(email, portfolio)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid input: {e}")
    return portfolio


@router.delete("/{email}")
def delete_portfolio(email: str, store: SessionStore = Depends(get_session_store)):
    """Forget a user's saved portfolio."""
    try:
        removed = store.clear(email)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid input: {e}")
    if not removed:
        raise HTTPException(status_code=404, detail="Portfolio not found")
    logger.info(f"Cleared portfolio for {email}")
    return {"status": "deleted", "email": email}
