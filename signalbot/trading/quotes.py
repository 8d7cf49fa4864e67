"""
Spot price lookup for option strike selection.
"""

import logging
from typing import Callable, Dict, Iterable, Optional

import yfinance as yf

from signalbot.services.resolver import canonical_ticker
from signalbot.services.types import Position, WatchlistItem

logger = logging.getLogger(__name__)

PriceLookup = Callable[[str], Optional[float]]


def yfinance_spot_price(symbol: str) -> Optional[float]:
    """
    Last close from yfinance.

    Returns:
        Price, or None if the fetch fails or returns no data
    """
    try:
        hist = yf.Ticker(symbol).history(period="5d")
        if hist.empty:
            logger.warning(f"No price data for {symbol}")
            return None
        price = float(hist['Close'].iloc[-1])
        return price if price > 0 else None
    except Exception as e:
        logger.warning(f"Failed to get price data for {symbol}: {e}")
        return None


def known_prices(watchlist: Iterable[WatchlistItem], positions: Iterable[Position]) -> Dict[str, float]:
    """Prices the caller already supplied; positions win over watchlist entries."""
    prices: Dict[str, float] = {}
    for item in watchlist:
        if item.price and item.price > 0:
            prices[canonical_ticker(item.ticker)] = item.price
    for pos in positions:
        if pos.kind != "option" and pos.current_price and pos.current_price > 0:
            prices[canonical_ticker(pos.ticker)] = pos.current_price
    return prices


def resolve_spot_prices(tickers: Iterable[str], supplied: Dict[str, float],
                        lookup: Optional[PriceLookup] = None) -> Dict[str, float]:
    prices = {}
    for ticker in tickers:
        price = supplied.get(ticker)
        if price is None and lookup is not None:
            price = lookup(ticker)
        if price is not None and price > 0:
            prices[ticker] = price
    return prices
