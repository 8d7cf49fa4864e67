from typing import Dict, List
from signalbot.services.types import ResolvedInstrument, MARKET

# Company and product names that identify a ticker in free text
COMPANY_ALIASES: Dict[str, List[str]] = {
    "AAPL": ["APPLE", "IPHONE", "IPAD", "MACBOOK"],
    "MSFT": ["MICROSOFT", "WINDOWS", "AZURE"],
    "GOOGL": ["GOOGLE", "ALPHABET", "YOUTUBE"],
    "AMZN": ["AMAZON", "AWS"],
    "TSLA": ["TESLA"],
    "NVDA": ["NVIDIA"],
    "META": ["FACEBOOK", "META", "INSTAGRAM"],
    "BTC": ["BITCOIN"],
    "ETH": ["ETHEREUM"],
    "SPY": ["S&P", "SP500", "SP 500"],
    MARKET: ["THE MARKET", "STOCK MARKET", "WALL STREET", "FEDERAL RESERVE", "THE FED"],
}

# Reverse lookup used when the query is a company name
SYMBOL_MAP: Dict[str, str] = {
    alias: symbol
    for symbol, aliases in COMPANY_ALIASES.items()
    for alias in aliases
}


def normalize_ticker(raw: str) -> str:
    return raw.strip().lstrip("$").upper()


def base_ticker(ticker: str) -> str:
    """BTC-USD -> BTC; plain tickers are returned unchanged."""
    return ticker.split("-")[0] if "-" in ticker else ticker


def resolve(query: str) -> ResolvedInstrument:
    query_upper = normalize_ticker(query)
    if not query_upper:
        raise ValueError("Empty instrument query")

    # Company name
    if query_upper in SYMBOL_MAP:
        symbol = SYMBOL_MAP[query_upper]
        return ResolvedInstrument(
            symbol=symbol,
            company_name=query.strip(),
            aliases=COMPANY_ALIASES.get(symbol, []),
        )

    # Already a ticker (crypto pairs like BTC-USD included)
    symbol = query_upper
    return ResolvedInstrument(
        symbol=symbol,
        company_name=symbol,
        aliases=COMPANY_ALIASES.get(base_ticker(symbol), []),
    )


def canonical_ticker(raw: str) -> str:
    """Ticker symbol for user input; company names map to their ticker. Empty input gives ''."""
    if not normalize_ticker(raw):
        return ""
    return resolve(raw).symbol
