import re
from typing import Iterable, List, Set
from signalbot.services.resolver import COMPANY_ALIASES, base_ticker

# Clause boundaries: sentence punctuation, semicolons and contrastive joins
_CLAUSE_SPLIT = re.compile(r"[.;!?\n]+|,\s*|\s+(?:but|while|whereas|however)\s+", re.IGNORECASE)

def normalize_post(t: str) -> str:
    # Remove URLs
    t = re.sub(r'https?://\S+', '', t)
    # Remove excessive whitespace
    t = re.sub(r'\s+', ' ', t)
    t = t.strip()
    return t

def extract_cashtags(t: str) -> List[str]:
    # $AAPL, $BTC-USD
    return sorted(set(re.findall(r'\$([A-Za-z]{1,5}(?:-[A-Za-z]{2,4})?)(?![A-Za-z])', t)), key=str.upper)

def split_clauses(t: str) -> List[str]:
    return [c.strip() for c in _CLAUSE_SPLIT.split(t) if c and c.strip()]

def mentions_ticker(t: str, ticker: str) -> bool:
    """True when the text names the ticker by cashtag, bare symbol or company alias."""
    ticker = ticker.upper()
    base = base_ticker(ticker)
    upper = t.upper()

    for symbol in {ticker, base}:
        escaped = re.escape(symbol)
        if re.search(rf'\${escaped}(?![A-Z])', upper):
            return True
        # Bare single letters are too ambiguous
        if len(symbol) >= 2 and re.search(rf'(?<![A-Z$]){escaped}(?![A-Z])', upper):
            return True

    for alias in COMPANY_ALIASES.get(base, []):
        if re.search(rf'(?<![A-Z]){re.escape(alias)}(?![A-Z])', upper):
            return True
    return False

def find_mentioned(t: str, watched: Iterable[str]) -> Set[str]:
    return {ticker for ticker in watched if mentions_ticker(t, ticker)}
