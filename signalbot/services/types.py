from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Dict, Literal, Optional, List
from datetime import datetime, timezone

Direction = Literal["bullish", "bearish", "neutral"]
MarketImpact = Literal["bullish", "bearish", "neutral", "none"]
Action = Literal["buy", "sell", "hold"]
OptionType = Literal["call", "put"]

DIRECTIONS = ("bullish", "bearish", "neutral")

# Pseudo-ticker for posts about the market as a whole
MARKET = "MARKET"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def majority_label(bullish: int, bearish: int, neutral: int) -> Direction:
    """Label with the strictly largest count; ties resolve to neutral."""
    if bullish > bearish and bullish > neutral:
        return "bullish"
    if bearish > bullish and bearish > neutral:
        return "bearish"
    return "neutral"


class Author(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str
    display_name: str
    verified: bool = False


class Engagement(BaseModel):
    model_config = ConfigDict(frozen=True)

    likes: int = 0
    retweets: int = 0

    @property
    def total(self) -> int:
        return self.likes + self.retweets


class Post(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    author: Author
    content: str
    timestamp: datetime
    engagement: Engagement = Field(default_factory=Engagement)
    attached_image_urls: List[str] = []
    impact_label: Literal["high", "medium", "low"] = "medium"
    mentioned_tickers: List[str] = []
    source: Literal["platform", "inferred", "static"] = "platform"


class TickerMention(BaseModel):
    model_config = ConfigDict(frozen=True)

    post_id: str
    ticker: str
    direction: Direction
    posted_at: Optional[datetime] = None


class PostClassification(BaseModel):
    model_config = ConfigDict(frozen=True)

    post_id: str
    mentions: List[TickerMention] = []
    market_impact: MarketImpact = "none"

    @model_validator(mode="after")
    def _none_iff_unmentioned(self):
        if (self.market_impact == "none") != (not self.mentions):
            raise ValueError("market_impact 'none' must coincide with an empty mention list")
        return self


class SentimentBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    ticker: Optional[str] = None
    bullish: int = Field(0, ge=0)
    bearish: int = Field(0, ge=0)
    neutral: int = Field(0, ge=0)
    overall: Direction = "neutral"
    last_updated: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _overall_matches_counts(self):
        expected = majority_label(self.bullish, self.bearish, self.neutral)
        if self.overall != expected:
            raise ValueError(f"overall must be {expected!r} for these counts")
        return self

    @classmethod
    def from_counts(cls, bullish: int = 0, bearish: int = 0, neutral: int = 0,
                    ticker: Optional[str] = None,
                    last_updated: Optional[datetime] = None) -> "SentimentBreakdown":
        return cls(
            ticker=ticker,
            bullish=bullish,
            bearish=bearish,
            neutral=neutral,
            overall=majority_label(bullish, bearish, neutral),
            last_updated=last_updated or utcnow(),
        )

    @property
    def total(self) -> int:
        return self.bullish + self.bearish + self.neutral

    def percentages(self) -> Dict[str, int]:
        """Whole percentages summing to 100; rounding remainder goes to neutral."""
        if self.total == 0:
            return {"bullish": 0, "bearish": 0, "neutral": 0}
        bullish = round(self.bullish * 100 / self.total)
        bearish = round(self.bearish * 100 / self.total)
        return {"bullish": bullish, "bearish": bearish, "neutral": 100 - bullish - bearish}


class WatchlistItem(BaseModel):
    ticker: str
    added_at: Optional[datetime] = None
    price: Optional[float] = None


class Position(BaseModel):
    ticker: str
    quantity: float
    entry_price: float
    current_price: Optional[float] = None
    kind: Literal["stock", "option", "crypto"] = "stock"


class OptionContract(BaseModel):
    model_config = ConfigDict(frozen=True)

    ticker: str
    strike: float
    expiration: datetime
    option_type: OptionType
    premium: float
    # Decorative filler, not market data
    volume: int
    open_interest: int
    implied_volatility: float


class StockSuggestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    ticker: str
    action: Action
    confidence: int = Field(ge=0, le=100)
    reason: str
    supporting_post_ids: List[str] = []
    timeframe: Literal["intraday", "swing", "long_term"] = "swing"


class OptionSuggestion(StockSuggestion):
    strike: float
    expiration: datetime
    option_type: OptionType
    premium_estimate: float
    target_price: float
    strategy: Literal["long_call", "long_put"]


class AggregateSentiment(BaseModel):
    tickers: Dict[str, SentimentBreakdown]
    market: SentimentBreakdown


class AnalysisResult(BaseModel):
    status: Literal["ok", "no_signal"]
    sentiment: AggregateSentiment
    stock_suggestions: List[StockSuggestion] = []
    option_suggestions: List[OptionSuggestion] = []
    posts_found: int = 0
    posts_classified: int = 0
    source: Optional[str] = None
    degraded_sources: List[str] = []
    generated_at: datetime = Field(default_factory=utcnow)


class ResolvedInstrument(BaseModel):
    symbol: str
    company_name: str
    aliases: List[str] = []
