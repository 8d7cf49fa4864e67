import logging
import logging.config
from typing import List, Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from signalbot.config import get_settings
from signalbot.errors import InputError, PipelineTimeout
from signalbot.orchestration.tasks import SignalPipeline, default_pipeline, healthcheck
from signalbot.routers import portfolio
from signalbot.routers.portfolio import get_session_store
from signalbot.services.types import AnalysisResult, OptionContract, Position, WatchlistItem
from signalbot.storage.session_store import SessionStore
from signalbot.trading.options import get_available_options


# Configure logging
def _configure_logging():
    """Configure structured logging for the application."""
    level = get_settings().log_level.upper()
    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "level": level
            }
        },
        "root": {
            "level": "INFO",
            "handlers": ["console"]
        },
        "loggers": {
            "signalbot": {
                "level": level,
                "handlers": ["console"],
                "propagate": False
            },
            "httpx": {
                "level": "WARNING"
            }
        }
    }
    logging.config.dictConfig(logging_config)


_configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Signal Bot API",
    description="Market-moving social posts turned into per-ticker sentiment and trade ideas",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",      # React dev server
        "http://localhost:5173",      # Vite dev server
        "http://localhost:8000",
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(portfolio.router)


class AnalyzeRequest(BaseModel):
    """Analyze payload; watchlist/positions fall back to the saved portfolio when email is given."""
    tickers: List[str] = []
    watchlist: Optional[List[Union[WatchlistItem, str]]] = None
    positions: Optional[List[Position]] = None
    max_count: Optional[int] = None
    email: Optional[str] = None


def get_pipeline() -> SignalPipeline:
    return default_pipeline()


@app.get("/healthz")
def health_check():
    """Health check endpoint."""
    return healthcheck()


@app.post("/analyze", response_model=AnalysisResult)
async def analyze_signals(
    request: AnalyzeRequest,
    pipeline: SignalPipeline = Depends(get_pipeline),
    store: SessionStore = Depends(get_session_store),
):
    """
    Analyze recent posts for the requested tickers.

    Returns per-ticker and market sentiment with ranked stock and option
    suggestions. A request nobody is talking about comes back with status
    "no_signal", not an error.
    """
    watchlist = request.watchlist
    positions = request.positions
    if request.email and (watchlist is None or positions is None):
        saved = store.get(request.email)
        if saved is not None:
            logger.debug(f"Using saved portfolio for {request.email}")
            watchlist = saved.watchlist if watchlist is None else watchlist
            positions = saved.positions if positions is None else positions

    logger.info(f"Received analyze request for tickers={request.tickers}")
    try:
        return await pipeline.analyze(
            request.tickers,
            watchlist or [],
            positions or [],
            max_count=request.max_count,
        )
    except InputError as e:
        logger.warning(f"Invalid analyze request: {e}")
        raise HTTPException(status_code=400, detail=f"Invalid input: {e}")
    except PipelineTimeout as e:
        raise HTTPException(status_code=504, detail=str(e))
    except Exception as e:
        logger.error(f"Error analyzing {request.tickers}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to analyze")


@app.get("/options/{ticker}", response_model=List[OptionContract])
def list_options(
    ticker: str,
    spot: float = Query(..., gt=0, description="Current price of the underlying")
):
    """
    Synthetic option chain for a ticker.

    Premiums are a heuristic estimate; volume, open interest and implied
    volatility are illustrative only.
    """
    try:
        return get_available_options(ticker, spot)
    except InputError as e:
        raise HTTPException(status_code=400, detail=f"Invalid input: {e}")


@app.get("/")
def root():
    """Root endpoint - service information."""
    return {
        "service": "Signal Bot API",
        "version": "1.0.0",
        "description": "Social signal aggregation for stocks, crypto and options",
        "endpoints": {
            "health": "/healthz",
            "analyze": "POST /analyze",
            "options": "/options/AAPL?spot=175",
            "portfolio": "/portfolio/{email}",
            "docs": "/docs",
            "redoc": "/redoc"
        }
    }
