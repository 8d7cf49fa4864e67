"""
Synthetic option chain.

Used whenever no live option-chain feed is available. The premium formula
is an illustrative intrinsic + time-value heuristic, NOT an options pricing
model. Volume, open interest and implied volatility are random display
filler and must not be used for any decision.
"""

import math
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

import numpy as np

from signalbot.errors import InputError
from signalbot.services.types import OptionContract, OptionType, utcnow

STRIKE_STEP = 5
STRIKE_OFFSETS = range(-4, 5)
EXPIRATION_DAYS = (7, 14, 30)
MIN_PREMIUM = 0.50
OPPOSITE_PREMIUM_FACTOR = 0.8


def _round_half_up(value: float, places: str = "0.01") -> float:
    return float(Decimal(repr(value)).quantize(Decimal(places), rounding=ROUND_HALF_UP))


def synthetic_strikes(spot_price: float) -> List[float]:
    """Nine strikes 5 apart, centred on spot rounded to the nearest 5. Non-positive strikes are dropped."""
    base = math.floor(spot_price / STRIKE_STEP + 0.5) * STRIKE_STEP
    return [float(base + k * STRIKE_STEP) for k in STRIKE_OFFSETS if base + k * STRIKE_STEP > 0]


def is_near_money(strike: float, spot_price: float) -> bool:
    return 0.95 < strike / spot_price < 1.05


def synthetic_premium(spot_price: float, strike: float, days_to_expiry: int) -> float:
    """Unrounded premium: distance + near-money bump + time value, floored at 0.50."""
    premium = abs(spot_price - strike) * 0.1
    if is_near_money(strike, spot_price):
        premium += spot_price * 0.02
    premium += (days_to_expiry / 30) * spot_price * 0.01
    return max(MIN_PREMIUM, premium)


def primary_type(strike: float, spot_price: float) -> OptionType:
    return "call" if strike < spot_price else "put"


def _filler(rng: np.random.Generator, primary: bool) -> dict:
    if primary:
        volume = rng.integers(100, 1100)
        open_interest = rng.integers(500, 5500)
    else:
        volume = rng.integers(50, 850)
        open_interest = rng.integers(300, 3300)
    return {
        "volume": int(volume),
        "open_interest": int(open_interest),
        "implied_volatility": float(rng.uniform(20.0, 50.0)),
    }


def generate_chain(ticker: str, spot_price: float, as_of: Optional[datetime] = None,
                   rng: Optional[np.random.Generator] = None) -> List[OptionContract]:
    """
    Build a synthetic chain of strikes x expirations x type.

    Args:
        ticker: Underlying symbol
        spot_price: Current underlying price (> 0)
        as_of: Reference time for expirations; defaults to now
        rng: Source for the filler fields; pass a seeded Generator for repeatable output

    Returns:
        Contracts ordered by strike, then expiration; near-money strikes are
        followed by a contract of the opposite type.

    Raises:
        InputError: Empty ticker or non-positive spot price
    """
    ticker = (ticker or "").strip().upper()
    if not ticker:
        raise InputError("ticker is required")
    if not spot_price or spot_price <= 0 or math.isnan(spot_price):
        raise InputError(f"spot_price must be positive, got {spot_price}")

    as_of = as_of or utcnow()
    rng = rng if rng is not None else np.random.default_rng()

    contracts: List[OptionContract] = []
    for strike in synthetic_strikes(spot_price):
        for days in EXPIRATION_DAYS:
            expiration = as_of + timedelta(days=days)
            premium = synthetic_premium(spot_price, strike, days)
            option_type = primary_type(strike, spot_price)

            contracts.append(OptionContract(
                ticker=ticker,
                strike=strike,
                expiration=expiration,
                option_type=option_type,
                premium=_round_half_up(premium),
                **_filler(rng, primary=True),
            ))

            # Simple put/call skew near the money
            if is_near_money(strike, spot_price):
                contracts.append(OptionContract(
                    ticker=ticker,
                    strike=strike,
                    expiration=expiration,
                    option_type="put" if option_type == "call" else "call",
                    premium=_round_half_up(premium * OPPOSITE_PREMIUM_FACTOR),
                    **_filler(rng, primary=False),
                ))
    return contracts


def get_available_options(ticker: str, spot_price: float) -> List[OptionContract]:
    return generate_chain(ticker, spot_price)
