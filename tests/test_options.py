"""Tests for the synthetic option chain."""

from datetime import timedelta

import numpy as np
import pytest

from signalbot.errors import InputError
from signalbot.trading.options import (
    generate_chain, get_available_options, is_near_money, primary_type,
    synthetic_premium, synthetic_strikes,
)


def _contract(chain, strike, option_type, days, as_of):
    matches = [
        c for c in chain
        if c.strike == strike and c.option_type == option_type and c.expiration == as_of + timedelta(days=days)
    ]
    assert len(matches) == 1
    return matches[0]


class TestStrikes:
    """Strike ladder around spot."""

    def test_aapl_strikes(self):
        """Nine strikes 5 apart centred on 175."""
        assert synthetic_strikes(175.0) == [155.0, 160.0, 165.0, 170.0, 175.0, 180.0, 185.0, 190.0, 195.0]

    def test_rounds_half_up(self):
        """172.5 rounds up to a 175 centre."""
        assert synthetic_strikes(172.5)[4] == 175.0
        assert synthetic_strikes(172.4)[4] == 170.0

    def test_low_spot_drops_non_positive_strikes(self):
        """Cheap underlyings never get zero or negative strikes."""
        strikes = synthetic_strikes(8.0)
        assert all(s > 0 for s in strikes)
        assert strikes[0] == 5.0


class TestPremium:
    """Deterministic premium formula."""

    def test_near_money_band(self):
        assert is_near_money(170, 175)
        assert is_near_money(180, 175)
        assert not is_near_money(165, 175)

    def test_primary_type(self):
        assert primary_type(170, 175) == "call"
        assert primary_type(175, 175) == "put"
        assert primary_type(180, 175) == "put"

    def test_floor(self):
        """Premium never drops below 0.50."""
        assert synthetic_premium(1.0, 1.0, 7) == 0.5


class TestGenerateChain:
    """Full chain generation."""

    def test_chain_size(self, now):
        """27 base contracts plus 9 near-money opposites."""
        chain = generate_chain("AAPL", 175.0, now, rng=np.random.default_rng(1))
        assert len(chain) == 36
        assert {c.strike for c in chain} == {155.0, 160.0, 165.0, 170.0, 175.0, 180.0, 185.0, 190.0, 195.0}
        assert {c.expiration - now for c in chain} == {timedelta(days=7), timedelta(days=14), timedelta(days=30)}

    @pytest.mark.parametrize("strike,option_type,days,premium", [
        (175.0, "put", 7, 3.91),
        (175.0, "call", 7, 3.13),
        (170.0, "call", 14, 4.82),
        (170.0, "put", 14, 3.85),
        (180.0, "put", 30, 5.75),
        (180.0, "call", 30, 4.6),
        (165.0, "call", 7, 1.41),
        (155.0, "call", 30, 3.75),
    ])
    def test_premiums_to_the_cent(self, now, strike, option_type, days, premium):
        chain = generate_chain("AAPL", 175.0, now)
        assert _contract(chain, strike, option_type, days, now).premium == premium

    def test_opposite_follows_primary(self, now):
        """Near-money strikes emit the opposite type right after the primary contract."""
        chain = generate_chain("AAPL", 175.0, now)
        idx = next(i for i, c in enumerate(chain) if c.strike == 175.0)
        assert chain[idx].option_type == "put"
        assert chain[idx + 1].option_type == "call"
        assert chain[idx + 1].strike == 175.0
        assert chain[idx + 1].expiration == chain[idx].expiration

    def test_deterministic_apart_from_filler(self, now):
        """Two runs agree on everything except volume, open interest and IV."""
        first = generate_chain("AAPL", 175.0, now)
        second = generate_chain("AAPL", 175.0, now)
        strip = lambda chain: [(c.strike, c.expiration, c.option_type, c.premium) for c in chain]
        assert strip(first) == strip(second)

    def test_seeded_rng_reproduces_filler(self, now):
        first = generate_chain("AAPL", 175.0, now, rng=np.random.default_rng(7))
        second = generate_chain("AAPL", 175.0, now, rng=np.random.default_rng(7))
        assert first == second

    def test_filler_ranges(self, now):
        chain = generate_chain("AAPL", 175.0, now, rng=np.random.default_rng(3))
        for c in chain:
            assert 50 <= c.volume <= 1099
            assert 300 <= c.open_interest <= 5499
            assert 20.0 <= c.implied_volatility <= 50.0

    def test_ticker_normalized(self, now):
        chain = generate_chain(" aapl ", 175.0, now)
        assert {c.ticker for c in chain} == {"AAPL"}

    @pytest.mark.parametrize("spot", [0, -10.0])
    def test_non_positive_spot(self, spot):
        with pytest.raises(InputError):
            generate_chain("AAPL", spot)

    def test_empty_ticker(self):
        with pytest.raises(InputError):
            generate_chain("", 175.0)


def test_get_available_options():
    """Entry point returns a full chain for now."""
    chain = get_available_options("TSLA", 250.0)
    # 240..260 are all within 5% of 250
    assert len(chain) == 27 + 5 * 3
    assert all(c.ticker == "TSLA" for c in chain)
