"""Tests for bid/ask pricing and spread resolution."""

import math

import pytest

from margin_desk.services.spreads import (
    clamp_spread,
    entry_price_for,
    exit_price_for,
    quote_prices,
    resolve_spread,
)
from margin_desk.utils.constants import DEFAULT_SPREADS, MAX_SPREAD_FRACTION


class TestResolveSpread:
    def test_known_symbol_uses_table(self):
        assert resolve_spread("EUR/USD") == DEFAULT_SPREADS["EUR/USD"]

    def test_unknown_symbol_falls_back_to_default(self):
        assert resolve_spread("XAU/USD") == DEFAULT_SPREADS["default"]

    def test_explicit_zero_override_is_respected(self):
        assert resolve_spread("EUR/USD", 0.0) == 0.0

    def test_override_is_clamped(self):
        assert resolve_spread("EUR/USD", 0.05) == MAX_SPREAD_FRACTION


class TestClampSpread:
    @pytest.mark.parametrize("bad", [-0.001, math.nan, math.inf])
    def test_garbage_becomes_zero(self, bad):
        assert clamp_spread(bad) == 0.0

    def test_in_range_value_unchanged(self):
        assert clamp_spread(0.0003) == 0.0003


class TestQuotePrices:
    def test_symmetric_around_mid(self):
        q = quote_prices(1.0, 0.0002)
        assert q.ask == pytest.approx(1.0001)
        assert q.bid == pytest.approx(0.9999)
        assert q.spread_abs == pytest.approx(0.0002)

    def test_absurd_spread_capped_at_one_percent(self):
        q = quote_prices(100.0, 0.5)
        assert q.spread_fraction == MAX_SPREAD_FRACTION
        assert q.ask == pytest.approx(100.5)
        assert q.bid == pytest.approx(99.5)

    def test_zero_spread_collapses_to_mid(self):
        q = quote_prices(1.2345, 0.0)
        assert q.ask == q.bid == 1.2345


class TestSides:
    def test_long_enters_at_ask_and_exits_at_bid(self):
        assert entry_price_for(1, 2.0, 0.001) == pytest.approx(2.001)
        assert exit_price_for(1, 2.0, 0.001) == pytest.approx(1.999)

    def test_short_enters_at_bid_and_exits_at_ask(self):
        assert entry_price_for(-1, 2.0, 0.001) == pytest.approx(1.999)
        assert exit_price_for(-1, 2.0, 0.001) == pytest.approx(2.001)
