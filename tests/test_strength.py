"""Tests for the currency strength aggregator."""

import math

import pytest

from fxpulse_core.strength import (
    CURRENCIES,
    DISPLAY_MAX,
    DISPLAY_MIN,
    NEUTRAL,
    calculate_currency_strength,
    log_return,
    split_pair,
)


class TestSplitPair:
    @pytest.mark.parametrize("symbol", ["EURUSD", "EURUSDm", "EUR/USD", "eur_usd"])
    def test_formats(self, symbol):
        """Common pair spellings split into currencies."""
        assert split_pair(symbol) == ("EUR", "USD")

    @pytest.mark.parametrize("symbol", ["XAUUSD", "BTC", "EUREUR", ""])
    def test_untracked(self, symbol):
        """Untracked symbols give None."""
        assert split_pair(symbol) is None


class TestLogReturn:
    def test_value(self):
        """log_return is the log of the price ratio."""
        assert log_return(1.0, math.e) == pytest.approx(1.0)

    @pytest.mark.parametrize("prev,cur", [(0, 1), (1, -1), (float("nan"), 1), (None, 1)])
    def test_invalid(self, prev, cur):
        """Invalid prices give None."""
        assert log_return(prev, cur) is None


class TestCalculateCurrencyStrength:
    """Tests for calculate_currency_strength."""

    def test_no_data_all_neutral(self):
        """Without data every currency is neutral."""
        strength = calculate_currency_strength({})
        assert strength == {c: NEUTRAL for c in CURRENCIES}

    def test_single_pair_leaves_others_neutral(self):
        """One pair leaves other currencies neutral."""
        strength = calculate_currency_strength({"EURUSDm": [1.1000, 1.1010]})
        assert strength["EUR"] == DISPLAY_MAX
        assert strength["USD"] == DISPLAY_MIN
        for currency in ("GBP", "JPY", "AUD", "CAD", "CHF", "NZD"):
            assert strength[currency] == 50.0

    def test_flat_prices_neutral(self):
        """Flat prices stay neutral."""
        strength = calculate_currency_strength({"EURUSD": [1.1, 1.1], "GBPUSD": [1.3, 1.3]})
        assert all(v == NEUTRAL for v in strength.values())

    def test_range_and_ordering(self):
        """Values stay in the display range and keep their order."""
        prices = {
            "EURUSD": [1.1000, 1.1050],  # EUR up vs USD
            "GBPUSD": [1.3000, 1.3010],  # GBP slightly up
            "USDJPY": [150.0, 149.0],  # JPY up vs USD
        }
        strength = calculate_currency_strength(prices)
        contributing = {c: strength[c] for c in ("EUR", "GBP", "JPY", "USD")}
        assert min(contributing.values()) == DISPLAY_MIN
        assert max(contributing.values()) == DISPLAY_MAX
        assert strength["USD"] == DISPLAY_MIN
        assert strength["EUR"] > strength["GBP"]
        assert strength["AUD"] == NEUTRAL

    def test_uses_last_two_prices(self):
        """Only the last two prices count."""
        a = calculate_currency_strength({"EURUSD": [9.0, 1.0, 1.1]})
        b = calculate_currency_strength({"EURUSD": [1.0, 1.1]})
        assert a == b

    def test_short_series_and_bad_symbols_skipped(self):
        """Short series and unknown symbols are skipped."""
        strength = calculate_currency_strength({"EURUSD": [1.1], "XAUUSD": [2000, 2010]})
        assert all(v == NEUTRAL for v in strength.values())

    def test_base_and_quote_mirror(self):
        """Base and quote move in opposite directions."""
        up = calculate_currency_strength({"EURUSD": [1.0, 1.1]})
        down = calculate_currency_strength({"EURUSD": [1.1, 1.0]})
        assert up["EUR"] == down["USD"]
        assert up["USD"] == down["EUR"]
