"""Tests for the timeframe alias table."""

import pytest

from fxpulse_core import timeframes


class TestCanonical:
    """Both spellings resolve to the feed code."""

    @pytest.mark.parametrize(
        "label,code",
        [("1M", "M1"), ("5M", "M5"), ("15M", "M15"), ("30M", "M30"),
         ("1H", "H1"), ("4H", "H4"), ("1D", "D1"), ("1W", "W1")],
    )
    def test_label_and_code_agree(self, label, code):
        """Labels and codes map to each other."""
        assert timeframes.canonical(label) == code
        assert timeframes.canonical(code) == code
        assert timeframes.ui_label(code) == label
        assert timeframes.ui_label(label) == label

    def test_case_insensitive(self):
        """Lookups ignore case."""
        assert timeframes.canonical("h1") == "H1"
        assert timeframes.canonical(" 1h ") == "H1"
        assert timeframes.ui_label("m15") == "15M"

    def test_unknown_timeframe_upper_cased(self):
        """Unknown timeframes are upper-cased."""
        assert timeframes.canonical("2h") == "2H"
        assert not timeframes.is_known("2H")


class TestAliases:
    def test_code_first(self):
        """Aliases list the feed code first."""
        assert timeframes.aliases("1H") == ("H1", "1H")
        assert timeframes.aliases("H1") == ("H1", "1H")

    def test_unknown_has_single_alias(self):
        """Unknown timeframes alias only themselves."""
        assert timeframes.aliases("2H") == ("2H",)

    def test_same_timeframe(self):
        """Spellings of one timeframe compare equal."""
        assert timeframes.same_timeframe("4H", "H4")
        assert not timeframes.same_timeframe("4H", "H1")

    def test_minutes_cover_every_code(self):
        """Every code has a length in minutes."""
        assert set(timeframes.TIMEFRAME_MINUTES) == set(timeframes.FEED_TO_UI)
