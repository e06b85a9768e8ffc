"""Tests for inbound feed message parsing."""

import pytest
from pydantic import ValidationError

from fxpulse_core.errors import MessageError, UnknownMessageType
from fxpulse_core.models import (
    MESSAGE_TYPES,
    CurrencyStrengthUpdateMessage,
    ErrorMessage,
    IndicatorUpdateMessage,
    InitialOhlcMessage,
    OhlcUpdateMessage,
    TicksMessage,
    parse_message,
)

T0 = 1704067200
BAR = {"time": T0, "open": 1.1, "high": 1.2, "low": 1.0, "close": 1.15}


class TestParseMessage:
    def test_initial_ohlc(self):
        """initial_ohlc carries a list of bars."""
        msg = parse_message(
            {"type": "initial_ohlc", "symbol": "EURUSDm", "timeframe": "H1", "data": [BAR, BAR]}
        )
        assert isinstance(msg, InitialOhlcMessage)
        assert len(msg.data) == 2
        assert msg.data[0].close == 1.15

    def test_ohlc_update_fields_hoisted_from_data(self):
        """ohlc_update fields nested in data are lifted."""
        msg = parse_message(
            {"type": "ohlc_update", "data": {**BAR, "symbol": "EURUSDm", "timeframe": "1H"}}
        )
        assert isinstance(msg, OhlcUpdateMessage)
        assert msg.symbol == "EURUSDm"
        assert msg.timeframe == "1H"

    def test_ohlc_update_without_timeframe(self):
        """ohlc_update may omit the timeframe."""
        msg = parse_message({"type": "ohlc_update", "symbol": "EURUSDm", "data": BAR})
        assert msg.timeframe is None

    def test_indicator_fields_hoisted(self):
        """Indicator fields nested in data are lifted."""
        msg = parse_message(
            {
                "type": "indicator_update",
                "data": {
                    "symbol": "EURUSDm",
                    "timeframe": "H1",
                    "bar_time": T0,
                    "indicators": {"rsi": {"14": 60.0}},
                },
            }
        )
        assert isinstance(msg, IndicatorUpdateMessage)
        assert msg.indicators == {"rsi": {"14": 60.0}}
        assert msg.bar_time == T0

    def test_top_level_wins_over_data(self):
        """Top-level fields win over nested ones."""
        msg = parse_message(
            {
                "type": "indicator_update",
                "symbol": "GBPUSDm",
                "timeframe": "H4",
                "indicators": {},
                "data": {"symbol": "EURUSDm", "timeframe": "H1", "indicators": {"rsi": 1}},
            }
        )
        assert msg.symbol == "GBPUSDm"
        assert msg.timeframe == "H4"

    def test_currency_strength(self):
        """currency_strength_update parses its table."""
        msg = parse_message(
            {"type": "currency_strength_update", "data": {"timeframe": "H1", "strength": {"USD": 70.0}}}
        )
        assert isinstance(msg, CurrencyStrengthUpdateMessage)
        assert msg.strength == {"USD": 70.0}

    def test_ticks(self):
        """ticks carries a list of ticks."""
        msg = parse_message({"type": "ticks", "data": [{"symbol": "EURUSDm", "bid": 1.1, "ask": 1.1002}]})
        assert isinstance(msg, TicksMessage)
        assert msg.data[0].bid == 1.1

    def test_error_text(self):
        """error keeps the error text."""
        assert parse_message({"type": "error", "message": "bad symbol"}).text == "bad symbol"
        assert parse_message({"type": "error", "error": "boom"}).text == "boom"
        assert isinstance(parse_message({"type": "error"}), ErrorMessage)

    def test_every_type_parses(self):
        """Every known message type parses."""
        samples = {
            "connected": {"supported_timeframes": ["H1"]},
            "subscribed": {"symbol": "EURUSDm"},
            "unsubscribed": {"symbol": "EURUSDm"},
            "initial_ohlc": {"symbol": "EURUSDm", "timeframe": "H1", "data": []},
            "ohlc_update": {"symbol": "EURUSDm", "data": BAR},
            "ticks": {"data": []},
            "initial_indicators": {"symbol": "EURUSDm", "timeframe": "H1", "indicators": {}},
            "indicator_update": {"symbol": "EURUSDm", "timeframe": "H1", "indicators": {}},
            "currency_strength_update": {"timeframe": "H1", "strength": {}},
            "pong": {},
            "error": {},
        }
        assert set(samples) == MESSAGE_TYPES
        for msg_type, body in samples.items():
            assert parse_message({"type": msg_type, **body}).type == msg_type

    def test_messages_are_frozen(self):
        """Parsed messages are immutable."""
        msg = parse_message({"type": "pong"})
        with pytest.raises(ValidationError):
            msg.type = "error"


class TestParseMessageErrors:
    def test_not_an_object(self):
        """Non-object payloads are rejected."""
        with pytest.raises(MessageError, match="not an object"):
            parse_message(["ticks"])

    def test_missing_type(self):
        """A message without a type is rejected."""
        with pytest.raises(MessageError, match="missing type"):
            parse_message({"symbol": "EURUSDm"})

    def test_unknown_type(self):
        """Unknown types are rejected."""
        with pytest.raises(UnknownMessageType) as exc_info:
            parse_message({"type": "news"})
        assert exc_info.value.msg_type == "news"

    def test_invalid_payload(self):
        """Malformed payloads are rejected."""
        with pytest.raises(MessageError, match="Invalid ohlc_update"):
            parse_message({"type": "ohlc_update", "symbol": "EURUSDm", "data": {"time": T0}})
