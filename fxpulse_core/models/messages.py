"""Inbound feed message models.

Every frame from the feed is a JSON object with a ``type`` field. Each known
``type`` has its own frozen model, and ``FeedMessage`` is the closed,
discriminated union of all of them. A frame whose ``type`` is not listed in
``MESSAGE_TYPES`` is rejected with ``UnknownMessageType``.

The feed is inconsistent about where it puts ``symbol``, ``timeframe``,
``indicators`` and ``bar_time``: sometimes at the top level, sometimes under
``data``. Models hoist those fields to the top level before validation.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from fxpulse_core.errors import MessageError, UnknownMessageType
from fxpulse_core.models.bar import Bar


class _Message(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")


def _hoist(values: Any, *fields: str) -> Any:
    """Copy *fields* from ``values["data"]`` to the top level when missing."""
    if not isinstance(values, dict):
        return values
    data = values.get("data")
    if not isinstance(data, dict):
        return values
    out = dict(values)
    for name in fields:
        if out.get(name) is None and data.get(name) is not None:
            out[name] = data[name]
    return out


class Tick(BaseModel):
    """A single price tick."""

    model_config = ConfigDict(frozen=True, extra="allow")

    symbol: str
    time: int | float | str | None = None
    time_iso: str | None = None
    bid: float | None = None
    ask: float | None = None
    volume: float | None = None
    daily_change_pct: float | None = None


class ConnectedMessage(_Message):
    type: Literal["connected"]
    message: str | None = None
    supported_timeframes: list[str] = Field(default_factory=list)


class SubscribedMessage(_Message):
    type: Literal["subscribed"]
    symbol: str
    timeframe: str | None = None
    data_types: list[str] = Field(default_factory=list)


class UnsubscribedMessage(_Message):
    type: Literal["unsubscribed"]
    symbol: str
    timeframe: str | None = None


class InitialOhlcMessage(_Message):
    type: Literal["initial_ohlc"]
    symbol: str
    timeframe: str
    data: list[Bar]


class OhlcUpdateMessage(_Message):
    type: Literal["ohlc_update"]
    symbol: str
    # Some feeds omit it; the consumer then uses its active timeframe
    timeframe: str | None = None
    data: Bar

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, values: Any) -> Any:
        return _hoist(values, "symbol", "timeframe")


class TicksMessage(_Message):
    type: Literal["ticks"]
    data: list[Tick]


class _IndicatorMessage(_Message):
    symbol: str
    timeframe: str
    indicators: dict[str, Any]
    bar_time: int | float | str | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, values: Any) -> Any:
        return _hoist(values, "symbol", "timeframe", "indicators", "bar_time")


class InitialIndicatorsMessage(_IndicatorMessage):
    type: Literal["initial_indicators"]


class IndicatorUpdateMessage(_IndicatorMessage):
    type: Literal["indicator_update"]


class CurrencyStrengthUpdateMessage(_Message):
    type: Literal["currency_strength_update"]
    timeframe: str
    strength: dict[str, float]
    bar_time: int | float | str | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, values: Any) -> Any:
        return _hoist(values, "timeframe", "strength", "bar_time")


class PongMessage(_Message):
    type: Literal["pong"]


class ErrorMessage(_Message):
    type: Literal["error"]
    error: str | None = None
    message: str | None = None

    @property
    def text(self) -> str:
        return self.error or self.message or "unknown error"


FeedMessage = Annotated[
    Union[
        ConnectedMessage,
        SubscribedMessage,
        UnsubscribedMessage,
        InitialOhlcMessage,
        OhlcUpdateMessage,
        TicksMessage,
        InitialIndicatorsMessage,
        IndicatorUpdateMessage,
        CurrencyStrengthUpdateMessage,
        PongMessage,
        ErrorMessage,
    ],
    Field(discriminator="type"),
]

MESSAGE_TYPES: frozenset[str] = frozenset(
    {
        "connected",
        "subscribed",
        "unsubscribed",
        "initial_ohlc",
        "ohlc_update",
        "ticks",
        "initial_indicators",
        "indicator_update",
        "currency_strength_update",
        "pong",
        "error",
    }
)

_ADAPTER: TypeAdapter = TypeAdapter(FeedMessage)


def parse_message(raw: Any) -> FeedMessage:
    """Validate a decoded JSON object into a typed feed message.

    Raises:
        MessageError: If *raw* is not an object, has no ``type`` or fails
            validation.
        UnknownMessageType: If ``type`` is not one of ``MESSAGE_TYPES``.
    """
    if not isinstance(raw, dict):
        raise MessageError(f"Message is not an object: {type(raw).__name__}")
    msg_type = raw.get("type")
    if not msg_type:
        raise MessageError("Message missing type field")
    if msg_type not in MESSAGE_TYPES:
        raise UnknownMessageType(msg_type)
    try:
        return _ADAPTER.validate_python(raw)
    except ValidationError as e:
        raise MessageError(f"Invalid {msg_type} message: {e.error_count()} error(s)") from e
