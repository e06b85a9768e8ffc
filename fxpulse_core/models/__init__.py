"""Data models."""

from fxpulse_core.models.bar import (
    MAX_BARS,
    Bar,
    TimeframeBuffer,
    UpsertResult,
    normalize_time,
)
from fxpulse_core.models.config import (
    DEFAULT_INDICATOR_WEIGHTING,
    DEFAULT_TRADING_STYLE,
    INDICATORS,
    QUIET_SENSITIVE_INDICATORS,
    TRADING_STYLES,
    ZONE_THRESHOLDS,
    WeightConfig,
)
from fxpulse_core.models.messages import (
    MESSAGE_TYPES,
    ConnectedMessage,
    CurrencyStrengthUpdateMessage,
    ErrorMessage,
    FeedMessage,
    IndicatorUpdateMessage,
    InitialIndicatorsMessage,
    InitialOhlcMessage,
    OhlcUpdateMessage,
    PongMessage,
    SubscribedMessage,
    Tick,
    TicksMessage,
    UnsubscribedMessage,
    parse_message,
)

__all__ = [
    # Bars
    "MAX_BARS",
    "Bar",
    "TimeframeBuffer",
    "UpsertResult",
    "normalize_time",
    # Scoring config
    "DEFAULT_INDICATOR_WEIGHTING",
    "DEFAULT_TRADING_STYLE",
    "INDICATORS",
    "QUIET_SENSITIVE_INDICATORS",
    "TRADING_STYLES",
    "ZONE_THRESHOLDS",
    "WeightConfig",
    # Messages
    "MESSAGE_TYPES",
    "ConnectedMessage",
    "CurrencyStrengthUpdateMessage",
    "ErrorMessage",
    "FeedMessage",
    "IndicatorUpdateMessage",
    "InitialIndicatorsMessage",
    "InitialOhlcMessage",
    "OhlcUpdateMessage",
    "PongMessage",
    "SubscribedMessage",
    "Tick",
    "TicksMessage",
    "UnsubscribedMessage",
    "parse_message",
]
