"""In-memory market data storage."""

from fxpulse.storage.market_cache import MAX_TICKS, IndicatorSnapshot, MarketDataCache, StrengthSnapshot

__all__ = [
    "MAX_TICKS",
    "IndicatorSnapshot",
    "MarketDataCache",
    "StrengthSnapshot",
]
