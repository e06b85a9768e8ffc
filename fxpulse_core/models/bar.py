"""Bar (candlestick) data models."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

# Default cap on bars per (symbol, timeframe) buffer
MAX_BARS = 100

# Epoch values above this are milliseconds, not seconds (year 5138 in seconds)
_MS_THRESHOLD = 1e11


def normalize_time(value: int | float | str | datetime) -> float:
    """Convert a bar time to Unix epoch seconds.

    Accepts epoch seconds, epoch milliseconds, numeric strings and ISO-8601
    strings (a trailing ``Z`` and naive values are treated as UTC), so that
    ``1704067200`` and ``"2024-01-01T00:00:00Z"`` compare equal.

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid bar time: {value!r}")
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, (int, float)):
        ts = float(value)
        return ts / 1000.0 if abs(ts) > _MS_THRESHOLD else ts
    if isinstance(value, str):
        text = value.strip()
        try:
            return normalize_time(float(text))
        except ValueError:
            pass
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValueError(f"Invalid bar time: {value!r}") from e
        return normalize_time(parsed)
    raise ValueError(f"Invalid bar time: {value!r}")


class Bar(BaseModel):
    """One OHLC(V) candle as delivered by the feed.

    ``time`` keeps the feed's own representation; use ``timestamp`` for
    comparisons.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    time: int | float | str
    open: float
    high: float
    low: float
    close: float
    volume: float | None = None
    is_closed: bool | None = None
    symbol: str | None = None
    timeframe: str | None = None

    @field_validator("time")
    @classmethod
    def _check_time(cls, value):
        normalize_time(value)
        return value

    @property
    def timestamp(self) -> float:
        """Bar open time as Unix epoch seconds."""
        return normalize_time(self.time)

    @property
    def is_bullish(self) -> bool:
        """Check if this is a bullish (green) candle."""
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        """Check if this is a bearish (red) candle."""
        return self.close < self.open


class UpsertResult(str, Enum):
    """What ``TimeframeBuffer.upsert`` did with a bar."""

    APPENDED = "appended"  # new bar at the end
    REPLACED = "replaced"  # live update of the forming bar
    CORRECTED = "corrected"  # older bar with a matching time replaced in place
    REJECTED = "rejected"  # older bar with no matching time


class TimeframeBuffer(BaseModel):
    """Bounded, time-ordered bar buffer for one (symbol, timeframe) pair.

    Invariant: bars are strictly ascending by ``timestamp`` with at most one
    bar per distinct time. Oldest bars are evicted first once ``max_size``
    is exceeded.
    """

    symbol: str
    timeframe: str
    bars: list[Bar] = Field(default_factory=list)
    max_size: int = MAX_BARS
    last_update: float = 0.0

    def upsert(self, bar: Bar) -> UpsertResult:
        """Insert or update a bar.

        - Same time as the last bar: replace it (bar still forming).
        - Newer time: append and evict from the front beyond ``max_size``.
        - Older time matching a buffered bar: replace that bar in place.
        - Older time with no match: reject, the buffer is left untouched.
        """
        if not self.bars:
            self.bars.append(bar)
            self._touch()
            return UpsertResult.APPENDED

        ts = bar.timestamp
        last_ts = self.bars[-1].timestamp

        if ts == last_ts:
            self.bars[-1] = bar
            self._touch()
            return UpsertResult.REPLACED

        if ts > last_ts:
            self.bars.append(bar)
            if len(self.bars) > self.max_size:
                del self.bars[: len(self.bars) - self.max_size]
            self._touch()
            return UpsertResult.APPENDED

        for i in range(len(self.bars) - 2, -1, -1):
            existing_ts = self.bars[i].timestamp
            if existing_ts == ts:
                self.bars[i] = bar
                self._touch()
                return UpsertResult.CORRECTED
            if existing_ts < ts:
                break

        logger.debug(
            "Rejected out-of-order bar for %s %s: time=%s is older than last=%s",
            self.symbol,
            self.timeframe,
            bar.time,
            self.bars[-1].time,
        )
        return UpsertResult.REJECTED

    def seed(self, bars: list[Bar]) -> None:
        """Replace the buffer contents with a history snapshot.

        The snapshot is sorted by time, de-duplicated (later entries win)
        and trimmed to the newest ``max_size`` bars.
        """
        by_time: dict[float, Bar] = {}
        for bar in bars:
            by_time[bar.timestamp] = bar
        ordered = [by_time[ts] for ts in sorted(by_time)]
        # Mutate in place so readers holding the list see the new history
        self.bars[:] = ordered[-self.max_size :]
        self._touch()

    def _touch(self) -> None:
        self.last_update = time.time()

    @property
    def last(self) -> Bar | None:
        return self.bars[-1] if self.bars else None

    def get_closes(self) -> list[float]:
        """Get list of close prices."""
        return [b.close for b in self.bars]

    def get_highs(self) -> list[float]:
        """Get list of high prices."""
        return [b.high for b in self.bars]

    def get_lows(self) -> list[float]:
        """Get list of low prices."""
        return [b.low for b in self.bars]

    def __len__(self) -> int:
        return len(self.bars)
