"""Quiet-market detection from the ATR distribution.

Maintains a per-(symbol, timeframe) rolling window of ATR(14) observations,
one per bar. The market is "quiet" when the current ATR is at or below the
5th percentile of that window, in which case momentum-style indicators
(MACD, UT Bot) produce too many false flips and their cell scores are halved.

Observations are keyed by bar time: repeated updates for a still-forming
bar replace the last sample instead of adding a new one.
"""

from __future__ import annotations

import logging
import math
from collections import deque

import numpy as np

from fxpulse_core import timeframes

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 200
DEFAULT_PERCENTILE = 5.0


class QuietMarketDetector:
    """Track ATR values per symbol/timeframe and flag abnormally low volatility.

    Parameters
    ----------
    window : int
        Number of ATR observations kept per symbol/timeframe (FIFO).
    percentile : float
        Percentile of the window at or below which the market is quiet.
    min_samples : int
        Minimum observations before the check is trusted. Below this,
        ``is_quiet()`` returns ``False``.
    """

    def __init__(
        self,
        window: int = DEFAULT_WINDOW,
        percentile: float = DEFAULT_PERCENTILE,
        min_samples: int = 20,
    ):
        self.window = window
        self.percentile = percentile
        self.min_samples = min_samples
        self._history: dict[str, deque[float]] = {}
        self._last_time: dict[str, float] = {}

    @staticmethod
    def _key(symbol: str, timeframe: str) -> str:
        return f"{symbol}_{timeframes.canonical(timeframe)}"

    @staticmethod
    def _is_valid(value: float | None) -> bool:
        """Check that a value is a finite positive number."""
        return isinstance(value, (int, float)) and math.isfinite(value) and value > 0

    def update(self, symbol: str, timeframe: str, atr_value: float, bar_time: float | None = None) -> None:
        """Record an ATR observation for the bar at *bar_time*.

        Invalid values (NaN, inf, zero, negative) are skipped.
        """
        if not self._is_valid(atr_value):
            return
        key = self._key(symbol, timeframe)
        history = self._history.get(key)
        if history is None:
            history = self._history[key] = deque(maxlen=self.window)

        if bar_time is not None and history and self._last_time.get(key) == bar_time:
            history[-1] = float(atr_value)
            return

        history.append(float(atr_value))
        if bar_time is not None:
            self._last_time[key] = bar_time

    def threshold(self, symbol: str, timeframe: str) -> float | None:
        """Return the quiet threshold (the configured percentile of the window).

        Returns ``None`` when fewer than ``min_samples`` observations exist.
        """
        history = self._history.get(self._key(symbol, timeframe))
        if history is None or len(history) < self.min_samples:
            return None
        return float(np.percentile(np.asarray(history), self.percentile))

    def is_quiet(self, symbol: str, timeframe: str, atr_value: float | None = None) -> bool:
        """Check whether *atr_value* (default: latest observation) is quiet."""
        threshold = self.threshold(symbol, timeframe)
        if threshold is None:
            return False
        if atr_value is None:
            atr_value = self._history[self._key(symbol, timeframe)][-1]
        if not self._is_valid(atr_value):
            return False
        return atr_value <= threshold

    def get_count(self, symbol: str, timeframe: str) -> int:
        """Return the number of ATR observations stored."""
        return len(self._history.get(self._key(symbol, timeframe), ()))

    def bulk_load(self, symbol: str, timeframe: str, atr_values: list[float]) -> None:
        """Load a batch of historical ATR values (for warmup from a bar history).

        Invalid values are filtered out; only the newest ``window`` are kept.
        """
        clean = [float(v) for v in atr_values if self._is_valid(v)]
        key = self._key(symbol, timeframe)
        history = self._history.get(key)
        if history is None:
            history = self._history[key] = deque(maxlen=self.window)
        history.extend(clean)
        self._last_time.pop(key, None)
        logger.debug(
            "ATR warmup: %s %s loaded %d values (filtered %d invalid, total %d)",
            symbol,
            timeframe,
            len(clean),
            len(atr_values) - len(clean),
            len(history),
        )

    def reset(self, symbol: str, timeframe: str) -> None:
        key = self._key(symbol, timeframe)
        self._history.pop(key, None)
        self._last_time.pop(key, None)
