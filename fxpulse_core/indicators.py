"""Volatility indicators computed locally from cached bars (pure math, no I/O).

The feed supplies most indicator values; ATR is the exception because the
quiet-market check needs it even when a snapshot omits it.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

ATR_PERIOD = 14


def true_range(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
) -> list[float]:
    """Calculate True Range; the first value is plain high - low."""
    n = len(highs)
    if n == 0:
        return []

    result = [highs[0] - lows[0]]

    for i in range(1, n):
        hl = highs[i] - lows[i]
        hc = abs(highs[i] - closes[i - 1])
        lc = abs(lows[i] - closes[i - 1])
        result.append(max(hl, hc, lc))

    return result


def atr(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = ATR_PERIOD,
) -> list[float]:
    """Calculate ATR with Wilder smoothing.

    The first ``period - 1`` values are NaN; value ``period - 1`` is the SMA
    of the first ``period`` true ranges.
    """
    tr = true_range(highs, lows, closes)

    if len(tr) < period:
        return [float("nan")] * len(tr)

    tr_arr = np.asarray(tr, dtype=np.float64)
    result = np.empty_like(tr_arr)
    result[: period - 1] = np.nan
    result[period - 1] = np.mean(tr_arr[:period])

    alpha = 1.0 / period
    for i in range(period, len(tr_arr)):
        result[i] = alpha * tr_arr[i] + (1 - alpha) * result[i - 1]

    return result.tolist()


def latest_atr(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = ATR_PERIOD,
) -> float | None:
    """Return the most recent ATR value, or None with fewer than *period* bars."""
    if len(highs) < period:
        return None
    value = atr(highs, lows, closes, period)[-1]
    if np.isnan(value):
        return None
    return float(value)
