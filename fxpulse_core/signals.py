"""Turn feed indicator snapshots into directional signals and score cells.

Snapshot shape (per symbol and timeframe), as pushed by the feed::

    {
        "rsi": {"14": 61.2},
        "ema": {"21": 1.0841, "50": 1.0822, "200": 1.0790},
        "macd": {"macd": 0.0004, "signal": 0.0002, "histogram": 0.0002},
        "utbot": {"signal": "buy"},
        "ichimoku": {"tenkan": ..., "kijun": ..., "senkou_a": ..., "senkou_b": ...},
        "atr": {"14": 0.0011},
        "close": 1.0850,
    }

Any indicator missing from the snapshot becomes a no-data cell.
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass
from typing import Any

from fxpulse_core import timeframes
from fxpulse_core.models.config import INDICATORS, QUIET_SENSITIVE_INDICATORS
from fxpulse_core.scoring import ScoreCell

RSI_PERIOD = 14
RSI_BUY_LEVEL = 55.0
RSI_SELL_LEVEL = 45.0

# A signal is "new" when it changed within this many closed bars
NEW_SIGNAL_LOOKBACK = 3

_BULLISH = {"buy", "long", "bullish", "up"}
_BEARISH = {"sell", "short", "bearish", "down"}


@dataclass(slots=True)
class IndicatorReading:
    """Directional signal (-1, 0, +1) and headline value for one indicator."""

    signal: int | None = None
    value: float | None = None

    @property
    def has_data(self) -> bool:
        return self.signal is not None


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def _scalar(value: Any) -> float | None:
    """Read a number, or the first number of a ``{period: value}`` mapping."""
    if isinstance(value, dict):
        for item in value.values():
            number = _number(item)
            if number is not None:
                return number
        return None
    return _number(value)


def _pick(group: Any, *names: str) -> float | None:
    if not isinstance(group, dict):
        return None
    for name in names:
        number = _number(group.get(name))
        if number is not None:
            return number
    return None


def _period_value(indicators: dict[str, Any], name: str, period: int) -> float | None:
    group = indicators.get(name)
    if isinstance(group, dict):
        number = _number(group.get(str(period), group.get(period)))
        if number is not None:
            return number
    return _number(indicators.get(f"{name}{period}"))


def _direction(value: Any) -> int | None:
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _BULLISH:
            return 1
        if text in _BEARISH:
            return -1
        return 0 if text in {"neutral", "none", "flat", "hold"} else None
    number = _number(value)
    if number is None:
        return None
    return (number > 0) - (number < 0)


def _compare(a: float | None, b: float | None) -> int | None:
    if a is None or b is None:
        return None
    return (a > b) - (a < b)


def snapshot_price(indicators: dict[str, Any]) -> float | None:
    """Price carried by the snapshot itself, if any."""
    for name in ("close", "price", "last"):
        number = _number(indicators.get(name))
        if number is not None:
            return number
    return None


def snapshot_atr(indicators: dict[str, Any]) -> float | None:
    """ATR carried by the snapshot, if any."""
    return _scalar(indicators.get("atr"))


def _rsi(indicators: dict[str, Any]) -> IndicatorReading:
    value = _period_value(indicators, "rsi", RSI_PERIOD)
    if value is None:
        value = _scalar(indicators.get("rsi"))
    if value is None:
        return IndicatorReading()
    if value >= RSI_BUY_LEVEL:
        return IndicatorReading(1, value)
    if value <= RSI_SELL_LEVEL:
        return IndicatorReading(-1, value)
    return IndicatorReading(0, value)


def _ema(indicators: dict[str, Any], period: int, price: float | None) -> IndicatorReading:
    value = _period_value(indicators, "ema", period)
    return IndicatorReading(_compare(price, value), value)


def _macd(indicators: dict[str, Any]) -> IndicatorReading:
    group = indicators.get("macd")
    line = _pick(group, "macd", "macd_line", "value")
    signal_line = _pick(group, "signal", "signal_line")
    if line is not None and signal_line is not None:
        return IndicatorReading(_compare(line, signal_line), line)
    histogram = _pick(group, "histogram", "hist")
    if histogram is not None:
        return IndicatorReading((histogram > 0) - (histogram < 0), line if line is not None else histogram)
    return IndicatorReading()


def _utbot(indicators: dict[str, Any]) -> IndicatorReading:
    group = indicators.get("utbot", indicators.get("ut_bot"))
    if isinstance(group, dict):
        for name in ("signal", "direction", "position", "trend"):
            direction = _direction(group.get(name))
            if direction is not None:
                return IndicatorReading(direction, _pick(group, "stop", "trailing_stop", "value"))
        return IndicatorReading()
    return IndicatorReading(_direction(group))


def _ichimoku(indicators: dict[str, Any], price: float | None) -> IndicatorReading:
    group = indicators.get("ichimoku", indicators.get("ichimoku_clone"))
    if not isinstance(group, dict):
        return IndicatorReading()
    direction = _direction(group.get("signal"))
    tenkan = _pick(group, "tenkan", "tenkan_sen")
    kijun = _pick(group, "kijun", "kijun_sen")
    span_a = _pick(group, "senkou_a", "senkou_span_a", "span_a")
    span_b = _pick(group, "senkou_b", "senkou_span_b", "span_b")
    if None in (tenkan, kijun, span_a, span_b) or price is None:
        if direction is None:
            return IndicatorReading()
        return IndicatorReading(direction, span_a)

    cloud_top = max(span_a, span_b)
    cloud_bottom = min(span_a, span_b)
    if price > cloud_top and tenkan > kijun:
        return IndicatorReading(1, cloud_top)
    if price < cloud_bottom and tenkan < kijun:
        return IndicatorReading(-1, cloud_top)
    return IndicatorReading(0, cloud_top)


def derive_signals(indicators: dict[str, Any], price: float | None = None) -> dict[str, IndicatorReading]:
    """Derive one reading per dashboard indicator from a feed snapshot.

    Args:
        indicators: Snapshot mapping as pushed by the feed.
        price: Current price for price-relative indicators (EMA, Ichimoku).
            Defaults to the snapshot's own close.
    """
    if price is None:
        price = snapshot_price(indicators)
    return {
        "EMA21": _ema(indicators, 21, price),
        "EMA50": _ema(indicators, 50, price),
        "EMA200": _ema(indicators, 200, price),
        "MACD": _macd(indicators),
        "RSI": _rsi(indicators),
        "UTBOT": _utbot(indicators),
        "IchimokuClone": _ichimoku(indicators, price),
    }


class SignalHistory:
    """Remember recent signals per (symbol, timeframe, indicator).

    One entry per bar time; updates for the same bar replace the entry.
    With ``lookback`` K the last K + 1 bars are kept, which spans K
    transitions.
    """

    def __init__(self, lookback: int = NEW_SIGNAL_LOOKBACK):
        self.lookback = lookback
        self._history: dict[tuple[str, str, str], deque[tuple[float | None, int]]] = {}

    def record(
        self,
        symbol: str,
        timeframe: str,
        indicator: str,
        bar_time: float | None,
        signal: int,
    ) -> bool:
        """Record *signal* for the bar at *bar_time*; return whether it is new."""
        key = (symbol, timeframes.canonical(timeframe), indicator)
        history = self._history.get(key)
        if history is None:
            history = self._history[key] = deque(maxlen=self.lookback + 1)

        if history and history[-1][0] == bar_time:
            history[-1] = (bar_time, signal)
        elif history and bar_time is not None and history[-1][0] is not None and bar_time < history[-1][0]:
            # Stale snapshot for an older bar; keep the newer state
            pass
        else:
            history.append((bar_time, signal))

        return self._flipped(history)

    def is_new(self, symbol: str, timeframe: str, indicator: str) -> bool:
        """Whether the recorded signal changed within the lookback. Read-only."""
        history = self._history.get((symbol, timeframes.canonical(timeframe), indicator))
        return self._flipped(history) if history else False

    @staticmethod
    def _flipped(history: deque[tuple[float | None, int]]) -> bool:
        signals = [signal for _, signal in history]
        return any(a != b for a, b in zip(signals, signals[1:]))

    def clear(self, symbol: str | None = None) -> None:
        if symbol is None:
            self._history.clear()
            return
        for key in [k for k in self._history if k[0] == symbol]:
            del self._history[key]


def record_signals(
    history: SignalHistory,
    symbol: str,
    timeframe: str,
    indicators: dict[str, Any],
    price: float | None = None,
    bar_time: float | None = None,
) -> None:
    """Record the signal of every indicator with data for the bar at *bar_time*."""
    for name, reading in derive_signals(indicators, price).items():
        if reading.has_data:
            history.record(symbol, timeframe, name, bar_time, reading.signal)


def build_cells(
    symbol: str,
    timeframe: str,
    indicators: dict[str, Any] | None,
    price: float | None = None,
    history: SignalHistory | None = None,
    quiet_market: bool = False,
) -> list[ScoreCell]:
    """Build the score cells of one timeframe row.

    Without a snapshot every cell is a no-data cell. ``is_new`` is read from
    *history*, which this function never writes; see ``record_signals``.
    """
    label = timeframes.ui_label(timeframe)
    if not indicators:
        return [ScoreCell.no_data(name, label) for name in INDICATORS]

    readings = derive_signals(indicators, price)
    cells = []
    for name in INDICATORS:
        reading = readings[name]
        if not reading.has_data:
            cells.append(ScoreCell.no_data(name, label))
            continue
        is_new = history.is_new(symbol, label, name) if history else False
        cells.append(
            ScoreCell(
                indicator=name,
                timeframe=label,
                raw_signal=reading.signal,
                is_new=is_new,
                quiet_market=quiet_market and name in QUIET_SENSITIVE_INDICATORS,
                value=reading.value,
            )
        )
    return cells
