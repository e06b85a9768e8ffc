"""Multi-indicator, multi-timeframe aggregate scoring.

Pure functions: the only state is the ``WeightConfig`` passed in.

Per-cell score:
    base = {buy: +1, sell: -1, neutral: 0}[signal]
    new signal   -> base ± 0.25 (in the sign of base, not applied to 0)
    quiet market -> × 0.5 for MACD and UTBOT
    clamp to [-1.25, +1.25]

Aggregate:
    raw = Σ_tf Σ_ind cell(tf, ind) × W_tf(style, tf) × W_ind(scheme, ind)
    final_score  = 100 × raw / 1.25          (in [-100, +100])
    buy_percent  = (final_score + 100) / 2
    sell_percent = 100 - buy_percent

Cells without data are left out of the sum and of every cell count; the
remaining weights are not renormalized.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, field
from typing import Literal

from fxpulse_core import timeframes
from fxpulse_core.models.config import (
    INDICATORS,
    QUIET_SENSITIVE_INDICATORS,
    ZONE_THRESHOLDS,
    WeightConfig,
)

Zone = Literal["buy", "sell", "wait"]

SIGNAL_VALUES: dict[str, int] = {"buy": 1, "sell": -1, "neutral": 0}

NEW_SIGNAL_BOOST = 0.25
QUIET_MARKET_MULTIPLIER = 0.5
CELL_SCORE_LIMIT = 1.25

# Fraction of cells that must be positive and new to raise the boost flag
NEW_SIGNAL_BOOST_RATIO = 0.25


def signal_to_int(signal: str | int | None) -> int:
    """Map a signal label (or a signed number) to -1, 0 or +1."""
    if signal is None:
        return 0
    if isinstance(signal, (int, float)) and not isinstance(signal, bool):
        return (signal > 0) - (signal < 0)
    return SIGNAL_VALUES.get(str(signal).lower(), 0)


def cell_score(
    indicator: str,
    raw_signal: int,
    is_new: bool = False,
    quiet_market: bool = False,
) -> float:
    """Score one (timeframe, indicator) cell. Always within ±CELL_SCORE_LIMIT."""
    score = float(raw_signal)
    if is_new and score != 0:
        score += NEW_SIGNAL_BOOST if score > 0 else -NEW_SIGNAL_BOOST
    if quiet_market and indicator in QUIET_SENSITIVE_INDICATORS:
        score *= QUIET_MARKET_MULTIPLIER
    return max(-CELL_SCORE_LIMIT, min(CELL_SCORE_LIMIT, score))


@dataclass(slots=True)
class ScoreCell:
    """One entry of the score matrix, rebuilt on every recompute."""

    indicator: str
    timeframe: str
    raw_signal: int = 0
    is_new: bool = False
    quiet_market: bool = False
    has_data: bool = True
    value: float | None = None

    @classmethod
    def no_data(cls, indicator: str, timeframe: str) -> ScoreCell:
        return cls(indicator=indicator, timeframe=timeframe, has_data=False)

    @property
    def score(self) -> float | None:
        """Cell score, or None for a no-data cell."""
        if not self.has_data:
            return None
        return cell_score(self.indicator, self.raw_signal, self.is_new, self.quiet_market)

    @property
    def signal(self) -> str:
        if not self.has_data:
            return "no_data"
        return {1: "buy", -1: "sell"}.get(self.raw_signal, "neutral")


@dataclass(slots=True)
class AggregateResult:
    """Aggregate score for one symbol."""

    final_score: float = 0.0
    buy_percent: float = 50.0
    sell_percent: float = 50.0
    zone: Zone = "wait"
    new_signal_boost: bool = False
    raw_aggregate: float = 0.0
    total_cells: int = 0
    new_signal_count: int = 0
    positive_new_signals: int = 0
    no_data_cells: int = 0

    @property
    def has_data(self) -> bool:
        return self.total_cells > 0


def classify_zone(
    final_score: float,
    trading_style: str,
    thresholds: Mapping[str, float] = ZONE_THRESHOLDS,
) -> Zone:
    """Classify a final score; the threshold itself belongs to the zone."""
    threshold = thresholds.get(trading_style)
    if threshold is None:
        raise KeyError(f"Unknown trading style '{trading_style}'. Available: {sorted(thresholds)}")
    if final_score >= threshold:
        return "buy"
    if final_score <= -threshold:
        return "sell"
    return "wait"


def aggregate(
    cells: Iterable[ScoreCell],
    weights: WeightConfig,
    trading_style: str,
    indicator_weighting: str,
) -> AggregateResult:
    """Fold score cells into the final score, percentages and zone."""
    raw = 0.0
    total = 0
    new_count = 0
    positive_new = 0
    no_data = 0

    for cell in cells:
        if not cell.has_data:
            no_data += 1
            continue
        tf_weight = weights.timeframe_weight(trading_style, cell.timeframe)
        ind_weight = weights.indicator_weight(indicator_weighting, cell.indicator)
        raw += cell.score * tf_weight * ind_weight
        total += 1
        if cell.is_new and cell.raw_signal != 0:
            new_count += 1
            if cell.raw_signal > 0:
                positive_new += 1

    if total == 0:
        return AggregateResult(no_data_cells=no_data)

    final_score = round(100 * raw / CELL_SCORE_LIMIT, 2)
    buy_percent = round((final_score + 100) / 2, 2)
    sell_percent = round(100 - buy_percent, 2)

    return AggregateResult(
        final_score=final_score,
        buy_percent=buy_percent,
        sell_percent=sell_percent,
        zone=classify_zone(final_score, trading_style, weights.zone_thresholds),
        new_signal_boost=(positive_new / total) >= NEW_SIGNAL_BOOST_RATIO,
        raw_aggregate=raw,
        total_cells=total,
        new_signal_count=new_count,
        positive_new_signals=positive_new,
        no_data_cells=no_data,
    )


@dataclass
class ScoreMatrix:
    """Score cells for one symbol, grouped by timeframe, plus the aggregate."""

    symbol: str
    trading_style: str
    indicator_weighting: str
    cells: dict[str, dict[str, ScoreCell]] = field(default_factory=dict)
    result: AggregateResult = field(default_factory=AggregateResult)

    def iter_cells(self):
        for row in self.cells.values():
            yield from row.values()

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "trading_style": self.trading_style,
            "indicator_weighting": self.indicator_weighting,
            "cells": {
                tf: {
                    ind: {
                        "signal": cell.signal,
                        "score": cell.score,
                        "is_new": cell.is_new,
                        "quiet_market": cell.quiet_market,
                        "value": cell.value,
                    }
                    for ind, cell in row.items()
                }
                for tf, row in self.cells.items()
            },
            "result": {**asdict(self.result), "has_data": self.result.has_data},
        }


def build_score_matrix(
    symbol: str,
    cells: Iterable[ScoreCell],
    weights: WeightConfig,
    trading_style: str,
    indicator_weighting: str,
) -> ScoreMatrix:
    """Group *cells* by UI timeframe label and aggregate them."""
    cell_list = list(cells)
    grouped: dict[str, dict[str, ScoreCell]] = {}
    for cell in cell_list:
        row = grouped.setdefault(timeframes.ui_label(cell.timeframe), {})
        row[cell.indicator] = cell

    # Stable display order: timeframe table order, then indicator order
    order = {tf: i for i, tf in enumerate(timeframes.UI_TIMEFRAMES)}
    ind_order = {name: i for i, name in enumerate(INDICATORS)}
    ordered = {
        tf: dict(sorted(row.items(), key=lambda kv: ind_order.get(kv[0], len(ind_order))))
        for tf, row in sorted(grouped.items(), key=lambda kv: order.get(kv[0], len(order)))
    }

    return ScoreMatrix(
        symbol=symbol,
        trading_style=trading_style,
        indicator_weighting=indicator_weighting,
        cells=ordered,
        result=aggregate(cell_list, weights, trading_style, indicator_weighting),
    )
