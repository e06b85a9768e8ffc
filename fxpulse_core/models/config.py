"""Scoring configuration models.

Two independent weight sets drive the aggregate score:

- timeframe weights, keyed by trading style
- indicator weights, keyed by weighting scheme

Each set must sum to 1.0, and every trading style needs a zone threshold
(the score at or beyond which the zone is buy or sell). The engine does not re-check this at runtime;
``WeightConfig`` rejects bad tables when they are loaded.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator

from fxpulse_core import timeframes
from fxpulse_core.errors import ConfigError

WEIGHT_SUM_TOLERANCE = 1e-6

INDICATORS: list[str] = ["EMA21", "EMA50", "EMA200", "MACD", "RSI", "UTBOT", "IchimokuClone"]

# Indicators whose score is halved in a quiet market
QUIET_SENSITIVE_INDICATORS: frozenset[str] = frozenset({"MACD", "UTBOT"})

TRADING_STYLES: list[str] = ["scalper", "dayTrader", "swingTrader"]

# Zone threshold on the final score, per style
ZONE_THRESHOLDS: dict[str, float] = {
    "scalper": 25.0,
    "dayTrader": 20.0,
    "swingTrader": 15.0,
}

DEFAULT_TRADING_STYLE = "dayTrader"
DEFAULT_INDICATOR_WEIGHTING = "equal"


def _check_sum(name: str, weights: dict[str, float]) -> None:
    total = sum(weights.values())
    if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
        raise ValueError(f"weights for '{name}' must sum to 1.0, got {total:.6f}")
    negative = [k for k, v in weights.items() if v < 0]
    if negative:
        raise ValueError(f"weights for '{name}' must be non-negative: {negative}")


class WeightConfig(BaseModel):
    """Timeframe and indicator weight tables."""

    timeframe_weights: dict[str, dict[str, float]] = Field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_TIMEFRAME_WEIGHTS.items()}
    )
    indicator_weights: dict[str, dict[str, float]] = Field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_INDICATOR_WEIGHTS.items()}
    )
    zone_thresholds: dict[str, float] = Field(default_factory=lambda: dict(ZONE_THRESHOLDS))

    @field_validator("timeframe_weights")
    @classmethod
    def _normalize_timeframes(cls, value: dict[str, dict[str, float]]):
        # Store under UI labels so "H4" and "4H" configure the same weight
        return {
            style: {timeframes.ui_label(tf): w for tf, w in weights.items()}
            for style, weights in value.items()
        }

    @model_validator(mode="after")
    def _validate(self):
        if not self.timeframe_weights:
            raise ValueError("at least one trading style is required")
        if not self.indicator_weights:
            raise ValueError("at least one indicator weighting scheme is required")
        for style, weights in self.timeframe_weights.items():
            _check_sum(style, weights)
        for scheme, weights in self.indicator_weights.items():
            _check_sum(scheme, weights)
        missing = [s for s in self.timeframe_weights if s not in self.zone_thresholds]
        if missing:
            raise ValueError(f"no zone threshold for trading styles: {sorted(missing)}")
        bad = {s: t for s, t in self.zone_thresholds.items() if not 0 < t <= 100}
        if bad:
            raise ValueError(f"zone thresholds must be within (0, 100]: {bad}")
        return self

    def timeframe_weight(self, style: str, timeframe: str) -> float:
        """Weight of *timeframe* (either spelling) for *style*; 0 if absent."""
        table = self.timeframe_weights.get(style)
        if table is None:
            raise KeyError(f"Unknown trading style '{style}'. Available: {sorted(self.timeframe_weights)}")
        return table.get(timeframes.ui_label(timeframe), 0.0)

    def indicator_weight(self, scheme: str, indicator: str) -> float:
        """Weight of *indicator* for *scheme*; 0 if absent."""
        table = self.indicator_weights.get(scheme)
        if table is None:
            raise KeyError(f"Unknown indicator weighting '{scheme}'. Available: {sorted(self.indicator_weights)}")
        return table.get(indicator, 0.0)

    def zone_threshold(self, style: str) -> float:
        threshold = self.zone_thresholds.get(style)
        if threshold is None:
            raise KeyError(f"Unknown trading style '{style}'. Available: {sorted(self.zone_thresholds)}")
        return threshold

    def check_selection(self, trading_style: str, indicator_weighting: str) -> None:
        """Raise ``ConfigError`` unless both names have a table."""
        if trading_style not in self.timeframe_weights:
            raise ConfigError(f"Unknown trading style '{trading_style}'. Available: {self.styles()}")
        if indicator_weighting not in self.indicator_weights:
            raise ConfigError(
                f"Unknown indicator weighting '{indicator_weighting}'. Available: {self.schemes()}"
            )

    def styles(self) -> list[str]:
        return sorted(self.timeframe_weights)

    def schemes(self) -> list[str]:
        return sorted(self.indicator_weights)


# =============================================================================
# Default weight tables
# =============================================================================
DEFAULT_TIMEFRAME_WEIGHTS: dict[str, dict[str, float]] = {
    "scalper": {
        "5M": 0.30,
        "15M": 0.30,
        "30M": 0.20,
        "1H": 0.15,
        "4H": 0.05,
        "1D": 0.00,
        "1W": 0.00,
    },
    "dayTrader": {
        "5M": 0.10,
        "15M": 0.25,
        "30M": 0.25,
        "1H": 0.25,
        "4H": 0.10,
        "1D": 0.05,
        "1W": 0.00,
    },
    "swingTrader": {
        "5M": 0.00,
        "15M": 0.00,
        "30M": 0.10,
        "1H": 0.25,
        "4H": 0.35,
        "1D": 0.30,
        "1W": 0.00,
    },
}

DEFAULT_INDICATOR_WEIGHTS: dict[str, dict[str, float]] = {
    "equal": {name: 1 / len(INDICATORS) for name in INDICATORS},
    "trendTilted": {
        "EMA21": 0.10,
        "EMA50": 0.10,
        "EMA200": 0.15,
        "MACD": 0.15,
        "RSI": 0.10,
        "UTBOT": 0.15,
        "IchimokuClone": 0.25,
    },
}
