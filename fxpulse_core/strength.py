"""Currency strength from per-pair log returns.

For every pair with at least two prices::

    r = ln(P_t / P_{t-1})
    base  currency <- +r
    quote currency <- -r

A currency's strength is the mean of its contributions times a fixed
multiplier, then min-max normalized into the display range across the
currencies that received at least one contribution. Currencies without any
contribution stay at the neutral midpoint so that one active pair cannot
push idle currencies to the extremes.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence

logger = logging.getLogger(__name__)

CURRENCIES: list[str] = ["USD", "EUR", "GBP", "JPY", "AUD", "CAD", "CHF", "NZD"]

MAJOR_PAIRS: list[str] = [
    "EURUSD", "GBPUSD", "USDJPY", "USDCHF", "AUDUSD", "USDCAD", "NZDUSD",
    "EURGBP", "EURJPY", "EURCHF", "EURAUD", "EURCAD", "EURNZD",
    "GBPJPY", "GBPCHF", "GBPAUD", "GBPCAD", "GBPNZD",
    "AUDJPY", "AUDCHF", "AUDCAD", "AUDNZD",
    "CADJPY", "CADCHF", "CHFJPY", "NZDJPY", "NZDCHF", "NZDCAD",
]

DEFAULT_MULTIPLIER = 1000.0
DISPLAY_MIN = 10.0
DISPLAY_MAX = 90.0
NEUTRAL = (DISPLAY_MIN + DISPLAY_MAX) / 2


def split_pair(symbol: str, currencies: Sequence[str] = CURRENCIES) -> tuple[str, str] | None:
    """Split ``"EURUSDm"`` / ``"EUR/USD"`` into ``("EUR", "USD")``.

    Returns None when either side is not a tracked currency.
    """
    clean = symbol.replace("/", "").replace("_", "").strip().upper()
    if len(clean) < 6:
        return None
    base, quote = clean[:3], clean[3:6]
    if base not in currencies or quote not in currencies or base == quote:
        return None
    return base, quote


def log_return(previous: float, current: float) -> float | None:
    """ln(current / previous), or None for non-positive or non-finite prices."""
    if not (isinstance(previous, (int, float)) and isinstance(current, (int, float))):
        return None
    if previous <= 0 or current <= 0 or not math.isfinite(previous) or not math.isfinite(current):
        return None
    return math.log(current / previous)


def calculate_currency_strength(
    prices: Mapping[str, Sequence[float]],
    multiplier: float = DEFAULT_MULTIPLIER,
    currencies: Sequence[str] = CURRENCIES,
    display_min: float = DISPLAY_MIN,
    display_max: float = DISPLAY_MAX,
) -> dict[str, float]:
    """Compute per-currency strength.

    Args:
        prices: Pair symbol -> price series, oldest first. Only the last
            two prices of each series are used.
        multiplier: Scale applied to the mean log return.
        currencies: Currencies to report.
        display_min: Lower bound of the output range.
        display_max: Upper bound of the output range.

    Returns:
        Currency -> strength within ``[display_min, display_max]``.
    """
    neutral = (display_min + display_max) / 2
    contributions: dict[str, list[float]] = {c: [] for c in currencies}

    for symbol, series in prices.items():
        pair = split_pair(symbol, currencies)
        if pair is None:
            logger.debug("Skipping %s - could not parse currencies", symbol)
            continue
        if len(series) < 2:
            continue
        r = log_return(series[-2], series[-1])
        if r is None:
            continue
        base, quote = pair
        contributions[base].append(r)
        contributions[quote].append(-r)

    raw = {
        c: multiplier * sum(values) / len(values)
        for c, values in contributions.items()
        if values
    }

    strength = {c: neutral for c in currencies}
    if not raw:
        return strength

    low = min(raw.values())
    high = max(raw.values())
    span = high - low
    if span == 0:
        return strength

    for currency, value in raw.items():
        strength[currency] = display_min + (value - low) / span * (display_max - display_min)
    return strength
