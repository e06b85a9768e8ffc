"""RSI correlation between pairs that usually move together or against each other.

For a positively correlated pair both RSIs should sit in the same band
(overbought, oversold or in between). For a negatively correlated pair one
should be overbought while the other is oversold. Each pair gets a status:

- ``match``: the pair behaves as its correlation predicts
- ``mismatch``: it clearly does not (opposite extremes for a positive pair,
  the same extreme for a negative pair)
- ``neutral``: anything else
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Literal

import numpy as np

Status = Literal["match", "mismatch", "neutral"]

RSI_PERIOD = 14
RSI_OVERBOUGHT = 70.0
RSI_OVERSOLD = 30.0

CORRELATION_PAIRS: dict[str, list[tuple[str, str]]] = {
    "negative": [
        ("AUDUSD", "GBPNZD"),
        ("EURAUD", "CADCHF"),
        ("EURGBP", "GBPCHF"),
        ("EURCAD", "CADJPY"),
        ("GBPNZD", "NZDCHF"),
        ("EURAUD", "AUDJPY"),
        ("GBPUSD", "USDCHF"),
        ("EURAUD", "AUDCHF"),
        ("USDJPY", "EURCAD"),
        ("GBPUSD", "USDCAD"),
        ("USDCAD", "AUDCHF"),
        ("USDJPY", "NZDUSD"),
    ],
    "positive": [
        ("EURUSD", "GBPUSD"),
        ("AUDUSD", "AUDCAD"),
        ("EURAUD", "EURNZD"),
    ],
}


@dataclass(slots=True)
class CorrelationResult:
    """Status of one correlation pair."""

    pair: str
    symbol1: str
    symbol2: str
    correlation: Literal["positive", "negative"]
    status: Status
    rsi1: float
    rsi2: float


def simple_rsi(closes: Sequence[float], period: int = RSI_PERIOD) -> float | None:
    """RSI from plain averages of the last *period* changes.

    Returns None with fewer than ``period + 1`` closes.
    """
    if len(closes) < period + 1:
        return None
    changes = np.diff(np.asarray(closes[-period - 1 :], dtype=np.float64))
    avg_gain = changes[changes > 0].sum() / period
    avg_loss = -changes[changes < 0].sum() / period
    if avg_loss == 0:
        return 100.0
    return float(100 - 100 / (1 + avg_gain / avg_loss))


def correlation_status(
    rsi1: float,
    rsi2: float,
    positive: bool,
    overbought: float = RSI_OVERBOUGHT,
    oversold: float = RSI_OVERSOLD,
) -> Status:
    """Classify one pair's RSI readings."""
    opposite = (rsi1 >= overbought and rsi2 <= oversold) or (rsi1 <= oversold and rsi2 >= overbought)

    if positive:
        both_high = rsi1 >= overbought and rsi2 >= overbought
        both_low = rsi1 <= oversold and rsi2 <= oversold
        both_mid = oversold < rsi1 < overbought and oversold < rsi2 < overbought
        if both_high or both_low or both_mid:
            return "match"
        return "mismatch" if opposite else "neutral"

    same = (rsi1 >= overbought and rsi2 >= overbought) or (rsi1 <= oversold and rsi2 <= oversold)
    if opposite:
        return "match"
    return "mismatch" if same else "neutral"


def pair_symbols(pairs: Mapping[str, Sequence[tuple[str, str]]] = CORRELATION_PAIRS, suffix: str = "") -> list[str]:
    """Every symbol named by *pairs*, with the broker *suffix*, in first-seen order."""
    seen: dict[str, None] = {}
    for kind in ("positive", "negative"):
        for a, b in pairs.get(kind, ()):
            seen[a + suffix] = None
            seen[b + suffix] = None
    return list(seen)


def evaluate_pairs(
    rsi: Mapping[str, float],
    pairs: Mapping[str, Sequence[tuple[str, str]]] = CORRELATION_PAIRS,
    suffix: str = "",
    overbought: float = RSI_OVERBOUGHT,
    oversold: float = RSI_OVERSOLD,
) -> dict[str, CorrelationResult]:
    """Status of every pair whose two symbols both have an RSI.

    Args:
        rsi: Symbol (with suffix) -> RSI value.
        pairs: ``{"positive": [...], "negative": [...]}`` base symbol pairs.
        suffix: Broker suffix appended to base symbols, e.g. ``"m"``.
    """
    results: dict[str, CorrelationResult] = {}
    for kind in ("positive", "negative"):
        for a, b in pairs.get(kind, ()):
            rsi1 = rsi.get(a + suffix)
            rsi2 = rsi.get(b + suffix)
            if rsi1 is None or rsi2 is None:
                continue
            key = f"{a}_{b}"
            results[key] = CorrelationResult(
                pair=key,
                symbol1=a + suffix,
                symbol2=b + suffix,
                correlation=kind,
                status=correlation_status(rsi1, rsi2, kind == "positive", overbought, oversold),
                rsi1=rsi1,
                rsi2=rsi2,
            )
    return results
