"""Timeframe alias table.

The dashboard labels timeframes the way traders read them ("1H", "4H"),
while the feed uses MT5-style codes ("H1", "H4"). Every lookup must work
with either spelling, so all storage goes through ``canonical()``.

Mapping:
- 1M  <-> M1
- 5M  <-> M5
- 15M <-> M15
- 30M <-> M30
- 1H  <-> H1
- 4H  <-> H4
- 1D  <-> D1
- 1W  <-> W1
"""

from __future__ import annotations

# UI label -> feed code
UI_TO_FEED: dict[str, str] = {
    "1M": "M1",
    "5M": "M5",
    "15M": "M15",
    "30M": "M30",
    "1H": "H1",
    "4H": "H4",
    "1D": "D1",
    "1W": "W1",
}

# Feed code -> UI label
FEED_TO_UI: dict[str, str] = {code: label for label, code in UI_TO_FEED.items()}

# UI labels in ascending duration order
UI_TIMEFRAMES: list[str] = list(UI_TO_FEED.keys())

TIMEFRAME_MINUTES: dict[str, int] = {
    "M1": 1,
    "M5": 5,
    "M15": 15,
    "M30": 30,
    "H1": 60,
    "H4": 240,
    "D1": 1440,
    "W1": 10080,
}


def _clean(timeframe: str) -> str:
    return str(timeframe).strip().upper()


def canonical(timeframe: str) -> str:
    """Return the feed code used as the storage key for *timeframe*.

    Unknown timeframes are returned upper-cased so callers can still store
    them, but they will not have an alias.
    """
    tf = _clean(timeframe)
    if tf in FEED_TO_UI:
        return tf
    return UI_TO_FEED.get(tf, tf)


def ui_label(timeframe: str) -> str:
    """Return the UI label for *timeframe* (either spelling accepted)."""
    tf = _clean(timeframe)
    if tf in UI_TO_FEED:
        return tf
    return FEED_TO_UI.get(tf, tf)


def aliases(timeframe: str) -> tuple[str, ...]:
    """Return every key under which a buffer for *timeframe* is stored.

    The canonical feed code always comes first.
    """
    code = canonical(timeframe)
    label = FEED_TO_UI.get(code)
    if label is None or label == code:
        return (code,)
    return (code, label)


def is_known(timeframe: str) -> bool:
    """Check whether *timeframe* is in the alias table."""
    return canonical(timeframe) in FEED_TO_UI


def same_timeframe(a: str, b: str) -> bool:
    """Check whether two spellings denote the same timeframe."""
    return canonical(a) == canonical(b)
