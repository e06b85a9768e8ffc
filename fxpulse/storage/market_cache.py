"""Per-consumer market data cache.

Every dashboard consumer owns one ``MarketDataCache``. The cache handles
all inbound message types through a single dispatch table:

- bars per (symbol, timeframe), capped at ``max_bars``
- latest ticks per symbol, newest first, capped at ``max_ticks``
- indicator snapshots per (symbol, timeframe)
- server currency strength snapshots per timeframe
- subscription and connection bookkeeping

Bar buffers are reachable by both the feed code (``H1``) and the UI label
(``1H``): the same buffer object is stored under both keys, so a write
through one spelling is visible through the other.
"""

import logging
import time
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from fxpulse_core import timeframes
from fxpulse_core.models import (
    MAX_BARS,
    MESSAGE_TYPES,
    Bar,
    ConnectedMessage,
    CurrencyStrengthUpdateMessage,
    ErrorMessage,
    IndicatorUpdateMessage,
    InitialIndicatorsMessage,
    InitialOhlcMessage,
    OhlcUpdateMessage,
    PongMessage,
    SubscribedMessage,
    Tick,
    TicksMessage,
    TimeframeBuffer,
    UnsubscribedMessage,
    UpsertResult,
    normalize_time,
)

logger = logging.getLogger(__name__)

MAX_TICKS = 50

ChangeHook = Callable[[Any], None]


@dataclass(slots=True)
class IndicatorSnapshot:
    """Latest indicator values for one (symbol, timeframe)."""

    symbol: str
    timeframe: str
    indicators: dict[str, Any]
    bar_time: float | None = None
    received_at: float = field(default_factory=time.time)


@dataclass(slots=True)
class StrengthSnapshot:
    """Server-computed currency strength for one timeframe."""

    timeframe: str
    strength: dict[str, float]
    bar_time: float | None = None
    received_at: float = field(default_factory=time.time)


class MarketDataCache:
    """Bars, ticks and indicator snapshots for one consumer."""

    def __init__(
        self,
        name: str,
        max_bars: int = MAX_BARS,
        max_ticks: int = MAX_TICKS,
        active_timeframe: str = "1H",
        on_change: ChangeHook | None = None,
    ):
        self.name = name
        self.max_bars = max_bars
        self.max_ticks = max_ticks
        self.active_timeframe = timeframes.canonical(active_timeframe)
        self.on_change = on_change

        # symbol -> {timeframe key (code and label) -> buffer}
        self._bars: dict[str, dict[str, TimeframeBuffer]] = {}
        self._ticks: dict[str, deque[Tick]] = {}
        self._indicators: dict[tuple[str, str], IndicatorSnapshot] = {}
        self._strength: dict[str, StrengthSnapshot] = {}

        self.requested: set[tuple[str, str]] = set()
        self.subscriptions: dict[tuple[str, str], list[str]] = {}
        self.supported_timeframes: list[str] = []
        self.last_error: str | None = None
        self.last_pong: float | None = None

        self._handlers: dict[str, Callable[[Any], bool]] = {
            "connected": self._on_connected,
            "subscribed": self._on_subscribed,
            "unsubscribed": self._on_unsubscribed,
            "initial_ohlc": self._on_initial_ohlc,
            "ohlc_update": self._on_ohlc_update,
            "ticks": self._on_ticks,
            "initial_indicators": self._on_indicators,
            "indicator_update": self._on_indicators,
            "currency_strength_update": self._on_strength,
            "pong": self._on_pong,
            "error": self._on_error,
        }
        missing = MESSAGE_TYPES - self._handlers.keys()
        if missing:
            raise RuntimeError(f"No cache handler for message types: {sorted(missing)}")

    # ------------------------------------------------------------------
    # Message dispatch
    # ------------------------------------------------------------------

    @property
    def handled_types(self) -> frozenset[str]:
        return frozenset(self._handlers)

    def handle_message(self, message: Any) -> bool:
        """Apply one feed message. Returns True if cached state changed."""
        handler = self._handlers.get(message.type)
        if handler is None:
            logger.warning(f"[{self.name}] No handler for message type: {message.type}")
            return False
        changed = handler(message)
        if changed and self.on_change is not None:
            self.on_change(message)
        return changed

    def _on_connected(self, message: ConnectedMessage) -> bool:
        self.supported_timeframes = [timeframes.canonical(tf) for tf in message.supported_timeframes]
        logger.info(f"[{self.name}] Connected: {message.message or 'ok'}")
        return False

    def _on_subscribed(self, message: SubscribedMessage) -> bool:
        timeframe = timeframes.canonical(message.timeframe or self.active_timeframe)
        self.subscriptions[(message.symbol, timeframe)] = list(message.data_types)
        logger.info(f"[{self.name}] Subscribed to {message.symbol} {timeframe}")
        return False

    def _on_unsubscribed(self, message: UnsubscribedMessage) -> bool:
        # Acks arrive for every consumer on the shared socket; only data this
        # cache no longer requests is dropped. ``requested`` is owned by the consumer.
        symbol = message.symbol
        if message.timeframe:
            candidates = {timeframes.canonical(message.timeframe)}
        else:
            candidates = set(self.timeframes_for(symbol))
            candidates |= {tf for s, tf in self.subscriptions if s == symbol}

        dropped = [tf for tf in sorted(candidates) if (symbol, tf) not in self.requested]
        for timeframe in dropped:
            self.drop_timeframe(symbol, timeframe)
        if not any(s == symbol for s, _ in self.requested):
            self._ticks.pop(symbol, None)

        if dropped:
            logger.info(f"[{self.name}] Unsubscribed from {symbol} {', '.join(dropped)}")
        return bool(dropped)

    def still_requested(self, message: UnsubscribedMessage) -> list[tuple[str, str]]:
        """Requests of this cache that an ``unsubscribed`` ack cancels on the feed."""
        if message.timeframe:
            key = (message.symbol, timeframes.canonical(message.timeframe))
            return [key] if key in self.requested else []
        return sorted(k for k in self.requested if k[0] == message.symbol)

    def _on_initial_ohlc(self, message: InitialOhlcMessage) -> bool:
        self.seed_bars(message.symbol, message.timeframe, message.data)
        return True

    def _on_ohlc_update(self, message: OhlcUpdateMessage) -> bool:
        timeframe = message.timeframe or self.active_timeframe
        return self.upsert_bar(message.symbol, timeframe, message.data) != UpsertResult.REJECTED

    def _on_ticks(self, message: TicksMessage) -> bool:
        for tick in message.data:
            self.add_tick(tick)
        return bool(message.data)

    def _on_indicators(self, message: InitialIndicatorsMessage | IndicatorUpdateMessage) -> bool:
        timeframe = timeframes.canonical(message.timeframe)
        bar_time = normalize_time(message.bar_time) if message.bar_time is not None else None
        previous = self._indicators.get((message.symbol, timeframe))
        if previous and bar_time is not None and previous.bar_time is not None and bar_time < previous.bar_time:
            logger.debug(f"[{self.name}] Ignoring stale indicators for {message.symbol} {timeframe}")
            return False
        self._indicators[(message.symbol, timeframe)] = IndicatorSnapshot(
            symbol=message.symbol,
            timeframe=timeframe,
            indicators=dict(message.indicators),
            bar_time=bar_time,
        )
        return True

    def _on_strength(self, message: CurrencyStrengthUpdateMessage) -> bool:
        timeframe = timeframes.canonical(message.timeframe)
        bar_time = normalize_time(message.bar_time) if message.bar_time is not None else None
        self._strength[timeframe] = StrengthSnapshot(timeframe, dict(message.strength), bar_time)
        return True

    def _on_pong(self, message: PongMessage) -> bool:
        self.last_pong = time.time()
        return False

    def _on_error(self, message: ErrorMessage) -> bool:
        self.last_error = message.text
        logger.error(f"[{self.name}] Feed error: {message.text}")
        return False

    # ------------------------------------------------------------------
    # Bars
    # ------------------------------------------------------------------

    def _buffer(self, symbol: str, timeframe: str, create: bool = False) -> TimeframeBuffer | None:
        by_tf = self._bars.get(symbol)
        if by_tf is None:
            if not create:
                return None
            by_tf = self._bars[symbol] = {}

        for key in timeframes.aliases(timeframe):
            buffer = by_tf.get(key)
            if buffer is not None:
                return buffer
        if not create:
            return None

        buffer = TimeframeBuffer(
            symbol=symbol,
            timeframe=timeframes.canonical(timeframe),
            max_size=self.max_bars,
        )
        for key in timeframes.aliases(timeframe):
            by_tf[key] = buffer
        return buffer

    def upsert_bar(self, symbol: str, timeframe: str, bar: Bar) -> UpsertResult:
        """Insert or update a bar in the (symbol, timeframe) buffer."""
        return self._buffer(symbol, timeframe, create=True).upsert(bar)

    def seed_bars(self, symbol: str, timeframe: str, bars: Iterable[Bar]) -> None:
        """Replace the (symbol, timeframe) history with an initial snapshot."""
        buffer = self._buffer(symbol, timeframe, create=True)
        buffer.seed(list(bars))
        logger.info(f"[{self.name}] Loaded {len(buffer)} bars for {symbol} {buffer.timeframe}")

    def get_buffer(self, symbol: str, timeframe: str) -> TimeframeBuffer | None:
        return self._buffer(symbol, timeframe)

    def get_bars(self, symbol: str, timeframe: str) -> list[Bar]:
        """Bars for exactly this (symbol, timeframe), oldest first.

        Returns the live buffer list, or an empty list when nothing is
        cached. Never substitutes another timeframe's data.
        """
        buffer = self._buffer(symbol, timeframe)
        return buffer.bars if buffer is not None else []

    def timeframes_for(self, symbol: str) -> list[str]:
        """Canonical timeframes with a buffer for *symbol*."""
        return sorted({b.timeframe for b in self._bars.get(symbol, {}).values()})

    @property
    def symbols(self) -> list[str]:
        return sorted(set(self._bars) | set(self._ticks))

    def drop_timeframe(self, symbol: str, timeframe: str) -> None:
        """Forget the bars, indicator snapshot and subscription of one timeframe."""
        code = timeframes.canonical(timeframe)
        by_tf = self._bars.get(symbol)
        if by_tf is not None:
            for key in timeframes.aliases(code):
                by_tf.pop(key, None)
            if not by_tf:
                del self._bars[symbol]
        self._indicators.pop((symbol, code), None)
        self.subscriptions.pop((symbol, code), None)

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    def add_tick(self, tick: Tick) -> None:
        ticks = self._ticks.get(tick.symbol)
        if ticks is None:
            ticks = self._ticks[tick.symbol] = deque(maxlen=self.max_ticks)
        ticks.appendleft(tick)

    def get_ticks(self, symbol: str) -> list[Tick]:
        """Latest ticks for *symbol*, newest first."""
        return list(self._ticks.get(symbol, ()))

    def latest_tick(self, symbol: str) -> Tick | None:
        ticks = self._ticks.get(symbol)
        return ticks[0] if ticks else None

    # ------------------------------------------------------------------
    # Indicators and strength
    # ------------------------------------------------------------------

    def get_indicators(self, symbol: str, timeframe: str) -> IndicatorSnapshot | None:
        return self._indicators.get((symbol, timeframes.canonical(timeframe)))

    def get_server_strength(self, timeframe: str) -> StrengthSnapshot | None:
        return self._strength.get(timeframes.canonical(timeframe))

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def mark_requested(self, symbol: str, timeframe: str) -> None:
        self.requested.add((symbol, timeframes.canonical(timeframe)))

    def unmark_requested(self, symbol: str, timeframe: str) -> None:
        self.requested.discard((symbol, timeframes.canonical(timeframe)))

    def is_subscribed(self, symbol: str, timeframe: str) -> bool:
        return (symbol, timeframes.canonical(timeframe)) in self.subscriptions

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def clear(self) -> None:
        self._bars.clear()
        self._ticks.clear()
        self._indicators.clear()
        self._strength.clear()
        self.subscriptions.clear()

    def stats(self) -> dict:
        buffers = {
            f"{buffer.symbol}:{buffer.timeframe}": len(buffer)
            for by_tf in self._bars.values()
            for buffer in {id(b): b for b in by_tf.values()}.values()
        }
        return {
            "name": self.name,
            "buffers": buffers,
            "tick_symbols": sorted(self._ticks),
            "indicator_snapshots": len(self._indicators),
            "requested": sorted(f"{s}:{tf}" for s, tf in self.requested),
            "subscriptions": sorted(f"{s}:{tf}" for s, tf in self.subscriptions),
            "last_error": self.last_error,
        }
