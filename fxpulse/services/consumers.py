"""Dashboard consumers.

Each consumer owns a ``MarketDataCache``, registers it with the shared
``MessageRouter`` and asks the feed for the symbols it displays. Cache
changes schedule a debounced recompute of the consumer's view:

- ``HeatmapConsumer``: multi-indicator score matrix for one symbol
- ``StrengthConsumer``: currency strength meter over the major pairs
- ``TrackerConsumer``: RSI / price tracker for a watchlist
- ``CorrelationConsumer``: RSI agreement across correlated pairs
"""

import logging
import time
from typing import Any, Callable

from fxpulse.clients.feed_ws import FeedTransport
from fxpulse.config import Settings
from fxpulse.services.debounce import Debouncer
from fxpulse.services.message_router import ConsumerRegistration, MessageRouter
from fxpulse.storage.market_cache import MarketDataCache
from fxpulse_core import timeframes
from fxpulse_core.correlation import CORRELATION_PAIRS, CorrelationResult, evaluate_pairs, pair_symbols, simple_rsi
from fxpulse_core.indicators import atr, latest_atr
from fxpulse_core.models import Bar, WeightConfig
from fxpulse_core.quiet_market import QuietMarketDetector
from fxpulse_core.scoring import ScoreMatrix, build_score_matrix
from fxpulse_core.signals import (
    SignalHistory,
    build_cells,
    derive_signals,
    record_signals,
    snapshot_atr,
    snapshot_price,
)
from fxpulse_core.strength import calculate_currency_strength

logger = logging.getLogger(__name__)

DATA_TYPES = ["ticks", "ohlc", "indicators"]


class DashboardConsumer:
    """Base class: cache, router registration, subscriptions and recompute."""

    name = "consumer"
    subscribed_types: frozenset[str] = frozenset({"*"})

    def __init__(
        self,
        router: MessageRouter,
        transport: FeedTransport,
        settings: Settings,
        weights: WeightConfig | None = None,
        name: str | None = None,
    ):
        if name is not None:
            self.name = name
        self.router = router
        self.transport = transport
        self.settings = settings
        self.weights = weights or WeightConfig()
        self.cache = MarketDataCache(
            self.name,
            max_bars=settings.max_bars,
            max_ticks=settings.max_ticks,
            active_timeframe=settings.active_timeframe,
            on_change=self._on_cache_change,
        )
        self._debouncer = Debouncer(settings.recompute_debounce, self.recompute, name=f"{self.name} recompute")
        self.on_update: Callable[[Any], None] | None = None
        self.last_result: Any = None
        self.updated_at: float | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def registration(self) -> ConsumerRegistration:
        return ConsumerRegistration(
            message_handler=self.handle_message,
            on_connect=self._on_connect,
            on_disconnect=self._on_disconnect,
            on_error=self._on_error,
            subscribed_types=self.subscribed_types,
        )

    def handle_message(self, message: Any) -> None:
        self.cache.handle_message(message)
        if message.type == "unsubscribed" and self.transport.is_connected:
            # One socket serves every consumer: another consumer's unsubscribe
            # also ends the feed for pairs this one still requests
            for symbol, timeframe in self.cache.still_requested(message):
                self._send_subscription("subscribe", symbol, timeframe)

    def start(self) -> None:
        """Register with the router and request this consumer's symbols."""
        self.router.register_consumer(self.name, self.registration())
        for symbol, timeframe in self.wanted():
            self.subscribe(symbol, timeframe)

    def stop(self) -> None:
        self._debouncer.cancel()
        self.router.unregister_consumer(self.name)

    def wanted(self) -> list[tuple[str, str]]:
        """(symbol, timeframe) pairs this consumer needs from the feed."""
        return []

    def _on_connect(self) -> None:
        # The server forgets subscriptions when the socket drops
        for symbol, timeframe in sorted(self.cache.requested):
            self._send_subscription("subscribe", symbol, timeframe)

    def _on_disconnect(self, event: Any) -> None:
        logger.info(f"[{self.name}] Feed disconnected: {event}")

    def _on_error(self, error: Any) -> None:
        self.cache.last_error = str(error)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, symbol: str, timeframe: str | None = None) -> None:
        timeframe = timeframes.canonical(timeframe or self.settings.active_timeframe)
        self.cache.mark_requested(symbol, timeframe)
        if self.transport.is_connected:
            self._send_subscription("subscribe", symbol, timeframe)

    def unsubscribe(self, symbol: str, timeframe: str | None = None) -> None:
        timeframe = timeframes.canonical(timeframe or self.settings.active_timeframe)
        self.cache.unmark_requested(symbol, timeframe)
        if self.transport.is_connected:
            self._send_subscription("unsubscribe", symbol, timeframe)

    def _send_subscription(self, action: str, symbol: str, timeframe: str) -> None:
        self.transport.send(
            {
                "action": action,
                "symbol": symbol,
                "timeframe": timeframe,
                "data_types": DATA_TYPES,
            }
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def update_settings(self, **changes: Any) -> Settings:
        """Apply dashboard setting changes and schedule a recompute.

        Raises:
            ConfigError: For an unknown trading style or weighting scheme.
            pydantic.ValidationError: For values the settings model rejects.
        """
        old = self.settings
        new = Settings.model_validate({**old.model_dump(), **changes})
        self.weights.check_selection(new.trading_style, new.indicator_weighting)
        self.settings = new
        self.cache.active_timeframe = timeframes.canonical(new.active_timeframe)
        self._settings_changed(old)
        self._debouncer.schedule()
        return new

    def _settings_changed(self, old: Settings) -> None:
        pass

    def _resubscribe(self, old_wanted: list[tuple[str, str]]) -> None:
        new_wanted = self.wanted()
        for symbol, timeframe in old_wanted:
            if (symbol, timeframe) not in new_wanted:
                self.unsubscribe(symbol, timeframe)
        for symbol, timeframe in new_wanted:
            if (symbol, timeframe) not in old_wanted:
                self.subscribe(symbol, timeframe)

    # ------------------------------------------------------------------
    # Recompute
    # ------------------------------------------------------------------

    def _on_cache_change(self, message: Any) -> None:
        self._debouncer.schedule()

    def recompute(self) -> Any:
        """Rebuild this consumer's view now."""
        self.last_result = self.compute()
        self.updated_at = time.time()
        if self.on_update is not None:
            self.on_update(self.last_result)
        return self.last_result

    def compute(self) -> Any:
        return None

    def flush(self) -> bool:
        """Run a pending debounced recompute immediately."""
        return self._debouncer.flush()

    def get_bars(self, symbol: str, timeframe: str) -> list[Bar]:
        return self.cache.get_bars(symbol, timeframe)

    def status(self) -> dict:
        return {
            "name": self.name,
            "registered": self.router.is_registered(self.name),
            "updated_at": self.updated_at,
            "recompute_pending": self._debouncer.pending,
            "cache": self.cache.stats(),
        }


class HeatmapConsumer(DashboardConsumer):
    """Multi-timeframe, multi-indicator score matrix for one symbol."""

    name = "heatmap"
    subscribed_types = frozenset(
        {
            "connected",
            "subscribed",
            "unsubscribed",
            "initial_ohlc",
            "ohlc_update",
            "ticks",
            "initial_indicators",
            "indicator_update",
            "error",
        }
    )

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.quiet_market = QuietMarketDetector()
        self.history = SignalHistory()

    @property
    def symbol(self) -> str:
        return self.settings.heatmap_symbol

    @property
    def timeframes(self) -> list[str]:
        return [timeframes.ui_label(tf) for tf in self.settings.heatmap_timeframes]

    def wanted(self) -> list[tuple[str, str]]:
        return [(self.symbol, timeframes.canonical(tf)) for tf in self.timeframes]

    def _settings_changed(self, old: Settings) -> None:
        if old.heatmap_symbol != self.symbol or old.heatmap_timeframes != self.settings.heatmap_timeframes:
            old_wanted = [(old.heatmap_symbol, timeframes.canonical(tf)) for tf in old.heatmap_timeframes]
            self._resubscribe(old_wanted)
        if old.heatmap_symbol != self.symbol:
            self.history.clear(old.heatmap_symbol)

    def _on_cache_change(self, message: Any) -> None:
        if message.type == "initial_ohlc":
            self._warm_up(message.symbol, message.timeframe)
        elif message.type == "ohlc_update":
            self._observe_atr(message.symbol, message.timeframe or self.cache.active_timeframe)
        elif message.type in ("initial_indicators", "indicator_update"):
            self._observe_atr(message.symbol, message.timeframe)
            self._record_signals(message.symbol, message.timeframe)
        super()._on_cache_change(message)

    def _warm_up(self, symbol: str, timeframe: str) -> None:
        buffer = self.cache.get_buffer(symbol, timeframe)
        if buffer is None:
            return
        self.quiet_market.reset(symbol, timeframe)
        self.quiet_market.bulk_load(symbol, timeframe, atr(buffer.get_highs(), buffer.get_lows(), buffer.get_closes()))

    def _record_signals(self, symbol: str, timeframe: str) -> None:
        snapshot = self.cache.get_indicators(symbol, timeframe)
        if snapshot is None:
            return
        record_signals(
            self.history,
            symbol,
            timeframe,
            snapshot.indicators,
            price=self._price(symbol, timeframe),
            bar_time=self._bar_time(symbol, timeframe),
        )

    def _observe_atr(self, symbol: str, timeframe: str) -> None:
        value, bar_time = self._current_atr(symbol, timeframe)
        if value is not None:
            self.quiet_market.update(symbol, timeframe, value, bar_time)

    def _current_atr(self, symbol: str, timeframe: str) -> tuple[float | None, float | None]:
        snapshot = self.cache.get_indicators(symbol, timeframe)
        buffer = self.cache.get_buffer(symbol, timeframe)
        bar_time = self._bar_time(symbol, timeframe)
        value = snapshot_atr(snapshot.indicators) if snapshot else None
        if value is None and buffer is not None:
            value = latest_atr(buffer.get_highs(), buffer.get_lows(), buffer.get_closes())
        return value, bar_time

    def _bar_time(self, symbol: str, timeframe: str) -> float | None:
        snapshot = self.cache.get_indicators(symbol, timeframe)
        if snapshot is not None and snapshot.bar_time is not None:
            return snapshot.bar_time
        buffer = self.cache.get_buffer(symbol, timeframe)
        if buffer is not None and buffer.last is not None:
            return buffer.last.timestamp
        return None

    def _price(self, symbol: str, timeframe: str) -> float | None:
        snapshot = self.cache.get_indicators(symbol, timeframe)
        if snapshot is not None:
            price = snapshot_price(snapshot.indicators)
            if price is not None:
                return price
        buffer = self.cache.get_buffer(symbol, timeframe)
        if buffer is not None and buffer.last is not None:
            return buffer.last.close
        tick = self.cache.latest_tick(symbol)
        if tick is not None:
            return tick.bid if tick.bid is not None else tick.ask
        return None

    def get_score_matrix(
        self,
        symbol: str | None = None,
        trading_style: str | None = None,
        indicator_weighting: str | None = None,
    ) -> ScoreMatrix:
        """Score matrix and aggregate for *symbol* (default: the configured one).

        Timeframes without an indicator snapshot contribute no-data cells.
        Read-only: signal history is recorded as indicator messages arrive.
        Style and weighting default to the consumer's settings.
        """
        symbol = symbol or self.symbol
        cells = []
        for tf in self.timeframes:
            snapshot = self.cache.get_indicators(symbol, tf)
            value, _ = self._current_atr(symbol, tf)
            cells.extend(
                build_cells(
                    symbol,
                    tf,
                    snapshot.indicators if snapshot else None,
                    price=self._price(symbol, tf),
                    history=self.history,
                    quiet_market=self.quiet_market.is_quiet(symbol, tf, value),
                )
            )
        return build_score_matrix(
            symbol,
            cells,
            self.weights,
            trading_style or self.settings.trading_style,
            indicator_weighting or self.settings.indicator_weighting,
        )

    def compute(self) -> ScoreMatrix:
        matrix = self.get_score_matrix()
        result = matrix.result
        logger.debug(
            f"[{self.name}] {matrix.symbol}: score={result.final_score} zone={result.zone} "
            f"cells={result.total_cells} no_data={result.no_data_cells}"
        )
        return matrix


class StrengthConsumer(DashboardConsumer):
    """Currency strength meter over the tracked pairs."""

    name = "strength"

    @property
    def pairs(self) -> list[str]:
        return list(self.settings.strength_pairs)

    def wanted(self) -> list[tuple[str, str]]:
        timeframe = timeframes.canonical(self.settings.active_timeframe)
        return [(pair, timeframe) for pair in self.pairs]

    def _settings_changed(self, old: Settings) -> None:
        if old.active_timeframe != self.settings.active_timeframe or old.strength_pairs != self.settings.strength_pairs:
            old_tf = timeframes.canonical(old.active_timeframe)
            self._resubscribe([(pair, old_tf) for pair in old.strength_pairs])

    def _prices(self, mode: str) -> dict[str, list[float]]:
        prices: dict[str, list[float]] = {}
        timeframe = self.settings.active_timeframe
        for pair in self.pairs:
            if mode == "live":
                # Ticks are newest first
                bids = [t.bid for t in self.cache.get_ticks(pair)[:2] if t.bid is not None]
                series = bids[::-1]
            else:
                series = [b.close for b in self.cache.get_bars(pair, timeframe)[-2:]]
            if len(series) >= 2:
                prices[pair] = series
        return prices

    def get_currency_strength(self, mode: str | None = None) -> dict[str, float]:
        """Strength per currency in [10, 90]; 50 for currencies without data.

        Args:
            mode: ``"closed"`` (last two bar closes of the active timeframe)
                or ``"live"`` (last two tick bids). Defaults to the setting.
        """
        mode = mode or self.settings.strength_mode
        if mode not in ("closed", "live"):
            raise ValueError(f"Unknown strength mode '{mode}'")
        return calculate_currency_strength(self._prices(mode), multiplier=self.settings.strength_multiplier)

    def get_server_strength(self, timeframe: str | None = None) -> dict[str, float] | None:
        """Latest server-computed strength for *timeframe*, if received."""
        snapshot = self.cache.get_server_strength(timeframe or self.settings.active_timeframe)
        return dict(snapshot.strength) if snapshot else None

    def compute(self) -> dict[str, float]:
        return self.get_currency_strength()


class TrackerConsumer(DashboardConsumer):
    """RSI and price tracker for a watchlist of symbols."""

    name = "tracker"

    @property
    def symbols(self) -> list[str]:
        return list(self.settings.tracker_symbols)

    def wanted(self) -> list[tuple[str, str]]:
        timeframe = timeframes.canonical(self.settings.active_timeframe)
        return [(symbol, timeframe) for symbol in self.symbols]

    def _settings_changed(self, old: Settings) -> None:
        if old.active_timeframe != self.settings.active_timeframe or old.tracker_symbols != self.settings.tracker_symbols:
            old_tf = timeframes.canonical(old.active_timeframe)
            self._resubscribe([(symbol, old_tf) for symbol in old.tracker_symbols])

    def get_rows(self) -> list[dict]:
        timeframe = self.settings.active_timeframe
        rows = []
        for symbol in self.symbols:
            bars = self.cache.get_bars(symbol, timeframe)
            tick = self.cache.latest_tick(symbol)
            snapshot = self.cache.get_indicators(symbol, timeframe)
            rsi = derive_signals(snapshot.indicators)["RSI"] if snapshot else None
            rows.append(
                {
                    "symbol": symbol,
                    "timeframe": timeframes.ui_label(timeframe),
                    "bars": len(bars),
                    "close": bars[-1].close if bars else None,
                    "bid": tick.bid if tick else None,
                    "daily_change_pct": tick.daily_change_pct if tick else None,
                    "rsi": rsi.value if rsi else None,
                    "rsi_signal": rsi.signal if rsi else None,
                }
            )
        return rows

    def compute(self) -> list[dict]:
        return self.get_rows()


class CorrelationConsumer(DashboardConsumer):
    """RSI match / mismatch status across positively and negatively correlated pairs."""

    name = "correlation"
    pairs = CORRELATION_PAIRS

    @property
    def symbols(self) -> list[str]:
        return pair_symbols(self.pairs, self.settings.symbol_suffix)

    def wanted(self) -> list[tuple[str, str]]:
        timeframe = timeframes.canonical(self.settings.active_timeframe)
        return [(symbol, timeframe) for symbol in self.symbols]

    def _settings_changed(self, old: Settings) -> None:
        if old.active_timeframe != self.settings.active_timeframe or old.symbol_suffix != self.settings.symbol_suffix:
            old_tf = timeframes.canonical(old.active_timeframe)
            self._resubscribe([(symbol, old_tf) for symbol in pair_symbols(self.pairs, old.symbol_suffix)])

    def get_rsi(self, symbol: str) -> float | None:
        """Feed RSI for the active timeframe, else RSI from cached closes."""
        timeframe = self.settings.active_timeframe
        snapshot = self.cache.get_indicators(symbol, timeframe)
        if snapshot is not None:
            reading = derive_signals(snapshot.indicators)["RSI"]
            if reading.has_data:
                return reading.value
        closes = [b.close for b in self.cache.get_bars(symbol, timeframe)]
        return simple_rsi(closes, self.settings.correlation_rsi_period)

    def get_correlations(self) -> dict[str, CorrelationResult]:
        """Status per pair key (``"EURUSD_GBPUSD"``); pairs lacking an RSI are left out."""
        rsi = {}
        for symbol in self.symbols:
            value = self.get_rsi(symbol)
            if value is not None:
                rsi[symbol] = value
        return evaluate_pairs(
            rsi,
            self.pairs,
            suffix=self.settings.symbol_suffix,
            overbought=self.settings.rsi_overbought,
            oversold=self.settings.rsi_oversold,
        )

    def compute(self) -> dict[str, CorrelationResult]:
        results = self.get_correlations()
        mismatches = [key for key, r in results.items() if r.status == "mismatch"]
        if mismatches:
            logger.debug(f"[{self.name}] RSI correlation mismatches: {', '.join(mismatches)}")
        return results
