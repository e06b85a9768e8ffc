"""Composition root.

Builds exactly one ``MessageRouter`` and one ``FeedTransport`` and hands
them to every consumer. Nothing here is a module-level singleton: tests
and the HTTP app each build their own ``Dashboard``.
"""

import logging
from typing import Any, Callable

from fxpulse.clients.feed_ws import FeedTransport
from fxpulse.config import Settings, get_settings, load_weights_config
from fxpulse.services.consumers import (
    CorrelationConsumer,
    DashboardConsumer,
    HeatmapConsumer,
    StrengthConsumer,
    TrackerConsumer,
)
from fxpulse.services.message_router import MessageRouter
from fxpulse_core.errors import FeedConnectionError
from fxpulse_core.models import WeightConfig

logger = logging.getLogger(__name__)


class Dashboard:
    """Owns the shared connection, the router and the dashboard consumers."""

    def __init__(
        self,
        settings: Settings | None = None,
        weights: WeightConfig | None = None,
        connector: Callable[..., Any] | None = None,
    ):
        self.settings = settings or get_settings()
        self.weights = weights or load_weights_config(self.settings.weights_path)
        self.weights.check_selection(self.settings.trading_style, self.settings.indicator_weighting)
        self.router = MessageRouter(debug=self.settings.router_debug)

        transport_kwargs = {"connector": connector} if connector is not None else {}
        self.transport = FeedTransport(
            self.settings.feed_url,
            self.router,
            base_delay=self.settings.reconnect_base_delay,
            max_reconnect_attempts=self.settings.max_reconnect_attempts,
            **transport_kwargs,
        )

        self.heatmap = HeatmapConsumer(self.router, self.transport, self.settings, self.weights)
        self.strength = StrengthConsumer(self.router, self.transport, self.settings, self.weights)
        self.tracker = TrackerConsumer(self.router, self.transport, self.settings, self.weights)
        self.correlation = CorrelationConsumer(self.router, self.transport, self.settings, self.weights)
        self.consumers: dict[str, DashboardConsumer] = {
            c.name: c for c in (self.heatmap, self.strength, self.tracker, self.correlation)
        }

    def get_consumer(self, name: str) -> DashboardConsumer:
        if name not in self.consumers:
            raise KeyError(f"Unknown consumer '{name}'. Available: {list(self.consumers)}")
        return self.consumers[name]

    async def start(self) -> None:
        """Register consumers, then open the feed connection.

        A failed first connection is retried in the background.
        """
        for consumer in self.consumers.values():
            consumer.start()
        try:
            await self.transport.connect()
        except FeedConnectionError as e:
            logger.warning(f"Initial feed connection failed: {e}")
            self.transport.schedule_reconnect()

    async def stop(self) -> None:
        self.transport.disconnect()
        for consumer in self.consumers.values():
            consumer.stop()
        self.router.clear()

    def status(self) -> dict:
        return {
            "transport": self.transport.status(),
            "router": self.router.stats(),
            "consumers": {name: c.status() for name, c in self.consumers.items()},
        }
