"""Feed clients."""

from fxpulse.clients.feed_ws import FeedListener, FeedTransport

__all__ = [
    "FeedListener",
    "FeedTransport",
]
