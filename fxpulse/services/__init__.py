"""Message routing and recompute scheduling.

The dashboard consumers live in ``fxpulse.services.consumers``; they depend
on the feed client, which itself depends on the router defined here.
"""

from fxpulse.services.debounce import Debouncer
from fxpulse.services.message_router import WILDCARD, ConsumerRegistration, MessageRouter

__all__ = [
    "Debouncer",
    "WILDCARD",
    "ConsumerRegistration",
    "MessageRouter",
]
