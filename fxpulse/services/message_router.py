"""Message router for the shared feed connection.

One socket feeds several dashboard consumers. Each consumer registers the
message types it wants (or ``'*'`` for everything); the router delivers
each inbound message exactly once to every interested consumer and fans
connection lifecycle events out to all of them.

Failure isolation:
- Invalid messages are dropped with a warning, never raised.
- A consumer callback that raises is logged and skipped; it stays
  registered and the remaining consumers still receive the message.

Consumers may register or unregister (including themselves) from inside a
handler: dispatch iterates a snapshot of the target set and skips any
consumer removed mid-dispatch.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from fxpulse_core.errors import MessageError
from fxpulse_core.models import parse_message

logger = logging.getLogger(__name__)

WILDCARD = "*"

MessageHandler = Callable[[Any], None]


@dataclass
class ConsumerRegistration:
    """A consumer's handler, lifecycle callbacks and message-type interest."""

    message_handler: MessageHandler
    on_connect: Callable[[], None] | None = None
    on_disconnect: Callable[[Any], None] | None = None
    on_error: Callable[[Any], None] | None = None
    subscribed_types: frozenset[str] = field(default_factory=lambda: frozenset({WILDCARD}))

    def __post_init__(self):
        types = self.subscribed_types
        if isinstance(types, str):
            types = [types]
        self.subscribed_types = frozenset(types) or frozenset({WILDCARD})


class MessageRouter:
    """Typed pub/sub registry between the transport and consumer caches."""

    def __init__(self, debug: bool = False):
        self._consumers: dict[str, ConsumerRegistration] = {}
        self._routes: dict[str, set[str]] = {}  # message type -> consumer names
        self.debug = debug

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_consumer(self, name: str, registration: ConsumerRegistration) -> None:
        """Register *name*; an existing registration under the name is replaced."""
        if name in self._consumers:
            self._remove_routes(name)
        self._consumers[name] = registration
        for message_type in registration.subscribed_types:
            self._routes.setdefault(message_type, set()).add(name)
        logger.info(
            "Registered consumer: %s for message types: %s",
            name,
            ", ".join(sorted(registration.subscribed_types)),
        )

    def unregister_consumer(self, name: str) -> bool:
        """Remove *name* from every route. Returns False if it wasn't registered."""
        if self._consumers.pop(name, None) is None:
            return False
        self._remove_routes(name)
        logger.info("Unregistered consumer: %s", name)
        return True

    def _remove_routes(self, name: str) -> None:
        for message_type in list(self._routes):
            names = self._routes[message_type]
            names.discard(name)
            if not names:
                del self._routes[message_type]

    def is_registered(self, name: str) -> bool:
        return name in self._consumers

    @property
    def consumer_names(self) -> list[str]:
        return list(self._consumers)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def route_message(self, message: Any) -> int:
        """Deliver *message* to every interested consumer exactly once.

        Accepts a parsed feed message or a decoded JSON object.

        Returns:
            Number of handlers invoked.
        """
        if not isinstance(message, BaseModel):
            try:
                message = parse_message(message)
            except MessageError as e:
                logger.warning("Dropped message: %s", e)
                return 0

        message_type = getattr(message, "type", None)
        if not message_type:
            logger.warning("Dropped message without type: %r", message)
            return 0

        targets = self._targets(message_type)
        if not targets:
            if self.debug:
                logger.debug("No consumers registered for message type: %s", message_type)
            return 0

        delivered = 0
        for name in targets:
            registration = self._consumers.get(name)
            if registration is None:
                continue  # unregistered by an earlier handler in this dispatch
            delivered += 1
            try:
                registration.message_handler(message)
            except Exception:
                logger.exception("Error in %s handler for %s", name, message_type)

        if self.debug and message_type != "ticks":
            logger.debug("Routed %s to %d consumers: %s", message_type, delivered, ", ".join(targets))
        return delivered

    def _targets(self, message_type: str) -> list[str]:
        # Specific subscribers first, then wildcard-only ones; each name once
        targets = list(self._routes.get(message_type, ()))
        seen = set(targets)
        for name in self._routes.get(WILDCARD, ()):
            if name not in seen:
                targets.append(name)
                seen.add(name)
        return targets

    # ------------------------------------------------------------------
    # Lifecycle fan-out
    # ------------------------------------------------------------------

    def notify_connect(self) -> None:
        """Invoke every consumer's ``on_connect``."""
        logger.info("Connected - %d consumers registered", len(self._consumers))
        self._notify("connection", lambda r: r.on_connect, ())

    def notify_disconnect(self, event: Any = None) -> None:
        """Invoke every consumer's ``on_disconnect`` with the close event."""
        logger.info("Notifying %d consumers of disconnection", len(self._consumers))
        self._notify("disconnection", lambda r: r.on_disconnect, (event,))

    def notify_error(self, error: Any) -> None:
        """Invoke every consumer's ``on_error``."""
        logger.info("Notifying %d consumers of error: %s", len(self._consumers), error)
        self._notify("error", lambda r: r.on_error, (error,))

    def _notify(
        self,
        kind: str,
        pick: Callable[[ConsumerRegistration], Callable | None],
        args: Iterable[Any],
    ) -> None:
        args = tuple(args)
        for name in list(self._consumers):
            registration = self._consumers.get(name)
            if registration is None:
                continue
            callback = pick(registration)
            if callback is None:
                continue
            try:
                callback(*args)
            except Exception:
                logger.exception("Error in %s %s callback", name, kind)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def stats(self) -> dict:
        """Return router statistics."""
        return {
            "total_consumers": len(self._consumers),
            "total_routes": len(self._routes),
            "routes": {t: sorted(names) for t, names in self._routes.items()},
        }

    def clear(self) -> None:
        """Remove all routes and registrations."""
        self._consumers.clear()
        self._routes.clear()
        logger.info("Cleaned up all routes and handlers")
