"""Exception hierarchy.

None of these are allowed to escape the runtime layer: transport errors are
retried, malformed messages are dropped and logged, and configuration errors
are raised only while loading settings.
"""


class FxPulseError(Exception):
    """Base class for all errors raised by this project."""


class FeedConnectionError(FxPulseError):
    """The feed socket could not be opened or closed unexpectedly."""


class MessageError(FxPulseError):
    """An inbound frame could not be decoded or validated."""


class UnknownMessageType(MessageError):
    """An inbound frame carries a ``type`` outside the known message union."""

    def __init__(self, msg_type: str):
        self.msg_type = msg_type
        super().__init__(f"Unknown message type: {msg_type!r}")


class ConfigError(FxPulseError):
    """Configuration violates an invariant (e.g. weights not summing to 1.0)."""
