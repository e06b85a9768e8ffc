"""Core shared logic for the market dashboard.

This package contains pure business logic with no I/O dependencies
(no sockets, HTTP or filesystem access). The runtime layer (fxpulse/)
feeds it bars, indicator snapshots and settings, and reads back scores
and currency strength.
"""
