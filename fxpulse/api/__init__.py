"""API endpoints."""

from fxpulse.api.routes import router

__all__ = [
    "router",
]
