"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

# Configure logging FIRST, before any other imports
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)

# Reduce noise from third-party libraries
logging.getLogger("asyncio").setLevel(logging.WARNING)
logging.getLogger("picows").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from fxpulse.api import router
from fxpulse.config import Settings, get_settings
from fxpulse.dashboard import Dashboard

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, dashboard: Dashboard | None = None) -> FastAPI:
    """Build the FastAPI app.

    With *dashboard* given, the app serves it as-is and does not start or
    stop it.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        if dashboard is not None:
            app.state.dashboard = dashboard
            yield
            return

        logging.getLogger().setLevel(settings.log_level.upper())
        logger.info("Starting FX Pulse dashboard core...")
        logger.info(f"Feed: {settings.feed_url}")

        owned = Dashboard(settings)
        await owned.start()
        app.state.dashboard = owned

        yield

        logger.info("Shutting down...")
        app.state.dashboard = None
        await owned.stop()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="FX Pulse",
        description="Live market analytics: multi-indicator scores and currency strength",
        version="0.1.0",
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": "FX Pulse",
            "version": "0.1.0",
            "docs": "/docs",
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


def main():
    """Run the application."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
