"""FastAPI application factory."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from treasury_relay import __version__
from treasury_relay.config import get_settings
from treasury_relay.service import close_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    yield
    # Shutdown
    await close_service()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Treasury Relay API",
        description="Treasury withdrawal signing and broadcast service",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Register routes
    from treasury_relay.api.routers import status, withdrawal
    from treasury_relay.api.routes import health

    app.include_router(health.router, tags=["Health"])
    app.include_router(status.router, tags=["Status"])
    app.include_router(withdrawal.router, tags=["Withdrawals"])

    return app


# Default app instance
app = create_app()
