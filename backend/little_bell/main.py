from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI

from little_bell import __version__
from little_bell.api.routes import dashboard, emails, health, tenants, tracking
from little_bell.config import Settings, get_settings
from little_bell.exception_handlers import register_exception_handlers
from little_bell.logging import setup_logging
from little_bell.store import Store

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the store at startup unless one was injected, close it on shutdown."""
    settings: Settings = app.state.settings
    owns_store = app.state.store is None
    if owns_store:
        app.state.store = await Store.from_settings(settings).open()

    logger.info(
        "🔔 Starting Little Bell tracking server",
        base_url=settings.base_url,
        database=settings.database_url,
    )

    yield

    logger.info("Shutting down Little Bell tracking server")
    if owns_store:
        await app.state.store.close()
        app.state.store = None


def create_app(settings: Optional[Settings] = None, store: Optional[Store] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Pass an already opened ``store`` to share one handle with the caller;
    otherwise the application opens and closes its own.
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level, json_logs=settings.log_json)

    app = FastAPI(
        title="Little Bell",
        description="Multi-tenant email open and click tracking",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store

    register_exception_handlers(app)

    # Register routes
    app.include_router(health.router, tags=["Health"])
    app.include_router(tenants.router, tags=["Tenants"])
    app.include_router(emails.router, tags=["Emails"])
    app.include_router(tracking.router, tags=["Tracking"])
    app.include_router(dashboard.router, tags=["Dashboard"])

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "little_bell.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
