"""Horizon API application.

Startup refuses to serve without a reachable database, then starts the change
notifier workers. Shutdown runs in the reverse order: the notifier is stopped
first so queued change events are still delivered, cached collections are
dropped and the engine is disposed last.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from src.api.dependencies import reset_collections
from src.api.middleware.error_handler import register_exception_handlers
from src.api.middleware.request_context import RequestContextMiddleware
from src.api.routes.feedback import router as feedback_router
from src.api.utils.responses import ORJSONResponse
from src.core.config import Settings, get_settings
from src.core.logging import setup_logging
from src.infrastructure.database.session import (
    check_database_connection,
    close_database,
)
from src.infrastructure.messaging.notifier import close_messaging, get_notifier


@asynccontextmanager
async def lifespan(app_instance: FastAPI) -> AsyncGenerator[None]:
    """Start and stop the database and change notifier around serving.

    Raises:
        RuntimeError: If the database is unreachable at startup.
    """
    reachable, error_msg = await check_database_connection()
    if not reachable:
        logger.error("Database unreachable at startup: {}", error_msg)
        msg = f"Database connection failed: {error_msg}"
        raise RuntimeError(msg)

    await get_notifier().start()
    logger.info("{} v{} started", app_instance.title, app_instance.version)

    yield

    logger.info("Shutting down {}", app_instance.title)
    await close_messaging()
    reset_collections()
    await close_database()
    logger.info("Shutdown complete")


async def health() -> dict[str, object]:
    """Report database reachability and whether change events are flowing.

    An unreachable database makes the status ``degraded``; the check itself
    still answers 200.
    """
    reachable, error_msg = await check_database_connection()
    if not reachable:
        logger.warning("Health check: database unreachable: {}", error_msg)
    return {
        "status": "healthy" if reachable else "degraded",
        "database": reachable,
        "notifier": get_notifier().is_running,
    }


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application.

    Args:
        settings: Defaults to ``get_settings()``.
    """
    settings = settings or get_settings()
    setup_logging(settings)

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    # Handlers must be registered before middleware is added
    register_exception_handlers(application)
    application.add_middleware(RequestContextMiddleware)

    application.add_api_route("/health", health, methods=["GET"], tags=["health"])
    application.include_router(feedback_router)

    return application


app = create_app()
