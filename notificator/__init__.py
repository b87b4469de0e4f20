# Uvicorn application factory <https://www.uvicorn.org/#application-factories>
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from notificator.logging import logger
from notificator.managers.push_service import PushService
from notificator.middlewares.correlation_id import CorrelationIDMiddleware
from notificator.registry import ConnectionRegistry
from notificator.routing import collect_subrouters
from notificator.settings import app_settings
from notificator.storage.factory import create_connection_store


def create_push_service() -> PushService:
    """Build the push service on top of the configured connection store."""
    return PushService(ConnectionRegistry(create_connection_store(app_settings)))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application startup and shutdown handler.

    On shutdown the connection store owned by the push service is closed.
    """
    logger.info(
        f"Application startup initiated "
        f"(storage: {app_settings.NOTIFICATOR_STORAGE})"
    )

    yield

    logger.info("Application shutdown initiated")
    try:
        await app.state.push_service.close()
    except Exception as ex:
        logger.error(f"Error closing connection store: {ex}")
    logger.info("Application shutdown complete")


def application(push_service: PushService | None = None) -> FastAPI:
    """
    Initializes and configures the FastAPI application.

    The push service (registry plus connection store) is created here once
    and owned by the application through ``app.state.push_service``; HTTP
    routes resolve it with ``PushServiceDep`` and the WebSocket endpoint
    reads it from its connection scope.

    Args:
        push_service: Prepared service to use instead of one built from
            settings (used by tests).

    Middlewares:
    - ``CORSMiddleware``: allows ``CORS_ORIGIN``.
    - ``CorrelationIDMiddleware``: request correlation IDs for logging.
    """
    app = FastAPI(
        title="Notificator",
        description="Real-time push notification relay",
        version=app_settings.APP_VERSION,
        lifespan=lifespan,
    )

    app.state.push_service = push_service or create_push_service()

    app.include_router(collect_subrouters())

    # Middlewares (execute in REVERSE order of registration)
    app.add_middleware(CorrelationIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[app_settings.CORS_ORIGIN],
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    return app


app = application()  # Need for fastapi cli
