"""Status endpoints: liveness ping and build information."""

from importlib.metadata import PackageNotFoundError, version

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from notificator.schemas import InfoResponse
from notificator.settings import app_settings

router = APIRouter(prefix="/api/status", tags=["status"])


@router.get("/ping", response_class=PlainTextResponse)
async def ping() -> str:
    return "pong"


@router.get("/info", response_model=InfoResponse)
async def info() -> InfoResponse:
    """
    Name and version of the running build.

    Read from the installed distribution metadata, falling back to the
    APP_NAME / APP_VERSION settings when the package is not installed.
    """
    try:
        return InfoResponse(
            name=app_settings.APP_NAME, version=version(app_settings.APP_NAME)
        )
    except PackageNotFoundError:
        return InfoResponse(
            name=app_settings.APP_NAME, version=app_settings.APP_VERSION
        )
