"""
FastAPI application factory.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..bootstrap import ServiceContainer
from ..presentation.formatter import GENERIC_APOLOGY
from .routes import router

logger = logging.getLogger(__name__)


def create_app(container: ServiceContainer) -> FastAPI:
    """Build the app around an already wired service container."""
    app = FastAPI(
        title="Clinic Agenda API",
        description="Consulta de disponibilidad y gestión de citas",
        version=__version__,
        openapi_tags=[
            {"name": "citas", "description": "Disponibilidad, agenda, cancelación y reagenda"},
            {"name": "health", "description": "Verificaciones de estado del sistema"},
        ],
    )
    app.state.container = container
    app.include_router(router)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Unexpected errors are logged; the caller gets the generic apology."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=200, content={"respuesta": GENERIC_APOLOGY})

    @app.get("/health", tags=["health"])
    async def health():
        return {
            "status": "online",
            "version": __version__,
            "timezone": container.config.timezone,
            "mockCalendar": container.config.use_mock_calendar,
        }

    return app
