"""Main application entrypoint for pixguard."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from pixguard.api.middleware import RequestLoggingMiddleware
from pixguard.api.v1 import routes_health
from pixguard.api.v1.routes_images import router as images_router
from pixguard.core.config import settings
from pixguard.core.logging import setup_logging
from pixguard.services.image_upload import error_envelope, request_validation_error

logger = logging.getLogger(__name__)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Answer schema failures in the upload envelope instead of FastAPI's 422 body."""
    error = request_validation_error(list(exc.errors()))
    logger.debug(
        "Request failed schema validation",
        extra={"path": request.url.path, "validation_message": error.message},
    )
    return JSONResponse(status_code=error.status_code, content=error_envelope(error).to_body())


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    setup_logging()

    app = FastAPI(
        title=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    app.include_router(routes_health.router, tags=["health"])
    app.include_router(images_router)

    return app


# Export app instance for ASGI servers
app = create_app()
