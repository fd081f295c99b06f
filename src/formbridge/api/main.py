import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from formbridge.config import settings
from formbridge.exceptions import (
    ApiError,
    ConfigurationError,
    FormBridgeError,
    RetryExhaustedError,
    StorageError,
)
from formbridge.services.activity_log import configure_logging

# Routers
from formbridge.api.routers import surveys, system

configure_logging(settings.logging.level)
logger = logging.getLogger("formbridge.api")


def _error(status_code: int, error: str, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "detail": str(exc)})


def create_app() -> FastAPI:
    """Build the control API: survey processing triggers, index and log views, token settings."""
    app = FastAPI(title="formbridge API", version=settings.app.version)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(system.router)
    app.include_router(surveys.router)

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        logger.error(f"Survey provider error on {request.url.path}: {exc}")
        return _error(502, "provider_error", exc)

    @app.exception_handler(RetryExhaustedError)
    async def retry_exhausted_handler(request: Request, exc: RetryExhaustedError):
        logger.error(f"Processing failed on {request.url.path}: {exc}")
        return _error(502, "processing_failed", exc)

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error(f"Storage error on {request.url.path}: {exc}")
        return _error(502, "storage_error", exc)

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        return _error(503, "not_configured", exc)

    @app.exception_handler(FormBridgeError)
    async def formbridge_error_handler(request: Request, exc: FormBridgeError):
        logger.exception("Unhandled formbridge error", extra={"path": str(request.url)})
        return _error(500, "internal_error", exc)

    return app


# Module-level app for uvicorn entrypoint
app = create_app()
