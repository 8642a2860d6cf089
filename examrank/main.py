"""FastAPI application entry point for the examrank service."""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from examrank.api.v1.router import api_router
from examrank.core import scheduler
from examrank.core.config import settings
from examrank.core.database import engine
from examrank.core.exceptions import AppException
from examrank.middleware.logging import RequestLoggingMiddleware
from examrank.schemas.common import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Per-statement SQL and per-tick scheduler logs are too chatty at INFO
    for name in ("sqlalchemy", "sqlalchemy.engine", "apscheduler"):
        logging.getLogger(name).setLevel(logging.WARNING)


configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the cron scheduler with the app and dispose the engine on exit."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    if settings.SCHEDULER_ENABLED:
        scheduler.start_scheduler()
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")
    yield
    logger.info("Shutting down application")
    scheduler.stop_scheduler()
    engine.dispose()


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, details=details or {}))
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException):
        return error_response(exc.status_code, exc.code, exc.message, exc.details)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        # ctx of field_validator errors holds the raised ValueError
        errors = jsonable_encoder(exc.errors(), custom_encoder={Exception: str})
        return error_response(422, "VALIDATION_ERROR", "Request validation failed", {"errors": errors})

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception on {request.method} {request.url.path}")
        return error_response(500, "INTERNAL_ERROR", "An internal server error occurred")


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description=(
            "Normalizes multi-shift exam scores, ranks candidates overall and by "
            "category, shift and state, and predicts category cutoffs. Pipeline "
            "stages run as background or cron-scheduled jobs."
        ),
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Liveness probe, including whether the cron scheduler is running."""
        running = scheduler.scheduler is not None and scheduler.scheduler.running
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "scheduler": "running" if running else "stopped",
        }

    app.include_router(api_router, prefix=settings.API_V1_PREFIX)
    return app


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "examrank.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
