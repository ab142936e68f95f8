"""FastAPI application serving the deployment pipeline."""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from automaker import __version__
from automaker.api.middleware import RequestLoggingMiddleware
from automaker.api.v1.router import router as v1_router
from automaker.config import settings
from automaker.core.exceptions import AutomakerError
from automaker.core.orchestrator import get_orchestrator
from automaker.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def _error_response(
    status_code: int, code: str, message: str, **extra: Any
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {"code": code, "message": message, **extra},
        },
    )


async def automaker_error_handler(request: Request, exc: AutomakerError) -> JSONResponse:
    """Map domain errors (missing config, deployment conflict) to their status codes."""
    logger.warning(
        "request.rejected",
        path=request.url.path,
        error=type(exc).__name__,
        status_code=exc.status_code,
    )
    return _error_response(
        exc.status_code,
        type(exc).__name__.upper(),
        exc.message,
        details=exc.details,
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        error=str(exc),
        path=request.url.path,
        exc_info=True,
    )
    if settings.is_development:
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_ERROR",
            str(exc),
            type=type(exc).__name__,
        )
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "An unexpected error occurred",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure logging on startup; fail any in-flight deployment on shutdown."""
    configure_logging()
    logger.info(
        "application.starting",
        version=__version__,
        environment=settings.app_env,
        history_enabled=settings.deployment_history_enabled,
        kill_on_cancel=settings.deploy_kill_on_cancel,
    )

    yield

    # A deployment cannot outlive the process that tracks it
    orchestrator = get_orchestrator()
    if await orchestrator.cancel_deployment():
        logger.warning("application.deployment_aborted")
    logger.info("application.shutdown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Automaker Deployment API",
        description="Build, deploy, health-check and E2E-test pipeline for Automaker projects",
        version=__version__,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(AutomakerError, automaker_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(v1_router)

    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "automaker.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
    )


if __name__ == "__main__":
    run()
