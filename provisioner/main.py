"""FastAPI application entry point."""

import re
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from provisioner import __version__
from provisioner.api.middleware import RequestLoggingMiddleware
from provisioner.api.v1.router import router as v1_router
from provisioner.config import settings
from provisioner.core.exceptions import ProvisionerError
from provisioner.core.launcher import get_launcher
from provisioner.core.resolver import provider_statuses
from provisioner.providers.factory import get_provider_factory
from provisioner.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def error_code(exc: Exception) -> str:
    """``MissingConfigurationError`` -> ``MISSING_CONFIGURATION``."""
    name = type(exc).__name__.removesuffix("Error") or type(exc).__name__
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).upper()


def error_response(
    status_code: int, code: str, message: str, details: dict[str, Any] | None = None
) -> JSONResponse:
    """The one error body every endpoint returns."""
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message, "details": details or {}}},
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    configure_logging()
    statuses = provider_statuses(settings)
    logger.info(
        "application.starting",
        version=__version__,
        environment=settings.app_env,
        configured_providers=[s.provider for s in statuses if s.configured],
        missing_required=[s.provider for s in statuses if s.required and not s.configured],
    )

    yield

    # In-flight deployments are marked failed before their clients go away
    running = get_launcher().running
    await get_launcher().shutdown()
    await get_provider_factory().close()
    logger.info("application.shutdown", cancelled_deployments=len(running))


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ProvisionerError)
    async def provisioner_error_handler(request: Request, exc: ProvisionerError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("request.failed", path=request.url.path, error=exc.message)
        return error_response(exc.status_code, error_code(exc), exc.message, exc.details)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Malformed bodies get the same ``details.fields`` shape as resolver failures."""
        fields = [
            {
                "field": ".".join(str(part) for part in err["loc"] if part != "body"),
                "problem": err["msg"],
            }
            for err in exc.errors()
        ]
        return error_response(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "VALIDATION",
            "Request validation failed",
            {"fields": fields},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            error=str(exc),
            path=request.url.path,
            exc_info=True,
        )
        # Internals are only shown to developers
        if settings.is_development:
            return error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "INTERNAL_ERROR",
                str(exc),
                {"type": type(exc).__name__},
            )
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_ERROR",
            "An unexpected error occurred",
        )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Provisioner API",
        description=(
            "Provisions a project's repository, hosting, database, "
            "auth tenant and cloud project"
        ),
        version=__version__,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)
    app.include_router(v1_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "provisioner.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
    )
