"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from deployer.api.schemas import ErrorResponse
from deployer.config import Settings, get_settings
from deployer.errors import DeploymentError, RateLimited, ToolchainError, UnsafeCommand
from deployer.services.deployment_service import DeploymentService

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": "default-src 'self'",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info(f"Deployment variants: {sorted(app.state.deployment_service.variants)}")
    yield
    # Shutdown
    await app.state.deployment_service.shutdown()


def _error_body(error: str, code: str, **extra) -> dict:
    return ErrorResponse(error=error, code=code, **extra).model_dump(
        by_alias=True, exclude_none=True
    )


async def deployment_error_handler(request: Request, exc: DeploymentError) -> JSONResponse:
    """Translate pipeline errors into JSON error responses."""
    headers = {}
    extra = {}

    if isinstance(exc, RateLimited):
        extra["reset_in_seconds"] = exc.reset_in_seconds
        headers["Retry-After"] = str(exc.reset_in_seconds)
    elif isinstance(exc, UnsafeCommand):
        logger.error(f"Toolchain command blocked for {request.url.path}: {exc.message}")
    elif isinstance(exc, ToolchainError):
        logger.error(f"Toolchain failure for {request.url.path}: {exc.message}")
        extra.update(step=exc.step, stdout=exc.stdout or None, stderr=exc.stderr or None)
    elif exc.status_code >= 500:
        logger.error(f"{exc.code} for {request.url.path}: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.message, exc.code, **extra),
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are client errors, reported in the common error shape."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"Invalid request: {location or 'body'}: {first.get('msg', 'invalid value')}"
    else:
        message = "Invalid request body"
    return JSONResponse(status_code=400, content=_error_body(message, "InvalidRequest"))


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[DeploymentService] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use (cached environment settings when omitted)
        service: Pre-built deployment service (tests inject fake runners here)
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Contract Deployer API",
        description="Sandboxed smart-contract compile and deploy API",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.debug,
    )

    # One service (and one rate limit store) for the lifetime of the app
    app.state.settings = settings
    app.state.deployment_service = service or DeploymentService.from_settings(settings)

    # CORS middleware
    origins = settings.cors_origin_list or (["*"] if settings.debug else [])
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    app.add_exception_handler(DeploymentError, deployment_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Register routes
    from deployer.api.routes import deploy, health

    app.include_router(health.router, tags=["Health"])
    app.include_router(deploy.router, tags=["Deploy"])

    return app
