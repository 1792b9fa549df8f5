"""Health check endpoints."""

from fastapi import APIRouter, Request

from deployer.config import get_settings
from deployer.pipeline.toolchain import get_blocked_attempts

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "contract-deployer"}


@router.get("/health/detailed")
async def detailed_health(request: Request):
    """Detailed health check with configuration and pipeline state."""
    settings = getattr(request.app.state, "settings", None) or get_settings()
    service = request.app.state.deployment_service
    return {
        "status": "healthy",
        "service": "contract-deployer",
        "version": "0.1.0",
        "config": settings.get_safe_dict(),
        "variants": sorted(service.variants),
        "pattern_versions": {
            name: parser.patterns.version for name, parser in service.parsers.items()
        },
        "pending_cleanups": service.cleanup.pending_count,
        "rate_limited_clients": len(service.rate_limiter.store),
        "blocked_commands": get_blocked_attempts(),
    }
