"""Health check endpoints."""

from fastapi import APIRouter

from treasury_relay import __version__
from treasury_relay.config import get_settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "treasury-relay"}


@router.get("/health/detailed")
async def detailed_health():
    """Detailed health check with configuration info."""
    settings = get_settings()
    return {
        "status": "healthy",
        "service": "treasury-relay",
        "version": __version__,
        "config": settings.get_safe_dict(),
    }
