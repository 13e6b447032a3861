"""Health check routes."""
from fastapi import APIRouter

from flowys import __version__

router = APIRouter()


@router.get("/health")
def health_check() -> dict:
    """
    Health check endpoint.

    Returns:
        Status dict
    """
    return {
        "status": "healthy",
        "service": "flowys-engine",
        "version": __version__,
    }
