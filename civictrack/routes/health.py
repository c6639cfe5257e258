"""
Health check endpoints.
Used for monitoring, deployment readiness checks, and basic connectivity tests.
"""

from fastapi import APIRouter, HTTPException

from civictrack.core.settings import settings
from civictrack.utils.timeutils import to_iso, utcnow


router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
async def health_check():
    """
    Basic health check endpoint.
    Returns 200 if service is running.
    """
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": to_iso(utcnow()),
    }


@router.get("/db")
async def database_health():
    """
    Database connectivity check.
    Lists Firestore collections, or reports the in-memory repository in mock mode.
    """
    if settings.USE_MOCK_DB:
        return {
            "status": "healthy",
            "database": "in-memory",
            "connected": True,
            "timestamp": to_iso(utcnow()),
        }

    try:
        from civictrack.config.firebase import get_db
        collections = list(get_db().collections())

        return {
            "status": "healthy",
            "database": "firestore",
            "connected": True,
            "collections_count": len(collections),
            "timestamp": to_iso(utcnow()),
        }
    except Exception as e:
        raise HTTPException(
            status_code=503,
            detail=f"Database connection failed: {str(e)}"
        )
