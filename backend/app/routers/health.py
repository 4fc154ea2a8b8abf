"""Health check endpoints for load balancers and monitoring."""

from datetime import datetime

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.database import engine

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Lightweight health check for load balancer (no DB check).

    Returns 200 OK if the service is running.
    """
    return {
        "status": "ok",
        "service": "codex-structure",
        "timestamp": datetime.utcnow().isoformat(),
        "environment": settings.environment,
    }


@router.get("/health/ready")
async def readiness_check():
    """Readiness check including the database.

    Returns 200 OK only if the store answers; 503 otherwise.
    """
    checks = {"service": "ok", "database": "unknown"}
    healthy = True

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except (SQLAlchemyError, OSError) as e:
        checks["database"] = f"error: {str(e)[:100]}"
        healthy = False

    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "service": "codex-structure",
            "checks": checks,
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
