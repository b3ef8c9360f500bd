"""Health check API routes.

Provides endpoints for:
- GET /health - Basic liveness check
- GET /health/ready - Readiness check (DB connectivity)
"""

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from crosspost.db.engine import engine
from crosspost.logging import get_logger

router = APIRouter(prefix="/health", tags=["health"])
logger = get_logger(__name__)


def check_database() -> bool:
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error("health_database_unavailable", error=str(e))
        return False


@router.get("")
async def health() -> dict:
    """Basic liveness check. No authentication required."""
    return {"status": "ok"}


@router.get("/ready")
async def ready() -> dict:
    """Readiness check against the database.

    Raises:
        HTTPException 503: Service not ready
    """
    if not check_database():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not ready: database unavailable",
        )
    return {"status": "ok", "database": True}
