"""Health check endpoints."""

from fastapi import APIRouter
from sqlalchemy import text

from planboard.config import get_settings
from planboard.db.session import DBSession

router = APIRouter()


@router.get("/health")
async def health_check(db: DBSession) -> dict[str, str]:
    """Liveness plus database connectivity."""
    settings = get_settings()
    try:
        await db.execute(text("SELECT 1"))
        database = "healthy"
    except Exception as e:
        database = f"unhealthy: {e}"
    return {
        "status": "healthy" if database == "healthy" else "unhealthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "database": database,
    }
