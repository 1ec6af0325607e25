import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db

router = APIRouter()
logger = logging.getLogger(__name__)


async def _database_status(db: AsyncSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Database healthcheck failed")
        return "error"
    return "ok"


@router.get("/health", summary="Health check")
async def health(response: Response, db: AsyncSession = Depends(get_db)) -> dict[str, str]:
    """Liveness plus a database round trip; 503 while the database is down."""
    database = await _database_status(db)
    if database != "ok":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return {
        "status": "ok" if database == "ok" else "degraded",
        "app": settings.APP_NAME,
        "env": settings.ENV,
        "database": database,
    }
