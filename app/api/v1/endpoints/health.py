"""
Health check endpoint for monitoring and diagnostics.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """
    Verify the API is running and the database answers ``SELECT 1``.

    Returns 503 when the database is unreachable.
    """
    try:
        db.execute(text("SELECT 1")).fetchone()
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection failed"
        )

    return {
        "ok": True,
        "db": True,
        "environment": settings.APP_ENV,
        "openai_configured": settings.is_openai_available(),
    }
