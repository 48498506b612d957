"""
Activity log endpoints for audit trail.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.exceptions import NotFoundError
from app.models.activity_log import ActivityLog
from app.schemas.activity import ActivityLogResponse, ActivityLogListResponse
from app.services.activity_service import list_activity

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=ActivityLogListResponse)
async def list_activity_logs(
    audit_id: Optional[int] = Query(None, description="Filter by audit"),
    action: Optional[str] = Query(None, description="Filter by action type"),
    limit: int = Query(50, ge=1, le=500, description="Maximum number of logs to return"),
    offset: int = Query(0, ge=0, description="Number of logs to skip"),
    db: Session = Depends(get_db),
):
    """List activity logs, newest first."""
    logs = list_activity(db, audit_id=audit_id, action=action, limit=limit, offset=offset)
    return ActivityLogListResponse(
        items=[ActivityLogResponse.model_validate(log) for log in logs],
        limit=limit,
        offset=offset,
    )


@router.get("/{log_id}", response_model=ActivityLogResponse)
async def get_activity_log(log_id: int, db: Session = Depends(get_db)):
    log = db.query(ActivityLog).filter(ActivityLog.id == log_id).first()
    if not log:
        raise NotFoundError("ActivityLog", log_id)
    return ActivityLogResponse.model_validate(log)
