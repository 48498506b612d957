"""Schemas for activity log."""
from datetime import datetime
from typing import Optional, Dict, Any, List
from pydantic import BaseModel


class ActivityLogResponse(BaseModel):
    """Response schema for activity log entry."""
    id: int
    timestamp: datetime
    actor_id: str
    actor_role: str
    action: str
    audit_id: Optional[int] = None
    resource_type: Optional[str] = None
    resource_id: Optional[int] = None
    details: Optional[Dict[str, Any]] = None

    model_config = {"from_attributes": True}


class ActivityLogListResponse(BaseModel):
    """Response schema for activity log list."""
    items: List[ActivityLogResponse]
    limit: int
    offset: int
