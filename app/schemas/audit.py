"""Schemas for audits and their lifecycle."""
from datetime import datetime
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field

from app.models.enums import AuditStatus, ComplianceTier


class AuditCreateRequest(BaseModel):
    """Request schema for creating an audit."""
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    provider_id: str = Field(..., min_length=1, max_length=64, description="Audited provider id")
    primary_auditor_id: str = Field(..., min_length=1, max_length=64)
    secondary_auditor_id: Optional[str] = Field(None, max_length=64)
    scheduled_date: datetime
    deadline: Optional[datetime] = Field(None, description="Defaults to scheduled date plus every stage's dias_limite")
    stage_config: Optional[Dict[str, Dict[str, Any]]] = Field(
        None, description="Per-stage overrides keyed etapa_1..etapa_8"
    )


class AuditResponse(BaseModel):
    """Response schema for an audit."""
    id: int
    code: str
    title: str
    description: Optional[str] = None
    stage: int
    status: AuditStatus
    status_reason: Optional[str] = None
    provider_id: str
    primary_auditor_id: str
    secondary_auditor_id: Optional[str] = None
    scheduled_date: datetime
    deadline: datetime
    stage_config: Dict[str, Any]
    notification_sent_at: Optional[datetime] = None
    stage_entered_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    total_score: Optional[float] = None
    compliance_tier: Optional[ComplianceTier] = None
    progress_percentage: float
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AuditListResponse(BaseModel):
    items: List[AuditResponse]
    limit: int
    offset: int


class AdvanceRequest(BaseModel):
    """Request schema for moving an audit one stage forward."""
    target_stage: Optional[int] = Field(None, ge=1, le=8, description="Must be the next stage when given")
    expected_stage: Optional[int] = Field(
        None, ge=1, le=8, description="Stage the caller last saw; a mismatch is a concurrency conflict"
    )


class StatusChangeRequest(BaseModel):
    """Request schema for suspending or cancelling an audit."""
    reason: str = Field(..., min_length=1, max_length=2000)


class GateCheckResponse(BaseModel):
    audit_id: int
    current_stage: int
    next_stage: Optional[int] = None
    ready: bool
    gate: Optional[str] = None
    missing: List[Any] = []
    message: Optional[str] = None


class CompletionResponse(BaseModel):
    completed_count: int
    total_count: int
    completion_percentage: float
    missing_obligatory: List[str]
    missing_optional: List[str]
