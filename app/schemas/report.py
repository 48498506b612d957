"""Schemas for the final audit report."""
from datetime import datetime
from typing import Optional, Dict, Any
from pydantic import BaseModel

from app.models.enums import ComplianceTier, ReportConclusion, ReportApprovalState


class ReportResponse(BaseModel):
    id: int
    audit_id: int
    code: str
    revision: int
    total_score: float
    section_scores: Dict[str, float]
    compliance_tier: ComplianceTier
    conclusion: ReportConclusion
    findings_summary: Dict[str, Any]
    inventory_summary: Optional[Dict[str, Any]] = None
    visits_summary: Dict[str, Any]
    requires_follow_up: bool
    content_digest: str
    generated_at: datetime
    approval_state: ReportApprovalState
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    approval_notes: Optional[str] = None
    delivered_at: Optional[datetime] = None
    provider_observations: Optional[str] = None
    provider_responded_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ScorePreviewResponse(BaseModel):
    total_score: float
    compliance_tier: ComplianceTier
    conclusion: ReportConclusion
    section_scores: Dict[str, float]
    findings_summary: Dict[str, Any]


class ReportNotesRequest(BaseModel):
    notes: Optional[str] = None


class ProviderReportResponseRequest(BaseModel):
    observations: Optional[str] = None
