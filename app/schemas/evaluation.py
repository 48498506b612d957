"""Schemas for section evaluations."""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field

from app.models.enums import EvaluationState, EvaluationResult, SectionCategory


class SectionDefinitionResponse(BaseModel):
    id: str
    name: str
    obligatory: bool
    category: SectionCategory
    allowed_formats: List[str]
    max_size_mb: int

    model_config = {"from_attributes": True}


class SectionEvaluationResponse(BaseModel):
    """Response schema for a section evaluation."""
    id: int
    audit_id: int
    section_id: str
    obligatory: bool
    state: EvaluationState
    result: Optional[EvaluationResult] = None
    score: Optional[float] = None
    automatic_score: Optional[float] = None
    auditor_id: Optional[str] = None
    requires_site_visit: bool
    clarifications_pending: bool
    queries_count: int
    auditor_comments: Optional[str] = None
    provider_response: Optional[str] = None
    evaluation_started_at: Optional[datetime] = None
    evaluation_finished_at: Optional[datetime] = None
    evaluation_minutes: Optional[int] = None

    model_config = {"from_attributes": True}


class AssignRequest(BaseModel):
    auditor_id: str = Field(..., min_length=1, max_length=64)


class ResolveRequest(BaseModel):
    result: EvaluationResult
    score: Optional[float] = Field(None, ge=0, le=100, description="Manual score; overrides the calculated one")
    comments: Optional[str] = None


class ClarificationRequest(BaseModel):
    question: str = Field(..., min_length=1)


class ProviderResponseRequest(BaseModel):
    response: str = Field(..., min_length=1)


class SiteVisitFlagRequest(BaseModel):
    required: bool = True
