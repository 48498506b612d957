"""Schemas for site visits and findings."""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field

from app.models.enums import (
    VisitState,
    LocationVerification,
    FindingType,
    FindingCategory,
    FindingSeverity,
    RemediationTimeframe,
    FindingTrackingState,
    VerificationResult,
)
from app.utils.geo import Coordinates


class GPSPoint(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    def to_coordinates(self) -> Coordinates:
        return Coordinates(self.latitude, self.longitude)


class VisitCreateRequest(BaseModel):
    site_code: str = Field(..., min_length=1, max_length=20)
    site_name: str = Field(..., min_length=1, max_length=200)
    site_address: Optional[str] = None
    reference: Optional[GPSPoint] = Field(None, description="Reference coordinates of the site")
    scheduled_at: datetime
    auditor_id: str = Field(..., min_length=1, max_length=64)
    companion_auditor_id: Optional[str] = Field(None, max_length=64)
    sections_to_verify: List[str] = []


class RescheduleRequest(BaseModel):
    scheduled_at: datetime
    reason: Optional[str] = None


class CancelRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class StartVisitRequest(BaseModel):
    gps: Optional[GPSPoint] = None


class EndVisitRequest(BaseModel):
    gps: Optional[GPSPoint] = None
    observations: Optional[str] = None
    visit_score: Optional[float] = Field(None, ge=0, le=100)


class VisitResponse(BaseModel):
    id: int
    audit_id: int
    auditor_id: str
    companion_auditor_id: Optional[str] = None
    site_code: str
    site_name: str
    site_address: Optional[str] = None
    reference_latitude: Optional[float] = None
    reference_longitude: Optional[float] = None
    scheduled_at: datetime
    confirmed_at: Optional[datetime] = None
    state: VisitState
    sections_to_verify: List[str]
    cancellation_reason: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    arrival_latitude: Optional[float] = None
    arrival_longitude: Optional[float] = None
    departure_latitude: Optional[float] = None
    departure_longitude: Optional[float] = None
    distance_to_reference_m: Optional[float] = None
    location_verification: LocationVerification
    observations: Optional[str] = None
    visit_score: Optional[float] = None

    model_config = {"from_attributes": True}


class FindingCreateRequest(BaseModel):
    finding_type: FindingType
    category: FindingCategory
    severity: FindingSeverity
    section_id: str = Field("general", max_length=40)
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    evidence: Optional[str] = None
    corrective_action: Optional[str] = None
    recommended_timeframe: Optional[RemediationTimeframe] = None
    affects_score: bool = True
    deduction_points: float = Field(0.0, ge=0, le=100)


class FindingTrackingRequest(BaseModel):
    notes: Optional[str] = Field(None, description="Provider response, deferral reason or correction notes")


class VerifyRemediationRequest(BaseModel):
    result: VerificationResult
    notes: Optional[str] = None


class FindingResponse(BaseModel):
    id: int
    visit_id: int
    audit_id: int
    auditor_id: str
    code: str
    finding_type: FindingType
    category: FindingCategory
    severity: FindingSeverity
    section_id: str
    title: str
    description: str
    evidence: Optional[str] = None
    corrective_action: Optional[str] = None
    recommended_timeframe: Optional[RemediationTimeframe] = None
    remediation_deadline: Optional[datetime] = None
    tracking_state: FindingTrackingState
    communicated_to_provider: bool
    communicated_at: Optional[datetime] = None
    provider_response: Optional[str] = None
    provider_responded_at: Optional[datetime] = None
    verification_result: VerificationResult
    verification_notes: Optional[str] = None
    verified_at: Optional[datetime] = None
    affects_score: bool
    deduction_points: float
    created_at: datetime

    model_config = {"from_attributes": True}
