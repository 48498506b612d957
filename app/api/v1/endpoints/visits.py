"""
Site visit and finding endpoints.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from app.core.auth import Actor, get_current_actor
from app.models.enums import FindingSeverity, FindingTrackingState
from app.schemas.visit import (
    CancelRequest,
    EndVisitRequest,
    FindingCreateRequest,
    FindingResponse,
    FindingTrackingRequest,
    RescheduleRequest,
    StartVisitRequest,
    VerifyRemediationRequest,
    VisitCreateRequest,
    VisitResponse,
)
from app.services.visit_service import VisitService
from app.api.v1.endpoints.deps import get_visit_service

logger = logging.getLogger(__name__)

router = APIRouter()


# Visits

@router.post("/{audit_id}/visits", response_model=VisitResponse, status_code=status.HTTP_201_CREATED)
def schedule_visit(
    audit_id: int,
    request: VisitCreateRequest,
    actor: Actor = Depends(get_current_actor),
    service: VisitService = Depends(get_visit_service),
):
    """Schedule a site visit. The audit must be in stage 5."""
    visit = service.schedule_visit(
        audit_id,
        actor,
        site_code=request.site_code,
        site_name=request.site_name,
        scheduled_at=request.scheduled_at,
        auditor_id=request.auditor_id,
        site_address=request.site_address,
        reference=request.reference.to_coordinates() if request.reference else None,
        sections_to_verify=request.sections_to_verify,
        companion_auditor_id=request.companion_auditor_id,
    )
    return VisitResponse.model_validate(visit)


@router.get("/{audit_id}/visits", response_model=List[VisitResponse])
async def list_visits(audit_id: int, service: VisitService = Depends(get_visit_service)):
    return [VisitResponse.model_validate(v) for v in service.list_visits(audit_id)]


@router.get("/{audit_id}/visits/{visit_id}", response_model=VisitResponse)
async def get_visit(audit_id: int, visit_id: int, service: VisitService = Depends(get_visit_service)):
    return VisitResponse.model_validate(service.get_visit(audit_id, visit_id))


@router.post("/{audit_id}/visits/{visit_id}/confirm", response_model=VisitResponse)
def confirm_visit(
    audit_id: int,
    visit_id: int,
    actor: Actor = Depends(get_current_actor),
    service: VisitService = Depends(get_visit_service),
):
    return VisitResponse.model_validate(service.confirm_visit(audit_id, visit_id, actor))


@router.post("/{audit_id}/visits/{visit_id}/reschedule", response_model=VisitResponse)
def reschedule_visit(
    audit_id: int,
    visit_id: int,
    request: RescheduleRequest,
    actor: Actor = Depends(get_current_actor),
    service: VisitService = Depends(get_visit_service),
):
    visit = service.reschedule_visit(audit_id, visit_id, request.scheduled_at, actor, request.reason)
    return VisitResponse.model_validate(visit)


@router.post("/{audit_id}/visits/{visit_id}/cancel", response_model=VisitResponse)
def cancel_visit(
    audit_id: int,
    visit_id: int,
    request: CancelRequest,
    actor: Actor = Depends(get_current_actor),
    service: VisitService = Depends(get_visit_service),
):
    return VisitResponse.model_validate(service.cancel_visit(audit_id, visit_id, request.reason, actor))


@router.post("/{audit_id}/visits/{visit_id}/start", response_model=VisitResponse)
def start_visit(
    audit_id: int,
    visit_id: int,
    request: Optional[StartVisitRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: VisitService = Depends(get_visit_service),
):
    gps = request.gps.to_coordinates() if request and request.gps else None
    return VisitResponse.model_validate(service.start_visit(audit_id, visit_id, actor, gps_arrival=gps))


@router.post("/{audit_id}/visits/{visit_id}/end", response_model=VisitResponse)
def end_visit(
    audit_id: int,
    visit_id: int,
    request: Optional[EndVisitRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: VisitService = Depends(get_visit_service),
):
    """Complete the visit; the location is verified against the site's reference point."""
    request = request or EndVisitRequest()
    visit = service.end_visit(
        audit_id,
        visit_id,
        actor,
        gps_departure=request.gps.to_coordinates() if request.gps else None,
        observations=request.observations,
        visit_score=request.visit_score,
    )
    return VisitResponse.model_validate(visit)


@router.post("/{audit_id}/visits/{visit_id}/verify-location", response_model=VisitResponse)
def recompute_verification(
    audit_id: int,
    visit_id: int,
    actor: Actor = Depends(get_current_actor),
    service: VisitService = Depends(get_visit_service),
):
    return VisitResponse.model_validate(service.recompute_verification(audit_id, visit_id, actor))


# Findings

@router.post(
    "/{audit_id}/visits/{visit_id}/findings",
    response_model=FindingResponse,
    status_code=status.HTTP_201_CREATED,
)
def register_finding(
    audit_id: int,
    visit_id: int,
    request: FindingCreateRequest,
    actor: Actor = Depends(get_current_actor),
    service: VisitService = Depends(get_visit_service),
):
    finding = service.register_finding(audit_id, visit_id, actor, **request.model_dump())
    return FindingResponse.model_validate(finding)


@router.get("/{audit_id}/findings", response_model=List[FindingResponse])
async def list_findings(
    audit_id: int,
    visit_id: Optional[int] = Query(None),
    severity: Optional[FindingSeverity] = Query(None),
    tracking_state: Optional[FindingTrackingState] = Query(None),
    service: VisitService = Depends(get_visit_service),
):
    findings = service.list_findings(audit_id, visit_id=visit_id, severity=severity, tracking_state=tracking_state)
    return [FindingResponse.model_validate(f) for f in findings]


@router.get("/{audit_id}/findings/{finding_id}", response_model=FindingResponse)
async def get_finding(audit_id: int, finding_id: int, service: VisitService = Depends(get_visit_service)):
    return FindingResponse.model_validate(service.get_finding(audit_id, finding_id))


@router.post("/{audit_id}/findings/{finding_id}/communicate", response_model=FindingResponse)
def communicate_finding(
    audit_id: int,
    finding_id: int,
    actor: Actor = Depends(get_current_actor),
    service: VisitService = Depends(get_visit_service),
):
    return FindingResponse.model_validate(service.communicate_to_provider(audit_id, finding_id, actor))


@router.post("/{audit_id}/findings/{finding_id}/acknowledge", response_model=FindingResponse)
def acknowledge_finding(
    audit_id: int,
    finding_id: int,
    request: Optional[FindingTrackingRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: VisitService = Depends(get_visit_service),
):
    notes = request.notes if request else None
    return FindingResponse.model_validate(service.acknowledge_by_provider(audit_id, finding_id, actor, notes))


@router.post("/{audit_id}/findings/{finding_id}/defer", response_model=FindingResponse)
def defer_finding(
    audit_id: int,
    finding_id: int,
    request: Optional[FindingTrackingRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: VisitService = Depends(get_visit_service),
):
    notes = request.notes if request else None
    return FindingResponse.model_validate(service.defer_finding(audit_id, finding_id, actor, notes))


@router.post("/{audit_id}/findings/{finding_id}/correction", response_model=FindingResponse)
def report_correction(
    audit_id: int,
    finding_id: int,
    request: Optional[FindingTrackingRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: VisitService = Depends(get_visit_service),
):
    notes = request.notes if request else None
    return FindingResponse.model_validate(service.report_correction(audit_id, finding_id, actor, notes))


@router.post("/{audit_id}/findings/{finding_id}/verify", response_model=FindingResponse)
def verify_remediation(
    audit_id: int,
    finding_id: int,
    request: VerifyRemediationRequest,
    actor: Actor = Depends(get_current_actor),
    service: VisitService = Depends(get_visit_service),
):
    finding = service.verify_remediation(audit_id, finding_id, request.result, actor, request.notes)
    return FindingResponse.model_validate(finding)
