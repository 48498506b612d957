"""
Audit lifecycle endpoints.

Domain errors raised by the services are rendered by the application-level
handler in ``app.main``.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from app.core.auth import Actor, get_current_actor
from app.models.enums import AuditStatus
from app.schemas.audit import (
    AdvanceRequest,
    AuditCreateRequest,
    AuditListResponse,
    AuditResponse,
    CompletionResponse,
    GateCheckResponse,
    StatusChangeRequest,
)
from app.services.stage_controller import StageController
from app.api.v1.endpoints.deps import get_stage_controller

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/", response_model=AuditResponse, status_code=status.HTTP_201_CREATED)
def create_audit(
    request: AuditCreateRequest,
    actor: Actor = Depends(get_current_actor),
    controller: StageController = Depends(get_stage_controller),
):
    """Open a new audit in stage 1 (notification)."""
    audit = controller.create_audit(
        actor=actor,
        title=request.title,
        provider_id=request.provider_id,
        primary_auditor_id=request.primary_auditor_id,
        scheduled_date=request.scheduled_date,
        secondary_auditor_id=request.secondary_auditor_id,
        deadline=request.deadline,
        description=request.description,
        stage_config=request.stage_config,
    )
    return AuditResponse.model_validate(audit)


@router.get("/", response_model=AuditListResponse)
async def list_audits(
    status_filter: Optional[AuditStatus] = Query(None, alias="status", description="Filter by status"),
    stage: Optional[int] = Query(None, ge=1, le=8, description="Filter by stage"),
    provider_id: Optional[str] = Query(None, description="Filter by provider"),
    auditor_id: Optional[str] = Query(None, description="Primary or secondary auditor"),
    include_archived: bool = Query(False),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    controller: StageController = Depends(get_stage_controller),
):
    audits = controller.list_audits(
        status=status_filter,
        stage=stage,
        provider_id=provider_id,
        auditor_id=auditor_id,
        include_archived=include_archived,
        limit=limit,
        offset=offset,
    )
    return AuditListResponse(
        items=[AuditResponse.model_validate(a) for a in audits],
        limit=limit,
        offset=offset,
    )


@router.get("/{audit_id}", response_model=AuditResponse)
async def get_audit(audit_id: int, controller: StageController = Depends(get_stage_controller)):
    return AuditResponse.model_validate(controller.get_audit(audit_id))


@router.get("/{audit_id}/status")
async def get_workflow_status(
    audit_id: int, controller: StageController = Depends(get_stage_controller)
) -> Dict[str, Any]:
    """Stage, deadline, evidence, evaluations, findings and next gate of one audit."""
    return controller.workflow_status(audit_id)


@router.get("/{audit_id}/gate", response_model=GateCheckResponse)
async def check_gate(audit_id: int, controller: StageController = Depends(get_stage_controller)):
    """Whether the audit could advance right now, and what is missing if not."""
    return GateCheckResponse(**controller.check_gate(audit_id))


@router.get("/{audit_id}/completion", response_model=CompletionResponse)
async def get_completion(audit_id: int, controller: StageController = Depends(get_stage_controller)):
    controller.get_audit(audit_id)
    summary = controller.completeness.compute_completion(audit_id)
    return CompletionResponse(
        completed_count=summary.completed_count,
        total_count=summary.total_count,
        completion_percentage=summary.completion_percentage,
        missing_obligatory=summary.missing_obligatory,
        missing_optional=summary.missing_optional,
    )


@router.post("/{audit_id}/notify", response_model=AuditResponse)
def mark_notification_sent(
    audit_id: int,
    actor: Actor = Depends(get_current_actor),
    controller: StageController = Depends(get_stage_controller),
):
    return AuditResponse.model_validate(controller.mark_notification_sent(audit_id, actor))


@router.post("/{audit_id}/advance", response_model=AuditResponse)
def advance_stage(
    audit_id: int,
    request: Optional[AdvanceRequest] = None,
    actor: Actor = Depends(get_current_actor),
    controller: StageController = Depends(get_stage_controller),
):
    """
    Move the audit one stage forward.

    Returns 422 with the missing items when the gate fails and 409 when the
    move is not allowed or ``expected_stage`` is stale.
    """
    request = request or AdvanceRequest()
    audit = controller.advance(
        audit_id, actor, target_stage=request.target_stage, expected_stage=request.expected_stage
    )
    return AuditResponse.model_validate(audit)


@router.post("/{audit_id}/suspend", response_model=AuditResponse)
def suspend_audit(
    audit_id: int,
    request: StatusChangeRequest,
    actor: Actor = Depends(get_current_actor),
    controller: StageController = Depends(get_stage_controller),
):
    return AuditResponse.model_validate(controller.suspend(audit_id, request.reason, actor))


@router.post("/{audit_id}/cancel", response_model=AuditResponse)
def cancel_audit(
    audit_id: int,
    request: StatusChangeRequest,
    actor: Actor = Depends(get_current_actor),
    controller: StageController = Depends(get_stage_controller),
):
    return AuditResponse.model_validate(controller.cancel(audit_id, request.reason, actor))


@router.post("/{audit_id}/complete", response_model=AuditResponse)
def complete_audit(
    audit_id: int,
    actor: Actor = Depends(get_current_actor),
    controller: StageController = Depends(get_stage_controller),
):
    return AuditResponse.model_validate(controller.complete(audit_id, actor))


@router.post("/{audit_id}/archive", response_model=AuditResponse)
def archive_audit(
    audit_id: int,
    actor: Actor = Depends(get_current_actor),
    controller: StageController = Depends(get_stage_controller),
):
    return AuditResponse.model_validate(controller.archive(audit_id, actor))
