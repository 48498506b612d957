"""
Section evaluation endpoints.
"""
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from app.core.auth import Actor, get_current_actor
from app.schemas.evaluation import (
    AssignRequest,
    ClarificationRequest,
    ProviderResponseRequest,
    ResolveRequest,
    SectionDefinitionResponse,
    SectionEvaluationResponse,
    SiteVisitFlagRequest,
)
from app.services import section_registry
from app.services.evaluation_service import EvaluationService
from app.api.v1.endpoints.deps import get_evaluation_service

logger = logging.getLogger(__name__)

router = APIRouter()
sections_router = APIRouter()


@sections_router.get("/", response_model=List[SectionDefinitionResponse])
async def list_sections():
    """The fixed catalog of evidence sections, in display order."""
    return [SectionDefinitionResponse.model_validate(s) for s in section_registry.list_all()]


@sections_router.get("/{section_id}", response_model=SectionDefinitionResponse)
async def get_section(section_id: str):
    return SectionDefinitionResponse.model_validate(section_registry.get(section_id))


@router.get("/{audit_id}/evaluations", response_model=List[SectionEvaluationResponse])
async def list_evaluations(audit_id: int, service: EvaluationService = Depends(get_evaluation_service)):
    service.get_audit(audit_id)
    return [SectionEvaluationResponse.model_validate(e) for e in service.list_for_audit(audit_id)]


@router.get("/{audit_id}/evaluations/progress")
async def evaluation_progress(
    audit_id: int, service: EvaluationService = Depends(get_evaluation_service)
) -> Dict[str, Any]:
    service.get_audit(audit_id)
    return service.progress(audit_id)


@router.get("/{audit_id}/evaluations/{section_id}", response_model=SectionEvaluationResponse)
async def get_evaluation(
    audit_id: int, section_id: str, service: EvaluationService = Depends(get_evaluation_service)
):
    return SectionEvaluationResponse.model_validate(service.get(audit_id, section_id))


@router.post("/{audit_id}/evaluations/{section_id}/assign", response_model=SectionEvaluationResponse)
def assign_evaluation(
    audit_id: int,
    section_id: str,
    request: AssignRequest,
    actor: Actor = Depends(get_current_actor),
    service: EvaluationService = Depends(get_evaluation_service),
):
    evaluation = service.assign(audit_id, section_id, request.auditor_id, actor)
    return SectionEvaluationResponse.model_validate(evaluation)


@router.post("/{audit_id}/evaluations/{section_id}/resolve", response_model=SectionEvaluationResponse)
def resolve_evaluation(
    audit_id: int,
    section_id: str,
    request: ResolveRequest,
    actor: Actor = Depends(get_current_actor),
    service: EvaluationService = Depends(get_evaluation_service),
):
    """Record the auditor's result; the section score is derived unless given explicitly."""
    evaluation = service.resolve(
        audit_id, section_id, request.result, actor, score=request.score, comments=request.comments
    )
    return SectionEvaluationResponse.model_validate(evaluation)


@router.post("/{audit_id}/evaluations/{section_id}/clarification", response_model=SectionEvaluationResponse)
def request_clarification(
    audit_id: int,
    section_id: str,
    request: ClarificationRequest,
    actor: Actor = Depends(get_current_actor),
    service: EvaluationService = Depends(get_evaluation_service),
):
    evaluation = service.request_clarification(audit_id, section_id, request.question, actor)
    return SectionEvaluationResponse.model_validate(evaluation)


@router.post("/{audit_id}/evaluations/{section_id}/provider-response", response_model=SectionEvaluationResponse)
def register_provider_response(
    audit_id: int,
    section_id: str,
    request: ProviderResponseRequest,
    actor: Actor = Depends(get_current_actor),
    service: EvaluationService = Depends(get_evaluation_service),
):
    evaluation = service.register_provider_response(audit_id, section_id, request.response, actor)
    return SectionEvaluationResponse.model_validate(evaluation)


@router.post("/{audit_id}/evaluations/{section_id}/site-visit", response_model=SectionEvaluationResponse)
def flag_site_visit(
    audit_id: int,
    section_id: str,
    request: SiteVisitFlagRequest,
    actor: Actor = Depends(get_current_actor),
    service: EvaluationService = Depends(get_evaluation_service),
):
    evaluation = service.flag_site_visit(audit_id, section_id, request.required, actor)
    return SectionEvaluationResponse.model_validate(evaluation)
