"""
Consolidation and final report endpoints.
"""
import io
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from app.core.auth import Actor, get_current_actor
from app.core.exceptions import AuditPortalError
from app.schemas.report import (
    ProviderReportResponseRequest,
    ReportNotesRequest,
    ReportResponse,
    ScorePreviewResponse,
)
from app.services.reporting_service import ReportingService
from app.api.v1.endpoints.deps import get_reporting_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{audit_id}/score-preview", response_model=ScorePreviewResponse)
async def score_preview(audit_id: int, service: ReportingService = Depends(get_reporting_service)):
    """Current weighted score and tier, without creating a report."""
    return ScorePreviewResponse(**service.preview(audit_id))


@router.get("/{audit_id}/report", response_model=ReportResponse)
async def get_report(audit_id: int, service: ReportingService = Depends(get_reporting_service)):
    return ReportResponse.model_validate(service.get_report(audit_id))


@router.post("/{audit_id}/report/finalize", response_model=ReportResponse)
def finalize_report(
    audit_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ReportingService = Depends(get_reporting_service),
):
    """Consolidate scores and findings into the report. Repeating it with unchanged data is a no-op."""
    return ReportResponse.model_validate(service.finalize(audit_id, actor))


@router.post("/{audit_id}/report/submit", response_model=ReportResponse)
def submit_report(
    audit_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ReportingService = Depends(get_reporting_service),
):
    return ReportResponse.model_validate(service.submit_for_review(audit_id, actor))


@router.post("/{audit_id}/report/return", response_model=ReportResponse)
def return_report(
    audit_id: int,
    request: Optional[ReportNotesRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: ReportingService = Depends(get_reporting_service),
):
    reason = request.notes if request else None
    return ReportResponse.model_validate(service.return_to_draft(audit_id, actor, reason))


@router.post("/{audit_id}/report/approve", response_model=ReportResponse)
def approve_report(
    audit_id: int,
    request: Optional[ReportNotesRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: ReportingService = Depends(get_reporting_service),
):
    notes = request.notes if request else None
    return ReportResponse.model_validate(service.approve(audit_id, actor, notes))


@router.post("/{audit_id}/report/deliver", response_model=ReportResponse)
def deliver_report(
    audit_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ReportingService = Depends(get_reporting_service),
):
    return ReportResponse.model_validate(service.deliver(audit_id, actor))


@router.post("/{audit_id}/report/provider-response", response_model=ReportResponse)
def provider_response(
    audit_id: int,
    request: Optional[ProviderReportResponseRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: ReportingService = Depends(get_reporting_service),
):
    """Provider accepts the delivered report, or objects when observations are sent."""
    observations = request.observations if request else None
    return ReportResponse.model_validate(service.register_provider_response(audit_id, actor, observations))


@router.get("/{audit_id}/report/pdf")
def download_report_pdf(audit_id: int, service: ReportingService = Depends(get_reporting_service)):
    """Download the final report as PDF."""
    try:
        report = service.get_report(audit_id)
        pdf_bytes = service.render_pdf(audit_id)
    except AuditPortalError:
        raise
    except Exception as e:
        logger.error(f"Error generating PDF for audit_id={audit_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate PDF report"
        )

    filename = f"{report.code}_r{report.revision}.pdf"
    return StreamingResponse(
        io.BytesIO(pdf_bytes),
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"'
        }
    )
