"""
Validation log endpoints.

External validators (format checks, ETL, IA scoring, manual reviews) append
records here. The log is append-only: there is no update or delete route.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.auth import Actor, get_current_actor
from app.core.database import get_db
from app.core.exceptions import NotFoundError
from app.models.enums import ValidationType
from app.models.section_evaluation import SectionEvaluation
from app.models.validation_record import ValidationRecord
from app.schemas.validation import (
    ValidationRecordCreate,
    ValidationRecordResponse,
    ValidationSummaryResponse,
)
from app.services.evaluation_service import EvaluationService
from app.services.validation_log import ValidationLog

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/{audit_id}/validations",
    response_model=ValidationRecordResponse,
    status_code=status.HTTP_201_CREATED,
)
def append_validation(
    audit_id: int,
    request: ValidationRecordCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """
    Append a validation record.

    Scored records from automatic executors are pulled into the open
    evaluation of their section.
    """
    log = ValidationLog(db)
    record_id = log.append(ValidationRecord(
        audit_id=audit_id,
        executed_by=actor.user_id,
        **request.model_dump(),
    ))
    record = log.get(record_id)

    if record.section_id and record.executor.is_automatic and record.score is not None:
        opened = db.query(SectionEvaluation.id).filter(
            SectionEvaluation.audit_id == audit_id,
            SectionEvaluation.section_id == record.section_id,
        ).first()
        if opened:
            EvaluationService(db).refresh_automatic_score(audit_id, record.section_id, actor)

    return ValidationRecordResponse.model_validate(record)


@router.get("/{audit_id}/validations", response_model=List[ValidationRecordResponse])
async def list_validations(
    audit_id: int,
    validation_type: Optional[ValidationType] = Query(None, description="Filter by validation type"),
    section_id: Optional[str] = Query(None, description="Filter by section"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Newest first."""
    records = ValidationLog(db).list_for_audit(
        audit_id, validation_type=validation_type, section_id=section_id, limit=limit, offset=offset
    )
    return [ValidationRecordResponse.model_validate(r) for r in records]


@router.get("/{audit_id}/validations/summary", response_model=ValidationSummaryResponse)
async def summarize_validations(audit_id: int, db: Session = Depends(get_db)):
    return ValidationSummaryResponse(**ValidationLog(db).summarize(audit_id))


@router.get("/{audit_id}/validations/{record_id}", response_model=ValidationRecordResponse)
async def get_validation(audit_id: int, record_id: int, db: Session = Depends(get_db)):
    record = ValidationLog(db).get(record_id)
    if record.audit_id != audit_id:
        raise NotFoundError("ValidationRecord", record_id)
    return ValidationRecordResponse.model_validate(record)
