"""
IA-assisted section scoring endpoint.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.core.auth import Actor, get_current_actor
from app.core.database import get_db
from app.schemas.validation import ValidationRecordResponse
from app.services import section_registry
from app.services.ai_service import AIService
from app.services.validation_log import ValidationLog

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{audit_id}/sections/{section_id}/ai-score", response_model=ValidationRecordResponse)
def score_section_with_ai(
    audit_id: int,
    section_id: str,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """
    Ask the model for a compliance assessment of one section.

    The assessment is appended to the validation log as a ``scoring_ia``
    record and refreshes the section's automatic score.
    """
    section_registry.get(section_id)
    ai_service = AIService()

    if not ai_service.is_available():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="OpenAI API key not configured. IA scoring is not available."
        )

    record_id = ai_service.score_section(db, audit_id, section_id, actor)
    if record_id is None:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="The model did not return a usable assessment"
        )

    return ValidationRecordResponse.model_validate(ValidationLog(db).get(record_id))
