"""
AI service for IA-assisted section scoring.
"""
import logging
import json
from typing import Optional, Dict, Any, List

from openai import OpenAI
from sqlalchemy.orm import Session

from app.core.auth import Actor
from app.core.config import settings
from app.models.enums import ValidationExecutor, ValidationResult, ValidationType
from app.models.section_evaluation import SectionEvaluation
from app.models.validation_record import ValidationRecord
from app.services import section_registry
from app.services.collaborators import SqlDocumentStore
from app.services.evaluation_service import EvaluationService
from app.services.validation_log import ValidationLog

logger = logging.getLogger(__name__)

ALLOWED_RESULTS = {
    ValidationResult.EXITOSO.value,
    ValidationResult.CON_ADVERTENCIAS.value,
    ValidationResult.FALLIDO.value,
}


def _parse_json(content: str) -> Optional[Dict[str, Any]]:
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        # Try to extract JSON from markdown code blocks
        json_start = content.find('{')
        json_end = content.rfind('}') + 1
        if json_start >= 0 and json_end > json_start:
            try:
                return json.loads(content[json_start:json_end])
            except json.JSONDecodeError:
                return None
        return None


class AIService:
    """Service for AI-assisted scoring of audit sections."""

    def __init__(self):
        """Initialize AI service."""
        self._client = None

    @property
    def client(self):
        """Lazy-load OpenAI client."""
        if self._client is None and settings.is_openai_available():
            try:
                self._client = OpenAI(api_key=settings.OPENAI_API_KEY)
            except Exception as e:
                logger.error(f"Failed to initialize OpenAI client: {e}")
                return None
        return self._client

    def is_available(self) -> bool:
        """Check if AI service is available."""
        return settings.is_openai_available() and self.client is not None

    def assess_section(self, section_id: str, context: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Ask the model for a compliance assessment of one section.

        Args:
            section_id: Registry section id
            context: Evidence metadata and previous validation outcomes

        Returns:
            Dictionary with score, result, critical_errors, warnings and
            suggestions, or None when the model call or its output fails.
        """
        section = section_registry.get(section_id)
        if not self.is_available():
            raise ValueError("OpenAI API key not configured")

        try:
            prompt = f"""You are an IT infrastructure auditor reviewing evidence submitted by a service provider.

Section: {section.name} ({section.id})
Obligatory: {"yes" if section.obligatory else "no"}
Accepted formats: {", ".join(section.allowed_formats)}
Evidence and prior checks:
{json.dumps(context, ensure_ascii=False, default=str)[:2000]}

Return a JSON object with:
1. "score": compliance score from 0 to 100
2. "result": one of "exitoso", "con_advertencias", "fallido"
3. "critical_errors": list of blocking problems (strings)
4. "warnings": list of non-blocking problems (strings)
5. "suggestions": list of improvement suggestions (strings)

Return only valid JSON, no markdown formatting."""

            response = self.client.chat.completions.create(
                model=settings.OPENAI_MODEL,
                messages=[
                    {"role": "system", "content": "You are an IT infrastructure auditor. Always return valid JSON."},
                    {"role": "user", "content": prompt}
                ],
                temperature=0.2,
                response_format={"type": "json_object"},
            )

            ai_data = _parse_json(response.choices[0].message.content or "")
            if ai_data is None:
                logger.warning(f"AI response did not contain valid JSON for section {section_id}")
                return None

            score = float(ai_data.get("score"))
            result = str(ai_data.get("result", "")).lower()
            if result not in ALLOWED_RESULTS:
                result = ValidationResult.CON_ADVERTENCIAS.value
            return {
                "score": max(0.0, min(100.0, score)),
                "result": result,
                "critical_errors": [str(e) for e in ai_data.get("critical_errors") or []],
                "warnings": [str(w) for w in ai_data.get("warnings") or []],
                "suggestions": [str(s) for s in ai_data.get("suggestions") or []],
            }
        except Exception as e:
            logger.error(f"AI assessment error for section {section_id}: {e}", exc_info=True)
            return None

    def score_section(self, db: Session, audit_id: int, section_id: str, actor: Actor) -> Optional[int]:
        """
        Record an IA scoring run for a section and refresh its automatic score.

        Returns:
            Id of the appended ``scoring_ia`` validation record, or None when
            the model produced no usable assessment.
        """
        log = ValidationLog(db)
        meta = SqlDocumentStore(db).get_document_meta(audit_id, section_id)
        previous: List[Dict[str, Any]] = [
            {
                "type": r.validation_type.value,
                "result": r.result.value,
                "score": r.score,
                "critical_errors": r.critical_errors,
                "warnings": r.warnings,
            }
            for r in log.list_for_audit(audit_id, section_id=section_id, limit=5)
        ]
        context = {
            "document": {
                "filename": meta.filename,
                "size_bytes": meta.size_bytes,
                "uploaded_at": meta.uploaded_at,
            } if meta else None,
            "previous_validations": previous,
        }

        assessment = self.assess_section(section_id, context)
        if assessment is None:
            return None

        record_id = log.append(ValidationRecord(
            audit_id=audit_id,
            section_id=section_id,
            validation_type=ValidationType.SCORING_IA,
            result=ValidationResult(assessment["result"]),
            score=assessment["score"],
            critical_errors=assessment["critical_errors"],
            warnings=assessment["warnings"],
            suggestions=assessment["suggestions"],
            details={"model": settings.OPENAI_MODEL},
            executor=ValidationExecutor.IA,
            executed_by=actor.user_id,
        ))
        opened = db.query(SectionEvaluation.id).filter(
            SectionEvaluation.audit_id == audit_id, SectionEvaluation.section_id == section_id
        ).first()
        if opened:
            EvaluationService(db).refresh_automatic_score(audit_id, section_id, actor)
        logger.info(f"IA scoring for audit {audit_id} section {section_id}: {assessment['score']}")
        return record_id
