"""
Section evaluation engine.

Each audit carries one evaluation per registry section, created when the
audit enters automatic validation. Evaluations move through
``pendiente -> en_revision -> completada`` with an optional clarification
loop between ``en_revision`` and ``requiere_aclaracion``.
"""
import logging
from typing import Any, Dict, List, Optional

from app.core.auth import Actor
from app.core.config import settings
from app.core.database import utcnow
from app.core.exceptions import InvalidStateTransitionError, InvalidTransitionError, NotFoundError
from app.models.audit import Audit
from app.models.enums import AuditStage, EvaluationResult, EvaluationState
from app.models.section_evaluation import SectionEvaluation
from app.services import section_registry
from app.services.activity_service import ActivityAction, ResourceType, log_activity
from app.services.base import AuditBoundService
from app.services.events import SectionResolved
from app.services.validation_log import ValidationLog

logger = logging.getLogger(__name__)

# (current state, operation) -> next state
TRANSITIONS = {
    (EvaluationState.PENDIENTE, "assign"): EvaluationState.EN_REVISION,
    (EvaluationState.EN_REVISION, "resolve"): EvaluationState.COMPLETADA,
    (EvaluationState.EN_REVISION, "request_clarification"): EvaluationState.REQUIERE_ACLARACION,
    (EvaluationState.REQUIERE_ACLARACION, "register_provider_response"): EvaluationState.EN_REVISION,
}


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def calculate_score(automatic: Optional[float], result: EvaluationResult) -> Optional[float]:
    """
    Combine the automatic score with the auditor's result.

    ``cumple`` lifts the score to a floor, ``cumple_con_observaciones``
    discounts it with its own floor and ``no_cumple`` caps it. ``no_aplica``
    and ``pendiente_visita`` keep the automatic score as is (possibly None).
    """
    if result in (EvaluationResult.NO_APLICA, EvaluationResult.PENDIENTE_VISITA):
        return automatic if automatic is None else _clamp(automatic)

    a = automatic or 0.0
    if result == EvaluationResult.CUMPLE:
        return _clamp(max(a, settings.SCORE_CUMPLE_FLOOR))
    if result == EvaluationResult.CUMPLE_CON_OBSERVACIONES:
        return _clamp(max(a * settings.SCORE_OBSERVACIONES_FACTOR, settings.SCORE_OBSERVACIONES_FLOOR))
    if result == EvaluationResult.NO_CUMPLE:
        return _clamp(min(a, settings.SCORE_NO_CUMPLE_CEILING))
    raise ValueError(f"Unknown evaluation result: {result}")


def _next_state(evaluation: SectionEvaluation, operation: str, target: EvaluationState) -> EvaluationState:
    next_state = TRANSITIONS.get((evaluation.state, operation))
    if next_state is None:
        raise InvalidStateTransitionError(
            f"SectionEvaluation[{evaluation.section_id}]",
            evaluation.state,
            target,
            reason=f"{operation} not allowed from {evaluation.state.value}",
        )
    return next_state


def require_active(audit: Audit) -> None:
    if not audit.is_active:
        raise InvalidTransitionError(
            f"Audit {audit.code} is {audit.status.value}; no further changes allowed",
            current_stage=audit.stage,
            status=audit.status,
        )


class EvaluationService(AuditBoundService):
    """Section evaluation state machine and scoring."""

    # Reads

    def list_for_audit(self, audit_id: int) -> List[SectionEvaluation]:
        self.get_audit(audit_id)
        order = {s.id: i for i, s in enumerate(section_registry.list_all())}
        evaluations = self.db.query(SectionEvaluation).filter(SectionEvaluation.audit_id == audit_id).all()
        return sorted(evaluations, key=lambda e: order.get(e.section_id, len(order)))

    def get(self, audit_id: int, section_id: str) -> SectionEvaluation:
        section_registry.get(section_id)
        evaluation = (
            self.db.query(SectionEvaluation)
            .filter(SectionEvaluation.audit_id == audit_id, SectionEvaluation.section_id == section_id)
            .first()
        )
        if not evaluation:
            raise NotFoundError("SectionEvaluation", f"{audit_id}/{section_id}")
        return evaluation

    def progress(self, audit_id: int) -> Dict[str, Any]:
        """Counts of evaluations per state plus completion percentage."""
        evaluations = self.list_for_audit(audit_id)
        by_state = {state.value: 0 for state in EvaluationState}
        for evaluation in evaluations:
            by_state[evaluation.state.value] += 1
        total = len(evaluations)
        completed = by_state[EvaluationState.COMPLETADA.value]
        return {
            "total": total,
            "by_state": by_state,
            "clarifications_pending": sum(1 for e in evaluations if e.clarifications_pending),
            "requires_site_visit": [e.section_id for e in evaluations if e.requires_site_visit],
            "completion_percentage": round(completed / total * 100, 2) if total else 0.0,
        }

    # Used inside a stage transition (caller holds the lock)

    def create_for_audit(self, audit: Audit) -> List[SectionEvaluation]:
        """Create the missing evaluations for every registry section."""
        existing = {
            e.section_id
            for e in self.db.query(SectionEvaluation).filter(SectionEvaluation.audit_id == audit.id).all()
        }
        created = []
        for section in section_registry.list_all():
            if section.id in existing:
                continue
            evaluation = SectionEvaluation(
                audit_id=audit.id,
                section_id=section.id,
                obligatory=section.obligatory,
                state=EvaluationState.PENDIENTE,
                requires_site_visit=False,
                clarifications_pending=False,
                queries_count=0,
            )
            self.db.add(evaluation)
            created.append(evaluation)
        self.db.flush()
        logger.info(f"Created {len(created)} section evaluations for audit {audit.code}")
        return created

    def apply_automatic_score(self, evaluation: SectionEvaluation) -> bool:
        """Copy the newest automatic score onto a non-completed evaluation."""
        if evaluation.state == EvaluationState.COMPLETADA:
            return False
        record = ValidationLog(self.db).latest_automatic_scored(evaluation.audit_id, evaluation.section_id)
        if record is None or record.score == evaluation.automatic_score:
            return False
        evaluation.automatic_score = _clamp(record.score)
        return True

    # Locked mutations

    def assign(self, audit_id: int, section_id: str, auditor_id: str, actor: Actor) -> SectionEvaluation:
        with self.mutation(audit_id) as m:
            require_active(m.audit)
            evaluation = self.get(audit_id, section_id)
            evaluation.state = _next_state(evaluation, "assign", EvaluationState.EN_REVISION)
            evaluation.auditor_id = auditor_id
            evaluation.evaluation_started_at = utcnow()
            log_activity(
                self.db, actor, ActivityAction.EVALUATION_ASSIGN, audit_id,
                ResourceType.EVALUATION, evaluation.id, {"section_id": section_id, "auditor_id": auditor_id},
            )
        logger.info(f"Evaluation {audit_id}/{section_id} assigned to {auditor_id}")
        return evaluation

    def resolve(
        self,
        audit_id: int,
        section_id: str,
        result: EvaluationResult,
        actor: Actor,
        score: Optional[float] = None,
        comments: Optional[str] = None,
    ) -> SectionEvaluation:
        """
        Close the evaluation with the auditor's result.

        The stored score is ``score`` when given, else ``calculate_score`` on
        the automatic score. One of the two must exist.
        """
        with self.mutation(audit_id) as m:
            require_active(m.audit)
            evaluation = self.get(audit_id, section_id)
            next_state = _next_state(evaluation, "resolve", EvaluationState.COMPLETADA)

            if score is None and evaluation.automatic_score is None:
                raise InvalidStateTransitionError(
                    f"SectionEvaluation[{section_id}]",
                    evaluation.state,
                    next_state,
                    reason="neither a manual score nor an automatic score is available",
                )
            if score is not None and not 0 <= score <= 100:
                raise InvalidStateTransitionError(
                    f"SectionEvaluation[{section_id}]",
                    evaluation.state,
                    next_state,
                    reason=f"score {score} outside [0, 100]",
                )

            finished = utcnow()
            evaluation.state = next_state
            evaluation.result = result
            evaluation.score = score if score is not None else calculate_score(evaluation.automatic_score, result)
            if comments is not None:
                evaluation.auditor_comments = comments
            if result == EvaluationResult.PENDIENTE_VISITA:
                evaluation.requires_site_visit = True
            evaluation.evaluation_finished_at = finished
            if evaluation.evaluation_started_at:
                elapsed = finished - evaluation.evaluation_started_at
                evaluation.evaluation_minutes = int(elapsed.total_seconds() // 60)

            log_activity(
                self.db, actor, ActivityAction.EVALUATION_RESOLVE, audit_id,
                ResourceType.EVALUATION, evaluation.id,
                {"section_id": section_id, "result": result.value, "score": evaluation.score},
            )
            m.emit(SectionResolved(
                audit_id=audit_id, section_id=section_id, result=result.value, score=evaluation.score,
            ))
        logger.info(f"Evaluation {audit_id}/{section_id} resolved: {result.value} ({evaluation.score})")
        return evaluation

    def request_clarification(
        self, audit_id: int, section_id: str, question: str, actor: Actor
    ) -> SectionEvaluation:
        with self.mutation(audit_id) as m:
            require_active(m.audit)
            evaluation = self.get(audit_id, section_id)
            evaluation.state = _next_state(
                evaluation, "request_clarification", EvaluationState.REQUIERE_ACLARACION
            )
            evaluation.clarifications_pending = True
            evaluation.queries_count = (evaluation.queries_count or 0) + 1
            evaluation.auditor_comments = question
            log_activity(
                self.db, actor, ActivityAction.EVALUATION_CLARIFY, audit_id,
                ResourceType.EVALUATION, evaluation.id, {"section_id": section_id, "question": question},
            )
        return evaluation

    def register_provider_response(
        self, audit_id: int, section_id: str, response: str, actor: Actor
    ) -> SectionEvaluation:
        with self.mutation(audit_id) as m:
            require_active(m.audit)
            evaluation = self.get(audit_id, section_id)
            evaluation.state = _next_state(
                evaluation, "register_provider_response", EvaluationState.EN_REVISION
            )
            evaluation.clarifications_pending = False
            evaluation.provider_response = response
            log_activity(
                self.db, actor, ActivityAction.EVALUATION_RESPONSE, audit_id,
                ResourceType.EVALUATION, evaluation.id, {"section_id": section_id},
            )
        return evaluation

    def flag_site_visit(self, audit_id: int, section_id: str, required: bool, actor: Actor) -> SectionEvaluation:
        """
        Mark or unmark a section as needing a site visit.

        Only possible up to the visit stage. A section resolved as ``pendiente_visita`` stays flagged.
        """
        with self.mutation(audit_id) as m:
            require_active(m.audit)
            if m.audit.stage > AuditStage.VISITA_PRESENCIAL:
                raise InvalidTransitionError(
                    f"Audit {m.audit.code} is past the site visit stage",
                    current_stage=m.audit.stage,
                    requested=AuditStage.VISITA_PRESENCIAL,
                )
            evaluation = self.get(audit_id, section_id)
            if not required and evaluation.result == EvaluationResult.PENDIENTE_VISITA:
                raise InvalidStateTransitionError(
                    f"SectionEvaluation[{section_id}]",
                    evaluation.state,
                    evaluation.state,
                    reason="section resolved as pendiente_visita still requires a site visit",
                )
            evaluation.requires_site_visit = required
            log_activity(
                self.db, actor, ActivityAction.EVALUATION_SITE_VISIT, audit_id,
                ResourceType.EVALUATION, evaluation.id, {"section_id": section_id, "required": required},
            )
        return evaluation

    def refresh_automatic_score(
        self, audit_id: int, section_id: str, actor: Optional[Actor] = None
    ) -> SectionEvaluation:
        """Pull the newest automatic validation score into the evaluation."""
        actor = actor or Actor.system()
        if not self.get_audit(audit_id).is_active:
            logger.debug(f"Audit {audit_id} is not active; automatic score of {section_id} left as is")
            return self.get(audit_id, section_id)
        with self.mutation(audit_id) as m:
            require_active(m.audit)
            evaluation = self.get(audit_id, section_id)
            if self.apply_automatic_score(evaluation):
                log_activity(
                    self.db, actor, ActivityAction.EVALUATION_AUTO_SCORE, audit_id,
                    ResourceType.EVALUATION, evaluation.id,
                    {"section_id": section_id, "automatic_score": evaluation.automatic_score},
                )
        return evaluation
