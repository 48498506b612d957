"""
Stage controller: the only component that changes an audit's stage or status.

An audit moves one stage at a time through the 8-stage lifecycle. Each
forward move is gated on the evidence, evaluations, visits and report of the
stage being left; suspension and cancellation bypass the gates.
"""
import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from app.core.auth import Actor
from app.core.database import utcnow
from app.core.exceptions import (
    ConcurrencyError,
    InvalidTransitionError,
    PreconditionNotMetError,
    StorageError,
)
from app.models.audit import Audit, DEFAULT_STAGE_CONFIG
from app.models.enums import AuditStage, AuditStatus, EvaluationState, FindingTrackingState, VisitState
from app.models.finding import Finding
from app.models.section_evaluation import SectionEvaluation
from app.models.visit import Visit
from app.services import section_registry
from app.services.activity_service import ActivityAction, ResourceType, log_activity
from app.services.base import AuditBoundService, Mutation
from app.services.collaborators import (
    DocumentStore,
    InventorySource,
    NotificationDispatcher,
    SqlDocumentStore,
    SqlInventorySource,
)
from app.services.completeness_service import CompletenessService
from app.services.evaluation_service import EvaluationService
from app.services.events import StageAdvanced
from app.services.reporting_service import APPROVED_OR_LATER, DELIVERED_OR_ANSWERED, ReportingService
from app.services.validation_log import ValidationLog, format_check_record, inventory_record

logger = logging.getLogger(__name__)

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_audit_code(now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(6))
    return f"AUD-{now:%Y%m}-{suffix}"


def compute_deadline(scheduled_date: datetime, stage_config: Dict[str, Any]) -> datetime:
    """Scheduled date plus the day budget of every stage."""
    days = sum(int((cfg or {}).get("dias_limite", 0)) for cfg in stage_config.values())
    return scheduled_date + timedelta(days=days)


class StageController(AuditBoundService):
    """Audit creation, stage gating and terminal statuses."""

    def __init__(
        self,
        db,
        dispatcher: Optional[NotificationDispatcher] = None,
        documents: Optional[DocumentStore] = None,
        inventory: Optional[InventorySource] = None,
        locks=None,
    ):
        super().__init__(db, dispatcher, locks)
        self.documents = documents or SqlDocumentStore(db)
        self.inventory = inventory or SqlInventorySource(db)
        self.completeness = CompletenessService(db, self.documents, self.inventory)
        self.evaluations = EvaluationService(db, self.dispatcher, self.locks)
        self.reporting = ReportingService(db, self.dispatcher, self.locks)
        self.validations = ValidationLog(db)

        # stage being left -> read-only check
        self._gates: Dict[int, Callable[[Audit], None]] = {
            AuditStage.NOTIFICACION: self._gate_notification_sent,
            AuditStage.CARGA_DOCUMENTOS: self._gate_evidence_complete,
            AuditStage.VALIDACION_AUTOMATICA: self._gate_validation_passed,
            AuditStage.EVALUACION_AUDITOR: self._gate_evaluations_complete,
            AuditStage.VISITA_PRESENCIAL: self._gate_visits_complete,
            AuditStage.CONSOLIDACION: self._gate_report_ready,
            AuditStage.INFORME_FINAL: self._gate_report_approved,
        }

    # Creation and reads

    def create_audit(
        self,
        actor: Actor,
        title: str,
        provider_id: str,
        primary_auditor_id: str,
        scheduled_date: datetime,
        secondary_auditor_id: Optional[str] = None,
        deadline: Optional[datetime] = None,
        description: Optional[str] = None,
        stage_config: Optional[Dict[str, Any]] = None,
    ) -> Audit:
        config = {key: dict(value) for key, value in DEFAULT_STAGE_CONFIG.items()}
        if stage_config:
            for key, value in stage_config.items():
                config.setdefault(key, {}).update(value or {})

        code = generate_audit_code()
        while self.db.query(Audit.id).filter(Audit.code == code).first():
            code = generate_audit_code()

        now = utcnow()
        audit = Audit(
            code=code,
            title=title,
            description=description,
            stage=int(AuditStage.NOTIFICACION),
            status=AuditStatus.EN_CURSO,
            provider_id=provider_id,
            primary_auditor_id=primary_auditor_id,
            secondary_auditor_id=secondary_auditor_id,
            scheduled_date=scheduled_date,
            deadline=deadline or compute_deadline(scheduled_date, config),
            stage_config=config,
            stage_entered_at=now,
            created_by=actor.user_id,
        )
        try:
            self.db.add(audit)
            self.db.flush()
            log_activity(
                self.db, actor, ActivityAction.AUDIT_CREATE, audit.id, ResourceType.AUDIT, audit.id,
                {"code": code, "provider_id": provider_id},
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create audit for provider {provider_id}: {e}", exc_info=True)
            raise StorageError("Could not create audit", {"provider_id": provider_id}) from e

        self.db.refresh(audit)
        logger.info(f"Created audit {audit.code} (id={audit.id}) for provider {provider_id}")
        return audit

    def list_audits(
        self,
        status: Optional[AuditStatus] = None,
        stage: Optional[int] = None,
        provider_id: Optional[str] = None,
        auditor_id: Optional[str] = None,
        include_archived: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Audit]:
        query = self.db.query(Audit)
        if status is not None:
            query = query.filter(Audit.status == status)
        if stage is not None:
            query = query.filter(Audit.stage == stage)
        if provider_id:
            query = query.filter(Audit.provider_id == provider_id)
        if auditor_id:
            query = query.filter(
                (Audit.primary_auditor_id == auditor_id) | (Audit.secondary_auditor_id == auditor_id)
            )
        if not include_archived:
            query = query.filter(Audit.archived_at.is_(None))
        return query.order_by(Audit.created_at.desc(), Audit.id.desc()).offset(offset).limit(limit).all()

    # Gates (read-only)

    def _gate_notification_sent(self, audit: Audit) -> None:
        if audit.notification_sent_at is None:
            raise PreconditionNotMetError(
                "The provider has not been notified yet",
                missing=["notification_sent"],
                gate="notification_sent",
            )

    def _gate_evidence_complete(self, audit: Audit) -> None:
        self.completeness.require_complete(audit.id)

    def _gate_validation_passed(self, audit: Audit) -> None:
        if self.validations.count(audit.id) == 0:
            raise PreconditionNotMetError(
                "No validation has been recorded for this audit",
                missing=["validation_record"],
                gate="validation_recorded",
            )
        obligatory = [s.id for s in section_registry.list_all() if s.obligatory]
        failed = self.validations.unresolved_failures(audit.id, obligatory)
        if failed:
            raise PreconditionNotMetError(
                f"Automatic validation failed for obligatory sections: {', '.join(failed)}",
                missing=failed,
                gate="validation_passed",
            )

    def _gate_evaluations_complete(self, audit: Audit) -> None:
        evaluations = {
            e.section_id: e
            for e in self.db.query(SectionEvaluation).filter(SectionEvaluation.audit_id == audit.id).all()
        }
        pending = [
            s.id for s in section_registry.list_all()
            if s.id not in evaluations
            or evaluations[s.id].state != EvaluationState.COMPLETADA
            or evaluations[s.id].clarifications_pending
        ]
        if pending:
            raise PreconditionNotMetError(
                f"Sections not yet evaluated: {', '.join(pending)}",
                missing=pending,
                gate="evaluations_complete",
            )

    def _gate_visits_complete(self, audit: Audit) -> None:
        open_visits = (
            self.db.query(Visit)
            .filter(
                Visit.audit_id == audit.id,
                Visit.state.notin_([VisitState.COMPLETADA, VisitState.CANCELADA]),
            )
            .order_by(Visit.id.asc())
            .all()
        )
        if open_visits:
            raise PreconditionNotMetError(
                "Site visits still pending",
                missing=[v.site_code for v in open_visits],
                gate="visits_complete",
                extra={"visit_ids": [v.id for v in open_visits]},
            )

    def _gate_report_ready(self, audit: Audit) -> None:
        self.reporting.check_ready(audit.id)

    def _gate_report_approved(self, audit: Audit) -> None:
        report = self.reporting.find_report(audit.id)
        if report is None or report.approval_state not in APPROVED_OR_LATER:
            raise PreconditionNotMetError(
                "The final report has not been approved",
                missing=["report_approval"],
                gate="report_approved",
                extra={"approval_state": report.approval_state.value if report else None},
            )

    def check_gate(self, audit_id: int) -> Dict[str, Any]:
        """Preview whether ``advance`` would pass, without changing anything."""
        audit = self.get_audit(audit_id)
        preview = {
            "audit_id": audit.id,
            "current_stage": audit.stage,
            "next_stage": audit.stage + 1 if audit.stage < AuditStage.CIERRE else None,
            "ready": False,
            "gate": None,
            "missing": [],
            "message": None,
        }
        if not audit.is_active:
            preview["message"] = f"Audit is {audit.status.value}"
            return preview
        if audit.stage >= AuditStage.CIERRE:
            preview["message"] = "Audit is at the final stage"
            return preview
        try:
            self._gates[audit.stage](audit)
        except PreconditionNotMetError as e:
            preview.update(gate=e.detail.get("gate"), missing=e.missing, message=e.message)
            return preview
        preview["ready"] = True
        return preview

    # Transitions

    def _enter_validation(self, m: Mutation, actor: Actor) -> None:
        """On entering stage 3: create evaluations and record automatic checks."""
        audit = m.audit
        evaluations = self.evaluations.create_for_audit(audit)

        recorded = 0
        for section in section_registry.list_all():
            if section.id == section_registry.PARQUE_INFORMATICO:
                continue
            meta = self.documents.get_document_meta(audit.id, section.id)
            if meta is not None:
                self.db.add(format_check_record(audit.id, section.id, meta))
                recorded += 1

        result = self.inventory.get_inventory_result(audit.id)
        if result is not None:
            self.db.add(inventory_record(audit.id, result))
            recorded += 1
        self.db.flush()

        for evaluation in evaluations:
            self.evaluations.apply_automatic_score(evaluation)
        logger.info(f"Audit {audit.code}: {len(evaluations)} evaluations opened, {recorded} validations recorded")

    def advance(
        self,
        audit_id: int,
        actor: Actor,
        target_stage: Optional[int] = None,
        expected_stage: Optional[int] = None,
    ) -> Audit:
        """
        Move the audit exactly one stage forward.

        Raises:
            ConcurrencyError: ``expected_stage`` differs from the current stage
            InvalidTransitionError: terminal status, last stage, or a skip
            PreconditionNotMetError: the gate of the current stage failed
        """
        with self.mutation(audit_id) as m:
            audit = m.audit
            if expected_stage is not None and expected_stage != audit.stage:
                raise ConcurrencyError(
                    f"Audit {audit.code} is in stage {audit.stage}, not {expected_stage}",
                    {"audit_id": audit.id, "current_stage": audit.stage, "expected_stage": expected_stage},
                )
            if not audit.is_active:
                raise InvalidTransitionError(
                    f"Audit {audit.code} is {audit.status.value}",
                    current_stage=audit.stage, requested=target_stage, status=audit.status,
                )
            if audit.stage >= AuditStage.CIERRE:
                raise InvalidTransitionError(
                    f"Audit {audit.code} is already at the final stage",
                    current_stage=audit.stage, requested=target_stage,
                )
            next_stage = audit.stage + 1
            if target_stage is not None and target_stage != next_stage:
                raise InvalidTransitionError(
                    f"Audit {audit.code} can only move from stage {audit.stage} to {next_stage}",
                    current_stage=audit.stage, requested=target_stage,
                )

            from_stage = audit.stage
            self._gates[from_stage](audit)

            if from_stage == AuditStage.CARGA_DOCUMENTOS:
                self._enter_validation(m, actor)
            elif from_stage == AuditStage.CONSOLIDACION:
                self.reporting.finalize_locked(m, actor)

            audit.stage = next_stage
            audit.stage_entered_at = utcnow()
            log_activity(
                self.db, actor, ActivityAction.STAGE_ADVANCED, audit.id, ResourceType.AUDIT, audit.id,
                {"from_stage": from_stage, "to_stage": next_stage},
            )
            m.emit(StageAdvanced(
                audit_id=audit.id, from_stage=from_stage, to_stage=next_stage, actor_id=actor.user_id,
            ))

        logger.info(
            f"Audit {audit_id} advanced {from_stage} -> {next_stage} "
            f"({AuditStage(next_stage).label}) by {actor.user_id}"
        )
        return audit

    def mark_notification_sent(self, audit_id: int, actor: Actor) -> Audit:
        with self.mutation(audit_id) as m:
            audit = m.audit
            if not audit.is_active or audit.stage != AuditStage.NOTIFICACION:
                raise InvalidTransitionError(
                    f"Notification can only be recorded for active audits in stage {int(AuditStage.NOTIFICACION)}",
                    current_stage=audit.stage, status=audit.status,
                )
            if audit.notification_sent_at is None:
                audit.notification_sent_at = utcnow()
            log_activity(self.db, actor, ActivityAction.NOTIFICATION_SENT, audit.id, ResourceType.AUDIT, audit.id)
        return audit

    def _end_with_status(self, audit_id: int, status: AuditStatus, reason: str, actor: Actor, allowed) -> Audit:
        action = ActivityAction.AUDIT_SUSPEND if status == AuditStatus.SUSPENDIDA else ActivityAction.AUDIT_CANCEL
        with self.mutation(audit_id) as m:
            audit = m.audit
            if audit.status not in allowed:
                raise InvalidTransitionError(
                    f"Audit {audit.code} is {audit.status.value} and cannot become {status.value}",
                    current_stage=audit.stage, requested=status, status=audit.status,
                )
            previous = audit.status
            audit.status = status
            audit.status_reason = reason
            log_activity(
                self.db, actor, action, audit.id, ResourceType.AUDIT, audit.id,
                {"from_status": previous.value, "reason": reason, "stage": audit.stage},
            )
        logger.info(f"Audit {audit_id} -> {status.value}: {reason}")
        return audit

    def suspend(self, audit_id: int, reason: str, actor: Actor) -> Audit:
        return self._end_with_status(audit_id, AuditStatus.SUSPENDIDA, reason, actor, {AuditStatus.EN_CURSO})

    def cancel(self, audit_id: int, reason: str, actor: Actor) -> Audit:
        return self._end_with_status(
            audit_id, AuditStatus.CANCELADA, reason, actor, {AuditStatus.EN_CURSO, AuditStatus.SUSPENDIDA}
        )

    def complete(self, audit_id: int, actor: Actor) -> Audit:
        """Close an audit in the last stage whose report reached the provider."""
        with self.mutation(audit_id) as m:
            audit = m.audit
            if not audit.is_active or audit.stage != AuditStage.CIERRE:
                raise InvalidTransitionError(
                    f"Only active audits in stage {int(AuditStage.CIERRE)} can be completed",
                    current_stage=audit.stage, status=audit.status,
                )
            report = self.reporting.find_report(audit.id)
            if report is None or report.approval_state not in DELIVERED_OR_ANSWERED:
                raise PreconditionNotMetError(
                    "The final report has not been delivered",
                    missing=["report_delivery"],
                    gate="report_delivered",
                    extra={"approval_state": report.approval_state.value if report else None},
                )
            audit.status = AuditStatus.COMPLETADA
            audit.completed_at = utcnow()
            log_activity(
                self.db, actor, ActivityAction.AUDIT_COMPLETE, audit.id, ResourceType.AUDIT, audit.id,
                {"total_score": audit.total_score},
            )
        return audit

    def archive(self, audit_id: int, actor: Actor) -> Audit:
        with self.mutation(audit_id) as m:
            audit = m.audit
            if audit.status not in (AuditStatus.COMPLETADA, AuditStatus.CANCELADA):
                raise InvalidTransitionError(
                    f"Audit {audit.code} is {audit.status.value}; only completed or cancelled audits are archived",
                    current_stage=audit.stage, status=audit.status,
                )
            if audit.archived_at is None:
                audit.archived_at = utcnow()
                log_activity(self.db, actor, ActivityAction.AUDIT_ARCHIVE, audit.id, ResourceType.AUDIT, audit.id)
        return audit

    # Status

    def workflow_status(self, audit_id: int) -> Dict[str, Any]:
        """Everything a dashboard needs about one audit, read without the lock."""
        audit = self.get_audit(audit_id)
        completion = self.completeness.compute_completion(audit.id)
        report = self.reporting.find_report(audit.id)
        open_findings = (
            self.db.query(func.count(Finding.id))
            .filter(Finding.audit_id == audit.id, Finding.tracking_state != FindingTrackingState.CERRADO)
            .scalar()
        )
        now = utcnow()
        evaluation_progress = None
        if audit.stage >= AuditStage.VALIDACION_AUTOMATICA:
            evaluation_progress = self.evaluations.progress(audit.id)

        return {
            "audit_id": audit.id,
            "code": audit.code,
            "stage": audit.stage,
            "stage_label": audit.current_stage.label,
            "status": audit.status.value,
            "progress_percentage": audit.progress_percentage,
            "days_remaining": (audit.deadline - now).days if audit.deadline else None,
            "overdue": bool(audit.deadline and audit.deadline < now and audit.is_active),
            "evidence": {
                "completed_count": completion.completed_count,
                "total_count": completion.total_count,
                "completion_percentage": completion.completion_percentage,
                "missing_obligatory": completion.missing_obligatory,
                "missing_optional": completion.missing_optional,
            },
            "evaluations": evaluation_progress,
            "validations": self.validations.summarize(audit.id),
            "open_findings": open_findings or 0,
            "report": {
                "code": report.code,
                "approval_state": report.approval_state.value,
                "total_score": report.total_score,
                "revision": report.revision,
            } if report else None,
            "next_gate": self.check_gate(audit.id),
        }
