"""
Aggregation and reporting engine.

Consolidates resolved section scores, visit outcomes and findings into the
audit's final report and drives the report through approval and delivery.
"""
import hashlib
import json
import logging
import secrets
import string
from collections import Counter
from typing import Any, Dict, List, Optional, Tuple

from app.core.auth import Actor
from app.core.database import utcnow
from app.core.exceptions import (
    IncompleteEvaluationError,
    InvalidStateTransitionError,
    InvalidTransitionError,
    NotFoundError,
    PendingVisitError,
)
from app.models.audit import Audit
from app.models.enums import (
    AuditStage,
    ComplianceTier,
    EvaluationState,
    FindingSeverity,
    FindingTrackingState,
    LocationVerification,
    ReportApprovalState,
    ReportConclusion,
    ValidationType,
    VisitState,
)
from app.models.finding import Finding
from app.models.report import Report
from app.models.section_evaluation import SectionEvaluation
from app.models.visit import Visit
from app.services import section_registry
from app.services.activity_service import ActivityAction, ResourceType, log_activity
from app.services.base import AuditBoundService, Mutation
from app.services.evaluation_service import require_active
from app.services.events import ReportFinalized
from app.services.validation_log import ValidationLog

logger = logging.getLogger(__name__)

# Inclusive lower bounds, highest first
TIERS: List[Tuple[float, ComplianceTier, ReportConclusion]] = [
    (90.0, ComplianceTier.EXCELENTE, ReportConclusion.CUMPLE_TOTALMENTE),
    (80.0, ComplianceTier.SATISFACTORIO, ReportConclusion.CUMPLE_CON_OBSERVACIONES),
    (70.0, ComplianceTier.ACEPTABLE, ReportConclusion.CUMPLE_PARCIALMENTE),
    (50.0, ComplianceTier.DEFICIENTE, ReportConclusion.NO_CUMPLE),
]

APPROVED_OR_LATER = {
    ReportApprovalState.APROBADO,
    ReportApprovalState.ENTREGADO,
    ReportApprovalState.ACEPTADO_PROVEEDOR,
    ReportApprovalState.OBJETADO_PROVEEDOR,
}

DELIVERED_OR_ANSWERED = {
    ReportApprovalState.ENTREGADO,
    ReportApprovalState.ACEPTADO_PROVEEDOR,
    ReportApprovalState.OBJETADO_PROVEEDOR,
}

# operation -> (allowed source, target)
APPROVAL_TRANSITIONS = {
    "submit_for_review": (ReportApprovalState.BORRADOR, ReportApprovalState.EN_REVISION),
    "return_to_draft": (ReportApprovalState.EN_REVISION, ReportApprovalState.BORRADOR),
    "approve": (ReportApprovalState.EN_REVISION, ReportApprovalState.APROBADO),
    "deliver": (ReportApprovalState.APROBADO, ReportApprovalState.ENTREGADO),
}

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def require_stage(audit: Audit, stage: AuditStage, operation: str) -> None:
    if audit.stage < stage:
        raise InvalidTransitionError(
            f"Audit {audit.code}: {operation} needs stage {int(stage)} ({stage.label}), audit is at {audit.stage}",
            current_stage=audit.stage,
            requested=stage,
        )


def classify_score(total: float) -> Tuple[ComplianceTier, ReportConclusion]:
    for floor, tier, conclusion in TIERS:
        if total >= floor:
            return tier, conclusion
    return ComplianceTier.CRITICO, ReportConclusion.NO_CUMPLE


def weighted_average(evaluations: List[SectionEvaluation]) -> float:
    """
    Weighted mean of resolved scores; obligatory sections weigh 2.

    Evaluations that are not completed, or have no score, are ignored.
    Returns 0 when nothing qualifies.
    """
    total = 0.0
    weights = 0
    for evaluation in evaluations:
        if evaluation.state != EvaluationState.COMPLETADA or evaluation.score is None:
            continue
        weight = 2 if evaluation.obligatory else 1
        total += evaluation.score * weight
        weights += weight
    if not weights:
        return 0.0
    return round(total / weights, 2)


def content_digest(content: Dict[str, Any]) -> str:
    canonical = json.dumps(content, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def generate_report_code(now=None) -> str:
    now = now or utcnow()
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(6))
    return f"INF-{now:%Y%m}-{suffix}"


class ReportingService(AuditBoundService):
    """Scores, consolidates and reports on an audit."""

    def _evaluations(self, audit_id: int) -> List[SectionEvaluation]:
        return self.db.query(SectionEvaluation).filter(SectionEvaluation.audit_id == audit_id).all()

    def _findings(self, audit_id: int) -> List[Finding]:
        return (
            self.db.query(Finding)
            .filter(Finding.audit_id == audit_id)
            .order_by(Finding.created_at.asc(), Finding.id.asc())
            .all()
        )

    def _visits(self, audit_id: int) -> List[Visit]:
        return self.db.query(Visit).filter(Visit.audit_id == audit_id).order_by(Visit.id.asc()).all()

    # Aggregation (reads, no lock)

    def compute_total_score(self, audit_id: int) -> float:
        self.get_audit(audit_id)
        return weighted_average(self._evaluations(audit_id))

    def section_scores(self, audit_id: int) -> Dict[str, float]:
        return {
            e.section_id: e.score
            for e in self._evaluations(audit_id)
            if e.state == EvaluationState.COMPLETADA and e.score is not None
        }

    def consolidate_findings(self, audit_id: int) -> Dict[str, Any]:
        findings = self._findings(audit_id)
        by_severity = {s.value: 0 for s in FindingSeverity}
        by_severity.update(Counter(f.severity.value for f in findings))
        return {
            "total": len(findings),
            "by_severity": by_severity,
            "by_type": dict(sorted(Counter(f.finding_type.value for f in findings).items())),
            "by_category": dict(sorted(Counter(f.category.value for f in findings).items())),
            "critical": by_severity[FindingSeverity.CRITICA.value],
            "open": sum(1 for f in findings if f.tracking_state != FindingTrackingState.CERRADO),
            "total_deduction_points": round(
                sum(f.deduction_points or 0.0 for f in findings if f.affects_score), 2
            ),
        }

    def summarize_visits(self, audit_id: int) -> Dict[str, Any]:
        visits = self._visits(audit_id)
        return {
            "total": len(visits),
            "by_state": dict(sorted(Counter(v.state.value for v in visits).items())),
            "location_verification": dict(sorted(
                Counter(v.location_verification.value for v in visits if v.state == VisitState.COMPLETADA).items()
            )),
            "sections_verified": sorted({
                s for v in visits if v.state == VisitState.COMPLETADA for s in (v.sections_to_verify or [])
            }),
        }

    def summarize_inventory(self, audit_id: int) -> Optional[Dict[str, Any]]:
        record = ValidationLog(self.db).latest(audit_id, validation_type=ValidationType.PARQUE_INFORMATICO)
        if record is None:
            return None
        return {
            "validation_record_id": record.id,
            "result": record.result.value,
            "score": record.score,
            "items_total": record.items_total,
            "items_conformant": record.items_conformant,
            "items_non_conformant": record.items_non_conformant,
        }

    def preview(self, audit_id: int) -> Dict[str, Any]:
        """Current consolidated figures without touching the report."""
        self.get_audit(audit_id)
        total = self.compute_total_score(audit_id)
        tier, conclusion = classify_score(total)
        return {
            "total_score": total,
            "compliance_tier": tier.value,
            "conclusion": conclusion.value,
            "section_scores": self.section_scores(audit_id),
            "findings_summary": self.consolidate_findings(audit_id),
        }

    # Finalization

    def check_ready(self, audit_id: int) -> None:
        """
        Raises:
            IncompleteEvaluationError: an obligatory section is not completed
            PendingVisitError: a section flagged for a site visit has no completed visit covering it
        """
        evaluations = {e.section_id: e for e in self._evaluations(audit_id)}
        unresolved = [
            s.id for s in section_registry.list_all()
            if s.obligatory and (
                s.id not in evaluations or evaluations[s.id].state != EvaluationState.COMPLETADA
            )
        ]
        if unresolved:
            raise IncompleteEvaluationError(unresolved)

        covered = set(self.summarize_visits(audit_id)["sections_verified"])
        pending = [
            s.id for s in section_registry.list_all()
            if s.id in evaluations and evaluations[s.id].requires_site_visit and s.id not in covered
        ]
        if pending:
            raise PendingVisitError(pending)

    def build_content(self, audit_id: int) -> Dict[str, Any]:
        total = weighted_average(self._evaluations(audit_id))
        tier, conclusion = classify_score(total)
        findings_summary = self.consolidate_findings(audit_id)
        visits_summary = self.summarize_visits(audit_id)
        open_critical = any(
            f.severity == FindingSeverity.CRITICA and f.tracking_state != FindingTrackingState.CERRADO
            for f in self._findings(audit_id)
        )
        major_discrepancy = visits_summary["location_verification"].get(
            LocationVerification.DISCREPANCIA_MAYOR.value, 0
        ) > 0
        return {
            "total_score": total,
            "section_scores": self.section_scores(audit_id),
            "compliance_tier": tier.value,
            "conclusion": conclusion.value,
            "findings_summary": findings_summary,
            "inventory_summary": self.summarize_inventory(audit_id),
            "visits_summary": visits_summary,
            "requires_follow_up": open_critical or major_discrepancy,
        }

    def get_report(self, audit_id: int) -> Report:
        report = self.db.query(Report).filter(Report.audit_id == audit_id).first()
        if not report:
            raise NotFoundError("Report", audit_id)
        return report

    def find_report(self, audit_id: int) -> Optional[Report]:
        return self.db.query(Report).filter(Report.audit_id == audit_id).first()

    def finalize_locked(self, m: Mutation, actor: Actor) -> Report:
        """
        Create or refresh the report; the caller holds the audit lock.

        Only from consolidation onward. A report past ``borrador`` is returned
        as is. A draft whose inputs did not change is returned as is. Otherwise
        the draft is rewritten and its revision bumped.
        """
        audit: Audit = m.audit
        require_stage(audit, AuditStage.CONSOLIDACION, "finalize")
        existing = self.find_report(audit.id)
        if existing is not None and existing.approval_state != ReportApprovalState.BORRADOR:
            return existing

        require_active(audit)
        self.check_ready(audit.id)
        content = self.build_content(audit.id)
        digest = content_digest(content)

        if existing is not None and existing.content_digest == digest:
            logger.debug(f"Report {existing.code} unchanged for audit {audit.code}")
            return existing

        now = utcnow()
        if existing is None:
            report = Report(
                audit_id=audit.id,
                code=self._unique_code(),
                revision=1,
                approval_state=ReportApprovalState.BORRADOR,
            )
            self.db.add(report)
        else:
            report = existing
            report.revision = (report.revision or 1) + 1

        report.total_score = content["total_score"]
        report.section_scores = content["section_scores"]
        report.compliance_tier = ComplianceTier(content["compliance_tier"])
        report.conclusion = ReportConclusion(content["conclusion"])
        report.findings_summary = content["findings_summary"]
        report.inventory_summary = content["inventory_summary"]
        report.visits_summary = content["visits_summary"]
        report.requires_follow_up = content["requires_follow_up"]
        report.content_digest = digest
        report.generated_at = now

        audit.total_score = report.total_score
        audit.compliance_tier = report.compliance_tier
        self.db.flush()

        log_activity(
            self.db, actor, ActivityAction.REPORT_FINALIZE, audit.id, ResourceType.REPORT, report.id,
            {"code": report.code, "revision": report.revision, "total_score": report.total_score},
        )
        m.emit(ReportFinalized(
            audit_id=audit.id,
            report_id=report.id,
            code=report.code,
            total_score=report.total_score,
            revision=report.revision,
        ))
        logger.info(
            f"Report {report.code} rev {report.revision} for audit {audit.code}: "
            f"{report.total_score} ({report.compliance_tier.value})"
        )
        return report

    def finalize(self, audit_id: int, actor: Actor) -> Report:
        """Idempotent: retries without new inputs return the same report."""
        with self.mutation(audit_id) as m:
            report = self.finalize_locked(m, actor)
        return report

    def _unique_code(self) -> str:
        code = generate_report_code()
        while self.db.query(Report.id).filter(Report.code == code).first():
            code = generate_report_code()
        return code

    # Approval and delivery

    def _move(
        self, audit_id: int, operation: str, actor: Actor, details: Optional[Dict[str, Any]] = None
    ) -> Report:
        source, target = APPROVAL_TRANSITIONS[operation]
        with self.mutation(audit_id) as m:
            require_stage(m.audit, AuditStage.INFORME_FINAL, operation)
            report = self.get_report(audit_id)
            if report.approval_state != source:
                raise InvalidStateTransitionError(f"Report[{report.code}]", report.approval_state, target)
            now = utcnow()
            report.approval_state = target
            if operation == "approve":
                report.approved_by = actor.user_id
                report.approved_at = now
                report.approval_notes = (details or {}).get("notes")
            elif operation == "deliver":
                report.delivered_at = now
            action = {
                "approve": ActivityAction.REPORT_APPROVE,
                "deliver": ActivityAction.REPORT_DELIVER,
            }.get(operation, ActivityAction.REPORT_REVIEW)
            log_activity(
                self.db, actor, action, audit_id, ResourceType.REPORT, report.id,
                {"operation": operation, "approval_state": target.value, **(details or {})},
            )
        logger.info(f"Report of audit {audit_id}: {operation} -> {target.value}")
        return report

    def submit_for_review(self, audit_id: int, actor: Actor) -> Report:
        return self._move(audit_id, "submit_for_review", actor)

    def return_to_draft(self, audit_id: int, actor: Actor, reason: Optional[str] = None) -> Report:
        return self._move(audit_id, "return_to_draft", actor, {"reason": reason})

    def approve(self, audit_id: int, actor: Actor, notes: Optional[str] = None) -> Report:
        return self._move(audit_id, "approve", actor, {"notes": notes})

    def deliver(self, audit_id: int, actor: Actor) -> Report:
        return self._move(audit_id, "deliver", actor)

    def register_provider_response(
        self, audit_id: int, actor: Actor, observations: Optional[str] = None
    ) -> Report:
        """Provider accepts the report, or objects to it when observations are given."""
        with self.mutation(audit_id):
            report = self.get_report(audit_id)
            target = (
                ReportApprovalState.OBJETADO_PROVEEDOR if observations
                else ReportApprovalState.ACEPTADO_PROVEEDOR
            )
            if report.approval_state != ReportApprovalState.ENTREGADO:
                raise InvalidStateTransitionError(f"Report[{report.code}]", report.approval_state, target)
            report.approval_state = target
            report.provider_observations = observations
            report.provider_responded_at = utcnow()
            log_activity(
                self.db, actor, ActivityAction.REPORT_PROVIDER_RESPONSE, audit_id, ResourceType.REPORT,
                report.id, {"approval_state": target.value},
            )
        return report

    def render_pdf(self, audit_id: int) -> bytes:
        from app.utils.pdf_generator import generate_report_pdf

        audit = self.get_audit(audit_id)
        report = self.get_report(audit_id)
        return generate_report_pdf(audit, report, self._findings(audit_id))
