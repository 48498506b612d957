"""
Tests for score aggregation, report finalization and report approval.
"""
import pytest

from app.core.exceptions import (
    IncompleteEvaluationError,
    InvalidStateTransitionError,
    InvalidTransitionError,
    NotFoundError,
    PendingVisitError,
    PreconditionNotMetError,
)
from app.models.enums import (
    AuditStatus,
    ComplianceTier,
    EvaluationResult,
    EvaluationState,
    FindingCategory,
    FindingSeverity,
    FindingType,
    ReportApprovalState,
    ReportConclusion,
    VerificationResult,
)
from app.models.section_evaluation import SectionEvaluation
from app.services.evaluation_service import EvaluationService
from app.services.reporting_service import ReportingService, classify_score, weighted_average
from app.services.stage_controller import StageController
from app.services.visit_service import VisitService
from app.utils.geo import Coordinates

from helpers import SCHEDULED, RecordingDispatcher, audit_in_stage

SITE = Coordinates(19.4326, -99.1332)


def _evaluation(score, obligatory, state=EvaluationState.COMPLETADA):
    return SectionEvaluation(section_id="x", score=score, obligatory=obligatory, state=state)


def _audit_in_consolidation(db, actor, critical_finding=False):
    """Stage 6 audit; optionally with one critical finding from a completed visit."""
    audit = audit_in_stage(db, 5, actor)
    finding = None
    if critical_finding:
        visits = VisitService(db)
        visit = visits.schedule_visit(
            audit.id, actor, "SUC-01", "Sucursal Centro", SCHEDULED, "aud-1", reference=SITE,
        )
        visits.confirm_visit(audit.id, visit.id, actor)
        visits.start_visit(audit.id, visit.id, actor, SITE)
        finding = visits.register_finding(
            audit.id, visit.id, actor, FindingType.CRITICO, FindingCategory.SEGURIDAD,
            FindingSeverity.CRITICA, "Rack abierto", "El rack no tiene cerradura.",
            section_id="seguridad_informatica", deduction_points=5,
        )
        visits.end_visit(audit.id, visit.id, actor)
    StageController(db).advance(audit.id, actor)
    return audit, finding


def _audit_with_report(db, actor, critical_finding=False):
    """Stage 7 audit holding the draft report produced when leaving consolidation."""
    audit, finding = _audit_in_consolidation(db, actor, critical_finding)
    StageController(db).advance(audit.id, actor)
    return audit, finding


class TestAggregation:

    def test_weighted_average_example(self):
        assert weighted_average([_evaluation(80, True), _evaluation(40, False)]) == pytest.approx(66.67)

    def test_null_scores_and_open_evaluations_are_ignored(self):
        evaluations = [
            _evaluation(80, True),
            _evaluation(None, False),
            _evaluation(10, False, state=EvaluationState.EN_REVISION),
        ]
        assert weighted_average(evaluations) == 80

    def test_nothing_to_average(self):
        assert weighted_average([]) == 0.0

    @pytest.mark.parametrize("total,tier,conclusion", [
        (100, ComplianceTier.EXCELENTE, ReportConclusion.CUMPLE_TOTALMENTE),
        (90, ComplianceTier.EXCELENTE, ReportConclusion.CUMPLE_TOTALMENTE),
        (89.99, ComplianceTier.SATISFACTORIO, ReportConclusion.CUMPLE_CON_OBSERVACIONES),
        (80, ComplianceTier.SATISFACTORIO, ReportConclusion.CUMPLE_CON_OBSERVACIONES),
        (70, ComplianceTier.ACEPTABLE, ReportConclusion.CUMPLE_PARCIALMENTE),
        (50, ComplianceTier.DEFICIENTE, ReportConclusion.NO_CUMPLE),
        (49.99, ComplianceTier.CRITICO, ReportConclusion.NO_CUMPLE),
        (0, ComplianceTier.CRITICO, ReportConclusion.NO_CUMPLE),
    ])
    def test_classify_score(self, total, tier, conclusion):
        assert classify_score(total) == (tier, conclusion)

    def test_preview_over_resolved_sections(self, db_session, auditor):
        audit = audit_in_stage(db_session, 4)
        evaluations = EvaluationService(db_session)
        evaluations.assign(audit.id, "energia", "aud-1", auditor)
        evaluations.resolve(audit.id, "energia", EvaluationResult.CUMPLE, auditor, score=80)
        evaluations.assign(audit.id, "topologia", "aud-1", auditor)
        evaluations.resolve(audit.id, "topologia", EvaluationResult.NO_CUMPLE, auditor, score=40)

        preview = ReportingService(db_session).preview(audit.id)
        assert preview["total_score"] == pytest.approx(66.67)
        assert preview["compliance_tier"] == "critico"
        assert preview["section_scores"] == {"energia": 80, "topologia": 40}


class TestFinalize:

    def test_advancing_out_of_consolidation_finalizes(self, db_session, coordinator):
        audit, _ = _audit_in_consolidation(db_session, coordinator)
        dispatcher = RecordingDispatcher()
        audit = StageController(db_session, dispatcher=dispatcher).advance(audit.id, coordinator)

        assert audit.stage == 7
        assert audit.total_score == 90
        assert audit.compliance_tier == ComplianceTier.EXCELENTE
        assert [e.name for e in dispatcher.events] == ["ReportFinalized", "StageAdvanced"]

        report = ReportingService(db_session).get_report(audit.id)
        assert report.code.startswith("INF-")
        assert report.approval_state == ReportApprovalState.BORRADOR
        assert report.revision == 1
        assert report.conclusion == ReportConclusion.CUMPLE_TOTALMENTE
        assert report.inventory_summary["items_total"] == 42
        assert report.requires_follow_up is False

    def test_finalize_is_idempotent(self, db_session, coordinator):
        audit, _ = _audit_in_consolidation(db_session, coordinator)
        service = ReportingService(db_session)

        first = service.finalize(audit.id, coordinator)
        second = service.finalize(audit.id, coordinator)
        assert second.id == first.id
        assert second.revision == 1
        assert second.content_digest == first.content_digest

    def test_changed_inputs_bump_revision(self, db_session, coordinator, provider):
        audit, finding = _audit_in_consolidation(db_session, coordinator, critical_finding=True)
        service = ReportingService(db_session)

        report = service.finalize(audit.id, coordinator)
        assert report.requires_follow_up is True
        assert report.findings_summary["critical"] == 1
        assert report.findings_summary["total_deduction_points"] == 5
        digest = report.content_digest

        visits = VisitService(db_session)
        visits.acknowledge_by_provider(audit.id, finding.id, provider)
        visits.report_correction(audit.id, finding.id, provider)
        visits.verify_remediation(audit.id, finding.id, VerificationResult.CORREGIDO_SATISFACTORIAMENTE, coordinator)

        report = service.finalize(audit.id, coordinator)
        assert report.revision == 2
        assert report.requires_follow_up is False
        assert report.content_digest != digest

    def test_report_past_draft_is_returned_unchanged(self, db_session, coordinator):
        audit, _ = _audit_with_report(db_session, coordinator)
        service = ReportingService(db_session)
        service.submit_for_review(audit.id, coordinator)

        report = service.finalize(audit.id, coordinator)
        assert report.approval_state == ReportApprovalState.EN_REVISION
        assert report.revision == 1

    def test_finalize_before_consolidation_is_rejected(self, db_session, coordinator):
        audit = audit_in_stage(db_session, 5, coordinator)
        service = ReportingService(db_session)

        with pytest.raises(InvalidTransitionError):
            service.finalize(audit.id, coordinator)
        assert service.find_report(audit.id) is None

    def test_unresolved_obligatory_section_blocks(self, db_session, auditor):
        audit = audit_in_stage(db_session, 4)
        with pytest.raises(IncompleteEvaluationError) as exc_info:
            ReportingService(db_session).check_ready(audit.id)
        assert exc_info.value.missing == [
            "cuarto_tecnologia", "energia", "seguridad_informatica", "parque_informatico",
        ]

    def test_section_awaiting_visit_blocks(self, db_session, coordinator):
        audit = audit_in_stage(db_session, 5, coordinator)
        EvaluationService(db_session).flag_site_visit(audit.id, "servidores", True, coordinator)
        StageController(db_session).advance(audit.id, coordinator)

        with pytest.raises(PendingVisitError) as exc_info:
            ReportingService(db_session).finalize(audit.id, coordinator)
        assert exc_info.value.missing == ["servidores"]
        assert ReportingService(db_session).find_report(audit.id) is None


class TestApproval:

    def test_review_round_trip_and_delivery(self, db_session, coordinator, provider):
        audit, _ = _audit_with_report(db_session, coordinator)
        service = ReportingService(db_session)

        assert service.submit_for_review(audit.id, coordinator).approval_state == ReportApprovalState.EN_REVISION
        assert service.return_to_draft(audit.id, coordinator, "Faltan anexos").approval_state == (
            ReportApprovalState.BORRADOR
        )
        service.submit_for_review(audit.id, coordinator)

        report = service.approve(audit.id, coordinator, notes="Conforme")
        assert report.approval_state == ReportApprovalState.APROBADO
        assert report.approved_by == "coord-1"
        assert report.approval_notes == "Conforme"

        report = service.deliver(audit.id, coordinator)
        assert report.approval_state == ReportApprovalState.ENTREGADO
        assert report.delivered_at is not None

        report = service.register_provider_response(audit.id, provider, "La sección 3 está incompleta")
        assert report.approval_state == ReportApprovalState.OBJETADO_PROVEEDOR

    def test_provider_acceptance(self, db_session, coordinator, provider):
        audit, _ = _audit_with_report(db_session, coordinator)
        service = ReportingService(db_session)
        service.submit_for_review(audit.id, coordinator)
        service.approve(audit.id, coordinator)
        service.deliver(audit.id, coordinator)

        assert service.register_provider_response(audit.id, provider).approval_state == (
            ReportApprovalState.ACEPTADO_PROVEEDOR
        )

    def test_draft_cannot_be_approved(self, db_session, coordinator):
        audit, _ = _audit_with_report(db_session, coordinator)
        service = ReportingService(db_session)

        with pytest.raises(InvalidStateTransitionError):
            service.approve(audit.id, coordinator)
        with pytest.raises(InvalidStateTransitionError):
            service.register_provider_response(audit.id, coordinator)

    def test_missing_report(self, db_session, coordinator):
        audit, _ = _audit_in_consolidation(db_session, coordinator)
        with pytest.raises(NotFoundError):
            ReportingService(db_session).get_report(audit.id)

    def test_review_waits_for_final_report_stage(self, db_session, coordinator):
        audit, _ = _audit_in_consolidation(db_session, coordinator)
        service = ReportingService(db_session)
        service.finalize(audit.id, coordinator)

        for operation in (service.submit_for_review, service.approve, service.deliver):
            with pytest.raises(InvalidTransitionError) as exc_info:
                operation(audit.id, coordinator)
            assert exc_info.value.detail["current_stage"] == 6
        assert service.get_report(audit.id).approval_state == ReportApprovalState.BORRADOR


def test_lifecycle_to_archive(db_session, coordinator, provider):
    audit, _ = _audit_in_consolidation(db_session, coordinator)
    controller = StageController(db_session)
    reporting = ReportingService(db_session)

    controller.advance(audit.id, coordinator)
    with pytest.raises(PreconditionNotMetError) as exc_info:
        controller.advance(audit.id, coordinator)
    assert exc_info.value.detail["gate"] == "report_approved"

    reporting.submit_for_review(audit.id, coordinator)
    reporting.approve(audit.id, coordinator)
    assert controller.advance(audit.id, coordinator).stage == 8

    with pytest.raises(PreconditionNotMetError):
        controller.complete(audit.id, coordinator)

    reporting.deliver(audit.id, coordinator)
    reporting.register_provider_response(audit.id, provider)
    audit = controller.complete(audit.id, coordinator)
    assert audit.status == AuditStatus.COMPLETADA
    assert audit.progress_percentage == 100.0

    with pytest.raises(InvalidTransitionError):
        controller.advance(audit.id, coordinator)
    assert controller.archive(audit.id, coordinator).archived_at is not None


def test_render_pdf(db_session, coordinator):
    audit, _ = _audit_in_consolidation(db_session, coordinator, critical_finding=True)
    service = ReportingService(db_session)
    service.finalize(audit.id, coordinator)

    pdf = service.render_pdf(audit.id)
    assert pdf.startswith(b"%PDF")


def test_final_report_includes_findings_from_visit_stage(db_session, coordinator):
    audit, finding = _audit_with_report(db_session, coordinator, critical_finding=True)
    reporting = ReportingService(db_session)

    report = reporting.get_report(audit.id)
    assert report.findings_summary["total"] == 1
    assert report.findings_summary["critical"] == 1
    assert report.findings_summary["open"] == 1
    assert report.requires_follow_up is True

    reporting.submit_for_review(audit.id, coordinator)
    reporting.approve(audit.id, coordinator)
    assert StageController(db_session).advance(audit.id, coordinator).stage == 8

    report = reporting.get_report(audit.id)
    assert report.findings_summary["total"] == 1
    assert report.requires_follow_up is True
