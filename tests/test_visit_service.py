"""
Tests for site visits, GPS verification and finding tracking.
"""
from datetime import timedelta

import pytest

from app.core.database import utcnow
from app.core.exceptions import InvalidStateTransitionError, InvalidTransitionError, NotFoundError
from app.models.enums import (
    FindingCategory,
    FindingSeverity,
    FindingTrackingState,
    FindingType,
    LocationVerification,
    RemediationTimeframe,
    VerificationResult,
    VisitState,
)
from app.services.visit_service import VisitService, remediation_deadline
from app.utils.geo import Coordinates

from helpers import SCHEDULED, RecordingDispatcher, audit_in_stage

SITE = Coordinates(19.4326, -99.1332)


def _schedule(service, audit_id, actor, reference=SITE, **kwargs):
    return service.schedule_visit(
        audit_id, actor, "SUC-01", "Sucursal Centro", SCHEDULED, "aud-1",
        reference=reference, **kwargs
    )


def _visit_in_progress(db, audit_id, actor, arrival=SITE, reference=SITE):
    service = VisitService(db)
    visit = _schedule(service, audit_id, actor, reference=reference)
    service.confirm_visit(audit_id, visit.id, actor)
    return service.start_visit(audit_id, visit.id, actor, gps_arrival=arrival)


def _register(db, audit_id, visit_id, actor, **overrides):
    params = dict(
        finding_type=FindingType.INCUMPLIMIENTO,
        category=FindingCategory.INFRAESTRUCTURA,
        severity=FindingSeverity.ALTA,
        title="UPS sin mantenimiento",
        description="El UPS principal no tiene bitácora de mantenimiento.",
        section_id="energia",
        recommended_timeframe=RemediationTimeframe.SEMANA_1,
    )
    params.update(overrides)
    return VisitService(db).register_finding(audit_id, visit_id, actor, **params)


class TestVisitLifecycle:

    def test_visits_only_in_visit_stage(self, db_session, auditor):
        audit = audit_in_stage(db_session, 4)
        with pytest.raises(InvalidTransitionError):
            _schedule(VisitService(db_session), audit.id, auditor)

    def test_schedule_checks_sections(self, db_session, auditor):
        audit = audit_in_stage(db_session, 5)
        service = VisitService(db_session)

        with pytest.raises(NotFoundError):
            _schedule(service, audit.id, auditor, sections_to_verify=["azotea"])

        visit = _schedule(service, audit.id, auditor, sections_to_verify=["energia", "energia", "servidores"])
        assert visit.state == VisitState.PROGRAMADA
        assert visit.sections_to_verify == ["energia", "servidores"]
        assert visit.location_verification == LocationVerification.PENDIENTE

    def test_full_lifecycle(self, db_session, auditor):
        audit = audit_in_stage(db_session, 5)
        service = VisitService(db_session)
        visit = _schedule(service, audit.id, auditor)

        visit = service.reschedule_visit(audit.id, visit.id, SCHEDULED + timedelta(days=1), auditor, "Lluvia")
        assert visit.state == VisitState.REPROGRAMADA
        assert visit.scheduled_at == SCHEDULED + timedelta(days=1)

        assert service.confirm_visit(audit.id, visit.id, auditor).state == VisitState.CONFIRMADA
        assert service.start_visit(audit.id, visit.id, auditor, SITE).state == VisitState.EN_CURSO

        visit = service.end_visit(audit.id, visit.id, auditor, SITE, observations="Sin novedad", visit_score=95)
        assert visit.state == VisitState.COMPLETADA
        assert visit.location_verification == LocationVerification.VERIFICADA
        assert visit.distance_to_reference_m == 0
        assert visit.duration_minutes == 0
        assert visit.observations == "Sin novedad"

    def test_start_requires_confirmation(self, db_session, auditor):
        audit = audit_in_stage(db_session, 5)
        service = VisitService(db_session)
        visit = _schedule(service, audit.id, auditor)

        with pytest.raises(InvalidStateTransitionError):
            service.start_visit(audit.id, visit.id, auditor)

    def test_started_visit_cannot_be_cancelled_or_rescheduled(self, db_session, auditor):
        audit = audit_in_stage(db_session, 5)
        visit = _visit_in_progress(db_session, audit.id, auditor)
        service = VisitService(db_session)

        with pytest.raises(InvalidStateTransitionError):
            service.cancel_visit(audit.id, visit.id, "tarde", auditor)
        with pytest.raises(InvalidStateTransitionError):
            service.reschedule_visit(audit.id, visit.id, SCHEDULED, auditor)

    def test_visit_of_another_audit_is_not_found(self, db_session, auditor):
        audit = audit_in_stage(db_session, 5)
        visit = _schedule(VisitService(db_session), audit.id, auditor)
        other = audit_in_stage(db_session, 5)

        with pytest.raises(NotFoundError):
            VisitService(db_session).confirm_visit(other.id, visit.id, auditor)


class TestLocationVerification:

    @pytest.mark.parametrize("arrival,expected", [
        (Coordinates(19.4326, -99.1332), LocationVerification.VERIFICADA),
        (Coordinates(19.4336, -99.1332), LocationVerification.DISCREPANCIA_MENOR),
        (Coordinates(19.4426, -99.1332), LocationVerification.DISCREPANCIA_MAYOR),
    ])
    def test_buckets(self, db_session, auditor, arrival, expected):
        audit = audit_in_stage(db_session, 5)
        visit = _visit_in_progress(db_session, audit.id, auditor, arrival=arrival)
        visit = VisitService(db_session).end_visit(audit.id, visit.id, auditor)
        assert visit.location_verification == expected

    def test_departure_used_without_arrival(self, db_session, auditor):
        audit = audit_in_stage(db_session, 5)
        visit = _visit_in_progress(db_session, audit.id, auditor, arrival=None)
        visit = VisitService(db_session).end_visit(audit.id, visit.id, auditor, gps_departure=SITE)
        assert visit.location_verification == LocationVerification.VERIFICADA

    def test_no_gps_is_not_verifiable(self, db_session, auditor):
        audit = audit_in_stage(db_session, 5)
        visit = _visit_in_progress(db_session, audit.id, auditor, arrival=None)
        visit = VisitService(db_session).end_visit(audit.id, visit.id, auditor)
        assert visit.location_verification == LocationVerification.NO_VERIFICABLE
        assert visit.distance_to_reference_m is None

    def test_no_reference_is_not_verifiable(self, db_session, auditor):
        audit = audit_in_stage(db_session, 5)
        visit = _visit_in_progress(db_session, audit.id, auditor, reference=None)
        visit = VisitService(db_session).end_visit(audit.id, visit.id, auditor)
        assert visit.location_verification == LocationVerification.NO_VERIFICABLE

    def test_reverification_only_on_completed_visits(self, db_session, auditor):
        audit = audit_in_stage(db_session, 5)
        visit = _visit_in_progress(db_session, audit.id, auditor)
        service = VisitService(db_session)

        with pytest.raises(InvalidStateTransitionError):
            service.recompute_verification(audit.id, visit.id, auditor)

        service.end_visit(audit.id, visit.id, auditor)
        assert service.recompute_verification(audit.id, visit.id, auditor).location_verification == (
            LocationVerification.VERIFICADA
        )


class TestFindings:

    def test_register_on_visit_in_progress(self, db_session, auditor):
        audit = audit_in_stage(db_session, 5)
        visit = _visit_in_progress(db_session, audit.id, auditor)

        finding = _register(db_session, audit.id, visit.id, auditor)
        assert finding.code.startswith("HAL-")
        assert len(finding.code.split("-")) == 3
        assert finding.tracking_state == FindingTrackingState.ABIERTO
        assert finding.verification_result == VerificationResult.PENDIENTE
        assert finding.auditor_id == "aud-1"

    def test_register_requires_started_visit(self, db_session, auditor):
        audit = audit_in_stage(db_session, 5)
        visit = _schedule(VisitService(db_session), audit.id, auditor)

        with pytest.raises(InvalidStateTransitionError):
            _register(db_session, audit.id, visit.id, auditor)

    def test_register_on_completed_visit(self, db_session, auditor):
        audit = audit_in_stage(db_session, 5)
        visit = _visit_in_progress(db_session, audit.id, auditor)
        VisitService(db_session).end_visit(audit.id, visit.id, auditor)

        finding = _register(db_session, audit.id, visit.id, auditor, section_id="general")
        assert finding.section_id == "general"

    def test_register_emits_event(self, db_session, auditor):
        audit = audit_in_stage(db_session, 5)
        visit = _visit_in_progress(db_session, audit.id, auditor)
        dispatcher = RecordingDispatcher()
        service = VisitService(db_session, dispatcher=dispatcher)

        finding = service.register_finding(
            audit.id, visit.id, auditor, FindingType.CRITICO, FindingCategory.SEGURIDAD,
            FindingSeverity.CRITICA, "Rack abierto", "El rack no tiene cerradura.",
        )
        assert [e.name for e in dispatcher.events] == ["FindingRegistered"]
        assert dispatcher.events[0].code == finding.code

    def test_24_hour_deadline_is_fixed_at_registration(self, db_session, auditor, provider):
        audit = audit_in_stage(db_session, 5)
        visit = _visit_in_progress(db_session, audit.id, auditor)

        now = utcnow()
        finding = _register(
            db_session, audit.id, visit.id, auditor, recommended_timeframe=RemediationTimeframe.HORAS_24
        )
        deadline = finding.remediation_deadline
        assert now + timedelta(hours=23, minutes=59) <= deadline <= now + timedelta(hours=24, minutes=1)

        service = VisitService(db_session)
        service.acknowledge_by_provider(audit.id, finding.id, provider, "Se programa mantenimiento")
        service.report_correction(audit.id, finding.id, provider)
        finding = service.verify_remediation(audit.id, finding.id, VerificationResult.NO_CORREGIDO, auditor)
        assert finding.remediation_deadline == deadline

    def test_no_timeframe_no_deadline(self):
        assert remediation_deadline(None, SCHEDULED) is None
        assert remediation_deadline(RemediationTimeframe.INMEDIATO, SCHEDULED) == SCHEDULED
        assert remediation_deadline(RemediationTimeframe.MESES_3, SCHEDULED) == SCHEDULED + timedelta(days=90)

    def test_tracking_to_closed(self, db_session, auditor, provider):
        audit = audit_in_stage(db_session, 5)
        visit = _visit_in_progress(db_session, audit.id, auditor)
        finding = _register(db_session, audit.id, visit.id, auditor)
        service = VisitService(db_session)

        finding = service.acknowledge_by_provider(audit.id, finding.id, provider, "Entendido")
        assert finding.tracking_state == FindingTrackingState.EN_SEGUIMIENTO
        assert finding.provider_response == "Entendido"

        finding = service.report_correction(audit.id, finding.id, provider)
        assert finding.tracking_state == FindingTrackingState.CORREGIDO

        finding = service.verify_remediation(audit.id, finding.id, VerificationResult.CORRECCION_PARCIAL, auditor)
        assert finding.tracking_state == FindingTrackingState.VERIFICADO

        service.report_correction(audit.id, finding.id, provider)
        finding = service.verify_remediation(
            audit.id, finding.id, VerificationResult.CORREGIDO_SATISFACTORIAMENTE, auditor, notes="OK"
        )
        assert finding.tracking_state == FindingTrackingState.CERRADO
        assert finding.verified_at is not None

    def test_closed_only_through_verification(self, db_session, auditor, provider):
        audit = audit_in_stage(db_session, 5)
        visit = _visit_in_progress(db_session, audit.id, auditor)
        finding = _register(db_session, audit.id, visit.id, auditor)
        service = VisitService(db_session)

        with pytest.raises(InvalidStateTransitionError):
            service.verify_remediation(audit.id, finding.id, VerificationResult.CORREGIDO_SATISFACTORIAMENTE, auditor)
        with pytest.raises(InvalidStateTransitionError):
            service.report_correction(audit.id, finding.id, provider)

    def test_failed_verification_reopens(self, db_session, auditor, provider):
        audit = audit_in_stage(db_session, 5)
        visit = _visit_in_progress(db_session, audit.id, auditor)
        finding = _register(db_session, audit.id, visit.id, auditor)
        service = VisitService(db_session)
        service.acknowledge_by_provider(audit.id, finding.id, provider)
        service.report_correction(audit.id, finding.id, provider)

        finding = service.verify_remediation(audit.id, finding.id, VerificationResult.NUEVA_INCIDENCIA, auditor)
        assert finding.tracking_state == FindingTrackingState.ABIERTO

    def test_pending_is_not_a_verification_outcome(self, db_session, auditor):
        audit = audit_in_stage(db_session, 5)
        visit = _visit_in_progress(db_session, audit.id, auditor)
        finding = _register(db_session, audit.id, visit.id, auditor)

        with pytest.raises(InvalidStateTransitionError):
            VisitService(db_session).verify_remediation(audit.id, finding.id, VerificationResult.PENDIENTE, auditor)

    def test_defer_and_resume(self, db_session, auditor, provider):
        audit = audit_in_stage(db_session, 5)
        visit = _visit_in_progress(db_session, audit.id, auditor)
        finding = _register(db_session, audit.id, visit.id, auditor)
        service = VisitService(db_session)

        assert service.defer_finding(audit.id, finding.id, auditor, "Presupuesto").tracking_state == (
            FindingTrackingState.DIFERIDO
        )
        with pytest.raises(InvalidStateTransitionError):
            service.defer_finding(audit.id, finding.id, auditor)
        assert service.acknowledge_by_provider(audit.id, finding.id, provider).tracking_state == (
            FindingTrackingState.EN_SEGUIMIENTO
        )

    def test_communicate_is_idempotent(self, db_session, auditor):
        audit = audit_in_stage(db_session, 5)
        visit = _visit_in_progress(db_session, audit.id, auditor)
        finding = _register(db_session, audit.id, visit.id, auditor)
        service = VisitService(db_session)

        first = service.communicate_to_provider(audit.id, finding.id, auditor).communicated_at
        assert service.communicate_to_provider(audit.id, finding.id, auditor).communicated_at == first

    def test_list_findings_filters(self, db_session, auditor):
        audit = audit_in_stage(db_session, 5)
        visit = _visit_in_progress(db_session, audit.id, auditor)
        high = _register(db_session, audit.id, visit.id, auditor)
        low = _register(db_session, audit.id, visit.id, auditor, severity=FindingSeverity.BAJA)
        service = VisitService(db_session)

        assert [f.id for f in service.list_findings(audit.id)] == [high.id, low.id]
        assert [f.id for f in service.list_findings(audit.id, severity=FindingSeverity.BAJA)] == [low.id]
        assert service.list_findings(audit.id, tracking_state=FindingTrackingState.CERRADO) == []
