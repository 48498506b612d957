"""
Tests for the section evaluation state machine and score policy.
"""
import pytest

from app.core.exceptions import InvalidStateTransitionError, InvalidTransitionError, NotFoundError
from app.models.enums import (
    EvaluationResult,
    EvaluationState,
    ValidationExecutor,
    ValidationResult,
    ValidationType,
)
from app.models.validation_record import ValidationRecord
from app.services.evaluation_service import EvaluationService, calculate_score
from app.services.stage_controller import StageController
from app.services.validation_log import ValidationLog

from helpers import RecordingDispatcher, audit_in_stage


@pytest.mark.parametrize("automatic,result,expected", [
    (None, EvaluationResult.CUMPLE, 85.0),
    (60.0, EvaluationResult.CUMPLE, 85.0),
    (92.0, EvaluationResult.CUMPLE, 92.0),
    (60.0, EvaluationResult.CUMPLE_CON_OBSERVACIONES, 70.0),
    (95.0, EvaluationResult.CUMPLE_CON_OBSERVACIONES, 76.0),
    (88.0, EvaluationResult.NO_CUMPLE, 50.0),
    (30.0, EvaluationResult.NO_CUMPLE, 30.0),
    (None, EvaluationResult.NO_CUMPLE, 0.0),
    (64.0, EvaluationResult.NO_APLICA, 64.0),
    (None, EvaluationResult.PENDIENTE_VISITA, None),
])
def test_calculate_score(automatic, result, expected):
    assert calculate_score(automatic, result) == expected


def test_calculate_score_stays_in_range():
    for result in EvaluationResult:
        score = calculate_score(140.0, result)
        assert score is None or 0 <= score <= 100


class TestLifecycle:

    def test_assign_then_resolve(self, db_session, auditor):
        audit = audit_in_stage(db_session, 4)
        service = EvaluationService(db_session)

        evaluation = service.assign(audit.id, "energia", "aud-1", auditor)
        assert evaluation.state == EvaluationState.EN_REVISION
        assert evaluation.evaluation_started_at is not None

        evaluation = service.resolve(audit.id, "energia", EvaluationResult.CUMPLE, auditor, score=93, comments="OK")
        assert evaluation.state == EvaluationState.COMPLETADA
        assert evaluation.score == 93
        assert evaluation.auditor_comments == "OK"
        assert evaluation.evaluation_minutes == 0

    def test_resolve_uses_automatic_score_when_no_manual_score(self, db_session, auditor):
        audit = audit_in_stage(db_session, 4)
        service = EvaluationService(db_session)
        service.assign(audit.id, "parque_informatico", "aud-1", auditor)

        evaluation = service.resolve(audit.id, "parque_informatico", EvaluationResult.CUMPLE_CON_OBSERVACIONES, auditor)
        assert evaluation.score == pytest.approx(70.4)

    def test_resolve_without_any_score_is_rejected(self, db_session, auditor):
        audit = audit_in_stage(db_session, 4)
        service = EvaluationService(db_session)
        service.assign(audit.id, "topologia", "aud-1", auditor)

        with pytest.raises(InvalidStateTransitionError):
            service.resolve(audit.id, "topologia", EvaluationResult.CUMPLE, auditor)
        assert service.get(audit.id, "topologia").state == EvaluationState.EN_REVISION

    @pytest.mark.parametrize("score", [-1, 100.5])
    def test_manual_score_out_of_range(self, db_session, auditor, score):
        audit = audit_in_stage(db_session, 4)
        service = EvaluationService(db_session)
        service.assign(audit.id, "energia", "aud-1", auditor)

        with pytest.raises(InvalidStateTransitionError):
            service.resolve(audit.id, "energia", EvaluationResult.CUMPLE, auditor, score=score)

    def test_cannot_resolve_pending_evaluation(self, db_session, auditor):
        audit = audit_in_stage(db_session, 4)
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            EvaluationService(db_session).resolve(audit.id, "energia", EvaluationResult.CUMPLE, auditor, score=90)
        assert exc_info.value.detail["current"] == "pendiente"

    def test_completed_evaluation_is_final(self, db_session, auditor):
        audit = audit_in_stage(db_session, 4)
        service = EvaluationService(db_session)
        service.assign(audit.id, "energia", "aud-1", auditor)
        service.resolve(audit.id, "energia", EvaluationResult.CUMPLE, auditor, score=90)

        with pytest.raises(InvalidStateTransitionError):
            service.assign(audit.id, "energia", "aud-2", auditor)

    def test_pending_visit_result_flags_the_section(self, db_session, auditor):
        audit = audit_in_stage(db_session, 4)
        service = EvaluationService(db_session)
        service.assign(audit.id, "cuarto_tecnologia", "aud-1", auditor)

        evaluation = service.resolve(
            audit.id, "cuarto_tecnologia", EvaluationResult.PENDIENTE_VISITA, auditor, score=60
        )
        assert evaluation.requires_site_visit
        assert service.progress(audit.id)["requires_site_visit"] == ["cuarto_tecnologia"]

        with pytest.raises(InvalidStateTransitionError):
            service.flag_site_visit(audit.id, "cuarto_tecnologia", False, auditor)
        assert service.get(audit.id, "cuarto_tecnologia").requires_site_visit

    def test_resolution_emits_event(self, db_session, auditor):
        audit = audit_in_stage(db_session, 4)
        dispatcher = RecordingDispatcher()
        service = EvaluationService(db_session, dispatcher=dispatcher)
        service.assign(audit.id, "energia", "aud-1", auditor)
        service.resolve(audit.id, "energia", EvaluationResult.NO_CUMPLE, auditor, score=40)

        assert [e.name for e in dispatcher.events] == ["SectionResolved"]
        assert dispatcher.events[0].score == 40


def test_clarification_loop(db_session, auditor, provider):
    audit = audit_in_stage(db_session, 4)
    service = EvaluationService(db_session)
    service.assign(audit.id, "seguridad_informatica", "aud-1", auditor)

    evaluation = service.request_clarification(audit.id, "seguridad_informatica", "¿Antivirus vigente?", auditor)
    assert evaluation.state == EvaluationState.REQUIERE_ACLARACION
    assert evaluation.clarifications_pending
    assert evaluation.queries_count == 1

    with pytest.raises(InvalidStateTransitionError):
        service.resolve(audit.id, "seguridad_informatica", EvaluationResult.CUMPLE, auditor, score=90)

    evaluation = service.register_provider_response(audit.id, "seguridad_informatica", "Licencia adjunta", provider)
    assert evaluation.state == EvaluationState.EN_REVISION
    assert not evaluation.clarifications_pending
    assert evaluation.provider_response == "Licencia adjunta"

    service.request_clarification(audit.id, "seguridad_informatica", "¿Y el firewall?", auditor)
    assert service.get(audit.id, "seguridad_informatica").queries_count == 2


def test_provider_response_requires_open_question(db_session, provider):
    audit = audit_in_stage(db_session, 4)
    with pytest.raises(InvalidStateTransitionError):
        EvaluationService(db_session).register_provider_response(audit.id, "energia", "n/a", provider)


def test_suspended_audit_rejects_changes(db_session, auditor, coordinator):
    audit = audit_in_stage(db_session, 4)
    StageController(db_session).suspend(audit.id, "Pausa", coordinator)

    with pytest.raises(InvalidTransitionError):
        EvaluationService(db_session).assign(audit.id, "energia", "aud-1", auditor)


def test_site_visit_flag_can_be_toggled_until_visit_stage(db_session, auditor, coordinator):
    audit = audit_in_stage(db_session, 5)
    service = EvaluationService(db_session)

    assert service.flag_site_visit(audit.id, "servidores", True, auditor).requires_site_visit
    assert not service.flag_site_visit(audit.id, "servidores", False, auditor).requires_site_visit

    StageController(db_session).advance(audit.id, coordinator)
    with pytest.raises(InvalidTransitionError):
        service.flag_site_visit(audit.id, "servidores", True, auditor)
    assert not service.get(audit.id, "servidores").requires_site_visit


def test_cancelled_audit_keeps_its_automatic_scores(db_session, coordinator):
    audit = audit_in_stage(db_session, 4)
    controller = StageController(db_session)
    version = controller.cancel(audit.id, "Contrato rescindido", coordinator).version

    ValidationLog(db_session).append(ValidationRecord(
        audit_id=audit.id,
        section_id="energia",
        validation_type=ValidationType.SCORING_IA,
        result=ValidationResult.EXITOSO,
        score=72.0,
        executor=ValidationExecutor.IA,
    ))
    assert EvaluationService(db_session).refresh_automatic_score(audit.id, "energia").automatic_score is None
    assert controller.get_audit(audit.id).version == version


def test_unknown_section(db_session, auditor):
    audit = audit_in_stage(db_session, 4)
    with pytest.raises(NotFoundError):
        EvaluationService(db_session).assign(audit.id, "cocina", "aud-1", auditor)


def test_new_automatic_score_is_pulled_until_completion(db_session, auditor):
    audit = audit_in_stage(db_session, 4)
    service = EvaluationService(db_session)
    log = ValidationLog(db_session)

    log.append(ValidationRecord(
        audit_id=audit.id,
        section_id="energia",
        validation_type=ValidationType.SCORING_IA,
        result=ValidationResult.EXITOSO,
        score=72.0,
        executor=ValidationExecutor.IA,
    ))
    assert service.refresh_automatic_score(audit.id, "energia").automatic_score == 72.0

    service.assign(audit.id, "energia", "aud-1", auditor)
    service.resolve(audit.id, "energia", EvaluationResult.CUMPLE, auditor)
    log.append(ValidationRecord(
        audit_id=audit.id,
        section_id="energia",
        validation_type=ValidationType.SCORING_IA,
        result=ValidationResult.EXITOSO,
        score=40.0,
        executor=ValidationExecutor.IA,
    ))
    evaluation = service.refresh_automatic_score(audit.id, "energia")
    assert evaluation.automatic_score == 72.0
    assert evaluation.score == 85.0


def test_manual_records_do_not_feed_automatic_score(db_session):
    audit = audit_in_stage(db_session, 4)
    ValidationLog(db_session).append(ValidationRecord(
        audit_id=audit.id,
        section_id="energia",
        validation_type=ValidationType.VALIDACION_MANUAL,
        result=ValidationResult.EXITOSO,
        score=99.0,
        executor=ValidationExecutor.USUARIO,
    ))
    assert EvaluationService(db_session).refresh_automatic_score(audit.id, "energia").automatic_score is None


def test_progress_counts(db_session, auditor):
    audit = audit_in_stage(db_session, 4)
    service = EvaluationService(db_session)
    service.assign(audit.id, "energia", "aud-1", auditor)
    service.resolve(audit.id, "energia", EvaluationResult.CUMPLE, auditor, score=90)
    service.assign(audit.id, "topologia", "aud-1", auditor)

    progress = service.progress(audit.id)
    assert progress["total"] == 12
    assert progress["by_state"] == {
        "pendiente": 10, "en_revision": 1, "completada": 1, "requiere_aclaracion": 0,
    }
    assert progress["completion_percentage"] == pytest.approx(8.33)
