"""
Site visits and their findings.

Visits are scheduled while the audit is in the on-site visit stage and are
verified against the site's reference coordinates when they end. Findings
are recorded during or after a visit and tracked until the auditor closes
them.
"""
import logging
import secrets
import string
import time
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from app.core.auth import Actor
from app.core.config import settings
from app.core.database import utcnow
from app.core.exceptions import InvalidStateTransitionError, InvalidTransitionError, NotFoundError
from app.models.enums import (
    AuditStage,
    FindingCategory,
    FindingSeverity,
    FindingTrackingState,
    FindingType,
    LocationVerification,
    RemediationTimeframe,
    VerificationResult,
    VisitState,
)
from app.models.finding import Finding
from app.models.visit import Visit
from app.services import section_registry
from app.services.activity_service import ActivityAction, ResourceType, log_activity
from app.services.base import AuditBoundService
from app.services.evaluation_service import require_active
from app.services.events import FindingRegistered
from app.utils.geo import Coordinates, verify_location

logger = logging.getLogger(__name__)

REMEDIATION_OFFSETS = {
    RemediationTimeframe.INMEDIATO: timedelta(0),
    RemediationTimeframe.HORAS_24: timedelta(hours=24),
    RemediationTimeframe.SEMANA_1: timedelta(days=7),
    RemediationTimeframe.MES_1: timedelta(days=30),
    RemediationTimeframe.MESES_3: timedelta(days=90),
    RemediationTimeframe.MESES_6: timedelta(days=180),
}

VISIT_TRANSITIONS = {
    "confirm": {VisitState.PROGRAMADA, VisitState.REPROGRAMADA},
    "reschedule": {VisitState.PROGRAMADA, VisitState.CONFIRMADA},
    "cancel": {VisitState.PROGRAMADA, VisitState.CONFIRMADA, VisitState.REPROGRAMADA},
    "start": {VisitState.CONFIRMADA},
    "end": {VisitState.EN_CURSO},
}

VISIT_TARGETS = {
    "confirm": VisitState.CONFIRMADA,
    "reschedule": VisitState.REPROGRAMADA,
    "cancel": VisitState.CANCELADA,
    "start": VisitState.EN_CURSO,
    "end": VisitState.COMPLETADA,
}

# tracking operation -> (allowed sources, target)
FINDING_TRANSITIONS = {
    "acknowledge": (
        {FindingTrackingState.ABIERTO, FindingTrackingState.DIFERIDO},
        FindingTrackingState.EN_SEGUIMIENTO,
    ),
    "defer": (
        {FindingTrackingState.ABIERTO, FindingTrackingState.EN_SEGUIMIENTO},
        FindingTrackingState.DIFERIDO,
    ),
    "report_correction": (
        {FindingTrackingState.EN_SEGUIMIENTO, FindingTrackingState.VERIFICADO},
        FindingTrackingState.CORREGIDO,
    ),
}

VERIFICATION_OUTCOMES = {
    VerificationResult.CORREGIDO_SATISFACTORIAMENTE: FindingTrackingState.CERRADO,
    VerificationResult.CORRECCION_PARCIAL: FindingTrackingState.VERIFICADO,
    VerificationResult.NO_CORREGIDO: FindingTrackingState.ABIERTO,
    VerificationResult.NUEVA_INCIDENCIA: FindingTrackingState.ABIERTO,
}

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def _base36(number: int) -> str:
    digits = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    if number == 0:
        return "0"
    out = []
    while number:
        number, rem = divmod(number, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


def generate_finding_code() -> str:
    """``HAL-<base36 ms timestamp>-<5 random chars>``."""
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(5))
    return f"HAL-{_base36(int(time.time() * 1000))}-{suffix}"


def remediation_deadline(timeframe: Optional[RemediationTimeframe], base: datetime) -> Optional[datetime]:
    if timeframe is None:
        return None
    return base + REMEDIATION_OFFSETS[timeframe]


def visit_verification(visit: Visit):
    """Distance and bucket of a visit, using arrival GPS (departure as fallback)."""
    reference = Coordinates.from_pair(visit.reference_latitude, visit.reference_longitude)
    observed = Coordinates.from_pair(visit.arrival_latitude, visit.arrival_longitude)
    if observed is None:
        observed = Coordinates.from_pair(visit.departure_latitude, visit.departure_longitude)
    return verify_location(
        reference,
        observed,
        settings.GPS_VERIFIED_MAX_METERS,
        settings.GPS_MINOR_DISCREPANCY_MAX_METERS,
    )


class VisitService(AuditBoundService):
    """Site visit lifecycle and finding tracking."""

    # Reads

    def list_visits(self, audit_id: int) -> List[Visit]:
        self.get_audit(audit_id)
        return (
            self.db.query(Visit)
            .filter(Visit.audit_id == audit_id)
            .order_by(Visit.scheduled_at.asc(), Visit.id.asc())
            .all()
        )

    def get_visit(self, audit_id: int, visit_id: int) -> Visit:
        visit = self.db.query(Visit).filter(Visit.id == visit_id, Visit.audit_id == audit_id).first()
        if not visit:
            raise NotFoundError("Visit", visit_id)
        return visit

    def list_findings(
        self,
        audit_id: int,
        visit_id: Optional[int] = None,
        severity: Optional[FindingSeverity] = None,
        tracking_state: Optional[FindingTrackingState] = None,
    ) -> List[Finding]:
        self.get_audit(audit_id)
        query = self.db.query(Finding).filter(Finding.audit_id == audit_id)
        if visit_id is not None:
            query = query.filter(Finding.visit_id == visit_id)
        if severity is not None:
            query = query.filter(Finding.severity == severity)
        if tracking_state is not None:
            query = query.filter(Finding.tracking_state == tracking_state)
        return query.order_by(Finding.created_at.asc(), Finding.id.asc()).all()

    def get_finding(self, audit_id: int, finding_id: int) -> Finding:
        finding = self.db.query(Finding).filter(Finding.id == finding_id, Finding.audit_id == audit_id).first()
        if not finding:
            raise NotFoundError("Finding", finding_id)
        return finding

    # Visit lifecycle

    @staticmethod
    def _check_visit(visit: Visit, operation: str) -> VisitState:
        target = VISIT_TARGETS[operation]
        if visit.state not in VISIT_TRANSITIONS[operation]:
            raise InvalidStateTransitionError(f"Visit[{visit.site_code}]", visit.state, target)
        return target

    @staticmethod
    def _check_sections(sections: Iterable[str]) -> List[str]:
        checked = []
        for section_id in sections:
            section_registry.get(section_id)
            if section_id not in checked:
                checked.append(section_id)
        return checked

    def schedule_visit(
        self,
        audit_id: int,
        actor: Actor,
        site_code: str,
        site_name: str,
        scheduled_at: datetime,
        auditor_id: str,
        site_address: Optional[str] = None,
        reference: Optional[Coordinates] = None,
        sections_to_verify: Iterable[str] = (),
        companion_auditor_id: Optional[str] = None,
    ) -> Visit:
        sections = self._check_sections(sections_to_verify)
        with self.mutation(audit_id) as m:
            require_active(m.audit)
            if m.audit.stage != AuditStage.VISITA_PRESENCIAL:
                raise InvalidTransitionError(
                    f"Visits can only be scheduled in stage {int(AuditStage.VISITA_PRESENCIAL)} "
                    f"({AuditStage.VISITA_PRESENCIAL.label}); audit {m.audit.code} is in stage {m.audit.stage}",
                    current_stage=m.audit.stage,
                    requested=AuditStage.VISITA_PRESENCIAL,
                )
            visit = Visit(
                audit_id=audit_id,
                auditor_id=auditor_id,
                companion_auditor_id=companion_auditor_id,
                site_code=site_code,
                site_name=site_name,
                site_address=site_address,
                reference_latitude=reference.latitude if reference else None,
                reference_longitude=reference.longitude if reference else None,
                scheduled_at=scheduled_at,
                state=VisitState.PROGRAMADA,
                sections_to_verify=sections,
                location_verification=LocationVerification.PENDIENTE,
            )
            self.db.add(visit)
            self.db.flush()
            log_activity(
                self.db, actor, ActivityAction.VISIT_SCHEDULE, audit_id, ResourceType.VISIT, visit.id,
                {"site_code": site_code, "scheduled_at": scheduled_at.isoformat(), "sections": sections},
            )
        logger.info(f"Visit {visit.id} scheduled for audit {audit_id} at site {site_code}")
        return visit

    def confirm_visit(self, audit_id: int, visit_id: int, actor: Actor) -> Visit:
        with self.mutation(audit_id) as m:
            require_active(m.audit)
            visit = self.get_visit(audit_id, visit_id)
            visit.state = self._check_visit(visit, "confirm")
            visit.confirmed_at = utcnow()
            log_activity(self.db, actor, ActivityAction.VISIT_CONFIRM, audit_id, ResourceType.VISIT, visit.id)
        return visit

    def reschedule_visit(
        self, audit_id: int, visit_id: int, new_datetime: datetime, actor: Actor, reason: Optional[str] = None
    ) -> Visit:
        with self.mutation(audit_id) as m:
            require_active(m.audit)
            visit = self.get_visit(audit_id, visit_id)
            visit.state = self._check_visit(visit, "reschedule")
            previous = visit.scheduled_at
            visit.scheduled_at = new_datetime
            visit.confirmed_at = None
            log_activity(
                self.db, actor, ActivityAction.VISIT_RESCHEDULE, audit_id, ResourceType.VISIT, visit.id,
                {
                    "from": previous.isoformat() if previous else None,
                    "to": new_datetime.isoformat(),
                    "reason": reason,
                },
            )
        return visit

    def cancel_visit(self, audit_id: int, visit_id: int, reason: str, actor: Actor) -> Visit:
        with self.mutation(audit_id) as m:
            require_active(m.audit)
            visit = self.get_visit(audit_id, visit_id)
            visit.state = self._check_visit(visit, "cancel")
            visit.cancellation_reason = reason
            log_activity(
                self.db, actor, ActivityAction.VISIT_CANCEL, audit_id, ResourceType.VISIT, visit.id,
                {"reason": reason},
            )
        return visit

    def start_visit(
        self, audit_id: int, visit_id: int, actor: Actor, gps_arrival: Optional[Coordinates] = None
    ) -> Visit:
        with self.mutation(audit_id) as m:
            require_active(m.audit)
            visit = self.get_visit(audit_id, visit_id)
            visit.state = self._check_visit(visit, "start")
            visit.started_at = utcnow()
            if gps_arrival is not None:
                visit.arrival_latitude = gps_arrival.latitude
                visit.arrival_longitude = gps_arrival.longitude
            log_activity(
                self.db, actor, ActivityAction.VISIT_START, audit_id, ResourceType.VISIT, visit.id,
                {"gps_arrival": list(gps_arrival) if gps_arrival else None},
            )
        return visit

    def end_visit(
        self,
        audit_id: int,
        visit_id: int,
        actor: Actor,
        gps_departure: Optional[Coordinates] = None,
        observations: Optional[str] = None,
        visit_score: Optional[float] = None,
    ) -> Visit:
        """Complete the visit and verify where it took place."""
        with self.mutation(audit_id) as m:
            require_active(m.audit)
            visit = self.get_visit(audit_id, visit_id)
            visit.state = self._check_visit(visit, "end")
            finished = utcnow()
            visit.finished_at = finished
            if visit.started_at:
                visit.duration_minutes = int((finished - visit.started_at).total_seconds() // 60)
            if gps_departure is not None:
                visit.departure_latitude = gps_departure.latitude
                visit.departure_longitude = gps_departure.longitude
            if observations is not None:
                visit.observations = observations
            if visit_score is not None:
                visit.visit_score = visit_score
            distance, verification = visit_verification(visit)
            visit.distance_to_reference_m = distance
            visit.location_verification = verification
            log_activity(
                self.db, actor, ActivityAction.VISIT_END, audit_id, ResourceType.VISIT, visit.id,
                {"distance_m": distance, "location_verification": verification.value},
            )
        logger.info(f"Visit {visit_id} completed: {verification.value} (distance={distance})")
        return visit

    def recompute_verification(self, audit_id: int, visit_id: int, actor: Actor) -> Visit:
        with self.mutation(audit_id):
            visit = self.get_visit(audit_id, visit_id)
            if visit.state != VisitState.COMPLETADA:
                raise InvalidStateTransitionError(
                    f"Visit[{visit.site_code}]", visit.state, visit.state,
                    reason="location can only be re-verified on completed visits",
                )
            distance, verification = visit_verification(visit)
            visit.distance_to_reference_m = distance
            visit.location_verification = verification
            log_activity(
                self.db, actor, ActivityAction.VISIT_REVERIFY, audit_id, ResourceType.VISIT, visit.id,
                {"distance_m": distance, "location_verification": verification.value},
            )
        return visit

    # Findings

    def _unique_code(self) -> str:
        code = generate_finding_code()
        while self.db.query(Finding.id).filter(Finding.code == code).first():
            code = generate_finding_code()
        return code

    def register_finding(
        self,
        audit_id: int,
        visit_id: int,
        actor: Actor,
        finding_type: FindingType,
        category: FindingCategory,
        severity: FindingSeverity,
        title: str,
        description: str,
        section_id: str = section_registry.GENERAL_SECTION,
        recommended_timeframe: Optional[RemediationTimeframe] = None,
        evidence: Optional[str] = None,
        corrective_action: Optional[str] = None,
        affects_score: bool = True,
        deduction_points: float = 0.0,
        auditor_id: Optional[str] = None,
    ) -> Finding:
        """Record a finding; its remediation deadline is fixed here, once."""
        if section_id != section_registry.GENERAL_SECTION:
            section_registry.get(section_id)

        with self.mutation(audit_id) as m:
            require_active(m.audit)
            visit = self.get_visit(audit_id, visit_id)
            if visit.state not in (VisitState.EN_CURSO, VisitState.COMPLETADA):
                raise InvalidStateTransitionError(
                    f"Visit[{visit.site_code}]", visit.state, "register_finding",
                    reason="findings require a visit in progress or completed",
                )
            now = utcnow()
            finding = Finding(
                visit_id=visit.id,
                audit_id=audit_id,
                auditor_id=auditor_id or actor.user_id,
                code=self._unique_code(),
                finding_type=finding_type,
                category=category,
                severity=severity,
                section_id=section_id,
                title=title,
                description=description,
                evidence=evidence,
                corrective_action=corrective_action,
                recommended_timeframe=recommended_timeframe,
                remediation_deadline=remediation_deadline(recommended_timeframe, now),
                tracking_state=FindingTrackingState.ABIERTO,
                verification_result=VerificationResult.PENDIENTE,
                communicated_to_provider=False,
                affects_score=affects_score,
                deduction_points=deduction_points,
                created_at=now,
                updated_at=now,
            )
            self.db.add(finding)
            self.db.flush()
            log_activity(
                self.db, actor, ActivityAction.FINDING_REGISTER, audit_id, ResourceType.FINDING, finding.id,
                {"code": finding.code, "severity": severity.value, "section_id": section_id},
            )
            m.emit(FindingRegistered(
                audit_id=audit_id, finding_id=finding.id, code=finding.code, severity=severity.value,
            ))
        logger.info(f"Finding {finding.code} ({severity.value}) registered on visit {visit_id}")
        return finding

    def _track(
        self, audit_id: int, finding_id: int, operation: str, actor: Actor, details: Optional[Dict[str, Any]] = None
    ) -> Finding:
        sources, target = FINDING_TRANSITIONS[operation]
        with self.mutation(audit_id) as m:
            require_active(m.audit)
            finding = self.get_finding(audit_id, finding_id)
            if finding.tracking_state not in sources:
                raise InvalidStateTransitionError(f"Finding[{finding.code}]", finding.tracking_state, target)
            previous = finding.tracking_state
            finding.tracking_state = target
            if operation == "acknowledge" and details and details.get("response"):
                finding.provider_response = details["response"]
                finding.provider_responded_at = utcnow()
            log_activity(
                self.db, actor, ActivityAction.FINDING_TRACK, audit_id, ResourceType.FINDING, finding.id,
                {"operation": operation, "from": previous.value, "to": target.value, **(details or {})},
            )
        return finding

    def acknowledge_by_provider(
        self, audit_id: int, finding_id: int, actor: Actor, response: Optional[str] = None
    ) -> Finding:
        return self._track(audit_id, finding_id, "acknowledge", actor, {"response": response})

    def defer_finding(self, audit_id: int, finding_id: int, actor: Actor, reason: Optional[str] = None) -> Finding:
        return self._track(audit_id, finding_id, "defer", actor, {"reason": reason})

    def report_correction(
        self, audit_id: int, finding_id: int, actor: Actor, notes: Optional[str] = None
    ) -> Finding:
        return self._track(audit_id, finding_id, "report_correction", actor, {"notes": notes})

    def communicate_to_provider(self, audit_id: int, finding_id: int, actor: Actor) -> Finding:
        with self.mutation(audit_id) as m:
            require_active(m.audit)
            finding = self.get_finding(audit_id, finding_id)
            if not finding.communicated_to_provider:
                finding.communicated_to_provider = True
                finding.communicated_at = utcnow()
            log_activity(
                self.db, actor, ActivityAction.FINDING_COMMUNICATE, audit_id, ResourceType.FINDING, finding.id,
            )
        return finding

    def verify_remediation(
        self,
        audit_id: int,
        finding_id: int,
        result: VerificationResult,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> Finding:
        """Auditor check of a reported correction; the only path to ``cerrado``."""
        if result not in VERIFICATION_OUTCOMES:
            raise InvalidStateTransitionError("Finding", "corregido", result, reason="not a verification outcome")
        target = VERIFICATION_OUTCOMES[result]
        with self.mutation(audit_id) as m:
            require_active(m.audit)
            finding = self.get_finding(audit_id, finding_id)
            if finding.tracking_state != FindingTrackingState.CORREGIDO:
                raise InvalidStateTransitionError(
                    f"Finding[{finding.code}]", finding.tracking_state, target,
                    reason="only corrected findings can be verified",
                )
            finding.verification_result = result
            finding.verification_notes = notes
            finding.verified_at = utcnow()
            finding.tracking_state = target
            log_activity(
                self.db, actor, ActivityAction.FINDING_VERIFY, audit_id, ResourceType.FINDING, finding.id,
                {"result": result.value, "tracking_state": target.value},
            )
        logger.info(f"Finding {finding_id} verification: {result.value} -> {target.value}")
        return finding
