"""
Builders that walk an audit through its lifecycle for tests.
"""
from datetime import datetime, timezone
from typing import List

from app.core.auth import Actor
from app.models.enums import EvaluationResult
from app.services import section_registry
from app.services.collaborators import InventoryResult
from app.services.evaluation_service import EvaluationService
from app.services.evidence_service import EvidenceService
from app.services.stage_controller import StageController

SCHEDULED = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
OBLIGATORY_DOCUMENT_SECTIONS = ["cuarto_tecnologia", "energia", "seguridad_informatica"]


class RecordingDispatcher:
    """Collects published events."""

    def __init__(self):
        self.events: List = []

    def dispatch(self, event):
        self.events.append(event)


def create_audit(db, actor: Actor = None, **overrides):
    actor = actor or Actor.system()
    params = dict(
        title="Auditoría anual",
        provider_id="prov-1",
        primary_auditor_id="aud-1",
        scheduled_date=SCHEDULED,
    )
    params.update(overrides)
    return StageController(db).create_audit(actor, **params)


def upload_obligatory_evidence(db, audit_id: int, actor: Actor = None, inventory: bool = True):
    actor = actor or Actor.system()
    evidence = EvidenceService(db)
    for section_id in OBLIGATORY_DOCUMENT_SECTIONS:
        evidence.register_document(audit_id, section_id, f"file-{section_id}", f"{section_id}.pdf", actor, 1024)
    if inventory:
        evidence.ingest_inventory(
            audit_id,
            InventoryResult(processed=True, conformant_count=40, non_conformant_count=2, score=88.0),
            actor,
        )


def audit_in_stage(db, stage: int, actor: Actor = None):
    """Create an audit and advance it, satisfying every gate, up to ``stage`` (max 5)."""
    actor = actor or Actor.system()
    controller = StageController(db)
    audit = create_audit(db, actor)
    if stage >= 2:
        controller.mark_notification_sent(audit.id, actor)
        controller.advance(audit.id, actor)
    if stage >= 3:
        upload_obligatory_evidence(db, audit.id, actor)
        controller.advance(audit.id, actor)
    if stage >= 4:
        controller.advance(audit.id, actor)
    if stage >= 5:
        resolve_all(db, audit.id, actor)
        controller.advance(audit.id, actor)
    return controller.get_audit(audit.id)


def resolve_all(db, audit_id: int, actor: Actor = None, score: float = 90.0):
    actor = actor or Actor.system()
    evaluations = EvaluationService(db)
    for section in section_registry.list_all():
        evaluations.assign(audit_id, section.id, "aud-1", actor)
        evaluations.resolve(audit_id, section.id, EvaluationResult.CUMPLE, actor, score=score)
