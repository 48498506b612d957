"""
Tests for the document completeness gate.
"""
import pytest

from app.core.exceptions import IncompleteEvidenceError
from app.services.collaborators import InventoryResult
from app.services.completeness_service import CompletenessService
from app.services.evidence_service import EvidenceService

from helpers import create_audit, upload_obligatory_evidence


def test_new_audit_misses_every_section(db_session):
    audit = create_audit(db_session)
    summary = CompletenessService(db_session).compute_completion(audit.id)

    assert summary.completed_count == 0
    assert summary.total_count == 12
    assert summary.completion_percentage == 0.0
    assert summary.missing_obligatory == [
        "cuarto_tecnologia", "energia", "seguridad_informatica", "parque_informatico",
    ]
    assert not summary.is_complete


def test_obligatory_evidence_completes_the_gate(db_session):
    audit = create_audit(db_session)
    upload_obligatory_evidence(db_session, audit.id)

    summary = CompletenessService(db_session).require_complete(audit.id)
    assert summary.is_complete
    assert summary.completed_count == 4
    assert summary.completion_percentage == pytest.approx(33.33)
    assert "topologia" in summary.missing_optional


def test_unprocessed_inventory_does_not_count(db_session, auditor):
    audit = create_audit(db_session)
    EvidenceService(db_session).ingest_inventory(audit.id, InventoryResult(processed=False), auditor)

    service = CompletenessService(db_session)
    assert not service.is_section_complete(audit.id, "parque_informatico")


def test_inventory_spreadsheet_counts_as_evidence(db_session, auditor):
    audit = create_audit(db_session)
    EvidenceService(db_session).register_document(
        audit.id, "parque_informatico", "f-1", "inventario.xlsx", auditor
    )
    assert CompletenessService(db_session).is_section_complete(audit.id, "parque_informatico")


def test_require_complete_lists_missing_obligatory_sections(db_session, auditor):
    audit = create_audit(db_session)
    EvidenceService(db_session).register_document(audit.id, "energia", "f-1", "energia.pdf", auditor)

    with pytest.raises(IncompleteEvidenceError) as exc_info:
        CompletenessService(db_session).require_complete(audit.id)

    assert exc_info.value.missing == ["cuarto_tecnologia", "seguridad_informatica", "parque_informatico"]
    assert exc_info.value.detail["gate"] == "evidence_complete"


def test_collaborator_stubs_can_replace_the_database(db_session):
    class Documents:
        def has_document(self, audit_id, section_id):
            return section_id != "energia"

        def get_document_meta(self, audit_id, section_id):
            return None

    class Inventory:
        def get_inventory_result(self, audit_id):
            return None

    summary = CompletenessService(db_session, Documents(), Inventory()).compute_completion(1)
    assert summary.missing_obligatory == ["energia"]
