"""
Document completeness gate.

A section counts as complete when the Document Store holds a document for
it; the equipment inventory counts as complete once the ETL has processed it.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import IncompleteEvidenceError
from app.services import section_registry
from app.services.collaborators import DocumentStore, InventorySource, SqlDocumentStore, SqlInventorySource

logger = logging.getLogger(__name__)


@dataclass
class CompletionSummary:
    completed_count: int
    total_count: int
    missing_obligatory: List[str] = field(default_factory=list)
    missing_optional: List[str] = field(default_factory=list)

    @property
    def completion_percentage(self) -> float:
        if not self.total_count:
            return 0.0
        return round(self.completed_count / self.total_count * 100, 2)

    @property
    def is_complete(self) -> bool:
        return not self.missing_obligatory


class CompletenessService:
    """Evaluates evidence completeness of an audit."""

    def __init__(
        self,
        db: Session,
        documents: Optional[DocumentStore] = None,
        inventory: Optional[InventorySource] = None,
    ):
        self.db = db
        self.documents = documents or SqlDocumentStore(db)
        self.inventory = inventory or SqlInventorySource(db)

    def is_section_complete(self, audit_id: int, section_id: str) -> bool:
        section_registry.get(section_id)
        if section_id == section_registry.PARQUE_INFORMATICO:
            result = self.inventory.get_inventory_result(audit_id)
            if result is not None and result.processed:
                return True
        return self.documents.has_document(audit_id, section_id)

    def compute_completion(self, audit_id: int) -> CompletionSummary:
        completed = 0
        missing_obligatory: List[str] = []
        missing_optional: List[str] = []
        sections = section_registry.list_all()

        for section in sections:
            if self.is_section_complete(audit_id, section.id):
                completed += 1
            elif section.obligatory:
                missing_obligatory.append(section.id)
            else:
                missing_optional.append(section.id)

        return CompletionSummary(
            completed_count=completed,
            total_count=len(sections),
            missing_obligatory=missing_obligatory,
            missing_optional=missing_optional,
        )

    def require_complete(self, audit_id: int) -> CompletionSummary:
        """
        Raises:
            IncompleteEvidenceError: listing every obligatory section without evidence
        """
        summary = self.compute_completion(audit_id)
        if summary.missing_obligatory:
            logger.info(f"Audit {audit_id} missing obligatory evidence: {summary.missing_obligatory}")
            raise IncompleteEvidenceError(summary.missing_obligatory)
        return summary
