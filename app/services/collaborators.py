"""
Contracts of the external collaborators and their default adapters.

Binary document storage, spreadsheet parsing of equipment inventories and
notification delivery live outside this service. The defaults below read the
metadata those systems push to us and log outgoing events.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol

from sqlalchemy.orm import Session

from app.models.evidence import EvidenceDocument, InventoryIngestion
from app.services.events import DomainEvent

logger = logging.getLogger(__name__)


@dataclass
class DocumentMeta:
    uploaded_at: datetime
    file_id: str
    filename: str
    size_bytes: Optional[int] = None


@dataclass
class InventoryResult:
    processed: bool
    conformant_count: int = 0
    non_conformant_count: int = 0
    score: Optional[float] = None
    critical_errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return self.conformant_count + self.non_conformant_count


class DocumentStore(Protocol):
    def has_document(self, audit_id: int, section_id: str) -> bool: ...

    def get_document_meta(self, audit_id: int, section_id: str) -> Optional[DocumentMeta]: ...


class InventorySource(Protocol):
    def get_inventory_result(self, audit_id: int) -> Optional[InventoryResult]: ...


class NotificationDispatcher(Protocol):
    def dispatch(self, event: DomainEvent) -> None: ...


class SqlDocumentStore:
    """Document Store view backed by the ``evidence_documents`` table."""

    def __init__(self, db: Session):
        self.db = db

    def _latest(self, audit_id: int, section_id: str) -> Optional[EvidenceDocument]:
        return (
            self.db.query(EvidenceDocument)
            .filter(
                EvidenceDocument.audit_id == audit_id,
                EvidenceDocument.section_id == section_id,
                EvidenceDocument.active.is_(True),
            )
            .order_by(EvidenceDocument.uploaded_at.desc(), EvidenceDocument.id.desc())
            .first()
        )

    def has_document(self, audit_id: int, section_id: str) -> bool:
        return self._latest(audit_id, section_id) is not None

    def get_document_meta(self, audit_id: int, section_id: str) -> Optional[DocumentMeta]:
        doc = self._latest(audit_id, section_id)
        if doc is None:
            return None
        return DocumentMeta(
            uploaded_at=doc.uploaded_at,
            file_id=doc.file_id,
            filename=doc.filename,
            size_bytes=doc.size_bytes,
        )


class SqlInventorySource:
    """ETL outcome view backed by the ``inventory_results`` table."""

    def __init__(self, db: Session):
        self.db = db

    def get_inventory_result(self, audit_id: int) -> Optional[InventoryResult]:
        row = self.db.query(InventoryIngestion).filter(InventoryIngestion.audit_id == audit_id).first()
        if row is None:
            return None
        return InventoryResult(
            processed=row.processed,
            conformant_count=row.conformant_count,
            non_conformant_count=row.non_conformant_count,
            score=row.score,
            critical_errors=list(row.critical_errors or []),
            warnings=list(row.warnings or []),
        )


class LoggingDispatcher:
    """Dispatcher that only writes events to the application log."""

    def dispatch(self, event: DomainEvent) -> None:
        logger.info(f"Event {event.name} for audit {event.audit_id}: {event.to_dict()}")


def publish(dispatcher: NotificationDispatcher, events: List[DomainEvent]) -> None:
    """Send committed events. Failures are logged, never raised."""
    for event in events:
        try:
            dispatcher.dispatch(event)
        except Exception as e:
            logger.error(f"Failed to dispatch {event.name} for audit {event.audit_id}: {e}", exc_info=True)
