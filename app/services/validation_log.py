"""
Append-only log of validation runs.

Appends are independent per record and take no audit lock.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, StorageError
from app.models.audit import Audit
from app.models.enums import ValidationExecutor, ValidationResult, ValidationType
from app.models.validation_record import ValidationRecord
from app.services import section_registry
from app.services.collaborators import DocumentMeta, InventoryResult

logger = logging.getLogger(__name__)

AUTOMATIC_EXECUTORS = [e for e in ValidationExecutor if e.is_automatic]


def inventory_record(audit_id: int, inventory: InventoryResult) -> ValidationRecord:
    """Synthetic ``parque_informatico`` record built from an ETL outcome."""
    if inventory.critical_errors:
        result = ValidationResult.FALLIDO
    elif inventory.warnings:
        result = ValidationResult.CON_ADVERTENCIAS
    elif not inventory.processed:
        result = ValidationResult.PENDIENTE
    else:
        result = ValidationResult.EXITOSO

    return ValidationRecord(
        audit_id=audit_id,
        section_id=section_registry.PARQUE_INFORMATICO,
        validation_type=ValidationType.PARQUE_INFORMATICO,
        result=result,
        score=inventory.score,
        critical_errors=list(inventory.critical_errors),
        warnings=list(inventory.warnings),
        suggestions=[],
        items_total=inventory.total_count,
        items_conformant=inventory.conformant_count,
        items_non_conformant=inventory.non_conformant_count,
        executor=ValidationExecutor.ETL,
        executed_by="etl",
    )


def format_check_record(audit_id: int, section_id: str, document: DocumentMeta) -> ValidationRecord:
    """Check a document's extension and size against the section definition."""
    section = section_registry.get(section_id)
    errors: List[str] = []
    if not section.accepts_extension(document.filename):
        errors.append(
            f"Format of {document.filename} not allowed for {section.id} "
            f"(expected {', '.join(section.allowed_formats)})"
        )
    if document.size_bytes is not None and document.size_bytes > section.max_size_mb * 1024 * 1024:
        errors.append(f"{document.filename} exceeds {section.max_size_mb} MB")

    return ValidationRecord(
        audit_id=audit_id,
        document_id=document.file_id,
        section_id=section_id,
        validation_type=ValidationType.FORMATO_ARCHIVO,
        result=ValidationResult.FALLIDO if errors else ValidationResult.EXITOSO,
        score=None,
        critical_errors=errors,
        warnings=[],
        suggestions=[],
        details={"filename": document.filename, "size_bytes": document.size_bytes},
        executor=ValidationExecutor.SISTEMA,
    )


class ValidationLog:
    """Reads and appends validation records."""

    def __init__(self, db: Session):
        self.db = db

    def append(self, record: ValidationRecord) -> int:
        """
        Persist a new record and return its id.

        Raises:
            NotFoundError: unknown audit or section
            StorageError: the record could not be written
        """
        if not self.db.query(Audit.id).filter(Audit.id == record.audit_id).first():
            raise NotFoundError("Audit", record.audit_id)
        if record.section_id is not None:
            section_registry.get(record.section_id)

        try:
            self.db.add(record)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to append validation record for audit {record.audit_id}: {e}", exc_info=True)
            raise StorageError(
                f"Could not store validation record for audit {record.audit_id}",
                {"audit_id": record.audit_id},
            ) from e

        self.db.refresh(record)
        logger.info(
            f"Validation {record.validation_type.value} on audit {record.audit_id} "
            f"section={record.section_id} -> {record.result.value} (score={record.score})"
        )
        return record.id

    def record_inventory_conformance(self, audit_id: int, inventory: InventoryResult) -> int:
        return self.append(inventory_record(audit_id, inventory))

    def record_format_check(self, audit_id: int, section_id: str, document: DocumentMeta) -> int:
        return self.append(format_check_record(audit_id, section_id, document))

    def get(self, record_id: int) -> ValidationRecord:
        record = self.db.query(ValidationRecord).filter(ValidationRecord.id == record_id).first()
        if not record:
            raise NotFoundError("ValidationRecord", record_id)
        return record

    def _query(
        self,
        audit_id: int,
        validation_type: Optional[ValidationType] = None,
        section_id: Optional[str] = None,
    ):
        query = self.db.query(ValidationRecord).filter(ValidationRecord.audit_id == audit_id)
        if validation_type is not None:
            query = query.filter(ValidationRecord.validation_type == validation_type)
        if section_id is not None:
            query = query.filter(ValidationRecord.section_id == section_id)
        return query.order_by(ValidationRecord.created_at.desc(), ValidationRecord.id.desc())

    def latest(
        self,
        audit_id: int,
        validation_type: Optional[ValidationType] = None,
        section_id: Optional[str] = None,
    ) -> Optional[ValidationRecord]:
        return self._query(audit_id, validation_type, section_id).first()

    def latest_automatic_scored(self, audit_id: int, section_id: str) -> Optional[ValidationRecord]:
        """Newest machine-produced record for a section that carries a score."""
        return (
            self._query(audit_id, section_id=section_id)
            .filter(
                ValidationRecord.executor.in_(AUTOMATIC_EXECUTORS),
                ValidationRecord.score.isnot(None),
            )
            .first()
        )

    def list_for_audit(
        self,
        audit_id: int,
        validation_type: Optional[ValidationType] = None,
        section_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[ValidationRecord]:
        """Newest first."""
        return self._query(audit_id, validation_type, section_id).offset(offset).limit(limit).all()

    def count(self, audit_id: int) -> int:
        return self.db.query(ValidationRecord).filter(ValidationRecord.audit_id == audit_id).count()

    def summarize(self, audit_id: int) -> Dict[str, Any]:
        records = self._query(audit_id).all()
        scores = [r.score for r in records if r.score is not None]
        return {
            "total": len(records),
            "successful": sum(1 for r in records if r.result == ValidationResult.EXITOSO),
            "with_warnings": sum(1 for r in records if r.result == ValidationResult.CON_ADVERTENCIAS),
            "failed": sum(1 for r in records if r.result == ValidationResult.FALLIDO),
            "average_score": round(sum(scores) / len(scores), 2) if scores else 0.0,
            "last_run_at": records[0].created_at if records else None,
        }

    def unresolved_failures(self, audit_id: int, sections: Iterable[str]) -> List[str]:
        """
        Sections whose newest automatic failure has no later manual record.

        A manual (``executor == usuario``) record for the same section created
        after the failure overrides it, whatever its own result.
        """
        unresolved = []
        for section_id in sections:
            failure = (
                self._query(audit_id, section_id=section_id)
                .filter(
                    ValidationRecord.executor.in_(AUTOMATIC_EXECUTORS),
                    ValidationRecord.result == ValidationResult.FALLIDO,
                )
                .first()
            )
            if failure is None:
                continue
            override = (
                self._query(audit_id, section_id=section_id)
                .filter(
                    ValidationRecord.executor == ValidationExecutor.USUARIO,
                    ValidationRecord.created_at > failure.created_at,
                )
                .first()
            )
            if override is None:
                unresolved.append(section_id)
        return unresolved
