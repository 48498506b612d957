"""Append-only validation record model."""
from sqlalchemy import Column, Integer, String, JSON, Float, ForeignKey, Index, event

from app.core.database import Base, UTCDateTime, utcnow
from app.models.enums import ValidationType, ValidationResult, ValidationExecutor, enum_type


class ValidationRecord(Base):
    """One automatic or manual validation run. Never updated, never deleted."""
    __tablename__ = "validation_records"
    __table_args__ = (
        Index("ix_validation_records_audit_created", "audit_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    audit_id = Column(Integer, ForeignKey("audits.id"), nullable=False, index=True)
    document_id = Column(String(64), nullable=True, index=True)
    section_id = Column(String(40), nullable=True, index=True)

    validation_type = Column(enum_type(ValidationType), nullable=False, index=True)
    result = Column(enum_type(ValidationResult), nullable=False)
    score = Column(Float, nullable=True)

    critical_errors = Column(JSON, nullable=False, default=list)
    warnings = Column(JSON, nullable=False, default=list)
    suggestions = Column(JSON, nullable=False, default=list)
    details = Column(JSON, nullable=True)

    # Equipment inventory counters (parque_informatico records)
    items_total = Column(Integer, nullable=True)
    items_conformant = Column(Integer, nullable=True)
    items_non_conformant = Column(Integer, nullable=True)

    executor = Column(enum_type(ValidationExecutor), nullable=False, default=ValidationExecutor.SISTEMA)
    executed_by = Column(String(64), nullable=True)
    # Set in Python so ordering has sub-second resolution on every backend
    created_at = Column(UTCDateTime, nullable=False, default=utcnow, index=True)


@event.listens_for(ValidationRecord, "before_update")
def _refuse_update(mapper, connection, target):
    raise ValueError(f"ValidationRecord {target.id} is immutable")


@event.listens_for(ValidationRecord, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise ValueError(f"ValidationRecord {target.id} cannot be deleted")
