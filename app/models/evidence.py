"""
Evidence metadata mirrored from the external collaborators.

Binary storage lives in the Document Store and spreadsheet parsing in the ETL;
these tables only keep what the completeness gate and validators consume.
"""
from sqlalchemy import Column, Integer, String, Boolean, Float, JSON, ForeignKey, UniqueConstraint

from app.core.database import Base, UTCDateTime, utcnow


class EvidenceDocument(Base):
    """Metadata of one uploaded document for an audit section."""
    __tablename__ = "evidence_documents"

    id = Column(Integer, primary_key=True, index=True)
    audit_id = Column(Integer, ForeignKey("audits.id"), nullable=False, index=True)
    section_id = Column(String(40), nullable=False, index=True)
    file_id = Column(String(64), nullable=False)
    filename = Column(String(255), nullable=False)
    size_bytes = Column(Integer, nullable=True)
    uploaded_by = Column(String(64), nullable=True)
    uploaded_at = Column(UTCDateTime, nullable=False, default=utcnow)
    active = Column(Boolean, nullable=False, default=True)


class InventoryIngestion(Base):
    """Latest outcome of the equipment-inventory ETL for an audit."""
    __tablename__ = "inventory_results"
    __table_args__ = (
        UniqueConstraint("audit_id", name="uq_inventory_results_audit"),
    )

    id = Column(Integer, primary_key=True, index=True)
    audit_id = Column(Integer, ForeignKey("audits.id"), nullable=False, index=True)
    processed = Column(Boolean, nullable=False, default=False)
    conformant_count = Column(Integer, nullable=False, default=0)
    non_conformant_count = Column(Integer, nullable=False, default=0)
    score = Column(Float, nullable=True)
    critical_errors = Column(JSON, nullable=False, default=list)
    warnings = Column(JSON, nullable=False, default=list)
    processed_at = Column(UTCDateTime, nullable=False, default=utcnow)
