"""Site visit finding model."""
from sqlalchemy import Column, Integer, String, Text, Boolean, Float, ForeignKey, Index
from sqlalchemy.orm import relationship

from app.core.database import Base, UTCDateTime, utcnow
from app.models.enums import (
    FindingType,
    FindingCategory,
    FindingSeverity,
    RemediationTimeframe,
    FindingTrackingState,
    VerificationResult,
    enum_type,
)


class Finding(Base):
    """A discrete observation recorded during a site visit."""
    __tablename__ = "findings"
    __table_args__ = (
        Index("ix_findings_audit_created", "audit_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    visit_id = Column(Integer, ForeignKey("visits.id"), nullable=False, index=True)
    audit_id = Column(Integer, ForeignKey("audits.id"), nullable=False, index=True)
    auditor_id = Column(String(64), nullable=False)

    code = Column(String(30), nullable=False, unique=True, index=True)  # HAL-<ts36>-<rand>
    finding_type = Column(enum_type(FindingType), nullable=False, index=True)
    category = Column(enum_type(FindingCategory), nullable=False, index=True)
    severity = Column(enum_type(FindingSeverity), nullable=False, index=True)
    section_id = Column(String(40), nullable=False)  # registry id or "general"

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    evidence = Column(Text, nullable=True)
    corrective_action = Column(Text, nullable=True)

    recommended_timeframe = Column(enum_type(RemediationTimeframe), nullable=True)
    remediation_deadline = Column(UTCDateTime, nullable=True)  # set once at creation

    tracking_state = Column(
        enum_type(FindingTrackingState), nullable=False, default=FindingTrackingState.ABIERTO, index=True
    )

    communicated_to_provider = Column(Boolean, nullable=False, default=False)
    communicated_at = Column(UTCDateTime, nullable=True)
    provider_response = Column(Text, nullable=True)
    provider_responded_at = Column(UTCDateTime, nullable=True)

    verification_result = Column(
        enum_type(VerificationResult), nullable=False, default=VerificationResult.PENDIENTE
    )
    verification_notes = Column(Text, nullable=True)
    verified_at = Column(UTCDateTime, nullable=True)

    affects_score = Column(Boolean, nullable=False, default=True)
    deduction_points = Column(Float, nullable=False, default=0.0)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    visit = relationship("Visit", back_populates="findings")

    @property
    def is_open(self) -> bool:
        return self.tracking_state != FindingTrackingState.CERRADO
