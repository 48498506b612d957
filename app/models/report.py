"""Final audit report model (one per audit)."""
from sqlalchemy import Column, Integer, String, Text, JSON, Float, Boolean, ForeignKey

from app.core.database import Base, UTCDateTime
from app.models.enums import ComplianceTier, ReportConclusion, ReportApprovalState, enum_type


class Report(Base):
    """Consolidated report of an audit."""
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True)
    audit_id = Column(Integer, ForeignKey("audits.id"), nullable=False, unique=True, index=True)
    code = Column(String(20), nullable=False, unique=True)  # INF-YYYYMM-XXXXXX
    revision = Column(Integer, nullable=False, default=1)

    # Consolidated content
    total_score = Column(Float, nullable=False)
    section_scores = Column(JSON, nullable=False)
    compliance_tier = Column(enum_type(ComplianceTier), nullable=False, index=True)
    conclusion = Column(enum_type(ReportConclusion), nullable=False, index=True)
    findings_summary = Column(JSON, nullable=False)
    inventory_summary = Column(JSON, nullable=True)
    visits_summary = Column(JSON, nullable=False)
    requires_follow_up = Column(Boolean, nullable=False, default=False)
    content_digest = Column(String(64), nullable=False)
    generated_at = Column(UTCDateTime, nullable=False)

    # Approval and delivery
    approval_state = Column(
        enum_type(ReportApprovalState), nullable=False, default=ReportApprovalState.BORRADOR, index=True
    )
    approved_by = Column(String(64), nullable=True)
    approved_at = Column(UTCDateTime, nullable=True)
    approval_notes = Column(Text, nullable=True)
    delivered_at = Column(UTCDateTime, nullable=True)

    # Provider response (writable after delivery)
    provider_observations = Column(Text, nullable=True)
    provider_responded_at = Column(UTCDateTime, nullable=True)
