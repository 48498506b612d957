"""On-site visit model."""
from sqlalchemy import Column, Integer, String, Text, JSON, Float, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base, UTCDateTime
from app.models.enums import VisitState, LocationVerification, enum_type


class Visit(Base):
    """A site visit of one audit (one visit per site)."""
    __tablename__ = "visits"
    __table_args__ = (
        CheckConstraint(
            "visit_score IS NULL OR (visit_score >= 0 AND visit_score <= 100)",
            name="ck_visits_score",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    audit_id = Column(Integer, ForeignKey("audits.id"), nullable=False, index=True)
    auditor_id = Column(String(64), nullable=False, index=True)
    companion_auditor_id = Column(String(64), nullable=True)

    # Site identity
    site_code = Column(String(20), nullable=False, index=True)
    site_name = Column(String(200), nullable=False)
    site_address = Column(Text, nullable=True)
    reference_latitude = Column(Float, nullable=True)
    reference_longitude = Column(Float, nullable=True)

    # Scheduling
    scheduled_at = Column(UTCDateTime, nullable=False, index=True)
    confirmed_at = Column(UTCDateTime, nullable=True)
    state = Column(enum_type(VisitState), nullable=False, default=VisitState.PROGRAMADA, index=True)
    sections_to_verify = Column(JSON, nullable=False, default=list)
    cancellation_reason = Column(Text, nullable=True)

    # Execution
    started_at = Column(UTCDateTime, nullable=True)
    finished_at = Column(UTCDateTime, nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    arrival_latitude = Column(Float, nullable=True)
    arrival_longitude = Column(Float, nullable=True)
    departure_latitude = Column(Float, nullable=True)
    departure_longitude = Column(Float, nullable=True)

    # GPS verification
    distance_to_reference_m = Column(Float, nullable=True)
    location_verification = Column(
        enum_type(LocationVerification), nullable=False, default=LocationVerification.PENDIENTE
    )

    observations = Column(Text, nullable=True)
    visit_score = Column(Float, nullable=True)

    created_at = Column(UTCDateTime, server_default=func.now(), nullable=False)
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    findings = relationship("Finding", back_populates="visit", order_by="Finding.id")

