"""
Activity log model for audit trail.
"""
from sqlalchemy import Column, Integer, String, JSON, ForeignKey

from app.core.database import Base, UTCDateTime, utcnow


class ActivityLog(Base):
    """Activity log model for tracking every mutation of an audit."""
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(UTCDateTime, nullable=False, default=utcnow, index=True)

    # Actor information (trusted identity headers)
    actor_id = Column(String(64), nullable=False, index=True)
    actor_role = Column(String(50), nullable=False)  # Role at time of action

    # Action details
    action = Column(String(100), nullable=False, index=True)  # e.g., "stage_advanced", "finding_registered"
    resource_type = Column(String(50), nullable=True, index=True)  # e.g., "audit", "visit", "report"
    resource_id = Column(Integer, nullable=True, index=True)
    audit_id = Column(Integer, ForeignKey("audits.id"), nullable=True, index=True)

    details = Column(JSON, nullable=True)
