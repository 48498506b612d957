"""Per-section evaluation of an audit."""
from sqlalchemy import Column, Integer, String, Text, Boolean, Float, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.sql import func

from app.core.database import Base, UTCDateTime
from app.models.enums import EvaluationState, EvaluationResult, enum_type


class SectionEvaluation(Base):
    """Evaluation of one registry section within one audit."""
    __tablename__ = "section_evaluations"
    __table_args__ = (
        UniqueConstraint("audit_id", "section_id", name="uq_section_evaluations_audit_section"),
        CheckConstraint("score IS NULL OR (score >= 0 AND score <= 100)", name="ck_section_evaluations_score"),
        CheckConstraint(
            "automatic_score IS NULL OR (automatic_score >= 0 AND automatic_score <= 100)",
            name="ck_section_evaluations_automatic_score",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    audit_id = Column(Integer, ForeignKey("audits.id"), nullable=False, index=True)
    section_id = Column(String(40), nullable=False, index=True)
    obligatory = Column(Boolean, nullable=False, default=False)

    state = Column(enum_type(EvaluationState), nullable=False, default=EvaluationState.PENDIENTE, index=True)
    result = Column(enum_type(EvaluationResult), nullable=True, index=True)
    score = Column(Float, nullable=True)
    automatic_score = Column(Float, nullable=True)

    auditor_id = Column(String(64), nullable=True, index=True)
    requires_site_visit = Column(Boolean, nullable=False, default=False)
    clarifications_pending = Column(Boolean, nullable=False, default=False)
    queries_count = Column(Integer, nullable=False, default=0)

    auditor_comments = Column(Text, nullable=True)
    provider_response = Column(Text, nullable=True)

    evaluation_started_at = Column(UTCDateTime, nullable=True)
    evaluation_finished_at = Column(UTCDateTime, nullable=True)
    evaluation_minutes = Column(Integer, nullable=True)

    created_at = Column(UTCDateTime, server_default=func.now(), nullable=False)
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def is_resolved(self) -> bool:
        return self.state == EvaluationState.COMPLETADA
