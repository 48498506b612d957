"""
Audit engagement model: the root of every other audit entity.
"""
from sqlalchemy import Column, Integer, String, Text, JSON, Float, CheckConstraint
from sqlalchemy.sql import func

from app.core.database import Base, UTCDateTime
from app.models.enums import AuditStage, AuditStatus, ComplianceTier, enum_type


DEFAULT_STAGE_CONFIG = {
    "etapa_1": {"dias_limite": 5, "notificaciones": True},
    "etapa_2": {"dias_limite": 15},
    "etapa_3": {"dias_limite": 10, "requiere_validacion_manual": True},
    "etapa_4": {"dias_limite": 7, "requiere_ia": False},
    "etapa_5": {"dias_limite": 3, "modalidad": "presencial"},
    "etapa_6": {"dias_limite": 5},
    "etapa_7": {"dias_limite": 10, "permite_observaciones": True},
    "etapa_8": {"dias_limite": 5},
}


class Audit(Base):
    """One audit engagement of a provider."""
    __tablename__ = "audits"
    __table_args__ = (
        CheckConstraint("stage >= 1 AND stage <= 8", name="ck_audits_stage_range"),
    )

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(20), nullable=False, unique=True, index=True)  # AUD-YYYYMM-XXXXXX
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    stage = Column(Integer, nullable=False, default=int(AuditStage.NOTIFICACION), index=True)
    status = Column(enum_type(AuditStatus), nullable=False, default=AuditStatus.EN_CURSO, index=True)
    status_reason = Column(Text, nullable=True)  # suspend / cancel reason

    # External identities (identity provider ids)
    provider_id = Column(String(64), nullable=False, index=True)
    primary_auditor_id = Column(String(64), nullable=False, index=True)
    secondary_auditor_id = Column(String(64), nullable=True)

    scheduled_date = Column(UTCDateTime, nullable=False, index=True)
    deadline = Column(UTCDateTime, nullable=False)
    stage_config = Column(JSON, nullable=False, default=lambda: dict(DEFAULT_STAGE_CONFIG))

    notification_sent_at = Column(UTCDateTime, nullable=True)
    stage_entered_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    archived_at = Column(UTCDateTime, nullable=True)  # soft archive, audits are never deleted

    # Set when the final report is consolidated
    total_score = Column(Float, nullable=True)
    compliance_tier = Column(enum_type(ComplianceTier), nullable=True)

    created_by = Column(String(64), nullable=True)
    created_at = Column(UTCDateTime, server_default=func.now(), nullable=False)
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # Optimistic concurrency across processes
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @property
    def current_stage(self) -> AuditStage:
        return AuditStage(self.stage)

    @property
    def is_active(self) -> bool:
        return self.status == AuditStatus.EN_CURSO

    @property
    def progress_percentage(self) -> float:
        if self.status == AuditStatus.COMPLETADA:
            return 100.0
        return round((self.stage - 1) / len(AuditStage) * 100, 2)
