"""Database models."""
from app.models.audit import Audit
from app.models.section_evaluation import SectionEvaluation
from app.models.validation_record import ValidationRecord
from app.models.visit import Visit
from app.models.finding import Finding
from app.models.report import Report
from app.models.activity_log import ActivityLog
from app.models.evidence import EvidenceDocument, InventoryIngestion

__all__ = [
    "Audit",
    "SectionEvaluation",
    "ValidationRecord",
    "Visit",
    "Finding",
    "Report",
    "ActivityLog",
    "EvidenceDocument",
    "InventoryIngestion",
]
