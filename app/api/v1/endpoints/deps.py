"""
Shared dependencies for v1 endpoints.
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.services.evaluation_service import EvaluationService
from app.services.evidence_service import EvidenceService
from app.services.reporting_service import ReportingService
from app.services.stage_controller import StageController
from app.services.validation_log import ValidationLog
from app.services.visit_service import VisitService


def get_stage_controller(db: Session = Depends(get_db)) -> StageController:
    return StageController(db)


def get_evaluation_service(db: Session = Depends(get_db)) -> EvaluationService:
    return EvaluationService(db)


def get_visit_service(db: Session = Depends(get_db)) -> VisitService:
    return VisitService(db)


def get_reporting_service(db: Session = Depends(get_db)) -> ReportingService:
    return ReportingService(db)


def get_evidence_service(db: Session = Depends(get_db)) -> EvidenceService:
    return EvidenceService(db)


def get_validation_log(db: Session = Depends(get_db)) -> ValidationLog:
    return ValidationLog(db)
