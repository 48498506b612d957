"""
Intake of evidence metadata pushed by the Document Store and the ETL.
"""
import logging
from typing import List, Optional

from app.core.auth import Actor
from app.core.database import utcnow
from app.models.enums import AuditStage, EvaluationState
from app.models.evidence import EvidenceDocument, InventoryIngestion
from app.models.section_evaluation import SectionEvaluation
from app.services import section_registry
from app.services.activity_service import ActivityAction, ResourceType, log_activity
from app.services.base import AuditBoundService
from app.services.collaborators import InventoryResult
from app.services.evaluation_service import EvaluationService, require_active
from app.services.validation_log import inventory_record

logger = logging.getLogger(__name__)


class EvidenceService(AuditBoundService):
    """Keeps the document and inventory mirrors of an audit up to date."""

    def list_documents(self, audit_id: int, section_id: Optional[str] = None) -> List[EvidenceDocument]:
        self.get_audit(audit_id)
        query = self.db.query(EvidenceDocument).filter(EvidenceDocument.audit_id == audit_id)
        if section_id:
            query = query.filter(EvidenceDocument.section_id == section_id)
        return query.order_by(EvidenceDocument.uploaded_at.desc(), EvidenceDocument.id.desc()).all()

    def register_document(
        self,
        audit_id: int,
        section_id: str,
        file_id: str,
        filename: str,
        actor: Actor,
        size_bytes: Optional[int] = None,
    ) -> EvidenceDocument:
        section_registry.get(section_id)
        with self.mutation(audit_id) as m:
            require_active(m.audit)
            document = EvidenceDocument(
                audit_id=audit_id,
                section_id=section_id,
                file_id=file_id,
                filename=filename,
                size_bytes=size_bytes,
                uploaded_by=actor.user_id,
                uploaded_at=utcnow(),
                active=True,
            )
            self.db.add(document)
            self.db.flush()
            log_activity(
                self.db, actor, ActivityAction.DOCUMENT_REGISTER, audit_id, ResourceType.DOCUMENT, document.id,
                {"section_id": section_id, "file_id": file_id, "filename": filename},
            )
        logger.info(f"Document {filename} registered for audit {audit_id} section {section_id}")
        return document

    def ingest_inventory(self, audit_id: int, result: InventoryResult, actor: Actor) -> InventoryIngestion:
        """
        Store the latest ETL outcome.

        Once evaluations are open, the outcome is also logged as a
        ``parque_informatico`` validation and feeds the automatic score.
        """
        with self.mutation(audit_id) as m:
            require_active(m.audit)
            row = self.db.query(InventoryIngestion).filter(InventoryIngestion.audit_id == audit_id).first()
            if row is None:
                row = InventoryIngestion(audit_id=audit_id)
                self.db.add(row)
            row.processed = result.processed
            row.conformant_count = result.conformant_count
            row.non_conformant_count = result.non_conformant_count
            row.score = result.score
            row.critical_errors = list(result.critical_errors)
            row.warnings = list(result.warnings)
            row.processed_at = utcnow()
            self.db.flush()

            if m.audit.stage >= AuditStage.VALIDACION_AUTOMATICA:
                self.db.add(inventory_record(audit_id, result))
                self.db.flush()
                evaluation = (
                    self.db.query(SectionEvaluation)
                    .filter(
                        SectionEvaluation.audit_id == audit_id,
                        SectionEvaluation.section_id == section_registry.PARQUE_INFORMATICO,
                        SectionEvaluation.state != EvaluationState.COMPLETADA,
                    )
                    .first()
                )
                if evaluation is not None:
                    EvaluationService(self.db).apply_automatic_score(evaluation)

            log_activity(
                self.db, actor, ActivityAction.INVENTORY_INGEST, audit_id, ResourceType.INVENTORY, row.id,
                {
                    "processed": result.processed,
                    "conformant": result.conformant_count,
                    "non_conformant": result.non_conformant_count,
                    "score": result.score,
                },
            )
        return row
