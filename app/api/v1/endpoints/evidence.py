"""
Evidence intake endpoints, called by the Document Store and the ETL.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from app.core.auth import Actor, get_current_actor
from app.schemas.evidence import (
    DocumentRegisterRequest,
    DocumentResponse,
    InventoryIngestRequest,
    InventoryResponse,
)
from app.services.collaborators import InventoryResult
from app.services.evidence_service import EvidenceService
from app.api.v1.endpoints.deps import get_evidence_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{audit_id}/documents", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
def register_document(
    audit_id: int,
    request: DocumentRegisterRequest,
    actor: Actor = Depends(get_current_actor),
    service: EvidenceService = Depends(get_evidence_service),
):
    document = service.register_document(
        audit_id,
        request.section_id,
        request.file_id,
        request.filename,
        actor,
        size_bytes=request.size_bytes,
    )
    return DocumentResponse.model_validate(document)


@router.get("/{audit_id}/documents", response_model=List[DocumentResponse])
async def list_documents(
    audit_id: int,
    section_id: Optional[str] = Query(None, description="Filter by section"),
    service: EvidenceService = Depends(get_evidence_service),
):
    return [DocumentResponse.model_validate(d) for d in service.list_documents(audit_id, section_id)]


@router.put("/{audit_id}/inventory", response_model=InventoryResponse)
def ingest_inventory(
    audit_id: int,
    request: InventoryIngestRequest,
    actor: Actor = Depends(get_current_actor),
    service: EvidenceService = Depends(get_evidence_service),
):
    """Store the latest ETL outcome for the audit's IT inventory."""
    result = InventoryResult(**request.model_dump())
    return InventoryResponse.model_validate(service.ingest_inventory(audit_id, result, actor))
