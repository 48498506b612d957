"""Schemas for evidence pushed by the Document Store and the ETL."""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field


class DocumentRegisterRequest(BaseModel):
    section_id: str = Field(..., max_length=40)
    file_id: str = Field(..., min_length=1, max_length=64, description="Document Store file id")
    filename: str = Field(..., min_length=1, max_length=255)
    size_bytes: Optional[int] = Field(None, ge=0)


class DocumentResponse(BaseModel):
    id: int
    audit_id: int
    section_id: str
    file_id: str
    filename: str
    size_bytes: Optional[int] = None
    uploaded_by: Optional[str] = None
    uploaded_at: datetime
    active: bool

    model_config = {"from_attributes": True}


class InventoryIngestRequest(BaseModel):
    processed: bool
    conformant_count: int = Field(0, ge=0)
    non_conformant_count: int = Field(0, ge=0)
    score: Optional[float] = Field(None, ge=0, le=100)
    critical_errors: List[str] = []
    warnings: List[str] = []


class InventoryResponse(BaseModel):
    id: int
    audit_id: int
    processed: bool
    conformant_count: int
    non_conformant_count: int
    score: Optional[float] = None
    critical_errors: List[str]
    warnings: List[str]
    processed_at: datetime

    model_config = {"from_attributes": True}
