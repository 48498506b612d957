"""Schemas for validation records."""
from datetime import datetime
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field

from app.models.enums import ValidationType, ValidationResult, ValidationExecutor


class ValidationRecordCreate(BaseModel):
    """Request schema for appending a validation record."""
    validation_type: ValidationType
    result: ValidationResult
    section_id: Optional[str] = None
    document_id: Optional[str] = Field(None, max_length=64)
    score: Optional[float] = Field(None, ge=0, le=100)
    critical_errors: List[str] = []
    warnings: List[str] = []
    suggestions: List[str] = []
    details: Optional[Dict[str, Any]] = None
    items_total: Optional[int] = Field(None, ge=0)
    items_conformant: Optional[int] = Field(None, ge=0)
    items_non_conformant: Optional[int] = Field(None, ge=0)
    executor: ValidationExecutor = ValidationExecutor.SISTEMA


class ValidationRecordResponse(BaseModel):
    id: int
    audit_id: int
    document_id: Optional[str] = None
    section_id: Optional[str] = None
    validation_type: ValidationType
    result: ValidationResult
    score: Optional[float] = None
    critical_errors: List[str]
    warnings: List[str]
    suggestions: List[str]
    details: Optional[Dict[str, Any]] = None
    items_total: Optional[int] = None
    items_conformant: Optional[int] = None
    items_non_conformant: Optional[int] = None
    executor: ValidationExecutor
    executed_by: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ValidationSummaryResponse(BaseModel):
    total: int
    successful: int
    with_warnings: int
    failed: int
    average_score: float
    last_run_at: Optional[datetime] = None
