"""
Cross-Document Inconsistency Models
"""
from pydantic import BaseModel, Field
from typing import Any, List
from datetime import datetime, timezone
from enum import Enum

class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

# Sort order used for review queues: most severe first
SEVERITY_RANK = {
    Severity.CRITICAL: 1,
    Severity.HIGH: 2,
    Severity.MEDIUM: 3,
    Severity.LOW: 4,
}

class InconsistencyType(str, Enum):
    NAME_MISMATCH = "NAME_MISMATCH"
    ADDRESS_MISMATCH = "ADDRESS_MISMATCH"
    AMOUNT_DISCREPANCY = "AMOUNT_DISCREPANCY"
    DATE_CONFLICT = "DATE_CONFLICT"
    ID_NUMBER_MISMATCH = "ID_NUMBER_MISMATCH"
    BUSINESS_INFO_CONFLICT = "BUSINESS_INFO_CONFLICT"
    MISSING_CROSS_REFERENCE = "MISSING_CROSS_REFERENCE"

class ConflictingValue(BaseModel):
    field: str
    document_id: str
    value: Any = None
    confidence: float = 0.0

class Inconsistency(BaseModel):
    """A conflict between two or more documents of the same application"""
    type: InconsistencyType
    severity: Severity
    description: str
    affected_documents: List[str]
    conflicting_values: List[ConflictingValue] = Field(default_factory=list)
    evidence: List[str] = Field(default_factory=list)
    confidence: float = Field(..., ge=0, le=1)

    class Config:
        frozen = True

class DocumentComparison(BaseModel):
    document1_id: str
    document2_id: str
    similarity_score: float = Field(..., ge=0, le=1)
    conflicts: List[Inconsistency] = Field(default_factory=list)
    matching_fields: List[str] = Field(default_factory=list)
    conflicting_fields: List[str] = Field(default_factory=list)

class InconsistencyResult(BaseModel):
    application_id: str
    inconsistencies: List[Inconsistency] = Field(default_factory=list)
    overall_risk_score: float = Field(0.0, ge=0, le=100)
    document_comparisons: List[DocumentComparison] = Field(default_factory=list)
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
