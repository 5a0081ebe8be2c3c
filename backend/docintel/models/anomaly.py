"""
Anomaly Tracking Models
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Union, Literal, Annotated
from datetime import datetime, timezone
from enum import Enum

from docintel.models.analysis import BoundingBox
from docintel.models.inconsistency import ConflictingValue, Severity

class AnomalyStatus(str, Enum):
    PENDING = "PENDING"
    REVIEWED = "REVIEWED"
    RESOLVED = "RESOLVED"
    FALSE_POSITIVE = "FALSE_POSITIVE"

TERMINAL_ANOMALY_STATUSES = frozenset({AnomalyStatus.RESOLVED, AnomalyStatus.FALSE_POSITIVE})

# Status a record may move to from its current status
ALLOWED_TRANSITIONS = {
    AnomalyStatus.PENDING: {AnomalyStatus.REVIEWED, AnomalyStatus.RESOLVED, AnomalyStatus.FALSE_POSITIVE},
    AnomalyStatus.REVIEWED: {AnomalyStatus.REVIEWED, AnomalyStatus.RESOLVED, AnomalyStatus.FALSE_POSITIVE},
    AnomalyStatus.RESOLVED: set(),
    AnomalyStatus.FALSE_POSITIVE: set(),
}

class InconsistencyEvidence(BaseModel):
    kind: Literal["inconsistency"] = "inconsistency"
    conflicting_values: List[ConflictingValue] = Field(default_factory=list)
    evidence: List[str] = Field(default_factory=list)
    affected_documents: List[str] = Field(default_factory=list)

class ManipulationEvidence(BaseModel):
    kind: Literal["manipulation"] = "manipulation"
    indicator_type: str
    evidence: List[str] = Field(default_factory=list)
    location: Optional[BoundingBox] = None

# Unknown shapes (older records, manual entries) fall back to a plain dict
AnomalyEvidence = Annotated[
    Union[
        Annotated[Union[InconsistencyEvidence, ManipulationEvidence], Field(discriminator="kind")],
        Dict[str, Any],
    ],
    Field(union_mode="left_to_right"),
]

class AuditEntry(BaseModel):
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    action: str
    performed_by: str
    details: str

class AnomalyCreate(BaseModel):
    application_id: str
    document_id: Optional[str] = None
    anomaly_type: str
    severity: Severity
    description: str
    evidence: Optional[AnomalyEvidence] = None
    confidence: float = Field(..., ge=0, le=1)

class AnomalyRecord(BaseModel):
    """Persisted, reviewable finding"""
    anomaly_id: str = Field(..., description="Unique anomaly identifier")
    application_id: str
    document_id: Optional[str] = None
    anomaly_type: str = Field(..., description="Inconsistency or manipulation indicator type")
    severity: Severity
    description: str
    evidence: Optional[AnomalyEvidence] = None
    confidence: float = Field(..., ge=0, le=1)
    status: AnomalyStatus = AnomalyStatus.PENDING
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    audit_trail: List[AuditEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return AnomalyStatus(self.status) in TERMINAL_ANOMALY_STATUSES

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "anomaly_id": "5f0c2b7e-9d7a-4c1e-8a57-3f1b3a9e4d21",
                "application_id": "app_abc123",
                "document_id": "doc_123456",
                "anomaly_type": "ID_NUMBER_MISMATCH",
                "severity": "CRITICAL",
                "description": "Identification numbers do not match",
                "evidence": {"kind": "inconsistency", "evidence": ["SSN/EIN does not match across documents"]},
                "confidence": 0.95,
                "status": "PENDING"
            }
        }

class AnomalyReview(BaseModel):
    status: AnomalyStatus
    reviewed_by: str
    resolution_notes: Optional[str] = None

class AnomalyStatistics(BaseModel):
    total: int = 0
    by_severity: Dict[str, int] = Field(default_factory=lambda: {s.value: 0 for s in Severity})
    by_status: Dict[str, int] = Field(default_factory=lambda: {s.value: 0 for s in AnomalyStatus})
    by_type: Dict[str, int] = Field(default_factory=dict)
    avg_confidence: float = 0.0

class AnomalyWorkflowResult(BaseModel):
    anomalies_created: int
    anomalies: List[AnomalyRecord] = Field(default_factory=list)
    summary: str

class ReviewWorkflowResult(BaseModel):
    anomaly: AnomalyRecord
    audit_trail: List[AuditEntry] = Field(default_factory=list)

class BulkReviewFailure(BaseModel):
    anomaly_id: str
    error: str

class BulkReviewResult(BaseModel):
    results: List[ReviewWorkflowResult] = Field(default_factory=list)
    failures: List[BulkReviewFailure] = Field(default_factory=list)
