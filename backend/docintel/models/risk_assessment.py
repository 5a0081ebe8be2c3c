"""
Risk Assessment Models
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime, timezone
from enum import Enum

from docintel.models.inconsistency import Severity

class RiskCategory(str, Enum):
    DOCUMENT_QUALITY = "DOCUMENT_QUALITY"
    IMAGE_MANIPULATION = "IMAGE_MANIPULATION"
    DATA_INCONSISTENCY = "DATA_INCONSISTENCY"
    MISSING_INFORMATION = "MISSING_INFORMATION"
    ANOMALY_DETECTION = "ANOMALY_DETECTION"
    EXTRACTION_CONFIDENCE = "EXTRACTION_CONFIDENCE"

class Recommendation(str, Enum):
    APPROVE = "APPROVE"
    REQUEST_MORE_INFO = "REQUEST_MORE_INFO"
    ESCALATE = "ESCALATE"
    REJECT = "REJECT"

class FindingSource(str, Enum):
    INCONSISTENCY = "INCONSISTENCY"
    MANIPULATION = "MANIPULATION"
    TRACKED_ANOMALY = "TRACKED_ANOMALY"

class RiskFactor(BaseModel):
    category: RiskCategory
    severity: Severity
    score: float = Field(..., ge=0, le=100)
    weight: float
    description: str
    evidence: List[str] = Field(default_factory=list)
    affected_documents: List[str] = Field(default_factory=list)

class RiskFinding(BaseModel):
    """One signal counted towards escalation"""
    source: FindingSource
    type: str
    severity: Severity
    document_id: Optional[str] = None
    confidence: float = 0.0
    description: str = ""

class RiskAssessment(BaseModel):
    application_id: str
    overall: float = Field(..., ge=0, le=100)
    by_category: Dict[RiskCategory, float] = Field(default_factory=dict)
    factors: List[RiskFactor] = Field(default_factory=list)
    findings: List[RiskFinding] = Field(default_factory=list)
    recommendation: Recommendation
    escalation_required: bool = False
    escalation_reason: Optional[str] = None
    confidence: float = Field(..., ge=0, le=1)
    reasons: List[str] = Field(default_factory=list)
    assessed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        json_schema_extra = {
            "example": {
                "application_id": "app_abc123",
                "overall": 42.5,
                "recommendation": "REQUEST_MORE_INFO",
                "escalation_required": True,
                "escalation_reason": "1 critical finding(s) detected",
                "confidence": 0.74
            }
        }
