"""
Layout analysis, quality and manipulation models
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum

from docintel.models.inconsistency import Severity

class LayoutLine(BaseModel):
    content: str = ""
    confidence: Optional[float] = Field(None, ge=0, le=1)
    polygon: List[float] = Field(default_factory=list, description="x1,y1,x2,y2,... corner coordinates")
    style: Optional[Dict[str, Any]] = Field(None, description="Appearance style reported by the OCR engine")

class LayoutPage(BaseModel):
    page_number: int = 1
    width: float = 0
    height: float = 0
    angle: float = 0
    lines: List[LayoutLine] = Field(default_factory=list)

class KeyValuePair(BaseModel):
    key: str
    value: Optional[str] = None
    confidence: float = Field(1.0, ge=0, le=1)

class FileMetadata(BaseModel):
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    producer: Optional[str] = None
    author: Optional[str] = None

class LayoutAnalysis(BaseModel):
    """OCR/layout output for one document, produced upstream"""
    document_id: str
    content: str = ""
    pages: List[LayoutPage] = Field(default_factory=list)
    key_value_pairs: List[KeyValuePair] = Field(default_factory=list)
    metadata: FileMetadata = Field(default_factory=FileMetadata)

class BoundingBox(BaseModel):
    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0
    page: int = 1

# Quality

class QualityCategory(str, Enum):
    RESOLUTION = "RESOLUTION"
    CLARITY = "CLARITY"
    ORIENTATION = "ORIENTATION"
    COMPLETENESS = "COMPLETENESS"
    READABILITY = "READABILITY"

class QualityRecommendation(BaseModel):
    category: QualityCategory
    priority: Severity
    issue: str
    suggestion: str
    impact: str

class ImageQualityMetrics(BaseModel):
    resolution_acceptable: bool = True
    clarity_acceptable: bool = True
    clarity_score: Optional[float] = None
    orientation_correct: bool = True
    detected_angle: Optional[float] = None
    score: int

class CompletenessMetrics(BaseModel):
    has_all_pages: bool
    has_required_fields: bool
    missing_fields: List[str] = Field(default_factory=list)
    score: int

class ReadabilityMetrics(BaseModel):
    text_extractable: bool
    average_confidence: float
    low_confidence_areas: int
    score: int

class QualityAssessment(BaseModel):
    document_id: str
    overall_score: int = Field(..., ge=0, le=100)
    image_quality: ImageQualityMetrics
    completeness: CompletenessMetrics
    readability: ReadabilityMetrics
    recommendations: List[QualityRecommendation] = Field(default_factory=list)
    is_acceptable: bool
    assessment_time: float = Field(0.0, description="Seconds")

class QualityFeedback(BaseModel):
    """Fast readability-only check used right after upload"""
    document_id: str
    quality_score: int
    can_proceed: bool
    immediate_issues: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)

# Manipulation

class ManipulationIndicatorType(str, Enum):
    CLONE_DETECTION = "CLONE_DETECTION"
    METADATA_INCONSISTENCY = "METADATA_INCONSISTENCY"
    COMPRESSION_ARTIFACTS = "COMPRESSION_ARTIFACTS"
    FONT_ANOMALY = "FONT_ANOMALY"
    QUALITY_INCONSISTENCY = "QUALITY_INCONSISTENCY"

class ManipulationIndicator(BaseModel):
    type: ManipulationIndicatorType
    description: str
    severity: Severity
    location: Optional[BoundingBox] = None
    evidence: List[str] = Field(default_factory=list)

class MetadataFindings(BaseModel):
    creation_date: Optional[datetime] = None
    modification_date: Optional[datetime] = None
    producer: Optional[str] = None
    author: Optional[str] = None
    inconsistency_details: List[str] = Field(default_factory=list)

    @property
    def has_inconsistencies(self) -> bool:
        return bool(self.inconsistency_details)

class QualityRegion(BaseModel):
    area: BoundingBox
    quality: float
    anomaly_score: float

class QualityMetrics(BaseModel):
    overall_quality: float
    has_quality_inconsistencies: bool = False
    regions: List[QualityRegion] = Field(default_factory=list)

class TextFindings(BaseModel):
    has_font_inconsistencies: bool = False
    suspicious_text_patterns: List[str] = Field(default_factory=list)

class CompressionArtifact(BaseModel):
    location: BoundingBox
    severity: Severity = Severity.MEDIUM
    description: str

class CloneDetection(BaseModel):
    source_region: BoundingBox
    cloned_region: BoundingBox
    similarity: float
    confidence: float

class StructuralFindings(BaseModel):
    compression_artifacts: List[CompressionArtifact] = Field(default_factory=list)
    clone_detections: List[CloneDetection] = Field(default_factory=list)

    @property
    def has_structural_anomalies(self) -> bool:
        return bool(self.compression_artifacts or self.clone_detections)

class ForensicData(BaseModel):
    metadata: MetadataFindings
    quality_metrics: QualityMetrics
    text_analysis: TextFindings
    structural_analysis: StructuralFindings

class ManipulationResult(BaseModel):
    document_id: str
    is_manipulated: bool
    confidence: float = Field(..., ge=0, le=1)
    indicators: List[ManipulationIndicator] = Field(default_factory=list)
    forensic_data: ForensicData
