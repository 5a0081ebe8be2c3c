"""
Document Models
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from enum import Enum

class DocumentType(str, Enum):
    W9 = "W9"
    BANK_STATEMENT = "BANK_STATEMENT"
    TAX_RETURN = "TAX_RETURN"
    BUSINESS_LICENSE = "BUSINESS_LICENSE"
    FINANCIAL_STATEMENT = "FINANCIAL_STATEMENT"
    IDENTIFICATION = "IDENTIFICATION"
    OTHER = "OTHER"

# MIME types that go through forensic manipulation checks
FORENSIC_MIME_PREFIXES = ("image/", "application/pdf")

class Document(BaseModel):
    """Uploaded loan-application document"""
    document_id: str = Field(..., description="Unique document identifier")
    application_id: str = Field(..., description="Owning application identifier")
    file_name: str = Field(..., description="Original file name")
    mime_type: str = Field("application/pdf", description="MIME type")
    document_type: Optional[DocumentType] = Field(None, description="Classified document type")
    uploaded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    ocr_text: Optional[str] = Field(None, description="Full OCR text, used by LLM extraction")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def supports_forensics(self) -> bool:
        return self.mime_type.startswith(FORENSIC_MIME_PREFIXES)

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "document_id": "doc_123456",
                "application_id": "app_abc123",
                "file_name": "w9.pdf",
                "mime_type": "application/pdf",
                "document_type": "W9",
                "uploaded_at": "2024-01-15T10:30:00Z"
            }
        }

class Application(BaseModel):
    """Loan application owning a set of documents"""
    application_id: str = Field(..., description="Unique application identifier")
    applicant_name: Optional[str] = None
    required_documents: List[DocumentType] = Field(default_factory=list)
    missing_documents: List[str] = Field(default_factory=list, description="Required document types not yet uploaded")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        use_enum_values = True

class DocumentAnalysis(BaseModel):
    """Stored outcome of one full document analysis"""
    document_id: str
    application_id: Optional[str] = None
    quality_score: float = Field(..., ge=0, le=100)
    extraction_confidence: float = Field(..., ge=0, le=1)
    extracted_data: Dict[str, Any] = Field(default_factory=dict, description="Personal/business/financial groups")
    is_manipulated: bool = False
    manipulation_confidence: float = 0.0
    analysis_time: float = Field(0.0, description="Seconds spent analyzing")
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
