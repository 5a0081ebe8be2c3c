"""
Batch Processing Job Models
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Any
from datetime import datetime, timezone
from enum import Enum

from docintel.core.config import settings

class ProcessingJobType(str, Enum):
    FULL_ANALYSIS = "FULL_ANALYSIS"
    QUALITY_CHECK = "QUALITY_CHECK"
    DATA_EXTRACTION = "DATA_EXTRACTION"

class JobStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    TIMEOUT = "TIMEOUT"

TERMINAL_JOB_STATUSES = frozenset({
    JobStatus.COMPLETED,
    JobStatus.FAILED,
    JobStatus.CANCELLED,
    JobStatus.TIMEOUT,
})

class ProcessingResult(BaseModel):
    document_id: str
    success: bool = True
    data: Any = None
    processing_time: float = Field(..., description="Seconds spent on the successful attempt")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class JobError(BaseModel):
    document_id: str
    error: str
    attempts: int = 0
    processing_time: float = 0.0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class QueueOptions(BaseModel):
    """Per-job execution limits; defaults come from settings"""
    max_concurrent: int = Field(default_factory=lambda: settings.QUEUE_MAX_CONCURRENT, ge=1)
    timeout: float = Field(default_factory=lambda: settings.QUEUE_TIMEOUT_SECONDS, gt=0, description="Whole-job timeout in seconds")
    retry_attempts: int = Field(default_factory=lambda: settings.QUEUE_RETRY_ATTEMPTS, ge=0)
    retry_delay: float = Field(default_factory=lambda: settings.QUEUE_RETRY_DELAY_SECONDS, ge=0, description="Base backoff in seconds")

class ProcessingJob(BaseModel):
    id: str
    document_ids: List[str]
    type: ProcessingJobType
    status: JobStatus = JobStatus.PENDING
    progress: int = Field(0, ge=0, le=100)
    results: List[ProcessingResult] = Field(default_factory=list)
    errors: List[JobError] = Field(default_factory=list)
    total_documents: int
    processed_documents: int = 0
    failed_documents: int = 0
    estimated_time_remaining: Optional[float] = Field(None, description="Seconds")
    options: QueueOptions = Field(default_factory=QueueOptions)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    @property
    def completed_count(self) -> int:
        return self.processed_documents + self.failed_documents

class JobEventType(str, Enum):
    PROGRESS = "batch.progress"
    COMPLETED = "batch.completed"
    FAILED = "batch.failed"
    CANCELLED = "batch.cancelled"

class JobEvent(BaseModel):
    type: JobEventType
    job_id: str
    status: JobStatus
    progress: int
    processed_documents: int
    failed_documents: int
    total_documents: int
    estimated_time_remaining: Optional[float] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
