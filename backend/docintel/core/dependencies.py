"""
Service wiring

Builds every service explicitly from one database handle so tests and scripts
can swap collaborators.
"""
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional
import logging

from docintel.core.config import settings
from docintel.core.database import close_db, get_database, init_db
from docintel.services.anomaly_repository import AnomalyRepository, TransactionFactory
from docintel.services.anomaly_tracking_service import AnomalyTrackingService
from docintel.services.document_analyzer_service import DocumentAnalyzerService
from docintel.services.document_quality_service import DocumentQualityService
from docintel.services.document_service import DocumentService
from docintel.services.event_sink import EventSink
from docintel.services.field_extraction_service import FieldExtractionProvider, FieldExtractionService
from docintel.services.inconsistency_detector import InconsistencyDetector
from docintel.services.layout_analysis_service import StoredLayoutAnalysisProvider
from docintel.services.llm_extraction_service import LLMExtractionService
from docintel.services.manipulation_detector import ManipulationDetector
from docintel.services.processing_queue_service import ProcessingQueueService
from docintel.services.risk_assessment_service import RiskAssessmentService

logger = logging.getLogger(__name__)

@dataclass
class Services:
    document_service: DocumentService
    layout_provider: StoredLayoutAnalysisProvider
    extraction_provider: FieldExtractionProvider
    quality_service: DocumentQualityService
    manipulation_detector: ManipulationDetector
    inconsistency_detector: InconsistencyDetector
    anomaly_repository: AnomalyRepository
    anomaly_tracker: AnomalyTrackingService
    risk_assessment: RiskAssessmentService
    document_analyzer: DocumentAnalyzerService
    processing_queue: ProcessingQueueService

def build_services(
    db,
    event_sink: Optional[EventSink] = None,
    extraction_backend: Optional[str] = None,
    transaction_factory: Optional[TransactionFactory] = None
) -> Services:
    """Construct the full service graph on top of a motor database"""
    document_service = DocumentService(db)
    layout_provider = StoredLayoutAnalysisProvider(db)

    backend = (extraction_backend or settings.EXTRACTION_BACKEND).lower()
    if backend == "llm":
        extraction_provider = LLMExtractionService(document_service)
    elif backend == "layout":
        extraction_provider = FieldExtractionService(layout_provider)
    else:
        raise ValueError(f"Unknown extraction backend: {backend}")
    logger.info(f"Using {backend} field extraction")

    quality_service = DocumentQualityService(document_service, layout_provider)
    manipulation_detector = ManipulationDetector(document_service, layout_provider)
    inconsistency_detector = InconsistencyDetector(document_service, extraction_provider)
    anomaly_repository = AnomalyRepository(db, transaction_factory)
    anomaly_tracker = AnomalyTrackingService(anomaly_repository, manipulation_detector, inconsistency_detector)
    risk_assessment = RiskAssessmentService(
        document_service, manipulation_detector, inconsistency_detector, anomaly_repository
    )
    document_analyzer = DocumentAnalyzerService(
        document_service,
        layout_provider,
        quality_service,
        manipulation_detector,
        extraction_provider,
        anomaly_tracker,
    )
    processing_queue = ProcessingQueueService(document_analyzer.analyzers(), event_sink=event_sink)

    return Services(
        document_service=document_service,
        layout_provider=layout_provider,
        extraction_provider=extraction_provider,
        quality_service=quality_service,
        manipulation_detector=manipulation_detector,
        inconsistency_detector=inconsistency_detector,
        anomaly_repository=anomaly_repository,
        anomaly_tracker=anomaly_tracker,
        risk_assessment=risk_assessment,
        document_analyzer=document_analyzer,
        processing_queue=processing_queue,
    )

@asynccontextmanager
async def service_context(**overrides):
    """Connect to MongoDB, yield the wired services, then shut everything down"""
    await init_db()
    services = build_services(await get_database(), **overrides)
    try:
        yield services
    finally:
        await services.processing_queue.shutdown()
        await close_db()
