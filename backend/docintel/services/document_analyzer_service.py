"""
Document Analyzer Service

Per-document analysis entry points used by the processing queue: a full
analysis (quality, extraction, manipulation), a quality check and a data
extraction.
"""
from typing import Any, Dict, Optional
import logging
import time

from docintel.core.exceptions import ExtractionError
from docintel.models.analysis import QualityAssessment
from docintel.models.document import DocumentAnalysis
from docintel.models.extraction import ExtractionResult
from docintel.models.processing import ProcessingJobType
from docintel.services.anomaly_tracking_service import AnomalyTrackingService
from docintel.services.document_quality_service import DocumentQualityService
from docintel.services.document_service import DocumentService
from docintel.services.field_extraction_service import FieldExtractionProvider, extract_field_groups
from docintel.services.layout_analysis_service import LayoutAnalysisProvider
from docintel.services.manipulation_detector import ManipulationDetector
from docintel.services.processing_queue_service import Analyzer

logger = logging.getLogger(__name__)

class DocumentAnalyzerService:
    """Runs the per-document analyzers and stores the combined outcome"""

    def __init__(
        self,
        document_service: DocumentService,
        layout_provider: LayoutAnalysisProvider,
        quality_service: DocumentQualityService,
        manipulation_detector: ManipulationDetector,
        extraction_provider: FieldExtractionProvider,
        anomaly_tracker: Optional[AnomalyTrackingService] = None
    ):
        self.document_service = document_service
        self.layout_provider = layout_provider
        self.quality_service = quality_service
        self.manipulation_detector = manipulation_detector
        self.extraction_provider = extraction_provider
        self.anomaly_tracker = anomaly_tracker

    def analyzers(self) -> Dict[ProcessingJobType, Analyzer]:
        """Queue analyzer for each job type"""
        return {
            ProcessingJobType.FULL_ANALYSIS: self.analyze_document,
            ProcessingJobType.QUALITY_CHECK: self.check_quality,
            ProcessingJobType.DATA_EXTRACTION: self.extract_data,
        }

    async def analyze_document(self, document_id: str) -> DocumentAnalysis:
        """
        Full analysis of one document

        Quality and manipulation are scored from the same layout analysis.
        Manipulation runs only for image and PDF uploads; its indicators are
        handed to the anomaly tracker when one is configured.
        """
        start_time = time.monotonic()
        document = await self.document_service.get_document(document_id)
        layout = await self.layout_provider.get_layout(document_id)

        quality = self.quality_service.assess_layout(layout, document.document_type)
        extraction = await self.extract_data(document_id)

        manipulation = None
        if document.supports_forensics():
            manipulation = self.manipulation_detector.analyze_layout(layout, uploaded_at=document.uploaded_at)

        extracted_data: Dict[str, Any] = {}
        if extraction.has_data():
            extracted_data = extraction.model_dump(mode="json", exclude={"document_id"}, exclude_none=True)

        analysis = DocumentAnalysis(
            document_id=document_id,
            application_id=document.application_id,
            quality_score=quality.overall_score,
            extraction_confidence=extraction.confidence,
            extracted_data=extracted_data,
            is_manipulated=manipulation.is_manipulated if manipulation else False,
            manipulation_confidence=manipulation.confidence if manipulation else 0.0,
            analysis_time=time.monotonic() - start_time,
        )
        if manipulation is not None and self.anomaly_tracker is not None:
            await self.anomaly_tracker.record_manipulation(document.application_id, manipulation)

        await self.document_service.save_analysis(analysis)

        logger.info(
            f"Analyzed {document_id}: quality={analysis.quality_score:g}, "
            f"extraction_confidence={analysis.extraction_confidence:.2f}, manipulated={analysis.is_manipulated}"
        )
        return analysis

    async def check_quality(self, document_id: str) -> QualityAssessment:
        return await self.quality_service.assess_quality(document_id)

    async def extract_data(self, document_id: str) -> ExtractionResult:
        result = await extract_field_groups(self.extraction_provider, document_id)
        if result is None:
            raise ExtractionError(f"No field group could be extracted from document {document_id}")
        return result
