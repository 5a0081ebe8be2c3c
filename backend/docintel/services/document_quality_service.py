"""
Document Quality Assessment Service

Scores image quality, completeness and readability of a document from its
layout analysis and turns the weak spots into rescan recommendations.
"""
from typing import List, Optional
import logging
import time

from docintel.core.config import settings
from docintel.models.analysis import (
    CompletenessMetrics,
    ImageQualityMetrics,
    LayoutAnalysis,
    QualityAssessment,
    QualityCategory,
    QualityFeedback,
    QualityRecommendation,
    ReadabilityMetrics,
)
from docintel.models.document import DocumentType
from docintel.models.inconsistency import Severity
from docintel.services.document_service import DocumentService
from docintel.services.layout_analysis_service import LayoutAnalysisProvider

logger = logging.getLogger(__name__)

MIN_PAGE_DIMENSION = 1000
MIN_CLARITY_SCORE = 0.6
MIN_CONFIDENCE = 0.7
MAX_SKEW_DEGREES = 5

REQUIRED_FIELDS = {
    DocumentType.W9: ["Name", "Business name", "Tax classification", "Address", "SSN", "EIN"],
    DocumentType.BANK_STATEMENT: ["Account number", "Statement date", "Balance"],
    DocumentType.TAX_RETURN: ["Name", "SSN", "Filing status", "Income"],
    DocumentType.BUSINESS_LICENSE: ["Business name", "License number", "Issue date"],
}

class DocumentQualityService:
    """Quality scoring over stored layout analyses"""

    def __init__(self, document_service: DocumentService, layout_provider: LayoutAnalysisProvider):
        self.document_service = document_service
        self.layout_provider = layout_provider
        self.min_acceptable_score = settings.MIN_ACCEPTABLE_QUALITY_SCORE

    async def assess_quality(self, document_id: str) -> QualityAssessment:
        """Full quality assessment of one document"""
        document = await self.document_service.get_document(document_id)
        layout = await self.layout_provider.get_layout(document_id)
        return self.assess_layout(layout, document.document_type)

    def assess_layout(self, layout: LayoutAnalysis, document_type: Optional[str] = None) -> QualityAssessment:
        start_time = time.monotonic()

        image_quality = self._assess_image_quality(layout)
        completeness = self._assess_completeness(layout, document_type)
        readability = self._assess_readability(layout)

        overall_score = round(
            image_quality.score * 0.3 + completeness.score * 0.4 + readability.score * 0.3
        )
        recommendations = self._generate_recommendations(image_quality, completeness, readability, overall_score)

        assessment = QualityAssessment(
            document_id=layout.document_id,
            overall_score=overall_score,
            image_quality=image_quality,
            completeness=completeness,
            readability=readability,
            recommendations=recommendations,
            is_acceptable=overall_score >= self.min_acceptable_score,
            assessment_time=time.monotonic() - start_time,
        )
        logger.info(
            f"Quality assessment for {layout.document_id}: score={overall_score}, "
            f"recommendations={len(recommendations)}"
        )
        return assessment

    async def get_real_time_feedback(self, document_id: str) -> QualityFeedback:
        """Quick readability-only check, used right after upload"""
        layout = await self.layout_provider.get_layout(document_id)
        readability = self._assess_readability(layout)
        has_content = len(layout.content) > 50
        quality_score = readability.score if has_content else 0

        issues: List[str] = []
        suggestions: List[str] = []
        if not has_content:
            issues.append("Document appears to be empty or unreadable")
            suggestions.append("Ensure the document is not blank and try rescanning")
        if readability.average_confidence < MIN_CONFIDENCE:
            issues.append("Text quality is poor")
            suggestions.append("Improve lighting and focus when scanning")
        if not layout.pages:
            issues.append("No pages detected")
            suggestions.append("Verify the file is a valid document")

        return QualityFeedback(
            document_id=document_id,
            quality_score=quality_score,
            can_proceed=quality_score >= self.min_acceptable_score,
            immediate_issues=issues,
            suggestions=suggestions,
        )

    def _assess_image_quality(self, layout: LayoutAnalysis) -> ImageQualityMetrics:
        resolution_ok = True
        orientation_ok = True
        angle = None
        if layout.pages:
            page = layout.pages[0]
            if page.width and page.height:
                resolution_ok = page.width > MIN_PAGE_DIMENSION and page.height > MIN_PAGE_DIMENSION
            angle = page.angle
            orientation_ok = abs(page.angle) < MAX_SKEW_DEGREES

        # Line confidence stands in for blur; lines without one count as clear
        confidences = [
            line.confidence if line.confidence is not None else 1.0
            for page in layout.pages
            for line in page.lines
            if line.content
        ]
        clarity = sum(confidences) / len(confidences) if confidences else None
        clarity_ok = clarity is None or clarity >= MIN_CLARITY_SCORE

        score = 100
        if not resolution_ok:
            score -= 30
        if not clarity_ok:
            score -= 40
        if not orientation_ok:
            score -= 20

        return ImageQualityMetrics(
            resolution_acceptable=resolution_ok,
            clarity_acceptable=clarity_ok,
            clarity_score=clarity,
            orientation_correct=orientation_ok,
            detected_angle=angle,
            score=max(0, score),
        )

    def _assess_completeness(self, layout: LayoutAnalysis, document_type: Optional[str]) -> CompletenessMetrics:
        has_all_pages = len(layout.pages) > 0
        missing_fields: List[str] = []

        if document_type:
            required = REQUIRED_FIELDS.get(DocumentType(document_type), [])
            keys = [kvp.key.lower() for kvp in layout.key_value_pairs if kvp.key]
            missing_fields = [field for field in required if not any(field.lower() in key for key in keys)]

        score = 100
        if not has_all_pages:
            score -= 50
        if missing_fields:
            score -= 30
        score -= len(missing_fields) * 5

        return CompletenessMetrics(
            has_all_pages=has_all_pages,
            has_required_fields=not missing_fields,
            missing_fields=missing_fields,
            score=max(0, score),
        )

    def _assess_readability(self, layout: LayoutAnalysis) -> ReadabilityMetrics:
        text_extractable = len(layout.content) > 0
        confidences = [kvp.confidence for kvp in layout.key_value_pairs]
        average = sum(confidences) / len(confidences) if confidences else 0.0
        low_confidence_areas = sum(1 for c in confidences if c < MIN_CONFIDENCE)

        score = 100
        if not text_extractable:
            score -= 50
        if average < MIN_CONFIDENCE:
            score -= 30
        score -= low_confidence_areas * 5

        return ReadabilityMetrics(
            text_extractable=text_extractable,
            average_confidence=average,
            low_confidence_areas=low_confidence_areas,
            score=max(0, score),
        )

    def _generate_recommendations(
        self,
        image_quality: ImageQualityMetrics,
        completeness: CompletenessMetrics,
        readability: ReadabilityMetrics,
        overall_score: int
    ) -> List[QualityRecommendation]:
        recommendations = []

        if not image_quality.resolution_acceptable:
            recommendations.append(QualityRecommendation(
                category=QualityCategory.RESOLUTION,
                priority=Severity.HIGH,
                issue="Document resolution is too low",
                suggestion="Rescan the document at a higher resolution (minimum 150 DPI recommended)",
                impact="Low resolution may result in inaccurate data extraction",
            ))
        if not image_quality.clarity_acceptable:
            recommendations.append(QualityRecommendation(
                category=QualityCategory.CLARITY,
                priority=Severity.HIGH,
                issue="Document image is unclear or blurry",
                suggestion="Ensure proper focus and lighting when scanning. Clean the scanner glass if needed.",
                impact="Poor clarity significantly reduces extraction accuracy",
            ))
        if not image_quality.orientation_correct:
            recommendations.append(QualityRecommendation(
                category=QualityCategory.ORIENTATION,
                priority=Severity.MEDIUM,
                issue=f"Document is rotated ({image_quality.detected_angle:.1f} degrees)",
                suggestion="Rotate the document to the correct orientation before uploading",
                impact="Incorrect orientation may cause extraction errors",
            ))
        if not completeness.has_all_pages:
            recommendations.append(QualityRecommendation(
                category=QualityCategory.COMPLETENESS,
                priority=Severity.HIGH,
                issue="Document appears to be incomplete",
                suggestion="Ensure all pages are included in the scan",
                impact="Missing pages will result in incomplete data",
            ))
        if completeness.missing_fields:
            recommendations.append(QualityRecommendation(
                category=QualityCategory.COMPLETENESS,
                priority=Severity.MEDIUM,
                issue=f"Missing required fields: {', '.join(completeness.missing_fields)}",
                suggestion="Verify that all required information is visible and legible in the document",
                impact="Missing fields may delay processing",
            ))
        if not readability.text_extractable:
            recommendations.append(QualityRecommendation(
                category=QualityCategory.READABILITY,
                priority=Severity.HIGH,
                issue="Unable to extract text from document",
                suggestion="Ensure the document is not a blank page or corrupted file",
                impact="No data can be extracted from unreadable documents",
            ))
        if readability.low_confidence_areas > 3:
            recommendations.append(QualityRecommendation(
                category=QualityCategory.READABILITY,
                priority=Severity.MEDIUM,
                issue="Multiple areas have low confidence scores",
                suggestion="Improve scan quality, especially in areas with small text or complex layouts",
                impact="Low confidence areas may require manual verification",
            ))
        if overall_score < self.min_acceptable_score:
            recommendations.append(QualityRecommendation(
                category=QualityCategory.COMPLETENESS,
                priority=Severity.HIGH,
                issue=f"Overall quality score ({overall_score}) is below acceptable threshold",
                suggestion="Consider rescanning the document with improved quality settings",
                impact="Low quality documents may be rejected or require manual processing",
            ))

        return recommendations
