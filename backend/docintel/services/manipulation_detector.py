"""
Image Manipulation Detector

Forensic heuristics over a document's layout analysis: file metadata, per-line
OCR confidence, text patterns and duplicated regions.
"""
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional
import json
import logging
import re

from docintel.core.config import settings
from docintel.models.analysis import (
    BoundingBox,
    CloneDetection,
    CompressionArtifact,
    ForensicData,
    LayoutAnalysis,
    LayoutLine,
    LayoutPage,
    ManipulationIndicator,
    ManipulationIndicatorType,
    ManipulationResult,
    MetadataFindings,
    QualityMetrics,
    QualityRegion,
    StructuralFindings,
    TextFindings,
)
from docintel.models.inconsistency import Severity
from docintel.services.document_service import DocumentService
from docintel.services.layout_analysis_service import LayoutAnalysisProvider

logger = logging.getLogger(__name__)

METADATA_WEIGHT = 0.25
QUALITY_WEIGHT = 0.30
TEXT_WEIGHT = 0.20
STRUCTURAL_WEIGHT = 0.25

EDITING_SOFTWARE = ("photoshop", "gimp", "paint.net", "pixlr")
QUALITY_VARIANCE_THRESHOLD = 400
LOW_QUALITY_LINE = 60
MAX_FONT_STYLES = 5

_SPECIAL_CHARS_RE = re.compile(r"[^a-zA-Z0-9\s.,;:!?-]")
_REPEATED_CHAR_RE = re.compile(r"(.)\1{5,}")

def _line_box(line: LayoutLine, page_number: int) -> BoundingBox:
    p = line.polygon
    if len(p) >= 6:
        return BoundingBox(x=p[0], y=p[1], width=p[2] - p[0], height=p[5] - p[1], page=page_number)
    return BoundingBox(page=page_number)

def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

def _line_quality(line: LayoutLine) -> float:
    return (line.confidence or 0) * 100

def has_unusual_character_pattern(text: str) -> bool:
    if not text:
        return False
    if len(_SPECIAL_CHARS_RE.findall(text)) / len(text) > 0.3:
        return True
    return bool(_REPEATED_CHAR_RE.search(text))

class ManipulationDetector:
    """Scores how likely a document image was tampered with"""

    def __init__(self, document_service: DocumentService, layout_provider: LayoutAnalysisProvider):
        self.document_service = document_service
        self.layout_provider = layout_provider
        self.threshold = settings.MANIPULATION_THRESHOLD

    async def detect_manipulation(self, document_id: str) -> ManipulationResult:
        logger.info(f"Starting image manipulation detection for {document_id}")
        document = await self.document_service.get_document(document_id)
        layout = await self.layout_provider.get_layout(document_id)
        result = self.analyze_layout(layout, uploaded_at=document.uploaded_at)
        logger.info(
            f"Manipulation detection for {document_id}: manipulated={result.is_manipulated}, "
            f"confidence={result.confidence:.2f}, indicators={len(result.indicators)}"
        )
        return result

    def analyze_layout(self, layout: LayoutAnalysis, uploaded_at: Optional[datetime] = None) -> ManipulationResult:
        forensic_data = ForensicData(
            metadata=self._analyze_metadata(layout, uploaded_at),
            quality_metrics=self._analyze_quality(layout),
            text_analysis=self._analyze_text(layout),
            structural_analysis=self._analyze_structure(layout),
        )
        indicators = self._detect_indicators(forensic_data)
        confidence = self._calculate_confidence(forensic_data, indicators)
        return ManipulationResult(
            document_id=layout.document_id,
            is_manipulated=confidence >= self.threshold,
            confidence=confidence,
            indicators=indicators,
            forensic_data=forensic_data,
        )

    def _analyze_metadata(self, layout: LayoutAnalysis, uploaded_at: Optional[datetime]) -> MetadataFindings:
        meta = layout.metadata
        created, modified, uploaded_at = _as_utc(meta.created_at), _as_utc(meta.modified_at), _as_utc(uploaded_at)
        details = []

        if created and modified and modified < created:
            details.append("Modification date is before creation date")

        if meta.producer and any(sw in meta.producer.lower() for sw in EDITING_SOFTWARE):
            details.append(f"Document created/modified with image editing software: {meta.producer}")

        if created and uploaded_at and created > uploaded_at:
            details.append("Document creation date is after upload date")

        return MetadataFindings(
            creation_date=meta.created_at,
            modification_date=meta.modified_at,
            producer=meta.producer,
            author=meta.author,
            inconsistency_details=details,
        )

    def _page_quality(self, page: LayoutPage) -> float:
        quality = 100
        if len(page.lines) < 5:
            quality -= 20
        if page.lines:
            avg_confidence = sum(line.confidence or 0 for line in page.lines) / len(page.lines)
            if avg_confidence < 0.7:
                quality -= 30
            elif avg_confidence < 0.85:
                quality -= 15
        return max(0, quality)

    def _analyze_quality(self, layout: LayoutAnalysis) -> QualityMetrics:
        regions = []
        inconsistent = False

        for page in layout.pages:
            if not page.lines:
                continue
            qualities = [_line_quality(line) for line in page.lines]
            mean = sum(qualities) / len(qualities)
            variance = sum((q - mean) ** 2 for q in qualities) / len(qualities)
            if variance > QUALITY_VARIANCE_THRESHOLD:
                inconsistent = True

            for line, quality in zip(page.lines, qualities):
                if quality < LOW_QUALITY_LINE:
                    regions.append(QualityRegion(
                        area=_line_box(line, page.page_number),
                        quality=quality,
                        anomaly_score=(100 - quality) / 100,
                    ))

        overall = (
            sum(self._page_quality(page) for page in layout.pages) / len(layout.pages)
            if layout.pages else 0
        )
        return QualityMetrics(overall_quality=overall, has_quality_inconsistencies=inconsistent, regions=regions)

    def _analyze_text(self, layout: LayoutAnalysis) -> TextFindings:
        patterns: List[str] = []
        styles = set()
        inconsistent = False

        for page in layout.pages:
            for line in page.lines:
                if line.style:
                    styles.add(json.dumps(line.style, sort_keys=True))

                content = line.content.strip()
                if not content:
                    continue
                # Same 20-character opening on two lines
                if len(content) > 10:
                    prefix = content[:20]
                    if prefix in patterns:
                        inconsistent = True
                    else:
                        patterns.append(prefix)
                if has_unusual_character_pattern(content):
                    patterns.append(f"Unusual pattern: {content[:30]}")

        if len(styles) > MAX_FONT_STYLES:
            inconsistent = True

        return TextFindings(has_font_inconsistencies=inconsistent, suspicious_text_patterns=patterns[:10])

    def _analyze_structure(self, layout: LayoutAnalysis) -> StructuralFindings:
        artifacts: List[CompressionArtifact] = []
        clones: List[CloneDetection] = []

        for page in layout.pages:
            if not page.lines:
                continue
            avg_confidence = sum(line.confidence or 0 for line in page.lines) / len(page.lines)
            for line in page.lines:
                if line.confidence and line.confidence < avg_confidence - 0.3:
                    artifacts.append(CompressionArtifact(
                        location=_line_box(line, page.page_number),
                        severity=Severity.MEDIUM,
                        description=f"Low confidence region ({line.confidence * 100:.1f}%) compared to page average",
                    ))
            if len(page.lines) > 1:
                clones.extend(self._detect_cloned_regions(page))

        return StructuralFindings(compression_artifacts=artifacts[:20], clone_detections=clones[:10])

    def _detect_cloned_regions(self, page: LayoutPage) -> List[CloneDetection]:
        groups: Dict[str, List[LayoutLine]] = defaultdict(list)
        for line in page.lines:
            normalized = line.content.strip().lower()
            if len(normalized) > 20:
                groups[normalized].append(line)

        clones = []
        for lines in groups.values():
            for duplicate in lines[1:]:
                clones.append(CloneDetection(
                    source_region=_line_box(lines[0], page.page_number),
                    cloned_region=_line_box(duplicate, page.page_number),
                    similarity=1.0,
                    confidence=0.85,
                ))
        return clones

    def _detect_indicators(self, data: ForensicData) -> List[ManipulationIndicator]:
        indicators = []

        if data.metadata.has_inconsistencies:
            indicators.append(ManipulationIndicator(
                type=ManipulationIndicatorType.METADATA_INCONSISTENCY,
                description="Document metadata contains suspicious inconsistencies",
                severity=Severity.HIGH,
                evidence=data.metadata.inconsistency_details,
            ))

        if data.quality_metrics.has_quality_inconsistencies:
            indicators.append(ManipulationIndicator(
                type=ManipulationIndicatorType.QUALITY_INCONSISTENCY,
                description="Document has regions with significantly different quality levels",
                severity=Severity.MEDIUM,
                evidence=[
                    f"{len(data.quality_metrics.regions)} low-quality regions detected",
                    f"Overall quality: {data.quality_metrics.overall_quality:.1f}%",
                ],
            ))

        if data.text_analysis.has_font_inconsistencies:
            indicators.append(ManipulationIndicator(
                type=ManipulationIndicatorType.FONT_ANOMALY,
                description="Inconsistent font usage detected across document",
                severity=Severity.MEDIUM,
                evidence=data.text_analysis.suspicious_text_patterns[:5],
            ))

        artifacts = data.structural_analysis.compression_artifacts
        if artifacts:
            has_high = any(a.severity == Severity.HIGH for a in artifacts)
            indicators.append(ManipulationIndicator(
                type=ManipulationIndicatorType.COMPRESSION_ARTIFACTS,
                description="Compression artifacts detected indicating possible manipulation",
                severity=Severity.HIGH if has_high else Severity.MEDIUM,
                location=artifacts[0].location,
                evidence=[a.description for a in artifacts[:5]],
            ))

        clones = data.structural_analysis.clone_detections
        if clones:
            indicators.append(ManipulationIndicator(
                type=ManipulationIndicatorType.CLONE_DETECTION,
                description="Duplicated content regions detected",
                severity=Severity.HIGH if len(clones) > 3 else Severity.MEDIUM,
                location=clones[0].cloned_region,
                evidence=[f"{len(clones)} cloned regions found"]
                + [f"Similarity: {c.similarity * 100:.1f}%" for c in clones[:3]],
            ))

        return indicators

    def _calculate_confidence(self, data: ForensicData, indicators: List[ManipulationIndicator]) -> float:
        score = 0.0

        if data.metadata.has_inconsistencies:
            score += METADATA_WEIGHT * len(data.metadata.inconsistency_details) * 0.3

        if data.quality_metrics.has_quality_inconsistencies:
            score += QUALITY_WEIGHT * min(1, len(data.quality_metrics.regions) * 0.1)

        if data.text_analysis.has_font_inconsistencies:
            score += TEXT_WEIGHT * 0.7

        structural = data.structural_analysis
        if structural.has_structural_anomalies:
            artifact_score = min(1, len(structural.compression_artifacts) * 0.15)
            clone_score = min(1, len(structural.clone_detections) * 0.2)
            score += STRUCTURAL_WEIGHT * max(artifact_score, clone_score)

        score += sum(0.15 for i in indicators if i.severity == Severity.CRITICAL)
        score += sum(0.08 for i in indicators if i.severity == Severity.HIGH)

        return min(1.0, score)
