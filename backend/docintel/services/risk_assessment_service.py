"""
Risk Assessment Service for Loan Applications

Combines document quality, manipulation, cross-document inconsistency,
missing information, tracked anomalies and extraction confidence into one
weighted 0-100 score, a recommendation and escalation flags.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import logging

from docintel.core.exceptions import DocumentIntelligenceError
from docintel.models.analysis import ManipulationResult
from docintel.models.anomaly import AnomalyRecord, AnomalyStatus
from docintel.models.document import Application, Document, DocumentAnalysis
from docintel.models.inconsistency import InconsistencyResult, Severity
from docintel.models.risk_assessment import (
    FindingSource,
    Recommendation,
    RiskAssessment,
    RiskCategory,
    RiskFactor,
    RiskFinding,
)
from docintel.services.anomaly_repository import AnomalyRepository
from docintel.services.document_service import DocumentService
from docintel.services.inconsistency_detector import InconsistencyDetector
from docintel.services.manipulation_detector import ManipulationDetector

logger = logging.getLogger(__name__)

CATEGORY_WEIGHTS = {
    RiskCategory.DOCUMENT_QUALITY: 0.20,
    RiskCategory.IMAGE_MANIPULATION: 0.25,
    RiskCategory.DATA_INCONSISTENCY: 0.25,
    RiskCategory.MISSING_INFORMATION: 0.10,
    RiskCategory.ANOMALY_DETECTION: 0.15,
    RiskCategory.EXTRACTION_CONFIDENCE: 0.05,
}

# (minimum score, severity), checked top down
STANDARD_BANDS = [(70, Severity.CRITICAL), (50, Severity.HIGH), (30, Severity.MEDIUM)]
QUALITY_BANDS = [(50, Severity.CRITICAL), (30, Severity.HIGH), (15, Severity.MEDIUM)]
MISSING_INFO_BANDS = [(60, Severity.HIGH), (40, Severity.MEDIUM)]
EXTRACTION_BANDS = [(40, Severity.HIGH), (25, Severity.MEDIUM)]

ESCALATION_SCORE_THRESHOLD = 70
ESCALATION_HIGH_FINDINGS = 3
ESCALATION_CATEGORIES = (RiskCategory.IMAGE_MANIPULATION, RiskCategory.DATA_INCONSISTENCY)

LOW_QUALITY_SCORE = 70
LOW_EXTRACTION_CONFIDENCE = 0.7

def _band(score: float, bands: List[Tuple[float, Severity]]) -> Severity:
    for minimum, severity in bands:
        if score >= minimum:
            return severity
    return Severity.LOW

def recommend(overall: float) -> Recommendation:
    if overall >= 70:
        return Recommendation.REJECT
    if overall >= 50:
        return Recommendation.ESCALATE
    if overall >= 30:
        return Recommendation.REQUEST_MORE_INFO
    return Recommendation.APPROVE

@dataclass
class RiskInputs:
    """Everything the scoring needs, fetched up front"""
    application: Application
    documents: List[Document]
    analyses: Dict[str, Optional[DocumentAnalysis]] = field(default_factory=dict)
    manipulation: Dict[str, ManipulationResult] = field(default_factory=dict)
    inconsistencies: Optional[InconsistencyResult] = None
    anomalies: List[AnomalyRecord] = field(default_factory=list)

class RiskAssessmentService:
    """Multi-factor application risk scoring"""

    def __init__(
        self,
        document_service: DocumentService,
        manipulation_detector: ManipulationDetector,
        inconsistency_detector: InconsistencyDetector,
        anomaly_repository: AnomalyRepository
    ):
        self.document_service = document_service
        self.manipulation_detector = manipulation_detector
        self.inconsistency_detector = inconsistency_detector
        self.anomaly_repository = anomaly_repository

    async def calculate_risk_score(self, application_id: str) -> RiskAssessment:
        """
        Assess one application

        Raises:
            ApplicationNotFoundError: the application does not exist
        """
        logger.info(f"Starting risk assessment for application {application_id}")
        application = await self.document_service.get_application(application_id)
        documents = await self.document_service.find_documents_by_application(application_id)

        if not documents:
            logger.warning(f"No documents found for risk assessment of {application_id}")
            return RiskAssessment(
                application_id=application_id,
                overall=50,
                recommendation=Recommendation.REQUEST_MORE_INFO,
                confidence=0.3,
                reasons=["No documents available for assessment"],
            )

        inputs = await self.gather_inputs(application, documents)
        assessment = self.assess(inputs)
        self._log_assessment(assessment)
        return assessment

    async def gather_inputs(self, application: Application, documents: List[Document]) -> RiskInputs:
        inputs = RiskInputs(application=application, documents=documents)

        for document in documents:
            inputs.analyses[document.document_id] = await self.document_service.get_latest_analysis(
                document.document_id
            )
            if not document.supports_forensics():
                continue
            try:
                inputs.manipulation[document.document_id] = await self.manipulation_detector.detect_manipulation(
                    document.document_id
                )
            except DocumentIntelligenceError as e:
                logger.warning(f"Failed to check image manipulation for {document.document_id}: {e}")

        try:
            inputs.inconsistencies = await self.inconsistency_detector.detect_inconsistencies(
                application.application_id
            )
        except DocumentIntelligenceError as e:
            logger.warning(f"Failed to detect inconsistencies for {application.application_id}: {e}")

        tracked = await self.anomaly_repository.find_by_application_id(application.application_id)
        inputs.anomalies = [a for a in tracked if AnomalyStatus(a.status) != AnomalyStatus.FALSE_POSITIVE]
        return inputs

    def assess(self, inputs: RiskInputs) -> RiskAssessment:
        """Pure scoring over already gathered inputs"""
        factors = [
            self._assess_document_quality(inputs),
            self._assess_image_manipulation(inputs),
            self._assess_data_inconsistency(inputs),
            self._assess_missing_information(inputs),
            self._assess_anomalies(inputs),
            self._assess_extraction_confidence(inputs),
        ]
        overall = min(100.0, round(sum(f.score * f.weight for f in factors), 2))
        findings = self._collect_findings(inputs)
        escalation_reasons = self._escalation_reasons(overall, factors, findings)

        evidence_count = sum(len(f.evidence) for f in factors)
        confidence = min(1.0, 0.5 + min(0.3, len(factors) * 0.05) + min(0.2, evidence_count * 0.02))

        return RiskAssessment(
            application_id=inputs.application.application_id,
            overall=overall,
            by_category={f.category: f.score for f in factors},
            factors=factors,
            findings=findings,
            recommendation=recommend(overall),
            escalation_required=bool(escalation_reasons),
            escalation_reason="; ".join(escalation_reasons) if escalation_reasons else None,
            confidence=confidence,
            reasons=[
                f"{f.category.value}: {f.description}"
                for f in factors if f.severity != Severity.LOW
            ],
        )

    def _factor(self, category: RiskCategory, score: float, bands, description: str,
                evidence: List[str], affected: Optional[List[str]] = None) -> RiskFactor:
        score = max(0.0, min(100.0, score))
        return RiskFactor(
            category=category,
            severity=_band(score, bands),
            score=score,
            weight=CATEGORY_WEIGHTS[category],
            description=description,
            evidence=evidence,
            affected_documents=affected or [],
        )

    def _assess_document_quality(self, inputs: RiskInputs) -> RiskFactor:
        evidence, affected, scores = [], [], []
        for document_id, analysis in inputs.analyses.items():
            if analysis is None:
                continue
            scores.append(analysis.quality_score)
            if analysis.quality_score < LOW_QUALITY_SCORE:
                evidence.append(f"Document {document_id}: Low quality score ({analysis.quality_score:g})")
                affected.append(document_id)

        avg_quality = sum(scores) / len(scores) if scores else 100
        return self._factor(
            RiskCategory.DOCUMENT_QUALITY, 100 - avg_quality, QUALITY_BANDS,
            f"Average document quality: {avg_quality:.1f}%", evidence, affected
        )

    def _assess_image_manipulation(self, inputs: RiskInputs) -> RiskFactor:
        evidence, affected = [], []
        total = 0.0
        for document_id, result in inputs.manipulation.items():
            if not result.is_manipulated:
                continue
            total += result.confidence * 100
            affected.append(document_id)
            evidence.append(
                f"Document {document_id}: Manipulation detected ({result.confidence * 100:.1f}% confidence)"
            )
            evidence.extend(f"  - {i.type.value}: {i.description}" for i in result.indicators)

        checked = len(inputs.manipulation)
        score = total / checked if checked else 0.0
        description = (
            f"Potential manipulation detected in {len(affected)} document(s)"
            if affected else "No manipulation detected"
        )
        return self._factor(RiskCategory.IMAGE_MANIPULATION, score, STANDARD_BANDS, description, evidence, affected)

    def _assess_data_inconsistency(self, inputs: RiskInputs) -> RiskFactor:
        result = inputs.inconsistencies
        if result is None:
            return self._factor(
                RiskCategory.DATA_INCONSISTENCY, 0.0, STANDARD_BANDS, "No inconsistencies detected", []
            )

        evidence = [
            f"{i.type.value}: {i.description} ({i.severity.value})"
            for i in result.inconsistencies
        ]
        affected = sorted({d for i in result.inconsistencies for d in i.affected_documents})
        description = f"{len(evidence)} inconsistency(ies) detected" if evidence else "No inconsistencies detected"
        return self._factor(
            RiskCategory.DATA_INCONSISTENCY, result.overall_risk_score, STANDARD_BANDS,
            description, evidence, affected
        )

    def _assess_missing_information(self, inputs: RiskInputs) -> RiskFactor:
        evidence, affected = [], []
        score = 0.0

        missing = inputs.application.missing_documents
        if missing:
            score += len(missing) * 15
            evidence.append(f"{len(missing)} required document(s) missing")
            evidence.extend(f"  - {doc}" for doc in missing)

        for document in inputs.documents:
            analysis = inputs.analyses.get(document.document_id)
            if analysis is None:
                score += 10
                evidence.append(f"Document {document.document_id}: No analysis available")
                affected.append(document.document_id)
            elif not analysis.extracted_data:
                score += 5
                evidence.append(f"Document {document.document_id}: No data extracted")
                affected.append(document.document_id)

        description = (
            "Missing or incomplete information detected" if evidence
            else "All required information present"
        )
        return self._factor(
            RiskCategory.MISSING_INFORMATION, min(100.0, score), MISSING_INFO_BANDS,
            description, evidence, affected
        )

    def _assess_anomalies(self, inputs: RiskInputs) -> RiskFactor:
        by_document: Dict[Optional[str], List[AnomalyRecord]] = defaultdict(list)
        for anomaly in inputs.anomalies:
            by_document[anomaly.document_id].append(anomaly)

        evidence, affected = [], []
        total = 0.0
        for document_id, records in by_document.items():
            serious = [a for a in records if Severity(a.severity) in (Severity.CRITICAL, Severity.HIGH)]
            if not serious:
                continue
            total += len(serious) * 25
            label = f"Document {document_id}" if document_id else "Application"
            evidence.append(f"{label}: {len(serious)} critical anomaly(ies)")
            evidence.extend(f"  - {a.anomaly_type}: {a.description}" for a in serious)
            if document_id:
                affected.append(document_id)

        score = min(100.0, total / len(by_document)) if by_document else 0.0
        description = (
            f"Anomalies detected in {len(by_document)} document(s)" if evidence
            else "No significant anomalies detected"
        )
        return self._factor(RiskCategory.ANOMALY_DETECTION, score, STANDARD_BANDS, description, evidence, affected)

    def _assess_extraction_confidence(self, inputs: RiskInputs) -> RiskFactor:
        evidence, affected, confidences = [], [], []
        for document_id, analysis in inputs.analyses.items():
            if analysis is None:
                continue
            confidences.append(analysis.extraction_confidence)
            if analysis.extraction_confidence < LOW_EXTRACTION_CONFIDENCE:
                evidence.append(
                    f"Document {document_id}: Low confidence ({analysis.extraction_confidence * 100:.1f}%)"
                )
                affected.append(document_id)

        avg_confidence = sum(confidences) / len(confidences) if confidences else 1.0
        return self._factor(
            RiskCategory.EXTRACTION_CONFIDENCE, (1 - avg_confidence) * 100, EXTRACTION_BANDS,
            f"Average extraction confidence: {avg_confidence * 100:.1f}%", evidence, affected
        )

    def _collect_findings(self, inputs: RiskInputs) -> List[RiskFinding]:
        candidates: List[RiskFinding] = []

        if inputs.inconsistencies:
            for item in inputs.inconsistencies.inconsistencies:
                candidates.append(RiskFinding(
                    source=FindingSource.INCONSISTENCY,
                    type=item.type.value,
                    severity=item.severity,
                    document_id=item.affected_documents[0] if item.affected_documents else None,
                    confidence=item.confidence,
                    description=item.description,
                ))

        for document_id, result in inputs.manipulation.items():
            if not result.is_manipulated:
                continue
            for indicator in result.indicators:
                candidates.append(RiskFinding(
                    source=FindingSource.MANIPULATION,
                    type=indicator.type.value,
                    severity=indicator.severity,
                    document_id=document_id,
                    confidence=result.confidence,
                    description=indicator.description,
                ))

        for anomaly in inputs.anomalies:
            candidates.append(RiskFinding(
                source=FindingSource.TRACKED_ANOMALY,
                type=anomaly.anomaly_type,
                severity=anomaly.severity,
                document_id=anomaly.document_id,
                confidence=anomaly.confidence,
                description=anomaly.description,
            ))

        # A tracked anomaly usually repeats a fresh finding
        seen = set()
        findings = []
        for finding in candidates:
            key = (finding.type, finding.document_id)
            if key in seen:
                continue
            seen.add(key)
            findings.append(finding)
        return findings

    def _escalation_reasons(self, overall: float, factors: List[RiskFactor], findings: List[RiskFinding]) -> List[str]:
        reasons = []

        if overall >= ESCALATION_SCORE_THRESHOLD:
            reasons.append(f"Overall risk score ({overall:.1f}) exceeds threshold")

        critical = sum(1 for f in findings if f.severity == Severity.CRITICAL)
        if critical:
            reasons.append(f"{critical} critical finding(s) detected")

        high = sum(1 for f in findings if f.severity == Severity.HIGH)
        if high >= ESCALATION_HIGH_FINDINGS:
            reasons.append(f"{high} high-severity finding(s) detected")

        for factor in factors:
            if factor.category in ESCALATION_CATEGORIES and factor.severity in (Severity.HIGH, Severity.CRITICAL):
                reasons.append(f"High risk in {factor.category.value} category")

        return reasons

    def _log_assessment(self, assessment: RiskAssessment) -> None:
        factor_summary = ", ".join(
            f"{f.category.value}={f.score:.1f}/{f.severity.value}/{len(f.evidence)} evidence"
            for f in assessment.factors
        )
        logger.info(
            f"Risk assessment audit log for {assessment.application_id}: overall={assessment.overall:.1f}, "
            f"recommendation={assessment.recommendation.value}, escalation={assessment.escalation_required}, "
            f"factors=[{factor_summary}]"
        )
