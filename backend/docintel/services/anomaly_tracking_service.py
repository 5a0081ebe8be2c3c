"""
Anomaly Tracking Service

Turns detector output into persisted anomaly records and drives the review
workflow on top of the repository.
"""
from typing import List, Optional
from datetime import datetime, timezone
import logging

from docintel.core.config import settings
from docintel.core.exceptions import AnomalyNotFoundError, DocumentIntelligenceError, InvalidStateTransitionError
from docintel.models.analysis import ManipulationResult
from docintel.models.anomaly import (
    AnomalyCreate,
    AnomalyRecord,
    AnomalyReview,
    AnomalyStatistics,
    AnomalyStatus,
    AnomalyWorkflowResult,
    BulkReviewFailure,
    BulkReviewResult,
    InconsistencyEvidence,
    ManipulationEvidence,
    ReviewWorkflowResult,
)
from docintel.models.inconsistency import SEVERITY_RANK, Severity
from docintel.services.anomaly_repository import AnomalyRepository
from docintel.services.inconsistency_detector import InconsistencyDetector
from docintel.services.manipulation_detector import ManipulationDetector

logger = logging.getLogger(__name__)

AUTO_RESOLVE_NOTE = "Auto-resolved: Low severity with low confidence"

class AnomalyTrackingService:
    """High-level anomaly workflow: detection, persistence, review and reporting"""

    def __init__(
        self,
        repository: AnomalyRepository,
        manipulation_detector: ManipulationDetector,
        inconsistency_detector: InconsistencyDetector
    ):
        self.repository = repository
        self.manipulation_detector = manipulation_detector
        self.inconsistency_detector = inconsistency_detector
        self.auto_resolve_threshold = settings.AUTO_RESOLVE_CONFIDENCE_THRESHOLD

    async def track_document_anomalies(self, document_id: str, application_id: str) -> AnomalyWorkflowResult:
        """Run manipulation detection on one document and persist its indicators"""
        logger.info(f"Tracking document anomalies for {document_id} (application {application_id})")
        result = await self.manipulation_detector.detect_manipulation(document_id)
        return await self.record_manipulation(application_id, result)

    async def record_manipulation(self, application_id: str, result: ManipulationResult) -> AnomalyWorkflowResult:
        """Persist an already computed manipulation result. Nothing is stored for a clean document."""
        to_create: List[AnomalyCreate] = []
        if result.is_manipulated:
            for indicator in result.indicators:
                to_create.append(AnomalyCreate(
                    application_id=application_id,
                    document_id=result.document_id,
                    anomaly_type=indicator.type.value,
                    severity=indicator.severity,
                    description=indicator.description,
                    evidence=ManipulationEvidence(
                        indicator_type=indicator.type.value,
                        evidence=indicator.evidence,
                        location=indicator.location,
                    ),
                    confidence=result.confidence,
                ))

        anomalies = await self.repository.create_batch(to_create)

        if result.is_manipulated:
            summary = (
                f"{len(anomalies)} manipulation indicator(s) detected with "
                f"{result.confidence * 100:.1f}% confidence"
            )
        else:
            summary = "No manipulation detected"

        logger.info(f"Document anomaly tracking completed for {result.document_id}: {len(anomalies)} created")
        return AnomalyWorkflowResult(anomalies_created=len(anomalies), anomalies=anomalies, summary=summary)

    async def track_application_anomalies(self, application_id: str) -> AnomalyWorkflowResult:
        """Run cross-document inconsistency detection and persist every finding"""
        logger.info(f"Tracking application anomalies for {application_id}")
        result = await self.inconsistency_detector.detect_inconsistencies(application_id)

        to_create = [
            AnomalyCreate(
                application_id=application_id,
                document_id=item.affected_documents[0] if item.affected_documents else None,
                anomaly_type=item.type.value,
                severity=item.severity,
                description=item.description,
                evidence=InconsistencyEvidence(
                    conflicting_values=item.conflicting_values,
                    evidence=item.evidence,
                    affected_documents=item.affected_documents,
                ),
                confidence=item.confidence,
            )
            for item in result.inconsistencies
        ]
        anomalies = await self.repository.create_batch(to_create)

        if result.inconsistencies:
            summary = (
                f"{len(anomalies)} inconsistency(ies) detected with risk score "
                f"{result.overall_risk_score:.1f}"
            )
        else:
            summary = "No inconsistencies detected"

        logger.info(f"Application anomaly tracking completed for {application_id}: {len(anomalies)} created")
        return AnomalyWorkflowResult(anomalies_created=len(anomalies), anomalies=anomalies, summary=summary)

    async def get_application_anomalies(self, application_id: str) -> List[AnomalyRecord]:
        return await self.repository.find_by_application_id(application_id)

    async def get_document_anomalies(self, document_id: str) -> List[AnomalyRecord]:
        return await self.repository.find_by_document_id(document_id)

    async def get_pending_reviews(self, limit: int = 50) -> List[AnomalyRecord]:
        return await self.repository.get_pending_reviews(limit)

    async def review_anomaly(self, anomaly_id: str, review: AnomalyReview) -> ReviewWorkflowResult:
        """
        Review one anomaly

        Returns:
            The updated record and the audit entries this review appended
        """
        logger.info(f"Reviewing anomaly {anomaly_id}: status={AnomalyStatus(review.status).value}, by={review.reviewed_by}")
        original = await self.repository.find_by_id(anomaly_id)
        if original is None:
            raise AnomalyNotFoundError(anomaly_id)

        updated = await self.repository.review(anomaly_id, review)
        return ReviewWorkflowResult(
            anomaly=updated,
            audit_trail=updated.audit_trail[len(original.audit_trail):],
        )

    async def bulk_review(self, anomaly_ids: List[str], review: AnomalyReview) -> BulkReviewResult:
        """Review each id independently; a failure on one never stops the others"""
        logger.info(f"Bulk reviewing {len(anomaly_ids)} anomalies: status={AnomalyStatus(review.status).value}")
        outcome = BulkReviewResult()

        for anomaly_id in anomaly_ids:
            try:
                outcome.results.append(await self.review_anomaly(anomaly_id, review))
            except DocumentIntelligenceError as e:
                logger.warning(f"Failed to review anomaly {anomaly_id} in bulk operation: {e}")
                outcome.failures.append(BulkReviewFailure(anomaly_id=anomaly_id, error=str(e)))

        logger.info(
            f"Bulk review completed: total={len(anomaly_ids)}, successful={len(outcome.results)}, "
            f"failed={len(outcome.failures)}"
        )
        return outcome

    async def get_statistics(self, application_id: Optional[str] = None) -> AnomalyStatistics:
        return await self.repository.get_statistics(application_id)

    async def get_critical_anomalies(self, limit: int = 20) -> List[AnomalyRecord]:
        """Pending CRITICAL anomalies needing immediate attention"""
        critical = await self.repository.find_by_severity(Severity.CRITICAL, limit)
        return [a for a in critical if AnomalyStatus(a.status) == AnomalyStatus.PENDING]

    async def generate_anomaly_report(self, application_id: str, generated_at: Optional[datetime] = None) -> str:
        """Markdown report of an application's anomalies, grouped by severity"""
        anomalies = await self.repository.find_by_application_id(application_id)
        stats = await self.repository.get_statistics(application_id)
        generated_at = generated_at or datetime.now(timezone.utc)

        lines = [
            f"# Anomaly Report for Application {application_id}",
            "",
            f"**Generated:** {generated_at.isoformat()}",
            "",
            "## Summary",
            "",
            f"- **Total Anomalies:** {stats.total}",
            f"- **Critical:** {stats.by_severity.get('CRITICAL', 0)}",
            f"- **High:** {stats.by_severity.get('HIGH', 0)}",
            f"- **Medium:** {stats.by_severity.get('MEDIUM', 0)}",
            f"- **Low:** {stats.by_severity.get('LOW', 0)}",
            "",
            f"- **Pending Review:** {stats.by_status.get('PENDING', 0)}",
            f"- **Reviewed:** {stats.by_status.get('REVIEWED', 0)}",
            f"- **Resolved:** {stats.by_status.get('RESOLVED', 0)}",
            f"- **False Positives:** {stats.by_status.get('FALSE_POSITIVE', 0)}",
            "",
            f"- **Average Confidence:** {stats.avg_confidence * 100:.1f}%",
            "",
        ]

        if not anomalies:
            lines.append("No anomalies detected.")
            return "\n".join(lines) + "\n"

        for severity in sorted(Severity, key=SEVERITY_RANK.get):
            items = [a for a in anomalies if Severity(a.severity) == severity]
            if not items:
                continue
            lines.extend([f"## {severity.value} Severity ({len(items)})", ""])
            for item in items:
                lines.extend([
                    f"### {item.anomaly_type}",
                    f"**ID:** {item.anomaly_id}",
                    f"**Status:** {AnomalyStatus(item.status).value}",
                    f"**Confidence:** {item.confidence * 100:.1f}%",
                    f"**Description:** {item.description}",
                ])
                if item.document_id:
                    lines.append(f"**Document:** {item.document_id}")
                if item.reviewed_by:
                    lines.append(f"**Reviewed By:** {item.reviewed_by}")
                    reviewed_at = item.reviewed_at.isoformat() if item.reviewed_at else ""
                    lines.append(f"**Reviewed At:** {reviewed_at}")
                if item.resolution_notes:
                    lines.append(f"**Resolution Notes:** {item.resolution_notes}")
                lines.append("")

        return "\n".join(lines) + "\n"

    async def auto_resolve_false_positives(self, application_id: str, reviewed_by: str) -> int:
        """Mark pending low-severity, low-confidence anomalies as false positives"""
        logger.info(f"Auto-resolving false positives for application {application_id}")
        anomalies = await self.repository.find_by_application_id(application_id)

        resolved = 0
        for anomaly in anomalies:
            if AnomalyStatus(anomaly.status) != AnomalyStatus.PENDING:
                continue
            if Severity(anomaly.severity) == Severity.LOW and anomaly.confidence < self.auto_resolve_threshold:
                try:
                    await self.repository.review(anomaly.anomaly_id, AnomalyReview(
                        status=AnomalyStatus.FALSE_POSITIVE,
                        reviewed_by=reviewed_by,
                        resolution_notes=AUTO_RESOLVE_NOTE,
                    ))
                except (InvalidStateTransitionError, AnomalyNotFoundError) as e:
                    logger.warning(f"Skipping anomaly {anomaly.anomaly_id} during auto-resolve: {e}")
                    continue
                resolved += 1

        logger.info(f"Auto-resolve completed for {application_id}: {resolved} resolved")
        return resolved
