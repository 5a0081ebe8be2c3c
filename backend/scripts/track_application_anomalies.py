"""
Script to detect and persist anomalies for one application, then print its
risk assessment and anomaly report

Usage:
    python scripts/track_application_anomalies.py <APPLICATION_ID> [--auto-resolve REVIEWER]
"""
import sys
import os
import asyncio

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from docintel.core.dependencies import service_context
from docintel.core.logging_config import configure_logging

import logging

configure_logging()
logger = logging.getLogger(__name__)

async def main(application_id: str, auto_resolve_by: str = None):
    """Track document and application anomalies, then report"""
    try:
        async with service_context() as services:
            tracker = services.anomaly_tracker

            documents = await services.document_service.find_documents_by_application(application_id)
            for document in documents:
                if not document.supports_forensics():
                    continue
                outcome = await tracker.track_document_anomalies(document.document_id, application_id)
                logger.info(f"Document {document.document_id}: {outcome.summary}")

            outcome = await tracker.track_application_anomalies(application_id)
            logger.info(f"Application {application_id}: {outcome.summary}")

            if auto_resolve_by:
                resolved = await tracker.auto_resolve_false_positives(application_id, auto_resolve_by)
                logger.info(f"Auto-resolved {resolved} low-severity anomalies")

            assessment = await services.risk_assessment.calculate_risk_score(application_id)
            logger.info("=== Risk Assessment ===")
            logger.info(f"Overall: {assessment.overall:.1f}")
            logger.info(f"Recommendation: {assessment.recommendation.value}")
            logger.info(f"Confidence: {assessment.confidence:.2f}")
            if assessment.escalation_required:
                logger.info(f"Escalation: {assessment.escalation_reason}")
            for factor in assessment.factors:
                logger.info(f"  {factor.category.value}: {factor.score:.1f} ({factor.severity.value})")

            print(await tracker.generate_anomaly_report(application_id))

    except Exception as e:
        logger.error(f"Anomaly tracking failed: {e}")
        raise

if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)
    reviewer = None
    if "--auto-resolve" in sys.argv:
        index = sys.argv.index("--auto-resolve")
        reviewer = sys.argv[index + 1] if len(sys.argv) > index + 1 else "system"
    asyncio.run(main(sys.argv[1], reviewer))
