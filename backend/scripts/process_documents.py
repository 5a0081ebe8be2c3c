"""
Script to run a batch analysis job over documents and report its outcome

Usage:
    python scripts/process_documents.py <APPLICATION_ID> [FULL_ANALYSIS|QUALITY_CHECK|DATA_EXTRACTION]
"""
import sys
import os
import asyncio

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from docintel.core.dependencies import service_context
from docintel.core.logging_config import configure_logging
from docintel.models.processing import ProcessingJobType

import logging

configure_logging()
logger = logging.getLogger(__name__)

async def main(application_id: str, job_type: ProcessingJobType):
    """Analyze every document of one application through the processing queue"""
    async with service_context() as services:
        documents = await services.document_service.find_documents_by_application(application_id)
        if not documents:
            logger.warning(f"No documents found for application {application_id}")
            return

        job_id = await services.processing_queue.submit([d.document_id for d in documents], job_type)
        job = await services.processing_queue.wait_for_job(job_id)

        logger.info("=== Job Summary ===")
        logger.info(f"Job: {job.id} ({job.type.value})")
        logger.info(f"Status: {job.status.value}")
        logger.info(f"Processed: {job.processed_documents}/{job.total_documents}")
        logger.info(f"Failed: {job.failed_documents}")
        for error in job.errors:
            logger.info(f"  - {error.document_id}: {error.error} (attempts={error.attempts})")

if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)
    job_type = ProcessingJobType(sys.argv[2].upper()) if len(sys.argv) > 2 else ProcessingJobType.FULL_ANALYSIS
    asyncio.run(main(sys.argv[1], job_type))
