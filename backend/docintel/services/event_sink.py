"""
Job event publishing
"""
from typing import Protocol
import logging

from docintel.models.processing import JobEvent

logger = logging.getLogger(__name__)

class EventSink(Protocol):
    async def publish(self, event: JobEvent) -> None:
        ...

class LoggingEventSink:
    """Default sink: writes every job event to the log"""

    async def publish(self, event: JobEvent) -> None:
        eta = f", eta={event.estimated_time_remaining:.1f}s" if event.estimated_time_remaining is not None else ""
        logger.info(
            f"[{event.type.value}] job={event.job_id} status={event.status.value} "
            f"progress={event.progress}% processed={event.processed_documents} "
            f"failed={event.failed_documents}/{event.total_documents}{eta}"
        )
        if event.error:
            logger.warning(f"[{event.type.value}] job={event.job_id} error: {event.error}")
