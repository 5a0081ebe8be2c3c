"""
Document Processing Queue Service

Runs an analyzer over every document of a batch job with bounded concurrency,
retry with linear backoff, and a whole-job timeout. Job state lives in memory;
callers only ever see deep-copied snapshots.
"""
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
from datetime import datetime, timedelta, timezone
import asyncio
import logging
import time
import uuid

from docintel.core.config import settings
from docintel.core.exceptions import JobNotFoundError
from docintel.models.processing import (
    JobError,
    JobEvent,
    JobEventType,
    JobStatus,
    ProcessingJob,
    ProcessingJobType,
    ProcessingResult,
    QueueOptions,
)
from docintel.services.event_sink import EventSink, LoggingEventSink

logger = logging.getLogger(__name__)

Analyzer = Callable[[str], Awaitable[Any]]

TERMINAL_EVENTS = {
    JobStatus.COMPLETED: JobEventType.COMPLETED,
    JobStatus.FAILED: JobEventType.FAILED,
    JobStatus.TIMEOUT: JobEventType.FAILED,
    JobStatus.CANCELLED: JobEventType.CANCELLED,
}

def generate_job_id() -> str:
    return f"job_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"

class _JobState:
    """Mutable bookkeeping that never leaves the queue"""

    def __init__(self, job: ProcessingJob):
        self.job = job
        self.lock = asyncio.Lock()
        # indexes into job.document_ids that already have a result or error
        self.finished: Set[int] = set()
        self.durations: List[float] = []
        self.dispatcher: Optional[asyncio.Task] = None

class ProcessingQueueService:
    """Batch job runner for per-document analyzers"""

    def __init__(
        self,
        analyzers: Dict[ProcessingJobType, Analyzer],
        event_sink: Optional[EventSink] = None,
        poll_interval: Optional[float] = None
    ):
        self.analyzers = {ProcessingJobType(k): v for k, v in analyzers.items()}
        self.event_sink = event_sink or LoggingEventSink()
        self.poll_interval = poll_interval if poll_interval is not None else settings.QUEUE_POLL_INTERVAL_SECONDS
        self._jobs: Dict[str, _JobState] = {}
        self._workers: Set[asyncio.Task] = set()

    def register_analyzer(self, job_type: ProcessingJobType, analyzer: Analyzer):
        self.analyzers[ProcessingJobType(job_type)] = analyzer

    async def submit(
        self,
        document_ids: List[str],
        job_type: ProcessingJobType,
        options: Optional[QueueOptions] = None
    ) -> str:
        """
        Queue a batch of documents for analysis

        Args:
            document_ids: Documents to process, in dispatch order
            job_type: Selects the analyzer run against each document
            options: Concurrency, timeout and retry limits (settings defaults when omitted)

        Returns:
            The new job id
        """
        job_type = ProcessingJobType(job_type)
        if job_type not in self.analyzers:
            raise ValueError(f"No analyzer registered for job type {job_type.value}")

        job = ProcessingJob(
            id=generate_job_id(),
            document_ids=list(document_ids),
            type=job_type,
            total_documents=len(document_ids),
            options=options or QueueOptions(),
        )
        state = _JobState(job)
        self._jobs[job.id] = state
        state.dispatcher = asyncio.create_task(self._run_job(state), name=f"dispatch-{job.id}")

        logger.info(
            f"Queued job {job.id}: type={job_type.value}, documents={job.total_documents}, "
            f"max_concurrent={job.options.max_concurrent}"
        )
        return job.id

    def get_job_status(self, job_id: str) -> Optional[ProcessingJob]:
        state = self._jobs.get(job_id)
        return state.job.model_copy(deep=True) if state else None

    def get_all_jobs(self) -> List[ProcessingJob]:
        return [state.job.model_copy(deep=True) for state in self._jobs.values()]

    async def cancel_job(self, job_id: str) -> bool:
        """Cancel a running job; returns False when it had already finished"""
        state = self._jobs.get(job_id)
        if state is None:
            raise JobNotFoundError(job_id)

        async with state.lock:
            if state.job.is_terminal:
                return False
            await self._finish_locked(state, JobStatus.CANCELLED, "Job cancelled before document was processed")

        logger.info(f"Job {job_id} cancelled")
        return True

    async def wait_for_job(self, job_id: str, timeout: Optional[float] = None) -> ProcessingJob:
        """Block until the job's dispatcher has finished and return the final snapshot"""
        state = self._jobs.get(job_id)
        if state is None:
            raise JobNotFoundError(job_id)
        if state.dispatcher and not state.dispatcher.done():
            await asyncio.wait_for(asyncio.shield(state.dispatcher), timeout)
        return state.job.model_copy(deep=True)

    def cleanup_old_jobs(self, max_age_hours: Optional[float] = None) -> int:
        """Forget finished jobs older than the retention window"""
        hours = max_age_hours if max_age_hours is not None else settings.JOB_RETENTION_HOURS
        cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
        stale = [
            job_id for job_id, state in self._jobs.items()
            if state.job.is_terminal and (state.job.completed_at or state.job.created_at) < cutoff
        ]
        for job_id in stale:
            del self._jobs[job_id]
        if stale:
            logger.info(f"Cleaned up {len(stale)} old jobs")
        return len(stale)

    async def shutdown(self):
        """Cancel every dispatcher and worker still running"""
        tasks = [s.dispatcher for s in self._jobs.values() if s.dispatcher and not s.dispatcher.done()]
        tasks.extend(t for t in self._workers if not t.done())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # Dispatcher

    async def _run_job(self, state: _JobState):
        job = state.job
        loop = asyncio.get_running_loop()
        deadline = loop.time() + job.options.timeout
        semaphore = asyncio.Semaphore(job.options.max_concurrent)
        analyzer = self.analyzers[job.type]
        workers: List[asyncio.Task] = []

        try:
            if job.total_documents == 0:
                async with state.lock:
                    await self._finish_locked(state, JobStatus.COMPLETED)
                return

            for index, document_id in enumerate(job.document_ids):
                if not await self._acquire_slot(state, semaphore, deadline):
                    return
                worker = asyncio.create_task(
                    self._process_document(state, index, document_id, analyzer, semaphore, deadline),
                    name=f"{job.id}-{index}"
                )
                self._workers.add(worker)
                worker.add_done_callback(self._workers.discard)
                workers.append(worker)

            pending = set(workers)
            while pending:
                _, pending = await asyncio.wait(pending, timeout=self.poll_interval)
                if job.is_terminal:
                    return
                if loop.time() >= deadline:
                    await self._timeout(state)
                    return

        except Exception as e:
            logger.error(f"Job {job.id} dispatcher failed: {e}", exc_info=True)
            async with state.lock:
                if not job.is_terminal:
                    await self._finish_locked(state, JobStatus.FAILED, f"Job failed: {e}")

    async def _acquire_slot(self, state: _JobState, semaphore: asyncio.Semaphore, deadline: float) -> bool:
        """Wait for a free worker slot, waking every poll interval to check cancel and timeout"""
        loop = asyncio.get_running_loop()
        while True:
            if state.job.is_terminal:
                return False
            if loop.time() >= deadline:
                await self._timeout(state)
                return False
            try:
                await asyncio.wait_for(semaphore.acquire(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                continue
            if state.job.is_terminal:
                semaphore.release()
                return False
            return True

    async def _timeout(self, state: _JobState):
        async with state.lock:
            if not state.job.is_terminal:
                logger.warning(f"Job {state.job.id} exceeded timeout of {state.job.options.timeout}s")
                await self._finish_locked(state, JobStatus.TIMEOUT, "Job timeout exceeded")

    # Workers

    async def _process_document(
        self,
        state: _JobState,
        index: int,
        document_id: str,
        analyzer: Analyzer,
        semaphore: asyncio.Semaphore,
        deadline: float
    ):
        job = state.job
        loop = asyncio.get_running_loop()
        max_attempts = job.options.retry_attempts + 1
        started = loop.time()
        attempts = 0
        last_error = None

        try:
            await self._mark_started(state)

            while attempts < max_attempts:
                if job.is_terminal:
                    return
                attempts += 1
                if loop.time() >= deadline:
                    await self._timeout(state)
                    return

                attempt_start = loop.time()
                # every attempt runs against the job's remaining time budget
                budget = asyncio.timeout_at(deadline)
                try:
                    async with budget:
                        data = await analyzer(document_id)
                except Exception as e:
                    if budget.expired():
                        await self._timeout(state)
                        return
                    last_error = str(e) or type(e).__name__
                    logger.warning(
                        f"Job {job.id}: attempt {attempts}/{max_attempts} failed for {document_id}: {last_error}"
                    )
                    if attempts < max_attempts:
                        await asyncio.sleep(job.options.retry_delay * attempts)
                    continue

                await self._record_outcome(
                    state, index,
                    result=ProcessingResult(
                        document_id=document_id,
                        success=True,
                        data=data,
                        processing_time=loop.time() - attempt_start,
                    ),
                )
                return

            logger.error(f"Job {job.id}: giving up on {document_id} after {attempts} attempts")
            await self._record_outcome(
                state, index,
                error=JobError(
                    document_id=document_id,
                    error=last_error or "Processing failed",
                    attempts=attempts,
                    processing_time=loop.time() - started,
                ),
            )
        finally:
            semaphore.release()

    async def _mark_started(self, state: _JobState):
        async with state.lock:
            if state.job.status == JobStatus.PENDING:
                state.job.status = JobStatus.PROCESSING
                state.job.started_at = datetime.now(timezone.utc)
                logger.info(f"Job {state.job.id} started processing")

    async def _record_outcome(
        self,
        state: _JobState,
        index: int,
        result: Optional[ProcessingResult] = None,
        error: Optional[JobError] = None
    ):
        job = state.job
        async with state.lock:
            if job.is_terminal or index in state.finished:
                logger.debug(f"Job {job.id}: discarding late outcome for {job.document_ids[index]}")
                return

            state.finished.add(index)
            if result is not None:
                job.results.append(result)
                job.processed_documents += 1
                state.durations.append(result.processing_time)
            else:
                job.errors.append(error)
                job.failed_documents += 1
                state.durations.append(error.processing_time)

            self._update_progress(state)
            await self._emit(job, JobEventType.PROGRESS, error=error.error if error else None)

            if job.completed_count == job.total_documents:
                await self._finish_locked(state, JobStatus.COMPLETED)

    def _update_progress(self, state: _JobState):
        job = state.job
        if job.total_documents == 0:
            job.progress = 100
            job.estimated_time_remaining = 0.0
            return
        job.progress = round(job.completed_count / job.total_documents * 100)
        remaining = job.total_documents - job.completed_count
        if state.durations:
            job.estimated_time_remaining = sum(state.durations) / len(state.durations) * remaining

    async def _finish_locked(self, state: _JobState, status: JobStatus, reason: Optional[str] = None):
        """Move the job to a terminal status; caller holds the job lock"""
        job = state.job
        for index, document_id in enumerate(job.document_ids):
            if index not in state.finished:
                state.finished.add(index)
                job.errors.append(JobError(document_id=document_id, error=reason or "Not processed"))
                job.failed_documents += 1

        job.status = status
        job.completed_at = datetime.now(timezone.utc)
        job.progress = 100
        job.estimated_time_remaining = 0.0

        logger.info(
            f"Job {job.id} finished with status {status.value}: "
            f"processed={job.processed_documents}, failed={job.failed_documents}, total={job.total_documents}"
        )
        await self._emit(job, TERMINAL_EVENTS[status], error=reason if status != JobStatus.COMPLETED else None)

    async def _emit(self, job: ProcessingJob, event_type: JobEventType, error: Optional[str] = None):
        event = JobEvent(
            type=event_type,
            job_id=job.id,
            status=job.status,
            progress=job.progress,
            processed_documents=job.processed_documents,
            failed_documents=job.failed_documents,
            total_documents=job.total_documents,
            estimated_time_remaining=job.estimated_time_remaining,
            error=error,
        )
        try:
            await self.event_sink.publish(event)
        except Exception as e:
            logger.error(f"Failed to publish {event_type.value} for job {job.id}: {e}")
