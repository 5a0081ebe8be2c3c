"""Unit tests for the batch processing queue."""

import asyncio

import pytest

from fakes import FailingSink, RecordingSink
from docintel.core.exceptions import JobNotFoundError
from docintel.models.processing import JobEventType, JobStatus, ProcessingJobType, QueueOptions
from docintel.services.processing_queue_service import ProcessingQueueService

FULL = ProcessingJobType.FULL_ANALYSIS


def _options(**overrides) -> QueueOptions:
    values = {"max_concurrent": 2, "timeout": 5.0, "retry_attempts": 2, "retry_delay": 0}
    values.update(overrides)
    return QueueOptions(**values)


async def _echo(document_id: str):
    return {"document_id": document_id}


async def _slow(document_id: str):
    await asyncio.sleep(10)


def _queue(analyzer, sink=None) -> ProcessingQueueService:
    return ProcessingQueueService({FULL: analyzer}, event_sink=sink or RecordingSink(), poll_interval=0.01)


@pytest.fixture
def sink():
    return RecordingSink()


class TestJobLifecycle:
    """Successful and failing documents."""

    @pytest.mark.asyncio
    async def test_all_documents_succeed(self, sink):
        queue = _queue(_echo, sink)

        job_id = await queue.submit(["doc_1", "doc_2", "doc_3"], FULL, _options())
        job = await queue.wait_for_job(job_id, timeout=5)

        assert job.status == JobStatus.COMPLETED
        assert job.processed_documents == 3
        assert job.failed_documents == 0
        assert job.progress == 100
        assert sorted(r.document_id for r in job.results) == ["doc_1", "doc_2", "doc_3"]
        assert all(r.success for r in job.results)
        assert job.started_at is not None and job.completed_at is not None

    @pytest.mark.asyncio
    async def test_progress_events_are_monotonic(self, sink):
        queue = _queue(_echo, sink)

        job_id = await queue.submit(["doc_1", "doc_2", "doc_3", "doc_4"], FULL, _options())
        await queue.wait_for_job(job_id, timeout=5)

        progress = [e.progress for e in sink.events if e.type == JobEventType.PROGRESS]
        assert progress == sorted(progress)
        assert len(progress) == 4
        assert sink.events[-1].type == JobEventType.COMPLETED
        assert sink.events[-1].processed_documents == 4

    @pytest.mark.asyncio
    async def test_failing_document_is_recorded_after_retries(self, sink):
        calls = {}

        async def analyzer(document_id):
            calls[document_id] = calls.get(document_id, 0) + 1
            if document_id == "doc_bad":
                raise RuntimeError("corrupt PDF")
            return document_id

        queue = _queue(analyzer, sink)
        job_id = await queue.submit(["doc_1", "doc_bad", "doc_3"], FULL, _options(max_concurrent=1))
        job = await queue.wait_for_job(job_id, timeout=5)

        assert job.status == JobStatus.COMPLETED
        assert job.processed_documents == 2
        assert job.failed_documents == 1
        assert len(job.errors) == 1
        error = job.errors[0]
        assert error.document_id == "doc_bad"
        assert error.error == "corrupt PDF"
        assert error.attempts == 3
        assert calls["doc_bad"] == 3
        assert calls["doc_1"] == 1

    @pytest.mark.asyncio
    async def test_retry_recovers_from_transient_failure(self):
        attempts = []

        async def flaky(document_id):
            attempts.append(document_id)
            if len(attempts) == 1:
                raise ConnectionError("layout service unavailable")
            return "ok"

        queue = _queue(flaky)
        job_id = await queue.submit(["doc_1"], FULL, _options())
        job = await queue.wait_for_job(job_id, timeout=5)

        assert job.status == JobStatus.COMPLETED
        assert job.processed_documents == 1
        assert job.failed_documents == 0
        assert job.results[0].data == "ok"
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_empty_job_completes_immediately(self, sink):
        queue = _queue(_echo, sink)

        job_id = await queue.submit([], FULL, _options())
        job = await queue.wait_for_job(job_id, timeout=5)

        assert job.status == JobStatus.COMPLETED
        assert job.progress == 100
        assert job.total_documents == 0
        assert [e.type for e in sink.events] == [JobEventType.COMPLETED]


class TestLimits:
    """Concurrency bound and whole-job timeout."""

    @pytest.mark.asyncio
    async def test_concurrency_never_exceeds_limit(self):
        active = 0
        peak = 0

        async def analyzer(document_id):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

        queue = _queue(analyzer)
        job_id = await queue.submit([f"doc_{i}" for i in range(6)], FULL, _options(max_concurrent=2))
        job = await queue.wait_for_job(job_id, timeout=5)

        assert job.processed_documents == 6
        assert 1 <= peak <= 2

    @pytest.mark.asyncio
    async def test_timeout_accounts_for_every_document(self, sink):
        queue = _queue(_slow, sink)

        job_id = await queue.submit(["doc_1", "doc_2", "doc_3"], FULL, _options(max_concurrent=1, timeout=0.05))
        job = await queue.wait_for_job(job_id, timeout=5)

        assert job.status == JobStatus.TIMEOUT
        assert job.processed_documents + job.failed_documents == job.total_documents
        assert {e.document_id for e in job.errors} == {"doc_1", "doc_2", "doc_3"}
        assert sink.events[-1].type == JobEventType.FAILED
        assert sink.events[-1].error == "Job timeout exceeded"
        await queue.shutdown()


class TestCancellation:
    """cancel_job and lookups."""

    @pytest.mark.asyncio
    async def test_cancel_running_job(self, sink):
        queue = _queue(_slow, sink)
        job_id = await queue.submit(["doc_1", "doc_2"], FULL, _options())
        await asyncio.sleep(0.02)

        assert await queue.cancel_job(job_id) is True
        assert await queue.cancel_job(job_id) is False

        job = queue.get_job_status(job_id)
        assert job.status == JobStatus.CANCELLED
        assert job.failed_documents == 2
        assert sink.events[-1].type == JobEventType.CANCELLED
        await queue.shutdown()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("analyzer,options,status", [
        (_echo, _options(), JobStatus.COMPLETED),
        (_slow, _options(max_concurrent=1, timeout=0.05), JobStatus.TIMEOUT),
    ])
    async def test_cancel_finished_job_changes_nothing(self, sink, analyzer, options, status):
        queue = _queue(analyzer, sink)
        job_id = await queue.submit(["doc_1", "doc_2"], FULL, options)
        before = await queue.wait_for_job(job_id, timeout=5)
        event_count = len(sink.events)

        assert before.status == status
        assert await queue.cancel_job(job_id) is False

        after = queue.get_job_status(job_id)
        assert after.status == status
        assert after.processed_documents == before.processed_documents
        assert after.failed_documents == before.failed_documents
        assert after.errors == before.errors
        assert after.completed_at == before.completed_at
        assert after.model_dump() == before.model_dump()
        assert len(sink.events) == event_count
        await queue.shutdown()

    @pytest.mark.asyncio
    async def test_unknown_job(self):
        queue = _queue(_echo)

        assert queue.get_job_status("job_missing") is None
        with pytest.raises(JobNotFoundError):
            await queue.cancel_job("job_missing")
        with pytest.raises(JobNotFoundError):
            await queue.wait_for_job("job_missing")

    @pytest.mark.asyncio
    async def test_submit_without_analyzer(self):
        queue = _queue(_echo)

        with pytest.raises(ValueError):
            await queue.submit(["doc_1"], ProcessingJobType.QUALITY_CHECK, _options())


class TestJobState:
    """Snapshots, sink failures and retention."""

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_affect_job(self):
        queue = _queue(_echo, FailingSink())

        job_id = await queue.submit(["doc_1", "doc_2"], FULL, _options())
        job = await queue.wait_for_job(job_id, timeout=5)

        assert job.status == JobStatus.COMPLETED
        assert job.processed_documents == 2

    @pytest.mark.asyncio
    async def test_snapshots_are_isolated(self):
        queue = _queue(_echo)
        job_id = await queue.submit(["doc_1"], FULL, _options())
        await queue.wait_for_job(job_id, timeout=5)

        snapshot = queue.get_job_status(job_id)
        snapshot.results.clear()
        snapshot.status = JobStatus.FAILED

        fresh = queue.get_job_status(job_id)
        assert fresh.status == JobStatus.COMPLETED
        assert len(fresh.results) == 1
        assert [j.id for j in queue.get_all_jobs()] == [job_id]

    @pytest.mark.asyncio
    async def test_cleanup_removes_finished_jobs(self):
        queue = _queue(_echo)
        job_id = await queue.submit(["doc_1"], FULL, _options())
        await queue.wait_for_job(job_id, timeout=5)
        await asyncio.sleep(0.01)

        assert queue.cleanup_old_jobs(0) == 1
        assert queue.get_job_status(job_id) is None

    @pytest.mark.asyncio
    async def test_cleanup_keeps_recent_jobs(self):
        queue = _queue(_echo)
        job_id = await queue.submit(["doc_1"], FULL, _options())
        await queue.wait_for_job(job_id, timeout=5)

        assert queue.cleanup_old_jobs(24) == 0
        assert queue.get_job_status(job_id) is not None
