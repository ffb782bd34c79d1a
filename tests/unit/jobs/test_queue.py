"""Tests for job queue functionality."""

import json
from unittest.mock import AsyncMock

import pytest

from tierstore.dispatch import JobDispatcher
from tierstore.jobs.queue import (
    DEFAULT_MAX_RETRIES,
    QUEUE_DELAYED,
    QUEUE_DLQ,
    QUEUE_PENDING,
    QUEUE_PROCESSING,
    Job,
    JobQueue,
    JobStatus,
)


class TestJob:
    """Tests for Job dataclass."""

    def test_job_creation(self) -> None:
        """Job can be created with minimal parameters."""
        job = Job(
            id="test-123",
            task="replicate_store",
            payload={"type": "docs", "key": "abc"},
        )

        assert job.id == "test-123"
        assert job.task == "replicate_store"
        assert job.payload == {"type": "docs", "key": "abc"}
        assert job.status == JobStatus.PENDING
        assert job.attempts == 0
        assert job.max_retries == DEFAULT_MAX_RETRIES == 10

    def test_job_from_dict(self) -> None:
        """Job deserializes from dictionary."""
        data = {
            "id": "test-123",
            "task": "evict_caches",
            "payload": {},
            "status": "retrying",
            "created_at": "2024-01-01T00:00:00+00:00",
            "started_at": "2024-01-01T00:01:00+00:00",
            "completed_at": None,
            "result": None,
            "error": "boom",
            "attempts": 2,
            "max_retries": 3,
        }

        job = Job.from_dict(data)

        assert job.id == "test-123"
        assert job.status == JobStatus.RETRYING
        assert job.attempts == 2
        assert job.max_retries == 3
        assert job.error == "boom"
        assert job.started_at is not None

    def test_job_roundtrip(self) -> None:
        """Job survives serialization roundtrip."""
        original = Job(
            id="test-123",
            task="replicate_delete",
            payload={"type": "docs", "key": "abc"},
            status=JobStatus.DISCARDED,
            error="Source content docs/abc no longer exists",
        )

        restored = Job.from_dict(json.loads(json.dumps(original.to_dict())))

        assert restored.id == original.id
        assert restored.task == original.task
        assert restored.status == original.status
        assert restored.error == original.error


class TestJobStatus:
    """Tests for JobStatus enum."""

    def test_all_statuses_exist(self) -> None:
        """All expected statuses are defined."""
        assert JobStatus.PENDING.value == "pending"
        assert JobStatus.RUNNING.value == "running"
        assert JobStatus.RETRYING.value == "retrying"
        assert JobStatus.COMPLETED.value == "completed"
        assert JobStatus.DISCARDED.value == "discarded"
        assert JobStatus.DEAD.value == "dead"


class TestJobQueue:
    """Tests for JobQueue class."""

    @pytest.fixture
    def mock_redis(self) -> AsyncMock:
        """Create mock Redis client."""
        mock = AsyncMock()
        mock.set = AsyncMock(return_value=True)
        mock.get = AsyncMock(return_value=None)
        mock.lpush = AsyncMock(return_value=1)
        mock.llen = AsyncMock(return_value=0)
        mock.lrem = AsyncMock(return_value=1)
        mock.zadd = AsyncMock(return_value=1)
        mock.zrem = AsyncMock(return_value=1)
        mock.zcard = AsyncMock(return_value=0)
        mock.zrangebyscore = AsyncMock(return_value=[])
        mock.brpoplpush = AsyncMock(return_value=None)
        return mock

    @pytest.fixture
    def queue(self, mock_redis: AsyncMock) -> JobQueue:
        """Create JobQueue with mocked Redis."""
        q = JobQueue()
        q._redis = mock_redis
        return q

    def _stored(self, mock_redis: AsyncMock, job: Job) -> None:
        mock_redis.get.return_value = json.dumps(job.to_dict()).encode()

    def _last_saved(self, mock_redis: AsyncMock) -> Job:
        return Job.from_dict(json.loads(mock_redis.set.call_args.args[1]))

    def test_is_a_dispatcher(self, queue: JobQueue) -> None:
        """The queue implements the dispatcher protocol."""
        assert isinstance(queue, JobDispatcher)

    @pytest.mark.asyncio
    async def test_submit_job(self, queue: JobQueue, mock_redis: AsyncMock) -> None:
        """Submitting a job stores it and adds to queue."""
        job_id = await queue.submit("replicate_store", {"type": "docs", "key": "abc"})

        assert job_id is not None
        saved = self._last_saved(mock_redis)
        assert saved.task == "replicate_store"
        assert saved.payload == {"type": "docs", "key": "abc"}
        mock_redis.lpush.assert_awaited_once_with(QUEUE_PENDING, job_id)

    @pytest.mark.asyncio
    async def test_dispatch_submits(self, queue: JobQueue, mock_redis: AsyncMock) -> None:
        """Dispatch enqueues a job with the given payload."""
        job_id = await queue.dispatch("evict_caches", {})

        assert self._last_saved(mock_redis).id == job_id
        assert mock_redis.lpush.called

    @pytest.mark.asyncio
    async def test_get_job_not_found(self, queue: JobQueue, mock_redis: AsyncMock) -> None:
        """Getting non-existent job returns None."""
        assert await queue.get_job("nonexistent") is None

    @pytest.mark.asyncio
    async def test_claim_jobs(self, queue: JobQueue, mock_redis: AsyncMock) -> None:
        """Claiming moves a job to running and counts the attempt."""
        self._stored(mock_redis, Job(id="test-123", task="evict_caches", payload={}))
        mock_redis.brpoplpush.side_effect = [b"test-123", None]

        jobs = [job async for job in queue.claim_jobs(batch_size=2, timeout=1)]

        assert [job.id for job in jobs] == ["test-123"]
        assert jobs[0].status == JobStatus.RUNNING
        assert jobs[0].attempts == 1
        mock_redis.brpoplpush.assert_any_await(QUEUE_PENDING, QUEUE_PROCESSING, timeout=1)

    @pytest.mark.asyncio
    async def test_claim_drops_expired_jobs(self, queue: JobQueue, mock_redis: AsyncMock) -> None:
        """Claimed IDs without job data are removed from processing."""
        mock_redis.brpoplpush.return_value = b"gone"

        jobs = [job async for job in queue.claim_jobs(batch_size=1, timeout=1)]

        assert jobs == []
        mock_redis.lrem.assert_awaited_once_with(QUEUE_PROCESSING, 1, "gone")

    @pytest.mark.asyncio
    async def test_promote_due_jobs(self, queue: JobQueue, mock_redis: AsyncMock) -> None:
        """Due retries move back to the pending queue."""
        mock_redis.zrangebyscore.return_value = [b"job-1", b"job-2"]
        mock_redis.zrem.side_effect = [1, 0]

        promoted = await queue.promote_due_jobs(now=100.0)

        assert promoted == 1
        mock_redis.zrangebyscore.assert_awaited_once_with(QUEUE_DELAYED, "-inf", 100.0)
        mock_redis.lpush.assert_awaited_once_with(QUEUE_PENDING, "job-1")

    @pytest.mark.asyncio
    async def test_complete_job(self, queue: JobQueue, mock_redis: AsyncMock) -> None:
        """Completing a job stores the result."""
        self._stored(mock_redis, Job(id="test-123", task="evict_caches", payload={}))

        await queue.complete_job("test-123", {"evicted": 2})

        saved = self._last_saved(mock_redis)
        assert saved.status == JobStatus.COMPLETED
        assert saved.result == {"evicted": 2}
        mock_redis.lrem.assert_awaited_once_with(QUEUE_PROCESSING, 1, "test-123")

    @pytest.mark.asyncio
    async def test_discard_job(self, queue: JobQueue, mock_redis: AsyncMock) -> None:
        """Discarded jobs are neither retried nor dead-lettered."""
        self._stored(mock_redis, Job(id="test-123", task="replicate_store", payload={}))

        await queue.discard_job("test-123", "source gone")

        saved = self._last_saved(mock_redis)
        assert saved.status == JobStatus.DISCARDED
        assert saved.error == "source gone"
        mock_redis.lpush.assert_not_awaited()
        mock_redis.zadd.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fail_job_schedules_delayed_retry(
        self, queue: JobQueue, mock_redis: AsyncMock
    ) -> None:
        """Failures with attempts left go to the delayed set."""
        self._stored(
            mock_redis, Job(id="test-123", task="replicate_store", payload={}, attempts=1)
        )

        await queue.fail_job("test-123", "boom", retry=True, delay=4.0)

        assert self._last_saved(mock_redis).status == JobStatus.RETRYING
        mock_redis.zadd.assert_awaited_once()
        key, mapping = mock_redis.zadd.call_args.args
        assert key == QUEUE_DELAYED
        assert list(mapping) == ["test-123"]

    @pytest.mark.asyncio
    async def test_fail_job_immediate_retry(self, queue: JobQueue, mock_redis: AsyncMock) -> None:
        """Failures without a delay are requeued right away."""
        self._stored(
            mock_redis, Job(id="test-123", task="replicate_store", payload={}, attempts=1)
        )

        await queue.fail_job("test-123", "boom", retry=True)

        assert self._last_saved(mock_redis).status == JobStatus.PENDING
        mock_redis.lpush.assert_awaited_once_with(QUEUE_PENDING, "test-123")

    @pytest.mark.asyncio
    async def test_fail_job_exhausted(self, queue: JobQueue, mock_redis: AsyncMock) -> None:
        """Jobs out of attempts move to the dead letter queue."""
        self._stored(
            mock_redis,
            Job(id="test-123", task="replicate_store", payload={}, attempts=10, max_retries=10),
        )

        await queue.fail_job("test-123", "boom", retry=True, delay=4.0)

        assert self._last_saved(mock_redis).status == JobStatus.DEAD
        mock_redis.lpush.assert_awaited_once_with(QUEUE_DLQ, "test-123")
        mock_redis.zadd.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_queue_stats(self, queue: JobQueue, mock_redis: AsyncMock) -> None:
        """Queue stats returns counts for each queue."""
        mock_redis.llen.side_effect = [5, 2, 1]  # pending, processing, dlq
        mock_redis.zcard.return_value = 3

        stats = await queue.get_queue_stats()

        assert stats == {"pending": 5, "processing": 2, "delayed": 3, "dlq": 1}
