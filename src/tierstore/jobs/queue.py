"""Redis-backed job queue for replication and eviction work.

Provides a distributed job queue with:
- Job submission and status tracking
- Atomic job claiming via BRPOPLPUSH
- Delayed retries (sorted set scored by due time) for exponential backoff
- Dead letter queue for jobs that exhausted their retries
- Permanent discard for jobs whose work is no longer needed

Example:
    queue = JobQueue()
    await queue.initialize()

    # Producer side
    job_id = await queue.submit("replicate_store", {"type": "documents", "key": key})

    # Worker side
    async for job in queue.claim_jobs():
        result = await process_job(job)
        await queue.complete_job(job.id, result)
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, TypeVar, cast
from uuid import uuid4

if TYPE_CHECKING:
    from redis.asyncio import Redis

from tierstore.jobs.redis import get_redis

T = TypeVar("T")


def _await_redis(result: Awaitable[T] | T) -> Awaitable[T]:
    """Cast redis-py async results to an awaitable for mypy."""
    return cast(Awaitable[T], result)


def _decode(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else value


logger = logging.getLogger(__name__)

# Redis key prefixes
JOB_PREFIX = "tierstore:job:"
QUEUE_PENDING = "tierstore:jobs:pending"
QUEUE_PROCESSING = "tierstore:jobs:processing"
QUEUE_DELAYED = "tierstore:jobs:delayed"
QUEUE_DLQ = "tierstore:jobs:dlq"

# Default configuration
DEFAULT_JOB_TTL = 86400 * 7  # 7 days
DEFAULT_RESULT_TTL = 86400  # 24 hours
DEFAULT_MAX_RETRIES = 10


class JobStatus(str, Enum):
    """Lifecycle of a job."""

    PENDING = "pending"
    RUNNING = "running"
    RETRYING = "retrying"  # Waiting in the delayed set
    COMPLETED = "completed"
    DISCARDED = "discarded"  # Work no longer needed, not an error
    DEAD = "dead"  # Out of attempts, parked in the DLQ


@dataclass
class Job:
    """A unit of replication or eviction work and its state."""

    id: str
    task: str
    payload: dict[str, Any]
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    result: dict[str, Any] | None = None
    error: str | None = None
    attempts: int = 0
    max_retries: int = DEFAULT_MAX_RETRIES

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form stored under the job key."""
        return {
            "id": self.id,
            "task": self.task,
            "payload": self.payload,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "result": self.result,
            "error": self.error,
            "attempts": self.attempts,
            "max_retries": self.max_retries,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Job:
        """Rebuild a job from its stored JSON form."""
        return cls(
            id=data["id"],
            task=data["task"],
            payload=data["payload"],
            status=JobStatus(data["status"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            started_at=(
                datetime.fromisoformat(data["started_at"]) if data.get("started_at") else None
            ),
            completed_at=(
                datetime.fromisoformat(data["completed_at"]) if data.get("completed_at") else None
            ),
            result=data.get("result"),
            error=data.get("error"),
            attempts=data.get("attempts", 0),
            max_retries=data.get("max_retries", DEFAULT_MAX_RETRIES),
        )


class JobQueue:
    """Job queue over Redis lists and a sorted set.

    Uses Redis lists for queue management:
    - LPUSH to add jobs
    - BRPOPLPUSH to atomically move jobs from pending to processing
    - ZADD into a delayed set for retries with backoff
    - Job state stored in separate keys

    Implements the JobDispatcher protocol used by the storage facade.
    """

    def __init__(
        self,
        job_ttl: int = DEFAULT_JOB_TTL,
        result_ttl: int = DEFAULT_RESULT_TTL,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        self.job_ttl = job_ttl
        self.result_ttl = result_ttl
        self.max_retries = max_retries
        self._redis: Redis | None = None

    async def initialize(self) -> None:
        """Connect to Redis using the configured URL."""
        if self._redis is None:
            self._redis = await get_redis()
            logger.info("Job queue initialized")

    async def _get_redis(self) -> Redis:
        """Shared client, connected on first use."""
        if self._redis is None:
            await self.initialize()
        return self._redis  # type: ignore[return-value]

    def _job_key(self, job_id: str) -> str:
        """Key holding the job JSON."""
        return f"{JOB_PREFIX}{job_id}"

    async def _save(self, job: Job, ttl: int) -> None:
        redis = await self._get_redis()
        await _await_redis(redis.set(self._job_key(job.id), json.dumps(job.to_dict()), ex=ttl))

    async def submit(
        self,
        task: str,
        payload: dict[str, Any] | None = None,
        max_retries: int | None = None,
    ) -> str:
        """Persist a new job and push it onto the pending list.

        Args:
            task: Task name (e.g., "replicate_store", "evict_caches")
            payload: Task-specific data
            max_retries: Override default max attempts

        Returns:
            Job ID for tracking
        """
        redis = await self._get_redis()

        job = Job(
            id=str(uuid4()),
            task=task,
            payload=payload or {},
            max_retries=max_retries if max_retries is not None else self.max_retries,
        )

        await self._save(job, self.job_ttl)
        await _await_redis(redis.lpush(QUEUE_PENDING, job.id))

        logger.debug(f"Queued {task} job {job.id}")
        return job.id

    async def dispatch(self, task: str, payload: dict[str, Any]) -> str:
        """Schedule storage work; see JobDispatcher."""
        return await self.submit(task, payload)

    async def get_job(self, job_id: str) -> Job | None:
        """Load a job by ID.

        Returns:
            Job if found, None otherwise
        """
        redis = await self._get_redis()
        data = await redis.get(self._job_key(job_id))

        if data is None:
            return None

        return Job.from_dict(json.loads(data))

    async def promote_due_jobs(self, now: float | None = None) -> int:
        """Move retries whose backoff has elapsed back to the pending queue.

        Returns:
            Number of jobs promoted
        """
        redis = await self._get_redis()
        now = time.time() if now is None else now

        due = await _await_redis(redis.zrangebyscore(QUEUE_DELAYED, "-inf", now))
        promoted = 0
        for job_id_bytes in due:
            job_id = _decode(job_id_bytes)
            # ZREM succeeds for exactly one worker, so each retry is promoted once
            if await _await_redis(redis.zrem(QUEUE_DELAYED, job_id)):
                await _await_redis(redis.lpush(QUEUE_PENDING, job_id))
                promoted += 1

        if promoted:
            logger.debug(f"Promoted {promoted} delayed jobs")
        return promoted

    async def claim_jobs(
        self,
        batch_size: int = 1,
        timeout: int | None = None,
    ) -> AsyncIterator[Job]:
        """Claim up to ``batch_size`` jobs, promoting due retries first.

        Uses BRPOPLPUSH for atomic job claiming:
        - Blocks until a job is available
        - Atomically moves job from pending to processing
        - Prevents duplicate processing

        Args:
            batch_size: Number of jobs to claim
            timeout: Block timeout in seconds (None for forever)

        Yields:
            Jobs ready for processing
        """
        redis = await self._get_redis()
        timeout_sec = timeout if timeout is not None else 0

        await self.promote_due_jobs()

        for _ in range(batch_size):
            job_id_bytes = cast(
                bytes | str | None,
                await _await_redis(
                    redis.brpoplpush(
                        QUEUE_PENDING,
                        QUEUE_PROCESSING,
                        timeout=timeout_sec,
                    )
                ),
            )

            if job_id_bytes is None:
                break

            job_id = _decode(job_id_bytes)
            job = await self.get_job(job_id)

            if job is None:
                # Job data expired, drop the dangling ID
                await _await_redis(redis.lrem(QUEUE_PROCESSING, 1, job_id))
                continue

            job.status = JobStatus.RUNNING
            job.started_at = datetime.now(timezone.utc)
            job.attempts += 1
            await self._save(job, self.job_ttl)

            logger.debug(f"Claimed {job.task} job {job.id}, attempt {job.attempts}")
            yield job

    async def complete_job(
        self,
        job_id: str,
        result: dict[str, Any] | None = None,
    ) -> None:
        """Mark job as completed."""
        redis = await self._get_redis()
        job = await self.get_job(job_id)

        if job is None:
            logger.warning(f"Cannot complete unknown job {job_id}")
            return

        job.status = JobStatus.COMPLETED
        job.completed_at = datetime.now(timezone.utc)
        job.result = result

        await self._save(job, self.result_ttl)
        await _await_redis(redis.lrem(QUEUE_PROCESSING, 1, job_id))

        logger.debug(f"Completed job {job_id}")

    async def discard_job(self, job_id: str, reason: str) -> None:
        """Drop a job permanently without treating it as a failure."""
        redis = await self._get_redis()
        job = await self.get_job(job_id)

        if job is None:
            logger.warning(f"Cannot discard unknown job {job_id}")
            return

        job.status = JobStatus.DISCARDED
        job.completed_at = datetime.now(timezone.utc)
        job.error = reason

        await self._save(job, self.result_ttl)
        await _await_redis(redis.lrem(QUEUE_PROCESSING, 1, job_id))

        logger.info(f"Job discarded: {job_id} ({reason})")

    async def fail_job(
        self,
        job_id: str,
        error: str,
        retry: bool = True,
        delay: float = 0.0,
    ) -> None:
        """Mark job as failed, optionally retry after ``delay`` seconds.

        Args:
            job_id: Job identifier
            error: Error message
            retry: Whether to retry if attempts remaining
            delay: Backoff before the retry becomes claimable
        """
        redis = await self._get_redis()
        job = await self.get_job(job_id)

        if job is None:
            logger.warning(f"Cannot fail unknown job {job_id}")
            return

        job.error = error
        await _await_redis(redis.lrem(QUEUE_PROCESSING, 1, job_id))

        if retry and job.attempts < job.max_retries:
            if delay > 0:
                job.status = JobStatus.RETRYING
                await self._save(job, self.job_ttl)
                await _await_redis(redis.zadd(QUEUE_DELAYED, {job_id: time.time() + delay}))
            else:
                job.status = JobStatus.PENDING
                await self._save(job, self.job_ttl)
                await _await_redis(redis.lpush(QUEUE_PENDING, job_id))
            logger.info(
                f"Job queued for retry in {delay:.1f}s: {job_id} "
                f"(attempt {job.attempts}/{job.max_retries})"
            )
        else:
            job.status = JobStatus.DEAD
            job.completed_at = datetime.now(timezone.utc)
            await self._save(job, self.job_ttl)
            await _await_redis(redis.lpush(QUEUE_DLQ, job_id))
            logger.warning(f"Job {job_id} ({job.task}) dead-lettered after {job.attempts} attempts")

    async def get_queue_stats(self) -> dict[str, int]:
        """Count jobs per queue.

        Returns:
            Dict with pending, processing, delayed and dlq counts
        """
        redis = await self._get_redis()

        return {
            "pending": await _await_redis(redis.llen(QUEUE_PENDING)),
            "processing": await _await_redis(redis.llen(QUEUE_PROCESSING)),
            "delayed": await _await_redis(redis.zcard(QUEUE_DELAYED)),
            "dlq": await _await_redis(redis.llen(QUEUE_DLQ)),
        }
