"""Job worker for replication and eviction.

The worker pulls jobs off the Redis queue and hands each one to the handler
registered for its task. A handler either returns a result (job completed),
raises DiscardJob (the work is no longer needed) or raises anything else (the
job is retried after an exponential backoff, until it runs out of attempts).

Example:
    worker = JobWorker(queue, WorkerConfig(name="replicator"))
    register_storage_handlers(worker, storage)
    await worker.run()  # until SIGTERM/SIGINT
"""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Awaitable, Callable

from tierstore.jobs.queue import Job, JobQueue
from tierstore.observability.logging import LogContext
from tierstore.observability.metrics import record_job

logger = logging.getLogger(__name__)

JobHandler = Callable[[Job], Awaitable[dict[str, Any] | None]]


class DiscardJob(Exception):
    """Raised by a handler when its work is permanently unnecessary."""


@dataclass
class WorkerConfig:
    """Worker tuning, usually filled from Settings."""

    name: str = "default"

    # Claiming
    batch_size: int = 1
    poll_interval: float = 1.0
    claim_timeout: int = 5

    # Backoff between attempts, in seconds
    retry_base_delay: float = 1.0
    retry_max_delay: float = 300.0


class JobWorker:
    """Runs queued storage jobs until asked to shut down.

    Jobs claimed in one batch are processed concurrently. Shutdown waits for
    in-flight jobs; unclaimed jobs stay in Redis for the next worker.
    """

    def __init__(
        self,
        queue: JobQueue | None = None,
        config: WorkerConfig | None = None,
    ) -> None:
        self.queue = queue or JobQueue()
        self.config = config or WorkerConfig()
        self._handlers: dict[str, JobHandler] = {}
        self._running = False
        self._stopping = asyncio.Event()
        self._in_flight: set[asyncio.Task[None]] = set()

    def register_handler(self, task: str, handler: JobHandler) -> None:
        """Route jobs named ``task`` to ``handler``."""
        self._handlers[task] = handler
        logger.debug(f"Handler bound for task {task}")

    def retry_delay(self, attempts: int) -> float:
        """Backoff before retry number ``attempts``: base * 2^(attempts-1), capped."""
        exponent = max(attempts - 1, 0)
        return min(self.config.retry_base_delay * (2**exponent), self.config.retry_max_delay)

    async def start(self) -> None:
        await self.queue.initialize()
        self._running = True
        self._stopping.clear()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._request_stop)

        logger.info(
            f"Worker {self.config.name} ready, handling: {', '.join(sorted(self._handlers))}"
        )

    async def stop(self) -> None:
        """Stop claiming and wait for in-flight jobs."""
        if not self._running and not self._in_flight:
            return

        self._running = False
        self._stopping.set()

        if self._in_flight:
            logger.info(f"Worker {self.config.name} draining {len(self._in_flight)} jobs")
            await asyncio.gather(*self._in_flight, return_exceptions=True)

        logger.info(f"Worker {self.config.name} stopped")

    def _request_stop(self) -> None:
        logger.info(f"Worker {self.config.name} received shutdown signal")
        asyncio.create_task(self.stop())

    async def run(self) -> None:
        """Claim and process jobs until stopped."""
        await self.start()

        try:
            while self._running:
                try:
                    await self._claim_batch()
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    logger.error(f"Worker {self.config.name} could not claim jobs: {e}")

                # Idle between polls, but wake immediately on shutdown
                try:
                    await asyncio.wait_for(self._stopping.wait(), self.config.poll_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            await self.stop()

    async def _claim_batch(self) -> None:
        async for job in self.queue.claim_jobs(
            batch_size=self.config.batch_size,
            timeout=self.config.claim_timeout,
        ):
            task = asyncio.create_task(self._process_job(job))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)

    async def _process_job(self, job: Job) -> None:
        handler = self._handlers.get(job.task)

        if handler is None:
            logger.error(f"Job {job.id} has unknown task {job.task!r}, dead-lettering")
            await self.queue.fail_job(job.id, f"Unknown task type: {job.task}", retry=False)
            record_job(job.task, "failed")
            return

        with LogContext(job_id=job.id, task=job.task):
            try:
                result = await handler(job)
            except DiscardJob as e:
                await self.queue.discard_job(job.id, str(e))
                record_job(job.task, "discarded")
            except Exception as e:
                delay = self.retry_delay(job.attempts)
                logger.error(f"Job {job.id} attempt {job.attempts} failed: {e}")
                await self.queue.fail_job(job.id, str(e), retry=True, delay=delay)
                record_job(job.task, "retried" if job.attempts < job.max_retries else "failed")
            else:
                await self.queue.complete_job(job.id, result)
                record_job(job.task, "completed")

    async def run_once(self) -> int:
        """Process a single claimed batch sequentially and return its size."""
        await self.queue.initialize()
        processed = 0

        async for job in self.queue.claim_jobs(batch_size=self.config.batch_size, timeout=1):
            await self._process_job(job)
            processed += 1

        return processed

    async def __aenter__(self) -> "JobWorker":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()


def job_handler(task: str) -> Callable[[JobHandler], JobHandler]:
    """Tag a coroutine function with the task it handles."""

    def tag(func: JobHandler) -> JobHandler:
        func.__job_task__ = task  # type: ignore[attr-defined]
        return func

    return tag
