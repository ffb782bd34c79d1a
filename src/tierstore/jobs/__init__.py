"""Background job processing for tierstore.

Provides the out-of-band half of the storage engine:
- Redis-backed job queue implementing the JobDispatcher protocol
- Atomic job claiming with BRPOPLPUSH
- Retry with bounded exponential backoff
- Permanent discard of replication work whose source is gone

Example:
    from tierstore.jobs import JobQueue, JobWorker, register_storage_handlers

    queue = JobQueue()
    storage = Storage(layers, dispatcher=queue)

    worker = JobWorker(queue=queue)
    register_storage_handlers(worker, storage)
    await worker.run()
"""

from tierstore.jobs.queue import (
    DEFAULT_JOB_TTL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RESULT_TTL,
    Job,
    JobQueue,
    JobStatus,
)
from tierstore.jobs.tasks import build_storage_handlers, register_storage_handlers
from tierstore.jobs.worker import (
    DiscardJob,
    JobHandler,
    JobWorker,
    WorkerConfig,
    job_handler,
)

__all__ = [
    # Queue
    "Job",
    "JobQueue",
    "JobStatus",
    "DEFAULT_JOB_TTL",
    "DEFAULT_RESULT_TTL",
    "DEFAULT_MAX_RETRIES",
    # Worker
    "JobWorker",
    "JobHandler",
    "WorkerConfig",
    "DiscardJob",
    "job_handler",
    # Tasks
    "build_storage_handlers",
    "register_storage_handlers",
]
