"""CLI command for running the background job worker.

Usage:
    tierstore worker
    tierstore worker --name worker-1 --batch-size 4
    tierstore worker --once
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from tierstore.cli.common import LAYERS_OPTION_HELP, open_storage, resolve_settings
from tierstore.jobs.queue import JobQueue
from tierstore.jobs.redis import close_redis
from tierstore.jobs.tasks import register_storage_handlers
from tierstore.jobs.worker import JobWorker, WorkerConfig
from tierstore.storage import Storage

app = typer.Typer(help="Run the replication and eviction job worker")


@app.callback(invoke_without_command=True)
def worker(
    layers_file: Path | None = typer.Option(None, "--layers", "-L", help=LAYERS_OPTION_HELP),
    name: str = typer.Option("default", "--name", "-n", help="Worker name used in logs"),
    batch_size: int = typer.Option(1, "--batch-size", "-b", help="Jobs claimed per poll"),
    once: bool = typer.Option(False, "--once", help="Process one batch and exit"),
) -> None:
    """Process replicate_* and evict_caches jobs until shutdown."""
    resolved = resolve_settings(layers_file)
    queue = JobQueue(max_retries=resolved.job_max_retries)
    storage = open_storage(layers_file, queue)

    job_worker = JobWorker(
        queue=queue,
        config=WorkerConfig(
            name=name,
            batch_size=batch_size,
            poll_interval=resolved.job_poll_interval,
            claim_timeout=resolved.job_claim_timeout,
            retry_base_delay=resolved.job_retry_base_delay,
            retry_max_delay=resolved.job_retry_max_delay,
        ),
    )
    register_storage_handlers(job_worker, storage)

    typer.echo(f"Starting worker {name} with {len(storage.layers)} layers")
    processed = asyncio.run(_run(job_worker, storage, once))
    if once:
        typer.echo(f"Processed {processed} jobs")


async def _run(job_worker: JobWorker, storage: Storage, once: bool) -> int:
    try:
        if once:
            return await job_worker.run_once()
        await job_worker.run()
        return 0
    finally:
        await storage.close()
        await close_redis()
