"""Shared helpers for CLI commands."""

from __future__ import annotations

from pathlib import Path

import typer

from tierstore.backends.factory import build_storage
from tierstore.config import Settings, settings
from tierstore.errors import LayerConfigurationError
from tierstore.jobs.queue import JobQueue
from tierstore.storage import Storage

LAYERS_OPTION_HELP = "Layer configuration file (defaults to TIERSTORE_LAYERS_CONFIG)"


def resolve_settings(layers_file: Path | None) -> Settings:
    """Settings with an optional layer file override from the command line."""
    if layers_file is None:
        return settings
    return settings.model_copy(update={"layers_config": str(layers_file)})


def open_storage(layers_file: Path | None, queue: JobQueue | None = None) -> Storage:
    """Build the storage facade, exiting with a readable message on bad config."""
    resolved = resolve_settings(layers_file)
    try:
        return build_storage(resolved, queue or JobQueue(max_retries=resolved.job_max_retries))
    except (LayerConfigurationError, FileNotFoundError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=2) from e


def read_hashes(path: Path) -> list[str]:
    """Read a newline-separated hash list, ignoring blank lines and comments."""
    hashes: list[str] = []
    with path.open("r") as f:
        for line in f:
            value = line.strip()
            if value and not value.startswith("#"):
                hashes.append(value)
    return hashes
