"""CLI command for running cache eviction once.

Usage:
    tierstore evict
    tierstore evict --layers layers.json
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from tierstore.cli.common import LAYERS_OPTION_HELP, open_storage
from tierstore.layer import CachedFileEntry
from tierstore.storage import Storage

app = typer.Typer(help="Evict replicated entries from over-budget cache layers")


@app.callback(invoke_without_command=True)
def evict(
    layers_file: Path | None = typer.Option(None, "--layers", "-L", help=LAYERS_OPTION_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="List every evicted entry"),
) -> None:
    """Evict least recently used cache entries until every cache fits its limit."""
    storage = open_storage(layers_file)
    if not storage.layers.any_cache:
        typer.echo("No cache layers configured")
        asyncio.run(storage.close())
        return

    evicted = asyncio.run(_evict(storage))

    if verbose:
        for entry in evicted:
            typer.echo(f"  {entry.type}/{entry.key} ({entry.size} bytes)")
    freed = sum(entry.size for entry in evicted)
    typer.echo(f"Evicted {len(evicted)} entries, freed {freed} bytes")


async def _evict(storage: Storage) -> list[CachedFileEntry]:
    try:
        return await storage.evict_caches()
    finally:
        await storage.close()
