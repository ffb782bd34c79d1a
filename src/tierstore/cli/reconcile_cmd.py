"""CLI commands for reconciling stored content against referenced hashes.

Usage:
    tierstore missing documents --hashes referenced.txt
    tierstore orphaned documents --hashes referenced.txt --format json

The hash file holds one content hash per line. Both commands exit with code 1
when discrepancies are found.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer

from tierstore.cli.common import LAYERS_OPTION_HELP, open_storage, read_hashes
from tierstore.reconciliation import StaticRecordSource
from tierstore.storage import Storage

missing_app = typer.Typer(help="List referenced hashes that no layer holds")
orphaned_app = typer.Typer(help="List stored hashes that nothing references")


def _hashes_option() -> typer.models.OptionInfo:
    return typer.Option(
        ...,
        "--hashes",
        "-H",
        help="File with one referenced content hash per line",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    )


@missing_app.callback(invoke_without_command=True)
def missing(
    type: str = typer.Argument(..., help="Type scope to check"),
    hashes: Path = _hashes_option(),
    layers_file: Path | None = typer.Option(None, "--layers", "-L", help=LAYERS_OPTION_HELP),
    output_format: str = typer.Option("text", "--format", "-f", help="Output format: text, json"),
) -> None:
    """Report referenced content missing from every non-cache layer."""
    storage = open_storage(layers_file)
    source = StaticRecordSource(type, read_hashes(hashes))
    result = sorted(asyncio.run(_missing(storage, source)))

    if output_format == "json":
        typer.echo(json.dumps({"type": type, "missing": result}, indent=2))
    else:
        for key in result:
            typer.echo(key)
        typer.echo(f"{len(result)} missing {type} keys", err=True)

    if result:
        raise typer.Exit(code=1)


@orphaned_app.callback(invoke_without_command=True)
def orphaned(
    type: str = typer.Argument(..., help="Type scope to check"),
    hashes: Path = _hashes_option(),
    layers_file: Path | None = typer.Option(None, "--layers", "-L", help=LAYERS_OPTION_HELP),
    output_format: str = typer.Option("text", "--format", "-f", help="Output format: text, json"),
) -> None:
    """Report, per non-cache layer, stored content no record references."""
    storage = open_storage(layers_file)
    source = StaticRecordSource(type, read_hashes(hashes))
    result = asyncio.run(_orphaned(storage, source))

    if output_format == "json":
        typer.echo(json.dumps({"type": type, "orphaned": result}, indent=2))
    else:
        for layer_name, keys in result.items():
            typer.echo(f"{layer_name}: {len(keys)} orphaned")
            for key in keys:
                typer.echo(f"  {key}")

    if any(result.values()):
        raise typer.Exit(code=1)


async def _missing(storage: Storage, source: StaticRecordSource) -> set[str]:
    try:
        return await storage.missing_keys(source)
    finally:
        await storage.close()


async def _orphaned(storage: Storage, source: StaticRecordSource) -> dict[str, list[str]]:
    try:
        orphans = await storage.orphaned_keys(source)
    finally:
        await storage.close()
    return {layer.name: sorted(keys) for layer, keys in orphans.items()}
