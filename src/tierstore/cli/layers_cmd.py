"""CLI command for inspecting the configured layer stack.

Usage:
    tierstore layers
    tierstore layers --layers layers.json --format json
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from tierstore.cli.common import LAYERS_OPTION_HELP, open_storage
from tierstore.storage import Storage

app = typer.Typer(help="Show the configured storage layers")


@app.callback(invoke_without_command=True)
def layers(
    layers_file: Path | None = typer.Option(None, "--layers", "-L", help=LAYERS_OPTION_HELP),
    output_format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: text, json",
    ),
) -> None:
    """Print every layer in read order with its flags."""
    storage = open_storage(layers_file)
    rows = asyncio.run(_describe(storage))

    if output_format == "json":
        typer.echo(json.dumps(rows, indent=2))
        return

    table = Table(title="Storage layers")
    for column in ("#", "name", "mode", "access", "public", "cache limit", "size"):
        table.add_column(column)
    for row in rows:
        table.add_row(
            str(row["index"]),
            row["name"],
            "delayed" if row["delayed"] else "immediate",
            "readonly" if row["readonly"] else "writeable",
            "yes" if row["public"] else "no",
            "-" if row["cache"] is None else str(row["cache"]),
            "-" if row["size"] is None else str(row["size"]),
        )
    Console().print(table)


async def _describe(storage: Storage) -> list[dict[str, object]]:
    rows: list[dict[str, object]] = []
    try:
        for index, layer in enumerate(storage.layers):
            rows.append(
                {
                    "index": index,
                    "name": layer.name,
                    "delayed": layer.delayed,
                    "readonly": layer.readonly,
                    "public": layer.public,
                    "cache": layer.cache_limit,
                    "size": await layer.size() if layer.is_local else None,
                }
            )
    finally:
        await storage.close()
    return rows
