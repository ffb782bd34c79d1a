"""Tests for the tierstore command line interface."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from typer.testing import CliRunner

from tierstore.backends.factory import load_layers
from tierstore.cli import app
from tierstore.content import content_digest
from tierstore.layer import timestamp_component
from tierstore.storage import Storage

runner = CliRunner()


@pytest.fixture
def layers_file(tmp_path: Path) -> Path:
    root = tmp_path / "blobs"
    path = tmp_path / "layers.json"
    path.write_text(
        json.dumps(
            {
                "layers": [
                    {"backend": {"type": "local", "root": str(root)}, "path": "cache", "cache": 15},
                    {"backend": {"type": "local", "root": str(root)}, "path": "prod"},
                ]
            }
        )
    )
    return path


def _seed(layers_file: Path, *bodies: bytes) -> tuple[Storage, list[str]]:
    storage = Storage(load_layers(layers_file), AsyncMock())

    async def store() -> list[str]:
        return [await storage.store("docs", body) for body in bodies]

    return storage, asyncio.run(store())


def test_help() -> None:
    """The CLI lists its commands."""
    result = runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    for command in ("layers", "worker", "evict", "missing", "orphaned"):
        assert command in result.output


def test_layers_json(layers_file: Path) -> None:
    """Layers are listed in read order with their flags."""
    result = runner.invoke(app, ["layers", "--layers", str(layers_file), "--format", "json"])

    assert result.exit_code == 0
    rows = json.loads(result.output)
    assert [row["index"] for row in rows] == [0, 1]
    assert rows[0]["cache"] == 15
    assert rows[0]["name"].endswith("/cache")
    assert rows[1]["cache"] is None
    assert rows[1]["delayed"] is False


def test_layers_table(layers_file: Path) -> None:
    """The default output is a table."""
    result = runner.invoke(app, ["layers", "--layers", str(layers_file)])

    assert result.exit_code == 0
    assert "Storage layers" in result.output


def test_invalid_layer_file(tmp_path: Path) -> None:
    """Configuration errors exit with code 2."""
    path = tmp_path / "layers.json"
    path.write_text(json.dumps({"layers": [{"backend": {"type": "ftp"}}]}))

    result = runner.invoke(app, ["layers", "--layers", str(path)])

    assert result.exit_code == 2


def test_evict(layers_file: Path) -> None:
    """Evict trims the cache back under its limit."""
    storage, keys = _seed(layers_file, b"0123456789", b"abcdefghij")
    cache = storage.layers[0]
    stale = cache.connection.local_path(cache.directory, timestamp_component("docs", keys[0]))
    stale.write_text("2020-01-01T00:00:00+00:00")

    result = runner.invoke(app, ["evict", "--layers", str(layers_file), "--verbose"])

    assert result.exit_code == 0
    assert f"docs/{keys[0]}" in result.output
    assert "Evicted 1 entries, freed 10 bytes" in result.output


def test_missing(layers_file: Path, tmp_path: Path) -> None:
    """Missing lists referenced hashes without a backing copy."""
    _, keys = _seed(layers_file, b"present")
    absent = content_digest(b"absent")
    hashes = tmp_path / "hashes.txt"
    hashes.write_text(f"# referenced\n{keys[0]}\n\n{absent}\n")

    result = runner.invoke(
        app,
        ["missing", "docs", "--hashes", str(hashes), "--layers", str(layers_file), "-f", "json"],
    )

    assert result.exit_code == 1
    assert json.loads(result.stdout) == {"type": "docs", "missing": [absent]}


def test_missing_none(layers_file: Path, tmp_path: Path) -> None:
    """A clean reconciliation exits successfully."""
    _, keys = _seed(layers_file, b"present")
    hashes = tmp_path / "hashes.txt"
    hashes.write_text(f"{keys[0]}\n")

    result = runner.invoke(
        app, ["missing", "docs", "--hashes", str(hashes), "--layers", str(layers_file)]
    )

    assert result.exit_code == 0


def test_orphaned(layers_file: Path, tmp_path: Path) -> None:
    """Orphaned lists unreferenced content per non-cache layer."""
    _, keys = _seed(layers_file, b"referenced", b"orphan")
    hashes = tmp_path / "hashes.txt"
    hashes.write_text(f"{keys[0]}\n")

    result = runner.invoke(
        app,
        ["orphaned", "docs", "--hashes", str(hashes), "--layers", str(layers_file), "-f", "json"],
    )

    assert result.exit_code == 1
    orphaned = json.loads(result.stdout)["orphaned"]
    assert len(orphaned) == 1
    (layer_name, orphans), = orphaned.items()
    assert layer_name.endswith("/prod")
    assert orphans == [keys[1]]
