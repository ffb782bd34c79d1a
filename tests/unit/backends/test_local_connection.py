"""Tests for the local filesystem connection."""

from __future__ import annotations

from pathlib import Path

import pytest

from tierstore.backends.base import BackendKind
from tierstore.backends.local import LocalConnection


class TestLocalConnection:
    """Tests for LocalConnection."""

    def test_kind_and_name(self, tmp_path: Path) -> None:
        """Local connections are filesystem connections named by root."""
        connection = LocalConnection(tmp_path)

        assert connection.kind == BackendKind.LOCAL
        assert connection.root == tmp_path.resolve()
        assert connection.name == f"local:{tmp_path.resolve()}"

    def test_local_path(self, tmp_path: Path) -> None:
        """Objects live at root/directory/key."""
        connection = LocalConnection(tmp_path)

        assert connection.local_path("prod", "docs/ab/cd") == tmp_path.resolve() / "prod/docs/ab/cd"
        assert connection.local_path("", "docs/ab/cd") == tmp_path.resolve() / "docs/ab/cd"

    @pytest.mark.asyncio
    async def test_put_and_fetch(self, local: LocalConnection) -> None:
        """Put creates directories on demand and fetch returns the body."""
        stored = await local.put("prod", "docs/ab/cdef", b"hello")

        assert stored.body == b"hello"
        assert stored.size == 5

        fetched = await local.fetch("prod", "docs/ab/cdef")
        assert fetched is not None
        assert fetched.body == b"hello"
        assert fetched.last_modified is not None

    @pytest.mark.asyncio
    async def test_put_leaves_no_temp_files(self, local: LocalConnection) -> None:
        """Writes are renamed into place."""
        await local.put("prod", "docs/ab/cdef", b"hello")

        files = [p.name for p in local.local_path("prod", "docs/ab").iterdir()]
        assert files == ["cdef"]

    @pytest.mark.asyncio
    async def test_fetch_missing(self, local: LocalConnection) -> None:
        """Missing objects fetch as None."""
        assert await local.fetch("prod", "docs/ab/missing") is None
        assert await local.head("prod", "docs/ab/missing") is False

    @pytest.mark.asyncio
    async def test_fetch_directory_is_missing(self, local: LocalConnection) -> None:
        """A directory at the object path is not an object."""
        await local.put("prod", "docs/ab/cdef", b"hello")

        assert await local.fetch("prod", "docs/ab") is None
        assert await local.head("prod", "docs/ab") is False

    @pytest.mark.asyncio
    async def test_head(self, local: LocalConnection) -> None:
        """Head reports existence."""
        await local.put("", "docs/ab/cdef", b"hello")

        assert await local.head("", "docs/ab/cdef") is True

    @pytest.mark.asyncio
    async def test_remove(self, local: LocalConnection) -> None:
        """Remove reports whether an object was deleted."""
        await local.put("prod", "docs/ab/cdef", b"hello")

        assert await local.remove("prod", "docs/ab/cdef") is True
        assert await local.remove("prod", "docs/ab/cdef") is False
        assert await local.head("prod", "docs/ab/cdef") is False

    @pytest.mark.asyncio
    async def test_remove_prunes_empty_directories(self, local: LocalConnection) -> None:
        """Empty parents are pruned up to, not including, the directory scope."""
        await local.put("prod", "docs/ab/cdef", b"hello")
        await local.put("prod", "docs/ff/0000", b"other")

        await local.remove("prod", "docs/ab/cdef")

        assert not local.local_path("prod", "docs/ab").exists()
        assert local.local_path("prod", "docs/ff").exists()

        await local.remove("prod", "docs/ff/0000")

        assert not local.local_path("prod", "docs").exists()
        assert local.local_path("prod", "").exists()

    @pytest.mark.asyncio
    async def test_list_keys(self, local: LocalConnection) -> None:
        """List keys under a prefix, relative to the directory."""
        await local.put("prod", "docs/ab/cdef", b"1")
        await local.put("prod", "docs/12/3456", b"2")
        await local.put("prod", "images/ab/cdef", b"3")
        await local.put("other", "docs/99/9999", b"4")

        keys = [key async for key in local.list_keys("prod", "docs/")]

        assert sorted(keys) == ["docs/12/3456", "docs/ab/cdef"]

    @pytest.mark.asyncio
    async def test_list_keys_missing_directory(self, local: LocalConnection) -> None:
        """Listing a directory that was never written yields nothing."""
        keys = [key async for key in local.list_keys("nothing-here")]

        assert keys == []

    @pytest.mark.asyncio
    async def test_scan_reports_sizes_and_skips_dotfiles(self, local: LocalConnection) -> None:
        """Scan returns sizes and modification times, ignoring hidden files."""
        await local.put("cache", "docs/ab/cdef", b"12345")
        hidden = local.local_path("cache", "docs/ab/.cdef.partial.tmp")
        hidden.write_bytes(b"partial")

        entries = await local.scan("cache")

        assert len(entries) == 1
        entry = entries[0]
        assert entry.key == "docs/ab/cdef"
        assert entry.size == 5
        assert entry.path == local.local_path("cache", "docs/ab/cdef")
        assert entry.modified.tzinfo is not None
