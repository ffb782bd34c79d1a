"""Record sources for reconciliation.

Reconciliation compares the content hashes referenced by records against what
the layers actually hold. A record source yields those hashes for one type
scope in fixed-size batches, so large tables never need to be loaded at once.

Sources:
- StaticRecordSource: an in-memory sequence (tests, hash lists from files)
- SqlRecordSource: a column of a SQLAlchemy table or mapped model
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable, Sequence
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

DEFAULT_BATCH_SIZE = 200


@runtime_checkable
class RecordSource(Protocol):
    """Content hashes referenced by records of one type scope."""

    type: str

    def batches(self, size: int) -> AsyncIterator[list[str | None]]:
        """Yield referenced content hashes, at most ``size`` per batch."""
        ...


class StaticRecordSource:
    """Record source over an in-memory sequence of hashes."""

    def __init__(self, type: str, hashes: Iterable[str | None]) -> None:
        self.type = type
        self._hashes: Sequence[str | None] = list(hashes)

    async def batches(self, size: int) -> AsyncIterator[list[str | None]]:
        for start in range(0, len(self._hashes), size):
            yield list(self._hashes[start : start + size])


class SqlRecordSource:
    """Record source reading a content hash column with SQLAlchemy.

    Distinct non-null hashes are paged with keyset pagination on the column
    itself, one short-lived session per batch.

    Example:
        source = SqlRecordSource(
            session_factory,
            Document.content_hash,
            type="documents",
            criteria=[Document.deleted_at.is_(None)],
        )
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        column: Any,
        type: str,
        criteria: Sequence[Any] = (),
    ) -> None:
        self.session_factory = session_factory
        self.column = column
        self.type = type
        self.criteria = list(criteria)

    async def batches(self, size: int) -> AsyncIterator[list[str | None]]:
        last: str | None = None
        while True:
            stmt = (
                select(self.column)
                .where(self.column.is_not(None), *self.criteria)
                .distinct()
                .order_by(self.column)
                .limit(size)
            )
            if last is not None:
                stmt = stmt.where(self.column > last)

            async with self.session_factory() as session:
                result = await session.execute(stmt)
                batch: list[str | None] = list(result.scalars().all())

            if not batch:
                return
            yield batch
            if len(batch) < size:
                return
            last = batch[-1]
