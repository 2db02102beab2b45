"""Shared contract for record sources."""

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from leadsync.lib.mapping.record import Record


@dataclass
class SourceChunk:
    """One bounded slice of raw records.

    Attributes:
        records: Raw records in source order.
        cursor: Position *after* this chunk; persisting it and passing it
            back to ``chunks()`` resumes with the next record.
        index: Zero-based chunk number within the current run.
    """

    records: list[Record]
    cursor: dict[str, Any] = field(default_factory=dict)
    index: int = 0

    def __len__(self) -> int:
        return len(self.records)


@runtime_checkable
class SourceReader(Protocol):
    """A lazy, finite, non-restartable sequence of raw record chunks."""

    kind: str

    async def count_records(self) -> int | None:
        """Best-effort total record count, or None if unknown."""
        ...

    def chunks(self, cursor: dict[str, Any] | None = None) -> AsyncIterator[SourceChunk]:
        """Yield chunks starting at ``cursor`` (or the beginning)."""
        ...

    async def close(self) -> None:
        """Release any held handle."""
        ...

    async def discard(self) -> None:
        """Remove consumed source artifacts after a successful run."""
        ...
