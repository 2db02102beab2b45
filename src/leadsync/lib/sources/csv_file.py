"""Bulk-file source: chunked CSV reading with delimiter/encoding detection.

Handles comma, semicolon, pipe, and tab delimiters and UTF-8 (with or
without BOM) or Latin-1 encoding.  Parsing is chunked by pandas so the
working set stays proportional to one parse chunk, not the whole file.
"""

import asyncio
from collections.abc import AsyncIterator, Iterator
from pathlib import Path
from typing import Any

import pandas as pd
from loguru import logger

from leadsync.lib.mapping.record import Record
from leadsync.lib.sources.base import SourceChunk
from leadsync.lib.sync_engine.errors import SourceUnavailableError

_DELIMITERS = (",", ";", "|", "\t")
_ENCODINGS = ("utf-8-sig", "latin-1")

DEFAULT_MAX_BYTES = 2 * 1024 * 1024 * 1024
DEFAULT_PARSE_CHUNK_ROWS = 5000


def detect_encoding(file_path: Path) -> str:
    """Detect file encoding by attempting to read with common encodings.

    Args:
        file_path: Path to the CSV file.

    Returns:
        The detected encoding string.

    Raises:
        ValueError: If encoding cannot be detected.
    """
    for encoding in _ENCODINGS:
        try:
            with file_path.open("r", encoding=encoding) as f:
                f.read(8192)
            return encoding
        except UnicodeDecodeError:
            continue
    msg = f"Cannot detect encoding for {file_path}"
    raise ValueError(msg)


def detect_delimiter(file_path: Path, encoding: str = "utf-8-sig") -> str:
    """Detect the CSV delimiter by counting candidates in the header line.

    Args:
        file_path: Path to the CSV file.
        encoding: Encoding used to read the header line.

    Returns:
        The detected delimiter character.

    Raises:
        ValueError: If the delimiter cannot be detected.
    """
    with file_path.open("r", encoding=encoding) as f:
        first_line = f.readline()

    counts = {delimiter: first_line.count(delimiter) for delimiter in _DELIMITERS}
    delimiter = max(counts, key=counts.get)  # type: ignore[arg-type]
    if counts[delimiter] == 0:
        # A single-column file is still valid
        if first_line.strip():
            return ","
        msg = f"Cannot detect delimiter in {file_path}"
        raise ValueError(msg)

    logger.debug(f"Detected delimiter: {delimiter!r} for {file_path}")
    return delimiter


class CsvFileSource:
    """Read an uploaded CSV file as fixed-size chunks of raw records.

    Args:
        path: Path to the uploaded file.
        batch_size: Rows per hand-off chunk.
        max_bytes: Hard ceiling on the file size.
        parse_chunk_rows: Rows pandas parses per internal read.
    """

    kind = "csv_file"

    def __init__(
        self,
        path: str | Path,
        batch_size: int = 100,
        *,
        max_bytes: int = DEFAULT_MAX_BYTES,
        parse_chunk_rows: int = DEFAULT_PARSE_CHUNK_ROWS,
    ) -> None:
        if batch_size < 1:
            msg = f"batch_size must be positive, got {batch_size}"
            raise ValueError(msg)
        self.path = Path(path)
        self.batch_size = batch_size
        self.max_bytes = max_bytes
        self.parse_chunk_rows = max(parse_chunk_rows, batch_size)
        self._encoding: str | None = None
        self._delimiter: str | None = None

    def _prepare(self) -> tuple[str, str]:
        """Validate the file and detect its dialect (cached)."""
        if not self.path.is_file():
            msg = f"Source file not found: {self.path}"
            raise SourceUnavailableError(msg)
        size = self.path.stat().st_size
        if size > self.max_bytes:
            msg = f"Source file {self.path} is {size} bytes, above the {self.max_bytes} byte limit"
            raise SourceUnavailableError(msg)
        if self._encoding is None or self._delimiter is None:
            try:
                self._encoding = detect_encoding(self.path)
                self._delimiter = detect_delimiter(self.path, self._encoding)
            except ValueError as exc:
                raise SourceUnavailableError(str(exc)) from exc
        return self._encoding, self._delimiter

    def _reader(self, *, skip_rows: int = 0, chunksize: int) -> Iterator[pd.DataFrame]:
        encoding, delimiter = self._prepare()
        logger.info(
            f"Parsing {self.path} with delimiter={delimiter!r}, encoding={encoding}, "
            f"batch_size={self.batch_size}, skip_rows={skip_rows}"
        )
        try:
            return pd.read_csv(
                self.path,
                sep=delimiter,
                encoding=encoding,
                chunksize=chunksize,
                dtype=str,
                keep_default_na=False,
                skiprows=range(1, skip_rows + 1) if skip_rows else None,
            )
        except pd.errors.EmptyDataError:
            return iter(())

    @staticmethod
    def _to_records(frame: pd.DataFrame) -> list[Record]:
        frame.columns = frame.columns.str.strip()
        frame = frame.apply(lambda column: column.str.strip())
        return [Record(row) for row in frame.to_dict(orient="records")]

    async def count_records(self) -> int | None:
        """Count data rows with a streaming pass over the file."""

        def _count() -> int:
            return sum(len(frame) for frame in self._reader(chunksize=self.parse_chunk_rows))

        return await asyncio.to_thread(_count)

    async def chunks(self, cursor: dict[str, Any] | None = None) -> AsyncIterator[SourceChunk]:
        """Yield chunks of ``batch_size`` rows, resuming after ``rows_consumed``.

        Raises:
            SourceUnavailableError: If the file is missing or over the size limit.
        """
        consumed = int((cursor or {}).get("rows_consumed", 0))
        reader = iter(self._reader(skip_rows=consumed, chunksize=self.parse_chunk_rows))
        buffer: list[Record] = []
        index = 0

        while True:
            frame = await asyncio.to_thread(next, reader, None)
            if frame is not None:
                buffer.extend(self._to_records(frame))
            while len(buffer) >= self.batch_size or (frame is None and buffer):
                records, buffer = buffer[: self.batch_size], buffer[self.batch_size :]
                consumed += len(records)
                yield SourceChunk(records=records, cursor={"rows_consumed": consumed}, index=index)
                index += 1
            if frame is None:
                break

    async def close(self) -> None:
        """Nothing to release; the parser is closed when exhausted."""

    async def discard(self) -> None:
        """Delete the uploaded file once its job has succeeded."""
        if self.path.exists():
            self.path.unlink()
            logger.info(f"Deleted consumed upload {self.path}")
