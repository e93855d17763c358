"""CSV reader for CRM exports.

Reads the header row and data rows of an uploaded export without applying any
mapping. Rows are kept as the literal source values so they remain the audit
trail back to the input file.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from typing import IO, Iterator, Sequence

from ..errors import EmptyInput, InvalidUpload


@dataclass(frozen=True)
class RawRow:
    """One CSV data row keyed by source column name."""

    position: int
    source_line: int
    values: dict[str, str | None]


@dataclass
class CSVReadStatistics:
    """Accumulated statistics from CSV parsing."""

    rows_processed: int = 0
    rows_skipped_blank: int = 0
    duplicate_headers: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ParsedCSV:
    headers: tuple[str, ...]
    rows: tuple[RawRow, ...]
    statistics: CSVReadStatistics


def _sanitize_header(header: str | None) -> str:
    token = (header or "").strip()
    return token.lstrip("\ufeff").strip()


def _row_is_blank(row: Sequence[str]) -> bool:
    return all(value is None or value.strip() == "" for value in row)


class CRMExportReader:
    """Streaming reader producing :class:`RawRow` records from a CSV export."""

    def __init__(self, file_obj: IO[str]) -> None:
        self._file_obj = file_obj
        self._headers: tuple[str, ...] | None = None
        self.statistics = CSVReadStatistics()

    @property
    def headers(self) -> tuple[str, ...]:
        if self._headers is None:
            raise RuntimeError("Headers are only available after iteration has started.")
        return self._headers

    def _prepare_reader(self):
        self._file_obj.seek(0)
        reader = csv.reader(self._file_obj)
        for raw_headers in reader:
            if _row_is_blank(raw_headers):
                continue
            headers = tuple(_sanitize_header(header) for header in raw_headers)
            seen: set[str] = set()
            for header in headers:
                if header in seen and header not in self.statistics.duplicate_headers:
                    self.statistics.duplicate_headers.append(header)
                seen.add(header)
            self._headers = headers
            return reader
        raise EmptyInput("CSV file is empty; expected a header row and at least one data row.")

    def iter_rows(self) -> Iterator[RawRow]:
        try:
            reader = self._prepare_reader()
            headers = self.headers
            position = 0
            for raw_values in reader:
                if _row_is_blank(raw_values):
                    self.statistics.rows_skipped_blank += 1
                    continue
                values: dict[str, str | None] = {}
                for index, header in enumerate(headers):
                    if header in values:
                        # Duplicate header: the first column keeps the value.
                        continue
                    cell = raw_values[index] if index < len(raw_values) else None
                    values[header] = cell.strip() if cell is not None else None
                self.statistics.rows_processed += 1
                yield RawRow(position=position, source_line=reader.line_num, values=values)
                position += 1
        except csv.Error as exc:
            raise InvalidUpload(f"Could not parse CSV: {exc}") from exc


def decode_upload(payload: bytes) -> str:
    """Decode raw upload bytes, tolerating an Excel byte-order mark."""

    try:
        return payload.decode("utf-8-sig")
    except UnicodeDecodeError:
        # Legacy CRM exports are frequently Windows-1252.
        return payload.decode("cp1252", errors="replace")


def read_csv(file_obj: IO[str]) -> ParsedCSV:
    """
    Parse a CSV export into headers and raw rows.

    Raises :class:`EmptyInput` when the file has no header or no data rows.
    """

    reader = CRMExportReader(file_obj)
    rows = tuple(reader.iter_rows())
    if not rows:
        raise EmptyInput()
    return ParsedCSV(headers=reader.headers, rows=rows, statistics=reader.statistics)


def read_csv_bytes(payload: bytes) -> ParsedCSV:
    return read_csv(io.StringIO(decode_upload(payload), newline=""))
