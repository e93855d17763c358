"""Source file adapters for CRM exports."""

from __future__ import annotations

from .csv_reader import (
    CRMExportReader,
    CSVReadStatistics,
    ParsedCSV,
    RawRow,
    decode_upload,
    read_csv,
    read_csv_bytes,
)

__all__ = [
    "CRMExportReader",
    "CSVReadStatistics",
    "ParsedCSV",
    "RawRow",
    "decode_upload",
    "read_csv",
    "read_csv_bytes",
]
