"""Exceptions and per-row error records raised or collected by the migration engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


class MigrationError(Exception):
    """Base exception for migration failures that abort the current operation."""


class UnknownSourceSystem(MigrationError):
    """Raised when a (source system, entity) pair has no alias catalog entry."""

    def __init__(self, source_system: str, entity: str | None = None) -> None:
        if entity:
            message = f"Unknown source system '{source_system}' for entity '{entity}'."
        else:
            message = f"Unknown source system '{source_system}'."
        super().__init__(message)
        self.source_system = source_system
        self.entity = entity


class SessionNotFound(MigrationError):
    """Raised when a session identifier does not exist for the tenant."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Migration session {session_id} not found.")
        self.session_id = session_id


class SessionExpired(MigrationError):
    """Raised when a session can no longer be confirmed (file gone, expired or closed)."""

    def __init__(self, session_id: str, reason: str = "Session expired or file not found. Please re-upload.") -> None:
        super().__init__(reason)
        self.session_id = session_id


class EmptyInput(MigrationError):
    """Raised when an uploaded CSV contains no data rows."""

    def __init__(self, message: str = "CSV file contains no data rows.") -> None:
        super().__init__(message)


class InvalidUpload(MigrationError):
    """Raised when an upload or mapping override cannot be used."""


class CatalogLoadError(RuntimeError):
    """Raised when the alias catalog cannot be loaded or validated."""


@dataclass(frozen=True)
class RowValidationError:
    """Validation failures for one normalized row, surfaced as data."""

    row_index: int
    row: Mapping[str, Any]
    errors: tuple[str, ...] = field(default_factory=tuple)

    def as_dict(self) -> dict[str, Any]:
        return {"row_index": self.row_index, "row": dict(self.row), "errors": list(self.errors)}


@dataclass(frozen=True)
class RowPersistError:
    """A row whose upsert failed; processing continued with the next row."""

    row: Mapping[str, Any]
    error: str
    position: int | None = None

    def as_dict(self) -> dict[str, Any]:
        return {"row": dict(self.row), "error": self.error, "position": self.position}
