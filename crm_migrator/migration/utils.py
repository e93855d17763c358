"""
Migration-specific utilities for storing session uploads.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

DEFAULT_UPLOAD_SUBDIR = "migration_uploads"
CSV_EXTENSIONS: tuple[str, ...] = ("csv",)


def _normalize_upload_dir(configured_path: str | None, instance_path: str) -> Path:
    if not configured_path:
        return Path(instance_path) / DEFAULT_UPLOAD_SUBDIR

    candidate = Path(configured_path)
    if candidate.is_absolute():
        return candidate

    return Path(instance_path) / candidate


def resolve_upload_directory(app) -> Path:
    """
    Determine and create (if necessary) the migration upload directory.
    """

    upload_dir = _normalize_upload_dir(app.config.get("MIGRATION_UPLOAD_DIR"), app.instance_path)
    upload_dir.mkdir(parents=True, exist_ok=True)
    return upload_dir


def allowed_file(filename: str | None, allowed_extensions: Iterable[str] = CSV_EXTENSIONS) -> bool:
    """
    Validate the uploaded filename extension against the allowed set.
    """

    if not filename or "." not in filename:
        return False
    extension = filename.rsplit(".", 1)[1].lower()
    return extension in {ext.lower() for ext in allowed_extensions}


def safe_display_name(file_storage: FileStorage | None) -> str | None:
    if file_storage is None or not file_storage.filename:
        return None
    return secure_filename(file_storage.filename) or None


class UploadStore:
    """
    Session-keyed file storage.

    Each session owns exactly one file, written once at preview time and read
    once at confirm time.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    @classmethod
    def for_app(cls, app) -> "UploadStore":
        return cls(resolve_upload_directory(app))

    def path_for(self, session_id: str) -> Path:
        # Session ids are generated server side; secure_filename guards against crafted ids.
        return self.directory / f"{secure_filename(session_id)}.csv"

    def save(self, session_id: str, payload: bytes) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self.path_for(session_id)
        target.write_bytes(payload)
        current_app.logger.debug("Migration upload persisted to %s", target)
        return target

    def read(self, session_id: str) -> bytes:
        return self.path_for(session_id).read_bytes()

    def exists(self, session_id: str) -> bool:
        return self.path_for(session_id).is_file()

    def delete(self, session_id: str) -> None:
        """
        Remove a stored upload, logging but ignoring filesystem errors.
        """

        path = self.path_for(session_id)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:  # pragma: no cover - filesystem race
            current_app.logger.warning("Failed to remove migration upload %s: %s", path, exc)
