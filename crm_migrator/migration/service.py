"""
Migration session and batch ledger service.

``MigrationService`` is the single entry point used by the HTTP views, the
CLI and the Celery tasks. A preview parses and validates an upload and
persists it under a pending session; a confirm imports the valid rows under a
fresh batch id; a rollback deletes everything carrying that batch id.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from crm_migrator.models import db
from crm_migrator.models.migration.schema import (
    MigrationBatch,
    MigrationBatchStatus,
    MigrationSession,
    MigrationSessionStatus,
)

from .adapters.csv_reader import read_csv_bytes
from .catalog import AliasCatalog, get_alias_catalog
from .contracts import ROLLBACK_ORDER, EntityType
from .errors import RowValidationError, SessionExpired, SessionNotFound, UnknownSourceSystem
from .metrics import record_import, record_preview, record_rollback
from .pipeline.column_mapper import ColumnMapping, map_columns, mapping_from_override
from .pipeline.importer import ImportSummary, import_rows, new_batch_id
from .pipeline.normalize import normalize_rows
from .pipeline.store import TenantStore
from .pipeline.validate import ValidationOutcome, validate_rows
from .utils import UploadStore

PREVIEW_SAMPLE_SIZE = 5
CONFIRM_ERROR_SAMPLE_SIZE = 10
DEFAULT_SESSION_TTL_MINUTES = 24 * 60


@dataclass(frozen=True)
class PreviewSummary:
    total_rows: int
    valid_rows: int
    error_rows: int
    unmapped_fields: tuple[str, ...]
    unclaimed_columns: tuple[str, ...]

    def as_dict(self) -> dict[str, Any]:
        return {
            "total_rows": self.total_rows,
            "valid_rows": self.valid_rows,
            "error_rows": self.error_rows,
            "unmapped_fields": list(self.unmapped_fields),
            "unclaimed_columns": list(self.unclaimed_columns),
        }


@dataclass(frozen=True)
class PreviewResult:
    session_id: str
    source_system: str
    entity: EntityType
    mapping: ColumnMapping
    summary: PreviewSummary
    sample_preview_rows: tuple[dict[str, Any], ...]
    sample_error_rows: tuple[RowValidationError, ...]
    expires_at: datetime

    def as_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "source_system": self.source_system,
            "entity": self.entity.value,
            "mapping": dict(self.mapping.fields),
            "mapping_overridden": self.mapping.overridden,
            "summary": self.summary.as_dict(),
            "sample_preview_rows": list(self.sample_preview_rows),
            "sample_error_rows": [error.as_dict() for error in self.sample_error_rows],
            "expires_at": self.expires_at.isoformat(),
        }


@dataclass(frozen=True)
class ConfirmResult:
    session_id: str
    entity: EntityType
    batch_id: str | None
    inserted_count: int
    updated_count: int
    error_count: int
    invalid_row_count: int
    sample_errors: tuple[dict[str, Any], ...]
    timed_out: bool = False
    rows_skipped_deadline: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "entity": self.entity.value,
            "batch_id": self.batch_id,
            "inserted_count": self.inserted_count,
            "updated_count": self.updated_count,
            "error_count": self.error_count,
            "invalid_row_count": self.invalid_row_count,
            "sample_errors": list(self.sample_errors),
            "timed_out": self.timed_out,
            "rows_skipped_deadline": self.rows_skipped_deadline,
        }


@dataclass(frozen=True)
class RollbackResult:
    batch_id: str
    deleted: Mapping[str, int]
    table_errors: tuple[dict[str, str], ...] = field(default_factory=tuple)

    @property
    def success(self) -> bool:
        return not self.table_errors

    @property
    def error(self) -> str | None:
        if not self.table_errors:
            return None
        return "; ".join(f"{item['entity']}: {item['error']}" for item in self.table_errors)

    @property
    def total_deleted(self) -> int:
        return sum(self.deleted.values())

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "batch_id": self.batch_id,
            "deleted": dict(self.deleted),
            "tables": [
                {
                    "entity": entity.plural,
                    "deleted": self.deleted.get(entity.plural),
                    "error": next(
                        (item["error"] for item in self.table_errors if item["entity"] == entity.plural),
                        None,
                    ),
                }
                for entity in ROLLBACK_ORDER
            ],
        }
        if self.error:
            payload["error"] = self.error
        return payload


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _config_int(key: str, default: int) -> int:
    try:
        return int(current_app.config.get(key) or default)
    except (TypeError, ValueError):
        return default


def _config_deadline() -> float | None:
    raw = current_app.config.get("MIGRATION_DEADLINE_SECONDS")
    if raw in (None, ""):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def list_source_systems(catalog: AliasCatalog | None = None) -> list[dict[str, Any]]:
    """Catalog read: every supported source system with display metadata."""

    return (catalog or get_alias_catalog()).list_source_systems()


def purge_expired_sessions(
    *,
    session: Session | None = None,
    uploads: UploadStore | None = None,
    now: datetime | None = None,
    organization_id: int | None = None,
) -> int:
    """
    Mark pending sessions past their retention window expired and delete
    their files. Returns the number of sessions purged.
    """

    session = session or db.session
    uploads = uploads or UploadStore.for_app(current_app)
    now = now or _utcnow()
    query = session.query(MigrationSession).filter(
        MigrationSession.status == MigrationSessionStatus.PENDING,
        MigrationSession.expires_at <= now,
    )
    if organization_id is not None:
        query = query.filter(MigrationSession.organization_id == organization_id)

    purged = 0
    for pending in query.all():
        uploads.delete(pending.id)
        pending.status = MigrationSessionStatus.EXPIRED
        pending.closed_at = now
        purged += 1
    session.commit()
    if purged:
        current_app.logger.info("Expired migration sessions purged", extra={"migration_sessions_purged": purged})
    return purged


class MigrationService:
    """Preview, confirm, rollback and discard migrations for one organization."""

    def __init__(
        self,
        organization_id: int,
        *,
        session: Session | None = None,
        catalog: AliasCatalog | None = None,
        uploads: UploadStore | None = None,
    ) -> None:
        self.organization_id = organization_id
        self.session: Session = session or db.session
        self.catalog = catalog or get_alias_catalog()
        self.uploads = uploads or UploadStore.for_app(current_app)

    # ---------------------------------------------------------------------
    # Catalog
    # ---------------------------------------------------------------------

    def list_source_systems(self) -> list[dict[str, Any]]:
        return list_source_systems(self.catalog)

    # ---------------------------------------------------------------------
    # Preview
    # ---------------------------------------------------------------------

    def _resolve_mapping(
        self,
        headers: tuple[str, ...],
        source_system: str,
        entity: EntityType,
        override: Mapping[str, Any] | None,
    ) -> ColumnMapping:
        alias_table = self.catalog.lookup(source_system, entity)
        if override:
            return mapping_from_override(override, entity)
        return map_columns(headers, alias_table, entity)

    @staticmethod
    def _evaluate(payload: bytes, mapping: ColumnMapping, entity: EntityType) -> ValidationOutcome:
        parsed = read_csv_bytes(payload)
        return validate_rows(normalize_rows(parsed.rows, mapping, entity), entity)

    def preview(
        self,
        payload: bytes,
        source_system: str,
        entity: EntityType | str,
        column_mapping_override: Mapping[str, Any] | None = None,
        *,
        filename: str | None = None,
    ) -> PreviewResult:
        """
        Map, normalize and validate an upload, then persist it as a pending session.

        Raises ``UnknownSourceSystem``, ``EmptyInput`` or ``InvalidUpload``
        without creating a session.
        """

        source_key = (source_system or "").strip().lower()
        try:
            try:
                entity_type = EntityType.coerce(entity)
            except ValueError as exc:
                raise UnknownSourceSystem(source_system, str(entity)) from exc
            # Catalog lookup first so an unknown pair fails before parsing.
            self.catalog.lookup(source_key, entity_type)
            parsed = read_csv_bytes(payload)
            mapping = self._resolve_mapping(parsed.headers, source_key, entity_type, column_mapping_override)
            outcome = validate_rows(normalize_rows(parsed.rows, mapping, entity_type), entity_type)
        except Exception:
            record_preview(source_key or "unknown", str(getattr(entity, "value", entity)), outcome="failure")
            raise

        summary = PreviewSummary(
            total_rows=outcome.total_rows,
            valid_rows=len(outcome.valid),
            error_rows=len(outcome.invalid),
            unmapped_fields=mapping.unmapped_fields,
            unclaimed_columns=mapping.unclaimed_columns,
        )
        ttl_minutes = _config_int("MIGRATION_SESSION_TTL_MINUTES", DEFAULT_SESSION_TTL_MINUTES)
        expires_at = _utcnow() + timedelta(minutes=ttl_minutes)
        migration_session = MigrationSession(
            id=new_batch_id(),
            organization_id=self.organization_id,
            source_system=source_key,
            entity=entity_type.value,
            status=MigrationSessionStatus.PENDING,
            original_filename=filename,
            column_mapping_json=mapping.as_dict(),
            mapping_overridden=mapping.overridden,
            summary_json=summary.as_dict(),
            expires_at=expires_at,
        )

        self.uploads.save(migration_session.id, payload)
        try:
            self.session.add(migration_session)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            self.uploads.delete(migration_session.id)
            raise

        record_preview(source_key, entity_type.value, outcome="success")
        current_app.logger.info(
            "Migration preview created",
            extra={
                "migration_session_id": migration_session.id,
                "migration_source_system": source_key,
                "migration_entity": entity_type.value,
                "migration_total_rows": summary.total_rows,
                "migration_valid_rows": summary.valid_rows,
                "migration_error_rows": summary.error_rows,
                "migration_organization_id": self.organization_id,
            },
        )
        return PreviewResult(
            session_id=migration_session.id,
            source_system=source_key,
            entity=entity_type,
            mapping=mapping,
            summary=summary,
            sample_preview_rows=tuple(outcome.valid[:PREVIEW_SAMPLE_SIZE]),
            sample_error_rows=tuple(outcome.invalid[:PREVIEW_SAMPLE_SIZE]),
            expires_at=expires_at,
        )

    # ---------------------------------------------------------------------
    # Sessions
    # ---------------------------------------------------------------------

    def get_session(self, session_id: str) -> MigrationSession:
        migration_session = (
            self.session.query(MigrationSession)
            .filter(
                MigrationSession.id == session_id,
                MigrationSession.organization_id == self.organization_id,
            )
            .one_or_none()
        )
        if migration_session is None:
            raise SessionNotFound(session_id)
        return migration_session

    def _ensure_confirmable(self, migration_session: MigrationSession) -> None:
        session_id = migration_session.id
        if migration_session.status != MigrationSessionStatus.PENDING:
            raise SessionExpired(
                session_id,
                f"Session {session_id} is {migration_session.status.value} and can no longer be confirmed.",
            )
        if migration_session.is_expired():
            migration_session.status = MigrationSessionStatus.EXPIRED
            migration_session.closed_at = _utcnow()
            self.session.commit()
            self.uploads.delete(session_id)
            raise SessionExpired(session_id)
        if not self.uploads.exists(session_id):
            raise SessionExpired(session_id)

    def discard(self, session_id: str) -> dict[str, Any]:
        """Delete the session's backing file and close it without importing."""

        migration_session = self.get_session(session_id)
        self.uploads.delete(session_id)
        if migration_session.status == MigrationSessionStatus.PENDING:
            migration_session.status = MigrationSessionStatus.DISCARDED
            migration_session.closed_at = _utcnow()
            self.session.commit()
            current_app.logger.info(
                "Migration session discarded",
                extra={"migration_session_id": session_id, "migration_organization_id": self.organization_id},
            )
        return {"session_id": session_id, "status": migration_session.status.value}

    def purge_expired(self, now: datetime | None = None) -> int:
        return purge_expired_sessions(
            session=self.session,
            uploads=self.uploads,
            now=now,
            organization_id=self.organization_id,
        )

    # ---------------------------------------------------------------------
    # Confirm
    # ---------------------------------------------------------------------

    def confirm(
        self,
        session_id: str,
        column_mapping_override: Mapping[str, Any] | None = None,
        *,
        max_workers: int | None = None,
        deadline_seconds: float | None = None,
    ) -> ConfirmResult:
        """
        Import the session's valid rows under a new batch id.

        Raises ``SessionExpired`` when the session is closed, past its
        retention window, or its file is gone.
        """

        migration_session = self.get_session(session_id)
        self._ensure_confirmable(migration_session)
        entity = EntityType.coerce(migration_session.entity)

        if column_mapping_override:
            mapping = self._resolve_mapping((), migration_session.source_system, entity, column_mapping_override)
        else:
            mapping = ColumnMapping.from_dict(migration_session.column_mapping_json or {})

        outcome = self._evaluate(self.uploads.read(session_id), mapping, entity)

        if max_workers is None:
            max_workers = _config_int("MIGRATION_MAX_WORKERS", 1)
        if deadline_seconds is None:
            deadline_seconds = _config_deadline()

        started = time.perf_counter()
        store = TenantStore(self.session, self.organization_id, source_system=migration_session.source_system)
        try:
            summary = import_rows(
                outcome.valid,
                entity,
                store,
                batch_id=new_batch_id(),
                max_workers=max(1, max_workers),
                deadline_seconds=deadline_seconds,
            )
            batch_id = self._record_batch(migration_session, summary)
            migration_session.status = MigrationSessionStatus.COMMITTED
            migration_session.closed_at = _utcnow()
            self.session.commit()
        except Exception:
            self.session.rollback()
            current_app.logger.exception(
                "Migration confirm failed",
                extra={"migration_session_id": session_id, "migration_organization_id": self.organization_id},
            )
            raise

        self.uploads.delete(session_id)
        record_import(
            entity.value,
            inserted=summary.inserted_count,
            updated=summary.updated_count,
            failed=summary.error_count,
            duration_seconds=time.perf_counter() - started,
        )
        current_app.logger.info(
            "Migration confirmed",
            extra={
                "migration_session_id": session_id,
                "migration_batch_id": batch_id,
                "migration_entity": entity.value,
                "migration_rows_inserted": summary.inserted_count,
                "migration_rows_updated": summary.updated_count,
                "migration_rows_failed": summary.error_count,
                "migration_rows_invalid": len(outcome.invalid),
                "migration_timed_out": summary.timed_out,
                "migration_organization_id": self.organization_id,
            },
        )
        return ConfirmResult(
            session_id=session_id,
            entity=entity,
            batch_id=batch_id,
            inserted_count=summary.inserted_count,
            updated_count=summary.updated_count,
            error_count=summary.error_count,
            invalid_row_count=len(outcome.invalid),
            sample_errors=tuple(error.as_dict() for error in summary.errors[:CONFIRM_ERROR_SAMPLE_SIZE]),
            timed_out=summary.timed_out,
            rows_skipped_deadline=summary.rows_skipped_deadline,
        )

    def _record_batch(self, migration_session: MigrationSession, summary: ImportSummary) -> str | None:
        if summary.inserted_count == 0:
            return None
        batch = MigrationBatch(
            id=summary.batch_id,
            organization_id=self.organization_id,
            session_id=migration_session.id,
            source_system=migration_session.source_system,
            entity=summary.entity.value,
            status=MigrationBatchStatus.COMMITTED,
            inserted_count=summary.inserted_count,
            updated_count=summary.updated_count,
            error_count=summary.error_count,
            timed_out=summary.timed_out,
        )
        self.session.add(batch)
        return batch.id

    # ---------------------------------------------------------------------
    # Batches
    # ---------------------------------------------------------------------

    def list_batches(self) -> list[MigrationBatch]:
        return (
            self.session.query(MigrationBatch)
            .filter(MigrationBatch.organization_id == self.organization_id)
            .order_by(MigrationBatch.created_at.desc())
            .all()
        )

    def rollback(self, batch_id: str) -> RollbackResult:
        """
        Delete every record tagged ``batch_id``, invoices then jobs then contacts.

        Each table is attempted independently so a partial rollback is
        reported per table. Unknown or already rolled back batches delete
        nothing and succeed.
        """

        store = TenantStore(self.session, self.organization_id)
        deleted: dict[str, int] = {}
        table_errors: list[dict[str, str]] = []
        for entity in ROLLBACK_ORDER:
            try:
                deleted[entity.plural] = store.delete_batch(entity, batch_id)
                self.session.commit()
            except SQLAlchemyError as exc:
                self.session.rollback()
                message = str(exc).splitlines()[0] if str(exc) else exc.__class__.__name__
                table_errors.append({"entity": entity.plural, "error": message})
                current_app.logger.warning(
                    "Migration rollback failed for table",
                    extra={
                        "migration_batch_id": batch_id,
                        "migration_entity": entity.value,
                        "migration_error": message,
                    },
                )

        result = RollbackResult(batch_id=batch_id, deleted=deleted, table_errors=tuple(table_errors))
        batch = (
            self.session.query(MigrationBatch)
            .filter(MigrationBatch.id == batch_id, MigrationBatch.organization_id == self.organization_id)
            .one_or_none()
        )
        if batch is not None and result.success and batch.status != MigrationBatchStatus.ROLLED_BACK:
            batch.status = MigrationBatchStatus.ROLLED_BACK
            batch.rolled_back_at = _utcnow()
            batch.rollback_json = {"deleted": dict(deleted)}
            self.session.commit()

        if not result.success:
            record_rollback("partial")
        elif result.total_deleted:
            record_rollback("success")
        else:
            record_rollback("noop")
        current_app.logger.info(
            "Migration batch rolled back" if result.success else "Migration batch partially rolled back",
            extra={
                "migration_batch_id": batch_id,
                "migration_deleted": dict(deleted),
                "migration_organization_id": self.organization_id,
            },
        )
        return result
