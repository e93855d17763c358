"""
Dependency-ordered import of validated rows for one entity.

Callers invoke :func:`import_rows` once per entity in the order
contacts -> jobs -> invoices. Every row is upserted independently: a failing
row is recorded as a :class:`RowPersistError` and the pass continues.

With ``max_workers > 1`` rows are grouped by natural key and the groups are
fanned out to a thread pool. Each worker pushes its own application context
and therefore gets its own database session, committing row by
row. The pass returns only after every submitted row finishes, so the next
entity never starts early.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence
from uuid import uuid4

from flask import current_app

from crm_migrator.models.base import db

from ..contracts import EntityType
from ..errors import RowPersistError
from .store import TenantStore, UpsertOutcome

Clock = Callable[[], float]


@dataclass
class ImportSummary:
    """Outcome of one entity import pass."""

    entity: EntityType
    batch_id: str
    rows_considered: int = 0
    inserted_count: int = 0
    updated_count: int = 0
    errors: list[RowPersistError] = field(default_factory=list)
    rows_skipped_deadline: int = 0
    timed_out: bool = False
    duration_seconds: float = 0.0

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def record(self, outcome: UpsertOutcome) -> None:
        if outcome.action == "created":
            self.inserted_count += 1
        else:
            self.updated_count += 1

    def as_dict(self) -> dict[str, Any]:
        return {
            "entity": self.entity.value,
            "batch_id": self.batch_id,
            "rows_considered": self.rows_considered,
            "inserted_count": self.inserted_count,
            "updated_count": self.updated_count,
            "error_count": self.error_count,
            "rows_skipped_deadline": self.rows_skipped_deadline,
            "timed_out": self.timed_out,
            "duration_seconds": round(self.duration_seconds, 4),
        }


def new_batch_id() -> str:
    return str(uuid4())


def _describe(exc: Exception) -> str:
    message = str(exc).strip()
    if not message:
        return exc.__class__.__name__
    # DB driver errors carry the full statement; the first line is enough.
    return message.splitlines()[0]


def _log_row_failure(summary: ImportSummary, position: int, exc: Exception) -> None:
    current_app.logger.warning(
        "Migration row failed to persist",
        extra={
            "migration_entity": summary.entity.value,
            "migration_batch_id": summary.batch_id,
            "migration_row_position": position,
            "migration_error": _describe(exc),
        },
    )


def _import_sequential(
    rows: Sequence[Mapping[str, Any]],
    store: TenantStore,
    summary: ImportSummary,
    deadline_at: float | None,
    clock: Clock,
) -> None:
    for position, row in enumerate(rows):
        if deadline_at is not None and clock() >= deadline_at:
            summary.timed_out = True
            summary.rows_skipped_deadline = len(rows) - position
            break
        try:
            with store.session.begin_nested():
                outcome = store.upsert(summary.entity, row, summary.batch_id)
        except Exception as exc:
            summary.errors.append(RowPersistError(row=dict(row), error=_describe(exc), position=position))
            _log_row_failure(summary, position, exc)
            continue
        summary.record(outcome)


def row_natural_key(entity: EntityType, row: Mapping[str, Any]) -> tuple:
    """
    Coarse grouping key: rows that could upsert the same record share it.

    Over-grouping is harmless (the group simply runs sequentially).
    """

    if entity is EntityType.CONTACT:
        email = row.get("email")
        if email:
            return ("email", str(email).lower())
        return ("name", str(row.get("first_name") or "").lower(), str(row.get("last_name") or "").lower())
    if entity is EntityType.JOB:
        return ("title", str(row.get("title") or "").strip().lower())
    number = row.get("invoice_number")
    return ("number", number) if number else ("unnumbered",)


def _import_concurrent(
    rows: Sequence[Mapping[str, Any]],
    store: TenantStore,
    summary: ImportSummary,
    deadline_at: float | None,
    clock: Clock,
    max_workers: int,
) -> None:
    app = current_app._get_current_object()
    # Workers write through their own sessions; release ours first.
    store.session.commit()

    groups: dict[tuple, list[int]] = {}
    for position, row in enumerate(rows):
        groups.setdefault(row_natural_key(summary.entity, row), []).append(position)

    def _run_group(positions: list[int]) -> list[tuple[int, UpsertOutcome | None, Exception | None, bool]]:
        results: list[tuple[int, UpsertOutcome | None, Exception | None, bool]] = []
        with app.app_context():
            worker_store = store.bind(db.session)
            for position in positions:
                if deadline_at is not None and clock() >= deadline_at:
                    results.append((position, None, None, True))
                    continue
                try:
                    outcome = worker_store.upsert(summary.entity, rows[position], summary.batch_id)
                    db.session.commit()
                except Exception as exc:
                    db.session.rollback()
                    results.append((position, None, exc, False))
                    continue
                results.append((position, outcome, None, False))
        return results

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="migration-import") as executor:
        futures = [executor.submit(_run_group, positions) for positions in groups.values()]
        results = sorted(
            (result for future in futures for result in future.result()),
            key=lambda item: item[0],
        )

    for position, outcome, exc, skipped in results:
        if skipped:
            summary.timed_out = True
            summary.rows_skipped_deadline += 1
        elif exc is not None:
            summary.errors.append(RowPersistError(row=dict(rows[position]), error=_describe(exc), position=position))
            _log_row_failure(summary, position, exc)
        else:
            summary.record(outcome)


def import_rows(
    rows: Sequence[Mapping[str, Any]],
    entity: EntityType | str,
    store: TenantStore,
    *,
    batch_id: str | None = None,
    max_workers: int = 1,
    deadline_seconds: float | None = None,
    clock: Clock = time.monotonic,
) -> ImportSummary:
    """
    Upsert ``rows`` of a single entity type and report what happened.

    ``deadline_seconds`` stops further rows from starting once elapsed; rows
    already in flight finish and the summary is flagged ``timed_out``.
    In sequential mode writes stay in the caller's transaction; the caller
    commits.
    """

    entity_type = EntityType.coerce(entity)
    summary = ImportSummary(entity=entity_type, batch_id=batch_id or new_batch_id(), rows_considered=len(rows))
    started = clock()
    deadline_at = started + deadline_seconds if deadline_seconds is not None else None

    if max_workers > 1 and len(rows) > 1:
        _import_concurrent(rows, store, summary, deadline_at, clock, max_workers)
    else:
        _import_sequential(rows, store, summary, deadline_at, clock)

    summary.duration_seconds = max(clock() - started, 0.0)
    current_app.logger.info(
        "Migration import pass finished",
        extra={
            "migration_entity": entity_type.value,
            "migration_batch_id": summary.batch_id,
            "migration_rows_considered": summary.rows_considered,
            "migration_rows_inserted": summary.inserted_count,
            "migration_rows_updated": summary.updated_count,
            "migration_rows_failed": summary.error_count,
            "migration_timed_out": summary.timed_out,
        },
    )
    return summary
