"""Prometheus metrics helpers for CRM migrations."""

from __future__ import annotations

from typing import Literal

from prometheus_client import Counter, Histogram

_previews_counter = Counter(
    "migration_previews_total",
    "Migration previews by source system, entity and outcome.",
    ["source_system", "entity", "outcome"],
)
_rows_counter = Counter(
    "migration_rows_total",
    "Rows processed by confirmed migrations, by entity and result.",
    ["entity", "result"],
)
_confirm_duration = Histogram(
    "migration_confirm_duration_seconds",
    "Duration of migration confirm operations in seconds.",
    buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, 300),
)
_rollbacks_counter = Counter(
    "migration_rollbacks_total",
    "Batch rollbacks by outcome.",
    ["outcome"],
)


def record_preview(source_system: str, entity: str, *, outcome: Literal["success", "failure"]) -> None:
    _previews_counter.labels(source_system=source_system, entity=entity, outcome=outcome).inc()


def record_import(entity: str, *, inserted: int, updated: int, failed: int, duration_seconds: float) -> None:
    """Capture row counts and timing for one confirm."""

    if inserted:
        _rows_counter.labels(entity=entity, result="inserted").inc(inserted)
    if updated:
        _rows_counter.labels(entity=entity, result="updated").inc(updated)
    if failed:
        _rows_counter.labels(entity=entity, result="failed").inc(failed)
    _confirm_duration.observe(duration_seconds)


def record_rollback(outcome: Literal["success", "partial", "noop"]) -> None:
    _rollbacks_counter.labels(outcome=outcome).inc()
