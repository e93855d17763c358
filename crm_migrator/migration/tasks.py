"""
Migration Celery tasks.

``confirm_session`` runs the same confirm path as the HTTP and CLI surfaces;
``purge_expired_sessions`` is meant for a periodic beat schedule.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from celery import shared_task
from flask import current_app

from .errors import MigrationError
from .service import MigrationService
from .service import purge_expired_sessions as purge_sessions


@shared_task(name="migration.healthcheck", bind=True)
def migration_healthcheck(self) -> dict[str, Any]:
    """Heartbeat used by ``flask migration worker ping``."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "worker_hostname": self.request.hostname,
    }


@shared_task(name="migration.confirm_session", bind=True)
def confirm_session(
    self,
    *,
    session_id: str,
    organization_id: int,
    column_mapping: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Confirm a previewed session on the worker and return the confirm payload."""

    current_app.logger.info(
        "Migration confirm task started",
        extra={
            "migration_session_id": session_id,
            "migration_organization_id": organization_id,
            "migration_task_id": self.request.id,
        },
    )
    try:
        result = MigrationService(organization_id).confirm(session_id, column_mapping)
    except MigrationError as exc:
        current_app.logger.warning(
            "Migration confirm task rejected",
            extra={"migration_session_id": session_id, "migration_error": str(exc)},
        )
        return {"status": "rejected", "session_id": session_id, "error": str(exc)}
    return {"status": "succeeded", **result.as_dict()}


@shared_task(name="migration.purge_expired_sessions", bind=True)
def purge_expired_sessions(self) -> dict[str, Any]:
    purged = purge_sessions()
    return {"status": "ok", "purged": purged}
