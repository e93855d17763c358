"""
Celery wiring for ``migration.confirm_session`` and the maintenance tasks.

Confirms run inline unless ``--async`` is requested, so the worker is
optional. With no broker configured, a SQLite file in the instance folder
backs both the broker and the result store.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from celery import Celery, Task
from flask import Flask
from kombu import Queue

DEFAULT_QUEUE_NAME = "migrations"
DEFAULT_SQLITE_FILENAME = "celery.sqlite"
MIGRATION_EXTENSION_KEY = "migration"
TASK_MODULES = ("crm_migrator.migration.tasks",)


class MigrationTask(Task):
    """Task base that runs inside the owning Flask app's context."""

    flask_app: Flask | None = None

    def __call__(self, *args, **kwargs):
        if self.flask_app is None:
            return super().__call__(*args, **kwargs)
        with self.flask_app.app_context():
            return super().__call__(*args, **kwargs)


def resolve_connection_urls(app: Flask) -> tuple[str, str]:
    """Return ``(broker_url, result_backend)``, filling gaps with the SQLite transport."""
    broker_url = app.config.get("CELERY_BROKER_URL")
    result_backend = app.config.get("CELERY_RESULT_BACKEND")
    if broker_url and result_backend:
        return broker_url, result_backend

    sqlite_file = Path(app.config.get("CELERY_SQLITE_PATH") or DEFAULT_SQLITE_FILENAME)
    if not sqlite_file.is_absolute():
        sqlite_file = Path(app.instance_path) / sqlite_file
    sqlite_file.parent.mkdir(parents=True, exist_ok=True)
    # Celery URLs need forward slashes on every platform.
    location = sqlite_file.as_posix()
    return broker_url or f"sqla+sqlite:///{location}", result_backend or f"db+sqlite:///{location}"


def _overrides(app: Flask) -> dict[str, Any]:
    raw = app.config.get("CELERY_CONFIG")
    if not raw:
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            app.logger.warning("CELERY_CONFIG is not valid JSON; ignoring value.", exc_info=True)
            return {}
    return dict(raw) if isinstance(raw, dict) else {}


def _settings(app: Flask) -> dict[str, Any]:
    settings = {
        "task_default_queue": DEFAULT_QUEUE_NAME,
        "task_queues": (Queue(DEFAULT_QUEUE_NAME),),
        "task_track_started": True,
        "task_time_limit": app.config.get("MIGRATION_TASK_TIME_LIMIT", 15 * 60),
        "task_soft_time_limit": app.config.get("MIGRATION_TASK_SOFT_TIME_LIMIT", 12 * 60),
        "task_always_eager": bool(app.config.get("CELERY_TASK_ALWAYS_EAGER", False)),
        "broker_connection_retry_on_startup": True,
        "worker_hijack_root_logger": False,
    }
    settings.update(_overrides(app))
    return settings


def create_celery_app(app: Flask) -> Celery:
    """Build the Celery app for ``app`` and register the migration tasks."""
    broker_url, result_backend = resolve_connection_urls(app)
    celery_app = Celery(
        app.import_name,
        broker=broker_url,
        backend=result_backend,
        include=TASK_MODULES,
        task_cls=MigrationTask,
    )
    celery_app.conf.update(_settings(app))
    # ``Task`` is a per-app subclass, so binding here leaves other Celery apps alone.
    celery_app.Task.flask_app = app
    celery_app.loader.import_default_modules()

    app.logger.info(
        "Migration worker configured",
        extra={
            "migration_celery_broker_url": broker_url,
            "migration_celery_result_backend": result_backend,
            "migration_worker_enabled": app.config.get("MIGRATION_WORKER_ENABLED"),
        },
    )
    return celery_app


def ensure_celery_app(app: Flask, state: dict[str, Any]) -> Celery:
    if state.get("celery_app") is None:
        state["celery_app"] = create_celery_app(app)
    return state["celery_app"]


def get_celery_app(app: Flask) -> Celery | None:
    """The app's Celery instance, or ``None`` when migrations are not wired up."""
    state = app.extensions.get(MIGRATION_EXTENSION_KEY) or {}
    if not state.get("enabled"):
        return state.get("celery_app")
    return ensure_celery_app(app, state)
