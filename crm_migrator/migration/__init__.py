"""
CRM migration engine.

``init_migration`` loads the alias catalog, mounts the JSON blueprint and the
``flask migration`` CLI group, and prepares the Celery app. When
``MIGRATION_ENABLED`` is false only a disabled CLI group is registered.
"""

from __future__ import annotations

from typing import Any

from flask import Flask

from .catalog import AliasCatalog, get_alias_catalog, load_alias_catalog, resolve_catalog_path
from .celery_app import MIGRATION_EXTENSION_KEY, ensure_celery_app, get_celery_app
from .cli import get_disabled_migration_group, is_migration_enabled, migration_cli
from .contracts import EntityType
from .errors import (
    EmptyInput,
    InvalidUpload,
    MigrationError,
    RowPersistError,
    RowValidationError,
    SessionExpired,
    SessionNotFound,
    UnknownSourceSystem,
)
from .service import ConfirmResult, MigrationService, PreviewResult, RollbackResult, purge_expired_sessions
from .views import migration_blueprint

__all__ = [
    "init_migration",
    "MIGRATION_EXTENSION_KEY",
    "AliasCatalog",
    "EntityType",
    "MigrationService",
    "PreviewResult",
    "ConfirmResult",
    "RollbackResult",
    "MigrationError",
    "UnknownSourceSystem",
    "SessionExpired",
    "SessionNotFound",
    "EmptyInput",
    "InvalidUpload",
    "RowValidationError",
    "RowPersistError",
    "get_alias_catalog",
    "get_celery_app",
    "purge_expired_sessions",
]


def _ensure_extension_state(app: Flask) -> dict[str, Any]:
    state = app.extensions.setdefault(MIGRATION_EXTENSION_KEY, {})
    state.setdefault("enabled", False)
    state.setdefault("worker_enabled", False)
    state.setdefault("celery_app", None)
    state.setdefault("catalog", None)
    return state


def _set_cli(app: Flask, enabled: bool) -> None:
    command_name = migration_cli.name
    if command_name in app.cli.commands:
        app.cli.commands.pop(command_name)
    app.cli.add_command(migration_cli if enabled else get_disabled_migration_group())


def init_migration(app: Flask) -> None:
    """
    Wire the migration engine into ``app``.

    State lives in ``app.extensions['migration']``: the loaded catalog, the
    Celery instance and the enabled flags.
    """
    enabled = is_migration_enabled(app)
    state = _ensure_extension_state(app)
    state.update(
        {
            "enabled": enabled,
            "worker_enabled": bool(app.config.get("MIGRATION_WORKER_ENABLED", False)),
        }
    )

    if not enabled:
        _set_cli(app, enabled=False)
        app.logger.info("Migration disabled via MIGRATION_ENABLED flag; skipping registration.")
        return

    catalog = load_alias_catalog(resolve_catalog_path(app))
    state["catalog"] = catalog
    ensure_celery_app(app, state)

    if migration_blueprint.name not in app.blueprints:
        app.register_blueprint(migration_blueprint)
    _set_cli(app, enabled=True)

    app.logger.info(
        "Migration enabled with source systems: %s",
        ", ".join(system.key for system in catalog.systems.values()) or "none",
        extra={"migration_catalog_version": catalog.version, "migration_catalog_checksum": catalog.checksum},
    )
