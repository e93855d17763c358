from __future__ import annotations

from flask import Flask

from crm_migrator.migration.celery_app import (
    DEFAULT_QUEUE_NAME,
    create_celery_app,
    get_celery_app,
    resolve_connection_urls,
)
from crm_migrator.models import Contact, MigrationSession, MigrationSessionStatus, db


def test_default_transport_is_sqlite(migration_app, monkeypatch, tmp_path):
    sqlite_path = tmp_path / "celery.sqlite"
    monkeypatch.setitem(migration_app.config, "CELERY_BROKER_URL", None)
    monkeypatch.setitem(migration_app.config, "CELERY_RESULT_BACKEND", None)
    monkeypatch.setitem(migration_app.config, "CELERY_SQLITE_PATH", str(sqlite_path))

    broker_url, result_backend = resolve_connection_urls(migration_app)

    assert broker_url == f"sqla+sqlite:///{sqlite_path.as_posix()}"
    assert result_backend == f"db+sqlite:///{sqlite_path.as_posix()}"


def test_explicit_broker_is_kept(migration_app, monkeypatch):
    monkeypatch.setitem(migration_app.config, "CELERY_BROKER_URL", "redis://localhost:6379/0")
    monkeypatch.setitem(migration_app.config, "CELERY_RESULT_BACKEND", "redis://localhost:6379/1")

    assert resolve_connection_urls(migration_app) == ("redis://localhost:6379/0", "redis://localhost:6379/1")


def test_create_celery_app_configuration(migration_app, monkeypatch, tmp_path):
    monkeypatch.setitem(migration_app.config, "CELERY_SQLITE_PATH", str(tmp_path / "celery.sqlite"))
    monkeypatch.setitem(migration_app.config, "CELERY_CONFIG", '{"task_default_priority": 5}')

    celery_app = create_celery_app(migration_app)

    assert celery_app.conf.task_default_queue == DEFAULT_QUEUE_NAME
    assert celery_app.conf.task_default_priority == 5
    assert celery_app.conf.task_always_eager is True
    assert celery_app.Task.flask_app is migration_app
    assert "migration.healthcheck" in celery_app.tasks
    assert "migration.confirm_session" in celery_app.tasks
    assert "migration.purge_expired_sessions" in celery_app.tasks


def test_invalid_celery_config_is_ignored(migration_app, monkeypatch, tmp_path):
    monkeypatch.setitem(migration_app.config, "CELERY_SQLITE_PATH", str(tmp_path / "celery.sqlite"))
    monkeypatch.setitem(migration_app.config, "CELERY_CONFIG", "{broken")

    celery_app = create_celery_app(migration_app)

    assert celery_app.conf.task_default_queue == DEFAULT_QUEUE_NAME


def test_get_celery_app_is_cached_on_the_extension(migration_app):
    celery_app = get_celery_app(migration_app)

    assert celery_app is not None
    assert get_celery_app(migration_app) is celery_app
    assert migration_app.extensions["migration"]["celery_app"] is celery_app


def test_get_celery_app_without_migration_state():
    assert get_celery_app(Flask("bare")) is None


def test_healthcheck_task(migration_app):
    task = get_celery_app(migration_app).tasks["migration.healthcheck"]

    payload = task.apply().get()

    assert payload["status"] == "ok"
    assert "timestamp" in payload


def test_confirm_session_task_imports_rows(migration_app, service, organization, contacts_csv):
    preview = service.preview(contacts_csv, "jobber", "contacts")
    task = get_celery_app(migration_app).tasks["migration.confirm_session"]

    payload = task.apply(kwargs={"session_id": preview.session_id, "organization_id": organization.id}).get()

    assert payload["status"] == "succeeded"
    assert payload["inserted_count"] == 2
    db.session.expire_all()
    assert Contact.query.filter_by(organization_id=organization.id).count() == 2
    assert db.session.get(MigrationSession, preview.session_id).status == MigrationSessionStatus.COMMITTED


def test_confirm_session_task_rejects_unknown_session(migration_app, organization):
    task = get_celery_app(migration_app).tasks["migration.confirm_session"]

    payload = task.apply(kwargs={"session_id": "missing", "organization_id": organization.id}).get()

    assert payload["status"] == "rejected"
    assert payload["session_id"] == "missing"
    assert "not found" in payload["error"]


def test_purge_task(migration_app):
    task = get_celery_app(migration_app).tasks["migration.purge_expired_sessions"]

    assert task.apply().get() == {"status": "ok", "purged": 0}
