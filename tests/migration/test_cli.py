from __future__ import annotations

import json
from types import SimpleNamespace

import pytest

from crm_migrator.migration import init_migration
from crm_migrator.models import Contact, MigrationSession, MigrationSessionStatus, db


@pytest.fixture
def contacts_file(tmp_path, contacts_csv):
    path = tmp_path / "contacts.csv"
    path.write_bytes(contacts_csv)
    return path


def _preview(runner, contacts_file) -> dict:
    result = runner.invoke(
        args=[
            "migration",
            "preview",
            "--org",
            "acme-roofing",
            "--source",
            "jobber",
            "--entity",
            "contacts",
            "--file",
            str(contacts_file),
        ]
    )
    assert result.exit_code == 0, result.output
    return json.loads(result.output)


def test_sources_lists_catalog(migration_app, runner):
    result = runner.invoke(args=["migration", "sources"])

    assert result.exit_code == 0
    assert "jobber: Jobber" in result.output
    assert "generic" in result.output


def test_group_without_subcommand_lists_sources(migration_app, runner):
    result = runner.invoke(args=["migration"])

    assert result.exit_code == 0
    assert "Supported source systems" in result.output


def test_preview_confirm_rollback(migration_app, runner, organization, contacts_file):
    preview = _preview(runner, contacts_file)
    assert preview["summary"]["valid_rows"] == 2

    confirm = runner.invoke(
        args=["migration", "confirm", "--org", "acme-roofing", "--session-id", preview["session_id"]]
    )
    assert confirm.exit_code == 0, confirm.output
    confirmed = json.loads(confirm.output)
    assert confirmed["inserted_count"] == 2
    assert Contact.query.filter_by(organization_id=organization.id).count() == 2

    batches = runner.invoke(args=["migration", "batches", "--org", "acme-roofing"])
    assert json.loads(batches.output)[0]["batch_id"] == confirmed["batch_id"]

    rollback = runner.invoke(
        args=["migration", "rollback", "--org", "acme-roofing", "--batch-id", confirmed["batch_id"]]
    )
    assert rollback.exit_code == 0, rollback.output
    assert json.loads(rollback.output)["deleted"]["contacts"] == 2
    db.session.expire_all()
    assert Contact.query.filter_by(organization_id=organization.id).count() == 0


def test_preview_with_mapping_json(migration_app, runner, organization, tmp_path):
    path = tmp_path / "custom.csv"
    path.write_text("Given,Surname\nAda,Lovelace\n", encoding="utf-8")

    result = runner.invoke(
        args=[
            "migration",
            "preview",
            "--org",
            "acme-roofing",
            "--source",
            "generic",
            "--entity",
            "contacts",
            "--file",
            str(path),
            "--mapping-json",
            '{"first_name": "Given", "last_name": "Surname"}',
        ]
    )

    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["summary"]["valid_rows"] == 1


def test_preview_unknown_source_fails(migration_app, runner, organization, contacts_file):
    result = runner.invoke(
        args=[
            "migration",
            "preview",
            "--org",
            "acme-roofing",
            "--source",
            "salesforce",
            "--entity",
            "contacts",
            "--file",
            str(contacts_file),
        ]
    )

    assert result.exit_code != 0
    assert "Unknown source system" in result.output


def test_unknown_organization_fails(migration_app, runner, contacts_file):
    result = runner.invoke(args=["migration", "batches", "--org", "missing-org"])

    assert result.exit_code != 0
    assert "not found" in result.output


def test_invalid_mapping_json_fails(migration_app, runner, organization, contacts_file):
    result = runner.invoke(
        args=[
            "migration",
            "preview",
            "--org",
            "acme-roofing",
            "--source",
            "jobber",
            "--entity",
            "contacts",
            "--file",
            str(contacts_file),
            "--mapping-json",
            "[1, 2]",
        ]
    )

    assert result.exit_code != 0
    assert "JSON object" in result.output


def test_confirm_expired_session_fails(migration_app, runner, organization, contacts_file):
    preview = _preview(runner, contacts_file)
    runner.invoke(args=["migration", "discard", "--org", "acme-roofing", "--session-id", preview["session_id"]])

    result = runner.invoke(
        args=["migration", "confirm", "--org", "acme-roofing", "--session-id", preview["session_id"]]
    )

    assert result.exit_code != 0
    assert "discarded" in result.output


def test_confirm_async_enqueues_task(migration_app, runner, organization, contacts_file, monkeypatch):
    preview = _preview(runner, contacts_file)
    sent: dict = {}

    def _send_task(name, kwargs=None, **options):
        sent.update({"name": name, "kwargs": kwargs})
        return SimpleNamespace(id="task-123")

    celery_app = migration_app.extensions["migration"]["celery_app"]
    monkeypatch.setattr(celery_app, "send_task", _send_task)

    result = runner.invoke(
        args=["migration", "confirm", "--org", "acme-roofing", "--session-id", preview["session_id"], "--async"]
    )

    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {"session_id": preview["session_id"], "task_id": "task-123", "status": "queued"}
    assert sent["name"] == "migration.confirm_session"
    assert sent["kwargs"]["organization_id"] == organization.id
    assert db.session.get(MigrationSession, preview["session_id"]).status == MigrationSessionStatus.PENDING


def test_purge_expired_command(migration_app, runner):
    result = runner.invoke(args=["migration", "purge-expired"])

    assert result.exit_code == 0
    assert "Purged 0 expired migration session(s)." in result.output


@pytest.fixture
def disabled_migration_app(migration_app):
    migration_app.config["MIGRATION_ENABLED"] = False
    init_migration(migration_app)
    try:
        yield migration_app
    finally:
        migration_app.config["MIGRATION_ENABLED"] = True
        init_migration(migration_app)


def test_disabled_group_explains_itself(disabled_migration_app, runner):
    result = runner.invoke(args=["migration"])

    assert result.exit_code != 0
    assert "MIGRATION_ENABLED=false" in result.output
