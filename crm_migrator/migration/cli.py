"""
``flask migration`` commands.

Every command resolves the tenant from ``--org`` (organization slug) and
delegates to :class:`MigrationService`, so the CLI and HTTP surfaces share
one code path.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import click
from celery import Celery
from celery.exceptions import TimeoutError as CeleryTimeoutError
from flask import current_app
from flask.cli import ScriptInfo, with_appcontext

from crm_migrator.models import Organization

from .celery_app import DEFAULT_QUEUE_NAME, get_celery_app
from .contracts import EntityType
from .errors import MigrationError
from .service import MigrationService, list_source_systems, purge_expired_sessions


def is_migration_enabled(app) -> bool:
    return bool(app.config.get("MIGRATION_ENABLED", True))


@click.group(name="migration", invoke_without_command=True)
@click.pass_context
def migration_cli(ctx):
    """
    CRM migration commands.

    Lists the supported source systems when invoked without a subcommand.
    """
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    if not is_migration_enabled(app):
        raise click.ClickException("Migration is disabled via MIGRATION_ENABLED=false.")
    if ctx.invoked_subcommand is None:
        with app.app_context():
            _echo_sources()


def get_disabled_migration_group() -> click.Group:
    """Stand-in group registered when the migration engine is disabled."""

    @click.group(name="migration", invoke_without_command=True)
    def disabled_group():
        raise click.ClickException("Migration commands are unavailable because MIGRATION_ENABLED=false.")

    return disabled_group


def _echo_sources() -> None:
    click.echo("Supported source systems:")
    for system in list_source_systems():
        click.echo(f"  - {system['key']}: {system['display_name']}")


def _resolve_organization(slug: str) -> Organization:
    organization = Organization.find_by_slug(slug)
    if organization is None or not organization.is_active:
        raise click.ClickException(f"Organization '{slug}' not found or inactive.")
    return organization


def _parse_mapping(raw: Optional[str]) -> Optional[dict[str, Any]]:
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"--mapping-json is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise click.ClickException("--mapping-json must be a JSON object of field -> header.")
    return parsed


def _resolve_celery(app) -> Celery:
    celery_app = get_celery_app(app)
    if celery_app is None:
        raise click.ClickException(
            "Migration Celery app is unavailable. Ensure MIGRATION_ENABLED=true before running worker commands."
        )
    return celery_app


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, sort_keys=True, default=str))


@migration_cli.command("sources")
@with_appcontext
def migration_sources():
    """List supported source systems."""
    _echo_sources()


@migration_cli.command("preview")
@click.option("--org", "org_slug", required=True, help="Organization slug.")
@click.option("--source", "source_system", required=True, help="Source system key, e.g. 'jobber'.")
@click.option(
    "--entity",
    required=True,
    type=click.Choice([entity.plural for entity in EntityType] + [entity.value for entity in EntityType]),
)
@click.option(
    "--file",
    "file_path",
    required=True,
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    help="Path to the exported CSV.",
)
@click.option("--mapping-json", help="JSON object overriding the inferred field -> header mapping.")
@with_appcontext
def migration_preview(org_slug: str, source_system: str, entity: str, file_path: Path, mapping_json: Optional[str]):
    """Validate a CSV and stage it as a pending migration session."""
    organization = _resolve_organization(org_slug)
    try:
        result = MigrationService(organization.id).preview(
            file_path.read_bytes(),
            source_system,
            entity,
            _parse_mapping(mapping_json),
            filename=file_path.name,
        )
    except MigrationError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_json(result.as_dict())


@migration_cli.command("confirm")
@click.option("--org", "org_slug", required=True, help="Organization slug.")
@click.option("--session-id", required=True, help="Session id returned by preview.")
@click.option("--mapping-json", help="JSON object overriding the stored mapping.")
@click.option("--async", "run_async", is_flag=True, help="Enqueue the confirm on the migration worker.")
@with_appcontext
def migration_confirm(org_slug: str, session_id: str, mapping_json: Optional[str], run_async: bool):
    """Import a previewed session's valid rows."""
    organization = _resolve_organization(org_slug)
    mapping = _parse_mapping(mapping_json)

    if run_async:
        celery_app = _resolve_celery(current_app)
        try:
            async_result = celery_app.send_task(
                "migration.confirm_session",
                kwargs={
                    "session_id": session_id,
                    "organization_id": organization.id,
                    "column_mapping": mapping,
                },
            )
        except Exception as exc:  # pragma: no cover - broker unavailable
            raise click.ClickException(f"Failed to enqueue confirm for session {session_id}: {exc}") from exc
        current_app.logger.info(
            "Migration confirm queued via CLI",
            extra={"migration_session_id": session_id, "migration_task_id": async_result.id},
        )
        _echo_json({"session_id": session_id, "task_id": async_result.id, "status": "queued"})
        return

    try:
        result = MigrationService(organization.id).confirm(session_id, mapping)
    except MigrationError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_json(result.as_dict())


@migration_cli.command("rollback")
@click.option("--org", "org_slug", required=True, help="Organization slug.")
@click.option("--batch-id", required=True, help="Batch id returned by confirm.")
@with_appcontext
def migration_rollback(org_slug: str, batch_id: str):
    """Delete every record imported under a batch."""
    organization = _resolve_organization(org_slug)
    result = MigrationService(organization.id).rollback(batch_id)
    _echo_json(result.as_dict())
    if not result.success:
        raise click.ClickException(f"Rollback of batch {batch_id} was partial: {result.error}")


@migration_cli.command("discard")
@click.option("--org", "org_slug", required=True, help="Organization slug.")
@click.option("--session-id", required=True)
@with_appcontext
def migration_discard(org_slug: str, session_id: str):
    """Abandon a pending session and delete its file."""
    organization = _resolve_organization(org_slug)
    try:
        payload = MigrationService(organization.id).discard(session_id)
    except MigrationError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_json(payload)


@migration_cli.command("batches")
@click.option("--org", "org_slug", required=True, help="Organization slug.")
@with_appcontext
def migration_batches(org_slug: str):
    """List committed batches for an organization, newest first."""
    organization = _resolve_organization(org_slug)
    _echo_json([batch.to_dict() for batch in MigrationService(organization.id).list_batches()])


@migration_cli.command("purge-expired")
@with_appcontext
def migration_purge_expired():
    """Expire pending sessions past their retention window."""
    purged = purge_expired_sessions()
    click.echo(f"Purged {purged} expired migration session(s).")


@migration_cli.group(name="worker")
@click.pass_context
def worker_group(ctx):
    """Manage the migration background worker."""
    app = ctx.ensure_object(ScriptInfo).load_app()
    if not app.config.get("MIGRATION_WORKER_ENABLED"):
        click.echo(
            "Warning: MIGRATION_WORKER_ENABLED is false. Commands will still run, "
            "but enable the flag to surface accurate health status.",
            err=True,
        )


@worker_group.command("run")
@click.option("--loglevel", default="info", show_default=True)
@click.option("--concurrency", type=int, help="Number of worker processes/threads.")
@click.option("--pool", type=str, help="Celery pool implementation (e.g., 'prefork', 'solo', 'threads').")
@click.option("--queues", default=DEFAULT_QUEUE_NAME, show_default=True, help="Comma-separated queue list.")
@click.pass_context
def worker_run(ctx, loglevel: str, concurrency: Optional[int], pool: Optional[str], queues: str):
    """Start the Celery worker in the current process."""
    app = ctx.ensure_object(ScriptInfo).load_app()
    celery_app = _resolve_celery(app)

    argv = ["worker", "--loglevel", loglevel, "-Q", queues]
    if concurrency:
        argv.extend(["--concurrency", str(concurrency)])
    if pool:
        argv.extend(["--pool", pool])

    click.echo(f"Starting migration worker (queues: {queues}, loglevel: {loglevel})")
    try:
        celery_app.worker_main(argv=argv)
    except KeyboardInterrupt:
        click.echo("Worker shutdown requested. Exiting...")


@worker_group.command("ping")
@click.option("--timeout", default=10.0, show_default=True, help="Seconds to wait for a response.")
@click.pass_context
def worker_ping(ctx, timeout: float):
    """Run the heartbeat task and print the worker's reply."""
    app = ctx.ensure_object(ScriptInfo).load_app()
    celery_app = _resolve_celery(app)
    task = celery_app.tasks.get("migration.healthcheck")
    if task is None:
        raise click.ClickException("Heartbeat task 'migration.healthcheck' is not registered.")

    result = task.apply_async()
    try:
        payload = result.get(timeout=timeout)
    except CeleryTimeoutError as exc:
        raise click.ClickException(f"Worker did not respond within {timeout}s") from exc
    except Exception as exc:  # pragma: no cover - surfacing unexpected errors
        raise click.ClickException(f"Worker ping failed: {exc}") from exc

    _echo_json(payload)
