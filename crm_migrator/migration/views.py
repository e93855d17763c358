"""
Migration blueprint: JSON endpoints for preview, confirm, rollback and discard.
"""

from __future__ import annotations

import json
from http import HTTPStatus

from flask import Blueprint, current_app, jsonify, request

from crm_migrator.middleware import get_current_organization

from .celery_app import DEFAULT_QUEUE_NAME
from .errors import EmptyInput, InvalidUpload, MigrationError, SessionExpired, SessionNotFound, UnknownSourceSystem
from .service import MigrationService, list_source_systems
from .utils import allowed_file, safe_display_name

migration_blueprint = Blueprint("migration", __name__, url_prefix="/api/migration")

_ERROR_STATUS: tuple[tuple[type[MigrationError], HTTPStatus], ...] = (
    (SessionNotFound, HTTPStatus.NOT_FOUND),
    (SessionExpired, HTTPStatus.GONE),
    (UnknownSourceSystem, HTTPStatus.BAD_REQUEST),
    (EmptyInput, HTTPStatus.BAD_REQUEST),
    (InvalidUpload, HTTPStatus.BAD_REQUEST),
)


def _json_error(message: str, status: HTTPStatus):
    return jsonify({"error": message}), status


def _status_for(exc: MigrationError) -> HTTPStatus:
    for error_type, status in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return HTTPStatus.BAD_REQUEST


@migration_blueprint.errorhandler(MigrationError)
def _handle_migration_error(exc: MigrationError):
    return _json_error(str(exc), _status_for(exc))


@migration_blueprint.before_request
def _guard_requests():
    if not current_app.config.get("MIGRATION_ENABLED", True):
        return _json_error("Migration is disabled.", HTTPStatus.NOT_FOUND)
    if request.endpoint in ("migration.list_crms", "migration.migration_health"):
        return None
    if get_current_organization() is None:
        return _json_error("Organization context required.", HTTPStatus.UNAUTHORIZED)
    return None


def _service() -> MigrationService:
    return MigrationService(get_current_organization().id)


def _max_upload_bytes() -> int:
    try:
        megabytes = float(current_app.config.get("MIGRATION_MAX_UPLOAD_MB") or 25)
    except (TypeError, ValueError):
        megabytes = 25
    return int(megabytes * 1024 * 1024)


def _parse_column_mapping(raw):
    if raw in (None, "", {}):
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise InvalidUpload(f"column_mapping is not valid JSON: {exc.msg}") from exc
    if not isinstance(raw, dict):
        raise InvalidUpload("column_mapping must be an object of field -> header.")
    return raw


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _required(payload: dict, key: str) -> str:
    value = payload.get(key)
    if not value or not isinstance(value, str):
        raise InvalidUpload(f"'{key}' is required.")
    return value.strip()


@migration_blueprint.get("/health")
def migration_health():
    state = current_app.extensions.get("migration", {})
    catalog = state.get("catalog")
    return (
        jsonify(
            {
                "status": "ok",
                "enabled": state.get("enabled", False),
                "worker_enabled": state.get("worker_enabled", False),
                "queue": DEFAULT_QUEUE_NAME,
                "catalog_version": catalog.version if catalog else None,
            }
        ),
        200,
    )


@migration_blueprint.get("/crms")
def list_crms():
    return jsonify({"crms": list_source_systems()}), 200


@migration_blueprint.post("/preview")
def preview_upload():
    """
    Accept a multipart upload and return the inferred mapping and validation summary.
    """
    limit = _max_upload_bytes()
    if request.content_length is not None and request.content_length > limit:
        return _json_error("Upload exceeds the maximum allowed size.", HTTPStatus.REQUEST_ENTITY_TOO_LARGE)

    upload = request.files.get("file")
    if upload is None or not upload.filename:
        raise InvalidUpload("A CSV file is required.")
    if not allowed_file(upload.filename):
        raise InvalidUpload("Only .csv files are supported.")

    source_system = _required(request.form, "crm_key")
    entity = _required(request.form, "entity")
    override = _parse_column_mapping(request.form.get("column_mapping"))

    payload = upload.read()
    if len(payload) > limit:
        return _json_error("Upload exceeds the maximum allowed size.", HTTPStatus.REQUEST_ENTITY_TOO_LARGE)

    result = _service().preview(
        payload,
        source_system,
        entity,
        override,
        filename=safe_display_name(upload),
    )
    return jsonify(result.as_dict()), 200


@migration_blueprint.post("/confirm")
def confirm_session():
    body = _json_body()
    session_id = _required(body, "session_id")
    result = _service().confirm(session_id, _parse_column_mapping(body.get("column_mapping")))
    return jsonify(result.as_dict()), 200


@migration_blueprint.post("/rollback")
def rollback_batch():
    body = _json_body()
    result = _service().rollback(_required(body, "batch_id"))
    status = HTTPStatus.OK if result.success else HTTPStatus.MULTI_STATUS
    return jsonify(result.as_dict()), status


@migration_blueprint.post("/discard")
def discard_session():
    body = _json_body()
    return jsonify(_service().discard(_required(body, "session_id"))), 200


@migration_blueprint.get("/batches")
def list_batches():
    batches = _service().list_batches()
    return jsonify({"batches": [batch.to_dict() for batch in batches]}), 200
