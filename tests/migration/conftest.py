from __future__ import annotations

import csv
import io

import pytest

from crm_migrator.migration import init_migration
from crm_migrator.migration.pipeline.store import TenantStore
from crm_migrator.migration.service import MigrationService
from crm_migrator.models import db

CONTACT_HEADERS = ["First Name", "Last Name", "Email", "Phone"]


def build_csv(headers, rows) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue().encode("utf-8")


@pytest.fixture
def csv_factory():
    return build_csv


@pytest.fixture
def migration_app(app):
    app.config.update({"MIGRATION_ENABLED": True})
    init_migration(app)
    yield app


@pytest.fixture
def contacts_csv() -> bytes:
    return build_csv(
        CONTACT_HEADERS,
        [
            ["John", "Smith", "JOHN@X.COM", "555-123-4567"],
            ["Jane", "Doe", "jane@example.com", "(555) 987-6543"],
            ["Bad", "Email", "not-an-email", ""],
        ],
    )


@pytest.fixture
def store(organization) -> TenantStore:
    return TenantStore(db.session, organization.id, source_system="jobber")


@pytest.fixture
def service(migration_app, organization) -> MigrationService:
    return MigrationService(organization.id)
