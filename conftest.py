# conftest.py

import os
import tempfile

import pytest

# Set testing environment BEFORE importing app so TestingConfig is selected.
# A file-backed SQLite database lets worker threads open their own connections.
os.environ["FLASK_ENV"] = "testing"
_db_fd, _TEST_DB_PATH = tempfile.mkstemp(prefix="crm_migrator_test_", suffix=".db")
os.environ.setdefault("TEST_DATABASE_URL", f"sqlite:///{_TEST_DB_PATH}")

# Now import app and other modules after environment is set
from app import app as flask_app  # noqa: E402
from crm_migrator.models import Organization, db  # noqa: E402


def pytest_sessionfinish(session, exitstatus):
    try:
        os.close(_db_fd)
    except OSError:
        pass
    try:
        if os.path.exists(_TEST_DB_PATH):
            os.unlink(_TEST_DB_PATH)
    except OSError:
        pass


@pytest.fixture(scope="function")
def app(tmp_path):
    """Flask application with clean tables and an isolated upload directory"""
    flask_app.config.update(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret-key-for-testing-only",
            "MIGRATION_ENABLED": True,
            "MIGRATION_UPLOAD_DIR": str(tmp_path / "migration_uploads"),
            "MIGRATION_MAX_UPLOAD_MB": 25,
            "MIGRATION_SESSION_TTL_MINUTES": 1440,
            "MIGRATION_MAX_WORKERS": 1,
            "MIGRATION_DEADLINE_SECONDS": None,
            "MIGRATION_WORKER_ENABLED": False,
        }
    )

    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture(autouse=True)
def app_context(app):
    """Automatically provide app context for all tests"""
    with app.app_context():
        yield


@pytest.fixture
def client(app):
    """Create a test client for the Flask application"""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create a test CLI runner for the Flask application"""
    return app.test_cli_runner()


@pytest.fixture
def organization(app):
    """Active tenant used by migration tests"""
    org = Organization(name="Acme Roofing", slug="acme-roofing", is_active=True)
    db.session.add(org)
    db.session.commit()
    return org


@pytest.fixture
def other_organization(app):
    org = Organization(name="Beta Builders", slug="beta-builders", is_active=True)
    db.session.add(org)
    db.session.commit()
    return org
