# config/base.py
import os


def _coerce_bool(value, default=False):
    """Convert environment-style truthy/falsey values to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return default


def _coerce_int(value, default, *, minimum=None):
    """Parse an integer setting, falling back to ``default`` on bad input."""
    if value in (None, ""):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    if minimum is not None and number < minimum:
        return default
    return number


def _coerce_positive_float(value):
    """Parse an optional positive number of seconds; anything else means unset."""
    if value in (None, ""):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _sqlite_engine_options(uri):
    if uri and uri.startswith("sqlite"):
        return {
            "connect_args": {
                "check_same_thread": False,
                "timeout": 5,
            }
        }
    return {}


class Config:
    _flask_env = os.environ.get("FLASK_ENV", "development")
    _is_testing = _flask_env == "testing"
    _is_production = _flask_env == "production"

    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Only require SECRET_KEY in production mode
    if not SECRET_KEY and _is_production:
        raise ValueError(
            "SECRET_KEY environment variable is required in production. "
            'Generate with: python -c "import secrets; print(secrets.token_hex(32))"'
        )

    if not SECRET_KEY and not _is_testing:
        import warnings

        warnings.warn(
            "SECRET_KEY not set. Using default for development only. "
            "Set SECRET_KEY before deploying.",
            UserWarning,
        )
        SECRET_KEY = "dev-secret-key-change-in-production"

    if not SECRET_KEY:
        SECRET_KEY = "test-secret-key-placeholder"

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Migration engine
    MIGRATION_ENABLED = _coerce_bool(os.environ.get("MIGRATION_ENABLED"), default=True)
    MIGRATION_UPLOAD_DIR = os.environ.get("MIGRATION_UPLOAD_DIR")
    MIGRATION_MAX_UPLOAD_MB = _coerce_int(os.environ.get("MIGRATION_MAX_UPLOAD_MB"), 25, minimum=1)
    MIGRATION_SESSION_TTL_MINUTES = _coerce_int(
        os.environ.get("MIGRATION_SESSION_TTL_MINUTES"), 24 * 60, minimum=1
    )
    MIGRATION_MAX_WORKERS = _coerce_int(os.environ.get("MIGRATION_MAX_WORKERS"), 1, minimum=1)
    MIGRATION_DEADLINE_SECONDS = _coerce_positive_float(os.environ.get("MIGRATION_DEADLINE_SECONDS"))
    MIGRATION_ALIAS_CATALOG_PATH = os.environ.get(
        "MIGRATION_ALIAS_CATALOG_PATH",
        os.path.join(os.path.dirname(__file__), "mappings", "source_systems.yaml"),
    )

    # Worker
    MIGRATION_WORKER_ENABLED = _coerce_bool(os.environ.get("MIGRATION_WORKER_ENABLED"), default=False)
    MIGRATION_TASK_TIME_LIMIT = _coerce_int(os.environ.get("MIGRATION_TASK_TIME_LIMIT"), 15 * 60, minimum=1)
    MIGRATION_TASK_SOFT_TIME_LIMIT = _coerce_int(
        os.environ.get("MIGRATION_TASK_SOFT_TIME_LIMIT"), 12 * 60, minimum=1
    )
    CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL")
    CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND")
    CELERY_SQLITE_PATH = os.environ.get("CELERY_SQLITE_PATH")
    CELERY_CONFIG = os.environ.get("CELERY_CONFIG")
    CELERY_TASK_ALWAYS_EAGER = _coerce_bool(os.environ.get("CELERY_TASK_ALWAYS_EAGER"), default=False)


class DevelopmentConfig(Config):
    DEBUG = True
    _config_dir = os.path.dirname(os.path.abspath(__file__))
    _project_root = os.path.dirname(_config_dir)
    instance_path = os.path.join(_project_root, "instance")

    if not os.path.exists(instance_path):
        os.makedirs(instance_path, exist_ok=True)

    # SQLite URIs need forward slashes, also on Windows
    db_path_normalized = os.path.join(instance_path, "crm_migrator_dev.db").replace("\\", "/")
    db_uri = f"sqlite:///{db_path_normalized}"

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", db_uri)
    SQLALCHEMY_ECHO = _coerce_bool(os.environ.get("SQLALCHEMY_ECHO"), default=False)
    SQLALCHEMY_ENGINE_OPTIONS = _sqlite_engine_options(SQLALCHEMY_DATABASE_URI)


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get("SECRET_KEY", "test-secret-key-for-testing-only")
    # Tests point this at a temporary file so worker threads share the database
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = _sqlite_engine_options(SQLALCHEMY_DATABASE_URI)
    CELERY_TASK_ALWAYS_EAGER = True


class ProductionConfig(Config):
    DEBUG = False
    uri = os.environ.get("DATABASE_URL")
    if uri and uri.startswith("postgres://"):
        uri = uri.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = uri
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = _sqlite_engine_options(uri)
