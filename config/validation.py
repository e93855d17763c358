# config/validation.py

"""
Environment variable validation.
Validates required environment variables at startup.
"""

import os
import sys
from typing import List, Tuple

from .base import _coerce_bool


def validate_environment(flask_env: str = None) -> Tuple[bool, List[str]]:
    """
    Validate required environment variables.

    Args:
        flask_env: Flask environment (development, production, testing)
                  If None, reads from FLASK_ENV environment variable

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    if flask_env is None:
        flask_env = os.environ.get("FLASK_ENV", "development")

    errors = []

    if flask_env != "production":
        return True, []

    secret_key = os.environ.get("SECRET_KEY", "")
    if not secret_key or secret_key in ("your-secret-key", "your_secret_key"):
        errors.append(
            "SECRET_KEY is required in production and must not be the default value. "
            'Generate a secure key: python -c "import secrets; print(secrets.token_hex(32))"'
        )

    if not os.environ.get("DATABASE_URL"):
        errors.append("DATABASE_URL is required in production. Set it to your database connection string.")

    for key in ("MIGRATION_MAX_UPLOAD_MB", "MIGRATION_SESSION_TTL_MINUTES", "MIGRATION_MAX_WORKERS"):
        raw = os.environ.get(key)
        if raw is None:
            continue
        try:
            if int(raw) < 1:
                raise ValueError(raw)
        except ValueError:
            errors.append(f"{key} must be a positive integer (got {raw!r}).")

    catalog_path = os.environ.get("MIGRATION_ALIAS_CATALOG_PATH")
    if catalog_path and not os.path.isfile(catalog_path):
        errors.append(f"MIGRATION_ALIAS_CATALOG_PATH points to a missing file: {catalog_path}")

    if _coerce_bool(os.environ.get("MIGRATION_WORKER_ENABLED")) and not os.environ.get("CELERY_BROKER_URL"):
        errors.append("CELERY_BROKER_URL is required when MIGRATION_WORKER_ENABLED=true in production")

    is_valid = len(errors) == 0
    return is_valid, errors


def validate_and_exit(flask_env: str = None) -> None:
    """
    Validate environment variables and exit with error if validation fails.
    Intended to be called at application startup.
    """
    is_valid, errors = validate_environment(flask_env)

    if not is_valid:
        print("=" * 80, file=sys.stderr)
        print("ENVIRONMENT VALIDATION FAILED", file=sys.stderr)
        print("=" * 80, file=sys.stderr)
        print("\nThe following environment variables are missing or invalid:\n", file=sys.stderr)

        for i, error in enumerate(errors, 1):
            print(f"{i}. {error}", file=sys.stderr)

        print("\n" + "=" * 80, file=sys.stderr)
        print("Please check your .env file or environment variables.", file=sys.stderr)
        print("=" * 80, file=sys.stderr)

        sys.exit(1)
