# crm_migrator/utils/logging_config.py

"""
Application logging setup.

Configures ``app.logger`` from the ``LOG_*`` settings in config/monitoring.py.
The json format carries structured ``migration_*`` extras through to the
emitted record.
"""

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

STRUCTURED_PREFIX = "migration_"
TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class JSONFormatter(logging.Formatter):
    """Render one JSON object per record"""

    def format(self, record):
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        for key, value in record.__dict__.items():
            if key.startswith(STRUCTURED_PREFIX):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _build_formatter(log_format):
    if (log_format or "").lower() == "json":
        return JSONFormatter()
    return logging.Formatter(TEXT_FORMAT)


def setup_logging(app):
    """Attach console and rotating file handlers to the application logger"""
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    formatter = _build_formatter(app.config.get("LOG_FORMAT", "json"))

    logger = app.logger
    logger.setLevel(level)

    # Re-running setup (tests, reloader) must not stack handlers.
    for handler in list(logger.handlers):
        if getattr(handler, "_crm_migrator_handler", False):
            logger.removeHandler(handler)
            handler.close()

    handlers = []
    if app.config.get("ENABLE_CONSOLE_LOGGING", True):
        handlers.append(logging.StreamHandler())

    if app.config.get("ENABLE_FILE_LOGGING", False):
        log_dir = app.config.get("LOG_DIR", "logs")
        try:
            os.makedirs(log_dir, exist_ok=True)
            handlers.append(
                RotatingFileHandler(
                    os.path.join(log_dir, "crm_migrator.log"),
                    maxBytes=int(app.config.get("LOG_FILE_MAX_BYTES", 10485760)),
                    backupCount=int(app.config.get("LOG_FILE_BACKUP_COUNT", 10)),
                )
            )
        except OSError as e:
            logger.warning(f"File logging disabled, cannot use log directory {log_dir}: {str(e)}")

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler._crm_migrator_handler = True
        logger.addHandler(handler)

    logger.debug(f"Logging configured (level={level_name}, handlers={len(handlers)})")
    return logger
