# src/common/logging_config.py
"""Process-wide logging setup, applied once at application startup."""

import logging.config


def setup_logging(level: str = "info") -> None:
    level = level.upper()
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            },
            # Audit lines are already JSON
            "audit": {
                "format": "%(asctime)s AUDIT %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            },
            "audit": {
                "class": "logging.StreamHandler",
                "formatter": "audit",
            },
        },
        "loggers": {
            "src": {"level": level},
            "clinic_flow.audit": {"handlers": ["audit"], "level": "INFO", "propagate": False},
            "apscheduler": {"level": "WARNING"},
            "sqlalchemy.engine": {"level": "WARNING"},
        },
        "root": {"handlers": ["console"], "level": "WARNING"},
    })
