"""
Logging configuration for the application
"""
import logging
import logging.config

from src.core.config import settings


def setup_logging() -> None:
    """
    Configure root logging once at startup.

    Modules log through ``logging.getLogger(__name__)``; this only installs
    handlers and levels.
    """
    level = settings.LOG_LEVEL.upper()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {"handlers": ["console"], "level": level},
            "loggers": {
                "apscheduler": {"level": "WARNING"},
                "sqlalchemy.engine": {
                    "level": "INFO" if settings.DB_ECHO else "WARNING",
                },
            },
        }
    )
    logging.getLogger(__name__).debug(f"Logging configured at level {level}")
