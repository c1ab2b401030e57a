import logging
import logging.config
import sys
from typing import Any, Dict

from teamchat.core.config import settings


def build_logging_config(level: str = "INFO") -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": settings.LOG_FORMAT,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "default",
                "stream": sys.stdout,
            },
        },
        "loggers": {
            "": {  # Root logger
                "level": "INFO",
                "handlers": ["console"],
            },
            "teamchat": {
                "level": level,
                "handlers": ["console"],
                "propagate": False,
            },
            "uvicorn": {
                "level": "INFO",
                "handlers": ["console"],
                "propagate": False,
            },
            "sqlalchemy.engine": {
                "level": "WARNING",  # Set to INFO to see SQL statements
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }


def setup_logging() -> logging.Logger:
    """Setup logging configuration"""
    logging.config.dictConfig(build_logging_config(settings.LOG_LEVEL.upper()))

    logger = logging.getLogger("teamchat")
    logger.info("Logging configuration initialized")

    return logger


def get_logger(name: str = "teamchat") -> logging.Logger:
    """Get a logger with the specified name"""
    return logging.getLogger(name)
