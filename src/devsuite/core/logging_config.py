"""devsuite - Logging Configuration.

Diagnostic logging for the launcher. Stdout carries the combined service
output stream, so diagnostics go to stderr.
"""

import logging
import logging.config
import sys
from typing import Any

# Configure logger
logger = logging.getLogger(__name__)


def build_logging_config(level: str = "INFO", *, debug: bool = False) -> dict[str, Any]:
    """Build the dictConfig payload for the given level."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "detailed": {
                "format": (
                    "%(asctime)s | %(name)s | %(levelname)s | "
                    "%(filename)s:%(lineno)d | %(funcName)s | %(message)s"
                ),
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "simple": {
                "format": "%(asctime)s | %(levelname)s | %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "detailed" if debug else "simple",
                "stream": sys.stderr,
            },
        },
        "loggers": {
            "devsuite": {
                "level": level,
                "handlers": ["console"],
                "propagate": False,
            },
            # httpx logs every readiness poll at INFO
            "httpx": {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
            "httpcore": {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
        },
        "root": {
            "level": "WARNING",
            "handlers": ["console"],
        },
    }


def setup_logging(level: str = "INFO", *, debug: bool = False) -> None:
    """Configure logging for the launcher."""
    logging.config.dictConfig(build_logging_config(level, debug=debug))

    logger = logging.getLogger(__name__)
    logger.debug("Logging configured with level %s (debug=%s)", level, debug)
