"""
Logging setup for the camera uplink
"""

import logging
import logging.config
import sys


def setup_logging(level_name: str = "INFO"):
    """
    Configure application logging.
    """
    level = getattr(logging, (level_name or "INFO").upper(), logging.INFO)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
                }
            },
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "stream": sys.stdout,
                }
            },
            "root": {"level": level, "handlers": ["stdout"]},
            "loggers": {
                # Status API requests are noise next to frame logs
                "uvicorn.access": {"level": "WARNING"},
            },
        }
    )
