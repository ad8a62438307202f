"""Logging setup shared by the bridge and relay services."""

import logging
import logging.config
import os
import sys
from typing import Any, Dict, Optional

_logging_configured = False

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _build_logging_config(verbose: bool, log_file: Optional[str]) -> Dict[str, Any]:
    level = "DEBUG" if verbose else os.getenv("BRIDGE_LOG_LEVEL", "INFO").upper()

    config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": LOG_FORMAT}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "default",
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {
            "src": {"level": level},
            "shared": {"level": level},
        },
        "root": {"level": "WARNING", "handlers": ["console"]},
    }

    if log_file:
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "default",
            "filename": log_file,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 3,
            "encoding": "utf-8",
        }
        config["root"]["handlers"].append("file")

    return config


def setup_logging(*, verbose: bool = False) -> None:
    """
    Configure logging once per process.

    BRIDGE_LOG_LEVEL sets the level for our own loggers, BRIDGE_LOG_FILE
    adds a rotating file handler.
    """
    global _logging_configured

    if _logging_configured:
        return

    try:
        logging.config.dictConfig(_build_logging_config(verbose, os.getenv("BRIDGE_LOG_FILE")))
    except (ValueError, OSError) as e:
        sys.stderr.write(f"WARNING: Failed to configure logging: {e}\n")
        logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)

    _logging_configured = True
