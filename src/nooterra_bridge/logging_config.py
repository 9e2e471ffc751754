"""Logging configuration for the bridge process.

stdout carries MCP JSON-RPC traffic, so every handler writes to stderr.
"""

from __future__ import annotations

import logging.config
from typing import Any

# Chatty third-party loggers that would otherwise log every request at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore")


def get_logging_config(level: str = "INFO") -> dict[str, Any]:
    """Get a ``dictConfig`` mapping routing all records to stderr."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            },
        },
        "handlers": {
            "stderr": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {
            "nooterra_bridge": {
                "handlers": ["stderr"],
                "level": level,
                "propagate": False,
            },
            **{name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
        },
        "root": {
            "level": "WARNING",
            "handlers": ["stderr"],
        },
    }


def configure_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(get_logging_config(level))
