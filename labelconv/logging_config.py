"""Logging configuration for the conversion service."""

from __future__ import annotations

import logging.config
import os
from pathlib import Path
from typing import Any, Dict

LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 5

_logging_configured = False


def _rotating_handler(formatter: str, path: Path) -> Dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "formatter": formatter,
        "filename": str(path),
        "maxBytes": LOG_MAX_BYTES,
        "backupCount": LOG_BACKUP_COUNT,
        "encoding": "utf-8",
        "delay": True,
    }


def build_logging_config() -> Dict[str, Any]:
    """``dictConfig`` payload driven by the ``LABELCONV_LOG_*`` variables."""

    log_dir = Path(os.getenv("LABELCONV_LOG_DIR", "logs"))
    log_level = os.getenv("LABELCONV_LOG_LEVEL", "INFO").upper()
    log_path = log_dir / os.getenv("LABELCONV_LOG_FILE", "labelconv.log")
    access_log_path = log_dir / os.getenv("LABELCONV_ACCESS_LOG_FILE", "labelconv-access.log")

    app_logger = {"handlers": ["default", "file"], "level": log_level, "propagate": False}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "()": "uvicorn.logging.DefaultFormatter",
                "fmt": "%(levelprefix)s %(asctime)s %(name)s: %(message)s",
                "use_colors": None,
            },
            "access": {
                "()": "uvicorn.logging.AccessFormatter",
                "fmt": "%(levelprefix)s %(client_addr)s - \"%(request_line)s\" %(status_code)s",
            },
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stderr",
            },
            "file": _rotating_handler("default", log_path),
            "access_stream": {
                "class": "logging.StreamHandler",
                "formatter": "access",
                "stream": "ext://sys.stdout",
            },
            "access_file": _rotating_handler("access", access_log_path),
        },
        "loggers": {
            "labelconv": dict(app_logger),
            "uvicorn": dict(app_logger),
            "uvicorn.error": dict(app_logger),
            "uvicorn.access": {
                "handlers": ["access_stream", "access_file"],
                "level": log_level,
                "propagate": False,
            },
        },
        "root": {"handlers": ["default"], "level": log_level},
    }


def configure_logging() -> None:
    """Install the service logging config once per process."""
    global _logging_configured
    if _logging_configured:
        return

    config = build_logging_config()
    Path(config["handlers"]["file"]["filename"]).parent.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(config)
    _logging_configured = True


__all__ = ["configure_logging", "build_logging_config"]
