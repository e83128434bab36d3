"""
Engine-wide settings for adminkit.

Read from environment variables once and cached. Per-resource behaviour lives
in ResourceConfig; this covers only where data is stored and how the engine
logs.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import cache
from pathlib import Path

from adminkit.logging import setup_logging

DEFAULT_DB_PATH = ".adminkit/data.db"

LOG_FORMATS = ("console", "json")


@dataclass(frozen=True)
class AdminSettings:
    """Settings from environment variables.

    Attributes:
        db_path: SQLite database file (from ADMINKIT_DB_PATH)
        log_level: Minimum log level name (from ADMINKIT_LOG_LEVEL)
        log_dir: Directory for JSONL log files, if any (from ADMINKIT_LOG_DIR)
        log_format: Console output format, ``console`` or ``json``
            (from ADMINKIT_LOG_FORMAT)
    """

    db_path: Path = Path(DEFAULT_DB_PATH)
    log_level: str = "INFO"
    log_dir: Path | None = None
    log_format: str = "console"

    def configure_logging(self) -> logging.Logger:
        """Install the adminkit log handlers these settings describe."""
        return setup_logging(
            level=self.log_level,
            log_dir=self.log_dir,
            json_console=self.log_format == "json",
        )


@cache
def get_settings() -> AdminSettings:
    """Load settings from environment variables.

    Environment variables:
        - ADMINKIT_DB_PATH → db_path
        - ADMINKIT_LOG_LEVEL → log_level
        - ADMINKIT_LOG_DIR → log_dir
        - ADMINKIT_LOG_FORMAT → log_format (unknown values fall back to console)

    Returns:
        AdminSettings with validated values.
    """
    log_dir = os.environ.get("ADMINKIT_LOG_DIR")
    log_format = os.environ.get("ADMINKIT_LOG_FORMAT", "console").strip().lower()
    if log_format not in LOG_FORMATS:
        log_format = "console"

    return AdminSettings(
        db_path=Path(os.environ.get("ADMINKIT_DB_PATH") or DEFAULT_DB_PATH),
        log_level=(os.environ.get("ADMINKIT_LOG_LEVEL") or "INFO").upper(),
        log_dir=Path(log_dir) if log_dir else None,
        log_format=log_format,
    )
