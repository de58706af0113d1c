"""
Core Utilities Module

This module provides shared utility functions for logging, directory handling
and path validation used across the screen watching pipeline.
"""

import logging
import os
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

# Initialize module logger
logger = logging.getLogger(__name__)


# ==================== PATH VALIDATION ====================

# Pattern to detect path traversal attempts
_PATH_TRAVERSAL_PATTERN = re.compile(r"(^|[\\/])\.\.($|[\\/])")


def validate_file_path(path: str, allow_absolute: bool = True) -> bool:
    """Validate a file path for security and correctness.

    Args:
        path: The file path to validate.
        allow_absolute: Whether to allow absolute paths.

    Returns:
        bool: True if path is valid and safe, False otherwise.
    """
    if not path or not isinstance(path, str):
        return False

    # Check for null bytes (security)
    if "\x00" in path:
        logger.warning(f"Path contains null byte: {path!r}")
        return False

    if _PATH_TRAVERSAL_PATTERN.search(path):
        logger.warning(f"Path traversal detected: {path}")
        return False

    if not allow_absolute and os.path.isabs(path):
        logger.warning(f"Absolute path not allowed: {path}")
        return False

    return True


# ==================== FILE UTILS ====================


def ensure_directory(path: str) -> bool:
    """Create directory if it doesn't exist.

    Args:
        path: The directory path to create.

    Returns:
        bool: True if directory exists or was created, False on error.
    """
    if not path:
        return False

    try:
        if not os.path.exists(path):
            os.makedirs(path, exist_ok=True)
            logger.info(f"Created directory: {path}")
        return True
    except OSError as e:
        logger.error(f"Failed to create directory {path}: {e}")
        return False


def list_image_files(directory: str) -> Dict[str, str]:
    """Map file stem to path for every image file directly inside a directory."""
    found: Dict[str, str] = {}
    for entry in sorted(Path(directory).iterdir()):
        if entry.is_file() and entry.suffix.lower() in {".png", ".jpg", ".jpeg"}:
            found[entry.stem] = str(entry)
    return found


# ==================== LOGGING UTILS ====================


def get_logger(name: str) -> logging.Logger:
    """Get a standard logger instance for a module.

    Args:
        name: The name of the logger (usually __name__).

    Returns:
        logging.Logger: Configured logger instance.
    """
    return logging.getLogger(name)


class StructuredLogger:
    """Logger with file output and structured formatting.

    Gives evaluation sweeps clear visual separation in the console and in an
    optional log file.
    """

    def __init__(
        self, name: str, log_file: Optional[str] = None, level: int = logging.INFO
    ):
        """Initialize structured logger with console and optional file output.

        Args:
            name: Logger name for identification.
            log_file: Path to log file for persistent logging (None = console only).
            level: Logging level (default: logging.INFO).
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)
        self.logger.propagate = False  # Prevent duplicate logs

        # Clear existing handlers to avoid duplicates
        self.logger.handlers.clear()

        console_formatter = logging.Formatter("%(levelname)-8s | %(message)s")
        file_formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(console_formatter)
        self.logger.addHandler(console_handler)

        self.log_file: Optional[str] = None
        if log_file:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                ensure_directory(log_dir)

            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
            file_handler.setLevel(level)
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

            self.log_file = log_file

    def section_header(self, title: str, char: str = "=", width: int = 70) -> None:
        """Log a major section header for visual separation.

        Args:
            title: The title text to display.
            char: The character to use for the separator line (default: "=").
            width: The width of the separator line (default: 70).
        """
        separator = char * width
        self.logger.info(separator)
        self.logger.info(f" {title}")
        self.logger.info(separator)

    def subsection_header(self, title: str, width: int = 70) -> None:
        """Log a subsection header."""
        self.section_header(title, "-", width)

    def info(self, msg: str) -> None:
        self.logger.info(msg)

    def warning(self, msg: str) -> None:
        self.logger.warning(msg)

    def error(self, msg: str) -> None:
        self.logger.error(msg)

    def debug(self, msg: str) -> None:
        self.logger.debug(msg)

    def sweep_start(self, trigger_count: int, now: datetime) -> None:
        """Log the start of an evaluation sweep.

        Args:
            trigger_count: Number of triggers about to be evaluated.
            now: The instant every trigger in the sweep is evaluated against.
        """
        self.section_header(f"SWEEP START - {trigger_count} trigger(s)")
        self.info(f"Evaluated at: {now.isoformat()}")
        if self.log_file:
            self.info(f"Log File: {self.log_file}")

    def sweep_end(self, summary: Dict[str, int], duration_ms: float) -> None:
        """Log the end of an evaluation sweep with per-status counts.

        Args:
            summary: Count of results per trigger status.
            duration_ms: Wall-clock duration of the sweep in milliseconds.
        """
        self.subsection_header("Summary")
        for key, value in summary.items():
            self.info(f"  - {key}: {value}")
        self.info(f"Duration: {duration_ms:.2f} ms")
        self.section_header("SWEEP END")
