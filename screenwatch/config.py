"""Configuration Module - System-wide configuration management.

This module provides centralized configuration with environment variable
support. Every default can be overridden with a ``SCREENWATCH_`` variable.
"""

import os
from typing import Any, Dict

from .utils import get_logger

logger = get_logger(__name__)

ENV_PREFIX = "SCREENWATCH_"


# ==================== ENVIRONMENT VARIABLE HELPERS ====================


def get_env_str(key: str, default: str) -> str:
    """Get string value from environment variable."""
    return os.environ.get(key, default)


def get_env_int(key: str, default: int) -> int:
    """Get integer value from environment variable with validation."""
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Invalid integer for {key}: {value}, using default: {default}")
        return default


def get_env_float(key: str, default: float) -> float:
    """Get float value from environment variable with validation."""
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Invalid float for {key}: {value}, using default: {default}")
        return default


def get_env_bool(key: str, default: bool) -> bool:
    """Get boolean value from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


# ==================== DEFAULT PATHS ====================
DEFAULT_PATHS: Dict[str, str] = {
    "templates": get_env_str(f"{ENV_PREFIX}TEMPLATES_PATH", "./templates"),
    "logs": get_env_str(f"{ENV_PREFIX}LOGS_PATH", "./logs"),
}

# ==================== MATCHER SETTINGS ====================
DEFAULT_MATCH_THRESHOLD: float = get_env_float(f"{ENV_PREFIX}MATCH_THRESHOLD", 0.8)
DEFAULT_MATCH_MAX_RESULTS: int = get_env_int(f"{ENV_PREFIX}MATCH_MAX_RESULTS", 10)
DEFAULT_MATCH_OVERLAP: float = get_env_float(f"{ENV_PREFIX}MATCH_OVERLAP", 0.3)
DEFAULT_TARGET_CONFIDENCE: float = get_env_float(f"{ENV_PREFIX}TARGET_CONFIDENCE", 0.8)

# ==================== TRIGGER SETTINGS ====================
DEFAULT_COOLDOWN_SECONDS: int = get_env_int(f"{ENV_PREFIX}TRIGGER_COOLDOWN_SECONDS", 60)
DEFAULT_SIMILARITY_THRESHOLD: float = get_env_float(
    f"{ENV_PREFIX}IMAGE_SIMILARITY_THRESHOLD", 0.85
)
DEFAULT_TEXT_CONFIDENCE_THRESHOLD: float = get_env_float(
    f"{ENV_PREFIX}TEXT_CONFIDENCE_THRESHOLD", 0.80
)
DEFAULT_SWEEP_MAX_WORKERS: int = get_env_int(f"{ENV_PREFIX}SWEEP_MAX_WORKERS", 4)

# ==================== OCR SETTINGS ====================
DEFAULT_TESSERACT_PATH: str = get_env_str(f"{ENV_PREFIX}TESSERACT_PATH", "tesseract")
DEFAULT_TESSERACT_LANG: str = get_env_str(f"{ENV_PREFIX}TESSERACT_LANG", "eng")
DEFAULT_TESSERACT_PSM: str = get_env_str(f"{ENV_PREFIX}TESSERACT_PSM", "6")
DEFAULT_TESSERACT_OEM: str = get_env_str(f"{ENV_PREFIX}TESSERACT_OEM", "1")
DEFAULT_OCR_TIMEOUT: float = get_env_float(f"{ENV_PREFIX}OCR_TIMEOUT", 5.0)
DEFAULT_OCR_CAPTURE_LIMIT: int = get_env_int(f"{ENV_PREFIX}OCR_CAPTURE_LIMIT", 8 * 1024)
DEFAULT_OCR_DEBUG_LOGGING: bool = get_env_bool(f"{ENV_PREFIX}OCR_DEBUG_LOGGING", True)

MATCHER_CONFIG: Dict[str, Any] = {
    "threshold": DEFAULT_MATCH_THRESHOLD,  # Discovery threshold (0.0-1.0)
    "max_results": DEFAULT_MATCH_MAX_RESULTS,  # Cap after suppression
    "overlap": DEFAULT_MATCH_OVERLAP,  # IoU suppression cutoff
}

OCR_CONFIG: Dict[str, Any] = {
    "exe_path": DEFAULT_TESSERACT_PATH,
    "lang": DEFAULT_TESSERACT_LANG,
    "psm": DEFAULT_TESSERACT_PSM,
    "oem": DEFAULT_TESSERACT_OEM,
    "timeout": DEFAULT_OCR_TIMEOUT,
    "capture_limit": DEFAULT_OCR_CAPTURE_LIMIT,
    "debug_logging": DEFAULT_OCR_DEBUG_LOGGING,
}

TRIGGER_DEFAULTS: Dict[str, Any] = {
    "cooldown_seconds": DEFAULT_COOLDOWN_SECONDS,
    "similarity_threshold": DEFAULT_SIMILARITY_THRESHOLD,
    "confidence_threshold": DEFAULT_TEXT_CONFIDENCE_THRESHOLD,
    "mode": "found",  # found | not-found
}


# ==================== UTILITY FUNCTIONS ====================
def get_matcher_config() -> Dict[str, Any]:
    """Get template matcher configuration"""
    return MATCHER_CONFIG.copy()


def get_ocr_config() -> Dict[str, Any]:
    """Get OCR engine configuration"""
    return OCR_CONFIG.copy()


def get_trigger_defaults() -> Dict[str, Any]:
    """Get default values applied to trigger definitions"""
    return TRIGGER_DEFAULTS.copy()
