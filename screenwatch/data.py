"""
Data Module - trigger definition loading and evaluation report writing.

Trigger definitions come from JSON or YAML files written by the authoring
layer. Reports are written atomically so a crash mid-write never leaves a
truncated file behind.
"""

import json
import os
import tempfile
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import yaml  # type: ignore

from .config import get_trigger_defaults
from .errors import TriggerDefinitionError
from .geometry import Region
from .triggers import (
    DelayParams,
    ImageMatchParams,
    ScheduleParams,
    TextMatchParams,
    Trigger,
    TriggerEvaluationResult,
    TriggerStatus,
    TriggerType,
)
from .utils import ensure_directory, get_logger, validate_file_path

logger = get_logger(__name__)

_TYPE_ALIASES = {
    "delay": TriggerType.DELAY,
    "schedule": TriggerType.SCHEDULE,
    "imagematch": TriggerType.IMAGE_MATCH,
    "textmatch": TriggerType.TEXT_MATCH,
}

_TRUE_WORDS = ("true", "1", "yes", "on")
_FALSE_WORDS = ("false", "0", "no", "off", "")


# ==================== VALUE CONVERSION ====================


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (``Z`` suffix accepted).

    Timestamps without an offset are taken as UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)


def parse_bool(value: Any) -> bool:
    """Accept booleans, 0/1 and the usual true/false words."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        key = value.strip().lower()
        if key in _TRUE_WORDS:
            return True
        if key in _FALSE_WORDS:
            return False
    raise ValueError(f"Invalid boolean: {value!r}")



def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_trigger_type(value: Any) -> TriggerType:
    """Accept ``image-match``, ``ImageMatch``, ``image_match`` and so on."""
    if isinstance(value, TriggerType):
        return value
    key = str(value or "").replace("-", "").replace("_", "").lower()
    if key not in _TYPE_ALIASES:
        raise ValueError(f"Unknown trigger type: {value!r}")
    return _TYPE_ALIASES[key]


def _region_from_dict(raw: Optional[Dict[str, Any]]) -> Region:
    if not raw:
        return Region.full()
    return Region(
        float(raw["x"]), float(raw["y"]), float(raw["width"]), float(raw["height"])
    )


def _params_from_dict(
    trigger_type: TriggerType, raw: Dict[str, Any], defaults: Dict[str, Any]
):
    if trigger_type is TriggerType.DELAY:
        return DelayParams(seconds=float(raw["seconds"]))
    if trigger_type is TriggerType.SCHEDULE:
        timestamp = parse_timestamp(raw["timestamp"])
        if timestamp is None:
            raise ValueError("schedule timestamp is required")
        return ScheduleParams(timestamp=timestamp)
    if trigger_type is TriggerType.IMAGE_MATCH:
        return ImageMatchParams(
            reference_image_id=str(raw["reference_image_id"]),
            region=_region_from_dict(raw.get("region")),
            similarity_threshold=float(
                raw.get("similarity_threshold", defaults["similarity_threshold"])
            ),
        )
    return TextMatchParams(
        target=str(raw["target"]),
        region=_region_from_dict(raw.get("region")),
        confidence_threshold=float(
            raw.get("confidence_threshold", defaults["confidence_threshold"])
        ),
        mode=str(raw.get("mode", defaults["mode"])),
        language=raw.get("language"),
    )


def trigger_from_dict(record: Dict[str, Any], index: int = -1) -> Trigger:
    """Build a Trigger from a definition record.

    Raises:
        TriggerDefinitionError: If the record is missing fields or holds
            invalid values.
    """
    if not isinstance(record, dict):
        raise TriggerDefinitionError("Trigger record must be a mapping", index)

    defaults = get_trigger_defaults()
    try:
        trigger_type = parse_trigger_type(record.get("type"))
        return Trigger(
            id=str(record["id"]),
            type=trigger_type,
            params=_params_from_dict(trigger_type, record.get("params") or {}, defaults),
            enabled=parse_bool(record.get("enabled", True)),
            cooldown_seconds=float(record.get("cooldown_seconds", defaults["cooldown_seconds"])),
            last_fired_at=parse_timestamp(record.get("last_fired_at")),
            last_evaluated_at=parse_timestamp(record.get("last_evaluated_at")),
            last_result=result_from_dict(record.get("last_result")),
            enabled_at=parse_timestamp(record.get("enabled_at")),
        )
    except KeyError as e:
        raise TriggerDefinitionError(f"Missing field {e}", index) from e
    except (TypeError, ValueError) as e:
        raise TriggerDefinitionError(str(e), index) from e


def result_to_dict(result: Optional[TriggerEvaluationResult]) -> Optional[Dict[str, Any]]:
    if result is None:
        return None
    return {
        "status": result.status.value,
        "evaluated_at": format_timestamp(result.evaluated_at),
        "reason": result.reason,
        "similarity": result.similarity,
        "confidence": result.confidence,
    }


def result_from_dict(raw: Optional[Dict[str, Any]]) -> Optional[TriggerEvaluationResult]:
    if not raw:
        return None
    return TriggerEvaluationResult(
        status=TriggerStatus(raw["status"]),
        evaluated_at=parse_timestamp(raw["evaluated_at"]),
        reason=raw.get("reason"),
        similarity=raw.get("similarity"),
        confidence=raw.get("confidence"),
    )


def trigger_to_dict(trigger: Trigger) -> Dict[str, Any]:
    """Serialize a trigger, including evaluator-maintained state."""
    params = trigger.params
    if isinstance(params, DelayParams):
        raw_params: Dict[str, Any] = {"seconds": params.seconds}
    elif isinstance(params, ScheduleParams):
        raw_params = {"timestamp": format_timestamp(params.timestamp)}
    elif isinstance(params, ImageMatchParams):
        raw_params = {
            "reference_image_id": params.reference_image_id,
            "region": asdict(params.region),
            "similarity_threshold": params.similarity_threshold,
        }
    else:
        raw_params = {
            "target": params.target,
            "region": asdict(params.region),
            "confidence_threshold": params.confidence_threshold,
            "mode": params.mode,
            "language": params.language,
        }

    return {
        "id": trigger.id,
        "type": trigger.type.value,
        "enabled": trigger.enabled,
        "cooldown_seconds": trigger.cooldown_seconds,
        "params": raw_params,
        "last_fired_at": format_timestamp(trigger.last_fired_at),
        "last_evaluated_at": format_timestamp(trigger.last_evaluated_at),
        "enabled_at": format_timestamp(trigger.enabled_at),
        "last_result": result_to_dict(trigger.last_result),
    }


# ==================== FILE I/O ====================


def load_triggers(file_path: str, encoding: str = "utf-8") -> List[Trigger]:
    """Load trigger definitions from a ``.json``, ``.yaml`` or ``.yml`` file.

    The file holds either a list of records or a mapping with a ``triggers``
    list.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the path is unsafe or the extension unsupported.
        TriggerDefinitionError: If a record is malformed.
    """
    if not validate_file_path(file_path):
        raise ValueError(f"Invalid or unsafe file path: {file_path}")
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"File not found: {file_path}")

    ext = os.path.splitext(file_path)[1].lower()
    with open(file_path, encoding=encoding) as f:
        if ext == ".json":
            data = json.load(f)
        elif ext in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        else:
            raise ValueError(f"Unsupported file format: {ext}. Use .json or .yaml")

    if isinstance(data, dict):
        data = data.get("triggers", [])
    if not isinstance(data, list):
        raise TriggerDefinitionError(f"Expected a list of triggers, got {type(data).__name__}")

    triggers = [trigger_from_dict(record, i) for i, record in enumerate(data)]
    logger.info(f"Loaded {len(triggers)} trigger(s) from {file_path}")
    return triggers


def _atomic_write(file_path: str, write_func, encoding: str = "utf-8") -> bool:
    """Perform atomic file write using temp file and rename.

    Returns:
        bool: True if write successful, False otherwise.
    """
    directory = os.path.dirname(file_path) or "."
    ensure_directory(directory)

    fd, temp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as f:
            write_func(f)
        os.replace(temp_path, file_path)
        return True
    except OSError as e:
        logger.error(f"Atomic write failed: {e}")
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        return False


def write_report(file_path: str, rows: List[Dict[str, Any]]) -> bool:
    """Write report rows as a JSON list with an atomic replace.

    Returns:
        bool: True if write successful, False otherwise.
    """
    if not validate_file_path(file_path):
        logger.error(f"Invalid file path: {file_path}")
        return False

    def write_data(f):
        json.dump(rows, f, indent=2, ensure_ascii=False)

    if _atomic_write(file_path, write_data):
        logger.debug(f"Wrote {len(rows)} rows to JSON: {file_path}")
        return True
    return False
