"""
Trigger Module - trigger definitions and the stateless trigger evaluator.

A trigger pairs a condition (elapsed time, absolute time, image on screen,
text on screen) with enablement and a cooldown. ``evaluate()`` is a pure
function of ``(trigger, now, context)``: it returns the evaluation result and
an updated copy of the trigger, and never mutates its input. Persisting the
updated trigger is the caller's job.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Tuple, Union

from .config import (
    DEFAULT_COOLDOWN_SECONDS,
    DEFAULT_SIMILARITY_THRESHOLD,
    DEFAULT_TEXT_CONFIDENCE_THRESHOLD,
)
from .detector import MatchConfig, match
from .geometry import Region
from .imaging import crop_region, is_empty, preprocess_for_ocr
from .ocr import TextRecognizer
from .resolver import DetectionTarget, ResolvedCoordinate, resolve
from .utils import get_logger

logger = get_logger(__name__)

MODE_FOUND = "found"
MODE_NOT_FOUND = "not-found"


class TriggerType(Enum):
    """Kind of condition a trigger watches."""

    DELAY = "delay"
    SCHEDULE = "schedule"
    IMAGE_MATCH = "image-match"
    TEXT_MATCH = "text-match"


class TriggerStatus(Enum):
    """Outcome of one trigger evaluation."""

    PENDING = "pending"
    SATISFIED = "satisfied"
    COOLDOWN = "cooldown"
    DISABLED = "disabled"


# ==================== TRIGGER PARAMETERS ====================


@dataclass(frozen=True)
class DelayParams:
    """Satisfied once ``seconds`` have elapsed since the reference start."""

    seconds: float


@dataclass(frozen=True)
class ScheduleParams:
    """Satisfied once ``now`` reaches ``timestamp``."""

    timestamp: datetime


@dataclass(frozen=True)
class ImageMatchParams:
    """Satisfied when the reference template is found exactly once in the region."""

    reference_image_id: str
    region: Region
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD

    def __post_init__(self):
        if not self.reference_image_id or not self.reference_image_id.strip():
            raise ValueError("reference_image_id is required")
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValueError(
                f"similarity_threshold must be in [0,1], got {self.similarity_threshold}"
            )


@dataclass(frozen=True)
class TextMatchParams:
    """Watches for ``target`` text in the region.

    Mode ``found`` is satisfied when the text is present with enough
    confidence; mode ``not-found`` when it is not.
    """

    target: str
    region: Region
    confidence_threshold: float = DEFAULT_TEXT_CONFIDENCE_THRESHOLD
    mode: str = MODE_FOUND
    language: Optional[str] = None

    def __post_init__(self):
        mode = (self.mode or "").strip().lower()
        if mode not in (MODE_FOUND, MODE_NOT_FOUND):
            raise ValueError(f"mode must be '{MODE_FOUND}' or '{MODE_NOT_FOUND}', got {self.mode!r}")
        object.__setattr__(self, "mode", mode)
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError(
                f"confidence_threshold must be in [0,1], got {self.confidence_threshold}"
            )


TriggerParams = Union[DelayParams, ScheduleParams, ImageMatchParams, TextMatchParams]

PARAMS_BY_TYPE = {
    TriggerType.DELAY: DelayParams,
    TriggerType.SCHEDULE: ScheduleParams,
    TriggerType.IMAGE_MATCH: ImageMatchParams,
    TriggerType.TEXT_MATCH: TextMatchParams,
}


# ==================== TRIGGER & RESULT ====================


@dataclass(frozen=True)
class TriggerEvaluationResult:
    """Result of one evaluation, attached to the trigger as ``last_result``."""

    status: TriggerStatus
    evaluated_at: datetime
    reason: Optional[str] = None
    similarity: Optional[float] = None
    confidence: Optional[float] = None


@dataclass(frozen=True)
class Trigger:
    """A trigger definition plus the state the evaluator maintains on it.

    ``last_fired_at``, ``last_evaluated_at``, ``last_result`` and
    ``enabled_at`` are only ever changed by ``evaluate()``.
    """

    id: str
    type: TriggerType
    params: TriggerParams
    enabled: bool = True
    cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS
    last_fired_at: Optional[datetime] = None
    last_evaluated_at: Optional[datetime] = None
    last_result: Optional[TriggerEvaluationResult] = None
    enabled_at: Optional[datetime] = None

    def __post_init__(self):
        expected = PARAMS_BY_TYPE.get(self.type)
        if expected is None:
            raise ValueError(f"Unknown trigger type: {self.type!r}")
        if not isinstance(self.params, expected):
            raise TypeError(
                f"Trigger '{self.id}' of type {self.type.value} needs "
                f"{expected.__name__}, got {type(self.params).__name__}"
            )
        if self.cooldown_seconds < 0:
            raise ValueError(f"cooldown_seconds must be >= 0, got {self.cooldown_seconds}")


@dataclass(frozen=True)
class EvaluationContext:
    """External collaborators shared by every trigger in one sweep.

    Attributes:
        frame: Latest captured frame (array or PIL image), or None.
        templates: Template lookup with a ``get(reference_id)`` method.
        ocr: Text recognizer for text-match triggers.
        reference_start: Start instant for delay triggers (e.g. session start).
        match_config: Overlap and result cap used for image matching.
    """

    frame: Any = None
    templates: Any = None
    ocr: Optional[TextRecognizer] = None
    reference_start: Optional[datetime] = None
    match_config: Optional[MatchConfig] = None


@dataclass(frozen=True)
class _Condition:
    met: bool
    reason: str
    similarity: Optional[float] = None
    confidence: Optional[float] = None
    enabled_at: Optional[datetime] = None


# ==================== CONDITION CHECKS ====================


def _check_delay(trigger: Trigger, now: datetime, context: EvaluationContext) -> _Condition:
    params: DelayParams = trigger.params  # type: ignore[assignment]
    start = context.reference_start or trigger.enabled_at
    enabled_at = trigger.enabled_at
    if start is None:
        # First sighting without an external start: this evaluation is the baseline
        start = enabled_at = now

    elapsed = (now - start).total_seconds()
    met = elapsed >= max(0.0, float(params.seconds))
    return _Condition(met, "delay_elapsed" if met else "waiting_delay", enabled_at=enabled_at)


def _check_schedule(trigger: Trigger, now: datetime, context: EvaluationContext) -> _Condition:
    params: ScheduleParams = trigger.params  # type: ignore[assignment]
    met = now >= params.timestamp
    return _Condition(met, "time_reached" if met else "waiting_for_time")


def _check_image(trigger: Trigger, now: datetime, context: EvaluationContext) -> _Condition:
    params: ImageMatchParams = trigger.params  # type: ignore[assignment]
    if is_empty(context.frame):
        return _Condition(False, "no_screen")

    template = context.templates.get(params.reference_image_id) if context.templates else None
    if template is None:
        logger.debug(f"Trigger '{trigger.id}': reference '{params.reference_image_id}' not found")
        return _Condition(False, "reference_not_found")

    sub, _ = crop_region(context.frame, params.region)
    config = replace(
        context.match_config or MatchConfig.from_config(),
        threshold=params.similarity_threshold,
    )
    outcome = match(sub, template, config)
    target = DetectionTarget(params.reference_image_id, params.similarity_threshold)
    result = resolve(target, outcome, sub.shape[1], sub.shape[0])

    if isinstance(result, ResolvedCoordinate):
        return _Condition(True, "similarity_met", similarity=result.score)

    best = outcome.best
    return _Condition(False, result.reason, similarity=best.confidence if best else 0.0)


def _check_text(trigger: Trigger, now: datetime, context: EvaluationContext) -> _Condition:
    params: TextMatchParams = trigger.params  # type: ignore[assignment]
    if is_empty(context.frame):
        return _Condition(False, "no_screen")
    if context.ocr is None:
        return _Condition(False, "ocr_unavailable")

    sub, _ = crop_region(context.frame, params.region)
    recognized = context.ocr.recognize(preprocess_for_ocr(sub), params.language)
    text = recognized.text or ""

    contains = bool(params.target) and params.target.lower() in text.lower()
    found = contains and recognized.confidence >= params.confidence_threshold

    if params.mode == MODE_NOT_FOUND:
        return _Condition(
            not found,
            "text_present" if contains else "text_absent",
            confidence=recognized.confidence,
        )
    return _Condition(
        found, "text_found" if found else "text_not_found", confidence=recognized.confidence
    )


_CHECKS = {
    TriggerType.DELAY: _check_delay,
    TriggerType.SCHEDULE: _check_schedule,
    TriggerType.IMAGE_MATCH: _check_image,
    TriggerType.TEXT_MATCH: _check_text,
}


# ==================== EVALUATOR ====================


def in_cooldown(trigger: Trigger, now: datetime) -> bool:
    """True when the trigger fired less than ``cooldown_seconds`` ago."""
    if trigger.last_fired_at is None:
        return False
    return (now - trigger.last_fired_at).total_seconds() < trigger.cooldown_seconds


def evaluate(
    trigger: Trigger, now: datetime, context: Optional[EvaluationContext] = None
) -> Tuple[TriggerEvaluationResult, Trigger]:
    """Evaluate a trigger at ``now``.

    Disabled triggers short-circuit before any condition check. A met
    condition inside the cooldown window reports Cooldown; otherwise it
    reports Satisfied and moves ``last_fired_at`` to ``now``. An unmet
    condition reports Pending and leaves ``last_fired_at`` alone.

    Args:
        trigger: Trigger to evaluate; not modified.
        now: Evaluation instant.
        context: Frame, templates, OCR and reference start for this sweep.

    Returns:
        Tuple[TriggerEvaluationResult, Trigger]: The result and the trigger
            with ``last_evaluated_at``/``last_result`` (and, when satisfied,
            ``last_fired_at``) updated.
    """
    context = context or EvaluationContext()

    if not trigger.enabled:
        result = TriggerEvaluationResult(TriggerStatus.DISABLED, now, reason="disabled")
        return result, replace(trigger, last_evaluated_at=now, last_result=result)

    condition = _CHECKS[trigger.type](trigger, now, context)
    last_fired_at = trigger.last_fired_at

    if condition.met and in_cooldown(trigger, now):
        status, reason = TriggerStatus.COOLDOWN, "cooldown_active"
    elif condition.met:
        status, reason = TriggerStatus.SATISFIED, condition.reason
        last_fired_at = now
    else:
        status, reason = TriggerStatus.PENDING, condition.reason

    result = TriggerEvaluationResult(
        status,
        now,
        reason=reason,
        similarity=condition.similarity,
        confidence=condition.confidence,
    )
    logger.debug(f"Trigger '{trigger.id}' ({trigger.type.value}): {status.value} [{reason}]")

    updated = replace(
        trigger,
        last_fired_at=last_fired_at,
        last_evaluated_at=now,
        last_result=result,
        enabled_at=condition.enabled_at or trigger.enabled_at,
    )
    return result, updated
