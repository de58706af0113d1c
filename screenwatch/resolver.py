"""
Coordinate Resolver Module - turns a detection set into one screen coordinate.

The resolver never guesses: zero qualifying detections and more than one
qualifying detection are both reported as named failures.
"""

from dataclasses import dataclass
from typing import Any, Optional, Union

from .config import DEFAULT_TARGET_CONFIDENCE
from .detector import MatchConfig, MatchOutcome, match
from .geometry import Box, clamp_point
from .imaging import as_array
from .utils import get_logger

logger = get_logger(__name__)

NO_DETECTION = "no detection above threshold"
MULTIPLE_DETECTIONS = "multiple detections ({count}) above threshold"


@dataclass(frozen=True)
class DetectionTarget:
    """What to look for and where to act relative to it.

    Attributes:
        reference_id: Identifier of the reference template.
        confidence: Acceptance threshold in [0, 1], applied after matching.
        offset_x: Horizontal pixel offset from the template center.
        offset_y: Vertical pixel offset from the template center.
    """

    reference_id: str
    confidence: float = DEFAULT_TARGET_CONFIDENCE
    offset_x: int = 0
    offset_y: int = 0

    def __post_init__(self):
        if not self.reference_id or not self.reference_id.strip():
            raise ValueError("reference_id is required")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be in [0,1], got {self.confidence}")


@dataclass(frozen=True)
class ResolvedCoordinate:
    """The single accepted answer: a clamped screen point and its source."""

    x: int
    y: int
    score: float
    reference_id: str
    source_box: Box


@dataclass(frozen=True)
class ResolveFailure:
    """Why no coordinate could be produced.

    ``count`` is the number of detections that passed the target threshold.
    """

    reason: str
    count: int = 0

    def __str__(self) -> str:
        return self.reason


ResolveResult = Union[ResolvedCoordinate, ResolveFailure]


def resolve(
    target: DetectionTarget,
    outcome: MatchOutcome,
    frame_width: int,
    frame_height: int,
) -> ResolveResult:
    """Pick the single detection that passes the target's threshold.

    Args:
        target: Reference id, acceptance threshold and pixel offset.
        outcome: Suppressed detections from the matcher.
        frame_width: Width of the frame the detections are expressed in.
        frame_height: Height of the frame the detections are expressed in.

    Returns:
        ResolvedCoordinate when exactly one detection qualifies, otherwise a
        ResolveFailure naming the reason.
    """
    passing = [d for d in outcome.detections if d.confidence >= target.confidence]

    if not passing:
        logger.debug(f"Resolve '{target.reference_id}': {NO_DETECTION}")
        return ResolveFailure(NO_DETECTION, 0)

    if len(passing) > 1:
        reason = MULTIPLE_DETECTIONS.format(count=len(passing))
        logger.debug(f"Resolve '{target.reference_id}': {reason}")
        return ResolveFailure(reason, len(passing))

    detection = passing[0]
    center_x, center_y = detection.box.center
    x, y = clamp_point(
        center_x + target.offset_x,
        center_y + target.offset_y,
        frame_width,
        frame_height,
    )
    logger.debug(
        f"Resolve '{target.reference_id}': ({x}, {y}) score={detection.confidence:.3f}"
    )
    return ResolvedCoordinate(x, y, detection.confidence, target.reference_id, detection.box)


def resolve_center(
    target: DetectionTarget,
    frame: Any,
    template: Any,
    config: Optional[MatchConfig] = None,
) -> ResolveResult:
    """Match ``template`` in ``frame`` and resolve against the frame's size."""
    outcome = match(frame, template, config or MatchConfig.from_config())
    height, width = as_array(frame).shape[:2]
    return resolve(target, outcome, width, height)
