"""
Template Detector Module - candidate matching and overlap suppression.

This module provides the two leaf stages of the perception pipeline:
1. match() - normalized template matching that collects every placement whose
   similarity reaches a threshold
2. suppress() - greedy non-maximum suppression that reduces overlapping
   candidates to a capped set of distinct detections
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import cv2  # type: ignore
import numpy as np  # type: ignore

from .config import get_matcher_config
from .geometry import Box
from .imaging import is_empty, to_gray
from .utils import get_logger

logger = get_logger(__name__)

# Variance below this is treated as a flat (single-intensity) image
_FLAT_VARIANCE = 1e-6
# Max mean intensity difference for a flat window to equal a flat template
_FLAT_TOLERANCE = 0.5


# ==================== DATA CLASSES ====================


@dataclass(frozen=True)
class Detection:
    """A scored box produced by matching (candidate) or suppression (detection)."""

    box: Box
    confidence: float

    @property
    def center(self) -> Tuple[int, int]:
        return self.box.center


@dataclass(frozen=True)
class MatchConfig:
    """Per-call matching parameters.

    Attributes:
        threshold: Minimum similarity for a placement to become a candidate.
        max_results: Maximum detections returned after suppression.
        overlap: IoU above which a lower-confidence candidate is discarded.
    """

    threshold: float = 0.8
    max_results: int = 10
    overlap: float = 0.3

    def __post_init__(self):
        if not 0.0 <= self.threshold <= 1.0:
            raise ValueError(f"threshold must be in [0,1], got {self.threshold}")
        if self.max_results < 1:
            raise ValueError(f"max_results must be >= 1, got {self.max_results}")
        if not 0.0 <= self.overlap <= 1.0:
            raise ValueError(f"overlap must be in [0,1], got {self.overlap}")

    @classmethod
    def from_config(cls, overrides: Optional[Dict[str, Any]] = None) -> "MatchConfig":
        """Build from environment-driven defaults plus optional overrides."""
        values = get_matcher_config()
        if overrides:
            values.update({k: v for k, v in overrides.items() if k in values})
        return cls(
            threshold=float(values["threshold"]),
            max_results=int(values["max_results"]),
            overlap=float(values["overlap"]),
        )


@dataclass(frozen=True)
class MatchOutcome:
    """Suppressed detections (confidence descending) plus truncation flag."""

    detections: Tuple[Detection, ...] = field(default_factory=tuple)
    limits_hit: bool = False

    def __len__(self) -> int:
        return len(self.detections)

    def __iter__(self):
        return iter(self.detections)

    @property
    def best(self) -> Optional[Detection]:
        return self.detections[0] if self.detections else None


EMPTY_OUTCOME = MatchOutcome()


# ==================== OVERLAP SUPPRESSION ====================


def _pairwise_iou(box: np.ndarray, others: np.ndarray) -> np.ndarray:
    """IoU of one ``[x, y, w, h]`` row against many rows."""
    x1 = np.maximum(box[0], others[:, 0])
    y1 = np.maximum(box[1], others[:, 1])
    x2 = np.minimum(box[0] + box[2], others[:, 0] + others[:, 2])
    y2 = np.minimum(box[1] + box[3], others[:, 1] + others[:, 3])

    inter = np.clip(x2 - x1, 0, None) * np.clip(y2 - y1, 0, None)
    area_a = max(int(box[2]), 0) * max(int(box[3]), 0)
    area_b = np.clip(others[:, 2], 0, None) * np.clip(others[:, 3], 0, None)
    union = area_a + area_b - inter

    result = np.zeros(len(others), dtype=np.float64)
    valid = (inter > 0) & (union > 0) & (area_a > 0) & (area_b > 0)
    result[valid] = inter[valid] / union[valid]
    return result


def _suppress_indices(boxes: np.ndarray, overlap: float, max_results: int) -> List[int]:
    """Greedy NMS over rows already sorted by confidence descending.

    Args:
        boxes: ``(N, 4)`` integer array of ``[x, y, width, height]``.
        overlap: IoU strictly above which a later box is discarded.
        max_results: Stop after this many boxes are accepted.

    Returns:
        List[int]: Indices of accepted rows, in input order.
    """
    count = len(boxes)
    alive = np.ones(count, dtype=bool)
    kept: List[int] = []

    i = 0
    while i < count and len(kept) < max_results:
        if not alive[i]:
            i += 1
            continue
        kept.append(i)
        rest = slice(i + 1, count)
        if i + 1 < count:
            overlaps = _pairwise_iou(boxes[i], boxes[rest])
            alive[rest] &= overlaps <= overlap
        i += 1

    return kept


def suppress(
    candidates: Sequence[Detection], overlap_threshold: float, max_results: int
) -> List[Detection]:
    """Reduce overlapping candidates to distinct, highest-confidence detections.

    Candidates must already be sorted by confidence descending. Each candidate
    that survives is accepted, then every later candidate whose IoU with it
    exceeds ``overlap_threshold`` is discarded.

    Args:
        candidates: Candidates in confidence-descending order.
        overlap_threshold: IoU cutoff in [0, 1].
        max_results: Maximum number of detections to accept.

    Returns:
        List[Detection]: Accepted detections in input order.
    """
    if not candidates or max_results < 1:
        return []

    boxes = np.array(
        [[c.box.x, c.box.y, c.box.width, c.box.height] for c in candidates],
        dtype=np.int64,
    )
    kept = _suppress_indices(boxes, overlap_threshold, max_results)
    return [candidates[i] for i in kept]


# ==================== TEMPLATE MATCHING ====================


def _window_stats(gray: np.ndarray, tpl_h: int, tpl_w: int) -> Tuple[np.ndarray, np.ndarray]:
    """Mean and variance of every template-sized window, via integral images."""
    sums, sq_sums = cv2.integral2(gray, sdepth=cv2.CV_64F, sqdepth=cv2.CV_64F)
    n = float(tpl_h * tpl_w)

    def window(integral: np.ndarray) -> np.ndarray:
        return (
            integral[tpl_h:, tpl_w:]
            - integral[:-tpl_h, tpl_w:]
            - integral[tpl_h:, :-tpl_w]
            + integral[:-tpl_h, :-tpl_w]
        )

    mean = window(sums) / n
    variance = window(sq_sums) / n - mean * mean
    return mean, variance


def score_map(frame_gray: np.ndarray, template_gray: np.ndarray) -> np.ndarray:
    """Normalized similarity at every valid placement of the template.

    Uses zero-mean normalized cross-correlation, which discounts absolute
    brightness. A flat template has no correlation signal, so its placements
    score 1.0 where the window is flat with the same intensity and 0.0
    elsewhere.

    Returns:
        np.ndarray: ``(H - h + 1, W - w + 1)`` float32 scores in [-1, 1].
    """
    tpl_h, tpl_w = template_gray.shape[:2]

    if float(template_gray.var()) < _FLAT_VARIANCE:
        mean, variance = _window_stats(frame_gray, tpl_h, tpl_w)
        flat = (variance < _FLAT_VARIANCE) & (
            np.abs(mean - float(template_gray.mean())) <= _FLAT_TOLERANCE
        )
        return flat.astype(np.float32)

    scores = cv2.matchTemplate(frame_gray, template_gray, cv2.TM_CCOEFF_NORMED)
    scores = np.nan_to_num(scores, nan=0.0, posinf=1.0, neginf=-1.0)
    return np.clip(scores, -1.0, 1.0)


def match(frame: Any, template: Any, config: MatchConfig) -> MatchOutcome:
    """Find every distinct placement of ``template`` inside ``frame``.

    An empty frame or template, or a template larger than the frame in either
    dimension, is a "cannot match" case and yields an empty outcome.

    Args:
        frame: Full frame (array or PIL image, colour or grayscale).
        template: Reference template (array or PIL image).
        config: Threshold, result cap and overlap cutoff.

    Returns:
        MatchOutcome: Detections sorted by confidence descending, and whether
            more candidates existed than could be returned.
    """
    if is_empty(frame) or is_empty(template):
        logger.debug("Match skipped: empty frame or template")
        return EMPTY_OUTCOME

    frame_gray = to_gray(frame)
    template_gray = to_gray(template)
    tpl_h, tpl_w = template_gray.shape[:2]
    if tpl_h > frame_gray.shape[0] or tpl_w > frame_gray.shape[1]:
        logger.debug(
            f"Match skipped: template {tpl_w}x{tpl_h} larger than "
            f"frame {frame_gray.shape[1]}x{frame_gray.shape[0]}"
        )
        return EMPTY_OUTCOME

    scores = score_map(frame_gray, template_gray)
    ys, xs = np.nonzero(scores >= config.threshold)
    if len(ys) == 0:
        logger.debug(f"Match: no placement reached threshold {config.threshold:.2f}")
        return EMPTY_OUTCOME

    confidences = scores[ys, xs].astype(np.float64)
    # Confidence descending, then x, then y ascending
    order = np.lexsort((ys, xs, -confidences))
    ys, xs, confidences = ys[order], xs[order], confidences[order]

    boxes = np.column_stack(
        (
            xs.astype(np.int64),
            ys.astype(np.int64),
            np.full(len(xs), tpl_w, dtype=np.int64),
            np.full(len(xs), tpl_h, dtype=np.int64),
        )
    )
    kept = _suppress_indices(boxes, config.overlap, config.max_results)

    detections = tuple(
        Detection(Box(int(xs[i]), int(ys[i]), tpl_w, tpl_h), float(confidences[i]))
        for i in kept
    )
    limits_hit = len(detections) >= config.max_results and len(boxes) > len(detections)

    logger.debug(
        f"Match: {len(boxes)} candidates -> {len(detections)} detections"
        f"{' (limit hit)' if limits_hit else ''}"
    )
    return MatchOutcome(detections, limits_hit)
