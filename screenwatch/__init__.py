"""Screen perception and trigger evaluation core."""

from .detector import Detection, MatchConfig, MatchOutcome, match, suppress
from .geometry import Box, Region, iou
from .ocr import OcrResult, TesseractOcr, parse_tsv
from .resolver import DetectionTarget, ResolvedCoordinate, ResolveFailure, resolve, resolve_center
from .sweep import SweepReport, TriggerSweep
from .templates import TemplateStore
from .triggers import (
    EvaluationContext,
    Trigger,
    TriggerEvaluationResult,
    TriggerStatus,
    TriggerType,
    evaluate,
)

__all__ = [
    "Box",
    "Region",
    "iou",
    "Detection",
    "MatchConfig",
    "MatchOutcome",
    "match",
    "suppress",
    "DetectionTarget",
    "ResolvedCoordinate",
    "ResolveFailure",
    "resolve",
    "resolve_center",
    "OcrResult",
    "TesseractOcr",
    "parse_tsv",
    "TemplateStore",
    "EvaluationContext",
    "Trigger",
    "TriggerEvaluationResult",
    "TriggerStatus",
    "TriggerType",
    "evaluate",
    "SweepReport",
    "TriggerSweep",
]
