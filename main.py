"""
Screenwatch command line entry point.

Runs one evaluation sweep of a trigger file against a captured frame and
prints each trigger's status.
"""

import argparse
import os
import sys
from typing import List, Optional

import cv2  # type: ignore

from screenwatch.config import DEFAULT_PATHS, DEFAULT_SWEEP_MAX_WORKERS
from screenwatch.data import load_triggers, result_to_dict, trigger_to_dict, write_report
from screenwatch.errors import ScreenwatchError
from screenwatch.ocr import TesseractOcr
from screenwatch.sweep import TriggerSweep
from screenwatch.templates import TemplateStore
from screenwatch.triggers import EvaluationContext
from screenwatch.utils import StructuredLogger, get_logger

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Evaluate screen triggers against a frame")
    parser.add_argument("--frame", type=str, required=True, help="Captured frame image")
    parser.add_argument(
        "--triggers", type=str, required=True, help="Trigger definitions (.json/.yaml)"
    )
    parser.add_argument(
        "--templates",
        type=str,
        default=DEFAULT_PATHS["templates"],
        help="Directory containing reference template images",
    )
    parser.add_argument("--report", type=str, help="Write a JSON report to this path")
    parser.add_argument(
        "--log-file",
        type=str,
        default=os.path.join(DEFAULT_PATHS["logs"], "screenwatch.log"),
        help="Append sweep logs to this file",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=DEFAULT_SWEEP_MAX_WORKERS,
        help="Parallel trigger evaluations",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    structured = StructuredLogger("screenwatch", log_file=args.log_file)

    if not os.path.exists(args.frame):
        structured.error(f"Frame not found: {args.frame}")
        return 2
    frame = cv2.imread(args.frame, cv2.IMREAD_COLOR)
    if frame is None:
        structured.error(f"Cannot read frame: {args.frame}")
        return 2

    try:
        triggers = load_triggers(args.triggers)
    except (OSError, ValueError, ScreenwatchError) as e:
        structured.error(f"Cannot load triggers: {e}")
        return 2

    templates = TemplateStore()
    templates.load_directory(args.templates)

    context = EvaluationContext(frame=frame, templates=templates, ocr=TesseractOcr())
    report = TriggerSweep(args.workers, structured).run(triggers, context)

    for trigger, result in zip(report.triggers, report.results):
        print(f"{trigger.id}\t{result.status.value}\t{result.reason or ''}")

    if args.report:
        rows = [
            {**trigger_to_dict(t), "result": result_to_dict(r)}
            for t, r in zip(report.triggers, report.results)
        ]
        if not write_report(args.report, rows):
            return 1
        structured.info(f"Report written: {args.report}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
