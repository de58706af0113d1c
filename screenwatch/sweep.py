"""
Sweep Module - evaluates a batch of triggers against one frame and one instant.

Triggers with different ids run in parallel on a thread pool. Entries that
share an id are evaluated in input order within one task, and each sees the
fire time recorded by the one before it.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from .config import DEFAULT_SWEEP_MAX_WORKERS
from .triggers import (
    EvaluationContext,
    Trigger,
    TriggerEvaluationResult,
    TriggerStatus,
    evaluate,
)
from .utils import StructuredLogger, get_logger

logger = get_logger(__name__)


@dataclass
class SweepReport:
    """Everything one sweep produced, in the order the triggers were given."""

    evaluated_at: datetime
    results: List[TriggerEvaluationResult] = field(default_factory=list)
    triggers: List[Trigger] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def counts_by_status(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in TriggerStatus}
        for result in self.results:
            counts[result.status.value] += 1
        return counts

    @property
    def satisfied(self) -> List[Trigger]:
        return [
            t for t, r in zip(self.triggers, self.results) if r.status is TriggerStatus.SATISFIED
        ]


class TriggerSweep:
    """Runs evaluation sweeps with a consistent ``now`` and frame per sweep."""

    def __init__(
        self,
        max_workers: int = DEFAULT_SWEEP_MAX_WORKERS,
        structured_logger: Optional[StructuredLogger] = None,
    ):
        """Initialize the sweep runner.

        Args:
            max_workers: Thread pool size; 1 evaluates sequentially.
            structured_logger: Optional logger for sweep headers and summaries.
        """
        self.max_workers = max(1, int(max_workers))
        self.structured_logger = structured_logger

    @staticmethod
    def _group_by_id(triggers: Sequence[Trigger]) -> List[List[int]]:
        groups: Dict[str, List[int]] = {}
        for index, trigger in enumerate(triggers):
            groups.setdefault(trigger.id, []).append(index)
        return list(groups.values())

    @staticmethod
    def _evaluate_group(
        triggers: Sequence[Trigger],
        indices: List[int],
        now: datetime,
        context: EvaluationContext,
    ) -> List[Tuple[int, Tuple[TriggerEvaluationResult, Trigger]]]:
        """Evaluate entries sharing one id in order, carrying the fire time forward."""
        pairs = []
        fired_at: Optional[datetime] = None
        for index in indices:
            trigger = triggers[index]
            if fired_at is not None:
                trigger = replace(trigger, last_fired_at=fired_at)
            result, updated = evaluate(trigger, now, context)
            fired_at = updated.last_fired_at
            pairs.append((index, (result, updated)))
        return pairs

    def run(
        self,
        triggers: Sequence[Trigger],
        context: EvaluationContext,
        now: Optional[datetime] = None,
    ) -> SweepReport:
        """Evaluate every trigger once.

        Args:
            triggers: Triggers to evaluate.
            context: Frame and collaborators shared by all triggers.
            now: Evaluation instant (defaults to the current UTC time).

        Returns:
            SweepReport: Results and updated triggers, input order preserved.
        """
        now = now or datetime.now(timezone.utc)
        report = SweepReport(evaluated_at=now)
        if self.structured_logger:
            self.structured_logger.sweep_start(len(triggers), now)

        started = time.perf_counter()
        groups = self._group_by_id(triggers)
        if self.max_workers == 1 or len(groups) <= 1:
            chunks = [self._evaluate_group(triggers, g, now, context) for g in groups]
        else:
            with ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="trigger-sweep"
            ) as pool:
                futures = [
                    pool.submit(self._evaluate_group, triggers, g, now, context) for g in groups
                ]
                chunks = [f.result() for f in futures]
        report.duration_ms = (time.perf_counter() - started) * 1000.0

        ordered: Dict[int, Tuple[TriggerEvaluationResult, Trigger]] = {}
        for chunk in chunks:
            ordered.update(chunk)
        for index in range(len(triggers)):
            result, updated = ordered[index]
            report.results.append(result)
            report.triggers.append(updated)

        if self.structured_logger:
            self.structured_logger.sweep_end(report.counts_by_status, report.duration_ms)
        else:
            logger.info(
                f"Sweep: {len(triggers)} trigger(s) in {report.duration_ms:.1f} ms "
                f"{report.counts_by_status}"
            )
        return report
