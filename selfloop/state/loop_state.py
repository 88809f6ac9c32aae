"""
Loop State
==========
Published state of the LoopRunner.

LoopState is immutable: each tick builds the next instance and the runner
swaps it in with a single assignment, so readers see either the state
before the tick or the state after it, never a mix.

Fields:
    iteration         — completed ticks
    total_passed      — ticks whose verification passed (incl. scaled)
    total_failed      — ticks that failed verification or faulted
    total_generated   — artifacts generated across all ticks
    confidence_sum    — sum of per-tick verification scores
    roi_sum           — sum of per-tick ROI
    current_scale     — scale as of the last completed tick
    learning_version  — model version as of the last completed tick
    history           — most recent records, oldest first, bounded
"""
from dataclasses import dataclass, replace
from typing import Tuple

from selfloop.core.constants import HISTORY_LIMIT
from selfloop.models.iteration_record import IterationRecord


@dataclass(frozen=True)
class LoopState:
    iteration: int = 0
    total_passed: int = 0
    total_failed: int = 0
    total_generated: int = 0
    confidence_sum: float = 0.0
    roi_sum: float = 0.0
    current_scale: float = 1.0
    learning_version: str = "1.0"
    history: Tuple[IterationRecord, ...] = ()

    def apply(
        self,
        record: IterationRecord,
        passed: int,
        failed: int,
        generated: int,
        current_scale: float,
        learning_version: str,
        history_limit: int = HISTORY_LIMIT,
    ) -> "LoopState":
        """Return the state after ``record``'s tick; evicts the oldest records first."""
        return replace(
            self,
            iteration=self.iteration + 1,
            total_passed=self.total_passed + passed,
            total_failed=self.total_failed + failed,
            total_generated=self.total_generated + generated,
            confidence_sum=self.confidence_sum + record.confidence,
            roi_sum=self.roi_sum + record.roi,
            current_scale=current_scale,
            learning_version=learning_version,
            history=(self.history + (record,))[-history_limit:],
        )

    @staticmethod
    def _ratio(value: float, denominator: int) -> float:
        return value / denominator if denominator > 0 else 0.0

    @property
    def success_rate(self) -> float:
        return self._ratio(self.total_passed, self.iteration)

    @property
    def avg_confidence(self) -> float:
        return self._ratio(self.confidence_sum, self.iteration)

    @property
    def avg_roi(self) -> float:
        return self._ratio(self.roi_sum, self.iteration)
