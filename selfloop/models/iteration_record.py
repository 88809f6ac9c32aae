"""
Iteration Record Model
======================
Pydantic model representing one tick of the loop:
Verify → Scale → Generate → Learn.

Fields:
    id            — loop counter (1-based)
    started_at    — tick start (UTC)
    completed_at  — tick end, None while running
    duration_ms   — wall clock duration of the tick
    verification  — VerificationOutcome from the gate
    scaling       — ScalingOutcome (default no-op if scaling did not run)
    generation    — GenerationOutcome (empty if generation did not run)
    learning      — LearningOutcome (empty if learning did not run)
    status        — "running" | "passed" | "failed" | "scaled"
    confidence    — verification score of this tick (0.0–1.0)
    roi           — derived ROI, 0 unless artifacts were generated

Status rules:
    running → passed | failed | scaled, exactly once, never backward.
    A finalized record accepts no further transitions.

Used by:
    - LoopRunner to build and append the record each tick
    - ScalingEngine for streak analysis over recent history
    - ArtifactGenerator for the periodic summary
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, PrivateAttr

from selfloop.core.constants import STATUS_RUNNING, TERMINAL_STATUSES
from selfloop.models.verification_outcome import VerificationOutcome
from selfloop.models.scaling_outcome import ScalingOutcome
from selfloop.models.generation_outcome import GenerationOutcome
from selfloop.models.learning_outcome import LearningOutcome


class IterationRecord(BaseModel):
    id: int
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: int = 0
    verification: VerificationOutcome = Field(default_factory=VerificationOutcome)
    scaling: ScalingOutcome = Field(default_factory=ScalingOutcome)
    generation: GenerationOutcome = Field(default_factory=GenerationOutcome)
    learning: LearningOutcome = Field(default_factory=LearningOutcome)
    status: str = STATUS_RUNNING
    confidence: float = 0.0
    roi: float = 0.0

    _finalized: bool = PrivateAttr(default=False)

    @property
    def finalized(self) -> bool:
        return self._finalized

    def transition(self, status: str) -> None:
        """Move a running record to its terminal status."""
        if self._finalized:
            raise ValueError(f"Iteration {self.id} is finalized")
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"Unknown terminal status: {status}")
        if self.status != STATUS_RUNNING:
            raise ValueError(
                f"Iteration {self.id} already {self.status}, cannot become {status}"
            )
        self.status = status

    def finalize(self, completed_at: datetime, duration_ms: int) -> None:
        if self.status == STATUS_RUNNING:
            raise ValueError(f"Iteration {self.id} has no terminal status")
        self.completed_at = completed_at
        self.duration_ms = duration_ms
        self._finalized = True
