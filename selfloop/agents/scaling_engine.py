"""
Scaling Engine
==============
Owns the loop's scale multiplier and adjusts it from recent outcomes.

Policy (first matching rule wins):
    1. Recompute pass/fail streaks from the last 10 history records,
       newest to oldest
    2. Scale up:  pass streak >= min_pass_streak, score >= 0.85, below max
    3. Decay:     decay enabled, fail streak >= 3, scale above 1
    4. Boost:     iteration a positive multiple of 10 and score >= 0.95
    5. No-op

Bounds:
    - scale stays within [1, max_scale]
    - stored scale is rounded to 4 decimals; all comparisons use it
    - event log keeps the 50 most recent scaling events
"""
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from selfloop.core.constants import (
    STATUS_PASSED,
    STATUS_SCALED,
    STATUS_FAILED,
    STREAK_WINDOW,
    SCALE_EVENT_LIMIT,
    REASON_NOOP,
    REASON_SCALE_UP,
    REASON_DECAY,
    REASON_PERIODIC_BOOST,
)
from selfloop.models.iteration_record import IterationRecord
from selfloop.models.scaling_outcome import ScalingOutcome, ScalingEvent

logger = logging.getLogger(__name__)

_PASS_STATUSES = {STATUS_PASSED, STATUS_SCALED}
_FAIL_STATUSES = {STATUS_FAILED}


@dataclass
class ScalePolicy:
    """Tunable scaling policy."""
    growth_factor: float = 1.25
    max_scale: float = 1024
    min_pass_streak: int = 3
    scale_up_min_score: float = 0.85
    decay_on_failure: bool = True
    decay_factor: float = 0.9
    fail_streak_threshold: int = 3
    boost_factor: float = 1.5
    boost_every: int = 10
    boost_min_score: float = 0.95


def count_streaks(history: Sequence[IterationRecord], window: int = STREAK_WINDOW) -> Tuple[int, int]:
    """
    Return (pass_streak, fail_streak) over the most recent ``window`` records.

    Scans newest to oldest. A run stops at the first record of the other
    kind, and any unrecognised status (e.g. running) ends the scan.
    """
    pass_streak = 0
    fail_streak = 0
    for record in reversed(list(history)[-window:]):
        if record.status in _PASS_STATUSES:
            if fail_streak:
                break
            pass_streak += 1
        elif record.status in _FAIL_STATUSES:
            if pass_streak:
                break
            fail_streak += 1
        else:
            break
    return pass_streak, fail_streak


class ScalingEngine:
    """
    Single source of truth for the current scale.

    Only ``evaluate`` and ``reset`` mutate state; every accessor returns
    copies.
    """

    def __init__(self, policy: Optional[ScalePolicy] = None) -> None:
        self.policy = policy or ScalePolicy()
        self._current_scale: float = 1.0
        self.pass_streak = 0
        self.fail_streak = 0
        self._events: deque = deque(maxlen=SCALE_EVENT_LIMIT)

    @property
    def current_scale(self) -> float:
        return self._current_scale

    async def evaluate(
        self,
        score: float,
        iteration: int,
        history: Sequence[IterationRecord],
    ) -> ScalingOutcome:
        """Apply the scaling policy for one passing tick."""
        policy = self.policy
        previous = self._current_scale
        reason = REASON_NOOP
        detail = "No scaling event"

        self.pass_streak, self.fail_streak = count_streaks(history)

        if (
            self.pass_streak >= policy.min_pass_streak
            and score >= policy.scale_up_min_score
            and self._current_scale < policy.max_scale
        ):
            detail = f"Pass streak {self.pass_streak} + score {score:.3f}, scale up"
            self._current_scale = round(
                min(self._current_scale * policy.growth_factor, policy.max_scale), 4
            )
            reason = REASON_SCALE_UP
            self.pass_streak = 0

        elif (
            policy.decay_on_failure
            and self.fail_streak >= policy.fail_streak_threshold
            and self._current_scale > 1
        ):
            detail = f"Fail streak {self.fail_streak}, scale decay"
            self._current_scale = round(max(self._current_scale * policy.decay_factor, 1.0), 4)
            reason = REASON_DECAY
            self.fail_streak = 0

        elif (
            iteration > 0
            and iteration % policy.boost_every == 0
            and score >= policy.boost_min_score
        ):
            detail = f"Periodic boost at iteration {iteration} (score={score:.3f})"
            self._current_scale = round(
                min(self._current_scale * policy.boost_factor, policy.max_scale), 4
            )
            reason = REASON_PERIODIC_BOOST

        scaled = reason != REASON_NOOP
        if scaled:
            self._events.append(ScalingEvent(
                iteration=iteration,
                scale=self._current_scale,
                reason=reason,
                detail=detail,
            ))
            logger.info("Scale %sx → %sx (%s)", previous, self._current_scale, detail)

        return ScalingOutcome(
            previous_scale=previous,
            new_scale=self._current_scale,
            scaled=scaled,
            reason=reason,
            detail=detail,
        )

    def events(self) -> List[ScalingEvent]:
        return [event.model_copy() for event in self._events]

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "current_scale": self._current_scale,
            "pass_streak": self.pass_streak,
            "fail_streak": self.fail_streak,
            "scale_events": len(self._events),
            "max_scale": self.policy.max_scale,
            "growth_factor": self.policy.growth_factor,
            "recent_events": [event.model_dump() for event in list(self._events)[-5:]],
        }

    def reset(self) -> None:
        self._current_scale = 1.0
        self.pass_streak = 0
        self.fail_streak = 0
        self._events.clear()
