"""
Verification Gate
=================
Scores a loop snapshot through up to three ordered stages.

Stages (weights sum to 1.0):
    1. Structure   (0.35) — required keys present and of the expected kind
    2. Consistency (0.30) — ratios in [0, 1], snapshot no older than 60s
    3. Compliance  (0.35) — known node, confidence after warmup, no scale
                            regression, versioned learner

Pass rules:
    - depth 1: stage 1 ok and score >= threshold × 0.35
    - depth 2: stages 1-2 ok and score >= threshold × 0.65
    - depth 3 strict: all stages ok and score >= threshold
    - depth 3 non-strict: score >= threshold

Contract violations in the snapshot (wrong types, missing keys) are
reported as stage errors, never raised. Errors accumulate across stages in
evaluation order. The snapshot is only read.
"""
import re
import time
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from selfloop.core.constants import (
    STAGE1_WEIGHT,
    STAGE2_WEIGHT,
    STAGE3_WEIGHT,
    STALE_AFTER_MS,
    WARMUP_ITERATIONS,
    MIN_AVG_CONFIDENCE,
    SCALE_GUARD_ITERATIONS,
    NODE_MARKER,
    KNOWN_NODES,
    REQUIRED_SNAPSHOT_FIELDS,
)
from selfloop.models.verification_outcome import VerificationOutcome

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"\d+\.\d+")

# Allow-list entries match on the text before their first separator
_NODE_PREFIXES = tuple(node.split("-")[0] for node in KNOWN_NODES)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _now_ms() -> int:
    return int(time.time() * 1000)


class VerificationGate:
    """
    Staged gate in front of the scaling / generation path.

    Keeps running totals of attempts and passes for the pass-rate statistic.
    """

    def __init__(
        self,
        stages: int = 3,
        threshold: float = 0.85,
        strict_mode: bool = True,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        if stages not in (1, 2, 3):
            raise ValueError(f"stages must be 1, 2 or 3, got {stages}")
        self.stages = stages
        self.threshold = threshold
        self.strict_mode = strict_mode
        self._clock = clock or _now_ms
        self.verify_count = 0
        self.pass_count = 0

    async def verify(self, snapshot: Mapping[str, Any]) -> VerificationOutcome:
        """Run the configured stages over ``snapshot``."""
        self.verify_count += 1
        errors: List[str] = []

        s1 = self._stage1_structure(snapshot, errors)
        score = STAGE1_WEIGHT if s1 else 0.0

        if self.stages == 1:
            score = round(score, 4)
            passed = s1 and score >= self.threshold * STAGE1_WEIGHT
            return self._finish(s1, False, False, score, passed, errors)

        s2 = self._stage2_consistency(snapshot, errors)
        score += STAGE2_WEIGHT if s2 else 0.0

        if self.stages == 2:
            score = round(score, 4)
            passed = s1 and s2 and score >= self.threshold * (STAGE1_WEIGHT + STAGE2_WEIGHT)
            return self._finish(s1, s2, False, score, passed, errors)

        s3 = self._stage3_compliance(snapshot, errors)
        score = round(score + (STAGE3_WEIGHT if s3 else 0.0), 4)

        if self.strict_mode:
            passed = s1 and s2 and s3 and score >= self.threshold
        else:
            passed = score >= self.threshold
        return self._finish(s1, s2, s3, score, passed, errors)

    def _finish(
        self,
        s1: bool,
        s2: bool,
        s3: bool,
        score: float,
        passed: bool,
        errors: List[str],
    ) -> VerificationOutcome:
        if passed:
            self.pass_count += 1
        else:
            logger.debug("Verification failed (score=%.4f): %s", score, "; ".join(errors))
        return VerificationOutcome(
            stage1_structure=s1,
            stage2_consistency=s2,
            stage3_compliance=s3,
            score=score,
            passed=passed,
            errors=errors,
        )

    # ------------------------------------------------------------------
    # Stage 1: structure
    # ------------------------------------------------------------------
    def _stage1_structure(self, snapshot: Mapping[str, Any], errors: List[str]) -> bool:
        ok = True

        for field in REQUIRED_SNAPSHOT_FIELDS:
            if snapshot.get(field) is None:
                errors.append(f"STAGE1: Missing required field: {field}")
                ok = False

        iteration = snapshot.get("iteration")
        if not _is_number(iteration) or iteration < 0:
            errors.append("STAGE1: iteration must be a non-negative number")
            ok = False

        scale = snapshot.get("scale")
        if not _is_number(scale) or scale < 1:
            errors.append("STAGE1: scale must be a number >= 1")
            ok = False

        node_id = snapshot.get("node_id")
        if not isinstance(node_id, str) or NODE_MARKER not in node_id:
            errors.append(f"STAGE1: node_id must contain '{NODE_MARKER}' identifier")
            ok = False

        timestamp = snapshot.get("timestamp")
        if not isinstance(timestamp, int) or isinstance(timestamp, bool) or timestamp <= 0:
            errors.append("STAGE1: timestamp must be a positive epoch ms integer")
            ok = False

        return ok

    # ------------------------------------------------------------------
    # Stage 2: range and consistency
    # ------------------------------------------------------------------
    def _stage2_consistency(self, snapshot: Mapping[str, Any], errors: List[str]) -> bool:
        ok = True

        for field in ("success_rate", "avg_confidence"):
            value = snapshot.get(field)
            if value is None:
                continue
            if not _is_number(value) or value < 0 or value > 1:
                errors.append(f"STAGE2: {field} out of range: {value}")
                ok = False

        # Warning only
        avg_roi = snapshot.get("avg_roi")
        if _is_number(avg_roi) and avg_roi < 0:
            errors.append(f"STAGE2: avg_roi is negative ({avg_roi}), underperforming")

        timestamp = snapshot.get("timestamp")
        if _is_number(timestamp):
            age_ms = self._clock() - timestamp
            if age_ms > STALE_AFTER_MS:
                errors.append(f"STAGE2: Snapshot timestamp is stale ({age_ms / 1000:.1f}s old)")
                ok = False

        iteration = snapshot.get("iteration")
        if _is_number(iteration) and iteration < 0:
            errors.append("STAGE2: iteration cannot be negative")
            ok = False

        return ok

    # ------------------------------------------------------------------
    # Stage 3: compliance
    # ------------------------------------------------------------------
    def _stage3_compliance(self, snapshot: Mapping[str, Any], errors: List[str]) -> bool:
        ok = True

        node_id = str(snapshot.get("node_id"))
        if not any(prefix in node_id for prefix in _NODE_PREFIXES):
            errors.append(f"STAGE3: Unknown node detected: {node_id}")
            ok = False

        iteration = snapshot.get("iteration")
        iteration = iteration if _is_number(iteration) else 0

        avg_confidence = snapshot.get("avg_confidence")
        if iteration > WARMUP_ITERATIONS and (
            not _is_number(avg_confidence) or avg_confidence < MIN_AVG_CONFIDENCE
        ):
            errors.append(f"STAGE3: Confidence too low after warmup: {avg_confidence}")
            ok = False

        scale = snapshot.get("scale")
        if iteration > SCALE_GUARD_ITERATIONS and (not _is_number(scale) or scale < 1):
            errors.append(f"STAGE3: Scale regression detected: {scale}")
            ok = False

        version = snapshot.get("learner_version")
        if not version or not _VERSION_RE.search(str(version)):
            errors.append(f"STAGE3: Invalid learner version: {version}")
            ok = False

        return ok

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------
    @property
    def pass_rate(self) -> float:
        return self.pass_count / self.verify_count if self.verify_count > 0 else 0.0

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "verify_count": self.verify_count,
            "pass_count": self.pass_count,
            "pass_rate": round(self.pass_rate, 4),
            "stages": self.stages,
            "threshold": self.threshold,
            "strict_mode": self.strict_mode,
        }
