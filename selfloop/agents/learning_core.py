"""
Learning Core
=============
Bounded memory of weighted outcome patterns, updated once per tick.

Ingest steps:
    1. Extract feature descriptors from the tick data
    2. Derive the pattern id from outcome class + sorted features
    3. Decay every stored weight (once per ingest, before matching)
    4. Boost an existing pattern, or seed a new one
    5. Prune the weakest 10% of capacity when memory overflows
    6. Advance the model version ("major.minor")

Model version:
    major = ingests // 100 + 1
    minor = (ingests % 100) // 10
"""
import math
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from selfloop.core.constants import OUTCOME_SUCCESS, OUTCOME_FAILURE
from selfloop.models.learning_outcome import LearnedPattern, LearningOutcome
from selfloop.utils.pattern_hash import generate_pattern_id

logger = logging.getLogger(__name__)


@dataclass
class LearningConfig:
    """Tunable learning parameters."""
    memory_size: int = 500
    decay_rate: float = 0.99
    success_boost: float = 0.1
    failure_boost: float = 0.15
    success_seed: float = 0.6
    failure_seed: float = 0.4
    prune_fraction: float = 0.1


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _score_band(score: float) -> str:
    if score >= 0.9:
        return "high"
    if score >= 0.7:
        return "mid"
    return "low"


def _phase(iteration: float) -> str:
    if iteration < 10:
        return "warmup"
    if iteration < 50:
        return "ramp"
    return "cruise"


def extract_features(data: Mapping[str, Any], iteration: Optional[int] = None) -> List[str]:
    """
    Derive feature descriptors from tick data.

    Missing or mistyped fields only drop their descriptor; extraction never
    raises.
    """
    features = [
        f"keys:{len(data)}",
        f"type_sig:{'|'.join(sorted(str(key) for key in data.keys()))}",
    ]

    score = data.get("score")
    if _is_number(score):
        features.append(f"score_band:{_score_band(score)}")

    if _is_number(iteration):
        features.append(f"phase:{_phase(iteration)}")

    errors = data.get("errors")
    if isinstance(errors, (list, tuple)):
        features.append(f"errors:{len(errors)}")
        if errors:
            prefixes = ",".join(str(error).split(":")[0] for error in errors)
            features.append(f"error_types:{prefixes}")

    scale = data.get("scale")
    if _is_number(scale) and math.isfinite(scale) and scale > -1:
        features.append(f"scale_log2:{math.floor(math.log2(scale + 1))}")

    return features


class LearningCore:
    """
    Pattern memory keyed by derived pattern id.

    Two ingests with the same outcome class and feature set always collapse
    into one pattern.
    """

    def __init__(
        self,
        config: Optional[LearningConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config or LearningConfig()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._patterns: Dict[str, LearnedPattern] = {}
        self.ingest_count = 0
        self.success_count = 0
        self.failure_count = 0
        self.total_improvement_delta = 0.0
        self._model_version = "1.0"

    @property
    def model_version(self) -> str:
        return self._model_version

    async def ingest(
        self,
        outcome: str,
        data: Mapping[str, Any],
        iteration: int,
    ) -> LearningOutcome:
        """Fold one tick outcome into pattern memory."""
        if outcome not in (OUTCOME_SUCCESS, OUTCOME_FAILURE):
            raise ValueError(f"Unknown outcome class: {outcome}")

        self.ingest_count += 1
        features = extract_features(data, iteration)
        pattern_id = generate_pattern_id(outcome, features)

        self._decay_patterns()

        now = self._clock()
        pattern = self._patterns.get(pattern_id)
        if pattern is not None:
            boost = (
                self.config.success_boost if outcome == OUTCOME_SUCCESS
                else self.config.failure_boost
            )
            previous_weight = pattern.weight
            pattern.weight = round(min(previous_weight + boost, 1.0), 6)
            pattern.seen_count += 1
            pattern.last_seen = now
            improvement_delta = pattern.weight - previous_weight
        else:
            seed = (
                self.config.success_seed if outcome == OUTCOME_SUCCESS
                else self.config.failure_seed
            )
            self._patterns[pattern_id] = LearnedPattern(
                id=pattern_id,
                outcome=outcome,
                features=features,
                weight=seed,
                seen_count=1,
                last_seen=now,
            )
            improvement_delta = seed
            if len(self._patterns) > self.config.memory_size:
                self._prune_weak_patterns()

        if outcome == OUTCOME_SUCCESS:
            self.success_count += 1
        else:
            self.failure_count += 1
        self.total_improvement_delta += improvement_delta

        self._update_model_version()

        return LearningOutcome(
            learned=True,
            patterns=len(self._patterns),
            improvement_delta=round(improvement_delta, 6),
            model_version=self._model_version,
        )

    # ------------------------------------------------------------------
    # Pattern management
    # ------------------------------------------------------------------
    def _decay_patterns(self) -> None:
        for pattern in self._patterns.values():
            pattern.weight = round(pattern.weight * self.config.decay_rate, 6)

    def _prune_weak_patterns(self) -> None:
        # At least one eviction so the memory never stays above capacity
        count = max(1, int(self.config.memory_size * self.config.prune_fraction))
        weakest = sorted(self._patterns.values(), key=lambda p: p.weight)[:count]
        for pattern in weakest:
            del self._patterns[pattern.id]
        logger.debug("Pruned %d weak patterns, %d remain", len(weakest), len(self._patterns))

    def _update_model_version(self) -> None:
        major = self.ingest_count // 100 + 1
        minor = (self.ingest_count % 100) // 10
        self._model_version = f"{major}.{minor}"

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------
    def predict(self, features: Sequence[str]) -> float:
        """
        Likelihood (0.0–1.0) that an observation with ``features`` succeeds.

        Neutral 0.5 with an empty memory. Failure patterns pull the estimate
        down at half the strength success patterns push it up.
        """
        if not self._patterns:
            return 0.5

        query = set(features)
        total_weight = 0.0
        match_weight = 0.0

        for pattern in self._patterns.values():
            overlap = len(query.intersection(pattern.features))
            longest = max(len(pattern.features), len(features))
            similarity = overlap / longest if longest else 0.0
            if pattern.outcome == OUTCOME_SUCCESS:
                match_weight += pattern.weight * similarity
            else:
                match_weight -= pattern.weight * similarity * 0.5
            total_weight += pattern.weight

        base = match_weight / total_weight if total_weight > 0 else 0.5
        return round(max(0.0, min(1.0, base + 0.5)), 4)

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------
    def __len__(self) -> int:
        return len(self._patterns)

    def get_pattern(self, pattern_id: str) -> Optional[LearnedPattern]:
        pattern = self._patterns.get(pattern_id)
        return pattern.model_copy(deep=True) if pattern else None

    def top_patterns(self, n: int = 5) -> List[LearnedPattern]:
        ranked = sorted(self._patterns.values(), key=lambda p: p.weight, reverse=True)
        return [pattern.model_copy(deep=True) for pattern in ranked[:n]]

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "model_version": self._model_version,
            "patterns": len(self._patterns),
            "ingest_count": self.ingest_count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "success_rate": (
                round(self.success_count / self.ingest_count, 4) if self.ingest_count else 0.0
            ),
            "total_improvement_delta": round(self.total_improvement_delta, 4),
            "memory_usage": f"{len(self._patterns)}/{self.config.memory_size}",
        }
