"""
Learning Core Tests
===================
Covers:
    - Feature extraction over complete, partial and mistyped data
    - Seed weights, boost, cap and once-per-ingest decay
    - Pattern identity (same outcome + features collapse into one)
    - Pruning keeps memory within capacity and evicts the weakest
    - Model version progression
    - Prediction bounds
"""
import asyncio
from datetime import datetime, timezone

import pytest

from selfloop.agents.learning_core import LearningCore, LearningConfig, extract_features
from selfloop.core.constants import OUTCOME_SUCCESS, OUTCOME_FAILURE
from selfloop.utils.pattern_hash import generate_pattern_id

FIXED_NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)
TICK_DATA = {"score": 0.95, "errors": [], "scale": 1}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _make_core(**config):
    return LearningCore(LearningConfig(**config), clock=lambda: FIXED_NOW)


def _ingest_many(core, items):
    """items: iterable of (outcome, data, iteration)."""
    async def run():
        results = []
        for outcome, data, iteration in items:
            results.append(await core.ingest(outcome, data, iteration))
        return results
    return asyncio.run(run())


def _pattern_id(outcome, data, iteration):
    return generate_pattern_id(outcome, extract_features(data, iteration))


# ===================================================================
# Feature extraction
# ===================================================================
def test_extract_features_from_full_tick_data():
    data = {"score": 0.95, "errors": ["STAGE1: bad", "STAGE3: worse"], "scale": 3}

    features = extract_features(data, 12)

    assert features == [
        "keys:3",
        "type_sig:errors|scale|score",
        "score_band:high",
        "phase:ramp",
        "errors:2",
        "error_types:STAGE1,STAGE3",
        "scale_log2:2",
    ]


def test_extract_features_with_missing_fields():
    assert extract_features({}) == ["keys:0", "type_sig:"]


def test_extract_features_with_mistyped_fields_does_not_raise():
    features = extract_features({"score": "high", "errors": "oops", "scale": "big"}, 60)

    assert "phase:cruise" in features
    assert not any(f.startswith(("score_band", "errors", "scale_log2")) for f in features)


@pytest.mark.parametrize("scale", [float("inf"), float("-inf"), float("nan")])
def test_extract_features_skips_non_finite_scale(scale):
    features = extract_features({"scale": scale}, 1)

    assert not any(f.startswith("scale_log2") for f in features)


def test_ingest_accepts_non_finite_scale():
    core = _make_core()

    [outcome] = _ingest_many(core, [(OUTCOME_SUCCESS, {"scale": float("inf")}, 1)])

    assert outcome.learned is True
    assert len(core) == 1


@pytest.mark.parametrize("score,band", [(0.95, "high"), (0.9, "high"), (0.75, "mid"), (0.2, "low")])
def test_score_bands(score, band):
    assert f"score_band:{band}" in extract_features({"score": score})


def test_pattern_id_ignores_feature_order():
    a = generate_pattern_id(OUTCOME_SUCCESS, ["b", "a", "c"])
    b = generate_pattern_id(OUTCOME_SUCCESS, ["c", "b", "a"])

    assert a == b
    assert a.startswith("success_")
    assert a != generate_pattern_id(OUTCOME_FAILURE, ["a", "b", "c"])


# ===================================================================
# Ingest
# ===================================================================
def test_first_success_seeds_pattern():
    core = _make_core()

    [outcome] = _ingest_many(core, [(OUTCOME_SUCCESS, TICK_DATA, 1)])

    pattern = core.get_pattern(_pattern_id(OUTCOME_SUCCESS, TICK_DATA, 1))
    assert pattern.weight == 0.6
    assert pattern.seen_count == 1
    assert pattern.last_seen == FIXED_NOW
    assert outcome.learned is True
    assert outcome.patterns == 1
    assert outcome.improvement_delta == 0.6


def test_same_outcome_and_features_collapse_into_one_pattern():
    core = _make_core()

    results = _ingest_many(core, [(OUTCOME_SUCCESS, TICK_DATA, 3)] * 2)

    assert len(core) == 1
    pattern = core.get_pattern(_pattern_id(OUTCOME_SUCCESS, TICK_DATA, 3))
    assert pattern.seen_count == 2
    # decayed to 0.594, then boosted by 0.1
    assert pattern.weight == pytest.approx(0.694)
    assert results[1].improvement_delta == pytest.approx(0.1)


def test_failure_seed_and_boost():
    core = _make_core()

    _ingest_many(core, [(OUTCOME_FAILURE, TICK_DATA, 3)] * 2)

    pattern = core.get_pattern(_pattern_id(OUTCOME_FAILURE, TICK_DATA, 3))
    assert pattern.weight == pytest.approx(0.546)


def test_weight_capped_at_one():
    core = _make_core()

    _ingest_many(core, [(OUTCOME_SUCCESS, TICK_DATA, 3)] * 20)

    pattern = core.top_patterns(1)[0]
    assert pattern.weight == 1.0
    assert pattern.seen_count == 20


def test_every_ingest_decays_existing_patterns():
    core = _make_core()
    other = {"score": 0.5}

    _ingest_many(core, [(OUTCOME_SUCCESS, TICK_DATA, 1), (OUTCOME_FAILURE, other, 1)])

    first = core.get_pattern(_pattern_id(OUTCOME_SUCCESS, TICK_DATA, 1))
    assert first.weight == pytest.approx(0.594)


def test_unknown_outcome_rejected():
    core = _make_core()
    with pytest.raises(ValueError):
        _ingest_many(core, [("maybe", TICK_DATA, 1)])
    assert core.ingest_count == 0


# ===================================================================
# Pruning
# ===================================================================
def test_memory_stays_within_capacity():
    core = _make_core(memory_size=20)

    async def run():
        for i in range(60):
            await core.ingest(OUTCOME_SUCCESS, {f"k{i}": i}, 1)
            assert len(core) <= 20

    asyncio.run(run())


def test_prune_evicts_weakest_pattern():
    core = _make_core(memory_size=10)
    items = [(OUTCOME_SUCCESS, {f"k{i}": i}, 1) for i in range(11)]

    _ingest_many(core, items)

    oldest = _pattern_id(OUTCOME_SUCCESS, {"k0": 0}, 1)
    newest = _pattern_id(OUTCOME_SUCCESS, {"k10": 10}, 1)
    assert core.get_pattern(oldest) is None
    assert core.get_pattern(newest) is not None
    assert len(core) == 10


# ===================================================================
# Version / prediction / accessors
# ===================================================================
@pytest.mark.parametrize("ingests,version", [
    (9, "1.0"), (10, "1.1"), (99, "1.9"), (100, "2.0"), (110, "2.1"),
])
def test_model_version_progression(ingests, version):
    core = _make_core()

    _ingest_many(core, [(OUTCOME_SUCCESS, TICK_DATA, 1)] * ingests)

    assert core.model_version == version


def test_predict_with_empty_memory_is_neutral():
    assert _make_core().predict(["keys:1"]) == 0.5


def test_predict_stays_in_unit_interval():
    features = extract_features(TICK_DATA, 1)

    success_core = _make_core()
    _ingest_many(success_core, [(OUTCOME_SUCCESS, TICK_DATA, 1)])
    failure_core = _make_core()
    _ingest_many(failure_core, [(OUTCOME_FAILURE, TICK_DATA, 1)])

    assert success_core.predict(features) == 1.0
    assert failure_core.predict(features) == 0.0
    assert success_core.predict(["unrelated"]) == 0.5


def test_top_patterns_are_ranked_copies():
    core = _make_core()
    _ingest_many(core, [
        (OUTCOME_FAILURE, {"score": 0.1}, 1),
        (OUTCOME_SUCCESS, TICK_DATA, 1),
    ])

    top = core.top_patterns(2)
    assert [p.outcome for p in top] == [OUTCOME_SUCCESS, OUTCOME_FAILURE]

    top[0].weight = 0.0
    top[0].features.append("tampered")
    assert core.top_patterns(1)[0].weight == 0.6
    assert "tampered" not in core.top_patterns(1)[0].features


def test_stats_counts_outcomes():
    core = _make_core(memory_size=50)
    _ingest_many(core, [
        (OUTCOME_SUCCESS, TICK_DATA, 1),
        (OUTCOME_SUCCESS, TICK_DATA, 2),
        (OUTCOME_FAILURE, TICK_DATA, 3),
    ])

    stats = core.stats
    assert stats["ingest_count"] == 3
    assert stats["success_count"] == 2
    assert stats["failure_count"] == 1
    assert stats["memory_usage"] == f"{len(core)}/50"
