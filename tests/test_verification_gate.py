"""
Verification Gate Tests
=======================
Covers:
    - Full-depth strict pass on a healthy snapshot
    - Stage 1: missing / mistyped required fields
    - Stage 2: stale timestamp, ratio ranges, negative ROI warning
    - Stage 3: unknown node, warmup confidence, scale regression, version
    - Reduced depth and non-strict pass rules
    - Input never mutated, pass-rate statistic
"""
import asyncio
import copy
import pytest

from selfloop.agents.verification_gate import VerificationGate
from selfloop.core.constants import NODE_ID, REQUIRED_SNAPSHOT_FIELDS

NOW_MS = 1_700_000_000_000


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _make_gate(stages=3, threshold=0.85, strict_mode=True):
    return VerificationGate(
        stages=stages, threshold=threshold, strict_mode=strict_mode,
        clock=lambda: NOW_MS,
    )


def _snapshot(**overrides):
    snapshot = {
        "iteration": 1,
        "scale": 1,
        "learner_version": "1.0",
        "success_rate": 1.0,
        "avg_confidence": 0.9,
        "avg_roi": 10,
        "timestamp": NOW_MS,
        "node_id": NODE_ID,
    }
    snapshot.update(overrides)
    return snapshot


def _verify(gate, snapshot):
    return asyncio.run(gate.verify(snapshot))


# ===================================================================
# Full depth
# ===================================================================
def test_healthy_snapshot_passes_all_stages():
    result = _verify(_make_gate(), _snapshot())

    assert result.stage1_structure is True
    assert result.stage2_consistency is True
    assert result.stage3_compliance is True
    assert result.score == 1.0
    assert result.passed is True
    assert result.errors == []


@pytest.mark.parametrize("field", REQUIRED_SNAPSHOT_FIELDS)
def test_missing_required_field_fails_stage1(field):
    snapshot = _snapshot()
    del snapshot[field]

    result = _verify(_make_gate(), snapshot)

    assert result.stage1_structure is False
    assert result.passed is False
    assert any(field in error for error in result.errors)


def test_wrong_types_are_stage1_errors_not_exceptions():
    snapshot = _snapshot(iteration="one", scale="big", timestamp="now", node_id=42)

    result = _verify(_make_gate(), snapshot)

    assert result.stage1_structure is False
    assert len([e for e in result.errors if e.startswith("STAGE1")]) == 4


def test_boolean_is_not_a_number():
    result = _verify(_make_gate(), _snapshot(iteration=True))
    assert result.stage1_structure is False


def test_node_without_marker_fails_stage1():
    result = _verify(_make_gate(), _snapshot(node_id="SLVSS-node"))
    assert result.stage1_structure is False
    assert any("node_id" in e for e in result.errors)


def test_stale_timestamp_fails_stage2():
    result = _verify(_make_gate(), _snapshot(timestamp=NOW_MS - 61_000))

    assert result.stage1_structure is True
    assert result.stage2_consistency is False
    assert result.passed is False
    assert any("stale" in e for e in result.errors)


def test_timestamp_within_window_is_fresh():
    result = _verify(_make_gate(), _snapshot(timestamp=NOW_MS - 60_000))
    assert result.stage2_consistency is True


@pytest.mark.parametrize("field", ["success_rate", "avg_confidence"])
def test_ratio_out_of_range_fails_stage2(field):
    result = _verify(_make_gate(), _snapshot(**{field: 1.5}))

    assert result.stage2_consistency is False
    assert any(field in e for e in result.errors)


def test_negative_roi_is_only_a_warning():
    result = _verify(_make_gate(), _snapshot(avg_roi=-5))

    assert result.stage2_consistency is True
    assert result.passed is True
    assert any("avg_roi" in e for e in result.errors)


def test_unknown_node_fails_stage3():
    result = _verify(_make_gate(), _snapshot(node_id="ROGUE-ARK95X"))

    assert result.stage1_structure is True
    assert result.stage3_compliance is False
    assert result.passed is False


def test_known_subsystem_prefix_is_accepted():
    result = _verify(_make_gate(), _snapshot(node_id="PAXRuntime-ARK95X-edge"))
    assert result.stage3_compliance is True


def test_low_confidence_only_enforced_after_warmup():
    during_warmup = _verify(_make_gate(), _snapshot(iteration=5, avg_confidence=0.5))
    after_warmup = _verify(_make_gate(), _snapshot(iteration=6, avg_confidence=0.5))

    assert during_warmup.stage3_compliance is True
    assert after_warmup.stage3_compliance is False
    assert any("Confidence too low" in e for e in after_warmup.errors)


def test_scale_regression_after_iteration_ten_fails_stage3():
    result = _verify(_make_gate(), _snapshot(iteration=11, scale=0))

    assert result.stage3_compliance is False
    assert result.passed is False
    assert any("Scale regression" in e for e in result.errors)


def test_invalid_learner_version_fails_stage3():
    result = _verify(_make_gate(), _snapshot(learner_version="latest"))
    assert result.stage3_compliance is False
    assert any("learner version" in e for e in result.errors)


def test_errors_accumulate_in_stage_order():
    snapshot = _snapshot(scale=0.5, timestamp=NOW_MS - 120_000, learner_version="x")

    result = _verify(_make_gate(), snapshot)

    prefixes = [e.split(":")[0] for e in result.errors]
    assert prefixes == sorted(prefixes)
    assert {"STAGE1", "STAGE2", "STAGE3"} <= set(prefixes)


# ===================================================================
# Depth and strictness
# ===================================================================
def test_depth_one_skips_later_stages():
    result = _verify(_make_gate(stages=1), _snapshot(timestamp=NOW_MS - 120_000))

    assert result.stage1_structure is True
    assert result.stage2_consistency is False
    assert result.stage3_compliance is False
    assert result.score == 0.35
    assert result.passed is True
    assert not any(e.startswith("STAGE2") for e in result.errors)


def test_depth_two_scores_available_weight():
    result = _verify(_make_gate(stages=2), _snapshot(node_id="ROGUE-ARK95X"))

    assert result.score == 0.65
    assert result.passed is True


def test_depth_two_fails_when_stage2_fails():
    result = _verify(_make_gate(stages=2), _snapshot(success_rate=-0.1))
    assert result.passed is False


def test_non_strict_mode_accepts_score_despite_stage_failure():
    snapshot = _snapshot(node_id="ROGUE-ARK95X")

    strict = _verify(_make_gate(threshold=0.6, strict_mode=True), snapshot)
    lenient = _verify(_make_gate(threshold=0.6, strict_mode=False), snapshot)

    assert strict.score == lenient.score == 0.65
    assert strict.passed is False
    assert lenient.passed is True


def test_invalid_stage_depth_rejected():
    with pytest.raises(ValueError):
        VerificationGate(stages=4)


# ===================================================================
# Side effects and stats
# ===================================================================
def test_snapshot_is_not_mutated():
    snapshot = _snapshot(scale=0, timestamp=NOW_MS - 120_000)
    before = copy.deepcopy(snapshot)

    _verify(_make_gate(), snapshot)

    assert snapshot == before


def test_pass_rate_tracks_attempts():
    gate = _make_gate()
    _verify(gate, _snapshot())
    _verify(gate, _snapshot(node_id="nope"))

    assert gate.verify_count == 2
    assert gate.pass_count == 1
    assert gate.pass_rate == 0.5
    stats = gate.stats
    stats["pass_count"] = 99
    assert gate.pass_count == 1
