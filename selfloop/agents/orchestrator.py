"""
Loop Orchestrator
=================
Drives the perpetual Verify → Scale → Generate → Learn loop.

States:
    Stopped → Running (start) → Stopped (stop, or max_iterations reached)

Tick sequence:
    1. Guard: not running or max_iterations reached → stop
    2. Build the snapshot of current aggregates, scale, model version, time
    3. Verification gate
    4. Failed → record failed; ingest as failure if learn_from_failures
    5. Passed → scale (auto_scale), generate + ROI (auto_generate),
       ingest as success; record scaled if a scaling event happened
    6. Finalize the record, publish it with the new aggregates, schedule
       the next tick after interval_ms

Guarantees:
    - Ticks run strictly one after another, also across a stop()/start()
      that lands mid-tick; the next delay starts only after the previous
      tick finished.
    - Unexpected faults inside a tick, including its own bookkeeping (clock,
      record construction), are logged, emitted as an ``error`` event and
      recorded as a failed iteration. They never stop the loop.
    - The new record and the aggregates are published in one assignment;
      snapshot() during a tick reflects the state before that tick.
    - stop() prevents any further tick but never interrupts the running one.
    - Per tick events: tick_start → (error →) tick_failed | tick_passed
      → tick_complete.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from selfloop.core.constants import (
    STATUS_RUNNING,
    STATUS_PASSED,
    STATUS_FAILED,
    STATUS_SCALED,
    OUTCOME_SUCCESS,
    OUTCOME_FAILURE,
    EVENT_STARTED,
    EVENT_STOPPED,
    EVENT_TICK_START,
    EVENT_TICK_FAILED,
    EVENT_TICK_PASSED,
    EVENT_TICK_COMPLETE,
    EVENT_ERROR,
    NODE_ID,
    SNAPSHOT_HISTORY,
)
from selfloop.models.loop_config import LoopConfig
from selfloop.models.iteration_record import IterationRecord
from selfloop.models.scaling_outcome import ScalingOutcome
from selfloop.models.runner_snapshot import RunnerSnapshot
from selfloop.state.loop_state import LoopState
from selfloop.agents.verification_gate import VerificationGate
from selfloop.agents.scaling_engine import ScalingEngine
from selfloop.agents.artifact_generator import ArtifactGenerator
from selfloop.agents.learning_core import LearningCore
from selfloop.services.event_bus import LoopEventBus
from selfloop.utils.roi import compute_roi

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LoopRunner:
    """
    Owns one loop and its four engines.

    Constructed explicitly by whatever composes the service; engines may be
    injected (tests, custom policies) or are built from ``config``.
    """

    def __init__(
        self,
        config: LoopConfig,
        gate: Optional[VerificationGate] = None,
        scaling: Optional[ScalingEngine] = None,
        generator: Optional[ArtifactGenerator] = None,
        learner: Optional[LearningCore] = None,
        events: Optional[LoopEventBus] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config
        self._clock = clock or _utcnow
        if gate is None:
            gate = VerificationGate(
                stages=config.verification_stages,
                threshold=config.confidence_threshold,
                strict_mode=config.strict_mode,
                clock=lambda: int(self._clock().timestamp() * 1000),
            )
        # LearningCore and LoopEventBus define __len__; compare against None
        self.gate = gate
        self.scaling = scaling if scaling is not None else ScalingEngine()
        self.generator = generator if generator is not None else ArtifactGenerator()
        self.learner = learner if learner is not None else LearningCore()
        self.events = events if events is not None else LoopEventBus(clock=self._clock)

        self._state = LoopState(
            current_scale=self.scaling.current_scale,
            learning_version=self.learner.model_version,
        )
        self._running = False
        self._start_time = self._clock()
        self._wake: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        # Held for the whole tick: at most one tick runs at a time
        self._tick_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the loop; the first tick runs before this returns."""
        if self._running:
            logger.info("Loop already running.")
            return

        # A previous loop task finishes its in-flight tick before we go on
        if self._task is not None and not self._task.done():
            await self._task

        self._running = True
        self._start_time = self._clock()
        wake = self._wake = asyncio.Event()
        logger.info(
            "Loop STARTED (max_iterations=%d, interval=%dms, stages=%d)",
            self.config.max_iterations,
            self.config.interval_ms,
            self.config.verification_stages,
        )
        self.events.emit(EVENT_STARTED, self._state.iteration, {"snapshot": self.snapshot()})

        await self._tick()

        # A stop() during the first tick ends this run, even if another
        # start() has begun a new one since
        if self._running and not wake.is_set():
            self._task = asyncio.create_task(self._run_loop(wake))

    def stop(self) -> None:
        """Stop scheduling ticks. A tick in progress runs to completion."""
        if not self._running:
            return
        self._running = False
        if self._wake is not None:
            self._wake.set()
        logger.info("Loop STOPPED after %d iteration(s)", self._state.iteration)
        self.events.emit(EVENT_STOPPED, self._state.iteration, {"snapshot": self.snapshot()})

    async def join(self) -> None:
        """Wait until the background loop task has exited."""
        if self._task is not None:
            await self._task

    async def _run_loop(self, wake: asyncio.Event) -> None:
        interval = self.config.interval_ms / 1000
        while self._running and not wake.is_set():
            try:
                await asyncio.wait_for(wake.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            if wake.is_set() or not self._running:
                break
            await self._tick()

    def _max_reached(self) -> bool:
        return 0 < self.config.max_iterations <= self._state.iteration

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------
    async def _tick(self) -> None:
        async with self._tick_lock:
            if not self._running:
                return
            if self._max_reached():
                logger.info("Reached max iterations (%d). Stopping.", self.config.max_iterations)
                self.stop()
                return

            state = self._state
            try:
                await self._run_tick(state)
            except Exception as exc:
                if self._state is state:
                    self._record_fault(state, exc)
                else:
                    logger.error("Iteration %d failed after publishing: %s",
                                 self._state.iteration, exc, exc_info=True)

            if self._max_reached():
                logger.info("Reached max iterations (%d). Stopping.", self.config.max_iterations)
                self.stop()

    async def _run_tick(self, state: LoopState) -> None:
        iteration = state.iteration + 1
        logger.info("--- Starting Iteration %d ---", iteration)
        self.events.emit(EVENT_TICK_START, iteration)

        tick_start = self._clock()
        scale_before = self.scaling.current_scale
        record = IterationRecord(
            id=iteration,
            started_at=tick_start,
            scaling=ScalingOutcome(previous_scale=scale_before, new_scale=scale_before),
        )

        passed = 0
        failed = 0
        generated = 0

        try:
            snapshot = self._build_snapshot(iteration, state, tick_start)

            # --- (a) Verify ---
            verification = await self.gate.verify(snapshot)
            record.verification = verification
            record.confidence = verification.score

            if not verification.passed:
                failed = 1
                logger.warning(
                    "Iteration %d: verification FAILED (score %.4f): %s",
                    iteration, verification.score, "; ".join(verification.errors),
                )
                # --- (b) Learn from failure ---
                if self.config.learn_from_failures:
                    record.learning = await self.learner.ingest(
                        OUTCOME_FAILURE, verification.model_dump(), iteration
                    )
                    logger.debug("Learning core ingested failure → v%s",
                                 record.learning.model_version)
                record.transition(STATUS_FAILED)
            else:
                passed = 1
                logger.info("Iteration %d: verification PASSED (score %.4f)",
                            iteration, verification.score)

                # --- (c) Scale ---
                if self.config.auto_scale:
                    record.scaling = await self.scaling.evaluate(
                        verification.score, iteration, state.history
                    )

                # --- (d) Generate ---
                if self.config.auto_generate:
                    generation = await self.generator.generate(
                        iteration,
                        self.scaling.current_scale,
                        verification.score,
                        state.history,
                    )
                    record.generation = generation
                    record.roi = compute_roi(verification.score, self.scaling.current_scale)
                    generated = len(generation.artifacts)
                    logger.info("Iteration %d: generated %d artifact(s)", iteration, generated)

                # --- (e) Learn from success ---
                record.learning = await self.learner.ingest(
                    OUTCOME_SUCCESS,
                    {
                        "score": verification.score,
                        "errors": list(verification.errors),
                        "scale": self.scaling.current_scale,
                    },
                    iteration,
                )
                record.transition(STATUS_SCALED if record.scaling.scaled else STATUS_PASSED)

        except Exception as exc:
            logger.error("Iteration %d aborted by unexpected error: %s", iteration, exc, exc_info=True)
            if record.status == STATUS_RUNNING:
                record.transition(STATUS_FAILED)
            passed, failed, generated = 0, 1, 0
            record.roi = 0.0
            self.events.emit(EVENT_ERROR, iteration, {"error": exc, "message": str(exc)})

        # --- (f) Finalize and publish ---
        completed = self._clock()
        record.finalize(completed, int((completed - tick_start).total_seconds() * 1000))
        self._state = state.apply(
            record,
            passed=passed,
            failed=failed,
            generated=generated,
            current_scale=self.scaling.current_scale,
            learning_version=self.learner.model_version,
        )

        self._emit_outcome(record)

    def _record_fault(self, state: LoopState, exc: Exception) -> None:
        """Publish a failed record for a tick whose bookkeeping itself faulted."""
        iteration = state.iteration + 1
        logger.error("Iteration %d aborted outside the stage pipeline: %s",
                     iteration, exc, exc_info=True)
        # The injected clock may be the fault, so stamp with system time
        now = _utcnow()
        record = IterationRecord(id=iteration, started_at=now)
        record.transition(STATUS_FAILED)
        record.finalize(now, 0)
        self._state = state.apply(
            record,
            passed=0,
            failed=1,
            generated=0,
            current_scale=self.scaling.current_scale,
            learning_version=self.learner.model_version,
        )
        self.events.emit(EVENT_ERROR, iteration, {"error": exc, "message": str(exc)})
        self._emit_outcome(record)

    def _emit_outcome(self, record: IterationRecord) -> None:
        published = {"record": record.model_copy(deep=True)}
        self.events.emit(
            EVENT_TICK_FAILED if record.status == STATUS_FAILED else EVENT_TICK_PASSED,
            record.id,
            published,
        )
        logger.info("Iteration %d done in %dms | status: %s",
                    record.id, record.duration_ms, record.status.upper())
        self.events.emit(EVENT_TICK_COMPLETE, record.id, published)

    def _build_snapshot(self, iteration: int, state: LoopState, now: datetime) -> Dict[str, Any]:
        """Assemble the verification payload from the pre-tick state."""
        return {
            "iteration": iteration,
            "scale": self.scaling.current_scale,
            "learner_version": self.learner.model_version,
            "success_rate": state.total_passed / iteration,
            "avg_confidence": state.confidence_sum / iteration,
            "avg_roi": state.roi_sum / iteration,
            "timestamp": int(now.timestamp() * 1000),
            "node_id": NODE_ID,
        }

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------
    def snapshot(self) -> RunnerSnapshot:
        state = self._state
        return RunnerSnapshot(
            running=self._running,
            iteration=state.iteration,
            total_passed=state.total_passed,
            total_failed=state.total_failed,
            total_generated=state.total_generated,
            success_rate=round(state.success_rate, 4),
            avg_confidence=round(state.avg_confidence, 4),
            avg_roi=round(state.avg_roi, 2),
            current_scale=state.current_scale,
            learning_version=state.learning_version,
            uptime_seconds=int((self._clock() - self._start_time).total_seconds()),
            history=[record.model_copy(deep=True) for record in state.history[-SNAPSHOT_HISTORY:]],
        )

    def history(self) -> List[IterationRecord]:
        return [record.model_copy(deep=True) for record in self._state.history]

    def stats(self) -> Dict[str, Any]:
        return {
            "gate": self.gate.stats,
            "scaling": self.scaling.stats,
            "learning": self.learner.stats,
            "generator": self.generator.stats,
        }
