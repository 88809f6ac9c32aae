"""
Artifact Generator
==================
Renders artifacts for a passing tick from an ordered list of templates.

Templates (ascending requirements):
    workflow              conf >= 0.85, scale >= 1
    api_route             conf >= 0.87, scale >= 1.25
    value_scan            conf >= 0.88, scale >= 1
    agent_task            conf >= 0.90, scale >= 1.5
    module                conf >= 0.92, scale >= 2
    correlation_workflow  conf >= 0.95, scale >= 4

Every template whose gates are met fires once per tick; the recorded type
is the last one that fired. Every 5th iteration a summary of the last five
history records is appended and the type becomes "summary".

Bodies depend only on the tick inputs and the injected clock, with one
exception: the correlation workflow's ``correlation`` value is drawn from
the generator's own random source. Unseeded, that value is not
reproducible and the body says so (``"reproducible": false``); pass
``seed`` to pin it.
"""
import json
import random
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from selfloop.core.constants import ARTIFACT_LOG_LIMIT, SUMMARY_EVERY, NODE_ID, NODE_MARKER
from selfloop.models.generation_outcome import GenerationOutcome
from selfloop.models.iteration_record import IterationRecord
from selfloop.utils.roi import compute_roi, roi_grade

logger = logging.getLogger(__name__)

SUMMARY_TYPE = "summary"
NO_ARTIFACT_TYPE = "none"

_TASK_AGENTS = ["Commander", "Analyst", "Extractor", "Correlator", "Optimizer"]


@dataclass
class GenerationInput:
    iteration: int
    scale: float
    confidence: float
    history: Sequence[IterationRecord]
    generated_at: datetime


@dataclass
class ArtifactTemplate:
    type: str
    name: str
    min_confidence: float
    min_scale: float
    render: Callable[[GenerationInput], str]

    def accepts(self, confidence: float, scale: float) -> bool:
        return confidence >= self.min_confidence and scale >= self.min_scale


class ArtifactGenerator:
    """Stateless template evaluator with a bounded artifact log for stats."""

    def __init__(
        self,
        seed: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.seed = seed
        self._rng = random.Random(seed)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.generation_count = 0
        self._artifact_log: deque = deque(maxlen=ARTIFACT_LOG_LIMIT)
        self.templates: List[ArtifactTemplate] = [
            ArtifactTemplate("workflow", "Workflow", 0.85, 1, self._render_workflow),
            ArtifactTemplate("api_route", "API Route", 0.87, 1.25, self._render_api_route),
            ArtifactTemplate("value_scan", "Value Scan Report", 0.88, 1, self._render_value_scan),
            ArtifactTemplate("agent_task", "Agent Task Spec", 0.90, 1.5, self._render_agent_task),
            ArtifactTemplate("module", "Python Module", 0.92, 2, self._render_module),
            ArtifactTemplate(
                "correlation_workflow", "Correlation Workflow", 0.95, 4,
                self._render_correlation_workflow,
            ),
        ]

    async def generate(
        self,
        iteration: int,
        scale: float,
        confidence: float,
        history: Sequence[IterationRecord],
    ) -> GenerationOutcome:
        """Render every template the current confidence/scale unlocks."""
        self.generation_count += 1
        inputs = GenerationInput(
            iteration=iteration,
            scale=scale,
            confidence=confidence,
            history=history,
            generated_at=self._clock(),
        )
        artifacts: List[str] = []
        artifact_type = NO_ARTIFACT_TYPE

        for template in self.templates:
            if template.accepts(confidence, scale):
                artifacts.append(template.render(inputs))
                artifact_type = template.type

        if iteration > 0 and iteration % SUMMARY_EVERY == 0:
            artifacts.append(self._render_summary(inputs))
            artifact_type = SUMMARY_TYPE

        if artifacts:
            self._artifact_log.append({
                "iteration": iteration,
                "count": len(artifacts),
                "type": artifact_type,
            })
            logger.debug("Iteration %d: generated %d artifact(s), type %s",
                         iteration, len(artifacts), artifact_type)

        return GenerationOutcome(
            generated=bool(artifacts),
            artifacts=artifacts,
            type=artifact_type,
        )

    # ------------------------------------------------------------------
    # Template bodies
    # ------------------------------------------------------------------
    def _render_workflow(self, inputs: GenerationInput) -> str:
        return json.dumps({
            "name": f"SLVSS-Workflow-Iter{inputs.iteration}",
            "nodes": [
                {"type": "webhook", "position": [0, 0], "name": "Loop Trigger"},
                {
                    "type": "extraction", "position": [200, 0], "name": "Extraction",
                    "parameters": {"confidence_threshold": inputs.confidence, "mode": "value_scan"},
                },
                {
                    "type": "set", "position": [400, 0], "name": "Loop Output",
                    "parameters": {"scale": inputs.scale, "iteration": inputs.iteration},
                },
            ],
            "connections": {"Loop Trigger": {"main": [[{"node": "Extraction", "index": 0}]]}},
            "meta": {
                "generated_by": "selfloop.ArtifactGenerator",
                "iteration": inputs.iteration,
                "confidence": inputs.confidence,
            },
        })

    def _render_api_route(self, inputs: GenerationInput) -> str:
        n = inputs.iteration
        return (
            f"# Auto-generated API route - iteration {n}\n"
            f"# Scale: {inputs.scale:.3f} | Confidence: {inputs.confidence:.4f}\n"
            f"@router.get(\"/api/loop/iter/{n}\")\n"
            f"async def get_iteration_{n}(runner: LoopRunner = Depends(get_runner)):\n"
            f"    return {{\"iteration\": {n}, \"scale\": {inputs.scale}, "
            f"\"confidence\": {inputs.confidence}, \"state\": runner.snapshot()}}\n"
        )

    def _render_value_scan(self, inputs: GenerationInput) -> str:
        roi = compute_roi(inputs.confidence, inputs.scale)
        return (
            f"# VALUE REPORT - Iteration {inputs.iteration}\n"
            f"Generated: {inputs.generated_at.isoformat()}\n"
            f"Scale: {inputs.scale:.4f}x\n"
            f"Confidence: {inputs.confidence * 100:.2f}%\n"
            f"Estimated ROI: {roi}%\n"
            f"Grade: {roi_grade(roi)}\n"
            f"Node: {NODE_ID}"
        )

    def _render_agent_task(self, inputs: GenerationInput) -> str:
        epoch_ms = int(inputs.generated_at.timestamp() * 1000)
        return json.dumps({
            "task_id": f"TASK-{inputs.iteration}-{epoch_ms}",
            "assigned_to": _TASK_AGENTS[inputs.iteration % len(_TASK_AGENTS)],
            "type": "extraction",
            "priority": "CRITICAL" if inputs.confidence >= 0.95 else "HIGH",
            "parameters": {"scale": inputs.scale, "confidence": inputs.confidence},
            "created_at": inputs.generated_at.isoformat(),
        })

    def _render_module(self, inputs: GenerationInput) -> str:
        n = inputs.iteration
        return (
            f"# Auto-generated module - iteration {n}\n"
            f"# Scale: {inputs.scale:.3f}\n"
            f"LOOP_ITER_{n} = {{\n"
            f"    \"iteration\": {n},\n"
            f"    \"scale\": {inputs.scale},\n"
            f"    \"confidence\": {inputs.confidence},\n"
            f"    \"roi\": {compute_roi(inputs.confidence, inputs.scale)},\n"
            f"    \"generated_at\": \"{inputs.generated_at.isoformat()}\",\n"
            f"    \"node\": \"{NODE_ID}\",\n"
            f"}}\n"
        )

    def _render_correlation_workflow(self, inputs: GenerationInput) -> str:
        signature = f"QSig-{(inputs.iteration * 7919 % 65536):X}-{NODE_MARKER}"
        return json.dumps({
            "name": f"CORRELATION-Workflow-Iter{inputs.iteration}",
            "type": "correlation",
            "signature": signature,
            "entanglement": round(inputs.confidence * inputs.scale / (inputs.scale + 1), 6),
            "correlation": round(self._rng.random(), 6),
            "reproducible": self.seed is not None,
            "seed": self.seed,
            "nodes": [
                {"type": "gateTrigger", "name": "Correlation Gate"},
                {"type": "extraction", "name": "Extraction", "mode": "correlate"},
                {"type": "router", "name": "Scale Router", "scale": inputs.scale},
            ],
            "meta": {"iteration": inputs.iteration, "confidence": inputs.confidence},
        })

    def _render_summary(self, inputs: GenerationInput) -> str:
        recent = list(inputs.history)[-SUMMARY_EVERY:]
        statuses = ", ".join(record.status for record in recent)
        avg_roi = sum(record.roi for record in recent) / max(1, len(recent))
        return (
            f"# LOOP SUMMARY - Checkpoint at Iteration {inputs.iteration}\n"
            f"Timestamp: {inputs.generated_at.isoformat()}\n"
            f"Current Scale: {inputs.scale:.4f}x\n"
            f"Confidence: {inputs.confidence * 100:.2f}%\n"
            f"Recent Statuses: {statuses}\n"
            f"Avg ROI (last {SUMMARY_EVERY}): {avg_roi:.2f}%"
        )

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------
    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "generation_count": self.generation_count,
            "total_artifacts": sum(entry["count"] for entry in self._artifact_log),
            "log_entries": len(self._artifact_log),
            "template_count": len(self.templates),
            "recent": [dict(entry) for entry in list(self._artifact_log)[-3:]],
        }
