"""
Scaling Models
Pydantic models for the scaling engine's per-tick result and its event log.
"""
from pydantic import BaseModel

from selfloop.core.constants import REASON_NOOP


class ScalingOutcome(BaseModel):
    previous_scale: float = 1.0
    new_scale: float = 1.0
    scaled: bool = False
    reason: str = REASON_NOOP      # no-op / scale-up / decay / periodic-boost
    detail: str = ""


class ScalingEvent(BaseModel):
    iteration: int
    scale: float
    reason: str
    detail: str = ""
