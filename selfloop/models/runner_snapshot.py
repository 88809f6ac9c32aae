"""
Runner Snapshot Model
Point-in-time, read-only view of the loop handed to external readers.
"""
from typing import List
from pydantic import BaseModel

from selfloop.models.iteration_record import IterationRecord


class RunnerSnapshot(BaseModel):
    running: bool
    iteration: int
    total_passed: int
    total_failed: int
    total_generated: int
    success_rate: float
    avg_confidence: float
    avg_roi: float
    current_scale: float
    learning_version: str
    uptime_seconds: int
    history: List[IterationRecord] = []   # last 10, deep copies
