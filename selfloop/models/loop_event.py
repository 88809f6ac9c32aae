"""
Loop Event Model
Lifecycle notification delivered to event bus subscribers.
"""
from datetime import datetime
from typing import Any, Dict
from pydantic import BaseModel


class LoopEvent(BaseModel):
    kind: str              # started / stopped / tick_start / tick_failed / tick_passed / tick_complete / error
    iteration: int = 0
    timestamp: datetime
    payload: Dict[str, Any] = {}
