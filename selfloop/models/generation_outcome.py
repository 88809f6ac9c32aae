"""
Generation Outcome Model
Artifacts emitted by the generator in one tick.
"""
from typing import List
from pydantic import BaseModel


class GenerationOutcome(BaseModel):
    generated: bool = False
    artifacts: List[str] = []
    type: str = ""                 # last (highest-tier) template fired, or "summary"
