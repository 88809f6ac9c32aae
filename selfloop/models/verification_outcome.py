"""
Verification Outcome Model
==========================
Result of one pass through the verification gate.

Fields:
    stage1_structure    — required keys present with the expected kinds
    stage2_consistency  — ratios in range, snapshot fresh
    stage3_compliance   — known node, confidence and version rules
    score               — sum of the weights of the stages that succeeded
    passed              — gate decision for the configured depth
    errors              — ordered, human-readable; accumulated across stages
"""
from typing import List
from pydantic import BaseModel


class VerificationOutcome(BaseModel):
    stage1_structure: bool = False
    stage2_consistency: bool = False
    stage3_compliance: bool = False
    score: float = 0.0
    passed: bool = False
    errors: List[str] = []
