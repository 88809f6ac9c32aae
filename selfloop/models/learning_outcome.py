"""
Learning Models
===============
Pydantic models for the learning core.

LearnedPattern:
    id          — "{outcome}_{hash}" derived from outcome class + feature set
    outcome     — "success" | "failure"
    features    — feature descriptors the pattern was derived from
    weight      — 0.0–1.0, decays every ingest
    seen_count  — number of ingests that collapsed into this pattern
    last_seen   — timestamp of the last matching ingest

LearningOutcome:
    learned           — True once an ingest completed
    patterns          — pattern memory size after the ingest
    improvement_delta — weight change (or seed weight) applied this ingest
    model_version     — "major.minor" after the ingest
"""
from datetime import datetime
from typing import List
from pydantic import BaseModel


class LearnedPattern(BaseModel):
    id: str
    outcome: str
    features: List[str] = []
    weight: float = 0.0
    seen_count: int = 1
    last_seen: datetime


class LearningOutcome(BaseModel):
    learned: bool = False
    patterns: int = 0
    improvement_delta: float = 0.0
    model_version: str = ""
