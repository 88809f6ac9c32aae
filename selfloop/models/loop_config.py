"""
Loop Configuration Model
========================
Immutable per-run settings for the loop runner.

Fields:
    max_iterations       — stop after this many ticks (0 = unbounded)
    interval_ms          — delay between the end of one tick and the next
    confidence_threshold — verification gate threshold (0.0–1.0)
    auto_scale           — run the scaling engine on passing ticks
    auto_generate        — run the artifact generator on passing ticks
    learn_from_failures  — ingest failed ticks into the learning core
    debug_mode           — verbose logging at composition time
    verification_stages  — gate depth (1, 2 or 3)
    strict_mode          — at full depth, every stage must succeed
"""
from pydantic import BaseModel, ConfigDict, Field


class LoopConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_iterations: int = Field(default=0, ge=0)
    interval_ms: int = Field(default=5000, ge=0)
    confidence_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    auto_scale: bool = True
    auto_generate: bool = True
    learn_from_failures: bool = True
    debug_mode: bool = False
    verification_stages: int = Field(default=3, ge=1, le=3)
    strict_mode: bool = True
