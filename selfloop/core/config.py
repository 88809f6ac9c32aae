"""
Configuration
=============
Loads environment variables from .env file using python-dotenv.

Environment Variables:
    LOOP_MAX_ITERATIONS        — Stop after this many ticks, 0 = run forever (default: 0)
    LOOP_INTERVAL_MS           — Delay between ticks in milliseconds (default: 5000)
    LOOP_CONFIDENCE_THRESHOLD  — Verification gate threshold (default: 0.85)
    LOOP_AUTO_SCALE            — Run the scaling engine on passing ticks (default: true)
    LOOP_AUTO_GENERATE         — Emit artifacts on passing ticks (default: true)
    LOOP_LEARN_FROM_FAILURES   — Feed failed ticks into the learning core (default: true)
    LOOP_DEBUG                 — Verbose DEBUG logging (default: false)
    LOOP_VERIFICATION_STAGES   — Gate depth, 1-3 (default: 3)
    LOOP_STRICT_MODE           — All three stages must pass at full depth (default: true)
    SCALE_MAX                  — Upper bound for the scale multiplier (default: 1024)
    LEARNING_MEMORY_SIZE       — Pattern memory capacity (default: 500)
    GENERATOR_SEED             — Seed for the correlation artifact; unset = unseeded
    API_HOST / API_PORT        — Composition adapter bind address (default: 127.0.0.1:5679)
    LOG_DIR                    — Directory for the daily log file, empty disables (default: logs)

Values are read once at import. LoopConfig instances built from them are
frozen; changing the environment later does not affect a running loop.
"""
import os
from typing import Optional

from dotenv import load_dotenv

from selfloop.models.loop_config import LoopConfig

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else None


LOOP_MAX_ITERATIONS = int(os.getenv("LOOP_MAX_ITERATIONS", 0))
LOOP_INTERVAL_MS = int(os.getenv("LOOP_INTERVAL_MS", 5000))
LOOP_CONFIDENCE_THRESHOLD = float(os.getenv("LOOP_CONFIDENCE_THRESHOLD", 0.85))
LOOP_AUTO_SCALE = _env_bool("LOOP_AUTO_SCALE", True)
LOOP_AUTO_GENERATE = _env_bool("LOOP_AUTO_GENERATE", True)
LOOP_LEARN_FROM_FAILURES = _env_bool("LOOP_LEARN_FROM_FAILURES", True)
LOOP_DEBUG = _env_bool("LOOP_DEBUG", False)
LOOP_VERIFICATION_STAGES = int(os.getenv("LOOP_VERIFICATION_STAGES", 3))
LOOP_STRICT_MODE = _env_bool("LOOP_STRICT_MODE", True)

# Sub-engine tuning
SCALE_MAX = float(os.getenv("SCALE_MAX", 1024))
LEARNING_MEMORY_SIZE = int(os.getenv("LEARNING_MEMORY_SIZE", 500))
GENERATOR_SEED = _env_optional_int("GENERATOR_SEED")

# Composition adapter
API_HOST = os.getenv("API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("API_PORT", 5679))

LOG_DIR = os.getenv("LOG_DIR", "logs")


def load_loop_config(**overrides) -> LoopConfig:
    """
    Build a LoopConfig from environment defaults.

    Keyword overrides win over the environment. Invalid values raise
    pydantic.ValidationError.
    """
    values = {
        "max_iterations": LOOP_MAX_ITERATIONS,
        "interval_ms": LOOP_INTERVAL_MS,
        "confidence_threshold": LOOP_CONFIDENCE_THRESHOLD,
        "auto_scale": LOOP_AUTO_SCALE,
        "auto_generate": LOOP_AUTO_GENERATE,
        "learn_from_failures": LOOP_LEARN_FROM_FAILURES,
        "debug_mode": LOOP_DEBUG,
        "verification_stages": LOOP_VERIFICATION_STAGES,
        "strict_mode": LOOP_STRICT_MODE,
    }
    values.update(overrides)
    return LoopConfig(**values)
