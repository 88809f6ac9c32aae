"""
Constants
Centralised storage for loop statuses, event kinds, gate weights and node identity.
"""
# ---------------------------------------------------------------------------
# Iteration statuses
# ---------------------------------------------------------------------------
STATUS_RUNNING = "running"
STATUS_PASSED = "passed"
STATUS_FAILED = "failed"
STATUS_SCALED = "scaled"
TERMINAL_STATUSES = frozenset({STATUS_PASSED, STATUS_FAILED, STATUS_SCALED})

# ---------------------------------------------------------------------------
# Outcome classes (learning)
# ---------------------------------------------------------------------------
OUTCOME_SUCCESS = "success"
OUTCOME_FAILURE = "failure"

# ---------------------------------------------------------------------------
# Scaling reasons
# ---------------------------------------------------------------------------
REASON_NOOP = "no-op"
REASON_SCALE_UP = "scale-up"
REASON_DECAY = "decay"
REASON_PERIODIC_BOOST = "periodic-boost"

# ---------------------------------------------------------------------------
# Lifecycle event kinds
# ---------------------------------------------------------------------------
EVENT_STARTED = "started"
EVENT_STOPPED = "stopped"
EVENT_TICK_START = "tick_start"
EVENT_TICK_FAILED = "tick_failed"
EVENT_TICK_PASSED = "tick_passed"
EVENT_TICK_COMPLETE = "tick_complete"
EVENT_ERROR = "error"

# ---------------------------------------------------------------------------
# Verification gate
# ---------------------------------------------------------------------------
STAGE1_WEIGHT = 0.35
STAGE2_WEIGHT = 0.30
STAGE3_WEIGHT = 0.35
STALE_AFTER_MS = 60_000
WARMUP_ITERATIONS = 5          # avg_confidence enforced after this
MIN_AVG_CONFIDENCE = 0.70
SCALE_GUARD_ITERATIONS = 10    # scale regression enforced after this

NODE_MARKER = "ARK95X"
NODE_ID = "SLVSS-ARK95X-v2"
KNOWN_NODES = ("SLVSS-ARK95X-v2", "PAXRuntime", "SovereignExtraction", "AutomationAPI")

REQUIRED_SNAPSHOT_FIELDS = ("iteration", "scale", "learner_version", "timestamp", "node_id")

# ---------------------------------------------------------------------------
# Bounds
# ---------------------------------------------------------------------------
HISTORY_LIMIT = 100
STREAK_WINDOW = 10
SNAPSHOT_HISTORY = 10
SCALE_EVENT_LIMIT = 50
ARTIFACT_LOG_LIMIT = 100
SUMMARY_EVERY = 5
