"""Quiz attempt constants shared across the engine and the API layer."""

SECONDS_PER_MINUTE: int = 60
DEFAULT_QUESTION_POINTS: int = 1
COUNTDOWN_TICK_SECONDS: float = 1.0
LOW_TIME_WARNING_SECONDS: int = 300

SUBMIT_RETRY_ATTEMPTS: int = 3
SUBMIT_RETRY_BACKOFF_SECONDS: float = 0.5

RESUME_POLICY_ELAPSED: str = "elapsed"
RESUME_POLICY_FRESH: str = "fresh"
