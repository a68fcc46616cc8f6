"""Runtime settings for the attempt engine and the API server.

Defaults come from the constants modules; every value can be overridden
through a ``QUIZDESK_*`` environment variable.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Mapping

from quizdesk.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from quizdesk.constants.quiz_constants import (
    COUNTDOWN_TICK_SECONDS,
    RESUME_POLICY_ELAPSED,
    RESUME_POLICY_FRESH,
    SUBMIT_RETRY_ATTEMPTS,
    SUBMIT_RETRY_BACKOFF_SECONDS,
)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(slots=True)
class EngineSettings:
    """Tunable behaviour of attempt sessions and the HTTP surface."""

    log_level: str = "INFO"
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    tick_interval_seconds: float = COUNTDOWN_TICK_SECONDS
    run_countdown: bool = True
    submit_retry_attempts: int = SUBMIT_RETRY_ATTEMPTS
    submit_retry_backoff_seconds: float = SUBMIT_RETRY_BACKOFF_SECONDS
    resume_policy: str = RESUME_POLICY_ELAPSED
    mark_abandoned_on_exit: bool = True
    shuffle_seed: int | None = None
    catalog_file: str | None = None

    def __post_init__(self) -> None:
        if self.resume_policy not in (RESUME_POLICY_ELAPSED, RESUME_POLICY_FRESH):
            raise ValueError(f"Unknown resume policy: {self.resume_policy!r}")
        if self.tick_interval_seconds <= 0:
            raise ValueError("Tick interval must be positive.")
        if self.submit_retry_attempts < 1:
            raise ValueError("At least one submission attempt is required.")
        if self.submit_retry_backoff_seconds < 0:
            raise ValueError("Retry backoff must not be negative.")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> EngineSettings:
        env = os.environ if environ is None else environ
        seed = env.get("QUIZDESK_SHUFFLE_SEED")
        return cls(
            log_level=env.get("QUIZDESK_LOG_LEVEL", "INFO"),
            host=env.get("QUIZDESK_HOST", DEFAULT_HOST),
            port=int(env.get("QUIZDESK_PORT", DEFAULT_PORT)),
            tick_interval_seconds=float(
                env.get("QUIZDESK_TICK_SECONDS", COUNTDOWN_TICK_SECONDS)
            ),
            submit_retry_attempts=int(
                env.get("QUIZDESK_SUBMIT_RETRIES", SUBMIT_RETRY_ATTEMPTS)
            ),
            submit_retry_backoff_seconds=float(
                env.get("QUIZDESK_SUBMIT_BACKOFF_SECONDS", SUBMIT_RETRY_BACKOFF_SECONDS)
            ),
            resume_policy=env.get("QUIZDESK_RESUME_POLICY", RESUME_POLICY_ELAPSED).lower(),
            mark_abandoned_on_exit=_parse_bool(env.get("QUIZDESK_MARK_ABANDONED"), default=True),
            shuffle_seed=int(seed) if seed else None,
            catalog_file=env.get("QUIZDESK_CATALOG_FILE") or None,
        )


def _parse_bool(raw_value: str | None, default: bool) -> bool:
    if raw_value is None or not raw_value.strip():
        return default
    lowered = raw_value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Expected a boolean flag, got {raw_value!r}")
