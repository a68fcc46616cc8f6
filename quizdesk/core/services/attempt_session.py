"""Stateful controller for one in-progress quiz attempt."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence

from quizdesk.constants.quiz_constants import LOW_TIME_WARNING_SECONDS, SECONDS_PER_MINUTE
from quizdesk.core.errors import (
    EmptyQuizError,
    InvalidAnswerError,
    PersistenceError,
    SessionStateError,
    SubmissionFailedError,
)
from quizdesk.core.models import (
    Attempt,
    AttemptStatus,
    GradeResult,
    Progress,
    Quiz,
    SessionState,
    ShuffledQuestion,
)
from quizdesk.core.services.attempt_store import AttemptStore
from quizdesk.core.services.countdown import Countdown
from quizdesk.core.services.grader import compute_percentage, grade
from quizdesk.core.settings import EngineSettings

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class AttemptSession:
    """Owns the shuffled questions, answers, cursor and timer of one attempt.

    States: idle -> active -> submitting -> completed, or active -> abandoned.
    Answers are converted to canonical option indices the moment they are
    recorded; display indices never leave this object.
    """

    def __init__(
        self,
        store: AttemptStore,
        settings: EngineSettings | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._store = store
        self._settings = settings or EngineSettings()
        self._sleep = sleep
        self._state = SessionState.IDLE
        self._submit_lock = asyncio.Lock()
        self._countdown: Countdown | None = None
        self._reset_memory()
        self._attempt: Attempt | None = None
        self._grade: GradeResult | None = None
        self._completed_attempt: Attempt | None = None
        self._submission_error: PersistenceError | None = None

    def _reset_memory(self) -> None:
        self._quiz: Quiz | None = None
        self._questions: list[ShuffledQuestion] = []
        self._questions_by_id: dict[str, ShuffledQuestion] = {}
        self._answers: dict[str, int | None] = {}
        self._marked_for_review: set[str] = set()
        self._cursor = 0
        self._time_remaining = 0

    # --- Lifecycle ---

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def attempt(self) -> Attempt | None:
        return self._attempt

    @property
    def attempt_id(self) -> str | None:
        return self._attempt.id if self._attempt else None

    @property
    def quiz(self) -> Quiz | None:
        return self._quiz

    @property
    def grade_result(self) -> GradeResult | None:
        return self._grade

    @property
    def completed_attempt(self) -> Attempt | None:
        return self._completed_attempt

    @property
    def submission_error(self) -> PersistenceError | None:
        """Last persistence failure while submitting, cleared on success."""
        return self._submission_error

    def start(
        self,
        quiz: Quiz,
        questions: Sequence[ShuffledQuestion],
        attempt: Attempt,
        time_remaining: int | None = None,
    ) -> None:
        """Load a new or resumed attempt and start its countdown.

        ``time_remaining`` is only needed when resuming; a fresh start gets the
        quiz's full duration.
        """
        if self._state is not SessionState.IDLE:
            raise SessionStateError(f"Cannot start a session that is {self._state.value}.")
        if not questions:
            raise EmptyQuizError("No questions are available for this quiz.")
        if attempt.status is not AttemptStatus.IN_PROGRESS:
            raise SessionStateError(
                f"Attempt {attempt.id} is {attempt.status.value} and cannot be taken."
            )
        if time_remaining is None:
            time_remaining = quiz.duration_minutes * SECONDS_PER_MINUTE
        if time_remaining < 0:
            raise ValueError("Remaining time must not be negative.")

        self._quiz = quiz
        self._attempt = attempt
        self._questions = list(questions)
        self._questions_by_id = {question.id: question for question in self._questions}
        self._answers = {}
        self._marked_for_review = set()
        self._cursor = 0
        self._time_remaining = time_remaining
        self._state = SessionState.ACTIVE
        logger.info(
            "Attempt %s started: %d question(s), %d second(s) on the clock",
            attempt.id,
            len(self._questions),
            time_remaining,
        )

        if self._settings.run_countdown:
            self._countdown = Countdown(self.tick, self._settings.tick_interval_seconds)
            self._countdown.start()

    async def tick(self) -> bool:
        """Advance the timer by one second; returns False once the timer should stop."""
        if self._state is not SessionState.ACTIVE:
            return False
        self._time_remaining = max(0, self._time_remaining - 1)
        if self._time_remaining > 0:
            return True

        logger.info("Time is up for attempt %s; submitting automatically", self.attempt_id)
        try:
            await self.submit()
        except PersistenceError as exc:
            # Kept in submission_error; the session stays in submitting for a retry.
            logger.error("Automatic submission of attempt %s failed: %s", self.attempt_id, exc)
        return False

    async def submit(self) -> Attempt:
        """Grade the attempt once and persist it, retrying transient store failures.

        Calling again after a ``SubmissionFailedError`` retries the write of the
        same grade. Calling after completion returns the completed record.
        """
        async with self._submit_lock:
            if self._state is SessionState.COMPLETED and self._completed_attempt is not None:
                return self._completed_attempt
            if self._state is SessionState.ACTIVE:
                self._freeze_and_grade()
            elif self._state is not SessionState.SUBMITTING:
                raise SessionStateError(f"Cannot submit a session that is {self._state.value}.")
            return await self._persist_grade()

    async def abandon(self) -> Attempt | None:
        """Leave the attempt without submitting it."""
        if self._state is not SessionState.ACTIVE:
            raise SessionStateError(f"Cannot abandon a session that is {self._state.value}.")
        self._stop_countdown()
        self._state = SessionState.ABANDONED
        self._reset_memory()
        attempt = self._attempt
        logger.info("Attempt %s abandoned by the student", attempt.id)
        if not self._settings.mark_abandoned_on_exit:
            return None
        self._attempt = await self._store.abandon_attempt(attempt.id)
        return self._attempt

    def close(self) -> None:
        """Tear down the timer without changing state."""
        self._stop_countdown()

    def _freeze_and_grade(self) -> None:
        self._stop_countdown()
        self._state = SessionState.SUBMITTING
        self._grade = grade(self._questions, self._answers)
        logger.info(
            "Attempt %s graded: %d/%d point(s) (%d%%)",
            self.attempt_id,
            self._grade.points_earned,
            self._grade.total_points,
            self._grade.percentage,
        )

    async def _persist_grade(self) -> Attempt:
        result = self._grade
        attempts = self._settings.submit_retry_attempts
        backoff = self._settings.submit_retry_backoff_seconds
        last_error: PersistenceError | None = None
        for attempt_number in range(1, attempts + 1):
            try:
                completed = await self._store.complete_attempt(
                    self.attempt_id,
                    list(result.answers),
                    result.points_earned,
                    result.total_points,
                    result.percentage,
                )
            except PersistenceError as exc:
                last_error = exc
                logger.warning(
                    "Saving attempt %s failed (try %d of %d): %s",
                    self.attempt_id,
                    attempt_number,
                    attempts,
                    exc,
                )
                if attempt_number < attempts:
                    await self._sleep(backoff * 2 ** (attempt_number - 1))
                continue

            self._completed_attempt = completed
            self._attempt = completed
            self._submission_error = None
            self._state = SessionState.COMPLETED
            self._reset_memory()
            logger.info("Attempt %s completed", completed.id)
            return completed

        error = SubmissionFailedError(
            f"Attempt {self.attempt_id} was graded but could not be saved: {last_error}",
            grade=result,
        )
        self._submission_error = error
        raise error from last_error

    def _stop_countdown(self) -> None:
        if self._countdown is not None:
            self._countdown.cancel()
            self._countdown = None

    # --- Answers ---

    def set_answer(self, question_id: str, display_index: Any) -> int | None:
        """Record the option picked at ``display_index``; ``None`` marks the question skipped.

        Returns the canonical index that was stored.
        """
        self._require_active()
        question = self._require_question(question_id)
        normalized = _normalize_display_index(display_index)
        canonical = None if normalized is None else question.to_canonical(normalized)
        self._answers[question_id] = canonical
        return canonical

    def clear_answer(self, question_id: str) -> None:
        self._require_active()
        self._require_question(question_id)
        self._answers.pop(question_id, None)

    def get_selected_display_index(self, question_id: str) -> int | None:
        question = self._require_question(question_id)
        canonical = self._answers.get(question_id)
        if canonical is None:
            return None
        return question.to_display(canonical)

    def get_answers(self) -> dict[str, int | None]:
        """Canonical selections keyed by question id."""
        return dict(self._answers)

    # --- Navigation ---

    @property
    def questions(self) -> tuple[ShuffledQuestion, ...]:
        return tuple(self._questions)

    @property
    def current_index(self) -> int:
        return self._cursor

    def current_question(self) -> ShuffledQuestion | None:
        if not self._questions:
            return None
        return self._questions[self._cursor]

    def go_to_question(self, index: int) -> int:
        self._require_active()
        self._cursor = min(max(index, 0), len(self._questions) - 1)
        return self._cursor

    def next_question(self) -> int:
        return self.go_to_question(self._cursor + 1)

    def previous_question(self) -> int:
        return self.go_to_question(self._cursor - 1)

    # --- Review marks ---

    def toggle_mark_for_review(self, question_id: str) -> bool:
        self._require_active()
        self._require_question(question_id)
        if question_id in self._marked_for_review:
            self._marked_for_review.discard(question_id)
            return False
        self._marked_for_review.add(question_id)
        return True

    def is_marked_for_review(self, question_id: str) -> bool:
        return question_id in self._marked_for_review

    @property
    def marked_for_review(self) -> frozenset[str]:
        return frozenset(self._marked_for_review)

    # --- Progress & timer ---

    def progress(self) -> Progress:
        total = len(self._questions)
        answered = sum(1 for question in self._questions if self._answers.get(question.id) is not None)
        return Progress(
            total=total,
            answered=answered,
            unanswered=total - answered,
            percentage=compute_percentage(answered, total),
        )

    def has_answered_all(self) -> bool:
        return all(self._answers.get(question.id) is not None for question in self._questions)

    @property
    def time_remaining(self) -> int:
        return self._time_remaining

    @property
    def is_low_time(self) -> bool:
        return self._state is SessionState.ACTIVE and self._time_remaining < LOW_TIME_WARNING_SECONDS

    def time_remaining_formatted(self) -> str:
        return format_time_remaining(self._time_remaining)

    # --- Guards ---

    def _require_active(self) -> None:
        if self._state is not SessionState.ACTIVE:
            raise SessionStateError(
                f"Attempt {self.attempt_id} is {self._state.value}; answers can no longer change."
            )

    def _require_question(self, question_id: str) -> ShuffledQuestion:
        question = self._questions_by_id.get(question_id)
        if question is None:
            raise InvalidAnswerError(f"Question {question_id!r} is not part of this attempt.")
        return question


def format_time_remaining(seconds: int) -> str:
    hours, remainder = divmod(max(seconds, 0), 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def _normalize_display_index(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidAnswerError("An option index must be an integer, not a boolean.")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value.strip())
    raise InvalidAnswerError(f"Unsupported answer value: {value!r}")
