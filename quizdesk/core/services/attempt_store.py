"""Attempt store contract and an in-memory implementation of it."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
import logging
from typing import Callable, Iterable, Protocol
from uuid import uuid4

from quizdesk.core.errors import NotFoundError, SessionStateError
from quizdesk.core.models import Attempt, AttemptAnswer, AttemptStatus

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AttemptStore(Protocol):
    """Durable record of attempts. Failures surface as ``PersistenceError``."""

    async def create_attempt(
        self, quiz_id: str, student_id: str, question_ids: Iterable[str]
    ) -> Attempt: ...

    async def complete_attempt(
        self,
        attempt_id: str,
        answers: Iterable[AttemptAnswer],
        points_earned: int,
        total_points: int,
        percentage: int,
    ) -> Attempt: ...

    async def abandon_attempt(self, attempt_id: str) -> Attempt: ...

    async def get_attempt(self, attempt_id: str) -> Attempt: ...

    async def list_attempts(
        self, student_id: str | None = None, quiz_id: str | None = None
    ) -> list[Attempt]: ...


class InMemoryAttemptStore:
    """Stores attempts in a dictionary; every read returns a detached copy."""

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._attempts: dict[str, Attempt] = {}
        self._clock = clock

    async def create_attempt(
        self, quiz_id: str, student_id: str, question_ids: Iterable[str]
    ) -> Attempt:
        attempt = Attempt(
            id=uuid4().hex,
            quiz_id=quiz_id,
            student_id=student_id,
            status=AttemptStatus.IN_PROGRESS,
            started_at=self._clock(),
            question_ids=list(question_ids),
        )
        self._attempts[attempt.id] = attempt
        logger.info("Created attempt %s for quiz %s (student %s)", attempt.id, quiz_id, student_id)
        return _detached(attempt)

    async def complete_attempt(
        self,
        attempt_id: str,
        answers: Iterable[AttemptAnswer],
        points_earned: int,
        total_points: int,
        percentage: int,
    ) -> Attempt:
        current = self._require(attempt_id)
        if current.status is not AttemptStatus.IN_PROGRESS:
            raise SessionStateError(
                f"Attempt {attempt_id} is {current.status.value} and cannot be completed."
            )
        # Build the final record first so the swap below is a single write.
        completed = replace(
            current,
            status=AttemptStatus.COMPLETED,
            completed_at=self._clock(),
            answers=list(answers),
            points_earned=points_earned,
            total_points=total_points,
            percentage=percentage,
        )
        self._attempts[attempt_id] = completed
        return _detached(completed)

    async def abandon_attempt(self, attempt_id: str) -> Attempt:
        current = self._require(attempt_id)
        if current.status is not AttemptStatus.IN_PROGRESS:
            raise SessionStateError(
                f"Attempt {attempt_id} is {current.status.value} and cannot be abandoned."
            )
        abandoned = replace(current, status=AttemptStatus.ABANDONED)
        self._attempts[attempt_id] = abandoned
        return _detached(abandoned)

    async def get_attempt(self, attempt_id: str) -> Attempt:
        return _detached(self._require(attempt_id))

    async def list_attempts(
        self, student_id: str | None = None, quiz_id: str | None = None
    ) -> list[Attempt]:
        matches = [
            attempt
            for attempt in reversed(self._attempts.values())
            if (student_id is None or attempt.student_id == student_id)
            and (quiz_id is None or attempt.quiz_id == quiz_id)
        ]
        matches.sort(key=lambda attempt: attempt.started_at, reverse=True)
        return [_detached(attempt) for attempt in matches]

    def _require(self, attempt_id: str) -> Attempt:
        attempt = self._attempts.get(attempt_id)
        if attempt is None:
            raise NotFoundError(f"Attempt {attempt_id!r} not found")
        return attempt


def _detached(attempt: Attempt) -> Attempt:
    return replace(attempt, answers=list(attempt.answers), question_ids=list(attempt.question_ids))
