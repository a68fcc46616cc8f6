"""Facade that wires the catalog, the attempt store and live attempt sessions."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime
import logging
import random
from typing import Callable

from quizdesk.constants.quiz_constants import RESUME_POLICY_FRESH, SECONDS_PER_MINUTE
from quizdesk.core.errors import NotFoundError, SessionStateError
from quizdesk.core.models import Attempt, AttemptStatus, Quiz, ResolvedQuestion, SessionState
from quizdesk.core.services.attempt_session import AttemptSession
from quizdesk.core.services.attempt_store import AttemptStore, utc_now
from quizdesk.core.services.catalog import CatalogReader
from quizdesk.core.services.grader import (
    ResultReview,
    build_result_review,
    normalize_stored_answers,
)
from quizdesk.core.services.presentation_shuffler import PresentationShuffler
from quizdesk.core.services.question_selector import QuestionSelector
from quizdesk.core.settings import EngineSettings

logger = logging.getLogger(__name__)

_TERMINAL_STATES = (SessionState.COMPLETED, SessionState.ABANDONED)


class AttemptManager:
    """Entry point for starting, resuming, submitting and reviewing attempts.

    Each attempt gets its own ``AttemptSession``; the manager only keeps the
    registry of live sessions keyed by attempt id.
    """

    def __init__(
        self,
        catalog: CatalogReader,
        store: AttemptStore,
        settings: EngineSettings | None = None,
        selector: QuestionSelector | None = None,
        shuffler: PresentationShuffler | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._catalog = catalog
        self._store = store
        self._settings = settings or EngineSettings()
        seed = self._settings.shuffle_seed
        self._selector = selector or QuestionSelector(random.Random(seed))
        self._shuffler = shuffler or PresentationShuffler(random.Random(seed))
        self._clock = clock
        self._sessions: dict[str, AttemptSession] = {}
        self._lock = asyncio.Lock()

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    # --- Catalog passthrough ---

    async def get_quiz(self, quiz_id: str) -> Quiz:
        return await self._catalog.get_quiz(quiz_id)

    # --- Attempt lifecycle ---

    async def start_quiz(self, quiz_id: str, student_id: str) -> AttemptSession:
        """Resolve and shuffle the quiz's questions, create the attempt and start its timer.

        A student who already has an attempt open for the quiz gets that
        attempt back instead of a second one. Raises ``EmptyQuizError`` before
        any attempt record exists when the quiz resolves to no questions.
        """
        async with self._lock:
            self._prune_finished_sessions()
            quiz = await self._catalog.get_quiz(quiz_id)
            open_attempt = await self.find_resumable_attempt(quiz.id, student_id)
            if open_attempt is not None:
                live = self._live_session(open_attempt.id)
                if live is not None:
                    return live
                logger.info(
                    "Student %s already has attempt %s open for quiz %s; resuming it",
                    student_id,
                    open_attempt.id,
                    quiz.id,
                )
                session = await self._attach(open_attempt, quiz)
                if session.time_remaining > 0:
                    return session
                # Expired while away: close it out and start over.
                await session.submit()
                self._sessions.pop(open_attempt.id, None)

            resolved = await self._selector.select(quiz.topic_configs, self._catalog)
            shuffled = self._shuffler.shuffle(resolved)
            attempt = await self._store.create_attempt(
                quiz.id, student_id, [question.id for question in resolved]
            )
            session = self._new_session()
            session.start(quiz, shuffled, attempt)
            self._sessions[attempt.id] = session
            return session

    async def resume_quiz(self, attempt_id: str, student_id: str | None = None) -> AttemptSession:
        """Reattach to an in-progress attempt using the questions it originally presented."""
        async with self._lock:
            live = self._live_session(attempt_id)
            if live is not None:
                self._check_owner(live.attempt, student_id)
                return live

            attempt = await self._store.get_attempt(attempt_id)
            self._check_owner(attempt, student_id)
            if attempt.status is not AttemptStatus.IN_PROGRESS:
                raise SessionStateError(
                    f"Attempt {attempt_id} is {attempt.status.value} and cannot be resumed."
                )
            quiz = await self._catalog.get_quiz(attempt.quiz_id)
            session = await self._attach(attempt, quiz)

        if session.time_remaining == 0:
            logger.info("Attempt %s ran out of time while away; submitting", attempt.id)
            await session.submit()
        return session

    async def find_resumable_attempt(self, quiz_id: str, student_id: str) -> Attempt | None:
        attempts = await self._store.list_attempts(student_id=student_id, quiz_id=quiz_id)
        return next(
            (attempt for attempt in attempts if attempt.status is AttemptStatus.IN_PROGRESS),
            None,
        )

    def get_session(self, attempt_id: str) -> AttemptSession:
        session = self._sessions.get(attempt_id)
        if session is None:
            raise NotFoundError(f"No live session for attempt {attempt_id!r}")
        return session

    async def submit(self, attempt_id: str) -> Attempt:
        session = self.get_session(attempt_id)
        completed = await session.submit()
        self._sessions.pop(attempt_id, None)
        return completed

    async def abandon(self, attempt_id: str) -> Attempt | None:
        session = self.get_session(attempt_id)
        try:
            return await session.abandon()
        finally:
            if session.state is SessionState.ABANDONED:
                self._sessions.pop(attempt_id, None)

    def remaining_seconds(self, quiz: Quiz, attempt: Attempt, now: datetime | None = None) -> int:
        """Time left for a resumed attempt under the configured resume policy."""
        duration = quiz.duration_minutes * SECONDS_PER_MINUTE
        if self._settings.resume_policy == RESUME_POLICY_FRESH or attempt.started_at is None:
            return duration
        elapsed = ((now or self._clock()) - attempt.started_at).total_seconds()
        # A start time ahead of the clock never grants more than the full duration.
        return min(duration, max(0, duration - int(elapsed)))

    # --- Results & history ---

    async def load_results(self, attempt_id: str) -> ResultReview:
        """Rebuild a finished attempt from its persisted question ids and regrade it."""
        attempt = await self._store.get_attempt(attempt_id)
        if attempt.status is not AttemptStatus.COMPLETED:
            raise SessionStateError(f"Attempt {attempt_id} has not been completed yet.")
        attempt = replace(attempt, answers=normalize_stored_answers(attempt.answers))
        quiz = await self._catalog.get_quiz(attempt.quiz_id)
        resolved = await self._questions_for(attempt, quiz)
        return build_result_review(attempt, resolved)

    async def list_history(self, student_id: str) -> list[Attempt]:
        return await self._store.list_attempts(student_id=student_id)

    async def shutdown(self) -> None:
        for session in self._sessions.values():
            session.close()
        self._sessions.clear()

    # --- Helpers ---

    def _new_session(self) -> AttemptSession:
        return AttemptSession(self._store, self._settings)

    def _live_session(self, attempt_id: str) -> AttemptSession | None:
        live = self._sessions.get(attempt_id)
        if live is not None and live.state in (SessionState.ACTIVE, SessionState.SUBMITTING):
            return live
        return None

    async def _attach(self, attempt: Attempt, quiz: Quiz) -> AttemptSession:
        resolved = await self._questions_for(attempt, quiz)
        shuffled = self._shuffler.shuffle(resolved)
        remaining = self.remaining_seconds(quiz, attempt)
        session = self._new_session()
        session.start(quiz, shuffled, attempt, time_remaining=remaining)
        self._sessions[attempt.id] = session
        logger.info("Attempt %s resumed with %d second(s) left", attempt.id, remaining)
        return session

    async def _questions_for(self, attempt: Attempt, quiz: Quiz) -> list[ResolvedQuestion]:
        if attempt.question_ids:
            return await self._selector.resolve_by_ids(attempt.question_ids, self._catalog)
        # Records created before question ids were stored.
        logger.warning(
            "Attempt %s has no stored question ids; reselecting from quiz %s", attempt.id, quiz.id
        )
        return await self._selector.select(quiz.topic_configs, self._catalog)

    def _prune_finished_sessions(self) -> None:
        finished = [
            attempt_id
            for attempt_id, session in self._sessions.items()
            if session.state in _TERMINAL_STATES
        ]
        for attempt_id in finished:
            self._sessions.pop(attempt_id)

    @staticmethod
    def _check_owner(attempt: Attempt | None, student_id: str | None) -> None:
        if attempt is None or student_id is None:
            return
        if attempt.student_id != student_id:
            raise NotFoundError(f"Attempt {attempt.id!r} not found")
