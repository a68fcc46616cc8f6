from __future__ import annotations

from datetime import datetime, timedelta, timezone
import random

import pytest

from quizdesk.core.errors import PersistenceError
from quizdesk.core.models import (
    Question,
    QuestionOption,
    QuestionType,
    Quiz,
    SelectionType,
    TopicConfig,
)
from quizdesk.core.services.attempt_store import InMemoryAttemptStore
from quizdesk.core.services.catalog import InMemoryCatalog
from quizdesk.core.settings import EngineSettings


def make_question(
    question_id: str,
    topic_id: str = "topic-1",
    option_count: int = 4,
    correct_index: int = 0,
    points: int = 1,
    question_type: QuestionType = QuestionType.MULTIPLE_CHOICE,
) -> Question:
    return Question(
        id=question_id,
        topic_id=topic_id,
        text=f"Question {question_id}?",
        options=[
            QuestionOption(text=f"{question_id} option {index}", is_correct=index == correct_index)
            for index in range(option_count)
        ],
        type=question_type,
        points=points,
        explanation=f"Because {question_id}.",
    )


def make_quiz(
    quiz_id: str = "quiz-1",
    configs: list[TopicConfig] | None = None,
    duration_minutes: int = 10,
    is_published: bool = True,
) -> Quiz:
    return Quiz(
        id=quiz_id,
        title=f"Quiz {quiz_id}",
        duration_minutes=duration_minutes,
        topic_configs=configs or [TopicConfig(topic_id="topic-1", selection_type=SelectionType.ALL)],
        is_published=is_published,
    )


class FakeClock:
    """Deterministic clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FlakyAttemptStore(InMemoryAttemptStore):
    """In-memory store whose ``complete_attempt`` fails a set number of times."""

    def __init__(self, failures: int = 0, **kwargs) -> None:
        super().__init__(**kwargs)
        self.failures_left = failures
        self.complete_calls: list[tuple] = []

    async def complete_attempt(self, attempt_id, answers, points_earned, total_points, percentage):
        answers = list(answers)
        self.complete_calls.append((attempt_id, answers, points_earned, total_points, percentage))
        if self.failures_left > 0:
            self.failures_left -= 1
            raise PersistenceError("store unavailable")
        return await super().complete_attempt(
            attempt_id, answers, points_earned, total_points, percentage
        )


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def quiet_settings() -> EngineSettings:
    """Settings for tests that drive the timer by hand."""
    return EngineSettings(run_countdown=False, submit_retry_attempts=3, submit_retry_backoff_seconds=0.5)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def catalog() -> InMemoryCatalog:
    catalog = InMemoryCatalog()
    catalog.add_questions(make_question(f"t1-q{index}", topic_id="topic-1") for index in range(5))
    catalog.add_questions(
        make_question(f"t2-q{index}", topic_id="topic-2", option_count=2, correct_index=1, points=2)
        for index in range(3)
    )
    catalog.add_quiz(
        make_quiz(
            "mixed",
            configs=[
                TopicConfig(topic_id="topic-1", selection_type=SelectionType.RANDOM, random_count=3),
                TopicConfig(topic_id="topic-2", selection_type=SelectionType.ALL),
            ],
        )
    )
    catalog.add_quiz(make_quiz("draft", is_published=False))
    catalog.add_quiz(
        make_quiz("empty", configs=[TopicConfig(topic_id="no-such-topic", selection_type=SelectionType.ALL)])
    )
    return catalog
