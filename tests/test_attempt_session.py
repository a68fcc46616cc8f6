from __future__ import annotations

import asyncio
import random

import pytest

from conftest import FlakyAttemptStore, RecordingSleep, make_question, make_quiz
from quizdesk.core.errors import (
    EmptyQuizError,
    InvalidAnswerError,
    SessionStateError,
    SubmissionFailedError,
)
from quizdesk.core.models import AttemptStatus, QuestionType, SessionState
from quizdesk.core.services.attempt_session import AttemptSession, format_time_remaining
from quizdesk.core.services.attempt_store import InMemoryAttemptStore
from quizdesk.core.services.presentation_shuffler import PresentationShuffler
from quizdesk.core.services.question_selector import resolve_question
from quizdesk.core.settings import EngineSettings


def _shuffled(questions, seed=3):
    return PresentationShuffler(random.Random(seed)).shuffle([resolve_question(q) for q in questions])


def _three_questions():
    return _shuffled(
        [
            make_question("q1", correct_index=1, points=1),
            make_question("q2", correct_index=2, points=2),
            make_question("q3", option_count=2, correct_index=0, points=3, question_type=QuestionType.TRUE_FALSE),
        ]
    )


async def _started_session(store, settings, questions=None, duration_minutes=10):
    questions = questions or _three_questions()
    quiz = make_quiz(duration_minutes=duration_minutes)
    attempt = await store.create_attempt(quiz.id, "student-1", [q.id for q in questions])
    session = AttemptSession(store, settings, sleep=RecordingSleep())
    session.start(quiz, questions, attempt)
    return session


def test_start_sets_full_duration_and_first_question(quiet_settings):
    async def scenario():
        session = await _started_session(InMemoryAttemptStore(), quiet_settings, duration_minutes=2)
        assert session.state is SessionState.ACTIVE
        assert session.time_remaining == 120
        assert session.current_index == 0
        assert session.current_question().id == "q1"

    asyncio.run(scenario())


def test_start_rejects_empty_question_list(quiet_settings):
    async def scenario():
        store = InMemoryAttemptStore()
        attempt = await store.create_attempt("quiz-1", "student-1", [])
        with pytest.raises(EmptyQuizError):
            AttemptSession(store, quiet_settings).start(make_quiz(), [], attempt)

    asyncio.run(scenario())


def test_set_answer_stores_canonical_index(quiet_settings):
    async def scenario():
        session = await _started_session(InMemoryAttemptStore(), quiet_settings)
        question = session.questions[1]
        display_index = question.correct_display_index

        stored = session.set_answer("q2", display_index)

        assert stored == question.correct_canonical_index == 2
        assert session.get_answers() == {"q2": 2}
        assert session.get_selected_display_index("q2") == display_index

    asyncio.run(scenario())


@pytest.mark.parametrize("value", [True, 1.5, [0], {"index": 0}, "one"])
def test_unsupported_answer_shapes_are_rejected(quiet_settings, value):
    async def scenario():
        session = await _started_session(InMemoryAttemptStore(), quiet_settings)
        with pytest.raises(InvalidAnswerError):
            session.set_answer("q1", value)

    asyncio.run(scenario())


def test_numeric_string_answer_is_normalized(quiet_settings):
    async def scenario():
        session = await _started_session(InMemoryAttemptStore(), quiet_settings)
        expected = session.questions[0].to_canonical(2)
        assert session.set_answer("q1", " 2 ") == expected

    asyncio.run(scenario())


def test_none_answer_skips_and_clear_removes(quiet_settings):
    async def scenario():
        session = await _started_session(InMemoryAttemptStore(), quiet_settings)
        session.set_answer("q1", 0)
        session.set_answer("q1", None)
        assert session.get_answers() == {"q1": None}
        session.clear_answer("q1")
        assert session.get_answers() == {}

    asyncio.run(scenario())


def test_unknown_question_and_out_of_range_index(quiet_settings):
    async def scenario():
        session = await _started_session(InMemoryAttemptStore(), quiet_settings)
        with pytest.raises(InvalidAnswerError):
            session.set_answer("nope", 0)
        with pytest.raises(InvalidAnswerError):
            session.set_answer("q3", 2)

    asyncio.run(scenario())


def test_navigation_is_clamped(quiet_settings):
    async def scenario():
        session = await _started_session(InMemoryAttemptStore(), quiet_settings)
        assert session.previous_question() == 0
        assert session.next_question() == 1
        assert session.next_question() == 2
        assert session.next_question() == 2
        assert session.go_to_question(-5) == 0
        assert session.go_to_question(99) == 2

    asyncio.run(scenario())


def test_mark_for_review_and_progress(quiet_settings):
    async def scenario():
        session = await _started_session(InMemoryAttemptStore(), quiet_settings)
        assert session.toggle_mark_for_review("q2") is True
        assert session.is_marked_for_review("q2")
        assert session.toggle_mark_for_review("q2") is False
        assert session.marked_for_review == frozenset()

        session.set_answer("q1", 0)
        session.set_answer("q2", None)
        progress = session.progress()
        assert (progress.total, progress.answered, progress.unanswered, progress.percentage) == (3, 1, 2, 33)
        assert not session.has_answered_all()

    asyncio.run(scenario())


def test_timeout_auto_submits_with_zero_points(quiet_settings):
    async def scenario():
        store = InMemoryAttemptStore()
        session = await _started_session(store, quiet_settings, duration_minutes=1)
        assert session.time_remaining == 60

        for _ in range(59):
            assert await session.tick() is True
        assert session.state is SessionState.ACTIVE
        assert await session.tick() is False

        assert session.state is SessionState.COMPLETED
        completed = session.completed_attempt
        assert completed.status is AttemptStatus.COMPLETED
        assert completed.points_earned == 0
        assert completed.total_points == 6
        assert (await store.get_attempt(completed.id)).total_points == 6

    asyncio.run(scenario())


def test_submit_grades_and_clears_memory(quiet_settings):
    async def scenario():
        store = InMemoryAttemptStore()
        session = await _started_session(store, quiet_settings)
        for question in session.questions[:2]:
            session.set_answer(question.id, question.correct_display_index)

        completed = await session.submit()

        assert session.state is SessionState.COMPLETED
        assert (completed.points_earned, completed.total_points, completed.percentage) == (3, 6, 50)
        assert [a.selected_canonical_index for a in completed.answers] == [1, 2, None]
        assert session.questions == ()
        assert session.get_answers() == {}
        with pytest.raises(SessionStateError):
            session.set_answer("q1", 0)
        assert await session.submit() is completed

    asyncio.run(scenario())


def test_transient_store_failure_is_retried_with_backoff(quiet_settings):
    async def scenario():
        store = FlakyAttemptStore(failures=2)
        session = await _started_session(store, quiet_settings)
        sleep = session._sleep

        completed = await session.submit()

        assert completed.status is AttemptStatus.COMPLETED
        assert len(store.complete_calls) == 3
        assert sleep.delays == [0.5, 1.0]

    asyncio.run(scenario())


def test_exhausted_retries_keep_session_submitting_with_grade(quiet_settings):
    async def scenario():
        store = FlakyAttemptStore(failures=4)
        session = await _started_session(store, quiet_settings)
        question = session.questions[0]
        session.set_answer(question.id, question.correct_display_index)

        with pytest.raises(SubmissionFailedError) as excinfo:
            await session.submit()

        assert session.state is SessionState.SUBMITTING
        assert excinfo.value.grade.points_earned == 1
        assert session.submission_error is excinfo.value
        with pytest.raises(SessionStateError):
            session.set_answer(question.id, None)

        completed = await session.submit()

        assert session.state is SessionState.COMPLETED
        assert completed.points_earned == 1
        assert session.submission_error is None
        graded_payloads = {call[2:] for call in store.complete_calls}
        assert graded_payloads == {(1, 6, 17)}

    asyncio.run(scenario())


def test_failed_auto_submit_is_reported_not_lost(quiet_settings):
    async def scenario():
        store = FlakyAttemptStore(failures=10)
        session = await _started_session(store, quiet_settings, duration_minutes=1)
        session._time_remaining = 1

        assert await session.tick() is False

        assert session.state is SessionState.SUBMITTING
        assert isinstance(session.submission_error, SubmissionFailedError)

    asyncio.run(scenario())


def test_abandon_marks_store_and_clears_memory(quiet_settings):
    async def scenario():
        store = InMemoryAttemptStore()
        session = await _started_session(store, quiet_settings)
        session.set_answer("q1", 0)

        attempt = await session.abandon()

        assert session.state is SessionState.ABANDONED
        assert attempt.status is AttemptStatus.ABANDONED
        assert (await store.get_attempt(attempt.id)).status is AttemptStatus.ABANDONED
        assert session.get_answers() == {}
        with pytest.raises(SessionStateError):
            await session.submit()

    asyncio.run(scenario())


def test_abandon_can_leave_store_record_in_progress():
    async def scenario():
        store = InMemoryAttemptStore()
        settings = EngineSettings(run_countdown=False, mark_abandoned_on_exit=False)
        session = await _started_session(store, settings)

        assert await session.abandon() is None
        assert (await store.get_attempt(session.attempt_id)).status is AttemptStatus.IN_PROGRESS

    asyncio.run(scenario())


def test_countdown_task_drives_auto_submit():
    async def scenario():
        store = InMemoryAttemptStore()
        settings = EngineSettings(tick_interval_seconds=0.001)
        session = await _started_session(store, settings)
        session._time_remaining = 3

        for _ in range(500):
            if session.state is SessionState.COMPLETED:
                break
            await asyncio.sleep(0.005)

        assert session.state is SessionState.COMPLETED
        assert session.completed_attempt.total_points == 6

    asyncio.run(scenario())


def test_close_stops_the_countdown():
    async def scenario():
        settings = EngineSettings(tick_interval_seconds=0.001)
        session = await _started_session(InMemoryAttemptStore(), settings)
        session.close()
        before = session.time_remaining
        await asyncio.sleep(0.02)
        assert session.time_remaining == before
        assert session.state is SessionState.ACTIVE

    asyncio.run(scenario())


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [(0, "0:00"), (59, "0:59"), (600, "10:00"), (3600, "1:00:00"), (3725, "1:02:05")],
)
def test_time_formatting(seconds, expected):
    assert format_time_remaining(seconds) == expected
