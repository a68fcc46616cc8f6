"""FastAPI server that exposes the student quiz-taking endpoints."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
from typing import AsyncIterator, Literal

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, StrictInt
import uvicorn

from quizdesk.constants.about import APP_ABOUT_TEXT, APP_LICENSE, APP_NAME, APP_VERSION
from quizdesk.core.attempt_manager import AttemptManager
from quizdesk.core.errors import (
    EmptyQuizError,
    InvalidAnswerError,
    NotFoundError,
    PersistenceError,
    QuizNotAvailableError,
    SessionStateError,
    SubmissionFailedError,
)
from quizdesk.core.markdown_renderer import renderer
from quizdesk.core.models import Attempt, AttemptStatus, Quiz, SessionState, ShuffledQuestion
from quizdesk.core.services.attempt_session import AttemptSession
from quizdesk.core.services.grader import ResultReview

logger = logging.getLogger(__name__)


class StartPayload(BaseModel):
    """Payload schema for starting or resuming an attempt."""

    student_id: str = Field(min_length=1)


class AnswerPayload(BaseModel):
    """Payload schema for a selected option; ``None`` skips the question.

    Strict so that JSON booleans are rejected instead of read as 0 or 1.
    """

    display_index: StrictInt | None = None


class NavigatePayload(BaseModel):
    action: Literal["next", "previous", "goto"]
    index: StrictInt | None = None


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _quiz_payload(quiz: Quiz) -> dict[str, object]:
    return {
        "quiz_id": quiz.id,
        "title": quiz.title,
        "description_html": renderer.render_block(quiz.description),
        "duration_minutes": quiz.duration_minutes,
        "book_ids": list(quiz.book_ids),
        "total_points": quiz.total_points,
        "total_questions": quiz.total_questions,
    }


def _attempt_payload(attempt: Attempt) -> dict[str, object]:
    return {
        "attempt_id": attempt.id,
        "quiz_id": attempt.quiz_id,
        "student_id": attempt.student_id,
        "status": attempt.status.value,
        "started_at": _iso(attempt.started_at),
        "completed_at": _iso(attempt.completed_at) if attempt.status is AttemptStatus.COMPLETED else None,
        "points_earned": attempt.points_earned,
        "total_points": attempt.total_points,
        "percentage": attempt.percentage,
        "question_ids": list(attempt.question_ids),
    }


def _question_payload(session: AttemptSession, question: ShuffledQuestion) -> dict[str, object]:
    # The correct option is never sent while the attempt is being taken.
    return {
        "question_id": question.id,
        "type": question.question.type.value,
        "points": question.points,
        "question_html": renderer.render_block(question.question.text),
        "options": [renderer.render_inline(option.text) for option in question.display_options],
        "selected_display_index": session.get_selected_display_index(question.id),
        "marked_for_review": session.is_marked_for_review(question.id),
    }


def _session_payload(session: AttemptSession) -> dict[str, object]:
    payload: dict[str, object] = {
        "attempt_id": session.attempt_id,
        "state": session.state.value,
    }
    if session.state is SessionState.ACTIVE:
        progress = session.progress()
        current = session.current_question()
        payload.update(
            {
                "quiz_title": session.quiz.title if session.quiz else None,
                "current_index": session.current_index,
                "question_count": len(session.questions),
                "time_remaining_seconds": session.time_remaining,
                "time_remaining": session.time_remaining_formatted(),
                "low_time": session.is_low_time,
                "progress": {
                    "total": progress.total,
                    "answered": progress.answered,
                    "unanswered": progress.unanswered,
                    "percentage": progress.percentage,
                },
                "question": _question_payload(session, current) if current else None,
            }
        )
    elif session.state is SessionState.SUBMITTING and session.submission_error is not None:
        payload["error"] = {"detail": str(session.submission_error), "retryable": True}
    elif session.state is SessionState.COMPLETED and session.completed_attempt is not None:
        payload["attempt"] = _attempt_payload(session.completed_attempt)
    return payload


def _review_payload(review: ResultReview) -> dict[str, object]:
    return {
        "attempt": _attempt_payload(review.attempt),
        "points_earned": review.points_earned,
        "total_points": review.total_points,
        "percentage": review.percentage,
        "correct_count": review.correct_count,
        "questions": [
            {
                "question_id": row.question.id,
                "question_html": renderer.render_block(row.question.text),
                "options": [renderer.render_inline(option.text) for option in row.question.options],
                "selected_canonical_index": row.selected_canonical_index,
                "correct_canonical_index": row.correct_canonical_index,
                "is_correct": row.is_correct,
                "skipped": row.is_skipped,
                "points": row.question.points,
                "points_awarded": row.points_awarded,
                "explanation_html": renderer.render_block(row.question.explanation),
            }
            for row in review.rows
        ],
    }


def _get_manager_dependency(manager: AttemptManager):
    def dependency() -> AttemptManager:
        return manager

    return dependency


def _session_or_404(manager: AttemptManager, attempt_id: str) -> AttemptSession:
    try:
        return manager.get_session(attempt_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def create_api_app(manager: AttemptManager) -> FastAPI:
    """Create a FastAPI application wired to the provided attempt manager."""
    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        await manager.shutdown()

    app = FastAPI(
        title=f"{APP_NAME} API",
        version=APP_VERSION,
        description=APP_ABOUT_TEXT,
        license_info={"name": APP_LICENSE},
        lifespan=lifespan,
    )
    manager_dep = _get_manager_dependency(manager)

    @app.exception_handler(SubmissionFailedError)
    async def submission_failed(_request, exc: SubmissionFailedError) -> JSONResponse:
        logger.error("Submission failed: %s", exc)
        return JSONResponse(status_code=503, content={"detail": str(exc), "retryable": True})

    @app.get("/quizzes/{quiz_id}")
    async def get_quiz(
        quiz_id: str, manager: AttemptManager = Depends(manager_dep)
    ) -> dict[str, object]:
        try:
            quiz = await manager.get_quiz(quiz_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        if not quiz.is_published:
            raise HTTPException(status_code=403, detail=f"Quiz {quiz_id!r} is not available.")
        return _quiz_payload(quiz)

    @app.post("/quizzes/{quiz_id}/attempts", status_code=201)
    async def start_attempt(
        quiz_id: str,
        payload: StartPayload,
        manager: AttemptManager = Depends(manager_dep),
    ) -> dict[str, object]:
        try:
            quiz = await manager.get_quiz(quiz_id)
            if not quiz.is_published:
                raise QuizNotAvailableError(f"Quiz {quiz_id!r} is not available.")
            session = await manager.start_quiz(quiz_id, payload.student_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except QuizNotAvailableError as exc:
            raise HTTPException(status_code=403, detail=str(exc)) from exc
        except EmptyQuizError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except PersistenceError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return _session_payload(session)

    @app.post("/attempts/{attempt_id}/resume")
    async def resume_attempt(
        attempt_id: str,
        payload: StartPayload,
        manager: AttemptManager = Depends(manager_dep),
    ) -> dict[str, object]:
        try:
            session = await manager.resume_quiz(attempt_id, payload.student_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except SessionStateError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except EmptyQuizError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return _session_payload(session)

    @app.get("/attempts/{attempt_id}/session")
    async def get_session(
        attempt_id: str, manager: AttemptManager = Depends(manager_dep)
    ) -> dict[str, object]:
        return _session_payload(_session_or_404(manager, attempt_id))

    @app.put("/attempts/{attempt_id}/answers/{question_id}")
    async def set_answer(
        attempt_id: str,
        question_id: str,
        payload: AnswerPayload,
        manager: AttemptManager = Depends(manager_dep),
    ) -> dict[str, object]:
        session = _session_or_404(manager, attempt_id)
        try:
            session.set_answer(question_id, payload.display_index)
        except InvalidAnswerError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except SessionStateError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return _session_payload(session)

    @app.delete("/attempts/{attempt_id}/answers/{question_id}")
    async def clear_answer(
        attempt_id: str,
        question_id: str,
        manager: AttemptManager = Depends(manager_dep),
    ) -> dict[str, object]:
        session = _session_or_404(manager, attempt_id)
        try:
            session.clear_answer(question_id)
        except InvalidAnswerError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except SessionStateError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return _session_payload(session)

    @app.post("/attempts/{attempt_id}/navigate")
    async def navigate(
        attempt_id: str,
        payload: NavigatePayload,
        manager: AttemptManager = Depends(manager_dep),
    ) -> dict[str, object]:
        session = _session_or_404(manager, attempt_id)
        try:
            if payload.action == "next":
                session.next_question()
            elif payload.action == "previous":
                session.previous_question()
            else:
                if payload.index is None:
                    raise HTTPException(status_code=422, detail="'goto' needs an index.")
                session.go_to_question(payload.index)
        except SessionStateError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return _session_payload(session)

    @app.post("/attempts/{attempt_id}/review/{question_id}")
    async def toggle_review(
        attempt_id: str,
        question_id: str,
        manager: AttemptManager = Depends(manager_dep),
    ) -> dict[str, object]:
        session = _session_or_404(manager, attempt_id)
        try:
            marked = session.toggle_mark_for_review(question_id)
        except InvalidAnswerError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except SessionStateError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return {"question_id": question_id, "marked_for_review": marked}

    @app.post("/attempts/{attempt_id}/submit")
    async def submit_attempt(
        attempt_id: str, manager: AttemptManager = Depends(manager_dep)
    ) -> dict[str, object]:
        _session_or_404(manager, attempt_id)
        try:
            completed = await manager.submit(attempt_id)
        except SessionStateError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return _attempt_payload(completed)

    @app.post("/attempts/{attempt_id}/abandon")
    async def abandon_attempt(
        attempt_id: str, manager: AttemptManager = Depends(manager_dep)
    ) -> dict[str, object]:
        _session_or_404(manager, attempt_id)
        try:
            attempt = await manager.abandon(attempt_id)
        except SessionStateError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except PersistenceError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return {
            "attempt_id": attempt_id,
            "state": SessionState.ABANDONED.value,
            "status": attempt.status.value if attempt else AttemptStatus.IN_PROGRESS.value,
        }

    @app.get("/attempts/{attempt_id}/results")
    async def get_results(
        attempt_id: str, manager: AttemptManager = Depends(manager_dep)
    ) -> dict[str, object]:
        try:
            review = await manager.load_results(attempt_id)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except SessionStateError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return _review_payload(review)

    @app.get("/students/{student_id}/attempts")
    async def list_attempts(
        student_id: str, manager: AttemptManager = Depends(manager_dep)
    ) -> dict[str, object]:
        attempts = await manager.list_history(student_id)
        return {"attempts": [_attempt_payload(attempt) for attempt in attempts]}

    return app


def run_api_server(manager: AttemptManager, host: str, port: int, log_level: str = "info") -> None:
    """Serve the API with uvicorn until interrupted."""
    app = create_api_app(manager)
    config = uvicorn.Config(app=app, host=host, port=port, log_level=log_level.lower())
    server = uvicorn.Server(config)
    server.run()
