"""Grading of finished attempts and review of persisted ones."""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import Any, Iterable, Mapping, Sequence

from quizdesk.core.models import (
    Attempt,
    AttemptAnswer,
    GradeResult,
    Question,
    ResolvedQuestion,
    ShuffledQuestion,
)

logger = logging.getLogger(__name__)


def compute_percentage(part: int, whole: int) -> int:
    """Round ``part / whole * 100`` half up; 0 when ``whole`` is 0."""
    if whole <= 0:
        return 0
    return (part * 200 + whole) // (2 * whole)


def grade(
    shuffled_questions: Sequence[ShuffledQuestion],
    answers_by_question_id: Mapping[str, int | None],
) -> GradeResult:
    """Grade an attempt using canonical indices only.

    A question missing from ``answers_by_question_id`` is treated exactly like
    one mapped to ``None``: it scores nothing but its points still count
    towards the total.
    """
    points_earned = 0
    total_points = 0
    correct_count = 0
    answers: list[AttemptAnswer] = []

    for question in shuffled_questions:
        total_points += question.points
        selected = answers_by_question_id.get(question.id)
        if selected is not None and selected == question.correct_canonical_index:
            points_earned += question.points
            correct_count += 1
        answers.append(AttemptAnswer(question_id=question.id, selected_canonical_index=selected))

    return GradeResult(
        answers=tuple(answers),
        points_earned=points_earned,
        total_points=total_points,
        percentage=compute_percentage(points_earned, total_points),
        correct_count=correct_count,
    )


@dataclass(frozen=True, slots=True)
class ReviewRow:
    question: Question
    selected_canonical_index: int | None
    correct_canonical_index: int
    is_correct: bool
    points_awarded: int

    @property
    def is_skipped(self) -> bool:
        return self.selected_canonical_index is None


@dataclass(frozen=True, slots=True)
class ResultReview:
    attempt: Attempt
    rows: tuple[ReviewRow, ...]
    points_earned: int
    total_points: int
    percentage: int
    correct_count: int


def build_result_review(attempt: Attempt, questions: Sequence[ResolvedQuestion]) -> ResultReview:
    """Regrade a persisted attempt against the questions it actually presented.

    ``questions`` must be rebuilt from ``attempt.question_ids``. Answers may be
    absent, skipped or refer to questions that no longer exist; none of these
    are errors.
    """
    selections: dict[str, int | None] = {}
    for answer in attempt.answers:
        selections[answer.question_id] = answer.selected_canonical_index

    rows: list[ReviewRow] = []
    points_earned = 0
    total_points = 0
    correct_count = 0
    for resolved in questions:
        selected = selections.get(resolved.id)
        is_correct = selected is not None and selected == resolved.correct_canonical_index
        awarded = resolved.points if is_correct else 0
        total_points += resolved.points
        points_earned += awarded
        correct_count += int(is_correct)
        rows.append(
            ReviewRow(
                question=resolved.question,
                selected_canonical_index=selected,
                correct_canonical_index=resolved.correct_canonical_index,
                is_correct=is_correct,
                points_awarded=awarded,
            )
        )

    if not questions:
        total_points = attempt.total_points

    if points_earned != attempt.points_earned and questions:
        logger.warning(
            "Attempt %s stored %d point(s) but regrades to %d",
            attempt.id,
            attempt.points_earned,
            points_earned,
        )

    return ResultReview(
        attempt=attempt,
        rows=tuple(rows),
        points_earned=points_earned,
        total_points=total_points,
        percentage=compute_percentage(points_earned, total_points),
        correct_count=correct_count,
    )


def normalize_stored_answers(raw_answers: Iterable[Any]) -> list[AttemptAnswer]:
    """Read answers from any stored shape into ``AttemptAnswer`` records.

    Accepts ``AttemptAnswer`` instances, dicts (``selected_canonical_index`` or
    the older ``selected_option`` key) and JSON strings of such dicts.
    Unreadable entries are logged and dropped.
    """
    normalized: list[AttemptAnswer] = []
    for raw in raw_answers:
        if isinstance(raw, AttemptAnswer):
            normalized.append(raw)
            continue
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Dropping unreadable stored answer: %r", raw)
                continue
        if not isinstance(raw, dict) or "question_id" not in raw:
            logger.warning("Dropping stored answer with unexpected shape: %r", raw)
            continue
        selected = raw.get("selected_canonical_index", raw.get("selected_option"))
        if isinstance(selected, bool) or not isinstance(selected, (int, type(None))):
            logger.warning("Treating answer for %s as skipped: %r", raw["question_id"], selected)
            selected = None
        normalized.append(
            AttemptAnswer(question_id=str(raw["question_id"]), selected_canonical_index=selected)
        )
    return normalized
