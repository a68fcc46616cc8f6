"""Read-only catalog contract and an in-memory implementation of it."""

from __future__ import annotations

from typing import Iterable, Protocol

from quizdesk.core.errors import NotFoundError
from quizdesk.core.models import (
    Question,
    QuestionOption,
    QuestionType,
    Quiz,
    SelectionType,
    TopicConfig,
)


class CatalogReader(Protocol):
    """Source of quizzes and canonical questions consumed by the engine."""

    async def get_quiz(self, quiz_id: str) -> Quiz: ...

    async def list_questions_by_topic(self, topic_id: str) -> list[Question]:
        """Return every question of the topic; implementations must not paginate."""
        ...

    async def get_questions_by_ids(self, question_ids: Iterable[str]) -> list[Question]: ...


class InMemoryCatalog:
    """Catalog held in process memory, validated on insertion."""

    def __init__(self) -> None:
        self._quizzes: dict[str, Quiz] = {}
        self._questions: dict[str, Question] = {}
        self._topic_index: dict[str, list[str]] = {}

    # --- Authoring ---

    def add_quiz(self, quiz: Quiz) -> Quiz:
        prepared = self._prepare_quiz(quiz)
        self._quizzes[prepared.id] = prepared
        return prepared

    def add_question(self, question: Question) -> Question:
        prepared = self._prepare_question(question)
        previous = self._questions.get(prepared.id)
        if previous is not None:
            self._topic_index[previous.topic_id].remove(previous.id)
        self._questions[prepared.id] = prepared
        self._topic_index.setdefault(prepared.topic_id, []).append(prepared.id)
        return prepared

    def add_questions(self, questions: Iterable[Question]) -> None:
        for question in questions:
            self.add_question(question)

    def list_quizzes(self, published_only: bool = False) -> list[Quiz]:
        quizzes = list(self._quizzes.values())
        if published_only:
            quizzes = [quiz for quiz in quizzes if quiz.is_published]
        return quizzes

    def count_questions(self, topic_id: str) -> int:
        return len(self._topic_index.get(topic_id, []))

    # --- CatalogReader ---

    async def get_quiz(self, quiz_id: str) -> Quiz:
        quiz = self._quizzes.get(quiz_id)
        if quiz is None:
            raise NotFoundError(f"Quiz {quiz_id!r} not found")
        return quiz

    async def list_questions_by_topic(self, topic_id: str) -> list[Question]:
        return [self._questions[question_id] for question_id in self._topic_index.get(topic_id, [])]

    async def get_questions_by_ids(self, question_ids: Iterable[str]) -> list[Question]:
        return [self._questions[qid] for qid in question_ids if qid in self._questions]

    # --- Validation ---

    @staticmethod
    def _prepare_quiz(quiz: Quiz) -> Quiz:
        title = quiz.title.strip()
        if not title:
            raise ValueError("Quiz title must not be empty.")
        if not isinstance(quiz.duration_minutes, int) or quiz.duration_minutes <= 0:
            raise ValueError("Quiz duration must be a positive number of minutes.")
        if not quiz.topic_configs:
            raise ValueError("At least one topic configuration is required.")
        for config in quiz.topic_configs:
            _validate_topic_config(config)
        return Quiz(
            id=quiz.id,
            title=title,
            duration_minutes=quiz.duration_minutes,
            topic_configs=list(quiz.topic_configs),
            description=quiz.description.strip(),
            is_published=quiz.is_published,
            book_ids=list(quiz.book_ids),
            total_points=quiz.total_points,
            total_questions=quiz.total_questions,
        )

    @staticmethod
    def _prepare_question(question: Question) -> Question:
        text = question.text.strip()
        if not text:
            raise ValueError("Question text must not be empty.")
        options = [QuestionOption(option.text.strip(), bool(option.is_correct)) for option in question.options]
        if len(options) < 2:
            raise ValueError(f"Question {question.id!r} needs at least two options.")
        if any(not option.text for option in options):
            raise ValueError("Option text cannot be empty.")
        if question.type is QuestionType.TRUE_FALSE and len(options) != 2:
            raise ValueError(f"True/false question {question.id!r} must have exactly two options.")
        correct = sum(1 for option in options if option.is_correct)
        if correct != 1:
            raise ValueError(
                f"Question {question.id!r} must have exactly one correct option, found {correct}."
            )
        if not isinstance(question.points, int) or question.points <= 0:
            raise ValueError("Question points must be a positive integer.")
        return Question(
            id=question.id,
            topic_id=question.topic_id,
            text=text,
            options=options,
            type=question.type,
            points=question.points,
            difficulty=question.difficulty,
            explanation=question.explanation.strip(),
            book_id=question.book_id,
        )


def _validate_topic_config(config: TopicConfig) -> None:
    if not config.topic_id:
        raise ValueError("Topic configuration is missing its topic id.")
    if config.selection_type is SelectionType.RANDOM:
        if not isinstance(config.random_count, int) or config.random_count <= 0:
            raise ValueError(
                f"Random selection for topic {config.topic_id!r} needs a positive count."
            )
    elif config.random_count is not None:
        raise ValueError(
            f"Topic {config.topic_id!r} selects all questions and must not set a random count."
        )
