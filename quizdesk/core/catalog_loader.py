"""Load a quiz catalog from a JSON document.

Document shape::

    {
      "quizzes": [
        {"id": "q1", "title": "Cells", "duration_minutes": 10, "is_published": true,
         "topic_configs": [{"topic_id": "t1", "selection_type": "random", "random_count": 2}]}
      ],
      "questions": [
        {"id": "a", "topic_id": "t1", "text": "Powerhouse of the cell?",
         "type": "multiple_choice", "points": 1, "difficulty": "easy",
         "options": [{"text": "Mitochondria", "is_correct": true}, {"text": "Ribosome"}]}
      ]
    }

Topic configs and options may also be given as JSON-encoded strings, the way
older exports stored them.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from quizdesk.constants.quiz_constants import DEFAULT_QUESTION_POINTS
from quizdesk.core.errors import CatalogImportError
from quizdesk.core.models import (
    Difficulty,
    Question,
    QuestionOption,
    QuestionType,
    Quiz,
    SelectionType,
    TopicConfig,
)
from quizdesk.core.services.catalog import InMemoryCatalog


def load_catalog_from_file(file_path: Path) -> InMemoryCatalog:
    try:
        document = json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise CatalogImportError(f"{file_path} is not valid JSON: {exc}") from exc
    return load_catalog(document)


def load_catalog(document: Any) -> InMemoryCatalog:
    if not isinstance(document, dict):
        raise CatalogImportError("Catalog document must be a JSON object.")
    catalog = InMemoryCatalog()
    # Questions first so quizzes can be checked against their pools.
    for raw in _as_list(document.get("questions", []), "questions"):
        question = _parse_question(raw)
        try:
            catalog.add_question(question)
        except ValueError as exc:
            raise CatalogImportError(str(exc)) from exc
    for raw in _as_list(document.get("quizzes", []), "quizzes"):
        quiz = _parse_quiz(raw)
        try:
            catalog.add_quiz(quiz)
        except ValueError as exc:
            raise CatalogImportError(f"Quiz {quiz.id!r}: {exc}") from exc
        for config in quiz.topic_configs:
            available = catalog.count_questions(config.topic_id)
            if config.selection_type is SelectionType.RANDOM and config.random_count > available:
                raise CatalogImportError(
                    f"Quiz {quiz.id!r} asks for {config.random_count} random question(s) "
                    f"from topic {config.topic_id!r}, which only has {available}."
                )
    return catalog


def _parse_quiz(raw: Any) -> Quiz:
    raw = _decode(raw, "quiz")
    quiz_id = _require(raw, "id", "quiz")
    configs = [_parse_topic_config(item, quiz_id) for item in _as_list(raw.get("topic_configs", []), "topic_configs")]
    return Quiz(
        id=str(quiz_id),
        title=str(raw.get("title", "")),
        description=str(raw.get("description", "")),
        duration_minutes=_as_int(raw.get("duration_minutes"), f"quiz {quiz_id!r} duration_minutes"),
        topic_configs=configs,
        is_published=bool(raw.get("is_published", False)),
        book_ids=[str(book_id) for book_id in raw.get("book_ids", [])],
        total_points=_as_int(raw.get("total_points", 0), f"quiz {quiz_id!r} total_points"),
        total_questions=_as_int(raw.get("total_questions", 0), f"quiz {quiz_id!r} total_questions"),
    )


def _parse_topic_config(raw: Any, quiz_id: str) -> TopicConfig:
    raw = _decode(raw, f"topic config of quiz {quiz_id!r}")
    topic_id = _require(raw, "topic_id", f"topic config of quiz {quiz_id!r}")
    try:
        selection_type = SelectionType(raw.get("selection_type", SelectionType.ALL.value))
    except ValueError as exc:
        raise CatalogImportError(
            f"Quiz {quiz_id!r}: unknown selection type {raw.get('selection_type')!r}."
        ) from exc
    random_count = raw.get("random_count")
    if selection_type is SelectionType.RANDOM:
        random_count = _as_int(random_count, f"random_count for topic {topic_id!r}")
    elif random_count is not None:
        # Authoring tools sometimes leave a stale count on "all" topics.
        random_count = None
    return TopicConfig(topic_id=str(topic_id), selection_type=selection_type, random_count=random_count)


def _parse_question(raw: Any) -> Question:
    raw = _decode(raw, "question")
    question_id = _require(raw, "id", "question")
    options = [_parse_option(item, question_id) for item in _decode_options(raw.get("options", []), question_id)]
    try:
        question_type = QuestionType(raw.get("type", QuestionType.MULTIPLE_CHOICE.value))
        difficulty = Difficulty(raw.get("difficulty", Difficulty.MEDIUM.value))
    except ValueError as exc:
        raise CatalogImportError(f"Question {question_id!r}: {exc}") from exc
    return Question(
        id=str(question_id),
        topic_id=str(_require(raw, "topic_id", f"question {question_id!r}")),
        text=str(raw.get("text", "")),
        options=options,
        type=question_type,
        points=_as_int(raw.get("points", DEFAULT_QUESTION_POINTS), f"question {question_id!r} points"),
        difficulty=difficulty,
        explanation=str(raw.get("explanation") or ""),
        book_id=raw.get("book_id"),
    )


def _parse_option(raw: Any, question_id: str) -> QuestionOption:
    raw = _decode(raw, f"option of question {question_id!r}")
    return QuestionOption(text=str(raw.get("text", "")), is_correct=bool(raw.get("is_correct", raw.get("isCorrect", False))))


def _decode_options(raw: Any, question_id: str) -> list[Any]:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CatalogImportError(f"Options of question {question_id!r} are not valid JSON.") from exc
    return _as_list(raw, f"options of question {question_id!r}")


def _decode(raw: Any, label: str) -> dict[str, Any]:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CatalogImportError(f"Could not decode {label}: {exc}") from exc
    if not isinstance(raw, dict):
        raise CatalogImportError(f"Expected an object for {label}, got {type(raw).__name__}.")
    return raw


def _as_list(raw: Any, label: str) -> list[Any]:
    if not isinstance(raw, list):
        raise CatalogImportError(f"Expected a list for {label}.")
    return raw


def _require(raw: dict[str, Any], key: str, label: str) -> Any:
    value = raw.get(key)
    if value in (None, ""):
        raise CatalogImportError(f"Missing '{key}' in {label}.")
    return value


def _as_int(value: Any, label: str) -> int:
    if isinstance(value, bool):
        raise CatalogImportError(f"{label} must be an integer.")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise CatalogImportError(f"{label} must be an integer.") from exc
