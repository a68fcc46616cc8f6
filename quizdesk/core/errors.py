"""Exceptions raised by the quiz attempt engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from quizdesk.core.models import GradeResult


class QuizEngineError(Exception):
    """Base class for all engine errors."""


class EmptyQuizError(QuizEngineError):
    """Raised when a quiz resolves to no questions at all."""


class SelectionConfigError(QuizEngineError):
    """Raised when a topic configuration or its question pool is malformed."""


class NotFoundError(QuizEngineError):
    """Raised when a quiz, question or attempt does not exist."""


class QuizNotAvailableError(QuizEngineError):
    """Raised when a student tries to start an unpublished quiz."""


class SessionStateError(QuizEngineError):
    """Raised when an operation is not allowed in the session's current state."""


class InvalidAnswerError(QuizEngineError):
    """Raised when an answer has an unsupported shape or references nothing."""


class PersistenceError(QuizEngineError):
    """Raised when the attempt store cannot complete a write."""


class SubmissionFailedError(PersistenceError):
    """Raised when a graded attempt could not be persisted after all retries.

    The session stays in the submitting state and keeps ``grade`` so the
    caller can retry without regrading.
    """

    def __init__(self, message: str, grade: GradeResult) -> None:
        super().__init__(message)
        self.grade = grade


class CatalogImportError(QuizEngineError):
    """Raised when a catalog definition file cannot be parsed."""
