"""Domain models for the quiz attempt engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from quizdesk.constants.quiz_constants import DEFAULT_QUESTION_POINTS
from quizdesk.core.errors import InvalidAnswerError


class SelectionType(str, Enum):
    """How questions are drawn from one topic."""

    ALL = "all"
    RANDOM = "random"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class AttemptStatus(str, Enum):
    """Persisted lifecycle of an attempt record."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class SessionState(str, Enum):
    """In-memory lifecycle of an attempt session."""

    IDLE = "idle"
    ACTIVE = "active"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


@dataclass(slots=True)
class TopicConfig:
    """A quiz's declaration of which questions to draw from one topic."""

    topic_id: str
    selection_type: SelectionType = SelectionType.ALL
    random_count: int | None = None


@dataclass(slots=True)
class Quiz:
    id: str
    title: str
    duration_minutes: int
    topic_configs: list[TopicConfig] = field(default_factory=list)
    description: str = ""
    is_published: bool = False
    book_ids: list[str] = field(default_factory=list)
    total_points: int = 0
    total_questions: int = 0


@dataclass(frozen=True, slots=True)
class QuestionOption:
    text: str
    is_correct: bool = False


@dataclass(slots=True)
class Question:
    """Canonical question record as supplied by the catalog."""

    id: str
    topic_id: str
    text: str
    options: list[QuestionOption]
    type: QuestionType = QuestionType.MULTIPLE_CHOICE
    points: int = DEFAULT_QUESTION_POINTS
    difficulty: Difficulty = Difficulty.MEDIUM
    explanation: str = ""
    book_id: str | None = None


@dataclass(frozen=True, slots=True)
class ResolvedQuestion:
    """A selected question together with the canonical index of its correct option."""

    question: Question
    correct_canonical_index: int

    @property
    def id(self) -> str:
        return self.question.id

    @property
    def points(self) -> int:
        return self.question.points


@dataclass(frozen=True, slots=True)
class DisplayOption:
    text: str
    is_correct: bool
    canonical_index: int


@dataclass(frozen=True, slots=True)
class ShuffledQuestion:
    """Student-facing view of a question with its options in display order."""

    resolved: ResolvedQuestion
    display_options: tuple[DisplayOption, ...]
    correct_display_index: int

    @property
    def id(self) -> str:
        return self.resolved.question.id

    @property
    def question(self) -> Question:
        return self.resolved.question

    @property
    def points(self) -> int:
        return self.resolved.question.points

    @property
    def correct_canonical_index(self) -> int:
        return self.resolved.correct_canonical_index

    def to_canonical(self, display_index: int) -> int:
        """Translate a display index into the option's canonical index."""
        if not 0 <= display_index < len(self.display_options):
            raise InvalidAnswerError(
                f"Option index {display_index} out of range for question {self.id}."
            )
        return self.display_options[display_index].canonical_index

    def to_display(self, canonical_index: int) -> int | None:
        for position, option in enumerate(self.display_options):
            if option.canonical_index == canonical_index:
                return position
        return None


@dataclass(frozen=True, slots=True)
class AttemptAnswer:
    """A student's choice for one question, always expressed as a canonical index."""

    question_id: str
    selected_canonical_index: int | None = None

    @property
    def is_skipped(self) -> bool:
        return self.selected_canonical_index is None


@dataclass(slots=True)
class Attempt:
    id: str
    quiz_id: str
    student_id: str
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    started_at: datetime | None = None
    completed_at: datetime | None = None
    answers: list[AttemptAnswer] = field(default_factory=list)
    points_earned: int = 0
    total_points: int = 0
    percentage: int = 0
    question_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class GradeResult:
    answers: tuple[AttemptAnswer, ...]
    points_earned: int
    total_points: int
    percentage: int
    correct_count: int


@dataclass(frozen=True, slots=True)
class Progress:
    total: int
    answered: int
    unanswered: int
    percentage: int
