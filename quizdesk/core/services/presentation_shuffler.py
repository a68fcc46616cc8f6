"""Shuffles option order per question while keeping the canonical mapping."""

from __future__ import annotations

import random
from typing import Sequence

from quizdesk.core.models import DisplayOption, ResolvedQuestion, ShuffledQuestion


class PresentationShuffler:
    """Produces the student-facing option order for a list of resolved questions.

    Question order is preserved; only the options inside each question move.
    Pass a seeded ``random.Random`` for reproducible output.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def shuffle(self, questions: Sequence[ResolvedQuestion]) -> list[ShuffledQuestion]:
        return [self.shuffle_question(question) for question in questions]

    def shuffle_question(self, resolved: ResolvedQuestion) -> ShuffledQuestion:
        combined = [
            DisplayOption(text=option.text, is_correct=option.is_correct, canonical_index=index)
            for index, option in enumerate(resolved.question.options)
        ]
        self._rng.shuffle(combined)

        correct_display_index = next(
            position
            for position, option in enumerate(combined)
            if option.canonical_index == resolved.correct_canonical_index
        )
        return ShuffledQuestion(
            resolved=resolved,
            display_options=tuple(combined),
            correct_display_index=correct_display_index,
        )
