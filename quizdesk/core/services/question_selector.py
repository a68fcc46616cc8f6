"""Turns a quiz's topic configuration into a concrete list of questions."""

from __future__ import annotations

import logging
import random
from typing import Iterable, Mapping, Sequence

from quizdesk.core.errors import EmptyQuizError, SelectionConfigError
from quizdesk.core.models import Question, ResolvedQuestion, SelectionType, TopicConfig
from quizdesk.core.services.catalog import CatalogReader

logger = logging.getLogger(__name__)


class QuestionSelector:
    """Resolves "all" / "random N" topic configs against the catalog."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    async def select(
        self, topic_configs: Sequence[TopicConfig], catalog: CatalogReader
    ) -> list[ResolvedQuestion]:
        """Fetch each configured topic's full pool and resolve the quiz's questions."""
        pools: dict[str, list[Question]] = {}
        for config in topic_configs:
            if config.topic_id not in pools:
                pools[config.topic_id] = await catalog.list_questions_by_topic(config.topic_id)
        return self.resolve(topic_configs, pools)

    def resolve(
        self,
        topic_configs: Sequence[TopicConfig],
        pools: Mapping[str, Sequence[Question]],
    ) -> list[ResolvedQuestion]:
        selected: list[Question] = []
        seen_ids: set[str] = set()
        for config in topic_configs:
            pool = list(pools.get(config.topic_id, ()))
            for question in self._draw(config, pool):
                if question.id in seen_ids:
                    continue
                seen_ids.add(question.id)
                selected.append(question)

        if not selected:
            raise EmptyQuizError("No questions are available for this quiz.")

        # Interleave topics.
        self._rng.shuffle(selected)
        return [resolve_question(question) for question in selected]

    async def resolve_by_ids(
        self, question_ids: Sequence[str], catalog: CatalogReader
    ) -> list[ResolvedQuestion]:
        """Rebuild a previously presented question set in its persisted order."""
        questions = await catalog.get_questions_by_ids(question_ids)
        by_id = {question.id: question for question in questions}
        missing = [qid for qid in question_ids if qid not in by_id]
        if missing:
            logger.warning("Questions %s no longer exist in the catalog", ", ".join(missing))
        resolved = [resolve_question(by_id[qid]) for qid in question_ids if qid in by_id]
        if not resolved:
            raise EmptyQuizError("None of the attempt's questions are available any more.")
        return resolved

    def _draw(self, config: TopicConfig, pool: list[Question]) -> Iterable[Question]:
        if config.selection_type is SelectionType.ALL:
            return pool
        if config.selection_type is SelectionType.RANDOM:
            count = config.random_count or 0
            if count <= 0:
                raise SelectionConfigError(
                    f"Random selection for topic {config.topic_id!r} needs a positive count."
                )
            if len(pool) <= count:
                if len(pool) < count:
                    logger.warning(
                        "Topic %s has %d question(s) but %d were requested; using the whole pool",
                        config.topic_id,
                        len(pool),
                        count,
                    )
                return pool
            return self._rng.sample(pool, count)
        raise SelectionConfigError(f"Unknown selection type: {config.selection_type!r}")


def resolve_question(question: Question) -> ResolvedQuestion:
    """Attach the canonical index of the question's single correct option."""
    correct_indices = [index for index, option in enumerate(question.options) if option.is_correct]
    if len(correct_indices) != 1:
        raise SelectionConfigError(
            f"Question {question.id!r} must have exactly one correct option, "
            f"found {len(correct_indices)}."
        )
    return ResolvedQuestion(question=question, correct_canonical_index=correct_indices[0])
