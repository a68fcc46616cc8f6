from __future__ import annotations

import random

import pytest

from conftest import make_question
from quizdesk.core.errors import InvalidAnswerError
from quizdesk.core.services.presentation_shuffler import PresentationShuffler
from quizdesk.core.services.question_selector import resolve_question


@pytest.mark.parametrize("seed", range(25))
def test_display_options_are_a_permutation_of_canonical_indices(seed):
    resolved = resolve_question(make_question("p", option_count=5, correct_index=3))

    shuffled = PresentationShuffler(random.Random(seed)).shuffle_question(resolved)

    assert sorted(option.canonical_index for option in shuffled.display_options) == [0, 1, 2, 3, 4]


@pytest.mark.parametrize("seed", range(25))
def test_correct_display_index_points_at_correct_canonical_option(seed):
    resolved = resolve_question(make_question("c", option_count=4, correct_index=2))

    shuffled = PresentationShuffler(random.Random(seed)).shuffle_question(resolved)

    correct = shuffled.display_options[shuffled.correct_display_index]
    assert correct.canonical_index == resolved.correct_canonical_index
    assert correct.is_correct
    assert correct.text == "c option 2"


def test_question_order_is_preserved(rng):
    resolved = [resolve_question(make_question(f"q{index}")) for index in range(6)]

    shuffled = PresentationShuffler(rng).shuffle(resolved)

    assert [question.id for question in shuffled] == [f"q{index}" for index in range(6)]


def test_same_seed_gives_same_layout():
    resolved = [resolve_question(make_question(f"q{index}", option_count=6)) for index in range(4)]

    first = PresentationShuffler(random.Random(7)).shuffle(resolved)
    second = PresentationShuffler(random.Random(7)).shuffle(resolved)

    assert first == second


def test_option_order_actually_varies():
    resolved = resolve_question(make_question("v", option_count=4))
    shuffler = PresentationShuffler(random.Random(99))

    layouts = {
        tuple(option.canonical_index for option in shuffler.shuffle_question(resolved).display_options)
        for _ in range(30)
    }

    assert len(layouts) > 1


def test_display_and_canonical_mapping_round_trips(rng):
    shuffled = PresentationShuffler(rng).shuffle_question(resolve_question(make_question("m")))

    for display_index in range(len(shuffled.display_options)):
        canonical = shuffled.to_canonical(display_index)
        assert shuffled.to_display(canonical) == display_index


@pytest.mark.parametrize("display_index", [-1, 4, 100])
def test_out_of_range_display_index_is_rejected(rng, display_index):
    shuffled = PresentationShuffler(rng).shuffle_question(resolve_question(make_question("o")))

    with pytest.raises(InvalidAnswerError):
        shuffled.to_canonical(display_index)
