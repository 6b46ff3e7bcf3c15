import random
from collections import Counter

import pytest

from pyqmock.core.errors import InsufficientSupply
from pyqmock.core.models import SectionSpec, INTEGER, CHOICE_TYPES
from pyqmock.services.distribution import trend_distribution
from pyqmock.services.selector import (
    QuestionSelector, allocate_largest_remainder, apportion_with_supply, normalize_difficulty
)


def test_largest_remainder_sums_to_n():
    assert allocate_largest_remainder({"a": 50, "b": 30, "c": 20}, 7) == {"a": 4, "b": 2, "c": 1}
    for n in range(0, 31):
        counts = allocate_largest_remainder({"a": 33.3, "b": 33.3, "c": 33.4}, n)
        assert sum(counts.values()) == n


def test_largest_remainder_ties_go_to_larger_share_then_order():
    # Equal remainders (0.5): the larger share wins
    assert allocate_largest_remainder({"a": 1, "b": 3}, 2) == {"a": 0, "b": 2}
    # Equal shares: first key wins
    assert allocate_largest_remainder({"a": 1, "b": 1}, 1) == {"a": 1, "b": 0}


def test_largest_remainder_rejects_bad_input():
    with pytest.raises(ValueError):
        allocate_largest_remainder({"a": 1}, -1)
    with pytest.raises(ValueError):
        allocate_largest_remainder({}, 3)
    with pytest.raises(ValueError):
        allocate_largest_remainder({"a": -1, "b": 2}, 3)
    assert allocate_largest_remainder({}, 0) == {}


def test_shortfall_moves_to_chapters_with_spare_supply():
    counts = apportion_with_supply({"A": 50, "B": 50}, {"A": 1, "B": 10}, 6)
    assert counts == {"A": 1, "B": 5}


def test_shortfall_uses_unweighted_chapters_last():
    counts = apportion_with_supply({"A": 100}, {"A": 2, "B": 5}, 4)
    assert counts == {"A": 2, "B": 2}


def test_apportion_raises_when_supply_is_short():
    with pytest.raises(InsufficientSupply) as exc:
        apportion_with_supply({"A": 100}, {"A": 2}, 3)
    assert exc.value.requested == 3
    assert exc.value.available == 2


def test_normalize_difficulty():
    assert normalize_difficulty(None) is None
    assert normalize_difficulty("Mixed") is None
    assert normalize_difficulty(" HARD ") == "hard"
    with pytest.raises(ValueError):
        normalize_difficulty("brutal")


def test_select_returns_exactly_n_distinct_questions(flat_corpus):
    selector = QuestionSelector(random.Random(1))
    distribution = trend_distribution(flat_corpus, current_year=2024)

    picked = selector.select(flat_corpus, distribution, 10)

    assert len(picked) == 10
    assert len({q.id for q in picked}) == 10
    per_chapter = Counter(q.chapter_key for q in picked)
    assert sorted(per_chapter.values()) == [2, 2, 3, 3]


def test_select_groups_output_by_chapter_rank(make_question):
    questions = ([make_question(chapter="Minor") for _ in range(5)]
                 + [make_question(chapter="Major") for _ in range(5)])
    distribution = {("Mathematics", "Minor"): 30.0, ("Mathematics", "Major"): 70.0}

    picked = QuestionSelector(random.Random(3)).select(questions, distribution, 6)

    assert [q.chapter for q in picked] == ["Major"] * 4 + ["Minor"] * 2


def test_select_is_reproducible_with_a_seed(flat_corpus):
    distribution = trend_distribution(flat_corpus, current_year=2024)
    first = QuestionSelector(random.Random(42)).select(flat_corpus, distribution, 12)
    second = QuestionSelector(random.Random(42)).select(flat_corpus, distribution, 12)
    assert [q.id for q in first] == [q.id for q in second]


def test_select_filters_by_difficulty(flat_corpus):
    distribution = trend_distribution(flat_corpus, current_year=2024)
    picked = QuestionSelector(random.Random(5)).select(flat_corpus, distribution, 10, difficulty="hard")
    assert {q.difficulty for q in picked} == {"hard"}


def test_select_raises_when_filters_leave_too_few(make_question):
    questions = [make_question(difficulty="easy") for _ in range(8)] + [make_question(difficulty="hard")]
    distribution = {("Mathematics", "Algebra"): 100.0}
    selector = QuestionSelector(random.Random(0))

    with pytest.raises(InsufficientSupply) as exc:
        selector.select(questions, distribution, 3, difficulty="hard")
    assert exc.value.available == 1

    with pytest.raises(ValueError):
        selector.select(questions, distribution, 0)


def test_short_chapter_is_logged_and_backfilled(make_question, caplog):
    questions = [make_question(chapter="Rare")] + [make_question(chapter="Common") for _ in range(9)]
    distribution = {("Mathematics", "Rare"): 50.0, ("Mathematics", "Common"): 50.0}

    picked = QuestionSelector(random.Random(0)).select(questions, distribution, 6)

    assert Counter(q.chapter for q in picked) == {"Rare": 1, "Common": 5}
    assert "shortfall redistributed" in caplog.text


def test_select_sections(sectioned_corpus):
    sections = [SectionSpec("Physics", mcq_count=2, integer_count=1),
                SectionSpec("Chemistry", mcq_count=2, integer_count=1)]
    selector = QuestionSelector(random.Random(9))

    results = selector.select_sections(
        sectioned_corpus, sections, lambda qs: trend_distribution(qs, current_year=2024)
    )

    assert [s.subject for s, _ in results] == ["Physics", "Chemistry"]
    for section, picked in results:
        assert len(picked) == 3
        assert {q.subject for q in picked} == {section.subject}
        assert [q.type in CHOICE_TYPES for q in picked] == [True, True, False]
        assert picked[-1].type == INTEGER


def test_section_difficulty_overrides_test_difficulty(sectioned_corpus):
    sections = [SectionSpec("Physics", mcq_count=1, difficulty="hard")]
    selector = QuestionSelector(random.Random(9))
    with pytest.raises(InsufficientSupply) as exc:
        selector.select_sections(sectioned_corpus, sections,
                                 lambda qs: trend_distribution(qs, current_year=2024), difficulty="medium")
    assert "Physics mcq" in str(exc.value)
