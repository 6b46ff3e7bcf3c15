"""
Module: pyqmock/services/selector.py
Purpose: Draw a fixed-size question set whose per-chapter counts follow an
optimized distribution.

Counts are apportioned with the largest-remainder method so a test always
holds exactly the requested number of questions; chapters that run out of
eligible questions hand their shortfall to chapters with spare supply.
"""

import math
import random
from collections import OrderedDict
from typing import Callable, Dict, Hashable, List, Mapping, Optional, Sequence, Tuple

from pyqmock.core.errors import InsufficientSupply
from pyqmock.core.models import (
    Question, SectionSpec, DIFFICULTIES, CHOICE_TYPES, INTEGER, chapter_label
)
from pyqmock.tools.utils import get_logger, timed_execution

logger = get_logger("QuestionSelector")

ChapterKey = Tuple[str, str]

# Difficulty values that mean "do not filter"
MIXED_DIFFICULTY = (None, "", "mixed", "any", "all")


def normalize_difficulty(difficulty: Optional[str]) -> Optional[str]:
    if difficulty is None:
        return None
    value = difficulty.strip().lower()
    if value in MIXED_DIFFICULTY:
        return None
    if value not in DIFFICULTIES:
        raise ValueError(f"Unknown difficulty {difficulty!r}; expected one of {DIFFICULTIES} or 'mixed'")
    return value


def allocate_largest_remainder(shares: Mapping[Hashable, float], n: int) -> Dict[Hashable, int]:
    """
    Split ``n`` into integer counts proportional to ``shares``.

    Every key first gets the floor of its quota; the units still missing go,
    one each, to the keys with the largest fractional remainders (ties: larger
    share first, then iteration order). The result always sums to ``n``.
    """
    if n < 0:
        raise ValueError(f"Cannot allocate a negative count ({n})")
    if not shares:
        if n:
            raise ValueError("Cannot allocate questions over an empty distribution")
        return {}
    if any(v < 0 for v in shares.values()):
        raise ValueError("Distribution shares must be non-negative")

    total = sum(shares.values())
    if total <= 0:
        if n:
            raise ValueError("Distribution shares sum to zero")
        return {k: 0 for k in shares}

    quotas = {k: v / total * n for k, v in shares.items()}
    allocation = {k: math.floor(q) for k, q in quotas.items()}

    position = {k: i for i, k in enumerate(shares)}
    by_remainder = sorted(
        shares,
        key=lambda k: (-(quotas[k] - allocation[k]), -shares[k], position[k]),
    )
    missing = n - sum(allocation.values())
    for k in by_remainder[:max(0, missing)]:
        allocation[k] += 1

    return allocation


def apportion_with_supply(shares: Mapping[ChapterKey, float], supply: Mapping[ChapterKey, int],
                          n: int) -> Dict[ChapterKey, int]:
    """
    Largest-remainder allocation capped by each chapter's supply.

    Shortfall from capped chapters is re-apportioned over chapters with spare
    supply in proportion to their shares (or, when none of them carries a
    share, in proportion to their spare supply) until ``n`` is reached.
    """
    available = sum(supply.values())
    if available < n:
        raise InsufficientSupply(n, available)

    counts = {k: 0 for k in supply}
    weighted = {k: v for k, v in shares.items() if v > 0}
    if weighted:
        for k, c in allocate_largest_remainder(weighted, n).items():
            if k in counts:
                counts[k] = min(c, supply[k])

    shortfall = n - sum(counts.values())
    while shortfall > 0:
        spare = {k: supply[k] - counts[k] for k in supply if supply[k] > counts[k]}
        spare_weights = {k: shares.get(k, 0.0) for k in spare if shares.get(k, 0.0) > 0}
        extra = allocate_largest_remainder(spare_weights or spare, shortfall)
        for k, add in extra.items():
            counts[k] += min(add, spare[k])
        shortfall = n - sum(counts.values())

    return counts


class QuestionSelector:
    """Samples questions per chapter; randomness comes from the injected RNG"""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    @timed_execution("select_questions")
    def select(self, questions: Sequence[Question], distribution: Mapping[ChapterKey, float],
               n: int, difficulty: Optional[str] = None,
               types: Optional[Sequence[str]] = None, scope: str = "") -> List[Question]:
        """
        Exactly ``n`` questions drawn without replacement.

        Output is grouped by chapter rank (highest target share first), each
        chapter's block in random order. Raises InsufficientSupply when fewer
        than ``n`` questions survive the difficulty/type filters.
        """
        if n <= 0:
            raise ValueError(f"Question count must be positive, got {n}")

        level = normalize_difficulty(difficulty)
        eligible = [
            q for q in questions
            if (level is None or q.difficulty == level) and (types is None or q.type in types)
        ]
        if len(eligible) < n:
            raise InsufficientSupply(n, len(eligible), scope)

        pools: Dict[ChapterKey, List[Question]] = OrderedDict()
        for q in eligible:
            pools.setdefault(q.chapter_key, []).append(q)
        supply = {k: len(v) for k, v in pools.items()}

        counts = apportion_with_supply(distribution, supply, n)

        for key, share in distribution.items():
            target = share / 100 * n
            if supply.get(key, 0) < math.floor(target):
                logger.warning(f"{chapter_label(key)}: target {target:.1f} questions, "
                               f"only {supply.get(key, 0)} eligible; shortfall redistributed")

        order = list(pools)
        ranked = sorted(order, key=lambda k: (-distribution.get(k, 0.0), order.index(k)))

        selected: List[Question] = []
        for key in ranked:
            if counts[key]:
                selected.extend(self.rng.sample(pools[key], counts[key]))

        logger.info(f"Selected {len(selected)} questions from {sum(1 for c in counts.values() if c)} "
                    f"chapters{' for ' + scope if scope else ''}")
        return selected

    def select_sections(self, questions: Sequence[Question], sections: Sequence[SectionSpec],
                        distribution_for: Callable[[List[Question]], Mapping[ChapterKey, float]],
                        difficulty: Optional[str] = None) -> List[Tuple[SectionSpec, List[Question]]]:
        """
        Run the selector independently for every subject section: choice
        questions first, then integer questions, each with a distribution
        computed over that section's own slice of the corpus. A section's own
        difficulty overrides the test-wide one.
        """
        results = []
        for section in sections:
            subject_pool = [q for q in questions if q.subject == section.subject]
            level = section.difficulty or difficulty
            picked: List[Question] = []

            for count, types, label in ((section.mcq_count, CHOICE_TYPES, "mcq"),
                                        (section.integer_count, (INTEGER,), "integer")):
                if count <= 0:
                    continue
                bucket = [q for q in subject_pool if q.type in types]
                picked.extend(self.select(
                    bucket, distribution_for(bucket), count,
                    difficulty=level, scope=f"{section.subject} {label}",
                ))

            results.append((section, picked))
        return results
