"""
Module: pyqmock/services/distribution.py
Purpose: Blend raw chapter frequency with recency and consistency into the
sampling distribution used for test assembly.
"""

from dataclasses import replace
from typing import Dict, List, Sequence, Tuple

from pyqmock.core.models import ChapterStat, TrendWeights, chapter_label
from pyqmock.tools.utils import get_logger, timed_execution

logger = get_logger("DistributionOptimizer")

DEFAULT_WEIGHTS = TrendWeights()


def blended_weight(stat: ChapterStat, weights: TrendWeights = DEFAULT_WEIGHTS) -> float:
    # Recency and consistency can add at most 15 and 10 points, so they
    # reorder close chapters but never overtake a much more frequent one.
    return (stat.raw_percentage
            + weights.recency_weight * stat.recency_score
            + weights.consistency_weight * stat.consistency_score)


@timed_execution("optimize_distribution")
def optimize_distribution(stats: Sequence[ChapterStat],
                          weights: TrendWeights = DEFAULT_WEIGHTS) -> List[ChapterStat]:
    """
    Return copies of ``stats`` with ``optimized_percentage`` filled in so the
    set sums to 100. An empty input means "no data" and yields [].
    """
    if not stats:
        return []

    blended = [blended_weight(s, weights) for s in stats]
    total = sum(blended)
    if total <= 0:
        # Only reachable with hand-built stats; fall back to an even split
        logger.warning("Blended chapter weights sum to zero, using a uniform distribution")
        share = 100 / len(stats)
        return [replace(s, optimized_percentage=share) for s in stats]

    return [replace(s, optimized_percentage=b / total * 100) for s, b in zip(stats, blended)]


def distribution_map(stats: Sequence[ChapterStat]) -> Dict[Tuple[str, str], float]:
    """(subject, chapter) -> optimized percentage"""
    return {s.key: s.optimized_percentage for s in stats}


def rounded_distribution(stats: Sequence[ChapterStat], optimized: bool = True) -> Dict[str, int]:
    """
    Whole-percent map for display. When rounding misses 100 the residual is
    added to the first chapter; allocation never uses this map.
    """
    if not stats:
        return {}
    rounded = {
        chapter_label(s.key): round(s.optimized_percentage if optimized else s.raw_percentage)
        for s in stats
    }
    residual = 100 - sum(rounded.values())
    if residual:
        first = next(iter(rounded))
        rounded[first] += residual
    return rounded


def trend_distribution(questions, current_year=None,
                       weights: TrendWeights = DEFAULT_WEIGHTS) -> Dict[Tuple[str, str], float]:
    """Corpus -> optimized (subject, chapter) distribution in one step"""
    from pyqmock.services.trend_analyzer import analyze_trends
    return distribution_map(optimize_distribution(analyze_trends(questions, current_year, weights), weights))
