"""
Previous Year Question Trend Analyzer
Turns a question corpus into per-chapter frequency, recency and
consistency statistics.
"""

from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from pyqmock.core.models import Question, ChapterStat, TrendWeights, chapter_label
from pyqmock.tools.utils import get_logger, timed_execution

logger = get_logger("TrendAnalyzer")

DEFAULT_WEIGHTS = TrendWeights()


def recency_score(years: Sequence[int], current_year: int,
                  weights: TrendWeights = DEFAULT_WEIGHTS) -> float:
    """
    100 for a chapter examined this year, minus ``recency_decay_per_year``
    for every year since, floored at 0. A chapter with no years scores 0.
    """
    if not years:
        return 0.0
    staleness = current_year - max(years)
    score = 100 - weights.recency_decay_per_year * staleness
    return float(min(100.0, max(0.0, score)))


def consistency_score(years: Sequence[int], weights: TrendWeights = DEFAULT_WEIGHTS) -> float:
    """Share of ``consistency_full_years`` distinct years the chapter appeared in, capped at 100"""
    distinct = len(set(years))
    return float(min(100.0, distinct / weights.consistency_full_years * 100))


@timed_execution("analyze_trends")
def analyze_trends(questions: Sequence[Question], current_year: Optional[int] = None,
                   weights: TrendWeights = DEFAULT_WEIGHTS) -> List[ChapterStat]:
    """
    One ChapterStat per distinct (subject, chapter), in first-seen order.

    Pure: an empty corpus yields an empty list rather than an error.
    ``optimized_percentage`` is left at 0 for the optimizer to fill.
    """
    if not questions:
        return []

    if current_year is None:
        current_year = datetime.now().year

    groups: Dict[Tuple[str, str], List[Question]] = defaultdict(list)
    for q in questions:
        groups[q.chapter_key].append(q)

    total = len(questions)
    stats = []
    for (subject, chapter), members in groups.items():
        years = sorted({q.year for q in members})
        if years[-1] > current_year:
            logger.warning(f"{chapter_label((subject, chapter))} has questions from "
                           f"{years[-1]}, after analysis year {current_year}")
        stats.append(ChapterStat(
            chapter=chapter,
            subject=subject,
            total_questions=len(members),
            raw_percentage=len(members) / total * 100,
            years=years,
            recency_score=recency_score(years, current_year, weights),
            consistency_score=consistency_score(years, weights),
        ))

    logger.debug(f"Analyzed {total} questions into {len(stats)} chapters")
    return stats


def calculate_distribution(questions: Sequence[Question]) -> Dict[str, int]:
    """Historical share of each chapter, rounded to whole percent (display only)"""
    if not questions:
        return {}
    counts: Dict[Tuple[str, str], int] = defaultdict(int)
    for q in questions:
        counts[q.chapter_key] += 1
    total = len(questions)
    return {chapter_label(key): round(count / total * 100) for key, count in counts.items()}
