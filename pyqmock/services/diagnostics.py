"""
Module: pyqmock/services/diagnostics.py
Purpose: Subject-wise and difficulty-wise breakdown of a scored attempt,
with strength and weakness classification.
"""

from typing import Dict

from pyqmock.core.models import (
    Analysis, DiagnosticThresholds, DifficultyBreakdown, Outcome, ScoreSheet, SubjectBreakdown
)
from pyqmock.tools.utils import get_logger

logger = get_logger("Diagnostics")

DEFAULT_THRESHOLDS = DiagnosticThresholds()


def subject_accuracy(breakdown: SubjectBreakdown) -> float:
    """Correct share of attempted questions; skipped questions do not count against it"""
    if not breakdown.attempted:
        return 0.0
    return 100 * breakdown.correct / breakdown.attempted


def build_analysis(sheet: ScoreSheet, thresholds: DiagnosticThresholds = DEFAULT_THRESHOLDS,
                   total_time_spent: int = 0, attempt_id: str = "") -> Analysis:
    """
    Build the Analysis snapshot for one scored attempt.

    Subjects at or above ``thresholds.strength`` are strengths, those below
    ``thresholds.weakness`` weaknesses, anything in between neither. A subject
    with nothing attempted has no accuracy and is left out of both lists.
    Partially correct answers count as incorrect here.
    """
    subjects: Dict[str, SubjectBreakdown] = {}
    difficulties: Dict[str, DifficultyBreakdown] = {}

    for item in sheet.outcomes:
        subject = subjects.setdefault(item.subject, SubjectBreakdown())
        level = difficulties.setdefault(item.difficulty, DifficultyBreakdown())
        subject.time_spent += item.time_spent

        if item.outcome == Outcome.UNATTEMPTED:
            subject.unattempted += 1
        elif item.outcome == Outcome.CORRECT:
            subject.correct += 1
            level.correct += 1
        else:
            subject.incorrect += 1
            level.incorrect += 1

    strengths, weaknesses = [], []
    for name, breakdown in subjects.items():
        accuracy = subject_accuracy(breakdown)
        breakdown.accuracy = round(accuracy, 2)
        if not breakdown.attempted:
            continue
        if accuracy >= thresholds.strength:
            strengths.append(name)
        elif accuracy < thresholds.weakness:
            weaknesses.append(name)

    if sheet.dropped_responses:
        logger.warning(f"Analysis for {attempt_id or 'attempt'} ignores "
                       f"{len(sheet.dropped_responses)} malformed responses")

    per_question = sum(o.time_spent for o in sheet.outcomes)
    elapsed = total_time_spent or per_question
    return Analysis(
        total_correct=sheet.correct,
        total_incorrect=sheet.incorrect + sheet.partially_correct,
        total_unattempted=sheet.unattempted,
        accuracy_percentage=round(sheet.accuracy, 2),
        subject_wise_analysis=subjects,
        difficulty_wise_analysis=difficulties,
        strength_areas=strengths,
        weakness_areas=weaknesses,
        total_time_spent=elapsed,
        average_time_per_question=round(elapsed / sheet.total_questions, 2) if sheet.total_questions else 0.0,
        attempt_id=attempt_id,
    )
