"""
Module: pyqmock/services/scorer.py
Purpose: Grade a submitted attempt against a mock test.

Choice questions compare the selected option ids with the key as sets;
integer questions compare the entered value numerically when both sides
parse as numbers. Responses that do not belong to the test are dropped and
logged, never fatal.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from pyqmock.core.errors import MalformedResponse
from pyqmock.core.models import (
    Question, Response, Outcome, ScoredQuestion, ScoreSheet, INTEGER, MULTIPLE_CORRECT
)
from pyqmock.tools.utils import get_logger

logger = get_logger("AttemptScorer")

Selections = Mapping[str, Sequence[str]]


def _as_number(value: str) -> Optional[float]:
    try:
        return float(value)
    except ValueError:
        return None


def _integer_matches(selected: Iterable[str], correct: Iterable[str]) -> bool:
    entered = [s.strip() for s in selected if s.strip()]
    if len(entered) != 1:
        return False
    value = entered[0]
    for answer in correct:
        if value == answer:
            return True
        a, b = _as_number(value), _as_number(answer)
        if a is not None and b is not None and abs(a - b) < 1e-9:
            return True
    return False


def grade_question(question: Question, selected: Sequence[str],
                   partial_credit: bool = False) -> Tuple[Outcome, float]:
    """
    Outcome and marks for one question.

    Empty selection: unattempted, 0. Exact match: correct, +marks. Anything
    else: incorrect, negative marks. With ``partial_credit`` a strict, non-empty
    subset of a multiple-correct key earns marks in proportion to the correct
    options chosen.
    """
    chosen = {str(s).strip() for s in selected if str(s).strip()}
    if not chosen:
        return Outcome.UNATTEMPTED, 0

    if question.type == INTEGER:
        hit = _integer_matches(chosen, question.correct_options)
    else:
        hit = chosen == set(question.correct_options)

    if hit:
        return Outcome.CORRECT, question.marks

    if (partial_credit and question.type == MULTIPLE_CORRECT
            and chosen < set(question.correct_options)):
        share = len(chosen) / len(question.correct_options)
        return Outcome.PARTIALLY_CORRECT, question.marks * share

    return Outcome.INCORRECT, question.negative_marks


def _index_responses(questions: Dict[str, Question],
                     responses: Union[Sequence[Response], Selections]) -> Tuple[Dict[str, Response], List[str]]:
    """Map question id -> response, dropping ids that are not in the test"""
    if isinstance(responses, Mapping):
        responses = [Response(question_id=qid, selected_options=tuple(sel))
                     for qid, sel in responses.items()]

    indexed: Dict[str, Response] = {}
    dropped: List[str] = []
    for r in responses:
        if r.question_id not in questions:
            anomaly = MalformedResponse(r.question_id, "question is not part of this test")
            logger.warning(str(anomaly))
            dropped.append(r.question_id)
            continue
        if r.question_id in indexed:
            logger.warning(f"Duplicate response for {r.question_id}; keeping the last one")
        indexed[r.question_id] = r
    return indexed, dropped


def score_attempt(questions: Sequence[Question],
                  responses: Union[Sequence[Response], Selections],
                  partial_credit: Union[bool, Mapping[str, bool]] = False) -> ScoreSheet:
    """
    Score every question of a test in test order.

    ``responses`` is either a list of Response records or a plain mapping of
    question id to selected option ids; questions without a response are
    unattempted. ``partial_credit`` is one flag for the whole test or a
    per-question-id mapping (sections can carry their own marking scheme).
    unattempted. Accuracy is correct / total questions x 100.
    """
    by_id = {q.id: q for q in questions}
    indexed, dropped = _index_responses(by_id, responses)

    outcomes = []
    tally = {o: 0 for o in Outcome}
    obtained = 0.0
    for q in questions:
        r = indexed.get(q.id)
        selected = r.selected_options if r else ()
        if isinstance(partial_credit, Mapping):
            allow_partial = partial_credit.get(q.id, False)
        else:
            allow_partial = partial_credit
        outcome, marks = grade_question(q, selected, allow_partial)
        tally[outcome] += 1
        obtained += marks
        outcomes.append(ScoredQuestion(
            question_id=q.id,
            subject=q.subject,
            chapter=q.chapter,
            difficulty=q.difficulty,
            outcome=outcome,
            marks_awarded=marks,
            time_spent=r.time_spent if r else 0,
        ))

    total = len(questions)
    sheet = ScoreSheet(
        outcomes=tuple(outcomes),
        correct=tally[Outcome.CORRECT],
        incorrect=tally[Outcome.INCORRECT],
        unattempted=tally[Outcome.UNATTEMPTED],
        partially_correct=tally[Outcome.PARTIALLY_CORRECT],
        obtained_marks=obtained,
        total_marks=sum(q.marks for q in questions),
        accuracy=100 * tally[Outcome.CORRECT] / total if total else 0.0,
        dropped_responses=tuple(dropped),
    )
    logger.debug(f"Scored {total} questions: {sheet.correct} correct, {sheet.incorrect} incorrect, "
                 f"{sheet.unattempted} unattempted, {obtained:g} marks")
    return sheet
