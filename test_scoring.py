import pytest

from pyqmock.core.models import (
    DiagnosticThresholds, Outcome, Response, MULTIPLE_CORRECT, INTEGER
)
from pyqmock.services.diagnostics import build_analysis
from pyqmock.services.scorer import grade_question, score_attempt


@pytest.fixture
def jee_questions(make_question):
    return [make_question(qid=f"p{i}", correct=("b",), marks=4, negative_marks=-2) for i in range(5)]


def test_jee_marking_example(jee_questions):
    responses = [
        Response("p0", ("b",)),
        Response("p1", ("b",)),
        Response("p2", ("b",)),
        Response("p3", ("a",)),
    ]
    sheet = score_attempt(jee_questions, responses)

    assert (sheet.correct, sheet.incorrect, sheet.unattempted) == (3, 1, 1)
    assert sheet.obtained_marks == 10
    assert sheet.total_marks == 20
    assert sheet.accuracy == pytest.approx(60)
    assert [o.outcome for o in sheet.outcomes][-1] == Outcome.UNATTEMPTED


def test_every_question_gets_exactly_one_outcome(jee_questions):
    sheet = score_attempt(jee_questions, {"p0": ["b"], "p1": ["c"]})
    assert sheet.correct + sheet.incorrect + sheet.unattempted + sheet.partially_correct == len(jee_questions)
    assert [o.question_id for o in sheet.outcomes] == [q.id for q in jee_questions]


def test_multiple_correct_requires_the_exact_set(make_question):
    q = make_question(q_type=MULTIPLE_CORRECT, correct=("a", "c"), marks=4, negative_marks=-2)

    assert grade_question(q, ["c", "a"]) == (Outcome.CORRECT, 4)
    assert grade_question(q, ["a"]) == (Outcome.INCORRECT, -2)
    assert grade_question(q, ["a", "b", "c"]) == (Outcome.INCORRECT, -2)
    assert grade_question(q, []) == (Outcome.UNATTEMPTED, 0)


def test_partial_credit_when_enabled(make_question):
    q = make_question(q_type=MULTIPLE_CORRECT, correct=("a", "b", "c", "d"), marks=4, negative_marks=-2)

    assert grade_question(q, ["a"], partial_credit=True) == (Outcome.PARTIALLY_CORRECT, 1)
    assert grade_question(q, ["a", "b", "c"], partial_credit=True) == (Outcome.PARTIALLY_CORRECT, 3)
    # Partial credit never applies to single-correct questions
    single = make_question(correct=("a",), marks=4, negative_marks=-2)
    assert grade_question(single, ["b"], partial_credit=True) == (Outcome.INCORRECT, -2)


def test_partial_credit_per_question(make_question):
    lenient = make_question(qid="m1", q_type=MULTIPLE_CORRECT, correct=("a", "b", "c", "d"),
                            marks=4, negative_marks=-2)
    strict = make_question(qid="m2", q_type=MULTIPLE_CORRECT, correct=("a", "b", "c", "d"),
                           marks=4, negative_marks=-2)

    sheet = score_attempt([lenient, strict], {"m1": ["a", "b", "c"], "m2": ["a", "b", "c"]},
                          partial_credit={"m1": True})

    assert [o.outcome for o in sheet.outcomes] == [Outcome.PARTIALLY_CORRECT, Outcome.INCORRECT]
    assert sheet.obtained_marks == 1


def test_integer_answers_compare_numerically(make_question):
    q = make_question(q_type=INTEGER, correct=("25",), marks=4, negative_marks=-1)

    assert grade_question(q, ["25"])[0] == Outcome.CORRECT
    assert grade_question(q, [" 25.0 "])[0] == Outcome.CORRECT
    assert grade_question(q, ["24"]) == (Outcome.INCORRECT, -1)
    assert grade_question(q, ["twenty"])[0] == Outcome.INCORRECT
    assert grade_question(q, ["  "]) == (Outcome.UNATTEMPTED, 0)


def test_response_for_unknown_question_is_dropped(jee_questions, caplog):
    sheet = score_attempt(jee_questions, [Response("p0", ("b",)), Response("ghost", ("a",))])

    assert sheet.dropped_responses == ("ghost",)
    assert sheet.correct == 1
    assert sheet.unattempted == 4
    assert "ghost" in caplog.text


def test_duplicate_response_keeps_the_last(jee_questions):
    sheet = score_attempt(jee_questions, [Response("p0", ("a",)), Response("p0", ("b",))])
    assert sheet.outcomes[0].outcome == Outcome.CORRECT


def test_scoring_is_idempotent(jee_questions):
    responses = [Response("p0", ("b",), 30), Response("p1", ("d",), 45)]
    assert score_attempt(jee_questions, responses) == score_attempt(jee_questions, responses)

    first = build_analysis(score_attempt(jee_questions, responses), total_time_spent=600, attempt_id="a1")
    second = build_analysis(score_attempt(jee_questions, responses), total_time_spent=600, attempt_id="a1")
    assert first == second
    assert first.to_dict() == second.to_dict()


def test_score_sheet_to_dict(jee_questions):
    data = score_attempt(jee_questions, {"p0": ["b"]}).to_dict()
    assert data["total_correct"] == 1
    assert data["total_unattempted"] == 4
    assert data["accuracy"] == 20


def test_response_from_camel_case():
    r = Response.from_dict({"questionId": "p1", "selectedOptions": "b", "timeSpent": "12"})
    assert r == Response("p1", ("b",), 12)


# =============================================================================
# DIAGNOSTICS
# =============================================================================

def _answers(questions, correct, incorrect):
    """First ``correct`` right, next ``incorrect`` wrong, rest skipped"""
    responses = {}
    for i, q in enumerate(questions):
        if i < correct:
            responses[q.id] = ["a"]
        elif i < correct + incorrect:
            responses[q.id] = ["b"]
    return responses


def test_strengths_and_weaknesses(make_question):
    subjects = {
        "Mathematics": (8, 2),
        "Science": (2, 8),
        "English": (5, 5),
        "Physics": (4, 0),
        "History": (0, 0),
    }
    questions, responses = [], {}
    for subject, (right, wrong) in subjects.items():
        block = [make_question(subject=subject) for _ in range(10)]
        questions.extend(block)
        responses.update(_answers(block, right, wrong))

    analysis = build_analysis(score_attempt(questions, responses))

    assert analysis.strength_areas == ["Mathematics", "Physics"]
    assert analysis.weakness_areas == ["Science"]
    breakdown = analysis.subject_wise_analysis
    assert breakdown["English"].accuracy == 50
    # Skipped questions do not drag accuracy down
    assert breakdown["Physics"].accuracy == 100
    assert breakdown["Physics"].unattempted == 6
    # Nothing attempted: neither strength nor weakness
    assert breakdown["History"].attempted == 0
    assert analysis.total_correct == 19
    assert analysis.total_incorrect == 15
    assert analysis.total_unattempted == 16
    assert analysis.accuracy_percentage == pytest.approx(38)


def test_threshold_boundaries(make_question):
    at_strength = [make_question(subject="A") for _ in range(10)]
    at_weakness = [make_question(subject="B") for _ in range(10)]
    responses = {**_answers(at_strength, 7, 3), **_answers(at_weakness, 4, 6)}

    analysis = build_analysis(score_attempt(at_strength + at_weakness, responses))

    # 70 is a strength, 40 is not a weakness
    assert analysis.strength_areas == ["A"]
    assert analysis.weakness_areas == []


def test_custom_thresholds(make_question):
    block = [make_question(subject="A") for _ in range(10)]
    analysis = build_analysis(score_attempt(block, _answers(block, 6, 4)),
                              DiagnosticThresholds(strength=60, weakness=20))
    assert analysis.strength_areas == ["A"]


def test_difficulty_breakdown_and_timing(make_question):
    questions = [make_question(difficulty="easy", qid="e1"), make_question(difficulty="hard", qid="h1"),
                 make_question(difficulty="hard", qid="h2")]
    responses = [Response("e1", ("a",), 40), Response("h1", ("b",), 80)]

    analysis = build_analysis(score_attempt(questions, responses), total_time_spent=300, attempt_id="x1")

    assert analysis.difficulty_wise_analysis["easy"].correct == 1
    assert analysis.difficulty_wise_analysis["hard"].incorrect == 1
    assert analysis.difficulty_wise_analysis["hard"].correct == 0
    assert analysis.subject_wise_analysis["Mathematics"].time_spent == 120
    assert analysis.total_time_spent == 300
    assert analysis.average_time_per_question == 100
    assert analysis.attempt_id == "x1"


def test_partially_correct_counts_as_incorrect_in_analysis(make_question):
    q = make_question(q_type=MULTIPLE_CORRECT, correct=("a", "b"), marks=4)
    sheet = score_attempt([q], {q.id: ["a"]}, partial_credit=True)

    assert sheet.partially_correct == 1
    assert sheet.obtained_marks == 2
    analysis = build_analysis(sheet)
    assert analysis.total_incorrect == 1
    assert analysis.subject_wise_analysis["Mathematics"].incorrect == 1
