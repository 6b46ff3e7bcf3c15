import random
from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from pyqmock.config.loader import ExamCatalog
from pyqmock.core.corpus import CorpusProvider
from pyqmock.core.models import Option, Question, SINGLE_CORRECT, MULTIPLE_CORRECT, INTEGER
from pyqmock.core.store import InMemoryStore
from pyqmock.services.engine import MockTestEngine

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

CATALOG_DATA = {
    "default_exam": "mock",
    "exams": {
        "mock": {
            "name": "Practice Mock",
            "total_questions": 10,
            "time_limit_minutes": 60,
            "marking_scheme": {"correct": 4, "incorrect": -1},
        },
        "jee": {
            "name": "Sectioned Mock",
            "time_limit_minutes": 90,
            "marking_scheme": {"correct": 4, "incorrect": -2},
            "sections": [
                {"subject": "Physics", "mcq_count": 2, "integer_count": 1},
                {"subject": "Chemistry", "mcq_count": 2, "integer_count": 1},
            ],
        },
    },
}


class FixedClock:
    """Clock the tests move by hand"""

    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


_ids = count(1)


def build_question(subject="Mathematics", chapter="Algebra", year=2023, difficulty="medium",
                   q_type=SINGLE_CORRECT, exam_id="mock", correct=("a",), qid=None,
                   marks=1, negative_marks=0):
    options = () if q_type == INTEGER else tuple(Option(id=o, text=f"option {o}") for o in "abcd")
    return Question(
        id=qid or f"q{next(_ids)}",
        exam_id=exam_id,
        subject=subject,
        chapter=chapter,
        topic="",
        year=year,
        difficulty=difficulty,
        type=q_type,
        source="official_pyq",
        text=f"{subject} / {chapter} question",
        options=options,
        correct_options=frozenset(correct),
        marks=marks,
        negative_marks=negative_marks,
    )


@pytest.fixture
def make_question():
    return build_question


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def catalog():
    return ExamCatalog(data=CATALOG_DATA)


@pytest.fixture
def flat_corpus():
    """100 questions, 25 in each of four chapters across two subjects"""
    chapters = [("Mathematics", "Algebra"), ("Mathematics", "Geometry"),
                ("Science", "Motion"), ("Science", "Cells")]
    questions = []
    for subject, chapter in chapters:
        for i in range(25):
            questions.append(build_question(
                subject=subject, chapter=chapter, year=2019 + i % 5,
                difficulty=("easy", "medium", "hard")[i % 3],
            ))
    return questions


@pytest.fixture
def sectioned_corpus():
    questions = []
    for subject, chapter in (("Physics", "Kinematics"), ("Chemistry", "Bonding")):
        for i in range(4):
            questions.append(build_question(subject=subject, chapter=chapter, exam_id="jee",
                                            year=2020 + i))
        for i in range(2):
            questions.append(build_question(subject=subject, chapter=chapter, exam_id="jee",
                                            q_type=INTEGER, correct=(str(10 + i),), year=2021 + i))
        questions.append(build_question(subject=subject, chapter=chapter, exam_id="jee",
                                        q_type=MULTIPLE_CORRECT, correct=("a", "c")))
    return questions


@pytest.fixture
def engine(flat_corpus, sectioned_corpus, catalog, clock):
    return MockTestEngine(
        corpus=CorpusProvider.from_questions(flat_corpus + sectioned_corpus),
        store=InMemoryStore(),
        catalog=catalog,
        clock=clock,
        rng=random.Random(7),
        current_year=2024,
    )
