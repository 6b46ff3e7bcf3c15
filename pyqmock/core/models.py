"""
Module: pyqmock/core/models.py
Purpose: Data model shared by the analyzer, selector, scorer and stores.

Questions, mock tests and responses are frozen; an Attempt is the only
record that changes, and only once (in_progress -> completed | auto_submitted).
"""

import uuid
from dataclasses import dataclass, field, asdict, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from pyqmock.core.errors import InvalidQuestion, AlreadyFinalized

DIFFICULTIES = ("easy", "medium", "hard")

SINGLE_CORRECT = "single_correct"
MULTIPLE_CORRECT = "multiple_correct"
INTEGER = "integer"
QUESTION_TYPES = (SINGLE_CORRECT, MULTIPLE_CORRECT, INTEGER)
# Types drawn for the "mcq" slots of a sectioned exam
CHOICE_TYPES = (SINGLE_CORRECT, MULTIPLE_CORRECT)


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


# =============================================================================
# CORPUS
# =============================================================================

@dataclass(frozen=True)
class Option:
    id: str
    text: str


@dataclass(frozen=True)
class Question:
    """A previous-year question as supplied by the question bank"""
    id: str
    exam_id: str
    subject: str
    chapter: str
    topic: str
    year: int
    difficulty: str  # easy | medium | hard
    type: str  # single_correct | multiple_correct | integer
    source: str
    text: str
    options: Tuple[Option, ...] = ()
    correct_options: FrozenSet[str] = frozenset()
    explanation: str = ""
    marks: float = 1
    negative_marks: float = 0

    def __post_init__(self):
        if self.difficulty not in DIFFICULTIES:
            raise InvalidQuestion(f"{self.id}: unknown difficulty {self.difficulty!r}")
        if self.type not in QUESTION_TYPES:
            raise InvalidQuestion(f"{self.id}: unknown question type {self.type!r}")
        if not self.correct_options:
            raise InvalidQuestion(f"{self.id}: no correct answer")
        if not self.negative_marks <= 0 <= self.marks:
            raise InvalidQuestion(
                f"{self.id}: marks must satisfy negative <= 0 <= positive "
                f"(got {self.negative_marks}, {self.marks})"
            )
        if self.type != INTEGER:
            option_ids = {o.id for o in self.options}
            unknown = set(self.correct_options) - option_ids
            if unknown:
                raise InvalidQuestion(f"{self.id}: correct options {sorted(unknown)} are not options")
            if self.type == SINGLE_CORRECT and len(self.correct_options) != 1:
                raise InvalidQuestion(f"{self.id}: single_correct needs exactly one answer")

    @property
    def chapter_key(self) -> Tuple[str, str]:
        return (self.subject, self.chapter)

    def with_marking(self, marks: float, negative_marks: float) -> 'Question':
        """Copy of this question carrying a test's marking scheme"""
        return replace(self, marks=marks, negative_marks=negative_marks)

    def to_dict(self) -> dict:
        data = asdict(self)
        data['correct_options'] = sorted(self.correct_options)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'Question':
        data_copy = {k: v for k, v in data.items() if k not in ('options', 'correct_options')}
        return cls(
            **data_copy,
            options=tuple(Option(**o) for o in data.get('options', [])),
            correct_options=frozenset(data.get('correct_options', [])),
        )


# =============================================================================
# TREND ANALYSIS
# =============================================================================

@dataclass
class ChapterStat:
    """Per-chapter statistics derived from a corpus; never persisted"""
    chapter: str
    subject: str
    total_questions: int
    raw_percentage: float
    years: List[int]
    recency_score: float
    consistency_score: float
    optimized_percentage: float = 0.0

    @property
    def key(self) -> Tuple[str, str]:
        return (self.subject, self.chapter)

    @property
    def trend(self) -> str:
        return "consistent" if len(self.years) > 1 else "occasional"


# =============================================================================
# TEST ASSEMBLY
# =============================================================================

@dataclass(frozen=True)
class MarkingScheme:
    correct: float = 1
    incorrect: float = 0
    partial_credit: bool = False

    def __post_init__(self):
        if self.incorrect > 0 or self.correct < 0:
            raise ValueError(f"Invalid marking scheme: +{self.correct} / {self.incorrect}")


@dataclass(frozen=True)
class SectionSpec:
    """A fixed subject section, e.g. Physics with 20 MCQ + 5 integer questions"""
    subject: str
    mcq_count: int = 0
    integer_count: int = 0
    difficulty: Optional[str] = None
    marking_scheme: Optional[MarkingScheme] = None

    @property
    def total_questions(self) -> int:
        return self.mcq_count + self.integer_count

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'SectionSpec':
        scheme = data.get('marking_scheme')
        data_copy = {k: v for k, v in data.items() if k != 'marking_scheme'}
        return cls(**data_copy, marking_scheme=MarkingScheme(**scheme) if scheme else None)


@dataclass(frozen=True)
class MockTest:
    """A generated test; immutable once created"""
    name: str
    exam_type: str
    total_questions: int
    total_marks: float
    time_limit_minutes: int
    marking_scheme: MarkingScheme
    questions: Tuple[Question, ...]
    sections: Tuple[SectionSpec, ...] = ()
    difficulty: Optional[str] = None
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)

    def question_map(self) -> Dict[str, Question]:
        return {q.id: q for q in self.questions}

    def scheme_for(self, question: Question) -> MarkingScheme:
        """The question's section scheme when its section has one, else the test's"""
        for section in self.sections:
            if section.subject == question.subject and section.marking_scheme is not None:
                return section.marking_scheme
        return self.marking_scheme

    def partial_credit_map(self) -> Dict[str, bool]:
        return {q.id: self.scheme_for(q).partial_credit for q in self.questions}

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'exam_type': self.exam_type,
            'total_questions': self.total_questions,
            'total_marks': self.total_marks,
            'time_limit_minutes': self.time_limit_minutes,
            'marking_scheme': asdict(self.marking_scheme),
            'questions': [q.to_dict() for q in self.questions],
            'sections': [s.to_dict() for s in self.sections],
            'difficulty': self.difficulty,
            'created_at': self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'MockTest':
        return cls(
            id=data['id'],
            name=data['name'],
            exam_type=data['exam_type'],
            total_questions=data['total_questions'],
            total_marks=data['total_marks'],
            time_limit_minutes=data['time_limit_minutes'],
            marking_scheme=MarkingScheme(**data['marking_scheme']),
            questions=tuple(Question.from_dict(q) for q in data.get('questions', [])),
            sections=tuple(SectionSpec.from_dict(s) for s in data.get('sections', [])),
            difficulty=data.get('difficulty'),
            created_at=_parse_time(data['created_at']),
        )


# =============================================================================
# ATTEMPTS
# =============================================================================

class AttemptStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    AUTO_SUBMITTED = "auto_submitted"


@dataclass
class Attempt:
    mock_test_id: str
    start_time: datetime
    id: str = field(default_factory=_new_id)
    end_time: Optional[datetime] = None
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    obtained_marks: float = 0
    total_marks: float = 0
    total_time_spent: int = 0  # seconds

    @property
    def is_open(self) -> bool:
        return self.status == AttemptStatus.IN_PROGRESS

    def finalized(self, end_time: datetime, obtained_marks: float, total_marks: float,
                  auto_submitted: bool = False) -> 'Attempt':
        """
        Return the terminal version of this attempt. The receiver is left
        untouched so a failed submission never half-updates it.
        """
        if not self.is_open:
            raise AlreadyFinalized(self.id, self.status.value)
        return replace(
            self,
            end_time=end_time,
            status=AttemptStatus.AUTO_SUBMITTED if auto_submitted else AttemptStatus.COMPLETED,
            obtained_marks=obtained_marks,
            total_marks=total_marks,
            total_time_spent=max(0, int((end_time - self.start_time).total_seconds())),
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'mock_test_id': self.mock_test_id,
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'status': self.status.value,
            'obtained_marks': self.obtained_marks,
            'total_marks': self.total_marks,
            'total_time_spent': self.total_time_spent,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Attempt':
        return cls(
            id=data['id'],
            mock_test_id=data['mock_test_id'],
            start_time=_parse_time(data['start_time']),
            end_time=_parse_time(data.get('end_time')),
            status=AttemptStatus(data.get('status', AttemptStatus.IN_PROGRESS.value)),
            obtained_marks=data.get('obtained_marks', 0),
            total_marks=data.get('total_marks', 0),
            total_time_spent=data.get('total_time_spent', 0),
        )


@dataclass(frozen=True)
class Response:
    question_id: str
    selected_options: Tuple[str, ...] = ()
    time_spent: int = 0  # seconds

    def to_dict(self) -> dict:
        return {
            'question_id': self.question_id,
            'selected_options': list(self.selected_options),
            'time_spent': self.time_spent,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Response':
        # Accept the client's camelCase payloads as well
        question_id = data.get('question_id', data.get('questionId'))
        selected = data.get('selected_options', data.get('selectedOptions')) or []
        if isinstance(selected, str):
            selected = [selected]
        return cls(
            question_id=str(question_id),
            selected_options=tuple(str(s) for s in selected),
            time_spent=int(data.get('time_spent', data.get('timeSpent', 0)) or 0),
        )


# =============================================================================
# SCORING & DIAGNOSTICS
# =============================================================================

class Outcome(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    UNATTEMPTED = "unattempted"
    # Only produced when the marking scheme enables partial credit
    PARTIALLY_CORRECT = "partially_correct"


@dataclass(frozen=True)
class ScoredQuestion:
    question_id: str
    subject: str
    chapter: str
    difficulty: str
    outcome: Outcome
    marks_awarded: float
    time_spent: int = 0


@dataclass(frozen=True)
class ScoreSheet:
    outcomes: Tuple[ScoredQuestion, ...]
    correct: int
    incorrect: int
    unattempted: int
    partially_correct: int
    obtained_marks: float
    total_marks: float
    accuracy: float
    dropped_responses: Tuple[str, ...] = ()

    @property
    def total_questions(self) -> int:
        return len(self.outcomes)

    def to_dict(self) -> dict:
        return {
            'total_correct': self.correct,
            'total_incorrect': self.incorrect,
            'total_unattempted': self.unattempted,
            'total_partially_correct': self.partially_correct,
            'total_obtained_marks': self.obtained_marks,
            'total_marks': self.total_marks,
            'accuracy': round(self.accuracy, 2),
            'dropped_responses': list(self.dropped_responses),
        }


@dataclass
class SubjectBreakdown:
    correct: int = 0
    incorrect: int = 0
    unattempted: int = 0
    accuracy: float = 0.0
    time_spent: int = 0

    @property
    def attempted(self) -> int:
        return self.correct + self.incorrect


@dataclass
class DifficultyBreakdown:
    correct: int = 0
    incorrect: int = 0


@dataclass
class Analysis:
    total_correct: int
    total_incorrect: int
    total_unattempted: int
    accuracy_percentage: float
    subject_wise_analysis: Dict[str, SubjectBreakdown]
    difficulty_wise_analysis: Dict[str, DifficultyBreakdown]
    strength_areas: List[str]
    weakness_areas: List[str]
    total_time_spent: int = 0
    average_time_per_question: float = 0.0
    attempt_id: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'Analysis':
        data_copy = {k: v for k, v in data.items()
                     if k not in ('subject_wise_analysis', 'difficulty_wise_analysis')}
        return cls(
            **data_copy,
            subject_wise_analysis={
                s: SubjectBreakdown(**b) for s, b in data.get('subject_wise_analysis', {}).items()
            },
            difficulty_wise_analysis={
                d: DifficultyBreakdown(**b) for d, b in data.get('difficulty_wise_analysis', {}).items()
            },
        )


# =============================================================================
# TUNING
# =============================================================================

@dataclass(frozen=True)
class TrendWeights:
    """Constants of the frequency / recency / consistency blend"""
    recency_weight: float = 0.15
    consistency_weight: float = 0.10
    recency_decay_per_year: float = 20
    consistency_full_years: int = 5


@dataclass(frozen=True)
class DiagnosticThresholds:
    strength: float = 70.0
    weakness: float = 40.0


def chapter_label(key: Tuple[str, str]) -> str:
    """Display form of a (subject, chapter) key"""
    subject, chapter = key
    return f"{subject}: {chapter}"
