"""
Previous Year Question Corpus
Loads historical question papers from JSON and serves them, read-only,
per exam type.
"""

import json
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from pyqmock.core.errors import InvalidQuestion
from pyqmock.core.models import (
    Question, Option, SINGLE_CORRECT, MULTIPLE_CORRECT, INTEGER, QUESTION_TYPES
)
from pyqmock.tools.utils import get_logger

logger = get_logger("Corpus")

DEFAULT_CORPUS_DIR = Path(__file__).parent.parent.parent / "data" / "previous_year_papers"


def parse_question(raw: dict, exam_id: str = "") -> Question:
    """
    Build a Question from a question-bank record.

    Bank records use ``question`` for the text, ``correctAnswer`` (string or
    list) for the key and ``mcq`` for any choice question; canonical
    ``to_dict`` output is accepted as well.
    """
    correct = raw.get('correct_options', raw.get('correctAnswer'))
    if correct is None:
        raise InvalidQuestion(f"{raw.get('id')}: missing correct answer")
    if isinstance(correct, (str, int)):
        correct = [correct]
    correct = frozenset(str(c).strip() for c in correct)

    q_type = raw.get('type', 'mcq')
    if q_type not in QUESTION_TYPES:
        if q_type == 'mcq':
            q_type = MULTIPLE_CORRECT if len(correct) > 1 else SINGLE_CORRECT
        else:
            raise InvalidQuestion(f"{raw.get('id')}: unsupported question type {q_type!r}")

    options = tuple(
        Option(id=str(o['id']), text=str(o.get('text', '')))
        for o in raw.get('options') or []
    )

    return Question(
        id=str(raw['id']),
        exam_id=raw.get('exam_id', exam_id),
        subject=raw['subject'],
        chapter=raw['chapter'],
        topic=raw.get('topic', ''),
        year=int(raw['year']),
        difficulty=str(raw.get('difficulty', 'medium')).lower(),
        type=q_type,
        source=raw.get('source', 'official_pyq'),
        text=raw.get('text', raw.get('question', '')),
        options=options if q_type != INTEGER else (),
        correct_options=correct,
        explanation=raw.get('explanation', ''),
        marks=raw.get('marks', 1),
        negative_marks=raw.get('negative_marks', 0),
    )


class CorpusProvider:
    """Read-only question bank, grouped by exam id"""

    def __init__(self, questions: Optional[Iterable[Question]] = None):
        self._by_exam: Dict[str, List[Question]] = {}
        for q in questions or []:
            self._by_exam.setdefault(q.exam_id, []).append(q)

    @classmethod
    def from_questions(cls, questions: Iterable[Question]) -> 'CorpusProvider':
        return cls(questions)

    @classmethod
    def from_directory(cls, directory: Optional[str] = None) -> 'CorpusProvider':
        """Load every ``*.json`` paper in a directory; bad files are skipped"""
        corpus_dir = Path(directory) if directory else DEFAULT_CORPUS_DIR

        if not corpus_dir.exists():
            logger.warning(f"PYQ directory not found: {corpus_dir}")
            return cls()

        json_files = sorted(corpus_dir.glob("*.json"))
        if not json_files:
            logger.warning("No previous year question papers found")
            return cls()

        questions: List[Question] = []
        seen_ids = set()
        for json_file in json_files:
            try:
                with open(json_file, 'r', encoding='utf-8') as f:
                    paper = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Failed to load {json_file}: {e}")
                continue

            exam_id = paper.get('exam_id', '')
            loaded = 0
            for raw in paper.get('questions', []):
                try:
                    q = parse_question(raw, exam_id)
                except (InvalidQuestion, KeyError, ValueError) as e:
                    logger.warning(f"Skipping question in {json_file.name}: {e}")
                    continue
                if q.id in seen_ids:
                    logger.warning(f"Duplicate question id {q.id} in {json_file.name}, skipped")
                    continue
                seen_ids.add(q.id)
                questions.append(q)
                loaded += 1

            logger.info(f"Loaded paper: {json_file.name} ({loaded} questions)")

        logger.info(f"Corpus holds {len(questions)} questions")
        return cls(questions)

    def exam_types(self) -> List[str]:
        return sorted(self._by_exam)

    def questions(self, exam_type: Optional[str] = None) -> List[Question]:
        """All questions, or only those of one exam type"""
        if exam_type is None:
            return [q for qs in self._by_exam.values() for q in qs]
        return list(self._by_exam.get(exam_type, []))

    def __len__(self) -> int:
        return sum(len(qs) for qs in self._by_exam.values())
