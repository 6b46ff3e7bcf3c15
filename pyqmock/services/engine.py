"""
Module: pyqmock/services/engine.py
Purpose: Mock test engine facade.

GenerateTest: corpus -> trend analysis -> optimized distribution -> selection
-> persisted MockTest. SubmitAttempt: stored attempt + responses -> score ->
analysis -> persisted terminal attempt and analysis snapshot.
"""

import random
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from pyqmock.config.loader import ExamCatalog, ExamConfig, get_exam_catalog
from pyqmock.config.settings import EngineSettings
from pyqmock.core.corpus import CorpusProvider
from pyqmock.core.errors import (
    AlreadyFinalized, AttemptNotFound, NoQuestionsAvailable, TestNotFound
)
from pyqmock.core.models import (
    Analysis, Attempt, AttemptStatus, ChapterStat, MarkingScheme, MockTest,
    Question, Response, ScoreSheet, SectionSpec, CHOICE_TYPES, INTEGER
)
from pyqmock.core.store import AttemptStore, InMemoryStore, SQLiteStore
from pyqmock.services.diagnostics import build_analysis
from pyqmock.services.distribution import (
    distribution_map, optimize_distribution, rounded_distribution
)
from pyqmock.services.metrics import MetricsCollector, track_operation
from pyqmock.services.scorer import score_attempt
from pyqmock.services.selector import (
    QuestionSelector, allocate_largest_remainder, normalize_difficulty
)
from pyqmock.services.trend_analyzer import analyze_trends, calculate_distribution
from pyqmock.tools.utils import get_logger

logger = get_logger("MockTestEngine")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TrendReport:
    """Chapter trends of one exam type, sorted by historical share"""
    exam_type: str
    analysis_year: int
    total_questions_analyzed: int
    chapters: List[ChapterStat]
    original_distribution: Dict[str, int]
    optimized_distribution: Dict[str, int]

    def to_dict(self) -> dict:
        return {
            'exam_type': self.exam_type,
            'analysis_year': self.analysis_year,
            'total_questions_analyzed': self.total_questions_analyzed,
            'chapters': [{
                'chapter': s.chapter,
                'subject': s.subject,
                'questions_count': s.total_questions,
                'original_percentage': round(s.raw_percentage, 1),
                'optimized_percentage': round(s.optimized_percentage, 1),
                'recency_score': s.recency_score,
                'consistency_score': s.consistency_score,
                'years_appeared': s.years,
                'trend': s.trend,
            } for s in self.chapters],
            'original_distribution': self.original_distribution,
            'optimized_distribution': self.optimized_distribution,
        }


@dataclass
class SubmissionResult:
    attempt: Attempt
    analysis: Analysis
    score: ScoreSheet

    def to_dict(self) -> dict:
        return {
            'attempt': self.attempt.to_dict(),
            'analysis': self.analysis.to_dict(),
            'scores': self.score.to_dict(),
        }


def scale_sections(sections: Sequence[SectionSpec], n: int) -> Tuple[SectionSpec, ...]:
    """Shrink or grow sectioned counts to ``n`` questions, keeping their proportions"""
    shares = {}
    for i, s in enumerate(sections):
        shares[(i, 'mcq')] = s.mcq_count
        shares[(i, 'integer')] = s.integer_count
    counts = allocate_largest_remainder(shares, n)
    return tuple(
        replace(s, mcq_count=counts[(i, 'mcq')], integer_count=counts[(i, 'integer')])
        for i, s in enumerate(sections)
    )


class MockTestEngine:
    """Stateless between calls; all records live in the injected store"""

    def __init__(self, corpus: CorpusProvider, store: AttemptStore,
                 catalog: Optional[ExamCatalog] = None, clock: Optional[Clock] = None,
                 rng: Optional[random.Random] = None, metrics: Optional[MetricsCollector] = None,
                 current_year: Optional[int] = None):
        self.corpus = corpus
        self.store = store
        self.catalog = catalog or get_exam_catalog()
        self.clock = clock or utc_now
        self.selector = QuestionSelector(rng)
        self.metrics = metrics or MetricsCollector()
        self.current_year = current_year

    def analysis_year(self) -> int:
        return self.current_year or self.clock().year

    def _distribution_for(self, questions: List[Question]):
        stats = analyze_trends(questions, self.analysis_year(), self.catalog.trend_weights)
        return distribution_map(optimize_distribution(stats, self.catalog.trend_weights))

    # ========== TREND ANALYSIS ==========

    def trend_report(self, exam_type: str) -> TrendReport:
        """Per-chapter trends and distributions for an exam type's corpus"""
        exam = self.catalog.resolve(exam_type)
        pool = self.corpus.questions(exam)
        year = self.analysis_year()
        stats = optimize_distribution(
            analyze_trends(pool, year, self.catalog.trend_weights), self.catalog.trend_weights
        )
        if not stats:
            logger.warning(f"No PYQ data for {exam}")
        return TrendReport(
            exam_type=exam,
            analysis_year=year,
            total_questions_analyzed=len(pool),
            chapters=sorted(stats, key=lambda s: -s.raw_percentage),
            original_distribution=calculate_distribution(pool),
            optimized_distribution=rounded_distribution(stats),
        )

    def supply_shortfall(self, exam_type: str, difficulty: Optional[str] = None) -> Dict[str, int]:
        """
        How many questions the corpus is short of for a full catalog-sized test,
        keyed by exam type (flat tests) or "<subject> mcq|integer" (sectioned).
        Empty when the test can be generated.
        """
        config = self.catalog.get(exam_type)
        level = normalize_difficulty(difficulty)
        pool = self.corpus.questions(config.exam_type)

        def available(questions, types, wanted_level):
            return sum(1 for q in questions if q.type in types
                       and (wanted_level is None or q.difficulty == wanted_level))

        if not config.is_sectioned:
            short = config.total_questions - available(pool, CHOICE_TYPES + (INTEGER,), level)
            return {config.exam_type: short} if short > 0 else {}

        shortfall = {}
        for section in config.sections:
            subject_pool = [q for q in pool if q.subject == section.subject]
            for count, types, label in ((section.mcq_count, CHOICE_TYPES, "mcq"),
                                        (section.integer_count, (INTEGER,), "integer")):
                short = count - available(subject_pool, types, section.difficulty or level)
                if short > 0:
                    shortfall[f"{section.subject} {label}"] = short
        return shortfall

    # ========== TEST GENERATION ==========

    def generate_test(self, exam_type: str, difficulty: Optional[str] = None,
                      question_count: Optional[int] = None,
                      time_limit_minutes: Optional[int] = None) -> MockTest:
        """
        Assemble and persist a mock test.

        ``question_count`` overrides the catalog size (sections are scaled
        proportionally); ``time_limit_minutes`` overrides the catalog limit.
        Raises NoQuestionsAvailable when the corpus cannot fill the test.
        """
        config = self.catalog.get(exam_type)
        level = normalize_difficulty(difficulty)
        if question_count is not None and question_count <= 0:
            raise ValueError(f"Question count must be positive, got {question_count}")

        with track_operation(self.metrics, "generate", config.exam_type):
            pool = self.corpus.questions(config.exam_type)
            wanted = question_count or config.total_questions
            if not pool:
                raise NoQuestionsAvailable(wanted, 0, config.exam_type)

            logger.info(f"Generating {wanted}-question {config.exam_type} test "
                        f"(difficulty: {level or 'mixed'}) from {len(pool)} PYQs")

            if config.is_sectioned:
                sections = config.sections
                if question_count is not None:
                    sections = scale_sections(sections, question_count)
                questions = self._assemble_sections(config, sections, pool, level)
            else:
                sections = ()
                picked = self.selector.select(
                    pool, self._distribution_for(pool), wanted,
                    difficulty=level, scope=config.exam_type,
                )
                questions = self._apply_scheme(picked, config.marking_scheme)

            test = MockTest(
                name=config.name,
                exam_type=config.exam_type,
                total_questions=len(questions),
                total_marks=sum(q.marks for q in questions),
                time_limit_minutes=time_limit_minutes or config.time_limit_minutes,
                marking_scheme=config.marking_scheme,
                questions=tuple(questions),
                sections=tuple(sections),
                difficulty=level,
                created_at=self.clock(),
            )
            self.store.save_test(test)

        logger.info(f"Mock test {test.id} created: {test.total_questions} questions, "
                    f"{test.total_marks:g} marks, {test.time_limit_minutes} min")
        return test

    def _assemble_sections(self, config: ExamConfig, sections: Sequence[SectionSpec],
                           pool: List[Question], level: Optional[str]) -> List[Question]:
        questions: List[Question] = []
        for section, picked in self.selector.select_sections(pool, sections, self._distribution_for, level):
            questions.extend(self._apply_scheme(picked, section.marking_scheme or config.marking_scheme))
        return questions

    @staticmethod
    def _apply_scheme(questions: Sequence[Question], scheme: MarkingScheme) -> List[Question]:
        return [q.with_marking(scheme.correct, scheme.incorrect) for q in questions]

    # ========== ATTEMPTS ==========

    def start_attempt(self, mock_test_id: str) -> Attempt:
        if self.store.get_test(mock_test_id) is None:
            raise TestNotFound(mock_test_id)
        attempt = Attempt(mock_test_id=mock_test_id, start_time=self.clock())
        self.store.save_attempt(attempt)
        logger.info(f"Attempt {attempt.id} started on test {mock_test_id}")
        return attempt

    def _open_attempt(self, attempt_id: str) -> Tuple[Attempt, MockTest]:
        attempt = self.store.get_attempt(attempt_id)
        if attempt is None:
            raise AttemptNotFound(attempt_id)
        if not attempt.is_open:
            raise AlreadyFinalized(attempt_id, attempt.status.value)
        test = self.store.get_test(attempt.mock_test_id)
        if test is None:
            raise TestNotFound(attempt.mock_test_id)
        return attempt, test

    def save_progress(self, attempt_id: str, responses: Sequence[Response]) -> int:
        """Store in-progress answers; returns how many were kept"""
        _, test = self._open_attempt(attempt_id)
        known = test.question_map()
        valid = [r for r in responses if r.question_id in known]
        if len(valid) < len(responses):
            logger.warning(f"Ignoring {len(responses) - len(valid)} responses for questions "
                           f"outside test {test.id}")
        self.store.save_responses(attempt_id, valid)
        return len(valid)

    def submit_attempt(self, attempt_id: str, responses: Optional[Sequence[Response]] = None,
                       auto_submit: bool = False) -> SubmissionResult:
        """
        Score and finalize an in-progress attempt.

        Submitted responses are merged over any saved progress. Raises
        AttemptNotFound or AlreadyFinalized without touching the attempt.
        """
        attempt, test = self._open_attempt(attempt_id)

        with track_operation(self.metrics, "submit", test.exam_type):
            merged: Dict[str, Response] = {r.question_id: r for r in self.store.get_responses(attempt_id)}
            for r in responses or []:
                merged[r.question_id] = r

            sheet = score_attempt(test.questions, list(merged.values()),
                                  partial_credit=test.partial_credit_map())
            if sheet.dropped_responses:
                self.metrics.increment("malformed_responses", len(sheet.dropped_responses))

            end_time = self.clock()
            if auto_submit:
                end_time = min(end_time, self.deadline(attempt, test))

            final = attempt.finalized(end_time, sheet.obtained_marks, test.total_marks,
                                      auto_submitted=auto_submit)
            analysis = build_analysis(sheet, self.catalog.thresholds,
                                      total_time_spent=final.total_time_spent, attempt_id=attempt_id)

            known = test.question_map()
            kept = [r for r in merged.values() if r.question_id in known]
            self.store.finalize_attempt(final, kept, analysis)

        logger.info(f"Attempt {attempt_id} {final.status.value}: {sheet.obtained_marks:g}/"
                    f"{test.total_marks:g} marks, accuracy {analysis.accuracy_percentage}%")
        return SubmissionResult(attempt=final, analysis=analysis, score=sheet)

    @staticmethod
    def deadline(attempt: Attempt, test: MockTest) -> datetime:
        return attempt.start_time + timedelta(minutes=test.time_limit_minutes)

    def expire_overdue_attempts(self) -> List[SubmissionResult]:
        """
        Auto-submit every in-progress attempt past its deadline with whatever
        responses were saved. Meant to be driven by an external timer.
        """
        now = self.clock()
        results = []
        for attempt in self.store.list_attempts(AttemptStatus.IN_PROGRESS):
            test = self.store.get_test(attempt.mock_test_id)
            try:
                if test is None:
                    results.append(self._close_orphan(attempt, now))
                elif now >= self.deadline(attempt, test):
                    results.append(self.submit_attempt(attempt.id, auto_submit=True))
            except AlreadyFinalized:
                # Submitted manually between listing and now
                logger.info(f"Attempt {attempt.id} was finalized before auto-submit")
        if results:
            logger.info(f"Auto-submitted {len(results)} overdue attempts")
        return results

    def _close_orphan(self, attempt: Attempt, now: datetime) -> SubmissionResult:
        """Auto-submit an attempt whose test is gone with zero marks so the sweep drops it"""
        logger.error(f"Attempt {attempt.id} references missing test {attempt.mock_test_id}; "
                     f"closing it with no score")
        sheet = score_attempt([], [])
        final = attempt.finalized(now, 0, 0, auto_submitted=True)
        analysis = build_analysis(sheet, self.catalog.thresholds,
                                  total_time_spent=final.total_time_spent, attempt_id=attempt.id)
        self.store.finalize_attempt(final, [], analysis)
        return SubmissionResult(attempt=final, analysis=analysis, score=sheet)

    def get_analysis(self, attempt_id: str) -> Optional[Analysis]:
        if self.store.get_attempt(attempt_id) is None:
            raise AttemptNotFound(attempt_id)
        return self.store.get_analysis(attempt_id)


# =============================================================================
# SHARED INSTANCE
# =============================================================================

_engine: Optional[MockTestEngine] = None


def build_engine(settings: Optional[EngineSettings] = None,
                 catalog: Optional[ExamCatalog] = None) -> MockTestEngine:
    """Wire an engine from environment settings"""
    settings = settings or EngineSettings.from_environment()
    store = InMemoryStore() if settings.store == "memory" else SQLiteStore(settings.db_path)
    rng = random.Random(settings.random_seed) if settings.random_seed is not None else None
    return MockTestEngine(
        corpus=CorpusProvider.from_directory(settings.data_directory),
        store=store,
        catalog=catalog,
        rng=rng,
        current_year=settings.current_year,
    )


def get_engine() -> MockTestEngine:
    """Get the shared engine instance"""
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine
