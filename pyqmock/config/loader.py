"""
Module: pyqmock/config/loader.py
Purpose: Load the exam catalog (test sizes, marking schemes, sections and
trend tuning) from YAML. Provides cached access with explicit reload.
"""

import yaml
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
from pathlib import Path

from pyqmock.core.errors import UnknownExamType
from pyqmock.core.models import (
    MarkingScheme, SectionSpec, TrendWeights, DiagnosticThresholds, DIFFICULTIES
)
from pyqmock.tools.utils import get_logger

logger = get_logger("ConfigLoader")

CONFIG_DIR = Path(__file__).parent
EXAMS_FILE = CONFIG_DIR / "exams.yaml"


@dataclass(frozen=True)
class ExamConfig:
    """Static shape of one exam type's mock test"""
    exam_type: str
    name: str
    total_questions: int
    time_limit_minutes: int
    marking_scheme: MarkingScheme
    sections: Tuple[SectionSpec, ...] = ()

    @property
    def is_sectioned(self) -> bool:
        return bool(self.sections)


def _parse_scheme(raw: Optional[dict]) -> Optional[MarkingScheme]:
    if not raw:
        return None
    return MarkingScheme(
        correct=raw.get('correct', 1),
        incorrect=raw.get('incorrect', 0),
        partial_credit=bool(raw.get('partial_credit', False)),
    )


def _parse_exam(exam_type: str, raw: dict) -> ExamConfig:
    sections = []
    for s in raw.get('sections') or []:
        difficulty = s.get('difficulty')
        if difficulty is not None and difficulty not in DIFFICULTIES:
            raise ValueError(f"{exam_type}: unknown section difficulty {difficulty!r}")
        sections.append(SectionSpec(
            subject=s['subject'],
            mcq_count=int(s.get('mcq_count', 0)),
            integer_count=int(s.get('integer_count', 0)),
            difficulty=difficulty,
            marking_scheme=_parse_scheme(s.get('marking_scheme')),
        ))

    total = raw.get('total_questions')
    if total is None:
        total = sum(s.total_questions for s in sections)

    return ExamConfig(
        exam_type=exam_type,
        name=raw.get('name', exam_type),
        total_questions=int(total),
        time_limit_minutes=int(raw.get('time_limit_minutes', 180)),
        marking_scheme=_parse_scheme(raw.get('marking_scheme')) or MarkingScheme(),
        sections=tuple(sections),
    )


# =============================================================================
# EXAM CATALOG
# =============================================================================

class ExamCatalog:
    """Exam configurations plus the trend and diagnostics tuning"""

    def __init__(self, config_path: Optional[Path] = None, data: Optional[dict] = None):
        self.config_path = Path(config_path) if config_path else EXAMS_FILE
        self._exams: Dict[str, ExamConfig] = {}
        self.default_exam: Optional[str] = None
        self.trend_weights = TrendWeights()
        self.thresholds = DiagnosticThresholds()

        if data is not None:
            self._apply(data)
        else:
            self._load()

    def _load(self) -> None:
        """Load the catalog from the YAML file"""
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                raw = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"[Config] Failed to load exam catalog {self.config_path}: {e}")
            raw = {}
        self._apply(raw)
        logger.info(f"[Config] Loaded {len(self._exams)} exam types from {self.config_path}")

    def _apply(self, raw: dict) -> None:
        self._exams = {
            exam_type: _parse_exam(exam_type, cfg)
            for exam_type, cfg in (raw.get('exams') or {}).items()
        }
        self.default_exam = raw.get('default_exam')

        trend = raw.get('trend') or {}
        self.trend_weights = TrendWeights(
            recency_weight=float(trend.get('recency_weight', 0.15)),
            consistency_weight=float(trend.get('consistency_weight', 0.10)),
            recency_decay_per_year=float(trend.get('recency_decay_per_year', 20)),
            consistency_full_years=int(trend.get('consistency_full_years', 5)),
        )

        diagnostics = raw.get('diagnostics') or {}
        self.thresholds = DiagnosticThresholds(
            strength=float(diagnostics.get('strength_threshold', 70)),
            weakness=float(diagnostics.get('weakness_threshold', 40)),
        )

    def reload(self) -> None:
        """Force reload of the catalog file"""
        self._load()
        logger.info("[Config] Exam catalog reloaded")

    def exam_types(self) -> List[str]:
        return list(self._exams)

    def get(self, exam_type: str) -> ExamConfig:
        """
        Look up an exam type. Unknown types fall back to ``default_exam``
        when the catalog names one, otherwise raise UnknownExamType.
        """
        if exam_type in self._exams:
            return self._exams[exam_type]
        if self.default_exam in self._exams:
            logger.warning(f"[Config] Unknown exam type {exam_type!r}, using {self.default_exam}")
            return self._exams[self.default_exam]
        raise UnknownExamType(exam_type)

    def resolve(self, exam_type: str) -> str:
        """The exam type ``get`` would actually serve"""
        return self.get(exam_type).exam_type


# =============================================================================
# SINGLETON ACCESS
# =============================================================================

_catalog: Optional[ExamCatalog] = None


def get_exam_catalog() -> ExamCatalog:
    """Get the shared exam catalog"""
    global _catalog
    if _catalog is None:
        _catalog = ExamCatalog()
    return _catalog


def reload_config() -> None:
    """Reload all configuration files"""
    get_exam_catalog().reload()
