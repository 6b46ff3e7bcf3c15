"""
Configuration module for the mock test engine.
Provides access to the exam catalog and runtime settings.
"""

from pyqmock.config.loader import (
    get_exam_catalog,
    reload_config,
    ExamCatalog,
    ExamConfig,
)
from pyqmock.config.settings import EngineSettings

__all__ = [
    "get_exam_catalog",
    "reload_config",
    "ExamCatalog",
    "ExamConfig",
    "EngineSettings",
]
