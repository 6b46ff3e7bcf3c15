"""
Module: pyqmock/config/settings.py
Purpose: Environment-driven runtime settings (paths, store backend, pinned year).
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class EngineSettings:
    data_directory: Optional[str] = None  # None: bundled sample corpus
    db_path: str = "mock_tests.db"
    store: str = "sqlite"  # sqlite | memory
    current_year: Optional[int] = None
    random_seed: Optional[int] = None

    @classmethod
    def from_environment(cls) -> 'EngineSettings':
        year = os.getenv("PYQ_CURRENT_YEAR")
        seed = os.getenv("PYQ_RANDOM_SEED")
        return cls(
            data_directory=os.getenv("PYQ_DATA_DIR") or None,
            db_path=os.getenv("PYQ_DB_PATH", "mock_tests.db"),
            store=os.getenv("PYQ_STORE", "sqlite").lower(),
            current_year=int(year) if year else None,
            random_seed=int(seed) if seed else None,
        )
