"""
Module: pyqmock/core/store.py
Purpose: Persistence for mock tests, attempts, responses and analysis snapshots.

Two backends share one interface: an in-memory store (tests, CLI) and a
SQLite store whose schema auto-migrates missing columns on start-up.
"""

import json
import sqlite3
import time
from abc import ABC, abstractmethod
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional, Sequence

from pyqmock.core.errors import AlreadyFinalized, AttemptNotFound
from pyqmock.core.models import Analysis, Attempt, AttemptStatus, MockTest, Response
from pyqmock.tools.utils import get_logger

logger = get_logger("Store")


class AttemptStore(ABC):
    """What the engine needs from its persistence collaborator"""

    @abstractmethod
    def save_test(self, test: MockTest) -> None: ...

    @abstractmethod
    def get_test(self, mock_test_id: str) -> Optional[MockTest]: ...

    @abstractmethod
    def save_attempt(self, attempt: Attempt) -> None: ...

    @abstractmethod
    def get_attempt(self, attempt_id: str) -> Optional[Attempt]: ...

    @abstractmethod
    def list_attempts(self, status: Optional[AttemptStatus] = None) -> List[Attempt]: ...

    @abstractmethod
    def save_responses(self, attempt_id: str, responses: Sequence[Response]) -> None:
        """Upsert responses by question id"""

    @abstractmethod
    def get_responses(self, attempt_id: str) -> List[Response]: ...

    @abstractmethod
    def get_analysis(self, attempt_id: str) -> Optional[Analysis]: ...

    @abstractmethod
    def finalize_attempt(self, attempt: Attempt, responses: Sequence[Response],
                         analysis: Analysis) -> None:
        """
        Store the terminal attempt, its responses and the analysis together.
        Raises AlreadyFinalized if the stored attempt is no longer in progress.
        """


# =============================================================================
# IN-MEMORY
# =============================================================================

class InMemoryStore(AttemptStore):
    def __init__(self):
        self._lock = Lock()
        self._tests: Dict[str, MockTest] = {}
        self._attempts: Dict[str, Attempt] = {}
        self._responses: Dict[str, Dict[str, Response]] = {}
        self._analyses: Dict[str, Analysis] = {}

    def save_test(self, test: MockTest) -> None:
        with self._lock:
            self._tests[test.id] = test

    def get_test(self, mock_test_id: str) -> Optional[MockTest]:
        return self._tests.get(mock_test_id)

    def save_attempt(self, attempt: Attempt) -> None:
        with self._lock:
            self._attempts[attempt.id] = attempt

    def get_attempt(self, attempt_id: str) -> Optional[Attempt]:
        return self._attempts.get(attempt_id)

    def list_attempts(self, status: Optional[AttemptStatus] = None) -> List[Attempt]:
        return [a for a in self._attempts.values() if status is None or a.status == status]

    def save_responses(self, attempt_id: str, responses: Sequence[Response]) -> None:
        with self._lock:
            stored = self._responses.setdefault(attempt_id, {})
            for r in responses:
                stored[r.question_id] = r

    def get_responses(self, attempt_id: str) -> List[Response]:
        return list(self._responses.get(attempt_id, {}).values())

    def get_analysis(self, attempt_id: str) -> Optional[Analysis]:
        return self._analyses.get(attempt_id)

    def finalize_attempt(self, attempt: Attempt, responses: Sequence[Response],
                         analysis: Analysis) -> None:
        with self._lock:
            current = self._attempts.get(attempt.id)
            if current is None:
                raise AttemptNotFound(attempt.id)
            if not current.is_open:
                raise AlreadyFinalized(attempt.id, current.status.value)
            stored = self._responses.setdefault(attempt.id, {})
            for r in responses:
                stored[r.question_id] = r
            self._attempts[attempt.id] = attempt
            self._analyses[attempt.id] = analysis


# =============================================================================
# SQLITE
# =============================================================================

class SQLiteStore(AttemptStore):
    """Single-file store; records are kept as JSON payloads next to indexed columns"""

    def __init__(self, db_path: str = "mock_tests.db"):
        self.db_path = Path(db_path)
        self.init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """
        Create tables and add any columns missing from an older database.
        """
        with self._connect() as conn:
            c = conn.cursor()
            c.execute('''
                CREATE TABLE IF NOT EXISTS mock_tests (
                    id TEXT PRIMARY KEY,
                    exam_type TEXT,
                    full_json TEXT,
                    created_at REAL
                )
            ''')
            c.execute('''
                CREATE TABLE IF NOT EXISTS attempts (
                    id TEXT PRIMARY KEY,
                    mock_test_id TEXT,
                    status TEXT,
                    full_json TEXT
                )
            ''')
            c.execute('''
                CREATE TABLE IF NOT EXISTS responses (
                    attempt_id TEXT,
                    question_id TEXT,
                    selected_options TEXT,
                    time_spent INTEGER,
                    PRIMARY KEY (attempt_id, question_id)
                )
            ''')
            c.execute('''
                CREATE TABLE IF NOT EXISTS analyses (
                    attempt_id TEXT PRIMARY KEY,
                    full_json TEXT,
                    created_at REAL
                )
            ''')

            required_columns = {
                'attempts': {'start_time': 'TEXT', 'end_time': 'TEXT', 'obtained_marks': 'REAL'},
                'analyses': {'accuracy_percentage': 'REAL'},
            }
            for table, columns in required_columns.items():
                c.execute(f"PRAGMA table_info({table})")
                existing = {col[1] for col in c.fetchall()}
                for col_name, col_type in columns.items():
                    if col_name not in existing:
                        logger.info(f"Migrating database: adding {table}.{col_name}")
                        c.execute(f"ALTER TABLE {table} ADD COLUMN {col_name} {col_type}")
            conn.commit()

    def save_test(self, test: MockTest) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO mock_tests (id, exam_type, full_json, created_at) VALUES (?, ?, ?, ?)",
                (test.id, test.exam_type, json.dumps(test.to_dict()), time.time())
            )

    def get_test(self, mock_test_id: str) -> Optional[MockTest]:
        with self._connect() as conn:
            row = conn.execute("SELECT full_json FROM mock_tests WHERE id = ?", (mock_test_id,)).fetchone()
        return MockTest.from_dict(json.loads(row['full_json'])) if row else None

    @staticmethod
    def _write_attempt(conn: sqlite3.Connection, attempt: Attempt) -> None:
        data = attempt.to_dict()
        conn.execute(
            """INSERT OR REPLACE INTO attempts
               (id, mock_test_id, status, full_json, start_time, end_time, obtained_marks)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (attempt.id, attempt.mock_test_id, attempt.status.value, json.dumps(data),
             data['start_time'], data['end_time'], attempt.obtained_marks)
        )

    @staticmethod
    def _write_responses(conn: sqlite3.Connection, attempt_id: str, responses: Sequence[Response]) -> None:
        conn.executemany(
            "INSERT OR REPLACE INTO responses (attempt_id, question_id, selected_options, time_spent) "
            "VALUES (?, ?, ?, ?)",
            [(attempt_id, r.question_id, json.dumps(list(r.selected_options)), r.time_spent)
             for r in responses]
        )

    def save_attempt(self, attempt: Attempt) -> None:
        with self._connect() as conn:
            self._write_attempt(conn, attempt)

    def get_attempt(self, attempt_id: str) -> Optional[Attempt]:
        with self._connect() as conn:
            row = conn.execute("SELECT full_json FROM attempts WHERE id = ?", (attempt_id,)).fetchone()
        return Attempt.from_dict(json.loads(row['full_json'])) if row else None

    def list_attempts(self, status: Optional[AttemptStatus] = None) -> List[Attempt]:
        with self._connect() as conn:
            if status is None:
                rows = conn.execute("SELECT full_json FROM attempts").fetchall()
            else:
                rows = conn.execute("SELECT full_json FROM attempts WHERE status = ?",
                                    (status.value,)).fetchall()
        return [Attempt.from_dict(json.loads(r['full_json'])) for r in rows]

    def save_responses(self, attempt_id: str, responses: Sequence[Response]) -> None:
        with self._connect() as conn:
            self._write_responses(conn, attempt_id, responses)

    def get_responses(self, attempt_id: str) -> List[Response]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT question_id, selected_options, time_spent FROM responses WHERE attempt_id = ?",
                (attempt_id,)
            ).fetchall()
        return [
            Response(question_id=r['question_id'],
                     selected_options=tuple(json.loads(r['selected_options'] or '[]')),
                     time_spent=r['time_spent'] or 0)
            for r in rows
        ]

    def get_analysis(self, attempt_id: str) -> Optional[Analysis]:
        with self._connect() as conn:
            row = conn.execute("SELECT full_json FROM analyses WHERE attempt_id = ?", (attempt_id,)).fetchone()
        return Analysis.from_dict(json.loads(row['full_json'])) if row else None

    def finalize_attempt(self, attempt: Attempt, responses: Sequence[Response],
                         analysis: Analysis) -> None:
        data = attempt.to_dict()
        with self._connect() as conn:
            # Compare-and-set on status so two concurrent submissions cannot both win
            cursor = conn.execute(
                """UPDATE attempts SET status = ?, full_json = ?, end_time = ?, obtained_marks = ?
                   WHERE id = ? AND status = ?""",
                (attempt.status.value, json.dumps(data), data['end_time'], attempt.obtained_marks,
                 attempt.id, AttemptStatus.IN_PROGRESS.value)
            )
            if cursor.rowcount == 0:
                row = conn.execute("SELECT status FROM attempts WHERE id = ?", (attempt.id,)).fetchone()
                if row is None:
                    raise AttemptNotFound(attempt.id)
                raise AlreadyFinalized(attempt.id, row['status'])

            self._write_responses(conn, attempt.id, responses)
            conn.execute(
                "INSERT OR REPLACE INTO analyses (attempt_id, full_json, created_at, accuracy_percentage) "
                "VALUES (?, ?, ?, ?)",
                (attempt.id, json.dumps(analysis.to_dict()), time.time(), analysis.accuracy_percentage)
            )
