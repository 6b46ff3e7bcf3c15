"""
Module: pyqmock/core/errors.py
Purpose: Error taxonomy for test assembly and attempt submission.
"""


class EngineError(Exception):
    """Base class for every error the engine raises on purpose."""


class InvalidQuestion(EngineError):
    """A corpus record violates the Question invariants."""


class UnknownExamType(EngineError):
    def __init__(self, exam_type: str):
        super().__init__(f"Unknown exam type: {exam_type}")
        self.exam_type = exam_type


class InsufficientSupply(EngineError):
    """The eligible corpus cannot fill the requested test."""

    def __init__(self, requested: int, available: int, scope: str = ""):
        where = f" for {scope}" if scope else ""
        super().__init__(
            f"Only {available} eligible questions available{where}, requested {requested}"
        )
        self.requested = requested
        self.available = available
        self.scope = scope


# Name used at the GenerateTest boundary
NoQuestionsAvailable = InsufficientSupply


class TestNotFound(EngineError):
    __test__ = False  # keep pytest from collecting this class

    def __init__(self, mock_test_id: str):
        super().__init__(f"Mock test not found: {mock_test_id}")
        self.mock_test_id = mock_test_id


class AttemptStateError(EngineError):
    """Submission rejected; the attempt is left unchanged."""


class AttemptNotFound(AttemptStateError):
    def __init__(self, attempt_id: str):
        super().__init__(f"Attempt not found: {attempt_id}")
        self.attempt_id = attempt_id


class AlreadyFinalized(AttemptStateError):
    def __init__(self, attempt_id: str, status: str):
        super().__init__(f"Attempt {attempt_id} is already {status}")
        self.attempt_id = attempt_id
        self.status = status


class MalformedResponse(EngineError):
    """
    A response the scorer could not use. Never raised out of the scorer:
    instances are collected on the score sheet and logged.
    """

    def __init__(self, question_id: str, reason: str):
        super().__init__(f"Dropped response for {question_id!r}: {reason}")
        self.question_id = question_id
        self.reason = reason
