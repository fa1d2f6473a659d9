"""
Domain exceptions for the billing migration backend.

Services raise these; the API layer maps them onto HTTP status codes.
"""

from typing import Optional


class MigrationError(Exception):
    """Base class for all billing migration errors."""

    code: str = "MIGRATION_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class RecordCountMismatchError(MigrationError):
    """Submitted record count does not match the declared total."""

    code = "RECORD_COUNT_MISMATCH"

    def __init__(self, expected: int, actual: int, noun: str = "Record"):
        super().__init__(f"{noun} count mismatch. Expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class JobNotFoundError(MigrationError):
    code = "JOB_NOT_FOUND"

    def __init__(self, batch_id: str):
        super().__init__(f"Import batch {batch_id} not found")
        self.batch_id = batch_id


class DuplicateJobError(MigrationError):
    code = "DUPLICATE_BATCH"

    def __init__(self, batch_id: str):
        super().__init__(f"Import batch {batch_id} already exists")
        self.batch_id = batch_id


class InvalidJobTransitionError(MigrationError):
    """Raised when a job status would move backwards or out of a terminal state."""

    code = "INVALID_TRANSITION"


class OrchestratorBusyError(MigrationError):
    code = "ORCHESTRATOR_BUSY"


class ImportRecordError(MigrationError):
    """
    A single record could not be processed.

    The orchestrator records ``message`` and ``code`` in the job's error list
    and carries on with the rest of the batch.
    """

    code = "UNKNOWN_ERROR"
