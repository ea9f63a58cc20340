# ========================
# src/tripstats/pipeline/errors.py
# ========================

"""
Pipeline Exceptions

Error types raised by the trip pipeline stages.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for all trip pipeline errors."""
    pass


class IngestError(PipelineError):
    """
    Raised when the input cannot be trusted: no trip files were found,
    or a file's header does not match the expected schema.
    """

    def __init__(self, message: str, file_path: Optional[str] = None):
        self.file_path = file_path
        if file_path:
            message = f"{message} [{file_path}]"
        super().__init__(message)


class MalformedTimestampError(PipelineError):
    """Raised when a started_at/ended_at value cannot be parsed."""

    def __init__(self, value, field: Optional[str] = None):
        self.value = value
        self.field = field
        label = f"{field}=" if field else ""
        super().__init__(f"Unparseable timestamp: {label}{value!r}")
