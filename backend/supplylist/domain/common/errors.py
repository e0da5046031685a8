"""Exceptions raised at I/O boundaries (stores, catalog, classification)."""
from __future__ import annotations
from typing import List, Optional


class InfrastructureError(Exception):
    """An external dependency was unreachable or answered with garbage. Retryable."""

    def __init__(self, message: str, service: str = "", retryable: bool = True):
        super().__init__(message)
        self.service = service
        self.retryable = retryable


class NotFoundError(Exception):
    """The course (or something inside it) does not exist in the backing store."""


class ConflictError(Exception):
    """The version history changed between read and write."""

    def __init__(self, course_id: str, expected: Optional[str] = None, actual: Optional[str] = None):
        super().__init__(
            f"Course '{course_id}' was modified concurrently "
            f"(expected revision {expected!r}, found {actual!r})."
        )
        self.course_id = course_id
        self.expected = expected
        self.actual = actual


class ClassificationError(InfrastructureError):
    """Every configured classification model failed (or the breaker is open)."""

    def __init__(self, message: str, failures: Optional[List[str]] = None):
        super().__init__(message, service="classification")
        self.failures = failures or []
