"""
Error taxonomy shared by the store, the chain layer and the HTTP surface.

Every failure carries a stable ``kind`` (used as the ``error`` field of the
response envelope) and the HTTP status the API maps it to.
"""

from __future__ import annotations

from typing import Optional


class CivicDAOError(Exception):
    kind = "internal_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(CivicDAOError):
    kind = "not_found"
    status_code = 404


class Unauthorized(CivicDAOError):
    kind = "unauthorized"
    status_code = 403


class DuplicateVote(CivicDAOError):
    kind = "duplicate_vote"
    status_code = 409


class ValidationFailure(CivicDAOError):
    kind = "validation_failed"
    status_code = 400


class UpstreamFailure(CivicDAOError):
    """A read or write against an external contract or service failed."""

    kind = "upstream_failure"
    status_code = 502

    def __init__(self, operation: str, cause: str) -> None:
        super().__init__(f"Failed to {operation}: {cause}")
        self.operation = operation
        self.cause = cause


class UpstreamTimeout(CivicDAOError):
    """An upstream call ran past its allotted time (distinct from a revert)."""

    kind = "timeout"
    status_code = 504

    def __init__(self, operation: str, seconds: Optional[float] = None) -> None:
        detail = f"timed out after {seconds:g}s" if seconds is not None else "timed out"
        super().__init__(f"Failed to {operation}: {detail}")
        self.operation = operation
        self.seconds = seconds
