"""Typed failures raised by the programme services.

Every error carries a stable ``code`` so callers can branch on the failed
precondition without parsing messages.
"""

from __future__ import annotations


class ProgrammeError(Exception):
    code = "PROGRAMME_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def as_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class NotFound(ProgrammeError):
    code = "NOT_FOUND"


class Unauthorized(ProgrammeError):
    code = "UNAUTHORIZED"


class InvalidStateTransition(ProgrammeError):
    code = "INVALID_STATE_TRANSITION"


class ValidationError(ProgrammeError):
    code = "VALIDATION_ERROR"


class ConcurrencyConflict(ProgrammeError):
    """A conditional write found the row no longer in the expected state."""

    code = "CONCURRENCY_CONFLICT"
