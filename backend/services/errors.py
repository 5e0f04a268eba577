"""
Typed failures raised by the progress engine.
Each error carries the HTTP status the API layer maps it to.
"""
from typing import Any, Optional


class ProgressEngineError(Exception):
    status_code = 500
    error = "internal_error"

    def __init__(self, message: str, detail: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class NotFound(ProgressEngineError):
    status_code = 404
    error = "not_found"


class Forbidden(ProgressEngineError):
    status_code = 403
    error = "forbidden"


class Locked(ProgressEngineError):
    status_code = 409
    error = "locked"


class InvalidTransition(ProgressEngineError):
    status_code = 409
    error = "invalid_transition"


class AlreadyResolved(ProgressEngineError):
    status_code = 409
    error = "already_resolved"


class LockTimeout(ProgressEngineError):
    """Another mutation holds the booking; the caller should retry"""
    status_code = 408
    error = "timeout"


class InternalError(ProgressEngineError):
    status_code = 500
    error = "internal_error"


# Caller mistakes, always raised before any write
VALIDATION_ERRORS = (NotFound, Forbidden, Locked, InvalidTransition, AlreadyResolved)
