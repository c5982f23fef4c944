"""Error kinds raised by the schedule/transition core and mapped to HTTP responses in main.py."""

from typing import Any, List, Optional


class NapTrackError(Exception):
    """Base error: carries a stable code and the HTTP status the API answers with."""

    code = "NAPTRACK_ERROR"
    status_code = 400

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code


class FormatError(NapTrackError):
    """Malformed HH:mm time or duration token."""

    code = "INVALID_FORMAT"
    status_code = 400


class ScheduleValidationError(NapTrackError):
    """Schedule configuration violates one or more bound invariants."""

    code = "VALIDATION_ERROR"
    status_code = 422

    def __init__(self, issues: List[Any], message: str = "Schedule configuration is invalid"):
        super().__init__(message)
        self.issues = list(issues)


class InvalidStateError(NapTrackError):
    code = "INVALID_STATE"
    status_code = 409


class InvalidArgumentError(NapTrackError):
    code = "INVALID_ARGUMENT"
    status_code = 400


class NotFoundError(NapTrackError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(NapTrackError):
    """Surfaced from the persistence layer when a concurrent mutation wins."""

    code = "CONFLICT"
    status_code = 409
