# PURPOSE: application error taxonomy.
# Each error carries the HTTP status it maps to and a stable `error` kind
# that ends up in the JSON payload (see api/errors.py).

from typing import Any


class AppError(Exception):
    """Base class for errors reported to API callers."""

    status_code: int = 500
    error: str = "AppError"

    def __init__(self, detail: str = "", *, details: Any = None) -> None:
        super().__init__(detail or self.error)
        self.detail = detail or self.error
        self.details = details


class ValidationError(AppError):
    status_code = 400
    error = "ValidationError"


class InvalidTimestamp(ValidationError):
    error = "InvalidTimestamp"


class InvalidStatus(ValidationError):
    error = "InvalidStatus"


class DerivationError(AppError):
    """External text->task capability failed or returned malformed output."""

    status_code = 400
    error = "DerivationError"


class NotFound(AppError):
    status_code = 404
    error = "NotFound"


class Conflict(AppError):
    status_code = 409
    error = "Conflict"


class Unauthenticated(AppError):
    status_code = 401
    error = "Unauthenticated"


class Forbidden(AppError):
    status_code = 403
    error = "Forbidden"


class StoreError(AppError):
    status_code = 500
    error = "StoreError"
