# services/errors.py
"""
Domain errors raised by the service layer.

Each carries a short, user-facing message and the HTTP status the request
boundary maps it to (see middleware/error_handlers.py).
"""


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AppError):
    status_code = 400


class AuthenticationError(AppError):
    status_code = 401


class NotFoundError(AppError):
    """Missing resource, or one owned by another user (same answer for both)."""

    status_code = 404


class ConflictError(AppError):
    status_code = 409


class AccountLockedError(AppError):
    status_code = 423
