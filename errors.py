"""
Error taxonomy

Every failure a handler reports to the client is one of these. main.py turns
them into JSON responses; anything else is an unexpected 500.
"""
from typing import Dict, List


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message}


class ValidationFailed(AppError):
    status_code = 400

    def __init__(self, errors: List[Dict[str, str]], message: str = "Validation failed"):
        super().__init__(message)
        self.errors = errors

    def to_dict(self) -> dict:
        return {"detail": self.message, "errors": self.errors}


class BadRequestError(AppError):
    status_code = 400


class ConflictError(BadRequestError):
    """Duplicate username or email."""


class AuthError(AppError):
    status_code = 401


class NotFoundError(AppError):
    status_code = 404


class InternalError(AppError):
    """Details go to the log, the client only ever sees a generic message."""

    status_code = 500

    def to_dict(self) -> dict:
        return {"detail": "Internal server error"}
