"""Content store error hierarchy and helpers."""

from typing import Any, Optional

import httpx

DEFAULT_ERROR_MESSAGE = "An unexpected error occurred. Please try again later."


class StoreError(Exception):
    """Base exception for content store failures.

    ``status`` mirrors the HTTP status code of the failure when one exists.
    """

    status: Optional[int] = None

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status


class AuthError(StoreError):
    status = 401


class PermissionDeniedError(StoreError):
    status = 403


class NotFoundError(StoreError):
    status = 404


class ConflictError(StoreError):
    status = 409


class ValidationFailedError(StoreError):
    status = 422


class StoreUnavailableError(StoreError):
    """The store could not be reached at all."""

    status = 503

    def __init__(
        self,
        message: str = "Unable to connect to the content store. Please check your internet connection.",
        status: Optional[int] = None,
    ):
        super().__init__(message, status)


class ConfigurationError(Exception):
    """Missing or invalid environment configuration."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        super().__init__(message)
        self.config_key = config_key


def status_of(error: Any) -> Optional[int]:
    """Extract an HTTP-like status code from an error, if it carries one."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    for attr in ("status", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    return None


def format_error(error: Any) -> str:
    """Turn an error into a message that is safe to show to a user."""
    if isinstance(error, str):
        return error
    message = getattr(error, "message", None)
    if message:
        return str(message)
    description = getattr(error, "error_description", None)
    if description:
        return str(description)
    if isinstance(error, dict):
        for key in ("message", "error_description", "msg"):
            if error.get(key):
                return str(error[key])
    return DEFAULT_ERROR_MESSAGE
