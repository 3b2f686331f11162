"""Custom exception hierarchy for the fitness tracker client."""

from __future__ import annotations

from typing import Any


class FitnessClientError(Exception):
    """Base exception for all fitness_client errors."""


class ValidationError(FitnessClientError):
    """Bad local input. Recoverable without touching credentials."""


class AuthenticationError(FitnessClientError):
    """Login rejected (bad credentials)."""


class AuthenticationExpiredError(AuthenticationError):
    """Renewal failed or the retried request was still unauthorized."""


class MalformedTokenError(AuthenticationExpiredError):
    """A token could not be decoded or lacks a required claim."""


class NetworkError(FitnessClientError):
    """Connectivity failure or timeout talking to the backend."""


class BackendError(FitnessClientError):
    """The backend returned a non-success response."""

    def __init__(
        self, message: str, status_code: int | None = None, detail: Any = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class BackendValidationError(BackendError):
    """HTTP 422: the backend rejected a field of the request body."""

    def __init__(self, message: str, detail: Any = None) -> None:
        super().__init__(message, status_code=422, detail=detail)
