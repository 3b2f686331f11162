"""Fitness tracker backend client: all backend network I/O lives here."""

from fitness_client.credential_store import CredentialStore
from fitness_client.exceptions import (
    AuthenticationError,
    AuthenticationExpiredError,
    BackendError,
    BackendValidationError,
    FitnessClientError,
    MalformedTokenError,
    NetworkError,
    ValidationError,
)
from fitness_client.executor import RequestExecutor
from fitness_client.models import (
    AuthState,
    CredentialPair,
    FailureReason,
    Result,
    TokenClaims,
    User,
)
from fitness_client.refresh_scheduler import RefreshScheduler
from fitness_client.session import SessionController

__all__ = [
    "AuthState",
    "AuthenticationError",
    "AuthenticationExpiredError",
    "BackendError",
    "BackendValidationError",
    "CredentialPair",
    "CredentialStore",
    "FailureReason",
    "FitnessClientError",
    "MalformedTokenError",
    "NetworkError",
    "RefreshScheduler",
    "RequestExecutor",
    "Result",
    "SessionController",
    "TokenClaims",
    "User",
    "ValidationError",
]
