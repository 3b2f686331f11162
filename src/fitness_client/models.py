"""Credential, identity and result types shared across the client."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class User:
    """Authenticated identity: the only user state the app consumes."""

    id: int
    username: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "username": self.username}

    @classmethod
    def from_dict(cls, data: Any) -> "User":
        """Build from a ``{"id", "username"}`` mapping.

        Raises ``ValueError`` when either field is missing or mistyped.
        """
        if not isinstance(data, dict):
            raise ValueError(f"user record must be an object, got {type(data).__name__}")
        user_id = data.get("id")
        username = data.get("username")
        if isinstance(user_id, bool) or not isinstance(user_id, int):
            raise ValueError("user record lacks an integer id")
        if not isinstance(username, str) or not username:
            raise ValueError("user record lacks a username")
        return cls(id=user_id, username=username)


@dataclass(frozen=True)
class CredentialPair:
    """Access token, refresh token and user record, always handled as a unit."""

    access_token: str
    refresh_token: str
    user: User

    @classmethod
    def from_response(cls, body: Any) -> "CredentialPair":
        """Parse a login/refresh response body.

        Raises ``ValueError`` if any of the three parts is absent.
        """
        if not isinstance(body, dict):
            raise ValueError("credential response must be an object")
        access = body.get("access_token")
        refresh = body.get("refresh_token")
        if not isinstance(access, str) or not access:
            raise ValueError("response lacks access_token")
        if not isinstance(refresh, str) or not refresh:
            raise ValueError("response lacks refresh_token")
        return cls(access_token=access, refresh_token=refresh, user=User.from_dict(body.get("user")))


@dataclass(frozen=True)
class TokenClaims:
    """Claims read from an access token. Derived on demand, never persisted."""

    subject: str
    user_id: int
    expires_at: float  # epoch seconds


class AuthState(Enum):
    """Session lifecycle states."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    RENEWING = "renewing"


class FailureReason(Enum):
    """User-facing failure categories."""

    BAD_CREDENTIALS = "bad_credentials"
    VALIDATION = "validation"
    SERVER_ERROR = "server_error"
    NETWORK = "network"
    SESSION_EXPIRED = "session_expired"


@dataclass(frozen=True)
class Result:
    """``{success, error?}`` outcome handed to presentation code.

    No transport exception crosses this boundary; ``value`` carries the
    payload of a successful call.
    """

    success: bool
    error: str | None = None
    reason: FailureReason | None = None
    value: Any = None

    @classmethod
    def ok(cls, value: Any = None) -> "Result":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: str, reason: FailureReason) -> "Result":
        return cls(success=False, error=error, reason=reason)
