"""Authenticated request executor: all backend HTTP goes through here.

Attaches the stored bearer token, and on a 401 drives one renewal followed
by one retry before giving up.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

import requests

from fitness_client.credential_store import CredentialStore
from fitness_client.exceptions import (
    AuthenticationExpiredError,
    BackendError,
    BackendValidationError,
    NetworkError,
)

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "http://localhost:8000"
_DEFAULT_TIMEOUT_S = 10.0

REFRESH_ENDPOINT = "/users/refresh"
LOGIN_ENDPOINT = "/users/login"
# A 401 from these means the credentials themselves were rejected.
_CREDENTIAL_ENDPOINTS = frozenset({REFRESH_ENDPOINT, LOGIN_ENDPOINT})

SESSION_EXPIRED_MESSAGE = "Session expired. Please log in again."


class RequestExecutor:
    """Issue backend requests on behalf of the current session."""

    def __init__(
        self,
        store: CredentialStore,
        base_url: str = _DEFAULT_BASE_URL,
        http: Optional[requests.Session] = None,
        timeout: float = _DEFAULT_TIMEOUT_S,
    ) -> None:
        self._store = store
        self._base_url = base_url.rstrip("/")
        self._http = http if http is not None else requests.Session()
        self._timeout = timeout
        self._renew: Optional[Callable[[], bool]] = None
        self._expire: Optional[Callable[[str], None]] = None

    @property
    def base_url(self) -> str:
        return self._base_url

    def bind(self, renew: Callable[[], bool], expire: Callable[[str], None]) -> None:
        """Install the renewal and forced-logout hooks."""
        self._renew = renew
        self._expire = expire

    def execute(
        self, method: str, endpoint: str, json: Any = None
    ) -> requests.Response:
        """Send one logical request; returns the final response.

        Raises ``NetworkError`` on transport failure and
        ``AuthenticationExpiredError`` when renewal cannot rescue a 401.
        """
        resp, sent_token = self._send(method, endpoint, json)
        if resp.status_code != 401 or endpoint in _CREDENTIAL_ENDPOINTS:
            return resp

        pair = self._store.load()
        if pair is None or self._renew is None:
            # Nothing to renew with; the caller sees the 401.
            return resp

        if pair.access_token != sent_token:
            # Another caller renewed while this request was in flight.
            logger.info("401 from %s %s with a superseded token, retrying", method, endpoint)
        else:
            logger.info("401 from %s %s, attempting token renewal", method, endpoint)
            if not self._renew():
                self._force_logout()
                raise AuthenticationExpiredError("Token renewal failed")

        retry, _ = self._send(method, endpoint, json)
        if retry.status_code == 401:
            logger.warning("Still unauthorized after renewal: %s %s", method, endpoint)
            self._force_logout()
            raise AuthenticationExpiredError("Unauthorized after token renewal")
        return retry

    def get_json(self, endpoint: str) -> Any:
        """GET *endpoint* and return its JSON body, raising on non-2xx."""
        return self._json_or_raise(self.execute("GET", endpoint))

    def post_json(self, endpoint: str, body: Any) -> Any:
        """POST *body* to *endpoint* and return its JSON body, raising on non-2xx."""
        return self._json_or_raise(self.execute("POST", endpoint, json=body))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _send(
        self, method: str, endpoint: str, body: Any
    ) -> tuple[requests.Response, Optional[str]]:
        """Issue one HTTP request; returns the response and the token attached."""
        headers = {"Content-Type": "application/json"}
        pair = self._store.load()
        token = pair.access_token if pair is not None else None
        if token is not None:
            headers["Authorization"] = f"Bearer {token}"

        url = f"{self._base_url}{endpoint}"
        try:
            resp = self._http.request(
                method, url, json=body, headers=headers, timeout=self._timeout
            )
        except requests.Timeout as exc:
            raise NetworkError(f"Request to {endpoint} timed out") from exc
        except requests.RequestException as exc:
            raise NetworkError(f"Request to {endpoint} failed: {exc}") from exc
        return resp, token

    def _force_logout(self) -> None:
        if self._expire is not None:
            self._expire(SESSION_EXPIRED_MESSAGE)

    def _json_or_raise(self, resp: requests.Response) -> Any:
        if 200 <= resp.status_code < 300:
            if not resp.content:
                return None
            try:
                return resp.json()
            except ValueError as exc:
                raise BackendError(
                    "Backend returned invalid JSON", status_code=resp.status_code
                ) from exc
        raise error_from_response(resp)


def error_detail(resp: requests.Response) -> Any:
    """Return the ``detail`` field of an error body, or None."""
    try:
        body = resp.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get("detail")
    return None


def describe_validation_error(detail: Any) -> str:
    """Turn a 422 ``detail`` list into one human-readable message.

    The offending field is read from each error's ``loc`` path.
    """
    if isinstance(detail, str) and detail:
        return detail
    if not isinstance(detail, list) or not detail:
        return "Please check your input and try again."

    for err in detail:
        if not isinstance(err, dict):
            continue
        loc = [str(part) for part in err.get("loc") or []]
        ctx = err.get("ctx") or {}
        if "password" in loc:
            min_length = ctx.get("min_length") if isinstance(ctx, dict) else None
            return f"Password must be at least {min_length or 8} characters"
        if "email" in loc:
            return "Please enter a valid email address"
        if "username" in loc:
            return f"Invalid username: {err.get('msg', 'rejected by server')}"

    first = detail[0]
    if isinstance(first, dict) and first.get("msg"):
        return str(first["msg"])
    return "Please check your input and try again."


def error_from_response(resp: requests.Response) -> BackendError:
    """Build the matching :class:`BackendError` for a failed response."""
    detail = error_detail(resp)
    if resp.status_code == 422:
        return BackendValidationError(describe_validation_error(detail), detail=detail)
    message = detail if isinstance(detail, str) and detail else f"HTTP {resp.status_code}"
    return BackendError(message, status_code=resp.status_code, detail=detail)
