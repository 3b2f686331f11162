"""Session lifecycle: login, logout, restore-on-start and token renewal.

:class:`SessionController` is the single source of truth for who is logged
in. It owns the credential store writes, the refresh timer, and the
renewal de-duplication shared by the timer and the request executor.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from pathlib import Path
from typing import Callable, Optional

import requests

from fitness_client.credential_store import CredentialStore
from fitness_client.exceptions import MalformedTokenError, NetworkError
from fitness_client.executor import (
    LOGIN_ENDPOINT,
    REFRESH_ENDPOINT,
    SESSION_EXPIRED_MESSAGE,
    RequestExecutor,
    describe_validation_error,
    error_detail,
)
from fitness_client.models import (
    AuthState,
    CredentialPair,
    FailureReason,
    Result,
    User,
)
from fitness_client.refresh_scheduler import RefreshScheduler
from fitness_client.token_clock import decode_claims, is_expired

logger = logging.getLogger(__name__)

REGISTER_ENDPOINT = "/users/"
HEALTH_ENDPOINT = "/health"

NETWORK_ERROR_MESSAGE = "Network error. Please check your connection and try again."
SERVER_ERROR_MESSAGE = "Server error. Please try again later."
BAD_CREDENTIALS_MESSAGE = "Invalid username or password"


class SessionController:
    """Owns the authenticated identity and its credential lifecycle."""

    def __init__(
        self,
        store: Optional[CredentialStore] = None,
        base_url: str = "http://localhost:8000",
        http: Optional[requests.Session] = None,
        timeout: float = 10.0,
        scheduler: Optional[RefreshScheduler] = None,
        clock: Callable[[], float] = time.time,
        token_dir: Path | str | None = None,
    ) -> None:
        if store is None:
            store = CredentialStore(token_dir) if token_dir is not None else CredentialStore()
        self._store = store
        self._clock = clock
        self._executor = RequestExecutor(store, base_url=base_url, http=http, timeout=timeout)
        self._executor.bind(self.renew, self._expire)
        self._scheduler = scheduler if scheduler is not None else RefreshScheduler(clock=clock)
        self._scheduler.on_fire = self._on_timer

        self._lock = threading.Lock()
        self._state = AuthState.UNAUTHENTICATED
        self._user: User | None = None
        # Bumped by login/logout so late renewal results can be recognised.
        self._generation = 0
        self._inflight: Future | None = None
        self.last_logout_reason: str | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def executor(self) -> RequestExecutor:
        return self._executor

    @property
    def scheduler(self) -> RefreshScheduler:
        return self._scheduler

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def user(self) -> User | None:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    def restore(self) -> bool:
        """Adopt stored credentials on start-up. Returns True if authenticated."""
        pair = self._store.load()
        if pair is None:
            # Partial leftovers count as no session.
            self._store.clear()
            self._reset()
            logger.info("No stored session")
            return False

        try:
            expired = is_expired(pair.access_token, self._clock())
        except MalformedTokenError:
            logger.warning("Stored access token is malformed, treating as expired")
            expired = True

        if not expired:
            with self._lock:
                self._generation += 1
                self._user = pair.user
                self._state = AuthState.AUTHENTICATED
                self._scheduler.schedule(pair.access_token)
            logger.info("Restored session for %s", pair.user.username)
            return True

        logger.info("Stored access token expired, renewing before restore")
        if self.renew():
            return True

        self._store.clear()
        self._reset()
        return False

    def login(self, username: str, password: str) -> Result:
        """Authenticate and persist the returned credential pair."""
        if not username or not password:
            return Result.fail("Please fill in all fields", FailureReason.VALIDATION)

        with self._lock:
            prev_state = self._state
            self._state = AuthState.AUTHENTICATING

        try:
            resp = self._executor.execute(
                "POST", LOGIN_ENDPOINT, json={"username": username, "password": password}
            )
        except NetworkError as exc:
            logger.warning("Login failed: %s", exc)
            self._restore_state(prev_state)
            return Result.fail(NETWORK_ERROR_MESSAGE, FailureReason.NETWORK)

        if resp.status_code != 200:
            self._restore_state(prev_state)
            return self._classify_login_failure(resp)

        try:
            pair = CredentialPair.from_response(resp.json())
            decode_claims(pair.access_token)
        except (ValueError, MalformedTokenError) as exc:
            logger.error("Unusable login response: %s", exc)
            self._restore_state(prev_state)
            return Result.fail(SERVER_ERROR_MESSAGE, FailureReason.SERVER_ERROR)

        with self._lock:
            self._generation += 1
            self._store.save(pair)
            self._user = pair.user
            self._state = AuthState.AUTHENTICATED
            self.last_logout_reason = None
            self._scheduler.schedule(pair.access_token)
        logger.info("Logged in as %s", pair.user.username)
        return Result.ok(pair.user)

    def register(self, username: str, email: str, password: str) -> Result:
        """Create a backend account. Does not log in."""
        if not username or not email or not password:
            return Result.fail("Please fill in all fields", FailureReason.VALIDATION)
        try:
            resp = self._executor.execute(
                "POST",
                REGISTER_ENDPOINT,
                json={"username": username, "email": email, "password": password},
            )
        except NetworkError as exc:
            logger.warning("Registration failed: %s", exc)
            return Result.fail(NETWORK_ERROR_MESSAGE, FailureReason.NETWORK)

        if resp.status_code in (200, 201):
            logger.info("Registered account %s", username)
            try:
                body = resp.json()
            except ValueError:
                body = None
            return Result.ok(body)

        detail = error_detail(resp)
        if resp.status_code == 422:
            return Result.fail(describe_validation_error(detail), FailureReason.VALIDATION)
        if resp.status_code >= 500:
            return Result.fail(SERVER_ERROR_MESSAGE, FailureReason.SERVER_ERROR)
        message = detail if isinstance(detail, str) and detail else "Registration failed"
        return Result.fail(message, FailureReason.VALIDATION)

    def renew(self) -> bool:
        """Exchange the stored refresh token for a new pair.

        Concurrent callers share one in-flight attempt and its outcome.
        Failure leaves the store untouched; the caller decides on logout.
        """
        with self._lock:
            if self._inflight is not None:
                future = self._inflight
                leader = False
            else:
                future = self._inflight = Future()
                leader = True
                generation = self._generation
                prev_state = self._state
                self._state = AuthState.RENEWING

        if not leader:
            logger.debug("Joining in-flight token renewal")
            return future.result()

        ok = False
        try:
            ok = self._do_renew(generation, prev_state)
        finally:
            with self._lock:
                self._inflight = None
            future.set_result(ok)
        return ok

    def logout(self, reason: str | None = None) -> None:
        """Drop credentials and identity. *reason* is kept for display."""
        with self._lock:
            self._generation += 1
            self._scheduler.cancel()
            self._store.clear()
            self._user = None
            self._state = AuthState.UNAUTHENTICATED
            self.last_logout_reason = reason
        if reason:
            logger.warning("Logged out: %s", reason)
        else:
            logger.info("Logged out")

    def health(self) -> bool:
        """Liveness probe against the backend."""
        try:
            resp = self._executor.execute("GET", HEALTH_ENDPOINT)
        except NetworkError as exc:
            logger.warning("Health check failed: %s", exc)
            return False
        return resp.status_code == 200

    def close(self) -> None:
        """Teardown: stop the refresh timer."""
        self._scheduler.shutdown()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _do_renew(self, generation: int, prev_state: AuthState) -> bool:
        pair = self._store.load()
        if pair is None:
            return self._end_renewal(generation, prev_state)

        try:
            resp = self._executor.execute(
                "POST", REFRESH_ENDPOINT, json={"refresh_token": pair.refresh_token}
            )
        except NetworkError as exc:
            logger.warning("Token renewal failed: %s", exc)
            return self._end_renewal(generation, prev_state)

        if resp.status_code != 200:
            logger.warning("Token renewal rejected with HTTP %d", resp.status_code)
            return self._end_renewal(generation, prev_state)

        try:
            new_pair = CredentialPair.from_response(resp.json())
            decode_claims(new_pair.access_token)
        except (ValueError, MalformedTokenError) as exc:
            logger.warning("Unusable renewal response: %s", exc)
            return self._end_renewal(generation, prev_state)

        with self._lock:
            if generation != self._generation:
                logger.info("Discarding renewal that completed after logout/login")
                return self._state is AuthState.AUTHENTICATED
            self._store.save(new_pair)
            self._user = new_pair.user
            self._state = AuthState.AUTHENTICATED
            self._scheduler.schedule(new_pair.access_token)
        logger.info("Renewed access token for %s", new_pair.user.username)
        return True

    def _end_renewal(self, generation: int, prev_state: AuthState) -> bool:
        """Settle a failed renewal. True if a newer login already succeeded."""
        with self._lock:
            if generation != self._generation:
                return self._state is AuthState.AUTHENTICATED
            if self._state is AuthState.RENEWING:
                self._state = prev_state
            return False

    def _on_timer(self) -> None:
        with self._lock:
            generation = self._generation
        if self.renew():
            return
        with self._lock:
            stale = generation != self._generation
        if not stale:
            self.logout(SESSION_EXPIRED_MESSAGE)

    def _expire(self, reason: str) -> None:
        self.logout(reason)

    def _reset(self) -> None:
        with self._lock:
            self._generation += 1
            self._scheduler.cancel()
            self._user = None
            self._state = AuthState.UNAUTHENTICATED

    def _restore_state(self, prev_state: AuthState) -> None:
        with self._lock:
            if self._state is AuthState.AUTHENTICATING:
                self._state = prev_state

    def _classify_login_failure(self, resp: requests.Response) -> Result:
        detail = error_detail(resp)
        status = resp.status_code
        logger.info("Login rejected with HTTP %d", status)
        if status == 401:
            return Result.fail(BAD_CREDENTIALS_MESSAGE, FailureReason.BAD_CREDENTIALS)
        if status == 422:
            return Result.fail(describe_validation_error(detail), FailureReason.VALIDATION)
        if status >= 500:
            return Result.fail(SERVER_ERROR_MESSAGE, FailureReason.SERVER_ERROR)
        message = detail if isinstance(detail, str) and detail else BAD_CREDENTIALS_MESSAGE
        return Result.fail(message, FailureReason.BAD_CREDENTIALS)
