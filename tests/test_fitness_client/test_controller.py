"""Tests for fitness_client.session.SessionController: fake backend, mocked timer."""

from __future__ import annotations

import threading
import time

import pytest
import requests

from fakes import credential_body, make_response, make_token
from fitness_client.exceptions import AuthenticationExpiredError
from fitness_client.executor import SESSION_EXPIRED_MESSAGE
from fitness_client.models import AuthState, CredentialPair, FailureReason, User


def _fire_timer(scheduler_backend) -> None:
    call = scheduler_backend.add_job.call_args
    call.args[0](*call.kwargs["args"])


def _wait_for(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached")
        time.sleep(0.01)


# ---------------------------------------------------------------------------
# login
# ---------------------------------------------------------------------------


class TestLogin:
    def test_success_adopts_identity_and_arms_timer(self, controller, backend, store):
        token = make_token(3600)
        backend.on("POST", "/users/login", make_response(200, credential_body(token, "r1")))

        result = controller.login("alex", "password123")

        assert result.success
        assert controller.user == User(id=7, username="alex")
        assert controller.state is AuthState.AUTHENTICATED
        assert controller.scheduler.armed
        assert controller.scheduler.delay == pytest.approx(3300)
        assert store.load() == CredentialPair(token, "r1", User(7, "alex"))
        assert backend.calls[0].json == {"username": "alex", "password": "password123"}

    def test_bad_credentials(self, controller, backend, store):
        backend.on("POST", "/users/login", make_response(401, {"detail": "Incorrect username or password"}))

        result = controller.login("alex", "wrong-pass")

        assert not result.success
        assert result.reason is FailureReason.BAD_CREDENTIALS
        assert result.error == "Invalid username or password"
        assert controller.user is None
        assert controller.state is AuthState.UNAUTHENTICATED
        assert store.load() is None

    def test_validation_failure_names_password_rule(self, controller, backend):
        detail = [{"loc": ["body", "password"], "msg": "too short", "ctx": {"min_length": 8}}]
        backend.on("POST", "/users/login", make_response(422, {"detail": detail}))

        result = controller.login("alex", "short")

        assert result.reason is FailureReason.VALIDATION
        assert result.error == "Password must be at least 8 characters"

    def test_server_error(self, controller, backend):
        backend.on("POST", "/users/login", make_response(500, {"detail": "boom"}))
        result = controller.login("alex", "password123")
        assert result.reason is FailureReason.SERVER_ERROR
        assert "boom" not in result.error

    def test_network_error(self, controller, backend):
        backend.on("POST", "/users/login", requests.ConnectionError("offline"))
        result = controller.login("alex", "password123")
        assert result.reason is FailureReason.NETWORK
        assert controller.state is AuthState.UNAUTHENTICATED

    def test_empty_fields_rejected_locally(self, controller, backend):
        result = controller.login("", "password123")
        assert result.reason is FailureReason.VALIDATION
        assert backend.calls == []

    def test_malformed_token_in_response(self, controller, backend, store):
        backend.on("POST", "/users/login", make_response(200, credential_body(make_token(user_id=None))))
        result = controller.login("alex", "password123")
        assert result.reason is FailureReason.SERVER_ERROR
        assert store.load() is None
        assert not controller.scheduler.armed

    def test_incomplete_response_stores_nothing(self, controller, backend, store):
        body = credential_body(make_token())
        del body["user"]
        backend.on("POST", "/users/login", make_response(200, body))
        assert not controller.login("alex", "password123").success
        assert store.load() is None

    def test_failed_relogin_keeps_current_session(self, controller, backend, seeded_pair, store):
        controller.restore()
        backend.on("POST", "/users/login", make_response(401))
        controller.login("sam", "password123")
        assert controller.user == seeded_pair.user
        assert controller.state is AuthState.AUTHENTICATED
        assert store.load() == seeded_pair


# ---------------------------------------------------------------------------
# register / health
# ---------------------------------------------------------------------------


class TestRegister:
    def test_created(self, controller, backend):
        backend.on("POST", "/users/", make_response(201, {"id": 9, "username": "sam"}))
        result = controller.register("sam", "sam@example.com", "password123")
        assert result.success
        assert result.value == {"id": 9, "username": "sam"}
        assert backend.calls[0].json == {
            "username": "sam",
            "email": "sam@example.com",
            "password": "password123",
        }
        assert controller.user is None

    def test_invalid_email(self, controller, backend):
        detail = [{"loc": ["body", "email"], "msg": "not an email"}]
        backend.on("POST", "/users/", make_response(422, {"detail": detail}))
        result = controller.register("sam", "nope", "password123")
        assert result.reason is FailureReason.VALIDATION
        assert result.error == "Please enter a valid email address"

    def test_duplicate_username_detail(self, controller, backend):
        backend.on("POST", "/users/", make_response(400, {"detail": "Username already registered"}))
        result = controller.register("sam", "sam@example.com", "password123")
        assert result.error == "Username already registered"


class TestHealth:
    def test_up(self, controller, backend):
        backend.on("GET", "/health", make_response(200, {"status": "ok"}))
        assert controller.health() is True

    def test_unreachable(self, controller, backend):
        backend.on("GET", "/health", requests.ConnectionError("offline"))
        assert controller.health() is False


# ---------------------------------------------------------------------------
# restore / logout
# ---------------------------------------------------------------------------


class TestRestore:
    def test_valid_token_restores_identity(self, controller, seeded_pair, backend):
        assert controller.restore() is True
        assert controller.user == seeded_pair.user
        assert controller.scheduler.delay == pytest.approx(3300)
        assert backend.calls == []

    def test_nothing_stored(self, controller):
        assert controller.restore() is False
        assert controller.user is None
        assert controller.state is AuthState.UNAUTHENTICATED

    def test_partial_state_is_cleared(self, controller, store):
        store.path.parent.mkdir(parents=True)
        store.path.write_text('{"token": "abc"}')
        assert controller.restore() is False
        assert not store.path.exists()

    def test_expired_token_renews_first(self, controller, store, backend):
        store.save(CredentialPair(make_token(-60), "r1", User(7, "alex")))
        fresh = make_token(1800)
        backend.on("POST", "/users/refresh", make_response(200, credential_body(fresh, "r2")))

        assert controller.restore() is True

        assert backend.calls_to("/users/refresh")[0].json == {"refresh_token": "r1"}
        assert store.load().access_token == fresh
        assert controller.user == User(7, "alex")
        assert controller.scheduler.delay == pytest.approx(1500)

    def test_expired_token_renewal_fails(self, controller, store, backend):
        store.save(CredentialPair(make_token(-60), "r1", User(7, "alex")))
        backend.on("POST", "/users/refresh", make_response(401))

        assert controller.restore() is False
        assert store.load() is None
        assert controller.state is AuthState.UNAUTHENTICATED

    def test_malformed_stored_token_tries_renewal(self, controller, store, backend):
        store.save(CredentialPair("garbage", "r1", User(7, "alex")))
        backend.on("POST", "/users/refresh", make_response(200, credential_body(make_token())))
        assert controller.restore() is True

    def test_restore_logout_restore_is_unauthenticated(self, controller, seeded_pair, store):
        assert controller.restore() is True
        controller.logout()
        assert controller.restore() is False
        assert store.load() is None
        assert controller.user is None


class TestLogout:
    def test_clears_everything(self, controller, seeded_pair, store):
        controller.restore()
        controller.logout()
        assert controller.user is None
        assert not controller.scheduler.armed
        assert store.load() is None
        assert controller.last_logout_reason is None

    def test_keeps_reason(self, controller, seeded_pair):
        controller.restore()
        controller.logout("Session expired. Please log in again.")
        assert controller.last_logout_reason == "Session expired. Please log in again."

    def test_close_cancels_timer(self, controller, seeded_pair):
        controller.restore()
        controller.close()
        assert not controller.scheduler.armed


# ---------------------------------------------------------------------------
# renew
# ---------------------------------------------------------------------------


class TestRenew:
    def test_success_replaces_pair_and_rearms(self, controller, seeded_pair, store, backend):
        controller.restore()
        fresh = make_token(900)
        backend.on("POST", "/users/refresh", make_response(200, credential_body(fresh, "r2")))

        assert controller.renew() is True
        assert store.load() == CredentialPair(fresh, "r2", User(7, "alex"))
        assert controller.scheduler.delay == pytest.approx(600)
        assert controller.state is AuthState.AUTHENTICATED

    @pytest.mark.parametrize(
        "reply",
        [
            make_response(401, {"detail": "Invalid refresh token"}),
            make_response(500),
            requests.Timeout("slow"),
        ],
    )
    def test_failure_leaves_store_untouched(self, controller, seeded_pair, store, backend, reply):
        controller.restore()
        backend.on("POST", "/users/refresh", reply)

        assert controller.renew() is False
        assert store.load() == seeded_pair
        assert controller.user == seeded_pair.user
        assert controller.state is AuthState.AUTHENTICATED

    def test_result_after_logout_is_discarded(self, controller, seeded_pair, store, backend):
        controller.restore()

        def logout_mid_flight(call):
            controller.logout()
            return make_response(200, credential_body(make_token(), "r2"))

        backend.on("POST", "/users/refresh", logout_mid_flight)

        assert controller.renew() is False
        assert store.load() is None
        assert controller.user is None
        assert not controller.scheduler.armed

    def test_failure_after_newer_login_reports_success(self, controller, seeded_pair, store, backend):
        controller.restore()
        relogged = make_token(3600, jti="relogin")
        backend.on("POST", "/users/login", make_response(200, credential_body(relogged, "r9")))

        def login_then_reject(call):
            controller.login("alex", "password123")
            return make_response(401)

        backend.on("POST", "/users/refresh", login_then_reject)

        assert controller.renew() is True
        assert controller.state is AuthState.AUTHENTICATED
        assert store.load().access_token == relogged

    def test_concurrent_renewals_share_one_request(self, controller, seeded_pair, backend):
        controller.restore()
        started = threading.Event()
        release = threading.Event()

        def slow_refresh(call):
            started.set()
            release.wait(5)
            return make_response(200, credential_body(make_token(), "r2"))

        backend.on("POST", "/users/refresh", slow_refresh)
        results: list[bool] = []
        first = threading.Thread(target=lambda: results.append(controller.renew()))
        second = threading.Thread(target=lambda: results.append(controller.renew()))

        first.start()
        assert started.wait(5)
        second.start()
        time.sleep(0.2)
        release.set()
        first.join(5)
        second.join(5)

        assert results == [True, True]
        assert len(backend.calls_to("/users/refresh")) == 1


# ---------------------------------------------------------------------------
# Timer-driven renewal
# ---------------------------------------------------------------------------


class TestTimer:
    def test_fire_renews(self, controller, seeded_pair, store, backend, scheduler_backend):
        controller.restore()
        fresh = make_token(3600, jti="second")
        backend.on("POST", "/users/refresh", make_response(200, credential_body(fresh, "r2")))

        _fire_timer(scheduler_backend)

        assert store.load().access_token == fresh
        assert controller.scheduler.armed

    def test_fire_with_failed_renewal_logs_out(self, controller, seeded_pair, store, backend, scheduler_backend):
        controller.restore()
        backend.on("POST", "/users/refresh", make_response(401))

        _fire_timer(scheduler_backend)

        assert controller.user is None
        assert store.load() is None
        assert controller.last_logout_reason == SESSION_EXPIRED_MESSAGE


# ---------------------------------------------------------------------------
# Executor + controller together
# ---------------------------------------------------------------------------


class TestAuthenticatedRequests:
    def test_401_renews_and_retries(self, controller, seeded_pair, backend):
        controller.restore()
        fresh = make_token(3600, jti="fresh")
        backend.on("POST", "/users/refresh", make_response(200, credential_body(fresh, "r2")))
        backend.on(
            "GET",
            "/sessions/",
            lambda call: make_response(200, []) if call.bearer == fresh else make_response(401),
        )

        resp = controller.executor.execute("GET", "/sessions/")

        assert resp.status_code == 200
        assert len(backend.calls_to("/users/refresh")) == 1
        assert len(backend.calls_to("/sessions/")) == 2

    def test_401_after_retry_logs_out(self, controller, seeded_pair, store, backend):
        controller.restore()
        backend.on("POST", "/users/refresh", make_response(200, credential_body(make_token(), "r2")))
        backend.on("GET", "/sessions/", make_response(401))

        with pytest.raises(AuthenticationExpiredError):
            controller.executor.execute("GET", "/sessions/")

        assert len(backend.calls_to("/users/refresh")) == 1
        assert len(backend.calls_to("/sessions/")) == 2
        assert store.load() is None
        assert controller.user is None
        assert controller.last_logout_reason == SESSION_EXPIRED_MESSAGE

    def test_failed_renewal_logs_out(self, controller, seeded_pair, store, backend):
        controller.restore()
        backend.on("POST", "/users/refresh", make_response(401))
        backend.on("GET", "/sessions/", make_response(401))

        with pytest.raises(AuthenticationExpiredError):
            controller.executor.execute("GET", "/sessions/")
        assert store.load() is None

    def test_concurrent_401s_trigger_one_refresh(self, controller, seeded_pair, backend):
        controller.restore()
        fresh = make_token(3600, jti="fresh")
        started = threading.Event()
        release = threading.Event()

        def slow_refresh(call):
            started.set()
            release.wait(5)
            return make_response(200, credential_body(fresh, "r2"))

        backend.on("POST", "/users/refresh", slow_refresh)
        backend.on(
            "GET",
            "/sessions/",
            lambda call: make_response(200, []) if call.bearer == fresh else make_response(401),
        )

        statuses: list[int] = []

        def request() -> None:
            statuses.append(controller.executor.execute("GET", "/sessions/").status_code)

        first = threading.Thread(target=request)
        second = threading.Thread(target=request)
        first.start()
        assert started.wait(5)
        second.start()
        _wait_for(lambda: len(backend.calls_to("/sessions/")) >= 2)
        time.sleep(0.2)
        release.set()
        first.join(5)
        second.join(5)

        assert statuses == [200, 200]
        assert len(backend.calls_to("/users/refresh")) == 1

    def test_401_arriving_after_renewal_reuses_new_token(self, controller, seeded_pair, backend):
        controller.restore()
        fresh = make_token(3600, jti="fresh")
        backend.on("POST", "/users/refresh", make_response(200, credential_body(fresh, "r2")))
        statuses: list[int] = []
        overtaken: list[bool] = []

        def sessions(call):
            if call.bearer == fresh:
                return make_response(200, [])
            if not overtaken:
                # Another request completes 401 -> renew -> retry before this
                # one's 401 comes back.
                overtaken.append(True)
                statuses.append(controller.executor.execute("GET", "/sessions/").status_code)
            return make_response(401)

        backend.on("GET", "/sessions/", sessions)

        statuses.append(controller.executor.execute("GET", "/sessions/").status_code)

        assert statuses == [200, 200]
        assert len(backend.calls_to("/users/refresh")) == 1
        assert backend.calls_to("/sessions/")[-1].bearer == fresh

    def test_failed_renewal_does_not_log_out_newer_login(self, controller, seeded_pair, store, backend):
        controller.restore()
        relogged = make_token(3600, jti="relogin")
        backend.on("POST", "/users/login", make_response(200, credential_body(relogged, "r9")))

        def login_then_fail(call):
            assert controller.login("alex", "password123").success
            return make_response(500, {"detail": "refresh unavailable"})

        backend.on("POST", "/users/refresh", login_then_fail)
        backend.on(
            "GET",
            "/sessions/",
            lambda call: make_response(200, []) if call.bearer == relogged else make_response(401),
        )

        resp = controller.executor.execute("GET", "/sessions/")

        assert resp.status_code == 200
        assert controller.user == User(id=7, username="alex")
        assert store.load().access_token == relogged
        assert controller.last_logout_reason is None
