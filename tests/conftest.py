"""Shared test fixtures: fixed clock, fake backend, stores and controllers."""

from __future__ import annotations

from typing import Callable
from unittest.mock import MagicMock

import pytest

from fakes import BASE_URL, NOW, FakeBackend, make_token
from fitness_client.credential_store import CredentialStore
from fitness_client.models import CredentialPair, User
from fitness_client.refresh_scheduler import RefreshScheduler
from fitness_client.session import SessionController


@pytest.fixture
def clock() -> Callable[[], float]:
    return lambda: NOW


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def store(tmp_path) -> CredentialStore:
    return CredentialStore(tmp_path / "tokens")


@pytest.fixture
def scheduler_backend() -> MagicMock:
    """Stand-in for APScheduler's BackgroundScheduler."""
    return MagicMock()


@pytest.fixture
def controller(store, backend, clock, scheduler_backend):
    c = SessionController(
        store=store,
        base_url=BASE_URL,
        http=backend.http,
        scheduler=RefreshScheduler(clock=clock, backend=scheduler_backend),
        clock=clock,
    )
    yield c
    c.close()


@pytest.fixture
def seeded_pair(store) -> CredentialPair:
    """A valid pair already on disk, as left by a previous run."""
    pair = CredentialPair(
        access_token=make_token(3600), refresh_token="r1", user=User(id=7, username="alex")
    )
    store.save(pair)
    return pair
