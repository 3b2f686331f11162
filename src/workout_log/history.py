"""Past sessions: fetch from ``GET /sessions/`` and summarize.

:func:`summarize` is pure; :class:`SessionHistory` keeps a local cache that
successful flushes append to.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fitness_client.exceptions import AuthenticationExpiredError, NetworkError
from fitness_client.executor import RequestExecutor, error_detail
from fitness_client.models import FailureReason, Result
from workout_log.serialization import parse_timestamp

logger = logging.getLogger(__name__)

SESSIONS_ENDPOINT = "/sessions/"


@dataclass(frozen=True)
class SessionSummary:
    """One past session with its totals."""

    id: Any
    started_at: str
    finished_at: str
    notes: str
    workouts: tuple[dict, ...]
    total_sets: int
    total_reps: int
    total_volume: float
    duration_minutes: int | None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def summarize(session: dict) -> SessionSummary:
    """Compute set/rep/volume totals and duration for a backend session dict.

    Volume counts only sets with a weight: ``weight * count``. Entries that
    are not objects, and counts or weights that are not numbers, are skipped.
    """
    raw_workouts = session.get("workouts")
    if not isinstance(raw_workouts, list):
        raw_workouts = []
    workouts = tuple(w for w in raw_workouts if isinstance(w, dict))
    total_sets = 0
    total_reps = 0
    total_volume = 0.0
    for workout in workouts:
        sets = workout.get("sets")
        if not isinstance(sets, list):
            continue
        for s in sets:
            if not isinstance(s, dict):
                continue
            total_sets += 1
            reps = s.get("reps")
            if not isinstance(reps, dict):
                continue
            count = reps.get("count")
            if not _is_number(count):
                continue
            total_reps += count
            weight = reps.get("weight")
            if _is_number(weight) and weight > 0:
                total_volume += weight * count

    started = session.get("started_at")
    finished = session.get("finished_at")
    started = started if isinstance(started, str) else ""
    finished = finished if isinstance(finished, str) else ""
    duration: int | None = None
    if started and finished:
        try:
            delta = parse_timestamp(finished) - parse_timestamp(started)
            duration = round(delta.total_seconds() / 60)
        except ValueError:
            duration = None

    return SessionSummary(
        id=session.get("id"),
        started_at=started,
        finished_at=finished,
        notes=session.get("notes") or "",
        workouts=workouts,
        total_sets=total_sets,
        total_reps=total_reps,
        total_volume=total_volume,
        duration_minutes=duration,
    )


class SessionHistory:
    """Local cache of the user's sessions."""

    def __init__(self, executor: RequestExecutor) -> None:
        self._executor = executor
        self._sessions: list[dict] = []

    @property
    def sessions(self) -> list[SessionSummary]:
        return [summarize(s) for s in self._sessions]

    def add(self, session: dict) -> None:
        """Record a freshly saved session, newest first."""
        self._sessions.insert(0, session)

    def refresh(self) -> Result:
        """Replace the cache with the backend's list."""
        try:
            resp = self._executor.execute("GET", SESSIONS_ENDPOINT)
        except NetworkError as exc:
            logger.warning("Fetching sessions failed: %s", exc)
            return Result.fail(
                "Network error. Please check your connection and try again.",
                FailureReason.NETWORK,
            )
        except AuthenticationExpiredError:
            return Result.fail(
                "Authentication error. Please log in again.", FailureReason.SESSION_EXPIRED
            )

        if resp.status_code == 404:
            logger.info("No sessions found")
            self._sessions = []
            return Result.ok([])
        if resp.status_code in (401, 403):
            return Result.fail(
                "Authentication error. Please log in again.", FailureReason.SESSION_EXPIRED
            )
        if resp.status_code != 200:
            detail = error_detail(resp)
            return Result.fail(
                detail if isinstance(detail, str) and detail else "Failed to load sessions",
                FailureReason.SERVER_ERROR,
            )

        try:
            data = resp.json()
        except ValueError:
            return Result.fail("Failed to load sessions", FailureReason.SERVER_ERROR)
        if not isinstance(data, list):
            return Result.fail("Failed to load sessions", FailureReason.SERVER_ERROR)

        self._sessions = [s for s in data if isinstance(s, dict)]
        logger.info("Fetched %d sessions", len(self._sessions))
        return Result.ok(self.sessions)


def fetch_history(executor: RequestExecutor) -> Result:
    """One-off fetch of the user's past sessions as summaries."""
    return SessionHistory(executor).refresh()
