"""In-progress workout session, built incrementally and saved in one shot.

A :class:`WorkoutSession` starts empty, collects exercises (append only)
and notes, then is flushed to ``POST /sessions/``. A failed flush leaves
everything as it was so the user can retry; a successful one makes the
session terminal.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from numbers import Real
from typing import TYPE_CHECKING, Any, Callable, Optional

from fitness_client.exceptions import (
    AuthenticationExpiredError,
    BackendError,
    BackendValidationError,
    NetworkError,
    ValidationError,
)
from fitness_client.executor import SESSION_EXPIRED_MESSAGE
from fitness_client.models import FailureReason, Result
from workout_log.models.enums import Intensity
from workout_log.models.workout import Exercise
from workout_log.serialization import to_session_payload

if TYPE_CHECKING:
    from fitness_client.executor import RequestExecutor
    from workout_log.history import SessionHistory

logger = logging.getLogger(__name__)

SESSIONS_ENDPOINT = "/sessions/"
_NETWORK_MESSAGE = "Network error. Please check your connection and try again."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_exercise(exercise: Exercise) -> None:
    """Check the record-level invariants of *exercise*.

    Raises ``ValidationError`` naming the first violation.
    """
    if not exercise.name or not exercise.name.strip():
        raise ValidationError("Exercise name is required")
    if exercise.finished_at < exercise.started_at:
        raise ValidationError(f"{exercise.name}: finished before it started")

    for i, s in enumerate(exercise.sets, start=1):
        if s.finished_at < s.started_at:
            raise ValidationError(f"{exercise.name} set {i}: finished before it started")
        count = s.reps.count
        if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
            raise ValidationError(f"{exercise.name} set {i}: rep count must be a positive integer")
        weight = s.reps.weight
        if weight is not None and (
            isinstance(weight, bool) or not isinstance(weight, Real) or weight <= 0
        ):
            raise ValidationError(f"{exercise.name} set {i}: weight must be positive")
        if not isinstance(s.reps.intensity, Intensity):
            raise ValidationError(f"{exercise.name} set {i}: unknown intensity")


class WorkoutSession:
    """Mutable aggregate for one workout session."""

    def __init__(
        self,
        started_at: datetime,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._started_at = started_at
        self._clock = clock
        self._notes = ""
        self._exercises: list[Exercise] = []
        self._session_id: Any = None
        self._flushed = False

    @classmethod
    def start(cls, clock: Callable[[], datetime] = _utcnow) -> "WorkoutSession":
        """Begin a session now, with no exercises."""
        session = cls(clock(), clock=clock)
        logger.info("Workout session started at %s", session.started_at.isoformat())
        return session

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def started_at(self) -> datetime:
        return self._started_at

    @property
    def notes(self) -> str:
        return self._notes

    @property
    def exercises(self) -> tuple[Exercise, ...]:
        return tuple(self._exercises)

    @property
    def session_id(self) -> Any:
        """Backend id, None until a flush succeeds."""
        return self._session_id

    @property
    def flushed(self) -> bool:
        return self._flushed

    @property
    def total_sets(self) -> int:
        return sum(len(ex.sets) for ex in self._exercises)

    @property
    def total_reps(self) -> int:
        return sum(ex.total_reps for ex in self._exercises)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_exercise(self, exercise: Exercise) -> None:
        """Append *exercise*. Raises ``ValidationError`` on a bad record."""
        self._ensure_open()
        validate_exercise(exercise)
        self._exercises.append(exercise)
        logger.debug(
            "Added %s (%d sets), %d exercises in session",
            exercise.name,
            len(exercise.sets),
            len(self._exercises),
        )

    def set_notes(self, notes: str) -> None:
        self._ensure_open()
        self._notes = notes

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def build_payload(self) -> dict:
        """Stamp ``finished_at`` and return the backend session payload."""
        finished_at = self._clock()
        if finished_at < self._started_at:
            finished_at = self._started_at
        notes = self._notes or f"Session completed with {len(self._exercises)} exercises"
        return to_session_payload(self._started_at, finished_at, notes, self._exercises)

    def flush(
        self,
        executor: "RequestExecutor",
        payload: Optional[dict] = None,
        history: Optional["SessionHistory"] = None,
    ) -> Result:
        """Save the session. On failure nothing local changes.

        Pass the *payload* from an earlier attempt to retry it unchanged.
        """
        if self._flushed:
            return Result.fail("Session already saved", FailureReason.VALIDATION)
        if payload is None:
            payload = self.build_payload()

        try:
            body = executor.post_json(SESSIONS_ENDPOINT, payload)
        except NetworkError as exc:
            logger.warning("Session save failed: %s", exc)
            return Result.fail(_NETWORK_MESSAGE, FailureReason.NETWORK)
        except AuthenticationExpiredError:
            return Result.fail(SESSION_EXPIRED_MESSAGE, FailureReason.SESSION_EXPIRED)
        except BackendValidationError as exc:
            logger.warning("Session rejected: %s", exc)
            return Result.fail(str(exc), FailureReason.VALIDATION)
        except BackendError as exc:
            logger.warning("Session save failed with HTTP %s: %s", exc.status_code, exc)
            return Result.fail(str(exc), FailureReason.SERVER_ERROR)

        session_id = body.get("id") if isinstance(body, dict) else None
        record = dict(body) if isinstance(body, dict) else dict(payload)
        record.setdefault("id", session_id)
        for key in ("started_at", "finished_at", "notes", "workouts"):
            record.setdefault(key, payload[key])

        self._session_id = session_id
        self._flushed = True
        if history is not None:
            history.add(record)
        logger.info("Session saved with id=%s", session_id)
        return Result.ok(record)

    def _ensure_open(self) -> None:
        if self._flushed:
            raise ValidationError("Session already saved")
