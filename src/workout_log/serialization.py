"""Backend JSON serialization for workout sessions.

Produces the exact body ``POST /sessions/`` expects. Field names are part
of the backend contract and must not change.

All functions are pure (no I/O, no network calls).
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Sequence

from workout_log.models.workout import Exercise, WorkoutSet


def to_session_payload(
    started_at: datetime,
    finished_at: datetime,
    notes: str,
    exercises: Sequence[Exercise],
) -> dict:
    """Convert a finished session to the backend's session payload."""
    return {
        "started_at": iso_timestamp(started_at),
        "finished_at": iso_timestamp(finished_at),
        "notes": notes,
        "workouts": [_convert_exercise(ex) for ex in exercises],
    }


def to_session_payload_string(payload: dict, indent: int = 2) -> str:
    """Pretty-print a session payload (for logs and the CLI)."""
    return json.dumps(payload, indent=indent)


def iso_timestamp(moment: datetime) -> str:
    """ISO-8601 string; naive datetimes are taken to be UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.isoformat()


def parse_timestamp(value: str) -> datetime:
    """Inverse of :func:`iso_timestamp`, accepting a trailing ``Z``."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _convert_exercise(exercise: Exercise) -> dict:
    return {
        "name": exercise.name,
        "started_at": iso_timestamp(exercise.started_at),
        "finished_at": iso_timestamp(exercise.finished_at),
        "sets": [_convert_set(s) for s in exercise.sets],
    }


def _convert_set(workout_set: WorkoutSet) -> dict:
    reps = workout_set.reps
    return {
        "started_at": iso_timestamp(workout_set.started_at),
        "finished_at": iso_timestamp(workout_set.finished_at),
        "reps": {
            "count": reps.count,
            "intensity": reps.intensity.value,
            "weight": reps.weight,
        },
    }
