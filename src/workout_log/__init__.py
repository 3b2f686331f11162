"""Workout logging: session aggregate, backend serialization and history."""

from workout_log.history import SessionHistory, SessionSummary, fetch_history, summarize
from workout_log.models import Exercise, Intensity, Reps, WorkoutSet
from workout_log.serialization import to_session_payload, to_session_payload_string
from workout_log.session import WorkoutSession, validate_exercise

__all__ = [
    "Exercise",
    "Intensity",
    "Reps",
    "SessionHistory",
    "SessionSummary",
    "WorkoutSession",
    "WorkoutSet",
    "fetch_history",
    "summarize",
    "to_session_payload",
    "to_session_payload_string",
    "validate_exercise",
]
