"""Data models for workout logging."""

from workout_log.models.enums import Intensity
from workout_log.models.workout import Exercise, Reps, WorkoutSet

__all__ = [
    "Exercise",
    "Intensity",
    "Reps",
    "WorkoutSet",
]
