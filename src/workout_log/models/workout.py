"""Exercise and set records logged during a workout session."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from workout_log.models.enums import Intensity


@dataclass(frozen=True)
class Reps:
    """What was done in one set. ``weight`` is None for bodyweight work."""

    count: int
    intensity: Intensity = Intensity.MEDIUM
    weight: float | None = None


@dataclass(frozen=True)
class WorkoutSet:
    """A single timed set."""

    started_at: datetime
    finished_at: datetime
    reps: Reps


@dataclass(frozen=True)
class Exercise:
    """One named exercise with its sets in the order they were performed."""

    name: str
    started_at: datetime
    finished_at: datetime
    sets: tuple[WorkoutSet, ...] = field(default_factory=tuple)

    @property
    def total_reps(self) -> int:
        return sum(s.reps.count for s in self.sets)

    @property
    def volume(self) -> float:
        """Sum of weight x reps over weighted sets."""
        return sum(s.reps.weight * s.reps.count for s in self.sets if s.reps.weight)
