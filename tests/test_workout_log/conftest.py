"""Fixtures for workout logging: a steppable clock and sample exercises."""

from __future__ import annotations

from datetime import timedelta

import pytest

from fakes import T0, SteppingClock
from workout_log.models import Exercise, Intensity, Reps, WorkoutSet


@pytest.fixture
def stepping_clock() -> SteppingClock:
    return SteppingClock()


@pytest.fixture
def bench_press() -> Exercise:
    """Bench Press, one set of 10 @ 135 at medium intensity."""
    return Exercise(
        name="Bench Press",
        started_at=T0 + timedelta(minutes=2),
        finished_at=T0 + timedelta(minutes=6),
        sets=(
            WorkoutSet(
                started_at=T0 + timedelta(minutes=2),
                finished_at=T0 + timedelta(minutes=3),
                reps=Reps(count=10, weight=135, intensity=Intensity.MEDIUM),
            ),
        ),
    )


@pytest.fixture
def pull_ups() -> Exercise:
    """Bodyweight pull-ups, two sets."""
    return Exercise(
        name="Pull Up",
        started_at=T0 + timedelta(minutes=8),
        finished_at=T0 + timedelta(minutes=12),
        sets=(
            WorkoutSet(T0 + timedelta(minutes=8), T0 + timedelta(minutes=9), Reps(8, Intensity.HIGH)),
            WorkoutSet(T0 + timedelta(minutes=10), T0 + timedelta(minutes=11), Reps(6, Intensity.HIGH)),
        ),
    )
