"""Command-line front end for the fitness tracker backend.

Usage:
    python -m tracker.main health
    python -m tracker.main register <username> <email>
    python -m tracker.main login <username>
    python -m tracker.main whoami
    python -m tracker.main log           # interactive workout session
    python -m tracker.main history
    python -m tracker.main logout
"""

from __future__ import annotations

import argparse
import getpass
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from fitness_client import CredentialStore, SessionController
from workout_log import Exercise, Intensity, Reps, SessionHistory, WorkoutSession, WorkoutSet
from workout_log.serialization import to_session_payload_string

from tracker.config import API_BASE, HTTP_TIMEOUT_S, LOG_LEVEL, TOKEN_DIR

logger = logging.getLogger(__name__)

_INTENSITIES = {i.value: i for i in Intensity}


def build_controller() -> SessionController:
    """Controller wired to the configured backend and token directory."""
    return SessionController(
        store=CredentialStore(TOKEN_DIR),
        base_url=API_BASE,
        timeout=HTTP_TIMEOUT_S,
    )


def parse_set_line(line: str) -> Reps:
    """Parse ``"<reps> [weight|bw] [low|medium|high]"`` into :class:`Reps`.

    Raises ``ValueError`` with a user-facing message on bad input.
    """
    parts = line.split()
    if not parts:
        raise ValueError("Enter at least a rep count")
    try:
        count = int(parts[0])
    except ValueError:
        raise ValueError(f"Rep count must be a whole number, got {parts[0]!r}") from None
    if count <= 0:
        raise ValueError("Rep count must be positive")

    weight: float | None = None
    intensity = Intensity.MEDIUM
    for token in parts[1:]:
        key = token.lower()
        if key in _INTENSITIES:
            intensity = _INTENSITIES[key]
        elif key == "bw":
            weight = None
        else:
            try:
                weight = float(token)
            except ValueError:
                raise ValueError(f"Unrecognised value {token!r}") from None
            if weight <= 0:
                raise ValueError("Weight must be positive")
            if weight.is_integer():
                weight = int(weight)
    return Reps(count=count, intensity=intensity, weight=weight)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def prompt_exercise(
    name: str,
    input_fn: Callable[[str], str] = input,
    clock: Callable[[], datetime] = _now,
) -> Exercise:
    """Read sets for *name* until a blank line."""
    started = clock()
    sets: list[WorkoutSet] = []
    while True:
        line = input_fn(f"  set {len(sets) + 1} (reps [weight] [intensity], blank to finish): ").strip()
        if not line:
            break
        set_start = clock()
        try:
            reps = parse_set_line(line)
        except ValueError as exc:
            print(f"  {exc}")
            continue
        sets.append(WorkoutSet(started_at=set_start, finished_at=clock(), reps=reps))
    return Exercise(name=name, started_at=started, finished_at=clock(), sets=tuple(sets))


def run_session(
    controller: SessionController,
    input_fn: Callable[[str], str] = input,
    clock: Callable[[], datetime] = _now,
    password_fn: Callable[[str], str] = getpass.getpass,
) -> int:
    """Interactive session logger. Returns a process exit code.

    An expired session prompts for a fresh login, then resends the same
    payload so the logged workout is not lost.
    """
    session = WorkoutSession.start(clock=clock)
    print(f"Session started at {session.started_at:%H:%M}")
    while True:
        name = input_fn("Exercise name (blank to end session): ").strip()
        if not name:
            break
        exercise = prompt_exercise(name, input_fn=input_fn, clock=clock)
        if not exercise.sets:
            print("  No sets recorded, skipping")
            continue
        session.add_exercise(exercise)
        print(f"  {name}: {len(exercise.sets)} sets, {exercise.total_reps} reps")

    notes = input_fn("Notes (optional): ").strip()
    if notes:
        session.set_notes(notes)

    payload = session.build_payload()
    logger.debug("Session payload:\n%s", to_session_payload_string(payload))
    history = SessionHistory(controller.executor)
    while True:
        result = session.flush(controller.executor, payload=payload, history=history)
        if result.success:
            print(f"Saved session {session.session_id} ({session.total_sets} sets)")
            return 0
        print(f"Could not save session: {result.error}")
        if not controller.is_authenticated:
            if not _relogin(controller, input_fn, password_fn):
                return 1
        elif input_fn("Retry? [y/N] ").strip().lower() != "y":
            return 1


def _relogin(
    controller: SessionController,
    input_fn: Callable[[str], str],
    password_fn: Callable[[str], str],
) -> bool:
    """Prompt for credentials until login succeeds or the user gives up."""
    while input_fn("Log in again to save this session? [y/N] ").strip().lower() == "y":
        username = input_fn("Username: ").strip()
        result = controller.login(username, password_fn("Password: "))
        if result.success:
            return True
        print(result.error)
    return False


def _print_history(history: SessionHistory) -> int:
    result = history.refresh()
    if not result.success:
        print(result.error)
        return 1
    if not result.value:
        print("No sessions yet")
        return 0
    for s in result.value:
        duration = f"{s.duration_minutes} min" if s.duration_minutes is not None else "?"
        print(
            f"#{s.id}  {s.started_at}  {duration}  "
            f"{len(s.workouts)} exercises, {s.total_sets} sets, {s.total_reps} reps, "
            f"volume {s.total_volume:g}"
        )
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Fitness tracker client")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("health", help="Check backend liveness")
    reg = sub.add_parser("register", help="Create an account")
    reg.add_argument("username")
    reg.add_argument("email")
    login = sub.add_parser("login", help="Log in and store credentials")
    login.add_argument("username")
    sub.add_parser("logout", help="Forget stored credentials")
    sub.add_parser("whoami", help="Show the logged-in user")
    sub.add_parser("log", help="Log a workout session interactively")
    sub.add_parser("history", help="List past sessions")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    controller = build_controller()
    try:
        if args.command == "health":
            ok = controller.health()
            print("Backend is up" if ok else "Backend unreachable")
            return 0 if ok else 1

        if args.command == "register":
            password = getpass.getpass("Password: ")
            if password != getpass.getpass("Confirm password: "):
                print("Passwords do not match")
                return 1
            result = controller.register(args.username, args.email, password)
            print("Account created. Please log in." if result.success else result.error)
            return 0 if result.success else 1

        if args.command == "login":
            result = controller.login(args.username, getpass.getpass("Password: "))
            print(f"Logged in as {result.value.username}" if result.success else result.error)
            return 0 if result.success else 1

        if args.command == "logout":
            controller.logout()
            print("Logged out")
            return 0

        # Remaining commands need a session.
        if not controller.restore():
            print(controller.last_logout_reason or "Not logged in")
            return 1

        if args.command == "whoami":
            print(f"{controller.user.username} (id {controller.user.id})")
            return 0
        if args.command == "log":
            return run_session(controller)
        return _print_history(SessionHistory(controller.executor))
    finally:
        controller.close()


if __name__ == "__main__":
    raise SystemExit(main())
