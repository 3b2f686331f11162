"""Proactive token renewal timer.

One :class:`RefreshScheduler` per session controller. It owns at most one
pending APScheduler ``date`` job; re-arming always replaces the previous job.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

from fitness_client.token_clock import seconds_until_expiry

logger = logging.getLogger(__name__)

REFRESH_LEAD_S = 5 * 60
MIN_DELAY_S = 60
_JOB_ID = "token_refresh"


def compute_delay(raw_access_token: str, now: Optional[float] = None) -> float:
    """Seconds to wait before renewing.

    Five minutes ahead of expiry, never sooner than one minute from now.
    Expired tokens get the one-minute floor.
    """
    remaining = seconds_until_expiry(raw_access_token, now)
    return max(remaining - REFRESH_LEAD_S, MIN_DELAY_S)


class RefreshScheduler:
    """Idle/Armed timer that calls *on_fire* once the delay elapses."""

    def __init__(
        self,
        on_fire: Optional[Callable[[], Any]] = None,
        clock: Callable[[], float] = time.time,
        backend: Optional[BackgroundScheduler] = None,
    ) -> None:
        self._on_fire = on_fire
        self._clock = clock
        self._backend = backend
        self._owns_backend = backend is None
        self._lock = threading.Lock()
        self._generation = 0
        self._armed = False
        self._delay: float | None = None

    @property
    def on_fire(self) -> Optional[Callable[[], Any]]:
        return self._on_fire

    @on_fire.setter
    def on_fire(self, callback: Callable[[], Any]) -> None:
        self._on_fire = callback

    @property
    def armed(self) -> bool:
        return self._armed

    @property
    def delay(self) -> float | None:
        """Delay of the currently armed job, in seconds."""
        return self._delay if self._armed else None

    def schedule(self, raw_access_token: str) -> float:
        """Arm (or re-arm) the timer for *raw_access_token*.

        Returns the delay in seconds. Raises ``MalformedTokenError`` if the
        token's expiry cannot be read; the previous job is cancelled first.
        """
        self.cancel()
        delay = compute_delay(raw_access_token, self._clock())
        backend = self._ensure_backend()

        with self._lock:
            self._generation += 1
            generation = self._generation
            run_date = datetime.now(timezone.utc) + timedelta(seconds=delay)
            backend.add_job(
                self._fire,
                "date",
                run_date=run_date,
                args=[generation],
                id=_JOB_ID,
                replace_existing=True,
            )
            self._armed = True
            self._delay = delay

        logger.info("Token refresh scheduled in %.0fs", delay)
        return delay

    def cancel(self) -> None:
        """Drop the pending job, if any."""
        with self._lock:
            self._generation += 1
            was_armed = self._armed
            self._armed = False
            self._delay = None
            if self._backend is not None:
                try:
                    self._backend.remove_job(_JOB_ID)
                except JobLookupError:
                    pass
        if was_armed:
            logger.debug("Token refresh timer cancelled")

    def shutdown(self) -> None:
        """Cancel and stop the backend scheduler if this object started it."""
        self.cancel()
        if self._owns_backend and self._backend is not None and self._backend.running:
            self._backend.shutdown(wait=False)
            self._backend = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_backend(self) -> BackgroundScheduler:
        if self._backend is None:
            self._backend = BackgroundScheduler(timezone=timezone.utc)
        if self._owns_backend and not self._backend.running:
            self._backend.start()
        return self._backend

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                # Superseded by a later schedule() or cancel().
                return
            self._armed = False
            self._delay = None
        logger.info("Token refresh timer fired")
        if self._on_fire is not None:
            self._on_fire()
