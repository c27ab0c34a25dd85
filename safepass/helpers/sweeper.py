"""Periodic expiry sweeps for challenges, sessions and lockouts.

Owned by the server lifecycle: ``start()`` when serving, ``stop()`` on
shutdown. Tests call :meth:`Sweeper.run_once` directly.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)

SweepJob = Callable[[], int]


class Sweeper:
    """Runs named sweep jobs on a daemon thread every *interval* seconds."""

    def __init__(self, interval: float, jobs: dict[str, SweepJob]) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self._jobs = dict(jobs)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> dict[str, int]:
        """Run every job once and return the number of entries each removed.

        A failing job is logged and counted as 0; the others still run.
        """
        results: dict[str, int] = {}
        for name, job in self._jobs.items():
            try:
                results[name] = job()
            except Exception:
                logger.exception("Sweep job %s failed", name)
                results[name] = 0
        return results

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="safepass-sweeper", daemon=True
        )
        self._thread.start()
        logger.info("Sweeper started (every %.0fs)", self.interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            removed = self.run_once()
            if any(removed.values()):
                logger.debug("Sweep removed %s", removed)
