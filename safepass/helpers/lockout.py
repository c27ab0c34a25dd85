"""Per-IP failed PIN attempt tracking with lockout.

State is held in a :class:`KeyValueStore` keyed by client IP. Each failure
increments the count (after resetting it when the previous failure is older
than the reset window); reaching ``max_attempts`` locks the IP for
``lockout_duration_ms``.

A PIN comparison must hold a reservation taken with :meth:`reserve_attempt`.
Reservations count against the threshold together with recorded failures,
so concurrent requests can never run more comparisons than the attempts
left for the IP.

Usage::

    outcome = tracker.reserve_attempt(ip)
    if outcome is not AttemptReservation.RESERVED:
        # reject
        ...

    count = tracker.record_failure(ip, reserved=True)   # on wrong PIN
    tracker.record_success(ip, reserved=True)           # on correct PIN
    tracker.release_attempt(ip)                         # comparison never ran
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from enum import StrEnum

from safepass.helpers import runtime
from safepass.helpers.log_sanitize import sanitize_log_value
from safepass.helpers.memory_store import InMemoryKeyValueStore, KeyValueStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FailedAttemptRecord:
    count: int
    last_attempt_at: int
    locked_until: int | None = None
    pending: int = 0

    def is_locked(self, now: int) -> bool:
        return self.locked_until is not None and now < self.locked_until

    def lockout_expired(self, now: int) -> bool:
        return self.locked_until is not None and now >= self.locked_until

    def is_idle(self, now: int, reset_window_ms: int) -> bool:
        return (
            self.locked_until is None
            and self.pending == 0
            and now - self.last_attempt_at > reset_window_ms
        )


@dataclass(frozen=True)
class LockoutStatus:
    is_locked: bool
    attempts_remaining: int
    lockout_expires_at: int | None
    remaining_seconds: int


class AttemptReservation(StrEnum):
    RESERVED = "RESERVED"
    LOCKED = "LOCKED"
    BUSY = "BUSY"


def _pending_after(record: FailedAttemptRecord | None, reserved: bool) -> int:
    if record is None:
        return 0
    return max(0, record.pending - 1) if reserved else record.pending


class LockoutTracker:
    """In-memory failure counter + escalating lockout, keyed by IP."""

    def __init__(
        self,
        store: KeyValueStore[FailedAttemptRecord] | None = None,
        *,
        max_attempts: int = 5,
        lockout_duration_ms: int = 24 * 60 * 60 * 1000,
        reset_window_ms: int = 60 * 60 * 1000,
    ) -> None:
        self.max_attempts = max_attempts
        self.lockout_duration_ms = lockout_duration_ms
        self.reset_window_ms = reset_window_ms
        self._store: KeyValueStore[FailedAttemptRecord] = (
            store if store is not None else InMemoryKeyValueStore()
        )

    def _current(self, ip: str) -> FailedAttemptRecord | None:
        """Return the live record for *ip*, evicting an expired lockout."""
        now = runtime.now_ms()

        def _evict_expired(
            record: FailedAttemptRecord | None,
        ) -> tuple[FailedAttemptRecord | None, FailedAttemptRecord | None]:
            if record is not None and record.lockout_expired(now):
                return None, None
            return record, record

        return self._store.update(ip, _evict_expired)

    def is_locked(self, ip: str) -> bool:
        record = self._current(ip)
        return record is not None and record.is_locked(runtime.now_ms())

    def reserve_attempt(self, ip: str) -> AttemptReservation:
        """Claim the right to run one PIN comparison for *ip*.

        Refused with ``LOCKED`` while the IP is locked, or with ``BUSY`` when
        recorded failures plus comparisons already in flight reach the
        threshold.
        """
        now = runtime.now_ms()

        def _reserve(
            record: FailedAttemptRecord | None,
        ) -> tuple[FailedAttemptRecord | None, AttemptReservation]:
            if record is None or record.lockout_expired(now):
                record = FailedAttemptRecord(count=0, last_attempt_at=0)
            if record.is_locked(now):
                return record, AttemptReservation.LOCKED
            if now - record.last_attempt_at > self.reset_window_ms:
                record = replace(record, count=0)
            if record.count + record.pending >= self.max_attempts:
                return record, AttemptReservation.BUSY
            return replace(record, pending=record.pending + 1), (
                AttemptReservation.RESERVED
            )

        outcome = self._store.update(ip, _reserve)
        if outcome is AttemptReservation.BUSY:
            logger.warning(
                "Refusing concurrent PIN attempt for IP %s", sanitize_log_value(ip)
            )
        return outcome

    def release_attempt(self, ip: str) -> None:
        """Return a reservation whose comparison never ran."""

        def _drop(
            record: FailedAttemptRecord | None,
        ) -> tuple[FailedAttemptRecord | None, None]:
            if record is None:
                return None, None
            record = replace(record, pending=max(0, record.pending - 1))
            if record.count == 0 and record.pending == 0 and record.locked_until is None:
                return None, None
            return record, None

        self._store.update(ip, _drop)

    def record_failure(self, ip: str, *, reserved: bool = False) -> int:
        """Record a wrong PIN and return the current failure count."""
        now = runtime.now_ms()

        def _increment(
            record: FailedAttemptRecord | None,
        ) -> tuple[FailedAttemptRecord, tuple[FailedAttemptRecord, bool]]:
            pending = _pending_after(record, reserved)
            if record is None or record.lockout_expired(now):
                record = FailedAttemptRecord(count=0, last_attempt_at=0)
            if record.is_locked(now):
                # Locked records keep their count until the lockout ends.
                updated = replace(record, last_attempt_at=now, pending=pending)
                return updated, (updated, False)
            count = record.count
            if now - record.last_attempt_at > self.reset_window_ms:
                count = 0
            count += 1
            locked_until = (
                now + self.lockout_duration_ms if count >= self.max_attempts else None
            )
            updated = FailedAttemptRecord(
                count=count,
                last_attempt_at=now,
                locked_until=locked_until,
                pending=pending,
            )
            return updated, (updated, locked_until is not None)

        updated, newly_locked = self._store.update(ip, _increment)
        logger.warning(
            "Failed attempt %d/%d for IP %s",
            updated.count,
            self.max_attempts,
            sanitize_log_value(ip),
        )
        if newly_locked:
            logger.warning(
                "IP %s locked out until %d",
                sanitize_log_value(ip),
                updated.locked_until,
            )
        return updated.count

    def record_success(self, ip: str, *, reserved: bool = False) -> bool:
        """Clear the failure record unless the IP is currently locked.

        Returns whether the record was cleared. A lockout is never lifted by a
        correct PIN; it only ends when ``locked_until`` passes.
        """
        now = runtime.now_ms()

        def _clear(
            record: FailedAttemptRecord | None,
        ) -> tuple[FailedAttemptRecord | None, bool]:
            pending = _pending_after(record, reserved)
            if record is not None and record.is_locked(now):
                return replace(record, pending=pending), False
            if pending:
                # Other comparisons are still in flight for this IP.
                return FailedAttemptRecord(
                    count=0, last_attempt_at=now, pending=pending
                ), True
            return None, True

        cleared = self._store.update(ip, _clear)
        if not cleared:
            logger.warning(
                "Refusing to clear failed attempts for locked IP %s",
                sanitize_log_value(ip),
            )
        return cleared

    def remaining_lockout_seconds(self, ip: str) -> int:
        record = self._current(ip)
        now = runtime.now_ms()
        if record is None or not record.is_locked(now):
            return 0
        return math.ceil((record.locked_until - now) / 1000)

    def attempts_remaining(self, ip: str) -> int:
        record = self._current(ip)
        if record is None:
            return self.max_attempts
        now = runtime.now_ms()
        if record.is_locked(now):
            return 0
        if now - record.last_attempt_at > self.reset_window_ms:
            return self.max_attempts
        return max(0, self.max_attempts - record.count)

    def status(self, ip: str) -> LockoutStatus:
        record = self._current(ip)
        locked = record is not None and record.is_locked(runtime.now_ms())
        return LockoutStatus(
            is_locked=locked,
            attempts_remaining=self.attempts_remaining(ip),
            lockout_expires_at=record.locked_until if locked else None,
            remaining_seconds=self.remaining_lockout_seconds(ip),
        )

    def sweep(self) -> int:
        """Remove records whose lockout has ended or whose failures went stale."""
        now = runtime.now_ms()
        removed = self._store.sweep(
            lambda r: r.lockout_expired(now) or r.is_idle(now, self.reset_window_ms)
        )
        if removed:
            logger.info("Cleaned up %d expired lockout records", removed)
        return removed

    def stats(self) -> dict:
        now = runtime.now_ms()
        records = self._store.values()
        return {
            "totalIpsTracked": len(records),
            "currentlyLockedOut": sum(1 for r in records if r.is_locked(now)),
            "totalFailedAttempts": sum(r.count for r in records),
        }
