"""Per-process counter state and per-user CPU aggregation."""

from __future__ import annotations

import pwd
from collections.abc import Callable
from dataclasses import dataclass

import structlog

log = structlog.get_logger()


def resolve_username(uid: int) -> str:
    """Return the login name for uid, or the decimal uid if it has none."""
    try:
        return pwd.getpwuid(uid).pw_name
    except (KeyError, OverflowError):
        return str(uid)


@dataclass
class ProcessRecord:
    """Last observed counters for one tracked pid."""

    pid: int
    uid: int  # Captured at first observation, never re-read
    last_user_ticks: int
    last_system_ticks: int
    start_ticks: int | None = None  # Process start time, for pid reuse detection
    valid: bool = True


@dataclass
class UserRecord:
    """Accumulated CPU time for one uid."""

    uid: int
    display_name: str  # Resolved once at creation
    cpu_ticks: int = 0  # user + system ticks since monitoring began


class ProcessTable:
    """Remembers the last counters seen for each pid so deltas can be taken.

    Records are never removed; a pid that exits just stops being updated.
    """

    def __init__(self, max_records: int = 0) -> None:
        """Initialize the table.

        Args:
            max_records: Capacity bound, 0 for unbounded. When full, new pids
                are rejected; existing records are never evicted.
        """
        self.max_records = max_records
        self._records: dict[int, ProcessRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, pid: object) -> bool:
        return pid in self._records

    @property
    def is_full(self) -> bool:
        return self.max_records > 0 and len(self._records) >= self.max_records

    def lookup(self, pid: int) -> ProcessRecord | None:
        record = self._records.get(pid)
        if record is None or not record.valid:
            return None
        return record

    def upsert_baseline(
        self,
        pid: int,
        uid: int,
        user: int,
        system: int,
        start_ticks: int | None = None,
    ) -> ProcessRecord | None:
        """Insert a baseline record for pid unless one already exists.

        Returns:
            The new or existing record, or None if the table is full.
        """
        existing = self.lookup(pid)
        if existing is not None:
            return existing
        if self.is_full:
            log.debug("process_table_full", pid=pid, capacity=self.max_records)
            return None
        record = ProcessRecord(
            pid=pid,
            uid=uid,
            last_user_ticks=user,
            last_system_ticks=system,
            start_ticks=start_ticks,
        )
        self._records[pid] = record
        return record

    def rebaseline(
        self,
        pid: int,
        uid: int,
        user: int,
        system: int,
        start_ticks: int | None = None,
    ) -> ProcessRecord:
        """Replace the record for a pid that now belongs to a different process."""
        record = ProcessRecord(
            pid=pid,
            uid=uid,
            last_user_ticks=user,
            last_system_ticks=system,
            start_ticks=start_ticks,
        )
        self._records[pid] = record
        return record

    def advance(self, pid: int, user: int, system: int) -> tuple[int, int]:
        """Store new counters for a tracked pid and return the per-counter deltas.

        Each delta is floored at zero: a counter that went backwards (pid
        reuse, wraparound) counts as no new work.

        Raises:
            KeyError: If pid is not tracked.
        """
        record = self.lookup(pid)
        if record is None:
            raise KeyError(pid)
        delta_user = max(0, user - record.last_user_ticks)
        delta_system = max(0, system - record.last_system_ticks)
        record.last_user_ticks = user
        record.last_system_ticks = system
        return delta_user, delta_system


class UserTable:
    """Accumulates CPU ticks per owning uid."""

    def __init__(
        self,
        max_records: int = 0,
        resolve_name: Callable[[int], str] = resolve_username,
    ) -> None:
        """Initialize the table.

        Args:
            max_records: Capacity bound, 0 for unbounded.
            resolve_name: Maps a uid to its display name.
        """
        self.max_records = max_records
        self._resolve_name = resolve_name
        self._records: dict[int, UserRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, uid: object) -> bool:
        return uid in self._records

    @property
    def is_full(self) -> bool:
        return self.max_records > 0 and len(self._records) >= self.max_records

    def get(self, uid: int) -> UserRecord | None:
        return self._records.get(uid)

    def find_or_create(self, uid: int) -> UserRecord | None:
        """Return the record for uid, creating it if needed.

        Returns None if the uid is new and the table is full.
        """
        record = self._records.get(uid)
        if record is not None:
            return record
        if self.is_full:
            log.debug("user_table_full", uid=uid, capacity=self.max_records)
            return None
        record = UserRecord(uid=uid, display_name=self._resolve_name(uid))
        self._records[uid] = record
        return record

    def accumulate(self, uid: int, delta_ticks: int) -> UserRecord | None:
        """Add delta_ticks to uid's total. Dropped if the record can't be created."""
        record = self.find_or_create(uid)
        if record is not None:
            record.cpu_ticks += delta_ticks
        return record

    def records(self) -> list[UserRecord]:
        """Return all user records in insertion order."""
        return list(self._records.values())

    def total_ticks(self) -> int:
        return sum(r.cpu_ticks for r in self._records.values())
