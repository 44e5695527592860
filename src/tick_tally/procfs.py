"""Low-level procfs interface for Linux process metrics.

Reads the process-information pseudo-directory directly - no psutil, no
subprocess.

This module provides access to:
- pids: Enumerate running process identifiers
- read_uid: Owning (real) uid from /proc/<pid>/status
- read_cpu_times: utime/stime/starttime from /proc/<pid>/stat
- parse_stat: Positional parser for a stat record
- clock_ticks_per_second: sysconf(SC_CLK_TCK) with a fallback

Per-process functions handle process disappearance gracefully by returning None.
"""

import os
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

import structlog

log = structlog.get_logger()

# ─────────────────────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────────────────────

DEFAULT_PROC_ROOT = "/proc"
DEFAULT_CLOCK_TICKS = 100

UID_TAG = "Uid:"

# Overall (1-based) field numbers in /proc/<pid>/stat. Field 1 is the pid and
# field 2 the parenthesised command name; everything after is whitespace split.
STAT_FIELD_UTIME = 14
STAT_FIELD_STIME = 15
STAT_FIELD_STARTTIME = 22
_FIRST_FIELD_AFTER_COMM = 3


# ─────────────────────────────────────────────────────────────────────────────
# Errors and records
# ─────────────────────────────────────────────────────────────────────────────


class ScanError(Exception):
    """The proc root could not be listed."""


class StatParseError(ValueError):
    """A stat record did not have the expected shape."""


@dataclass(frozen=True)
class StatRecord:
    """Fields of interest from one /proc/<pid>/stat line."""

    pid: int
    comm: str
    state: str
    utime: int  # Clock ticks in user mode
    stime: int  # Clock ticks in kernel mode
    starttime: int | None  # Clock ticks after boot; None on truncated records


@dataclass(frozen=True)
class CpuTimes:
    """Cumulative CPU counters for one process."""

    user: int
    system: int
    start_ticks: int | None = None

    @property
    def total(self) -> int:
        return self.user + self.system


# ─────────────────────────────────────────────────────────────────────────────
# Parsing
# ─────────────────────────────────────────────────────────────────────────────


def _split_comm(line: str) -> tuple[str, str, str]:
    """Split a stat line into (pid, comm, rest) by tracking paren depth.

    comm starts after the first "(" and ends at the ")" that brings the depth
    back to zero. Any parens or whitespace inside the name are kept.
    """
    depth = 0
    start = -1
    for i, ch in enumerate(line):
        if ch == "(":
            depth += 1
            if start < 0:
                start = i
        elif ch == ")" and depth > 0:
            depth -= 1
            if depth == 0:
                return line[:start].strip(), line[start + 1 : i], line[i + 1 :]
    if start < 0:
        raise StatParseError("missing '(' before command name")
    raise StatParseError("unbalanced parentheses in command name")


def parse_stat(line: str) -> StatRecord:
    """Parse a /proc/<pid>/stat line.

    Raises:
        StatParseError: If the record is malformed or has too few fields.
    """
    head, comm, rest = _split_comm(line)
    try:
        pid = int(head)
    except ValueError as e:
        raise StatParseError(f"invalid pid field: {head!r}") from e

    tail = rest.split()
    needed = STAT_FIELD_STIME - _FIRST_FIELD_AFTER_COMM + 1
    if len(tail) < needed:
        raise StatParseError(f"expected at least {needed} fields after comm, got {len(tail)}")

    def field(number: int) -> str:
        return tail[number - _FIRST_FIELD_AFTER_COMM]

    try:
        utime = int(field(STAT_FIELD_UTIME))
        stime = int(field(STAT_FIELD_STIME))
        starttime = (
            int(field(STAT_FIELD_STARTTIME))
            if len(tail) > STAT_FIELD_STARTTIME - _FIRST_FIELD_AFTER_COMM
            else None
        )
    except ValueError as e:
        raise StatParseError(f"non-numeric counter: {e}") from e

    if utime < 0 or stime < 0:
        raise StatParseError("negative cpu counter")

    return StatRecord(
        pid=pid,
        comm=comm,
        state=tail[0],
        utime=utime,
        stime=stime,
        starttime=starttime,
    )


def parse_uid(status_lines: Iterator[str] | list[str]) -> int | None:
    """Return the real uid from the Uid: line of a status record, or None."""
    for line in status_lines:
        if line.startswith(UID_TAG):
            tokens = line[len(UID_TAG) :].split()
            if not tokens:
                return None
            try:
                uid = int(tokens[0])
            except ValueError:
                return None
            return uid if uid >= 0 else None
    return None


# ─────────────────────────────────────────────────────────────────────────────
# System constants
# ─────────────────────────────────────────────────────────────────────────────


def clock_ticks_per_second(fallback: int = DEFAULT_CLOCK_TICKS) -> int:
    """Return the kernel clock tick rate, or fallback if it can't be queried."""
    try:
        value = os.sysconf("SC_CLK_TCK")
    except (ValueError, OSError, AttributeError):
        return fallback
    return value if value > 0 else fallback


# ─────────────────────────────────────────────────────────────────────────────
# Process source
# ─────────────────────────────────────────────────────────────────────────────


class ProcFS:
    """Reads process data from a procfs mount.

    Every handle is opened and closed within a single call.
    """

    def __init__(self, root: str | Path = DEFAULT_PROC_ROOT) -> None:
        self.root = Path(root)

    def pids(self) -> Iterator[int]:
        """Yield the pids currently listed under the proc root.

        Raises:
            ScanError: If the proc root itself can't be listed.
        """
        try:
            entries = os.scandir(self.root)
        except OSError as e:
            raise ScanError(f"cannot list {self.root}: {e}") from e
        return self._iter_pids(entries)

    def _iter_pids(self, entries) -> Iterator[int]:
        with entries:
            try:
                for entry in entries:
                    # str.isdigit accepts non-ASCII digits; pids are ASCII only
                    if entry.name.isascii() and entry.name.isdigit():
                        yield int(entry.name)
            except OSError as e:
                raise ScanError(f"listing {self.root} failed: {e}") from e

    def read_uid(self, pid: int) -> int | None:
        """Return the owning uid of a process, or None if it can't be read."""
        try:
            with open(self.root / str(pid) / "status", encoding="utf-8", errors="replace") as f:
                return parse_uid(f)
        except OSError:
            return None

    def read_cpu_times(self, pid: int) -> CpuTimes | None:
        """Return cumulative utime/stime of a process, or None if it can't be read."""
        try:
            with open(self.root / str(pid) / "stat", encoding="utf-8", errors="replace") as f:
                line = f.readline()
        except OSError:
            return None

        try:
            record = parse_stat(line)
        except StatParseError as e:
            log.debug("stat_parse_failed", pid=pid, error=str(e))
            return None
        return CpuTimes(user=record.utime, system=record.stime, start_ticks=record.starttime)
