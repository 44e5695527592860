"""Shared test fixtures for tick-tally."""

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from tick_tally.procfs import CpuTimes, ScanError


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    """Undo any structlog/stdlib logging setup a test performed."""
    yield
    structlog.reset_defaults()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)


@pytest.fixture
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point HOME at a temp dir so config and log files stay out of the real one."""
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    return home_dir


def make_stat_line(
    pid: int,
    comm: str = "proc",
    utime: int = 0,
    stime: int = 0,
    starttime: int = 1000,
    state: str = "S",
) -> str:
    """Build a realistic /proc/<pid>/stat line."""
    # Fields 3..13: state ppid pgrp session tty_nr tpgid flags minflt cminflt majflt cmajflt
    middle = f"{state} 1 {pid} {pid} 0 -1 4194560 120 0 3 0"
    # Fields 16..21: cutime cstime priority nice num_threads itrealvalue
    after = f"0 0 20 0 1 0 {starttime} 1234567 300"
    return f"{pid} ({comm}) {middle} {utime} {stime} {after}\n"


def make_status_text(uid: int, name: str = "proc") -> str:
    """Build a /proc/<pid>/status record with a Uid: line."""
    return (
        f"Name:\t{name}\n"
        "Umask:\t0022\n"
        "State:\tS (sleeping)\n"
        "Tgid:\t1\n"
        f"Uid:\t{uid}\t{uid}\t{uid}\t{uid}\n"
        f"Gid:\t{uid}\t{uid}\t{uid}\t{uid}\n"
    )


class FakeProcTree:
    """Writes a minimal procfs layout under a temp directory."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def add(
        self,
        pid: int,
        uid: int = 1000,
        utime: int = 0,
        stime: int = 0,
        comm: str = "proc",
        starttime: int = 1000,
    ) -> Path:
        proc_dir = self.root / str(pid)
        proc_dir.mkdir(exist_ok=True)
        (proc_dir / "status").write_text(make_status_text(uid, comm))
        (proc_dir / "stat").write_text(make_stat_line(pid, comm, utime, stime, starttime))
        return proc_dir


@pytest.fixture
def proc_tree(tmp_path: Path) -> FakeProcTree:
    """An empty fake /proc."""
    return FakeProcTree(tmp_path / "proc")


class FakeSource:
    """In-memory process source driven one frame per scan.

    Each frame maps pid -> (uid, user_ticks, system_ticks[, start_ticks]).
    A frame of None makes that scan fail like an unreadable /proc.
    """

    def __init__(self, frames: list[dict[int, tuple] | None]) -> None:
        self.frames = frames
        self.scans = 0
        self._current: dict[int, tuple] = {}

    def pids(self) -> Iterator[int]:
        frame = self.frames[min(self.scans, len(self.frames) - 1)]
        self.scans += 1
        if frame is None:
            raise ScanError("proc root unavailable")
        self._current = frame
        return iter(list(frame))

    def read_uid(self, pid: int) -> int | None:
        entry = self._current.get(pid)
        return None if entry is None else entry[0]

    def read_cpu_times(self, pid: int) -> CpuTimes | None:
        entry = self._current.get(pid)
        if entry is None or entry[1] is None:
            return None
        start = entry[3] if len(entry) > 3 else None
        return CpuTimes(user=entry[1], system=entry[2], start_ticks=start)


def fixed_names(uid: int) -> str:
    """Name resolver that doesn't depend on the host's passwd database."""
    return {0: "root", 7: "alice", 8: "bob", 9: "carol"}.get(uid, str(uid))
