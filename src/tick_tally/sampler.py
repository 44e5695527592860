"""Fixed-duration sampling loop.

One baseline scan records every visible process's current counters, then
each tick re-scans and credits the non-negative per-process delta to the
process owner. Work done before the baseline is never counted.
"""

import time
from collections.abc import Callable, Iterator
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Protocol

import structlog

from tick_tally.config import Config
from tick_tally.procfs import CpuTimes, ProcFS, ScanError
from tick_tally.report import Report, build_report
from tick_tally.tables import ProcessRecord, ProcessTable, UserTable

log = structlog.get_logger()


class ProcessSource(Protocol):
    """Where the sampler reads process data from."""

    def pids(self) -> Iterator[int]: ...

    def read_uid(self, pid: int) -> int | None: ...

    def read_cpu_times(self, pid: int) -> CpuTimes | None: ...


class SamplerState(Enum):
    PENDING = "pending"
    BASELINE = "baseline"
    SAMPLING = "sampling"
    REPORTING = "reporting"
    DONE = "done"


@dataclass
class SampleStats:
    """Counts from one scan of the process directory."""

    tick: int  # 0 for the baseline
    observed: int = 0  # Processes read successfully
    new: int = 0  # First observations (zero contribution)
    reused: int = 0  # Known pids that turned out to be new processes
    skipped: int = 0  # Owner or stat lookup failed
    dropped: int = 0  # Rejected by a full table
    delta_ticks: int = 0  # Ticks credited to users this scan
    scan_failed: bool = False


class Sampler:
    """Owns the process and user tables for one monitoring run."""

    def __init__(
        self,
        source: ProcessSource,
        *,
        interval: float = 1.0,
        detect_pid_reuse: bool = True,
        processes: ProcessTable | None = None,
        users: UserTable | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        """Initialize the sampler.

        Args:
            source: Process data source (normally a ProcFS)
            interval: Seconds to wait before each sampling tick
            detect_pid_reuse: Re-baseline a pid whose start time changed
            processes: Process state table (defaults to an unbounded one)
            users: User aggregation table (defaults to an unbounded one)
            sleep: Blocking wait used between ticks (time.sleep if None)
        """
        self.source = source
        self.interval = interval
        self.detect_pid_reuse = detect_pid_reuse
        self.processes = processes if processes is not None else ProcessTable()
        self.users = users if users is not None else UserTable()
        self._sleep = sleep
        self.state = SamplerState.PENDING
        self.ticks_completed = 0
        self.scans_failed = 0

    @classmethod
    def from_config(cls, config: Config, source: ProcessSource | None = None) -> "Sampler":
        """Build a sampler over procfs using config settings."""
        sampling = config.sampling
        return cls(
            source if source is not None else ProcFS(sampling.proc_root),
            interval=sampling.interval,
            detect_pid_reuse=sampling.detect_pid_reuse,
            processes=ProcessTable(max_records=config.limits.max_processes),
            users=UserTable(max_records=config.limits.max_users),
        )

    def baseline(self) -> SampleStats:
        """Record current counters for every visible process. Credits nothing."""
        if self.state is not SamplerState.PENDING:
            raise RuntimeError(f"baseline() not allowed in state {self.state.value}")
        self.state = SamplerState.BASELINE
        stats = self._scan(SampleStats(tick=0), credit=False)
        log.debug("baseline_complete", **asdict(stats))
        return stats

    def sample(self) -> SampleStats:
        """Scan once and credit each known process's delta to its owner."""
        if self.state not in (SamplerState.BASELINE, SamplerState.SAMPLING):
            raise RuntimeError(f"sample() not allowed in state {self.state.value}")
        self.state = SamplerState.SAMPLING
        self.ticks_completed += 1
        stats = self._scan(SampleStats(tick=self.ticks_completed), credit=True)
        log.debug("sample_complete", **asdict(stats))
        return stats

    def run(
        self,
        duration: int,
        on_tick: Callable[[SampleStats], None] | None = None,
    ) -> UserTable:
        """Baseline, then exactly `duration` timed samples.

        Args:
            duration: Number of sampling ticks
            on_tick: Called with the stats of the baseline and of every tick

        Raises:
            ValueError: If duration is not a positive integer.
        """
        if isinstance(duration, bool) or not isinstance(duration, int) or duration < 1:
            raise ValueError(f"duration must be a positive integer, got {duration!r}")

        log.info("monitor_started", duration=duration, interval=self.interval)
        stats = self.baseline()
        if on_tick is not None:
            on_tick(stats)
        sleep = self._sleep if self._sleep is not None else time.sleep
        for _ in range(duration):
            sleep(self.interval)
            stats = self.sample()
            if on_tick is not None:
                on_tick(stats)
        self.state = SamplerState.REPORTING
        log.info(
            "monitor_finished",
            ticks=self.ticks_completed,
            users=len(self.users),
            processes=len(self.processes),
            total_ticks=self.users.total_ticks(),
        )
        return self.users

    def report(self, ticks_per_second: int) -> Report:
        """Build the final ranked report. Ends the run."""
        if self.state is not SamplerState.REPORTING:
            raise RuntimeError(f"report() not allowed in state {self.state.value}")
        result = build_report(self.users.records(), ticks_per_second)
        self.state = SamplerState.DONE
        return result

    def _scan(self, stats: SampleStats, *, credit: bool) -> SampleStats:
        try:
            for pid in self.source.pids():
                self._observe(pid, stats, credit=credit)
        except ScanError as e:
            stats.scan_failed = True
            self.scans_failed += 1
            log.warning("scan_failed", tick=stats.tick, error=str(e))
        return stats

    def _observe(self, pid: int, stats: SampleStats, *, credit: bool) -> None:
        uid = self.source.read_uid(pid)
        if uid is None:
            stats.skipped += 1
            return
        times = self.source.read_cpu_times(pid)
        if times is None:
            stats.skipped += 1
            return
        stats.observed += 1

        record = self.processes.lookup(pid)
        if record is None:
            inserted = self.processes.upsert_baseline(
                pid, uid, times.user, times.system, times.start_ticks
            )
            if inserted is None:
                stats.dropped += 1
                return
            stats.new += 1
            if self.users.find_or_create(uid) is None:
                stats.dropped += 1
            return

        if not credit:
            return

        if self.detect_pid_reuse and _is_reused(record, times):
            stats.reused += 1
            log.debug("pid_reused", pid=pid, old_uid=record.uid, new_uid=uid)
            self.processes.rebaseline(pid, uid, times.user, times.system, times.start_ticks)
            if self.users.find_or_create(uid) is None:
                stats.dropped += 1
            return

        delta_user, delta_system = self.processes.advance(pid, times.user, times.system)
        delta = delta_user + delta_system
        if self.users.accumulate(record.uid, delta) is None:
            stats.dropped += 1
            return
        stats.delta_ticks += delta


def _is_reused(record: ProcessRecord, times: CpuTimes) -> bool:
    """True if the pid now belongs to a process that started at a different time."""
    if record.start_ticks is None or times.start_ticks is None:
        return False
    return record.start_ticks != times.start_ticks
