"""Tests for procfs module."""

import pytest
from conftest import FakeProcTree, make_stat_line

from tick_tally.procfs import (
    CpuTimes,
    ProcFS,
    ScanError,
    StatParseError,
    clock_ticks_per_second,
    parse_stat,
    parse_uid,
)


class TestParseStat:
    """Positional parsing of /proc/<pid>/stat."""

    def test_plain_command(self):
        record = parse_stat(make_stat_line(42, "bash", utime=8, stime=9, starttime=777))
        assert record.pid == 42
        assert record.comm == "bash"
        assert record.state == "S"
        assert record.utime == 8
        assert record.stime == 9
        assert record.starttime == 777

    def test_command_with_spaces(self):
        """Whitespace inside the name must not shift the counters."""
        record = parse_stat(make_stat_line(7, "Web Content", utime=11, stime=12))
        assert record.comm == "Web Content"
        assert (record.utime, record.stime) == (11, 12)

    def test_command_with_nested_parens(self):
        record = parse_stat(make_stat_line(7, "a (b) c", utime=3, stime=4))
        assert record.comm == "a (b) c"
        assert (record.utime, record.stime) == (3, 4)

    def test_command_with_deep_nesting(self):
        record = parse_stat(make_stat_line(7, "((x))", utime=5, stime=6))
        assert record.comm == "((x))"
        assert (record.utime, record.stime) == (5, 6)

    def test_empty_command(self):
        record = parse_stat(make_stat_line(7, "", utime=1, stime=2))
        assert record.comm == ""
        assert (record.utime, record.stime) == (1, 2)

    def test_truncated_record_without_starttime(self):
        """utime/stime alone are enough; starttime is optional."""
        line = "9 (sh) R 1 9 9 0 -1 0 0 0 0 0 15 25"
        record = parse_stat(line)
        assert (record.utime, record.stime) == (15, 25)
        assert record.starttime is None

    def test_too_few_fields(self):
        with pytest.raises(StatParseError):
            parse_stat("9 (sh) R 1 9 9 0 -1 0 0 0 0 0 15")

    def test_missing_open_paren(self):
        with pytest.raises(StatParseError):
            parse_stat("9 sh R 1 9 9 0 -1 0 0 0 0 0 15 25")

    def test_unbalanced_parens(self):
        with pytest.raises(StatParseError):
            parse_stat("9 (sh(x) R 1 9 9 0 -1 0 0 0 0 0 15 25")

    def test_non_numeric_counter(self):
        with pytest.raises(StatParseError):
            parse_stat("9 (sh) R 1 9 9 0 -1 0 0 0 0 0 abc 25")

    def test_invalid_pid(self):
        with pytest.raises(StatParseError):
            parse_stat("x9 (sh) R 1 9 9 0 -1 0 0 0 0 0 15 25")

    def test_empty_line(self):
        with pytest.raises(StatParseError):
            parse_stat("")


class TestParseUid:
    """Owner lookup from /proc/<pid>/status lines."""

    def test_reads_real_uid(self):
        lines = ["Name:\tx\n", "Uid:\t1000\t0\t0\t0\n", "Gid:\t5\t5\t5\t5\n"]
        assert parse_uid(lines) == 1000

    def test_missing_tag(self):
        assert parse_uid(["Name:\tx\n", "Gid:\t5\t5\t5\t5\n"]) is None

    def test_empty_uid_line(self):
        assert parse_uid(["Uid:\n"]) is None

    def test_non_numeric_uid(self):
        assert parse_uid(["Uid:\tabc\t0\n"]) is None


class TestProcFS:
    """Reading a fake proc tree."""

    def test_pids_filters_non_numeric_entries(self, proc_tree: FakeProcTree):
        proc_tree.add(1)
        proc_tree.add(250)
        (proc_tree.root / "self").mkdir()
        (proc_tree.root / "stat").write_text("cpu 1 2 3\n")
        (proc_tree.root / "12abc").mkdir()

        assert sorted(ProcFS(proc_tree.root).pids()) == [1, 250]

    def test_pids_rescans_each_call(self, proc_tree: FakeProcTree):
        fs = ProcFS(proc_tree.root)
        proc_tree.add(1)
        assert list(fs.pids()) == [1]
        proc_tree.add(2)
        assert sorted(fs.pids()) == [1, 2]

    def test_pids_missing_root_raises_scan_error(self, tmp_path):
        fs = ProcFS(tmp_path / "nope")
        with pytest.raises(ScanError):
            fs.pids()

    def test_read_uid(self, proc_tree: FakeProcTree):
        proc_tree.add(10, uid=7)
        assert ProcFS(proc_tree.root).read_uid(10) == 7

    def test_read_uid_vanished_process(self, proc_tree: FakeProcTree):
        assert ProcFS(proc_tree.root).read_uid(99) is None

    def test_read_cpu_times(self, proc_tree: FakeProcTree):
        proc_tree.add(10, utime=5, stime=6, starttime=4242, comm="my (odd) name")
        times = ProcFS(proc_tree.root).read_cpu_times(10)
        assert times == CpuTimes(user=5, system=6, start_ticks=4242)
        assert times.total == 11

    def test_read_cpu_times_malformed(self, proc_tree: FakeProcTree):
        proc_dir = proc_tree.add(10)
        (proc_dir / "stat").write_text("10 (broken\n")
        assert ProcFS(proc_tree.root).read_cpu_times(10) is None

    def test_read_cpu_times_vanished_process(self, proc_tree: FakeProcTree):
        assert ProcFS(proc_tree.root).read_cpu_times(99) is None


class TestClockTicks:
    """SC_CLK_TCK lookup with fallback."""

    def test_returns_positive_value(self):
        assert clock_ticks_per_second() > 0

    def test_non_positive_falls_back(self, monkeypatch):
        monkeypatch.setattr("tick_tally.procfs.os.sysconf", lambda name: -1)
        assert clock_ticks_per_second(fallback=250) == 250

    def test_query_error_falls_back(self, monkeypatch):
        def boom(name):
            raise ValueError("unrecognized configuration name")

        monkeypatch.setattr("tick_tally.procfs.os.sysconf", boom)
        assert clock_ticks_per_second() == 100
