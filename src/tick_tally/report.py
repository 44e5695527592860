"""Ranked per-user CPU report."""

import csv
import io
import json
from collections.abc import Iterable
from dataclasses import asdict, dataclass

from tick_tally.formatting import ticks_to_ms
from tick_tally.tables import UserRecord

HEADER = "Rank User           CPU Time (milliseconds)"
SEPARATOR = "-" * 40
NO_USAGE = "(No CPU usage recorded)"
CSV_FIELDS = ("rank", "user", "uid", "cpu_ticks", "cpu_ms")


@dataclass(frozen=True)
class ReportRow:
    """One ranked user."""

    rank: int
    user: str
    uid: int
    cpu_ticks: int
    cpu_ms: int


@dataclass(frozen=True)
class Report:
    """Final ranking, highest CPU time first. Zero-tick users are excluded."""

    rows: tuple[ReportRow, ...]
    ticks_per_second: int

    @property
    def is_empty(self) -> bool:
        return not self.rows


def build_report(users: Iterable[UserRecord], ticks_per_second: int) -> Report:
    """Rank users by cpu_ticks, descending.

    sorted() is stable, so tied users keep the order they were first seen in.
    """
    ranked = sorted(
        (u for u in users if u.cpu_ticks > 0),
        key=lambda u: u.cpu_ticks,
        reverse=True,
    )
    rows = tuple(
        ReportRow(
            rank=i,
            user=u.display_name,
            uid=u.uid,
            cpu_ticks=u.cpu_ticks,
            cpu_ms=ticks_to_ms(u.cpu_ticks, ticks_per_second),
        )
        for i, u in enumerate(ranked, start=1)
    )
    return Report(rows=rows, ticks_per_second=ticks_per_second)


def render_table(report: Report, name_width: int = 14) -> str:
    """Render the report as the fixed-width text table."""
    lines = [HEADER, SEPARATOR]
    if report.is_empty:
        lines.append(NO_USAGE)
    for row in report.rows:
        # Names wider than the column are kept whole and push the time right
        lines.append(f"{row.rank:<4} {row.user:<{name_width}} {row.cpu_ms}")
    return "\n".join(lines)


def render_json(report: Report) -> str:
    """Render the report as a JSON array (empty when nothing was recorded)."""
    return json.dumps([asdict(row) for row in report.rows], indent=2)


def render_csv(report: Report) -> str:
    """Render the report as CSV with a header row."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_FIELDS)
    for row in report.rows:
        writer.writerow([row.rank, row.user, row.uid, row.cpu_ticks, row.cpu_ms])
    return buf.getvalue().rstrip("\n")


def render(report: Report, fmt: str = "table", name_width: int = 14) -> str:
    """Render report in the named format (table, json or csv)."""
    if fmt == "table":
        return render_table(report, name_width)
    if fmt == "json":
        return render_json(report)
    if fmt == "csv":
        return render_csv(report)
    raise ValueError(f"Unknown report format: {fmt!r}")
