"""Configuration system for tick-tally."""

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit

REPORT_FORMATS = ("table", "json", "csv")


@dataclass
class SamplingConfig:
    """Sampling loop configuration."""

    interval: float = 1.0  # Seconds between sampling ticks
    proc_root: str = "/proc"  # Process-information pseudo-directory
    clock_ticks_fallback: int = 100  # Used when sysconf(SC_CLK_TCK) is unusable
    detect_pid_reuse: bool = True  # Re-baseline a pid whose start time changed


@dataclass
class LimitsConfig:
    """Table capacity bounds.

    0 means unbounded. When a bound is set, new entries beyond it are
    rejected (never evicted) and the rejection is logged at debug level.
    """

    max_processes: int = 0
    max_users: int = 0


@dataclass
class ReportConfig:
    """Final report configuration."""

    format: str = "table"  # table, json or csv
    name_width: int = 14  # Column width for the user name in table output


@dataclass
class SystemConfig:
    """Logging and housekeeping configuration."""

    log_to_file: bool = True
    # Log file rotation
    log_max_bytes: int = 5 * 1024 * 1024  # Max log file size (5MB)
    log_backup_count: int = 3  # Number of backup log files to keep


def _dataclass_to_table(obj: object) -> tomlkit.items.Table:
    """Convert a dataclass instance to a tomlkit Table recursively."""
    table = tomlkit.table()
    for f in fields(obj):  # type: ignore[arg-type]
        value = getattr(obj, f.name)
        if is_dataclass(value) and not isinstance(value, type):
            table.add(f.name, _dataclass_to_table(value))
        else:
            table.add(f.name, value)
    return table


@dataclass
class Config:
    """Main configuration container."""

    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    report: ReportConfig = field(default_factory=ReportConfig)
    system: SystemConfig = field(default_factory=SystemConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "tick-tally"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "tick-tally"

    @property
    def log_path(self) -> Path:
        """Monitor log path.

        Logs are expendable persistent state, so they go in XDG_STATE_HOME.
        """
        return self.state_dir / "monitor.log"

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)

        doc = tomlkit.document()
        for name in ("sampling", "limits", "report", "system"):
            doc.add(name, _dataclass_to_table(getattr(self, name)))
            doc.add(tomlkit.nl())

        path.write_text(tomlkit.dumps(doc))

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        All defaults come from the dataclass definitions, so Config() and
        Config.load() on a missing file are identical.

        Raises:
            ValueError: If the file cannot be parsed or holds invalid values.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f)
        except tomlkit.exceptions.TOMLKitError as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        sys_defaults = defaults.system
        system_data = _section(data, "system")
        log_max_bytes = _typed(system_data, "log_max_bytes", sys_defaults.log_max_bytes, int)
        log_backup_count = _typed(
            system_data, "log_backup_count", sys_defaults.log_backup_count, int
        )
        if log_max_bytes < 0:
            raise ValueError(f"log_max_bytes must be >= 0, got {log_max_bytes}")
        if log_backup_count < 0:
            raise ValueError(f"log_backup_count must be >= 0, got {log_backup_count}")

        return cls(
            sampling=_load_sampling_config(_section(data, "sampling")),
            limits=_load_limits_config(_section(data, "limits")),
            report=_load_report_config(_section(data, "report")),
            system=SystemConfig(
                log_to_file=_typed(system_data, "log_to_file", sys_defaults.log_to_file, bool),
                log_max_bytes=log_max_bytes,
                log_backup_count=log_backup_count,
            ),
        )


def _section(data: Mapping, name: str) -> Mapping:
    """Return the [name] table, or an empty one if absent."""
    section = data.get(name, {})
    if not isinstance(section, Mapping):
        raise ValueError(f"[{name}] must be a table, got {type(section).__name__}")
    return section


def _typed(data: Mapping, key: str, default, kind: type):
    """Return data[key] (or default), checked against kind.

    bool is not accepted where a number is expected, and an int is accepted
    where a float is.
    """
    value = data.get(key, default)
    if kind is bool:
        ok = isinstance(value, bool)
    elif kind is float:
        ok = isinstance(value, (int, float)) and not isinstance(value, bool)
    elif kind is int:
        ok = isinstance(value, int) and not isinstance(value, bool)
    else:
        ok = isinstance(value, kind)
    if not ok:
        raise ValueError(f"{key} must be {kind.__name__}, got {value!r}")
    return value


def _load_sampling_config(data: Mapping) -> SamplingConfig:
    """Load sampling config from TOML data, using dataclass defaults for missing fields."""
    defaults = SamplingConfig()

    interval = _typed(data, "interval", defaults.interval, float)
    clock_ticks_fallback = _typed(
        data, "clock_ticks_fallback", defaults.clock_ticks_fallback, int
    )

    if interval <= 0:
        raise ValueError(f"interval must be > 0, got {interval}")
    if clock_ticks_fallback <= 0:
        raise ValueError(f"clock_ticks_fallback must be > 0, got {clock_ticks_fallback}")

    return SamplingConfig(
        interval=float(interval),
        proc_root=str(_typed(data, "proc_root", defaults.proc_root, str)),
        clock_ticks_fallback=int(clock_ticks_fallback),
        detect_pid_reuse=_typed(data, "detect_pid_reuse", defaults.detect_pid_reuse, bool),
    )


def _load_limits_config(data: Mapping) -> LimitsConfig:
    """Load table limits from TOML data."""
    d = LimitsConfig()
    max_processes = _typed(data, "max_processes", d.max_processes, int)
    max_users = _typed(data, "max_users", d.max_users, int)

    if max_processes < 0:
        raise ValueError(f"max_processes must be >= 0, got {max_processes}")
    if max_users < 0:
        raise ValueError(f"max_users must be >= 0, got {max_users}")

    return LimitsConfig(max_processes=int(max_processes), max_users=int(max_users))


def _load_report_config(data: Mapping) -> ReportConfig:
    """Load report config from TOML data."""
    d = ReportConfig()
    fmt = _typed(data, "format", d.format, str)
    name_width = _typed(data, "name_width", d.name_width, int)

    if fmt not in REPORT_FORMATS:
        raise ValueError(f"Invalid report format: {fmt!r}. Must be one of {REPORT_FORMATS}")
    if name_width < 1:
        raise ValueError(f"name_width must be >= 1, got {name_width}")

    return ReportConfig(format=str(fmt), name_width=int(name_width))
