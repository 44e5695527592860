"""Centralized console logging with Rich formatting.

This module provides:
1. Icon vocabulary (Icon class namespace)
2. Level-based styling
3. Core log functions (log, info, warn, error)
4. Domain-specific helpers (monitor_started, monitor_finished, etc.)
5. Structlog configuration (configure)

Console output uses Rich markup on stderr so stdout carries only the report.
JSON file output via structlog remains separate (machine-parseable, no colors).
"""

from __future__ import annotations

import logging
import logging.handlers
from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from rich.console import Console

if TYPE_CHECKING:
    from tick_tally.config import Config

# Rich console for colorful human-readable output
_console = Console(stderr=True, highlight=False)


# ─────────────────────────────────────────────────────────────────────────────
# Icons
# ─────────────────────────────────────────────────────────────────────────────


class Icon:
    """Icon vocabulary for console output."""

    OK = "[bold green]✓[/]"
    FAIL = "[bold red]✗[/]"
    WAIT = "⏳"
    SAMPLE = "[magenta]♡[/]"


# ─────────────────────────────────────────────────────────────────────────────
# Level Styles
# ─────────────────────────────────────────────────────────────────────────────

_LEVEL_STYLES = {
    "info": "[bright_blue]\\[info][/]",
    "warn": "[yellow]\\[warn][/]",
    "error": "[bold red]\\[err][/] ",
}


# ─────────────────────────────────────────────────────────────────────────────
# Core Functions
# ─────────────────────────────────────────────────────────────────────────────


def log(level: str, msg: str, icon: str = "") -> None:
    """Print a log message with timestamp and level.

    Args:
        level: Log level (info, warn, error)
        msg: Message to print (can include Rich markup)
        icon: Optional icon to show after level (e.g., Icon.OK)
    """
    ts = datetime.now().strftime("%H:%M:%S")
    lvl = _LEVEL_STYLES.get(level, f"[{level}]")
    icon_part = f" {icon}" if icon else ""
    _console.print(f"[dim]{ts}[/] {lvl}{icon_part} {msg}")


def info(msg: str, icon: str = "") -> None:
    """Log an info message."""
    log("info", msg, icon)


def warn(msg: str, icon: str = "") -> None:
    """Log a warning message."""
    log("warn", msg, icon)


def error(msg: str, icon: str = "") -> None:
    """Log an error message."""
    log("error", msg, icon)


# ─────────────────────────────────────────────────────────────────────────────
# Domain Helpers
# ─────────────────────────────────────────────────────────────────────────────


def monitor_started(duration: int, interval: float) -> None:
    """Log monitoring run started."""
    suffix = "s" if duration != 1 else ""
    info(
        f"Monitoring for [cyan]{duration}[/] tick{suffix} [dim](every {interval:g}s)[/]",
        Icon.WAIT,
    )


def baseline_taken(process_count: int, user_count: int) -> None:
    """Log baseline scan complete."""
    info(f"[dim]Baseline: {process_count} processes, {user_count} users[/]")


def tick_done(tick: int, duration: int, delta_ticks: int) -> None:
    """Log one sampling tick."""
    info(f"[dim]Tick {tick}/{duration}: +{delta_ticks} ticks[/]", Icon.SAMPLE)


def scans_skipped(count: int, ticks: int) -> None:
    """Log how many scans could not list the proc root."""
    warn(f"[yellow]{count}[/] of {ticks} scans skipped, totals may be low")


def monitor_finished(ticks: int, users_with_usage: int) -> None:
    """Log monitoring run complete."""
    info(f"Done after [cyan]{ticks}[/] ticks, {users_with_usage} users with usage", Icon.OK)


# ─────────────────────────────────────────────────────────────────────────────
# Structlog Configuration
# ─────────────────────────────────────────────────────────────────────────────


def _add_source(source: str) -> structlog.types.Processor:
    """Create a processor that adds a source field to log events."""

    def processor(
        logger: structlog.types.WrappedLogger,
        method_name: str,
        event_dict: structlog.types.EventDict,
    ) -> structlog.types.EventDict:
        event_dict["source"] = source
        return event_dict

    return processor


def configure(config: Config, *, verbose: bool = False) -> None:
    """Configure structlog with dual output: stderr console + JSON file.

    Console output uses structlog's human-readable renderer on stderr,
    WARNING and above unless verbose. File output uses JSON Lines format
    and is skipped when config.system.log_to_file is false.

    Args:
        config: Application config with paths
        verbose: Show INFO and DEBUG events on the console
    """
    stdlib_root = logging.getLogger()
    stdlib_root.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Clear any existing handlers
    stdlib_root.handlers.clear()

    if config.system.log_to_file:
        # Ensure state directory exists for log file
        config.state_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            config.log_path,
            maxBytes=config.system.log_max_bytes,
            backupCount=config.system.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=structlog.processors.JSONRenderer(),
                foreign_pre_chain=[
                    structlog.contextvars.merge_contextvars,
                    structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
                    structlog.processors.add_log_level,
                    _add_source("monitor"),
                    structlog.processors.format_exc_info,
                ],
            )
        )
        stdlib_root.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(),
            foreign_pre_chain=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="%H:%M:%S", utc=False),
                structlog.processors.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
            ],
        )
    )
    stdlib_root.addHandler(console_handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S", utc=False),
            structlog.processors.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _add_source("monitor"),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

