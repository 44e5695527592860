"""CLI commands for tick-tally."""

from pathlib import Path

import click

from tick_tally.config import REPORT_FORMATS


@click.group()
@click.version_option(package_name="tick-tally")
def main() -> None:
    """Rank users by the CPU time their processes use over a fixed window."""
    pass


def _load_config(path: Path | None):
    from rich.markup import escape

    from tick_tally import logging as console
    from tick_tally.config import Config

    try:
        return Config.load(path)
    except ValueError as e:
        console.error(escape(str(e)), console.Icon.FAIL)
        raise SystemExit(1) from e


@main.command()
@click.argument("duration", type=click.IntRange(min=1))
@click.option(
    "--interval",
    "-i",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds between samples (default from config, 1.0)",
)
@click.option("--format", "-f", "fmt", type=click.Choice(REPORT_FORMATS), default=None)
@click.option(
    "--proc-root",
    type=click.Path(file_okay=False),
    default=None,
    help="Process-information directory to scan",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file to use instead of the default",
)
@click.option("--verbose", "-v", is_flag=True, help="Show per-tick progress and debug events")
def run(
    duration: int,
    interval: float | None,
    fmt: str | None,
    proc_root: str | None,
    config_path: Path | None,
    verbose: bool,
) -> None:
    """Sample every process for DURATION seconds, then rank users by CPU time."""
    from dataclasses import replace

    from tick_tally import logging as console
    from tick_tally.procfs import clock_ticks_per_second
    from tick_tally.report import render
    from tick_tally.sampler import SampleStats, Sampler

    config = _load_config(config_path)
    if interval is not None:
        config.sampling = replace(config.sampling, interval=interval)
    if proc_root is not None:
        config.sampling = replace(config.sampling, proc_root=proc_root)
    if fmt is not None:
        config.report = replace(config.report, format=fmt)

    console.configure(config, verbose=verbose)

    sampler = Sampler.from_config(config)
    ticks_per_second = clock_ticks_per_second(config.sampling.clock_ticks_fallback)

    def on_tick(stats: SampleStats) -> None:
        if stats.tick == 0:
            console.baseline_taken(stats.observed, len(sampler.users))
        elif verbose:
            console.tick_done(stats.tick, duration, stats.delta_ticks)

    console.monitor_started(duration, config.sampling.interval)
    sampler.run(duration, on_tick=on_tick)
    report = sampler.report(ticks_per_second)

    if sampler.scans_failed:
        console.scans_skipped(sampler.scans_failed, duration + 1)
    console.monitor_finished(sampler.ticks_completed, len(report.rows))

    click.echo(render(report, config.report.format, config.report.name_width))


@main.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
def config_show() -> None:
    """Display current configuration."""
    from dataclasses import fields

    cfg = _load_config(None)

    click.echo(f"Config file: {cfg.config_path}")
    click.echo(f"Exists: {cfg.config_path.exists()}")
    click.echo(f"Log file: {cfg.log_path}")
    for section in ("sampling", "limits", "report", "system"):
        click.echo()
        click.echo(f"[{section}]")
        values = getattr(cfg, section)
        for f in fields(values):
            click.echo(f"  {f.name} = {getattr(values, f.name)}")


@config.command("reset")
@click.confirmation_option(prompt="Reset config to defaults?")
def config_reset() -> None:
    """Reset configuration to defaults."""
    from tick_tally.config import Config

    cfg = Config()
    cfg.save()
    click.echo(f"Config reset to defaults at {cfg.config_path}")
