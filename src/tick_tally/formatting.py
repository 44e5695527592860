"""Formatting utilities for consistent report output."""


def ticks_to_ms(ticks: int, ticks_per_second: int) -> int:
    """Convert clock ticks to whole milliseconds (floor).

    Args:
        ticks: Accumulated clock ticks
        ticks_per_second: Kernel tick rate (SC_CLK_TCK)

    Returns:
        floor(ticks * 1000 / ticks_per_second)
    """
    if ticks_per_second <= 0:
        raise ValueError(f"ticks_per_second must be > 0, got {ticks_per_second}")
    return ticks * 1000 // ticks_per_second
