"""Latency statistics aggregation."""

import statistics
from collections.abc import Sequence

from latmon.models import Stats


def compute(samples: Sequence[float], timeout_count: int) -> Stats:
    """Compute latency statistics for a run (pure function).

    avg/min/max are taken over successful samples only; timeouts carry no
    latency value. Loss is the percentage of attempted probes (samples plus
    timeouts) that timed out.

    While no sample has been received every field is empty and loss is 0,
    even if timeouts were already counted.

    Args:
        samples: Latencies in milliseconds, in arrival order
        timeout_count: Number of probes that timed out

    Returns:
        Stats snapshot

    Examples:
        >>> compute([20.0, 25.0, 30.0], 1)
        Stats(avg=25.0, min=20.0, max=30.0, loss=25.0)
        >>> compute([], 3)
        Stats(avg=None, min=None, max=None, loss=0.0)
    """
    if timeout_count < 0:
        raise ValueError("timeout_count must not be negative")

    if not samples:
        return Stats()

    lo, hi = min(samples), max(samples)
    total = len(samples) + timeout_count
    # fmean can still round just outside the range for repeated values
    avg = min(max(statistics.fmean(samples), lo), hi)
    loss = (timeout_count / total) * 100 if total > 0 else 0.0

    return Stats(avg=avg, min=lo, max=hi, loss=loss)


def format_ms(value: float | None) -> str:
    """Format a latency for display, '-' when absent."""
    if value is None:
        return "-"
    return f"{value:.1f}ms"


def format_loss(loss: float) -> str:
    """Format a loss percentage for display."""
    if loss > 0:
        return f"{loss:.1f}%"
    return "0%"
