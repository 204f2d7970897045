"""Wall-clock timing for build task phases."""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator, Optional


def format_duration(seconds: float) -> str:
    """Format seconds as human-readable duration.

    Examples:
        0.5 -> "0.5s"
        65.3 -> "1m 5.3s"
        3661.0 -> "1h 1m 1.0s"
    """
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes = int(seconds // 60)
    remaining = seconds % 60
    if minutes < 60:
        return f"{minutes}m {remaining:.1f}s"

    return f"{minutes // 60}h {minutes % 60}m {remaining:.1f}s"


class PhaseTimer:
    """Records how long each named phase of a task took.

    Usage:
        timer = PhaseTimer()
        with timer.phase("sync"):
            branch.update_checkout()
        log.dim(timer.summary())
    """

    def __init__(self) -> None:
        self.timings: dict[str, float] = {}
        self.current: Optional[str] = None

    @contextmanager
    def phase(self, name: str) -> Iterator[None]:
        start = time.monotonic()
        self.current = name
        try:
            yield
        finally:
            # Failed phases are recorded too so an aborted task shows where it died
            self.timings[name] = round(time.monotonic() - start, 3)
            self.current = None

    @property
    def total(self) -> float:
        return sum(self.timings.values())

    def summary(self) -> str:
        """One line summary, e.g. ``sync: 48.0s | build: 2m 3.1s | total: 2m 51.1s``."""
        if not self.timings:
            return "(no timing data)"
        parts = [f"{k}: {format_duration(v)}" for k, v in self.timings.items()]
        parts.append(f"total: {format_duration(self.total)}")
        return " | ".join(parts)
