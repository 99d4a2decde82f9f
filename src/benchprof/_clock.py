"""Monotonic clock and region timer.

Design by Contract:
- Durations are integer nanoseconds and MUST be non-negative
  (crash if negative: the clock went backwards)
- The clock source MUST be monotonic; construction fails fast otherwise
- Calendar time (time.time) is never used for interval measurement
"""

import time
from typing import Any

import psutil
from beartype import beartype
from loguru import logger

from benchprof._errors import ClockUnavailable

_SOURCES = {
    "perf_counter": time.perf_counter_ns,
    "monotonic": time.monotonic_ns,
}


class Clock:
    """Monotonic nanosecond time source.

    Args:
        source: Name of the underlying clock, ``"perf_counter"`` (default,
            highest resolution) or ``"monotonic"``.

    Raises:
        ClockUnavailable: If the platform reports the source as
            non-monotonic or does not provide it at all.

    Example:
        clock = Clock()
        start = clock.now()
        work()
        elapsed_ns = clock.since(start)
    """

    @beartype
    def __init__(self, source: str = "perf_counter") -> None:
        if source not in _SOURCES:
            raise ClockUnavailable(
                f"Unknown clock source {source!r}; expected one of {sorted(_SOURCES)}"
            )
        try:
            info = time.get_clock_info(source)
        except ValueError as exc:
            raise ClockUnavailable(f"Clock source {source!r} is not available") from exc
        if not info.monotonic:
            raise ClockUnavailable(
                f"Clock source {source!r} is not monotonic on this platform; "
                f"refusing to measure intervals with it"
            )
        self.source = source
        self.resolution_ns: int = max(1, round(info.resolution * 1e9))
        self._read = _SOURCES[source]
        logger.debug(
            f"Clock ready: source={source} implementation={info.implementation} "
            f"resolution={self.resolution_ns}ns"
        )

    def now(self) -> int:
        """Current reading in nanoseconds (arbitrary epoch)."""
        return self._read()

    def since(self, start: int) -> int:
        """Nanoseconds elapsed since an earlier ``now()`` reading."""
        elapsed = self.now() - start
        assert elapsed >= 0, (
            f"Elapsed time cannot be negative: {elapsed}ns. "
            f"Clock went backwards or readings were swapped."
        )
        return elapsed


class WallTimer:
    """Context manager timing one region with optional memory tracking.

    Args:
        clock: Clock used for the two readings
        track_memory: If True, record process RSS before/after via psutil

    Attributes:
        elapsed_ns: Duration of the region in nanoseconds (MUST be >= 0)
        memory_delta: Change in process RSS (GB), may be negative
        peak_memory: Process RSS at exit (GB)

    Example:
        with WallTimer(Clock(), track_memory=True) as timer:
            work()
        print(timer.elapsed_ns, timer.memory_delta)
    """

    @beartype
    def __init__(self, clock: Clock, track_memory: bool = True) -> None:
        self.clock = clock
        self.track_memory = track_memory
        self.start_ns: int = 0
        self.elapsed_ns: int = 0
        self.memory_delta: float = 0.0
        self.peak_memory: float = 0.0
        self._start_memory: float = 0.0

    def __enter__(self) -> "WallTimer":
        if self.track_memory:
            self._start_memory = psutil.Process().memory_info().rss / 1024**3  # GB
        self.start_ns = self.clock.now()
        return self

    def __exit__(self, *args: Any) -> None:
        self.elapsed_ns = self.clock.since(self.start_ns)

        if self.track_memory:
            end_memory = psutil.Process().memory_info().rss / 1024**3  # GB
            self.memory_delta = end_memory - self._start_memory
            self.peak_memory = end_memory

            assert self.peak_memory >= 0, (
                f"Peak memory cannot be negative: {self.peak_memory:.2f}GB"
            )
