"""Profile sessions: sampler + call tree around one unit of work.

Design by Contract:
- The sampler is always stopped, even when the work raises
- A faulting work surfaces as SessionAborted carrying the partial Profile
- A deadline or cancel() truncates sampling, never the tree's consistency
- Profiles are sealed: frozen record over a sealed call tree
"""

import json
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from beartype import beartype
from loguru import logger

from benchprof._calltree import CallTreeAggregator, CallTreeNode, StackFrame
from benchprof._clock import Clock, WallTimer
from benchprof._errors import InvalidInterval, SessionAborted
from benchprof._sampler import DEFAULT_INTERVAL_NS, Sampler


@dataclass(frozen=True)
class Profile:
    """Sealed outcome of one profiled unit of work.

    Attributes:
        wall_time_ns: Elapsed time of the whole session
        sample_count: Samples folded into the tree (== root.count)
        root: Sealed call tree
        interval_ns: Sampling interval; node time = count * interval
        skipped_ticks: Ticks dropped because the stack was unavailable
        missed_ticks: Grid points skipped because a firing ran late
        truncated: Sampling ended early (deadline, cancel, repeated provider faults)
        aborted: The work raised
        memory_delta_gb: Process RSS change across the session (GB)
        peak_memory_gb: Process RSS at the end of the session (GB)
    """

    wall_time_ns: int
    sample_count: int
    root: CallTreeNode
    interval_ns: int
    skipped_ticks: int = 0
    missed_ticks: int = 0
    truncated: bool = False
    aborted: bool = False
    memory_delta_gb: float = 0.0
    peak_memory_gb: float = 0.0

    def __post_init__(self) -> None:
        assert self.wall_time_ns >= 0, f"Wall time must be non-negative: {self.wall_time_ns}"
        assert self.root.sealed, "Profile root must be sealed"
        assert self.root.count == self.sample_count, (
            f"Root count {self.root.count} != sample count {self.sample_count}"
        )

    def stage_times(self) -> dict[str, int]:
        """Inclusive time estimate (ns) of each top-level region."""
        return {
            label: node.time_ns(self.interval_ns)
            for label, node in sorted(self.root.children.items())
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "wall_time_ns": self.wall_time_ns,
            "sample_count": self.sample_count,
            "interval_ns": self.interval_ns,
            "skipped_ticks": self.skipped_ticks,
            "missed_ticks": self.missed_ticks,
            "truncated": self.truncated,
            "aborted": self.aborted,
            "memory_delta_gb": self.memory_delta_gb,
            "peak_memory_gb": self.peak_memory_gb,
            "tree": self.root.to_dict(self.interval_ns),
        }

    @beartype
    def flush_to_file(self, path: Path) -> None:
        """Write the profile as JSON, creating parent directories."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @beartype
    def log_summary(self, title: str = "PROFILE") -> None:
        """Log the call tree with inclusive/self shares via loguru."""
        logger.info("=" * 90)
        logger.info(f"{title:^90}")
        logger.info("=" * 90)
        logger.info(
            f"wall={self.wall_time_ns / 1e6:.2f}ms samples={self.sample_count} "
            f"interval={self.interval_ns / 1e6:g}ms skipped={self.skipped_ticks}"
            + (" TRUNCATED" if self.truncated else "")
            + (" ABORTED" if self.aborted else "")
        )
        logger.info("-" * 90)
        total = self.sample_count or 1
        for node in self.root.walk():
            if node.parent is None:
                continue
            indent = "  " * (len(node.path) - 1)
            logger.info(
                f"{indent + node.label:<50} {node.count:>8} "
                f"{node.count / total:>7.1%} self={node.self_count / total:>6.1%}"
            )
        logger.info("=" * 90)


class ProfileSession:
    """Runs work under a background sampler and returns a Profile.

    Args:
        interval_ns: Sampling interval (default 10ms)
        deadline_ns: Stop sampling this long after the start (optional);
            the work itself still runs to completion
        track_memory: Record RSS delta/peak via psutil
        clock: Time source shared by the session timer and the sampler

    Samples are folded into the call tree as they arrive, so memory stays
    bounded no matter how long the work runs.

    Example:
        stages = StageStack()
        session = ProfileSession(interval_ns=5_000_000)
        profile = session.profile(pipeline, stack_provider=stages)
        profile.stage_times()
    """

    @beartype
    def __init__(
        self,
        interval_ns: int = DEFAULT_INTERVAL_NS,
        deadline_ns: int | None = None,
        track_memory: bool = True,
        clock: Clock | None = None,
    ) -> None:
        if interval_ns <= 0:
            raise InvalidInterval(f"Sampling interval must be positive: {interval_ns}ns")
        if deadline_ns is not None and deadline_ns <= 0:
            raise InvalidInterval(f"Deadline must be positive: {deadline_ns}ns")
        self.interval_ns = interval_ns
        self.deadline_ns = deadline_ns
        self.track_memory = track_memory
        self.clock = clock if clock is not None else Clock()
        self._sampler: Sampler | None = None
        self._cancelled = False
        self._lock = threading.Lock()

    @beartype
    def profile(
        self,
        work: Callable[[], Any],
        stack_provider: Callable[[], Sequence[StackFrame]] | None = None,
    ) -> Profile:
        """Run ``work`` to completion while sampling its stack.

        Args:
            work: Zero-argument computation, run on the calling thread
            stack_provider: Returns the work's current frames; defaults to
                ``work.stack_provider``

        Raises:
            TypeError: If no stack provider is given or exposed by ``work``.
            SessionAborted: If ``work`` raised; ``.profile`` holds the
                partial Profile and ``__cause__`` the original exception.
        """
        provider = stack_provider if stack_provider is not None else getattr(work, "stack_provider", None)
        if provider is None or not callable(provider):
            raise TypeError("work must expose a callable stack_provider, or pass one explicitly")

        aggregator = CallTreeAggregator()
        sampler = Sampler(self.clock, sink=aggregator.add)
        with self._lock:
            assert self._sampler is None, "ProfileSession is already profiling"
            self._sampler = sampler
            self._cancelled = False

        fault: Exception | None = None
        timer = WallTimer(self.clock, track_memory=self.track_memory)
        try:
            with timer:
                sampler.start(
                    provider,
                    interval_ns=self.interval_ns,
                    origin_ns=timer.start_ns,
                    deadline_ns=self.deadline_ns,
                )
                try:
                    work()
                except Exception as exc:
                    fault = exc
                finally:
                    sampler.stop()
        finally:
            with self._lock:
                self._sampler = None

        root = aggregator.seal()
        truncated = self._cancelled or sampler.expired or sampler.tripped
        profile = Profile(
            wall_time_ns=timer.elapsed_ns,
            sample_count=root.count,
            root=root,
            interval_ns=self.interval_ns,
            skipped_ticks=sampler.skipped_ticks,
            missed_ticks=sampler.missed_ticks,
            truncated=truncated,
            aborted=fault is not None,
            memory_delta_gb=timer.memory_delta,
            peak_memory_gb=timer.peak_memory,
        )

        if truncated:
            logger.warning(
                f"Profile truncated after {profile.sample_count} samples "
                f"(wall {profile.wall_time_ns / 1e6:.2f}ms)"
            )
        if fault is not None:
            logger.warning(
                f"Profiled work raised {type(fault).__name__}; "
                f"returning partial profile ({profile.sample_count} samples)"
            )
            raise SessionAborted(profile, f"Profiled work raised {type(fault).__name__}: {fault}") from fault

        logger.info(
            f"Profile complete: {profile.sample_count} samples in "
            f"{profile.wall_time_ns / 1e6:.2f}ms"
        )
        return profile

    def cancel(self) -> None:
        """Stop sampling the running work early; safe from any thread."""
        with self._lock:
            sampler = self._sampler
            if sampler is None:
                return
            self._cancelled = True
        sampler.stop()
        logger.debug("Profile session cancelled")
