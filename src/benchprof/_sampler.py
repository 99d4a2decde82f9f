"""Background interval sampler.

Design by Contract:
- State machine Idle -> Running -> Stopped; stop() is idempotent
- Ticks fire on a fixed grid (origin + k * interval); successive firings
  are never closer than one interval, late ticks move to the next grid
  point instead of bunching up
- A provider that cannot capture right now (raises StackUnavailable)
  costs one skipped tick, never a stall of the sampled computation
- Any other provider fault also costs one skipped tick; sampling only
  gives up after MAX_CONSECUTIVE_FAILURES faults in a row
- Samples are appended to a thread-safe deque (single producer) or
  handed to a sink; drain() may run concurrently with sampling
"""

import threading
from collections import deque
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from enum import Enum
from typing import Any

from beartype import beartype
from loguru import logger

from benchprof._calltree import Sample, StackFrame
from benchprof._clock import Clock
from benchprof._errors import (
    InvalidInterval,
    SamplerStateError,
    SamplingStallSkipped,
    StackUnavailable,
)

DEFAULT_INTERVAL_NS = 10_000_000  # 10 ms
_MAX_STALL_RECORDS = 64
MAX_CONSECUTIVE_FAILURES = 50

StackProvider = Callable[[], Sequence[StackFrame]]


class SamplerState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class StageStack:
    """Stack provider for computations that label their own regions.

    The computation enters regions with ``region()``; the sampler calls
    the instance to read the current stack. The stack is an immutable
    tuple replaced on every push/pop, so a read never blocks and never
    observes a half-updated stack.

    Example:
        stages = StageStack()

        def work():
            with stages.region("stage:load"):
                load()
            with stages.region("stage:plot"):
                plot()

        work.stack_provider = stages
    """

    def __init__(self) -> None:
        self._frames: tuple[StackFrame, ...] = ()

    def __call__(self) -> tuple[StackFrame, ...]:
        return self._frames

    @property
    def depth(self) -> int:
        return len(self._frames)

    def push(self, label: str) -> StackFrame:
        frame = StackFrame(label, len(self._frames))
        self._frames = self._frames + (frame,)
        return frame

    def pop(self, frame: StackFrame) -> None:
        assert self._frames and self._frames[-1] == frame, (
            f"Region {frame.label!r} exited out of order; current stack: "
            f"{[f.label for f in self._frames]}"
        )
        self._frames = self._frames[:-1]

    @contextmanager
    def region(self, label: str) -> Iterator[StackFrame]:
        frame = self.push(label)
        try:
            yield frame
        finally:
            self.pop(frame)


class Sampler:
    """Fires at a fixed cadence and captures the provider's stack.

    Args:
        clock: Time source for tick scheduling and timestamps
        sink: Optional callable receiving each Sample as it is taken
            (streaming aggregation). Without a sink, samples are buffered
            until drain() or stop().

    Attributes:
        skipped_ticks: Ticks dropped because the provider was not ready or faulted
        missed_ticks: Grid points passed over because a firing ran late
        stalls: The most recent SamplingStallSkipped records
        error: First unexpected exception raised by the provider, if any
        failed_ticks: Skipped ticks caused by unexpected provider faults
        tripped: True if sampling gave up after too many consecutive faults
        expired: True if sampling ended because the deadline passed

    Example:
        sampler = Sampler()
        sampler.start(stages, interval_ns=5_000_000)
        work()
        samples = sampler.stop()
    """

    @beartype
    def __init__(
        self,
        clock: Clock | None = None,
        sink: Callable[[Sample], Any] | None = None,
    ) -> None:
        self.clock = clock if clock is not None else Clock()
        self.sink = sink
        self.skipped_ticks = 0
        self.missed_ticks = 0
        self.stalls: deque[SamplingStallSkipped] = deque(maxlen=_MAX_STALL_RECORDS)
        self.error: BaseException | None = None
        self.failed_ticks = 0
        self.tripped = False
        self.expired = False
        self._consecutive_failures = 0
        self.interval_ns = DEFAULT_INTERVAL_NS
        self._state = SamplerState.IDLE
        self._buffer: deque[Sample] = deque()
        self._provider: StackProvider | None = None
        self._origin_ns = 0
        self._deadline_ns: int | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def state(self) -> SamplerState:
        return self._state

    @property
    def origin_ns(self) -> int:
        return self._origin_ns

    @beartype
    def start(
        self,
        stack_provider: Callable[[], Sequence[StackFrame]],
        interval_ns: int = DEFAULT_INTERVAL_NS,
        origin_ns: int | None = None,
        deadline_ns: int | None = None,
    ) -> None:
        """Transition Idle -> Running and begin firing.

        Args:
            stack_provider: Returns the computation's current frames, root first
            interval_ns: Sampling interval (MUST be > 0)
            origin_ns: Clock reading that timestamps are relative to
                (default: now)
            deadline_ns: Stop firing this long after the origin (optional)

        Raises:
            SamplerStateError: If the sampler is not Idle.
            InvalidInterval: If interval or deadline is not positive.
        """
        if interval_ns <= 0:
            raise InvalidInterval(f"Sampling interval must be positive: {interval_ns}ns")
        if deadline_ns is not None and deadline_ns <= 0:
            raise InvalidInterval(f"Deadline must be positive: {deadline_ns}ns")

        with self._lock:
            if self._state is not SamplerState.IDLE:
                raise SamplerStateError(f"Cannot start a sampler in state {self._state.value}")
            self._provider = stack_provider
            self.interval_ns = interval_ns
            self._origin_ns = origin_ns if origin_ns is not None else self.clock.now()
            self._deadline_ns = deadline_ns
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._run, name="benchprof-sampler", daemon=True)
            self._state = SamplerState.RUNNING
            self._thread.start()

        logger.debug(f"Sampler started: interval={interval_ns}ns deadline={deadline_ns}")

    def stop(self) -> list[Sample]:
        """Transition Running -> Stopped and return buffered samples.

        No-op (returns an empty list) when the sampler is not running.
        """
        with self._lock:
            if self._state is not SamplerState.RUNNING:
                return []
            self._stop_event.set()
            assert self._thread is not None
            self._thread.join()
            self._thread = None
            self._state = SamplerState.STOPPED

        logger.debug(
            f"Sampler stopped: buffered={len(self._buffer)} skipped={self.skipped_ticks} "
            f"missed={self.missed_ticks}"
        )
        return self.drain()

    def drain(self) -> list[Sample]:
        """Remove and return every buffered sample, oldest first."""
        drained: list[Sample] = []
        while True:
            try:
                drained.append(self._buffer.popleft())
            except IndexError:
                return drained

    def _run(self) -> None:
        interval = self.interval_ns
        tick = 1
        while not self._stop_event.is_set():
            offset = tick * interval
            if self._deadline_ns is not None and offset > self._deadline_ns:
                self.expired = True
                logger.debug(f"Sampler deadline reached after {tick - 1} ticks")
                return
            if self._wait_until(self._origin_ns + offset):
                return

            fired_at = self.clock.now()
            if not self._capture(tick, fired_at - self._origin_ns):
                return

            # Next grid point at least one full interval after this firing.
            earliest = fired_at - self._origin_ns + interval
            following = -(-earliest // interval)
            self.missed_ticks += following - tick - 1
            tick = following

    def _wait_until(self, target_ns: int) -> bool:
        """Sleep until ``target_ns``; True if stop was requested meanwhile."""
        while True:
            remaining = target_ns - self.clock.now()
            if remaining <= 0:
                return False
            if self._stop_event.wait(remaining / 1e9):
                return True

    def _capture(self, tick: int, timestamp_ns: int) -> bool:
        assert self._provider is not None
        try:
            frames = tuple(self._provider())
        except StackUnavailable as exc:
            self._skip(tick, timestamp_ns, str(exc) or "stack unavailable")
            return True
        except Exception as exc:
            return self._fail(tick, timestamp_ns, exc)

        self._consecutive_failures = 0
        sample = Sample(timestamp_ns, frames)
        if self.sink is not None:
            self.sink(sample)
        else:
            self._buffer.append(sample)
        return True

    def _skip(self, tick: int, timestamp_ns: int, reason: str) -> None:
        if self.skipped_ticks == 0:
            logger.warning(f"Sampling tick {tick} skipped: {reason}")
        self.skipped_ticks += 1
        self.stalls.append(SamplingStallSkipped(tick, timestamp_ns, reason))

    def _fail(self, tick: int, timestamp_ns: int, exc: Exception) -> bool:
        """Record a provider fault as a skipped tick; False once sampling gives up."""
        if self.error is None:
            self.error = exc
            logger.opt(exception=exc).error(f"Stack provider failed at tick {tick}")
        self.failed_ticks += 1
        self._consecutive_failures += 1
        self._skip(tick, timestamp_ns, f"{type(exc).__name__}: {exc}")
        if self._consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
            self.tripped = True
            logger.error(
                f"Stack provider failed {self._consecutive_failures} ticks in a row; sampling stopped"
            )
            return False
        return True
