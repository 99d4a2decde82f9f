"""Shared test doubles for benchprof tests."""

from benchprof import BenchmarkResult, Clock, Sample, StackFrame


class StepClock(Clock):
    """Clock advancing a fixed step on every read, for exact durations."""

    def __init__(self, step_ns: int = 1_000) -> None:
        super().__init__()
        self.step_ns = step_ns
        self.reads = 0
        self._value = 0

    def now(self) -> int:
        self._value += self.step_ns
        self.reads += 1
        return self._value


def make_result(label: str, durations: list[int]) -> BenchmarkResult:
    return BenchmarkResult.from_durations(label, durations)


def make_sample(*labels: str, timestamp_ns: int = 0) -> Sample:
    frames = tuple(StackFrame(label, depth) for depth, label in enumerate(labels))
    return Sample(timestamp_ns, frames)
