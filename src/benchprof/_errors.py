"""Exception hierarchy and failure records.

Input-validation errors are raised before any measurement starts.
Per-candidate and per-tick problems are never raised: they are captured
as frozen records (EvaluationFailure, SamplingStallSkipped) and attached
to the result that owns them.
"""

from dataclasses import dataclass
from typing import Any


class BenchprofError(Exception):
    """Base class for every error raised by benchprof."""


class ClockUnavailable(BenchprofError, RuntimeError):
    """The platform cannot provide a monotonic, high-resolution clock."""


class EmptyCandidateSet(BenchprofError, ValueError):
    """run() was called without any candidates."""


class InvalidReplicateCount(BenchprofError, ValueError):
    """Replicate or warm-up count out of range."""


class DuplicateCandidateLabel(BenchprofError, ValueError):
    """Two candidates in one run share a label."""


class InvalidQuantile(BenchprofError, ValueError):
    """Requested quantile is outside [0, 1]."""


class InvalidInterval(BenchprofError, ValueError):
    """Sampling interval or deadline is not a positive duration."""


class SealedError(BenchprofError):
    """Attempt to mutate an object after it was sealed."""


class SamplerStateError(BenchprofError):
    """Illegal Sampler state transition (e.g. starting twice)."""


class StackUnavailable(BenchprofError):
    """Raised by a stack provider that cannot be captured right now.

    The Sampler treats it as a skipped tick, not as a failure.
    """


class UnevaluableCandidate(BenchprofError):
    """A candidate faulted on every attempt and has no durations."""

    def __init__(self, label: str, failures: int) -> None:
        super().__init__(
            f"Candidate {label!r} failed on all {failures} attempts; "
            f"no durations to summarize"
        )
        self.label = label
        self.failures = failures


class SessionAborted(BenchprofError):
    """The profiled work raised; ``profile`` holds what was collected.

    The original exception is chained as ``__cause__``.
    """

    def __init__(self, profile: Any, message: str) -> None:
        super().__init__(message)
        self.profile = profile


@dataclass(frozen=True)
class EvaluationFailure:
    """A fault raised by one replicate of a candidate."""

    label: str
    repetition: int
    error_type: str
    message: str

    @classmethod
    def from_exception(cls, label: str, repetition: int, exc: BaseException) -> "EvaluationFailure":
        # Only the description is kept so the traceback (and its frames'
        # locals) can be collected immediately.
        return cls(
            label=label,
            repetition=repetition,
            error_type=type(exc).__name__,
            message=str(exc),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "repetition": self.repetition,
            "error_type": self.error_type,
            "message": self.message,
        }


@dataclass(frozen=True)
class SamplingStallSkipped:
    """Informational: a sampling tick was dropped because capture would block."""

    tick: int
    timestamp_ns: int
    reason: str
