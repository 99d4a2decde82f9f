"""benchprof: Interleaved micro-benchmarking and interval-sampling profiling.

Provides:
- Clock / WallTimer: Monotonic nanosecond time source and region timer
- BenchmarkRunner: Round-robin repeated timing of labeled candidates
- summarize / rank: Robust summary statistics and fastest-first ranking
- Sampler / StageStack: Background fixed-cadence stack sampling
- CallTreeAggregator: Folds stack samples into an inclusive-count call tree
- ProfileSession: Sampler + call tree around one unit of work

Usage:
    from benchprof import BenchmarkRunner, ProfileSession, StageStack, rank, summarize

    results = BenchmarkRunner(warmup=3).run({"a": op_a, "b": op_b}, times=200)
    fastest = rank(results)[0]
    stats = summarize(results[fastest], quantile=0.95)

    stages = StageStack()
    profile = ProfileSession(interval_ns=10_000_000).profile(pipeline, stack_provider=stages)
    profile.log_summary("Pipeline")
"""

from benchprof._bench import (
    DEFAULT_TIMES,
    BenchmarkResult,
    BenchmarkRunner,
    Candidate,
    interleaved_schedule,
)
from benchprof._calltree import (
    ROOT_LABEL,
    UNLABELED,
    CallTreeAggregator,
    CallTreeNode,
    Sample,
    StackFrame,
    fold,
)
from benchprof._clock import Clock, WallTimer
from benchprof._errors import (
    BenchprofError,
    ClockUnavailable,
    DuplicateCandidateLabel,
    EmptyCandidateSet,
    EvaluationFailure,
    InvalidInterval,
    InvalidQuantile,
    InvalidReplicateCount,
    SamplerStateError,
    SamplingStallSkipped,
    SealedError,
    SessionAborted,
    StackUnavailable,
    UnevaluableCandidate,
)
from benchprof._sampler import (
    DEFAULT_INTERVAL_NS,
    MAX_CONSECUTIVE_FAILURES,
    Sampler,
    SamplerState,
    StageStack,
)
from benchprof._session import Profile, ProfileSession
from benchprof._stats import (
    DEFAULT_QUANTILE,
    SummaryStats,
    log_ranking,
    rank,
    relative_to_fastest,
    summarize,
)

__all__ = [
    "DEFAULT_INTERVAL_NS",
    "DEFAULT_QUANTILE",
    "DEFAULT_TIMES",
    "MAX_CONSECUTIVE_FAILURES",
    "ROOT_LABEL",
    "UNLABELED",
    "BenchmarkResult",
    "BenchmarkRunner",
    "BenchprofError",
    "CallTreeAggregator",
    "CallTreeNode",
    "Candidate",
    "Clock",
    "ClockUnavailable",
    "DuplicateCandidateLabel",
    "EmptyCandidateSet",
    "EvaluationFailure",
    "InvalidInterval",
    "InvalidQuantile",
    "InvalidReplicateCount",
    "Profile",
    "ProfileSession",
    "Sample",
    "Sampler",
    "SamplerState",
    "SamplerStateError",
    "SamplingStallSkipped",
    "SealedError",
    "SessionAborted",
    "StackFrame",
    "StackUnavailable",
    "StageStack",
    "SummaryStats",
    "UnevaluableCandidate",
    "WallTimer",
    "fold",
    "interleaved_schedule",
    "log_ranking",
    "rank",
    "relative_to_fastest",
    "summarize",
]

__version__ = "0.1.0"
