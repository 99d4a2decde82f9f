"""Summary statistics and ranking for benchmark results.

All functions are pure: they read sealed BenchmarkResults and never
mutate them, so repeated calls give identical answers.

Quantiles use linear interpolation between order statistics
(numpy.percentile's default ``linear`` method).
"""

import math
import statistics
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass

from beartype import beartype
from loguru import logger

from benchprof._bench import BenchmarkResult
from benchprof._errors import InvalidQuantile, UnevaluableCandidate

DEFAULT_QUANTILE = 0.95


@dataclass(frozen=True)
class SummaryStats:
    """Summary of one candidate's durations, all in nanoseconds.

    ``failures`` counts attempts that raised; their durations (measured up
    to the raise) are included in the statistics.
    """

    label: str
    n: int
    min: float
    median: float
    mean: float
    max: float
    stdev: float
    quantile: float  # requested quantile in [0, 1]
    quantile_value: float
    failures: int = 0

    def to_dict(self) -> dict[str, float | int | str]:
        return asdict(self)


def _quantile(sorted_values: Sequence[int], q: float) -> float:
    """Quantile ``q`` of an ascending sequence by linear interpolation."""
    n = len(sorted_values)
    if n == 1:
        return sorted_values[0]
    k = (n - 1) * q
    f = math.floor(k)
    c = math.ceil(k)
    if f == c:
        return sorted_values[int(k)]
    lo, hi = sorted_values[f], sorted_values[c]
    # lo + (hi - lo) * d stays within [lo, hi] under float rounding.
    return lo + (hi - lo) * (k - f)


def _check_quantile(quantile: float) -> None:
    if isinstance(quantile, bool) or not 0.0 <= quantile <= 1.0:
        raise InvalidQuantile(f"Quantile must be within [0, 1]: {quantile}")


@beartype
def summarize(result: BenchmarkResult, quantile: int | float = DEFAULT_QUANTILE) -> SummaryStats:
    """Reduce a sealed result to min/median/mean/max and one quantile.

    Args:
        result: Sealed BenchmarkResult with at least one duration
        quantile: Quantile to report, in [0, 1] (default 0.95)

    Raises:
        InvalidQuantile: If ``quantile`` is outside [0, 1] or a bool.
        UnevaluableCandidate: If the result holds no durations.
    """
    _check_quantile(quantile)
    assert result.sealed, f"BenchmarkResult {result.label!r} must be sealed before summarizing"
    if result.unevaluable or len(result) == 0:
        raise UnevaluableCandidate(result.label, len(result.failures))

    values = sorted(result.durations)
    stdev = statistics.stdev(values) if len(values) >= 2 else 0.0
    summary = SummaryStats(
        label=result.label,
        n=len(values),
        min=values[0],
        median=statistics.median(values),
        mean=statistics.mean(values),
        max=values[-1],
        stdev=stdev,
        quantile=float(quantile),
        quantile_value=_quantile(values, quantile),
        failures=len(result.failures),
    )
    assert summary.min <= summary.median <= summary.max
    return summary


@beartype
def rank(results: Mapping[str, BenchmarkResult]) -> list[str]:
    """Order evaluable candidates fastest first.

    Sort key is (median, mean, label), so ties are always broken
    deterministically. Unevaluable candidates are excluded from the
    ordering and reported through the log.
    """
    keyed: list[tuple[float, float, str]] = []
    for label, result in results.items():
        if result.unevaluable or len(result) == 0:
            logger.warning(f"Excluding unevaluable candidate {label!r} from ranking")
            continue
        stats = summarize(result)
        keyed.append((stats.median, stats.mean, label))
    keyed.sort()
    return [label for _, _, label in keyed]


@beartype
def relative_to_fastest(results: Mapping[str, BenchmarkResult]) -> dict[str, float]:
    """Median of each evaluable candidate divided by the fastest median."""
    order = rank(results)
    if not order:
        return {}
    medians = {label: summarize(results[label]).median for label in order}
    fastest = medians[order[0]]
    ratios: dict[str, float] = {}
    for label in order:
        if fastest > 0:
            ratios[label] = medians[label] / fastest
        else:
            ratios[label] = 1.0 if medians[label] == 0 else math.inf
    return ratios


def _format_ns(value: float) -> str:
    if value >= 1e9:
        return f"{value / 1e9:.2f}s"
    if value >= 1e6:
        return f"{value / 1e6:.2f}ms"
    if value >= 1e3:
        return f"{value / 1e3:.2f}us"
    return f"{value:.0f}ns"


@beartype
def log_ranking(
    results: Mapping[str, BenchmarkResult],
    title: str = "BENCHMARK RESULTS",
    quantile: int | float = DEFAULT_QUANTILE,
) -> None:
    """Log a condensed table of all candidates, fastest first, via loguru."""
    _check_quantile(quantile)
    order = rank(results)
    ratios = relative_to_fastest(results)
    q_header = f"p{quantile * 100:g}"

    logger.info("=" * 90)
    logger.info(f"{title:^90}")
    logger.info("=" * 90)
    logger.info(
        f"{'Candidate':<30} {'Min':>10} {'Median':>10} {'Mean':>10} "
        f"{q_header:>10} {'Max':>10} {'Rel':>6}"
    )
    logger.info("-" * 90)
    for label in order:
        stats = summarize(results[label], quantile)
        logger.info(
            f"{label:<30} {_format_ns(stats.min):>10} {_format_ns(stats.median):>10} "
            f"{_format_ns(stats.mean):>10} {_format_ns(stats.quantile_value):>10} "
            f"{_format_ns(stats.max):>10} {ratios[label]:>5.2f}x"
            + (f" ({stats.failures} failures)" if stats.failures else "")
        )
    for label, result in results.items():
        if label not in ratios:
            logger.info(f"{label:<30} {'unevaluable':>10} ({len(result.failures)} failures)")
    logger.info("=" * 90)
