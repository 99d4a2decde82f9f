"""Property-based tests for benchprof using Hypothesis.

These tests verify mathematical invariants that handwritten tests miss:
order-statistic bounds for arbitrary duration lists, round-robin fairness
for any candidate count, and inclusive-count accounting for arbitrary
stack shapes.
"""

from collections import Counter

from hypothesis import given, settings
from hypothesis import strategies as st

from benchprof import BenchmarkRunner, Candidate, Sample, fold, interleaved_schedule, rank, summarize
from helpers import StepClock, make_result, make_sample

# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

# Realistic durations: up to ~17 minutes in nanoseconds
valid_duration = st.integers(min_value=0, max_value=10**12)

duration_lists = st.lists(valid_duration, min_size=1, max_size=200)

valid_quantile = st.floats(min_value=0.0, max_value=1.0, allow_nan=False)

# Unique, non-empty candidate labels
label_sets = st.lists(st.text(min_size=1, max_size=8), min_size=1, max_size=6, unique=True)

replicate_count = st.integers(min_value=1, max_value=12)

# Stacks drawn from a tiny alphabet so paths collide and share prefixes
stack_labels = st.lists(st.sampled_from(["load", "parse", "plot", "io"]), max_size=5)

stack_lists = st.lists(stack_labels, max_size=60)


# ---------------------------------------------------------------------------
# summarize(): order-statistic invariants
# ---------------------------------------------------------------------------

class TestSummaryProperties:
    @given(durations=duration_lists)
    def test_median_and_mean_within_bounds(self, durations):
        """min <= median <= max and min <= mean <= max for any sample."""
        stats = summarize(make_result("p", durations))
        assert stats.min <= stats.median <= stats.max
        assert stats.min <= stats.mean <= stats.max
        assert stats.min == min(durations)
        assert stats.max == max(durations)

    @given(durations=duration_lists, quantile=valid_quantile)
    def test_quantile_within_bounds(self, durations, quantile):
        """Any quantile lies between min and max."""
        stats = summarize(make_result("p", durations), quantile=quantile)
        assert stats.min <= stats.quantile_value <= stats.max

    @given(durations=duration_lists, q1=valid_quantile, q2=valid_quantile)
    def test_quantile_is_monotonic(self, durations, q1, q2):
        """A higher quantile never yields a lower value."""
        lo, hi = sorted((q1, q2))
        result = make_result("p", durations)
        assert summarize(result, lo).quantile_value <= summarize(result, hi).quantile_value

    @given(durations=duration_lists, quantile=valid_quantile)
    def test_summarize_is_idempotent(self, durations, quantile):
        """Summarizing the same sealed result twice gives identical stats."""
        result = make_result("p", durations)
        assert summarize(result, quantile) == summarize(result, quantile)
        assert result.durations == tuple(durations)

    @given(durations=duration_lists)
    def test_median_is_half_quantile(self, durations):
        """The median equals the 0.5 linear-interpolation quantile."""
        stats = summarize(make_result("p", durations), quantile=0.5)
        assert abs(stats.median - stats.quantile_value) <= 1e-6 * max(1, stats.max)


class TestRankProperties:
    @given(data=st.dictionaries(st.text(min_size=1, max_size=5), duration_lists, min_size=1, max_size=6))
    def test_rank_is_permutation_sorted_by_median(self, data):
        """rank() returns every label once, in non-decreasing median order."""
        results = {label: make_result(label, durations) for label, durations in data.items()}
        order = rank(results)

        assert sorted(order) == sorted(data)
        medians = [summarize(results[label]).median for label in order]
        assert medians == sorted(medians)


# ---------------------------------------------------------------------------
# BenchmarkRunner: interleaving fairness
# ---------------------------------------------------------------------------

class TestInterleavingProperties:
    @given(labels=label_sets, times=replicate_count)
    def test_schedule_rounds_visit_each_label_once(self, labels, times):
        """Every consecutive block of k entries is exactly one full round."""
        order = [label for _, label in interleaved_schedule(labels, times)]
        k = len(labels)

        assert len(order) == k * times
        for start in range(0, len(order), k):
            assert sorted(order[start:start + k]) == sorted(labels)

    @given(labels=label_sets, times=replicate_count)
    @settings(max_examples=30)
    def test_runner_executes_in_rounds(self, labels, times):
        """No candidate runs twice before every other candidate ran once."""
        calls: list[str] = []
        candidates = [Candidate(label, lambda label=label: calls.append(label)) for label in labels]

        results = BenchmarkRunner(clock=StepClock()).run(candidates, times=times)

        assert Counter(calls) == {label: times for label in labels}
        k = len(labels)
        for start in range(0, len(calls), k):
            assert len(set(calls[start:start + k])) == k
        for result in results.values():
            assert len(result.durations) == times


# ---------------------------------------------------------------------------
# CallTreeAggregator: accounting invariants
# ---------------------------------------------------------------------------

def _samples(stacks: list[list[str]]) -> list[Sample]:
    return [make_sample(*labels, timestamp_ns=i) for i, labels in enumerate(stacks)]


class TestCallTreeProperties:
    @given(stacks=stack_lists)
    def test_root_count_equals_sample_count(self, stacks):
        assert fold(_samples(stacks)).count == len(stacks)

    @given(stacks=stack_lists)
    def test_inclusive_count_invariant(self, stacks):
        """Every node's count covers the sum of its children's counts."""
        root = fold(_samples(stacks))
        for node in root.walk():
            assert node.count >= sum(child.count for child in node.children.values())
            assert node.self_count >= 0

    @given(stacks=stack_lists)
    def test_self_counts_partition_samples(self, stacks):
        """Each sample contributes exactly one unit of self time."""
        root = fold(_samples(stacks))
        assert sum(node.self_count for node in root.walk()) == len(stacks)

    @given(stacks=stack_lists)
    def test_fold_is_deterministic(self, stacks):
        samples = _samples(stacks)
        assert fold(samples).to_dict() == fold(samples).to_dict()

    @given(stacks=stack_lists)
    def test_folded_lines_sum_to_sample_count(self, stacks):
        root = fold(_samples(stacks))
        assert sum(int(line.rsplit(" ", 1)[1]) for line in root.folded()) == len(stacks)
