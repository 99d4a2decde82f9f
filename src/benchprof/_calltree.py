"""Call-tree aggregation of sampled stacks.

Design by Contract:
- root.count == number of samples folded
- node.count >= sum(child.count for child in node.children) everywhere
- Folding is a pure reduction: the same ordered samples always give the
  same tree
- Sealed trees are read-only
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from beartype import beartype

from benchprof._errors import SealedError

ROOT_LABEL = "<root>"
UNLABELED = "<unlabeled>"


@dataclass(frozen=True)
class StackFrame:
    """One code region on a sampled stack; depth 0 is outermost."""

    label: str
    depth: int

    def __post_init__(self) -> None:
        assert self.label, "Stack frame label must be non-empty"
        assert self.depth >= 0, f"Stack frame depth must be non-negative: {self.depth}"


@dataclass(frozen=True)
class Sample:
    """A stack snapshot taken ``timestamp_ns`` after the session origin."""

    timestamp_ns: int
    frames: tuple[StackFrame, ...]


class CallTreeNode:
    """A code region within the tree, keyed by (parent, label).

    ``count`` is inclusive: one unit per sample whose stack passes through
    this node. ``self_count`` is the part not attributed to any child.
    Only the aggregator changes a node, through ``increment()`` and
    ``child_or_create()``; label, parent and count are read-only.
    """

    __slots__ = ("_label", "_parent", "_count", "_children", "_sealed")

    def __init__(self, label: str, parent: "CallTreeNode | None" = None) -> None:
        self._label = label
        self._parent = parent
        self._count = 0
        self._children: dict[str, CallTreeNode] = {}
        self._sealed = False

    @property
    def label(self) -> str:
        return self._label

    @property
    def parent(self) -> "CallTreeNode | None":
        return self._parent

    @property
    def count(self) -> int:
        return self._count

    @property
    def children(self) -> dict[str, "CallTreeNode"]:
        if self._sealed:
            return dict(self._children)
        return self._children

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def self_count(self) -> int:
        return self.count - sum(child.count for child in self._children.values())

    @property
    def path(self) -> tuple[str, ...]:
        labels: list[str] = []
        node: CallTreeNode | None = self
        while node is not None and node.parent is not None:
            labels.append(node.label)
            node = node.parent
        return tuple(reversed(labels))

    def child(self, label: str) -> "CallTreeNode | None":
        return self._children.get(label)

    def find(self, *labels: str) -> "CallTreeNode | None":
        """Descend by successive labels; None if any step is missing."""
        node: CallTreeNode | None = self
        for label in labels:
            if node is None:
                return None
            node = node.child(label)
        return node

    def child_or_create(self, label: str) -> "CallTreeNode":
        node = self._children.get(label)
        if node is None:
            if self._sealed:
                raise SealedError(f"Call tree node {self.label!r} is sealed")
            node = CallTreeNode(label, parent=self)
            self._children[label] = node
        return node

    def increment(self) -> None:
        if self._sealed:
            raise SealedError(f"Call tree node {self.label!r} is sealed")
        self._count += 1

    def seal(self) -> None:
        for node in self.walk():
            node._sealed = True

    def walk(self) -> Iterator["CallTreeNode"]:
        """Pre-order traversal, children in label order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(sorted(node._children.values(), key=lambda n: n.label, reverse=True))

    def time_ns(self, interval_ns: int) -> int:
        """Inclusive time estimate: samples x sampling interval."""
        return self.count * interval_ns

    def self_time_ns(self, interval_ns: int) -> int:
        return self.self_count * interval_ns

    def to_dict(self, interval_ns: int | None = None) -> dict[str, Any]:
        data: dict[str, Any] = {
            "label": self.label,
            "count": self.count,
            "self_count": self.self_count,
        }
        if interval_ns is not None:
            data["time_ns"] = self.time_ns(interval_ns)
            data["self_time_ns"] = self.self_time_ns(interval_ns)
        data["children"] = [
            child.to_dict(interval_ns)
            for child in sorted(self._children.values(), key=lambda n: n.label)
        ]
        return data

    def folded(self) -> list[str]:
        """Collapsed-stack lines (``a;b;c N``) with self counts, for flame graphs."""
        lines = []
        for node in self.walk():
            if node.parent is None or node.self_count == 0:
                continue
            lines.append(f"{';'.join(node.path)} {node.self_count}")
        return lines

    def __repr__(self) -> str:
        return f"CallTreeNode({self.label!r}, count={self.count}, children={len(self._children)})"


class CallTreeAggregator:
    """Folds samples into a weighted call tree.

    Samples can be added one at a time (streaming, e.g. as the Sampler's
    sink) or folded from any iterable. Raw samples are not retained.

    Example:
        aggregator = CallTreeAggregator()
        root = aggregator.fold(samples)
        root.find("stage:load").count
    """

    def __init__(self) -> None:
        self.root = CallTreeNode(ROOT_LABEL)

    @property
    def sample_count(self) -> int:
        return self.root.count

    def add(self, sample: Sample) -> None:
        node = self.root
        node.increment()
        frames = sample.frames
        if not frames:
            node.child_or_create(UNLABELED).increment()
            return
        for frame in frames:
            node = node.child_or_create(frame.label)
            node.increment()

    @beartype
    def fold(self, samples: Iterable[Sample]) -> CallTreeNode:
        """Add every sample and return the root (still open for more)."""
        for sample in samples:
            self.add(sample)
        return self.root

    def seal(self) -> CallTreeNode:
        self.root.seal()
        return self.root


@beartype
def fold(samples: Iterable[Sample]) -> CallTreeNode:
    """Fold samples into a fresh, sealed call tree."""
    aggregator = CallTreeAggregator()
    aggregator.fold(samples)
    return aggregator.seal()
