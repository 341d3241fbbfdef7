"""
Data models for constrained clustering.

Value types for boolean points and labels, the lifecycle enums, and the
immutable snapshot a model swaps on every write.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Sequence, Union

import numpy as np

from ..errors import DatasetError, DimensionMismatchError


class Label(str, Enum):
    """Label hints attached to training points."""
    MALWARE = "malware"
    ACCEPT = "accept"


class TaskState(str, Enum):
    """Lifecycle flag for training and data updates."""
    READY = "ready"
    PENDING = "pending"
    DONE = "done"


class Connectivity(str, Enum):
    """Result of a same-cluster query."""
    LINKED = "linked"
    SEPARATE = "separate"


# Numeric label encoding used by the vectorized steps
LABEL_MALWARE = 1
LABEL_ACCEPT = -1
LABEL_NONE = 0

_LABEL_CODES = {
    Label.MALWARE: LABEL_MALWARE,
    Label.ACCEPT: LABEL_ACCEPT,
    None: LABEL_NONE,
}


def _to_bool(value, position: int) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, np.integer)) and value in (0, 1):
        return bool(value)
    raise ValueError(f"Non-boolean entry {value!r} at position {position}")


@dataclass(frozen=True)
class BoolPoint:
    """A point in d-dimensional boolean space."""

    values: tuple[bool, ...]

    def __post_init__(self):
        object.__setattr__(
            self,
            "values",
            tuple(_to_bool(v, i) for i, v in enumerate(self.values)),
        )

    @property
    def dimension(self) -> int:
        return len(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def __iter__(self):
        return iter(self.values)

    @classmethod
    def from_bits(cls, bits: str) -> BoolPoint:
        """Parse a bit string such as '0110'."""
        if any(ch not in "01" for ch in bits):
            raise ValueError(f"Invalid bit string: {bits!r}")
        return cls(tuple(ch == "1" for ch in bits))

    def to_bits(self) -> str:
        return "".join("1" if v else "0" for v in self.values)

    def to_array(self) -> np.ndarray:
        return np.array(self.values, dtype=bool)

    def to_dict(self) -> dict:
        return {"values": list(self.values)}

    @classmethod
    def from_dict(cls, data: dict) -> BoolPoint:
        return cls(tuple(data["values"]))


@dataclass(frozen=True)
class LabelBoolPoint:
    """A possibly-labeled point."""

    data: BoolPoint
    label: Optional[Label] = None

    def __post_init__(self):
        if not isinstance(self.data, BoolPoint):
            object.__setattr__(self, "data", BoolPoint(tuple(self.data)))
        if self.label is not None and not isinstance(self.label, Label):
            object.__setattr__(self, "label", Label(self.label))

    def to_dict(self) -> dict:
        return {
            "data": self.data.to_bits(),
            "label": self.label.value if self.label else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> LabelBoolPoint:
        """Create from dict; 'data' may be a bit string or a list of bools."""
        raw = data["data"]
        point = BoolPoint.from_bits(raw) if isinstance(raw, str) else BoolPoint(tuple(raw))
        return cls(data=point, label=data.get("label"))


@dataclass(frozen=True)
class ClusterCountJob:
    """Resolution state of the cluster count. count is set iff status is done."""

    count: Optional[int]
    status: TaskState

    def __post_init__(self):
        if (self.count is not None) != (self.status == TaskState.DONE):
            raise ValueError(
                f"Inconsistent cluster count job: count={self.count}, status={self.status.value}"
            )

    @classmethod
    def make(cls) -> ClusterCountJob:
        return cls(count=None, status=TaskState.READY)

    @classmethod
    def pending(cls) -> ClusterCountJob:
        return cls(count=None, status=TaskState.PENDING)

    @classmethod
    def resolved(cls, count: int) -> ClusterCountJob:
        return cls(count=int(count), status=TaskState.DONE)


@dataclass(frozen=True)
class Trained:
    """Acknowledgment returned by a completed training run."""

    iterations: int              # Iterations actually run
    converged: bool              # Stopped because nothing moved
    cluster_count: int
    history: tuple[int, ...] = field(default_factory=tuple)  # Cluster count after each iteration


VectorLike = Union[BoolPoint, Sequence[bool], np.ndarray]


def as_vector(vector: VectorLike, dimension: int) -> np.ndarray:
    """Convert a caller-supplied vector to a bool array of the given dimension."""
    if isinstance(vector, BoolPoint):
        values = vector.values
    else:
        values = BoolPoint(tuple(vector)).values
    if len(values) != dimension:
        raise DimensionMismatchError(dimension, len(values))
    return np.array(values, dtype=bool)


def _freeze(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class ModelSnapshot:
    """
    Complete, immutable model state.

    Writers build a new snapshot and swap the reference; readers never see
    a partially updated one.
    """

    records: tuple[LabelBoolPoint, ...]
    points: np.ndarray           # (n, d) bool
    labels: np.ndarray           # (n,) int8, see LABEL_* codes
    assignment: np.ndarray       # (n,) center index per point
    centers: np.ndarray          # (k, d) bool, every center non-empty
    cluster_count: ClusterCountJob

    @property
    def size(self) -> int:
        return len(self.records)

    @property
    def dimension(self) -> int:
        return int(self.points.shape[1])

    @classmethod
    def build(cls, data: Iterable[LabelBoolPoint]) -> ModelSnapshot:
        """Fresh snapshot: every point its own cluster, count unresolved."""
        try:
            records = tuple(
                item if isinstance(item, LabelBoolPoint) else LabelBoolPoint.from_dict(item)
                for item in data
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DatasetError(f"Malformed record: {e}") from e
        if not records:
            raise DatasetError("Dataset is empty")

        dimension = records[0].data.dimension
        if dimension == 0:
            raise DatasetError("Points must have at least one coordinate")
        for i, record in enumerate(records):
            if record.data.dimension != dimension:
                raise DimensionMismatchError(dimension, record.data.dimension, index=i)

        points = np.array([r.data.values for r in records], dtype=bool)
        labels = np.array([_LABEL_CODES[r.label] for r in records], dtype=np.int8)

        return cls(
            records=records,
            points=_freeze(points),
            labels=_freeze(labels),
            assignment=_freeze(np.arange(len(records), dtype=np.intp)),
            centers=_freeze(points.copy()),
            cluster_count=ClusterCountJob.make(),
        )

    def evolve(
        self,
        assignment: np.ndarray,
        centers: np.ndarray,
        cluster_count: ClusterCountJob,
    ) -> ModelSnapshot:
        """New snapshot sharing this dataset with different results."""
        return ModelSnapshot(
            records=self.records,
            points=self.points,
            labels=self.labels,
            assignment=_freeze(np.array(assignment, dtype=np.intp)),
            centers=_freeze(np.array(centers, dtype=bool)),
            cluster_count=cluster_count,
        )
