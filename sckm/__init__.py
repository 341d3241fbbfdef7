"""
SCKM - semi-supervised constrained k-modes over boolean feature vectors.

Groups items into clusters while honoring sparse malware/accept label hints,
then answers whether two vectors fall in the same cluster.
"""

from .config import SCKMConfig
from .errors import (
    SCKMError,
    NotReadyError,
    NotTrainedError,
    DimensionMismatchError,
    DatasetError,
    UpdateTimeoutError,
    TrainingCancelledError,
    StateTransitionError,
)
from .clustering import (
    SCKM,
    BoolPoint,
    LabelBoolPoint,
    Label,
    TaskState,
    Connectivity,
    ClusterCountJob,
    Trained,
)

__all__ = [
    "SCKM",
    "SCKMConfig",
    "BoolPoint",
    "LabelBoolPoint",
    "Label",
    "TaskState",
    "Connectivity",
    "ClusterCountJob",
    "Trained",
    "SCKMError",
    "NotReadyError",
    "NotTrainedError",
    "DimensionMismatchError",
    "DatasetError",
    "UpdateTimeoutError",
    "TrainingCancelledError",
    "StateTransitionError",
]
