"""
Constrained clustering for SCKM.

Value types, the constrained k-modes algorithm, and the SCKM model that
ties them to the training lifecycle.
"""

from .models import (
    BoolPoint,
    LabelBoolPoint,
    Label,
    TaskState,
    Connectivity,
    ClusterCountJob,
    Trained,
    ModelSnapshot,
)
from .algorithm import (
    hamming_distance,
    hamming_distances,
    find_nearest_center,
    assignment_step,
    update_step,
    run_training,
)
from .model import SCKM

__all__ = [
    # Models
    "BoolPoint",
    "LabelBoolPoint",
    "Label",
    "TaskState",
    "Connectivity",
    "ClusterCountJob",
    "Trained",
    "ModelSnapshot",
    # Algorithm
    "hamming_distance",
    "hamming_distances",
    "find_nearest_center",
    "assignment_step",
    "update_step",
    "run_training",
    # Model
    "SCKM",
]
