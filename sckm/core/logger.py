"""
Structured logging for SCKM training runs.

Single JSONL file with typed events for streaming and analysis.

Event types:
- training_start: eta, dataset shape, merge radius
- iteration: points moved, cluster count
- training_end: iterations, convergence, final cluster count
- training_cancelled: iterations completed before the stop
- data_update: new dataset shape
- error: failed operations
"""

import json
import threading
from pathlib import Path
from datetime import datetime
from typing import Any, Optional

import numpy as np


def _to_native(obj):
    """Convert numpy types to native Python types for JSON serialization."""
    if isinstance(obj, dict):
        return {k: _to_native(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_to_native(v) for v in obj]
    elif isinstance(obj, np.floating):
        return float(obj)
    elif isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.bool_):
        return bool(obj)
    elif isinstance(obj, np.ndarray):
        return obj.tolist()
    return obj


class TrainingLogger:
    def __init__(self, output_dir: Path, filename: str = "training.jsonl"):
        """
        Initialize logger for training runs.

        Args:
            output_dir: Directory for the log file
            filename: Log file name inside output_dir
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = self.output_dir / filename

        # Open file in append mode
        self.file_handle = open(self.log_file, 'a')
        self._lock = threading.Lock()

    def _write_event(self, event_type: str, data: dict[str, Any]) -> None:
        """Write typed event to JSONL log."""
        event = {
            "type": event_type,
            "timestamp": datetime.now().isoformat(),
            **_to_native(data)
        }
        with self._lock:
            self.file_handle.write(json.dumps(event) + '\n')
            self.file_handle.flush()  # Ensure streaming writes

    def log_training_start(
        self,
        eta: int,
        num_points: int,
        dimension: int,
        merge_radius: int,
        num_labeled: int,
    ) -> None:
        """
        Log start of a training run.

        Args:
            eta: Iteration cap
            num_points: Dataset size
            dimension: Boolean feature dimension
            merge_radius: Effective singleton merge radius
            num_labeled: Points carrying a label
        """
        self._write_event("training_start", {
            "eta": eta,
            "num_points": num_points,
            "dimension": dimension,
            "merge_radius": merge_radius,
            "num_labeled": num_labeled,
        })

    def log_iteration(self, iteration: int, moved: int, num_clusters: int) -> None:
        self._write_event("iteration", {
            "iteration": iteration,
            "moved": moved,
            "num_clusters": num_clusters,
        })

    def log_training_end(
        self,
        iterations: int,
        converged: bool,
        num_clusters: int,
        duration_ms: float,
        clusters: Optional[list[dict]] = None,
    ) -> None:
        """
        Log training completion.

        Args:
            iterations: Iterations run
            converged: Whether the run stopped because nothing moved
            num_clusters: Final cluster count
            duration_ms: Wall time of the run
            clusters: Per-cluster member/label counts
        """
        data = {
            "iterations": iterations,
            "converged": converged,
            "num_clusters": num_clusters,
            "duration_ms": duration_ms,
        }
        if clusters is not None:
            data["clusters"] = clusters

        self._write_event("training_end", data)

    def log_training_cancelled(self, iterations: int) -> None:
        self._write_event("training_cancelled", {"iterations": iterations})

    def log_data_update(self, num_points: int, dimension: int) -> None:
        self._write_event("data_update", {
            "num_points": num_points,
            "dimension": dimension,
        })

    def log_error(
        self,
        message: str,
        operation: Optional[str] = None,
        error_type: str = "error",
    ) -> None:
        """
        Log error event.

        Args:
            message: Error description
            operation: Model operation that failed (train, update_data, ...)
            error_type: Exception class name or category
        """
        data = {
            "message": message,
            "error_type": error_type,
        }
        if operation is not None:
            data["operation"] = operation

        self._write_event("error", data)

    def close(self) -> None:
        """Close log file."""
        if hasattr(self, 'file_handle') and self.file_handle:
            self.file_handle.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
