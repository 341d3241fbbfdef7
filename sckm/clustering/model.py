"""
SCKM model: owns the dataset and the trained clustering.

Public operations: train, same_cluster, update_data. All state lives in one
immutable ModelSnapshot held by a StateController, so writers swap whole
snapshots and readers never see a half-written one.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Iterable, Optional, Union

import numpy as np

from ..config import SCKMConfig
from ..core.logger import TrainingLogger
from ..core.state import StateController
from ..errors import SCKMError, TrainingCancelledError
from .algorithm import (
    cluster_label_summary,
    find_nearest_center,
    run_training,
    same_cluster as centers_same_cluster,
)
from .models import (
    BoolPoint,
    ClusterCountJob,
    Connectivity,
    LabelBoolPoint,
    LABEL_NONE,
    ModelSnapshot,
    TaskState,
    Trained,
    VectorLike,
    as_vector,
)

# Marks an omitted update_data timeout; None already means wait forever
_CONFIG_TIMEOUT = object()


class SCKM:
    """
    Semi-supervised constrained k-modes model.

    Lifecycle:
        SCKM(data)          -> ready, every point its own cluster
        train(eta)          -> pending -> done
        same_cluster(a, b)  -> only while done
        update_data(data)   -> waits out training, rebuilds, back to ready
    """

    def __init__(
        self,
        data: Iterable[LabelBoolPoint],
        config: Optional[SCKMConfig] = None,
        logger: Optional[TrainingLogger] = None,
    ):
        """
        Build a model from a labeled dataset.

        Args:
            data: Non-empty sequence of LabelBoolPoint of one dimension
            config: Training configuration (defaults if None)
            logger: JSONL logger; created under config.log_dir when unset

        Raises:
            DatasetError: Empty or malformed dataset
            DimensionMismatchError: Points of differing dimension
        """
        self.config = config or SCKMConfig()
        snapshot = ModelSnapshot.build(data)
        if logger is None and self.config.log_dir:
            logger = TrainingLogger(Path(self.config.log_dir))
        self.logger = logger
        self._controller: StateController[ModelSnapshot] = StateController(snapshot)

    # --- state ---

    @property
    def state(self) -> TaskState:
        return self._controller.state

    @property
    def dimension(self) -> int:
        return self._controller.snapshot.dimension

    @property
    def size(self) -> int:
        return self._controller.snapshot.size

    @property
    def data(self) -> tuple[LabelBoolPoint, ...]:
        return self._controller.snapshot.records

    @property
    def cluster_count_job(self) -> ClusterCountJob:
        return self._controller.snapshot.cluster_count

    # --- training ---

    def train(self, eta: Optional[int] = None) -> Trained:
        """
        Run constrained relocation for up to eta iterations.

        Args:
            eta: Iteration cap (config.default_eta if None); 0 keeps the
                singleton assignment

        Returns:
            Trained acknowledgment

        Raises:
            NotReadyError: Model is pending or already trained
            TrainingCancelledError: cancel() was called during the run
        """
        eta = self._resolve_eta(eta)
        base = self._controller.begin_training()

        try:
            snapshot = base.evolve(base.assignment, base.centers, ClusterCountJob.pending())
            self._controller.stage(snapshot)
            trained, final = self._run(snapshot, eta)
        except TrainingCancelledError:
            raise
        except BaseException as e:
            self._controller.abort_training(base)
            self._log_error("train", e)
            raise

        self._controller.finish_training(final)
        return trained

    def _run(self, snapshot: ModelSnapshot, eta: int) -> tuple[Trained, ModelSnapshot]:
        radius = self.config.effective_merge_radius(snapshot.dimension)
        if self.logger:
            self.logger.log_training_start(
                eta=eta,
                num_points=snapshot.size,
                dimension=snapshot.dimension,
                merge_radius=radius,
                num_labeled=int(np.count_nonzero(snapshot.labels != LABEL_NONE)),
            )
        if self.config.verbose:
            print(f"Training on {snapshot.size} points (d={snapshot.dimension}, eta={eta})...")

        started = time.perf_counter()
        outcome = run_training(
            snapshot.points,
            snapshot.labels,
            snapshot.assignment,
            snapshot.centers,
            eta=eta,
            merge_radius=radius,
            should_stop=lambda: self._controller.cancel_requested,
            on_iteration=self._on_iteration,
        )

        if outcome.cancelled:
            if self.logger:
                self.logger.log_training_cancelled(outcome.iterations)
            if self.config.verbose:
                print(f"  Cancelled after {outcome.iterations} iterations")
            # Keep the partial assignment so the next train() resumes from it
            partial = snapshot.evolve(outcome.assignment, outcome.centers, ClusterCountJob.make())
            self._controller.abort_training(partial)
            raise TrainingCancelledError(outcome.iterations)

        count = int(outcome.centers.shape[0])
        final = snapshot.evolve(outcome.assignment, outcome.centers, ClusterCountJob.resolved(count))

        if self.logger:
            self.logger.log_training_end(
                iterations=outcome.iterations,
                converged=outcome.converged,
                num_clusters=count,
                duration_ms=(time.perf_counter() - started) * 1000,
                clusters=cluster_label_summary(snapshot.labels, outcome.assignment),
            )
        if self.config.verbose:
            status = "converged" if outcome.converged else "stopped at eta"
            print(f"  {count} clusters after {outcome.iterations} iterations ({status})")

        trained = Trained(
            iterations=outcome.iterations,
            converged=outcome.converged,
            cluster_count=count,
            history=tuple(outcome.history),
        )
        return trained, final

    def _on_iteration(self, iteration: int, moved: int, num_clusters: int) -> None:
        if self.logger:
            self.logger.log_iteration(iteration, moved, num_clusters)
        if self.config.verbose:
            print(f"  Iteration {iteration}: moved {moved}, clusters {num_clusters}")

    def _resolve_eta(self, eta: Optional[int]) -> int:
        if eta is None:
            return self.config.default_eta
        if isinstance(eta, bool) or not isinstance(eta, (int, np.integer)) or eta < 0:
            raise ValueError(f"eta must be a non-negative int, got {eta!r}")
        return int(eta)

    def cancel(self) -> bool:
        """Ask an in-flight train() to stop. False if nothing is training."""
        return self._controller.request_cancel()

    def wait_until_trained(self, timeout: Optional[float] = None) -> TaskState:
        """Block until no training is pending; returns the settled state."""
        return self._controller.wait_until_settled(timeout)

    # --- queries ---

    def same_cluster(self, a: VectorLike, b: VectorLike) -> Connectivity:
        """
        Check whether a and b fall in the same cluster.

        Vectors need not be in the training set; labels are not used.

        Raises:
            NotTrainedError: Model is not done training
            DimensionMismatchError: Vector of the wrong length
        """
        snapshot = self._controller.require_done()
        vec_a = as_vector(a, snapshot.dimension)
        vec_b = as_vector(b, snapshot.dimension)
        return centers_same_cluster(vec_a, vec_b, snapshot.centers)

    def predict(self, vector: VectorLike) -> int:
        """Index of the nearest center to a vector."""
        snapshot = self._controller.require_done()
        index, _ = find_nearest_center(as_vector(vector, snapshot.dimension), snapshot.centers)
        return index

    @property
    def centers(self) -> list[BoolPoint]:
        snapshot = self._controller.require_done()
        return [BoolPoint(tuple(bool(v) for v in row)) for row in snapshot.centers]

    @property
    def assignment(self) -> list[int]:
        snapshot = self._controller.require_done()
        return [int(i) for i in snapshot.assignment]

    @property
    def num_clusters(self) -> int:
        return self._controller.require_done().cluster_count.count

    def cluster_summary(self) -> list[dict]:
        """Member and label counts per cluster, in center order."""
        snapshot = self._controller.require_done()
        return cluster_label_summary(snapshot.labels, snapshot.assignment)

    # --- data replacement ---

    def update_data(
        self,
        new_data: Iterable[LabelBoolPoint],
        timeout: Union[float, None, object] = _CONFIG_TIMEOUT,
    ) -> None:
        """
        Replace the dataset, discarding all trained results.

        Waits for any in-flight training first. The result is equivalent to
        constructing a fresh model on new_data.

        Args:
            new_data: Replacement dataset
            timeout: Seconds to wait for training; None waits forever,
                omitted uses config.update_timeout

        Raises:
            UpdateTimeoutError: Training still pending after timeout
            DatasetError, DimensionMismatchError: Bad replacement data
        """
        try:
            fresh = ModelSnapshot.build(new_data)
        except SCKMError as e:
            self._log_error("update_data", e)
            raise

        wait = self.config.update_timeout if timeout is _CONFIG_TIMEOUT else timeout
        try:
            self._controller.begin_update(wait)
        except SCKMError as e:
            self._log_error("update_data", e)
            raise

        self._controller.finish_update(fresh)
        if self.logger:
            self.logger.log_data_update(fresh.size, fresh.dimension)
        if self.config.verbose:
            print(f"Data updated: {fresh.size} points (d={fresh.dimension})")

    def _log_error(self, operation: str, error: BaseException) -> None:
        if self.logger:
            self.logger.log_error(str(error), operation=operation, error_type=type(error).__name__)

    def close(self) -> None:
        if self.logger:
            self.logger.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
