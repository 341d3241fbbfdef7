"""
Lifecycle controller for a single model.

Holds the tri-state flag (ready / pending / done) together with the model
snapshot it guards. Training and data updates claim the flag; queries read
the snapshot only while the flag is done.

Transitions:
    ready   --begin_training-->  pending  --finish_training-->  done
    pending --abort_training-->  ready
    ready|done --begin_update--> pending  --finish_update-->    ready

Waiters block on a condition variable instead of spinning.
"""

from __future__ import annotations

import threading
import time
from typing import Generic, Optional, TypeVar

from ..clustering.models import TaskState
from ..errors import (
    NotReadyError,
    NotTrainedError,
    StateTransitionError,
    UpdateTimeoutError,
)

T = TypeVar("T")


class StateController(Generic[T]):
    """Single-writer gate around a snapshot value."""

    def __init__(self, snapshot: T):
        self._cond = threading.Condition()
        self._state = TaskState.READY
        self._snapshot = snapshot
        self._cancel = threading.Event()

    @property
    def state(self) -> TaskState:
        with self._cond:
            return self._state

    @property
    def snapshot(self) -> T:
        """Current snapshot regardless of state."""
        with self._cond:
            return self._snapshot

    # --- training ---

    def begin_training(self) -> T:
        """Claim the model for training. Returns the snapshot to train on."""
        with self._cond:
            if self._state != TaskState.READY:
                raise NotReadyError(self._state.value)
            self._state = TaskState.PENDING
            self._cancel.clear()
            return self._snapshot

    def stage(self, snapshot: T) -> None:
        """Replace the snapshot while pending. Trained-result readers still see nothing."""
        with self._cond:
            self._expect(TaskState.PENDING, "stage")
            self._snapshot = snapshot

    def finish_training(self, snapshot: T) -> None:
        """Publish trained results and mark done."""
        with self._cond:
            self._expect(TaskState.PENDING, "finish_training")
            self._snapshot = snapshot
            self._state = TaskState.DONE
            self._cond.notify_all()

    def abort_training(self, snapshot: Optional[T] = None) -> None:
        """Return to ready, optionally keeping partial results."""
        with self._cond:
            self._expect(TaskState.PENDING, "abort_training")
            if snapshot is not None:
                self._snapshot = snapshot
            self._state = TaskState.READY
            self._cond.notify_all()

    def request_cancel(self) -> bool:
        """Ask a pending training run to stop. False if nothing is running."""
        with self._cond:
            if self._state != TaskState.PENDING:
                return False
            self._cancel.set()
            return True

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    # --- data updates ---

    def begin_update(self, timeout: Optional[float] = None) -> None:
        """
        Wait until no training is pending, then claim the model.

        Args:
            timeout: Seconds to wait (None = forever)

        Raises:
            UpdateTimeoutError: If training is still pending after timeout
        """
        with self._cond:
            self._wait_settled(timeout)
            self._state = TaskState.PENDING

    def finish_update(self, snapshot: T) -> None:
        """Swap in a rebuilt snapshot and mark ready."""
        with self._cond:
            self._expect(TaskState.PENDING, "finish_update")
            self._snapshot = snapshot
            self._state = TaskState.READY
            self._cond.notify_all()

    # --- readers ---

    def require_done(self) -> T:
        """Snapshot of a trained model, read atomically with the state check."""
        with self._cond:
            if self._state != TaskState.DONE:
                raise NotTrainedError(self._state.value)
            return self._snapshot

    def wait_until_settled(self, timeout: Optional[float] = None) -> TaskState:
        """Block until the state is not pending and return it."""
        with self._cond:
            self._wait_settled(timeout)
            return self._state

    def _wait_settled(self, timeout: Optional[float]) -> None:
        # Caller holds the lock
        deadline = None if timeout is None else time.monotonic() + timeout
        while self._state == TaskState.PENDING:
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                raise UpdateTimeoutError(timeout)
            self._cond.wait(remaining)

    def _expect(self, state: TaskState, action: str) -> None:
        if self._state != state:
            raise StateTransitionError(
                f"{action} requires state {state.value}, current state is {self._state.value}"
            )
