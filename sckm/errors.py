"""
Exception types raised by the SCKM engine.

Every condition here is recoverable: the model is left untouched and the
caller may retry or correct its input.
"""

from typing import Optional


class SCKMError(Exception):
    """Base class for all SCKM errors."""
    pass


class NotReadyError(SCKMError):
    """Raised when train() is called while the model is not ready."""

    def __init__(self, state: str):
        super().__init__(f"Model is not ready to train (state: {state})")
        self.state = state


class NotTrainedError(SCKMError):
    """Raised when a trained result is requested before training is done."""

    def __init__(self, state: str):
        super().__init__(f"Model not trained (state: {state})")
        self.state = state


class DimensionMismatchError(SCKMError, ValueError):
    """Raised when a boolean vector does not match the model dimension."""

    def __init__(self, expected: int, actual: int, index: Optional[int] = None):
        where = f" at index {index}" if index is not None else ""
        super().__init__(
            f"Expected vector of dimension {expected}, got {actual}{where}"
        )
        self.expected = expected
        self.actual = actual
        self.index = index


class DatasetError(SCKMError, ValueError):
    """Raised for an empty or malformed dataset."""
    pass


class UpdateTimeoutError(SCKMError, TimeoutError):
    """Raised when update_data() gives up waiting for a training run."""

    def __init__(self, timeout: float):
        super().__init__(f"Training still pending after {timeout:.2f}s")
        self.timeout = timeout


class TrainingCancelledError(SCKMError):
    """Raised by train() when the run was cancelled part-way."""

    def __init__(self, iterations: int):
        super().__init__(f"Training cancelled after {iterations} iteration(s)")
        self.iterations = iterations


class StateTransitionError(SCKMError, RuntimeError):
    """Raised on a lifecycle transition the state machine does not allow."""
    pass
