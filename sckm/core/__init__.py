"""Lifecycle control and training logs."""

from .logger import TrainingLogger
from .state import StateController

__all__ = ["TrainingLogger", "StateController"]
