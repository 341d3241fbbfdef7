"""
Configuration for SCKM training.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional, Union

import yaml

__all__ = [
    "SCKMConfig",
    "DEFAULT_ETA",
    "DEFAULT_UPDATE_TIMEOUT",
]

DEFAULT_ETA = 100
DEFAULT_UPDATE_TIMEOUT = 30.0  # seconds


@dataclass
class SCKMConfig:
    """Configuration for an SCKM model."""

    # Training
    default_eta: int = DEFAULT_ETA          # Iteration cap when train() gets no eta
    merge_radius: Optional[int] = None      # Max distance a singleton may move; None = dimension // 2

    # Concurrency
    update_timeout: Optional[float] = DEFAULT_UPDATE_TIMEOUT  # None = wait forever

    # Output
    verbose: bool = False
    log_dir: Optional[str] = None           # JSONL training log goes here when set

    def __post_init__(self):
        if not isinstance(self.default_eta, int) or self.default_eta < 0:
            raise ValueError(f"default_eta must be a non-negative int, got {self.default_eta!r}")
        if self.merge_radius is not None and self.merge_radius < 0:
            raise ValueError(f"merge_radius must be non-negative, got {self.merge_radius}")
        if self.update_timeout is not None and self.update_timeout < 0:
            raise ValueError(f"update_timeout must be non-negative, got {self.update_timeout}")

    def effective_merge_radius(self, dimension: int) -> int:
        if self.merge_radius is not None:
            return self.merge_radius
        return dimension // 2

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SCKMConfig":
        """Create from dict, filtering out unknown keys."""
        valid_keys = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        return cls(**filtered)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "SCKMConfig":
        """Load from a YAML file. An empty file gives the defaults."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping in {path}, got {type(data).__name__}")
        return cls.from_dict(data)
