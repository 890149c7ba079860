"""Training configuration."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any


@dataclass(frozen=True)
class TrainingConfig:
    """Immutable hyperparameters and feature flags for one training run."""

    epochs: int = 1000
    batch_size: int = 32
    learning_rate: float = 1e-3
    hidden_size: int = 64
    lookback_days: int = 60
    forward_days: int = 5
    train_fraction: float = 0.8
    seed: int = 42
    shuffle: bool = True
    generate_predictions: bool = True
    gpu_snapshot_interval_ms: int = 1000

    @classmethod
    def from_mapping(cls, settings: Mapping[str, Any]) -> TrainingConfig:
        """Build a config from JSON-shaped settings, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in settings.items() if k in known})
