"""Core types: capability verdicts, compute stats and training status."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field


class FailureKind(enum.Enum):
    """Step of the GPU probe that failed."""

    DEVICE_UNAVAILABLE = "device_unavailable"
    ALLOCATION = "allocation"
    COMPUTE = "compute"
    READBACK = "readback"
    INCORRECT_RESULT = "incorrect_result"


@dataclass(frozen=True)
class Capable:
    """The GPU engine passed the probe and may be used for training."""

    device_name: str


@dataclass(frozen=True)
class Incapable:
    """The GPU engine failed the probe; ``reason`` is shown to the user."""

    reason: str
    kind: FailureKind


Verdict = Capable | Incapable


class TrainingPhase(enum.Enum):
    """Lifecycle phase of a training run."""

    IDLE = "idle"
    TRAINING = "training"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TrainingStatus:
    """Immutable status line published to the UI."""

    phase: TrainingPhase = TrainingPhase.IDLE
    epoch: int = 0
    total_epochs: int = 0
    loss: float = math.nan
    message: str | None = None

    @classmethod
    def idle(cls) -> TrainingStatus:
        return cls()

    @classmethod
    def training(cls, epoch: int, total_epochs: int, loss: float = math.nan) -> TrainingStatus:
        return cls(TrainingPhase.TRAINING, epoch=epoch, total_epochs=total_epochs, loss=loss)

    @classmethod
    def complete(cls, final_loss: float) -> TrainingStatus:
        return cls(TrainingPhase.COMPLETE, loss=final_loss)

    @classmethod
    def error(cls, message: str) -> TrainingStatus:
        return cls(TrainingPhase.ERROR, message=message)

    @classmethod
    def cancelled(cls) -> TrainingStatus:
        return cls(TrainingPhase.CANCELLED)

    @property
    def is_active(self) -> bool:
        return self.phase is TrainingPhase.TRAINING

    @property
    def fraction_done(self) -> float:
        if self.total_epochs <= 0:
            return 0.0
        return self.epoch / self.total_epochs

    def describe(self) -> str:
        """Render the one-line status text shown next to the training controls."""
        if self.phase is TrainingPhase.TRAINING:
            return f"Training... Epoch {self.epoch}/{self.total_epochs} | Loss: {self.loss:.6f}"
        if self.phase is TrainingPhase.COMPLETE:
            return f"Training complete! Final loss: {self.loss:.6f}"
        if self.phase is TrainingPhase.ERROR:
            return f"Error: {self.message}"
        if self.phase is TrainingPhase.CANCELLED:
            return "Training cancelled"
        return "Idle"


CPU_BACKEND_NAME = "CPU"


@dataclass(frozen=True)
class ComputeStats:
    """Immutable snapshot of the engine in use, replaced atomically on every write."""

    backend_name: str = CPU_BACKEND_NAME
    using_gpu: bool = False
    gpu_detected: bool = False
    run_id: int = 0
    status: TrainingStatus = field(default_factory=TrainingStatus.idle)

    @property
    def is_fallback(self) -> bool:
        """True when the UI should flag a GPU-to-CPU fallback."""
        return "fallback" in self.backend_name


@dataclass(frozen=True)
class TrainingSample:
    """One sliding window: ``features`` is ``[lookback][num_features]``."""

    features: tuple[tuple[float, ...], ...]
    target: float


@dataclass(frozen=True)
class AdapterInfo:
    """Human-readable description of an enumerated GPU adapter."""

    name: str
    vendor: str
    label: str
