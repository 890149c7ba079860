"""trainguard: validated GPU/CPU dispatch for model training runs."""

from __future__ import annotations

from trainguard._config import TrainingConfig
from trainguard._dataset import DatasetError, build_windows
from trainguard._dispatch import (
    DispatchOutcome,
    DispatchState,
    TrainingDispatcher,
    TrainingRequest,
    TrainingWorker,
    start_training,
)
from trainguard._engine import (
    AllocationError,
    ComputeError,
    CpuEngine,
    DeviceUnavailableError,
    EngineError,
    GpuEngine,
    ReadbackError,
    TensorEngine,
)
from trainguard._gpu import GPUMonitor, create_gpu_monitor, enumerate_adapters
from trainguard._gpu_backend import GPUSnapshot
from trainguard._stats import ComputeStatsRecord, TrainingProgress
from trainguard._training import train
from trainguard._types import (
    AdapterInfo,
    Capable,
    ComputeStats,
    FailureKind,
    Incapable,
    TrainingPhase,
    TrainingSample,
    TrainingStatus,
    Verdict,
)
from trainguard._validator import check_probe_result, validate_gpu

__version__ = "0.1.0"

__all__ = [
    "AdapterInfo",
    "AllocationError",
    "Capable",
    "ComputeError",
    "ComputeStats",
    "ComputeStatsRecord",
    "CpuEngine",
    "DatasetError",
    "DeviceUnavailableError",
    "DispatchOutcome",
    "DispatchState",
    "EngineError",
    "FailureKind",
    "GPUMonitor",
    "GPUSnapshot",
    "GpuEngine",
    "Incapable",
    "ReadbackError",
    "TensorEngine",
    "TrainingConfig",
    "TrainingDispatcher",
    "TrainingPhase",
    "TrainingProgress",
    "TrainingRequest",
    "TrainingSample",
    "TrainingStatus",
    "TrainingWorker",
    "Verdict",
    "__version__",
    "build_windows",
    "check_probe_result",
    "create_gpu_monitor",
    "enumerate_adapters",
    "start_training",
    "train",
    "validate_gpu",
]
