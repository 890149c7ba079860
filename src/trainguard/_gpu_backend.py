"""GPU backend protocol and shared types for multi-vendor adapter enumeration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from trainguard._types import AdapterInfo


@dataclass(frozen=True)
class GPUSnapshot:
    """Live metrics for one adapter, replaced wholesale by the monitor thread."""

    memory_used_gb: float
    memory_total_gb: float
    utilization: float
    temperature_celsius: float


@dataclass
class DiscoveredGPU:
    """A GPU adapter discovered by a backend."""

    label: str               # "cuda:0", "rocm:0", "mps:0"
    model: str               # "NVIDIA GeForce RTX 4090", "Apple M3 Max"
    vendor: str              # "NVIDIA", "AMD", "Apple"
    memory_total_gb: float
    handle: Any              # backend-specific device handle

    def to_adapter_info(self) -> AdapterInfo:
        return AdapterInfo(name=self.model, vendor=self.vendor, label=self.label)


@runtime_checkable
class GPUBackend(Protocol):
    """Structural protocol for GPU vendor backends."""

    vendor: str

    def discover(self) -> list[DiscoveredGPU]: ...

    def collect(self, handle: Any) -> GPUSnapshot: ...

    def shutdown(self) -> None: ...
