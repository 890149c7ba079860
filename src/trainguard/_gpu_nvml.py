"""NVIDIA GPU backend using pynvml."""

from __future__ import annotations

import logging
import warnings
from typing import Any

from trainguard._gpu_backend import DiscoveredGPU, GPUSnapshot

logger = logging.getLogger("trainguard.gpu.nvml")

# pynvml is optional; the backend refuses to start without it.
warnings.filterwarnings("ignore", category=FutureWarning, message=".*pynvml.*deprecated.*")
try:
    import pynvml

    _HAS_PYNVML = True
except ImportError:
    pynvml = None  # type: ignore[assignment,unused-ignore]
    _HAS_PYNVML = False

_GIB = 1024**3


def _decode(value: str | bytes) -> str:
    # Older pynvml releases return bytes.
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class NvmlBackend:
    """NVIDIA GPU backend using pynvml."""

    vendor = "NVIDIA"

    def __init__(self) -> None:
        if not _HAS_PYNVML:
            raise RuntimeError("pynvml is not installed")
        assert pynvml is not None
        pynvml.nvmlInit()

    def discover(self) -> list[DiscoveredGPU]:
        assert pynvml is not None
        gpus: list[DiscoveredGPU] = []
        for i in range(pynvml.nvmlDeviceGetCount()):
            handle = pynvml.nvmlDeviceGetHandleByIndex(i)
            mem_info = pynvml.nvmlDeviceGetMemoryInfo(handle)
            gpus.append(DiscoveredGPU(
                label=f"cuda:{i}",
                model=_decode(pynvml.nvmlDeviceGetName(handle)),
                vendor=self.vendor,
                memory_total_gb=mem_info.total / _GIB,
                handle=handle,
            ))
        return gpus

    def collect(self, handle: Any) -> GPUSnapshot:
        assert pynvml is not None
        mem = pynvml.nvmlDeviceGetMemoryInfo(handle)
        util = pynvml.nvmlDeviceGetUtilizationRates(handle)
        temp = pynvml.nvmlDeviceGetTemperature(handle, pynvml.NVML_TEMPERATURE_GPU)
        return GPUSnapshot(
            memory_used_gb=mem.used / _GIB,
            memory_total_gb=mem.total / _GIB,
            utilization=float(util.gpu),
            temperature_celsius=float(temp),
        )

    def shutdown(self) -> None:
        try:
            assert pynvml is not None
            pynvml.nvmlShutdown()
        except Exception:  # noqa: BLE001
            logger.debug("nvmlShutdown failed", exc_info=True)
