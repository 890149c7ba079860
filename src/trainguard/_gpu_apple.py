"""Apple Silicon GPU backend — chip identity via sysctl."""

from __future__ import annotations

import logging
import platform
import subprocess
from typing import Any

from trainguard._gpu_backend import DiscoveredGPU, GPUSnapshot

logger = logging.getLogger("trainguard.gpu.apple")


def _sysctl_str(name: str) -> str:
    """Read a sysctl string value."""
    result = subprocess.run(
        ["sysctl", "-n", name],  # noqa: S603, S607
        capture_output=True,
        text=True,
        timeout=5,
    )
    return result.stdout.strip()


def _sysctl_int(name: str) -> int:
    """Read a sysctl integer value."""
    return int(_sysctl_str(name))


class AppleSiliconBackend:
    """Apple Silicon GPU backend.

    The GPU shares unified memory with the CPU, so only the chip name and the
    total memory are reported; live utilization is not sampled.
    """

    vendor = "Apple"

    def __init__(self) -> None:
        if platform.system() != "Darwin" or platform.machine() != "arm64":
            raise RuntimeError("Apple Silicon backend requires macOS on ARM64")

        self._chip_model = _sysctl_str("machdep.cpu.brand_string") or "Apple Silicon GPU"
        self._memory_total_gb = _sysctl_int("hw.memsize") / (1024**3)
        logger.debug("Apple GPU: %s (%.1f GB unified)", self._chip_model, self._memory_total_gb)

    def discover(self) -> list[DiscoveredGPU]:
        return [DiscoveredGPU(
            label="mps:0",
            model=self._chip_model,
            vendor=self.vendor,
            memory_total_gb=self._memory_total_gb,
            handle=None,  # Apple Silicon has no per-device handle
        )]

    def collect(self, handle: Any) -> GPUSnapshot:
        return GPUSnapshot(
            memory_used_gb=0.0,
            memory_total_gb=self._memory_total_gb,
            utilization=0.0,
            temperature_celsius=0.0,
        )

    def shutdown(self) -> None:
        pass
