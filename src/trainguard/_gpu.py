"""Adapter enumeration and live GPU statistics for the UI."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

import torch

from trainguard._config import TrainingConfig
from trainguard._gpu_apple import AppleSiliconBackend
from trainguard._gpu_backend import DiscoveredGPU, GPUBackend, GPUSnapshot
from trainguard._gpu_nvml import NvmlBackend
from trainguard._gpu_rocm import RocmSmiBackend
from trainguard._types import AdapterInfo

logger = logging.getLogger("trainguard.gpu")

BackendFactory = Callable[[], GPUBackend]

# Probed in order; a factory raising means the vendor is absent on this host.
_BACKEND_FACTORIES: list[BackendFactory] = [NvmlBackend, RocmSmiBackend, AppleSiliconBackend]


def _open_backends() -> list[GPUBackend]:
    backends: list[GPUBackend] = []
    for factory in _BACKEND_FACTORIES:
        try:
            backends.append(factory())
        except Exception:  # noqa: BLE001
            logger.debug("GPU backend %r unavailable", factory, exc_info=True)
    return backends


def _torch_adapters() -> list[AdapterInfo]:
    """Names reported by the torch runtime, used when no vendor tool answers."""
    try:
        if not torch.cuda.is_available():
            return []
        return [
            AdapterInfo(name=torch.cuda.get_device_name(i), vendor="CUDA", label=f"cuda:{i}")
            for i in range(torch.cuda.device_count())
        ]
    except RuntimeError:
        logger.debug("torch.cuda enumeration failed", exc_info=True)
        return []


def enumerate_adapters() -> list[AdapterInfo]:
    """Return every GPU adapter visible on this host, possibly none."""
    adapters: list[AdapterInfo] = []
    for backend in _open_backends():
        try:
            adapters.extend(gpu.to_adapter_info() for gpu in backend.discover())
        except Exception:  # noqa: BLE001
            logger.debug("%s discovery failed", backend.vendor, exc_info=True)
        finally:
            backend.shutdown()
    if not adapters:
        adapters = _torch_adapters()
    return adapters


class GPUMonitor:
    """Polls live metrics of one adapter in a daemon thread.

    The latest snapshot is published by reference swap, so ``snapshot`` never
    blocks the render loop.
    """

    def __init__(
        self,
        backend: GPUBackend,
        gpu: DiscoveredGPU,
        *,
        snapshot_interval_ms: int = 1000,
    ) -> None:
        self._backend = backend
        self._gpu = gpu
        self._interval_s = snapshot_interval_ms / 1000.0
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._snapshot: GPUSnapshot | None = None
        self._closed = False

    @property
    def adapter(self) -> AdapterInfo:
        return self._gpu.to_adapter_info()

    @property
    def snapshot(self) -> GPUSnapshot | None:
        """Most recent metrics, or None before the first successful poll."""
        return self._snapshot

    def poll(self) -> None:
        """Collect one snapshot; errors keep the previous value."""
        try:
            self._snapshot = self._backend.collect(self._gpu.handle)
        except Exception:  # noqa: BLE001
            logger.debug("GPU stats collection failed", exc_info=True)

    def start(self) -> None:
        """Start polling; a stopped monitor cannot be restarted, its backend is shut down."""
        if self._closed:
            raise RuntimeError("GPUMonitor was stopped; create a new monitor")
        if self._thread is not None:
            return
        self._stop_event.clear()
        self.poll()
        self._thread = threading.Thread(target=self._collection_loop, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        self._backend.shutdown()

    def _collection_loop(self) -> None:
        while not self._stop_event.wait(self._interval_s):
            self.poll()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


def create_gpu_monitor(
    config: TrainingConfig | None = None,
    *,
    snapshot_interval_ms: int | None = None,
) -> GPUMonitor | None:
    """Factory: a monitor on the first discovered adapter, or None if there is none.

    The polling interval defaults to ``config.gpu_snapshot_interval_ms``.
    """
    if snapshot_interval_ms is None:
        config = config if config is not None else TrainingConfig()
        snapshot_interval_ms = config.gpu_snapshot_interval_ms
    monitor: GPUMonitor | None = None
    for backend in _open_backends():
        if monitor is None:
            try:
                gpus = backend.discover()
            except Exception:  # noqa: BLE001
                logger.debug("%s discovery failed", backend.vendor, exc_info=True)
                gpus = []
            if gpus:
                monitor = GPUMonitor(backend, gpus[0], snapshot_interval_ms=snapshot_interval_ms)
                continue
        backend.shutdown()
    if monitor is None:
        logger.info("No GPU backend available — live GPU stats disabled")
    return monitor
