"""Tensor engine protocol and the CPU / GPU engines built on PyTorch."""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, Protocol, runtime_checkable

import torch

from trainguard._types import CPU_BACKEND_NAME

logger = logging.getLogger("trainguard.engine")


class EngineError(RuntimeError):
    """Recoverable failure reported by a tensor engine."""


class DeviceUnavailableError(EngineError):
    """The device context could not be created."""


class AllocationError(EngineError):
    """The engine could not allocate or upload an array."""


class ComputeError(EngineError):
    """A kernel failed while running on the device."""


class ReadbackError(EngineError):
    """A result could not be transferred back to host memory."""


@runtime_checkable
class TensorEngine(Protocol):
    """Structural protocol for numeric backends a training run can use."""

    name: str
    device: Any

    def full(self, shape: tuple[int, ...], value: float) -> Any: ...

    def matmul(self, a: Any, b: Any) -> Any: ...

    def to_host(self, tensor: Any) -> list[float]: ...

    def from_host(self, values: Any, shape: tuple[int, ...]) -> Any: ...

    def release(self) -> None: ...


class _TorchEngine:
    """Shared float32 implementation for engines that differ only in device."""

    name: str
    device: torch.device

    def full(self, shape: tuple[int, ...], value: float) -> torch.Tensor:
        try:
            return torch.full(shape, value, dtype=torch.float32, device=self.device)
        except RuntimeError as exc:
            raise AllocationError(str(exc)) from exc

    def matmul(self, a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
        try:
            return torch.matmul(a, b)
        except RuntimeError as exc:
            raise ComputeError(str(exc)) from exc

    def to_host(self, tensor: torch.Tensor) -> list[float]:
        try:
            values: list[float] = tensor.detach().to("cpu", torch.float32).reshape(-1).tolist()
        except RuntimeError as exc:
            raise ReadbackError(str(exc)) from exc
        return values

    def from_host(self, values: Any, shape: tuple[int, ...]) -> torch.Tensor:
        try:
            host = torch.as_tensor(values, dtype=torch.float32).reshape(shape)
            return host.to(self.device)
        except RuntimeError as exc:
            raise AllocationError(str(exc)) from exc

    def release(self) -> None:
        pass

    def __enter__(self) -> _TorchEngine:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, device={self.device})"


class CpuEngine(_TorchEngine):
    """Host engine; always available."""

    def __init__(self) -> None:
        self.name = CPU_BACKEND_NAME
        self.device = torch.device("cpu")


def default_accelerator() -> torch.device | None:
    """Return the default CUDA/ROCm device, else Apple MPS, else None."""
    if torch.cuda.is_available():
        return torch.device("cuda")
    mps = getattr(torch.backends, "mps", None)
    if mps is not None and mps.is_available():
        return torch.device("mps")
    return None


class GpuEngine(_TorchEngine):
    """Accelerator engine on the default device.

    Construction acquires the device context, so it fails fast with
    :class:`DeviceUnavailableError` on hosts without a usable GPU.
    """

    def __init__(self) -> None:
        device = default_accelerator()
        if device is None:
            raise DeviceUnavailableError("no CUDA, ROCm or MPS device available")
        try:
            # Forces lazy context creation on this device.
            torch.empty(1, device=device)
            if device.type == "cuda":
                name = torch.cuda.get_device_name(device)
            else:
                name = "Apple MPS"
        except (RuntimeError, AssertionError) as exc:
            raise DeviceUnavailableError(str(exc)) from exc
        self.name = name
        self.device = device
        self._released = False

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            if self.device.type == "cuda":
                torch.cuda.empty_cache()
            elif self.device.type == "mps":
                torch.mps.empty_cache()
        except RuntimeError:
            logger.debug("Failed to release %s cache", self.device, exc_info=True)
