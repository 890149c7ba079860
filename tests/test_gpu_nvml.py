"""Tests for the NVML backend — a fake pynvml module, no NVIDIA GPU required."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest

import trainguard._gpu_nvml as nvml_mod
from trainguard._gpu_nvml import NvmlBackend

_GIB = 1024**3


class _FakePynvml:
    NVML_TEMPERATURE_GPU = 0

    def __init__(self, names: list[str | bytes]) -> None:
        self._names = names
        self.initialised = False
        self.shutdown_calls = 0

    def nvmlInit(self) -> None:
        self.initialised = True

    def nvmlShutdown(self) -> None:
        self.shutdown_calls += 1

    def nvmlDeviceGetCount(self) -> int:
        return len(self._names)

    def nvmlDeviceGetHandleByIndex(self, i: int) -> int:
        return i

    def nvmlDeviceGetName(self, handle: int) -> str | bytes:
        return self._names[handle]

    def nvmlDeviceGetMemoryInfo(self, handle: int) -> Any:
        return SimpleNamespace(total=80 * _GIB, used=20 * _GIB)

    def nvmlDeviceGetUtilizationRates(self, handle: int) -> Any:
        return SimpleNamespace(gpu=85, memory=40)

    def nvmlDeviceGetTemperature(self, handle: int, sensor: int) -> int:
        return 72


@pytest.fixture()
def fake_pynvml(monkeypatch: pytest.MonkeyPatch) -> _FakePynvml:
    fake = _FakePynvml(["NVIDIA H100 80GB HBM3", b"NVIDIA A100-SXM4-40GB"])
    monkeypatch.setattr(nvml_mod, "pynvml", fake)
    monkeypatch.setattr(nvml_mod, "_HAS_PYNVML", True)
    return fake


def test_init_calls_nvml_init(fake_pynvml: _FakePynvml) -> None:
    NvmlBackend()
    assert fake_pynvml.initialised


def test_discover_labels_and_names(fake_pynvml: _FakePynvml) -> None:
    gpus = NvmlBackend().discover()
    assert [g.label for g in gpus] == ["cuda:0", "cuda:1"]
    assert gpus[0].model == "NVIDIA H100 80GB HBM3"
    # bytes names from older pynvml releases are decoded
    assert gpus[1].model == "NVIDIA A100-SXM4-40GB"
    assert gpus[0].memory_total_gb == 80.0
    assert gpus[0].vendor == "NVIDIA"


def test_collect_snapshot(fake_pynvml: _FakePynvml) -> None:
    snapshot = NvmlBackend().collect(0)
    assert snapshot.memory_used_gb == 20.0
    assert snapshot.memory_total_gb == 80.0
    assert snapshot.utilization == 85.0
    assert snapshot.temperature_celsius == 72.0


def test_shutdown_swallows_errors(fake_pynvml: _FakePynvml) -> None:
    backend = NvmlBackend()

    def _raise() -> None:
        raise RuntimeError("NVML_ERROR_UNINITIALIZED")

    fake_pynvml.nvmlShutdown = _raise  # type: ignore[method-assign]
    backend.shutdown()
