"""Tests for adapter enumeration and the GPU monitor — fake backends, no GPU required."""

from __future__ import annotations

import time

import pytest

import trainguard._gpu as gpu_mod
from trainguard._config import TrainingConfig
from trainguard._gpu import GPUMonitor, create_gpu_monitor, enumerate_adapters
from trainguard._gpu_backend import DiscoveredGPU, GPUSnapshot
from trainguard._types import AdapterInfo


def _gpu(label: str = "cuda:0", model: str = "Test GPU", vendor: str = "Test") -> DiscoveredGPU:
    return DiscoveredGPU(
        label=label,
        model=model,
        vendor=vendor,
        memory_total_gb=16.0,
        handle=label,
    )


class _FakeBackend:
    vendor = "Test"

    def __init__(self, gpus: list[DiscoveredGPU] | None = None) -> None:
        self.gpus = [_gpu()] if gpus is None else gpus
        self.shutdown_calls = 0
        self.collect_calls = 0

    def discover(self) -> list[DiscoveredGPU]:
        return list(self.gpus)

    def collect(self, handle: object) -> GPUSnapshot:
        self.collect_calls += 1
        return GPUSnapshot(
            memory_used_gb=8.0,
            memory_total_gb=16.0,
            utilization=75.0,
            temperature_celsius=65.0,
        )

    def shutdown(self) -> None:
        self.shutdown_calls += 1


def _unavailable() -> _FakeBackend:
    raise RuntimeError("vendor tool not present")


@pytest.fixture()
def no_torch_adapters(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(gpu_mod, "_torch_adapters", lambda: [])


class TestEnumerateAdapters:
    def test_collects_from_every_backend(
        self, monkeypatch: pytest.MonkeyPatch, no_torch_adapters: None
    ) -> None:
        first = _FakeBackend([_gpu("cuda:0", "GPU A"), _gpu("cuda:1", "GPU B")])
        second = _FakeBackend([_gpu("rocm:0", "GPU C", "AMD")])
        monkeypatch.setattr(gpu_mod, "_BACKEND_FACTORIES", [lambda: first, lambda: second])

        adapters = enumerate_adapters()

        assert [a.name for a in adapters] == ["GPU A", "GPU B", "GPU C"]
        assert adapters[2] == AdapterInfo(name="GPU C", vendor="AMD", label="rocm:0")
        assert first.shutdown_calls == 1
        assert second.shutdown_calls == 1

    def test_skips_unavailable_backends(
        self, monkeypatch: pytest.MonkeyPatch, no_torch_adapters: None
    ) -> None:
        backend = _FakeBackend([_gpu(model="Only GPU")])
        monkeypatch.setattr(gpu_mod, "_BACKEND_FACTORIES", [_unavailable, lambda: backend])
        assert [a.name for a in enumerate_adapters()] == ["Only GPU"]

    def test_discovery_error_is_contained(
        self, monkeypatch: pytest.MonkeyPatch, no_torch_adapters: None
    ) -> None:
        broken = _FakeBackend()

        def _raise() -> list[DiscoveredGPU]:
            raise RuntimeError("driver mismatch")

        broken.discover = _raise  # type: ignore[method-assign]
        monkeypatch.setattr(gpu_mod, "_BACKEND_FACTORIES", [lambda: broken])
        assert enumerate_adapters() == []
        assert broken.shutdown_calls == 1

    def test_falls_back_to_torch_names(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(gpu_mod, "_BACKEND_FACTORIES", [_unavailable])
        fallback = [AdapterInfo(name="Torch GPU", vendor="CUDA", label="cuda:0")]
        monkeypatch.setattr(gpu_mod, "_torch_adapters", lambda: fallback)
        assert enumerate_adapters() == fallback

    def test_empty_host(self, monkeypatch: pytest.MonkeyPatch, no_torch_adapters: None) -> None:
        monkeypatch.setattr(gpu_mod, "_BACKEND_FACTORIES", [_unavailable, _unavailable])
        assert enumerate_adapters() == []

    def test_torch_adapters_without_cuda(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(gpu_mod.torch.cuda, "is_available", lambda: False)
        assert gpu_mod._torch_adapters() == []


class TestGPUMonitor:
    def test_poll_publishes_snapshot(self) -> None:
        monitor = GPUMonitor(_FakeBackend(), _gpu())
        assert monitor.snapshot is None
        monitor.poll()
        assert monitor.snapshot is not None
        assert monitor.snapshot.utilization == 75.0

    def test_adapter_info(self) -> None:
        monitor = GPUMonitor(_FakeBackend(), _gpu(model="RTX Test"))
        assert monitor.adapter.name == "RTX Test"
        assert monitor.adapter.label == "cuda:0"

    def test_start_stop(self) -> None:
        backend = _FakeBackend()
        monitor = GPUMonitor(backend, _gpu(), snapshot_interval_ms=20)
        monitor.start()
        try:
            assert monitor.is_running
            assert monitor.snapshot is not None
            time.sleep(0.15)
        finally:
            monitor.stop()
        assert not monitor.is_running
        assert backend.collect_calls >= 2
        assert backend.shutdown_calls == 1

    def test_recovers_after_error(self) -> None:
        """Backend that fails once then succeeds — monitor should recover."""

        class _FlakeyBackend(_FakeBackend):
            def collect(self, handle: object) -> GPUSnapshot:
                self.collect_calls += 1
                if self.collect_calls == 1:
                    raise RuntimeError("transient failure")
                return super().collect(handle)

        monitor = GPUMonitor(_FlakeyBackend(), _gpu(), snapshot_interval_ms=20)
        monitor.start()
        try:
            time.sleep(0.15)
            assert monitor.snapshot is not None
            assert monitor.snapshot.memory_used_gb == 8.0
        finally:
            monitor.stop()

    def test_stopped_monitor_cannot_restart(self) -> None:
        backend = _FakeBackend()
        monitor = GPUMonitor(backend, _gpu(), snapshot_interval_ms=20)
        monitor.start()
        monitor.stop()
        with pytest.raises(RuntimeError, match="stopped"):
            monitor.start()
        assert not monitor.is_running

    def test_stop_shuts_backend_down_once(self) -> None:
        backend = _FakeBackend()
        monitor = GPUMonitor(backend, _gpu())
        monitor.stop()
        monitor.stop()
        assert backend.shutdown_calls == 1

    def test_failed_poll_keeps_previous_snapshot(self) -> None:
        backend = _FakeBackend()
        monitor = GPUMonitor(backend, _gpu())
        monitor.poll()
        previous = monitor.snapshot

        def _raise(handle: object) -> GPUSnapshot:
            raise RuntimeError("gone")

        backend.collect = _raise  # type: ignore[method-assign]
        monitor.poll()
        assert monitor.snapshot is previous


class TestCreateGpuMonitor:
    def test_none_when_no_backends(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(gpu_mod, "_BACKEND_FACTORIES", [_unavailable])
        assert create_gpu_monitor() is None

    def test_none_when_backend_finds_nothing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        empty = _FakeBackend([])
        monkeypatch.setattr(gpu_mod, "_BACKEND_FACTORIES", [lambda: empty])
        assert create_gpu_monitor() is None
        assert empty.shutdown_calls == 1

    def test_first_backend_with_gpus_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """When NVIDIA is unavailable, the factory falls through to the next vendor."""
        empty = _FakeBackend([])
        apple = _FakeBackend([_gpu("mps:0", "Apple M3 Max", "Apple")])
        later = _FakeBackend([_gpu("rocm:0", "Unused", "AMD")])
        monkeypatch.setattr(
            gpu_mod,
            "_BACKEND_FACTORIES",
            [_unavailable, lambda: empty, lambda: apple, lambda: later],
        )

        monitor = create_gpu_monitor(snapshot_interval_ms=50)

        assert monitor is not None
        assert monitor.adapter.vendor == "Apple"
        assert empty.shutdown_calls == 1
        assert later.shutdown_calls == 1
        assert apple.shutdown_calls == 0
        monitor.stop()
        assert apple.shutdown_calls == 1

    def test_interval_comes_from_config(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(gpu_mod, "_BACKEND_FACTORIES", [lambda: _FakeBackend()])
        monitor = create_gpu_monitor(TrainingConfig(gpu_snapshot_interval_ms=250))
        assert monitor is not None
        assert monitor._interval_s == 0.25
        monitor.stop()

    def test_default_interval_matches_default_config(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(gpu_mod, "_BACKEND_FACTORIES", [lambda: _FakeBackend()])
        monitor = create_gpu_monitor()
        assert monitor is not None
        assert monitor._interval_s == TrainingConfig().gpu_snapshot_interval_ms / 1000.0
        monitor.stop()

    def test_explicit_interval_overrides_config(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(gpu_mod, "_BACKEND_FACTORIES", [lambda: _FakeBackend()])
        monitor = create_gpu_monitor(
            TrainingConfig(gpu_snapshot_interval_ms=250), snapshot_interval_ms=50
        )
        assert monitor is not None
        assert monitor._interval_s == 0.05
        monitor.stop()
