"""Tests for the rocm-smi backend — canned JSON, no AMD GPU required."""

from __future__ import annotations

import json
import subprocess
from typing import Any

import pytest

import trainguard._gpu_rocm as rocm_mod
from trainguard._gpu_rocm import RocmSmiBackend, parse_card_snapshot

_GIB = 1024**3

_PRODUCT = {
    "card0": {
        "Card series": "Navi 31 [Radeon RX 7900 XT/7900 XTX]",
        "Card model": "0x744c",
        "VRAM Total Memory (B)": str(24 * _GIB),
        "VRAM Total Used Memory (B)": str(2 * _GIB),
    },
    "card1": {
        "Card series": "",
        "Card SKU": "D7070100",
        "VRAM Total Memory (B)": str(16 * _GIB),
        "VRAM Total Used Memory (B)": "0",
    },
    "system": {"Driver version": "6.7.0"},
}

_STATS = {
    "card0": {
        "Temperature (Sensor edge) (C)": "51.0",
        "Temperature (Sensor junction) (C)": "58.0",
        "GPU use (%)": "37",
        "VRAM Total Memory (B)": str(24 * _GIB),
        "VRAM Total Used Memory (B)": str(6 * _GIB),
    },
}


def _fake_run(payloads: dict[str, dict[str, Any]]) -> Any:
    def run(cmd: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        key = "product" if "--showproductname" in cmd else "stats"
        return subprocess.CompletedProcess(cmd, 0, stdout=json.dumps(payloads[key]), stderr="")

    return run


@pytest.fixture()
def backend(monkeypatch: pytest.MonkeyPatch) -> RocmSmiBackend:
    monkeypatch.setattr(rocm_mod.platform, "system", lambda: "Linux")
    monkeypatch.setattr(rocm_mod.shutil, "which", lambda name: "/opt/rocm/bin/rocm-smi")
    monkeypatch.setattr(
        rocm_mod.subprocess, "run", _fake_run({"product": _PRODUCT, "stats": _STATS})
    )
    return RocmSmiBackend()


class TestParseCardSnapshot:
    def test_full_card(self) -> None:
        snapshot = parse_card_snapshot(_STATS["card0"])
        assert snapshot.memory_total_gb == pytest.approx(24.0)
        assert snapshot.memory_used_gb == pytest.approx(6.0)
        assert snapshot.utilization == 37.0
        assert snapshot.temperature_celsius == 51.0

    def test_missing_fields_are_zero(self) -> None:
        snapshot = parse_card_snapshot({})
        assert snapshot.memory_total_gb == 0.0
        assert snapshot.utilization == 0.0
        assert snapshot.temperature_celsius == 0.0

    def test_unparseable_values_are_zero(self) -> None:
        snapshot = parse_card_snapshot({"GPU use (%)": "N/A", "Temperature (Sensor edge) (C)": ""})
        assert snapshot.utilization == 0.0
        assert snapshot.temperature_celsius == 0.0

    def test_percent_suffix(self) -> None:
        assert parse_card_snapshot({"GPU use (%)": "12%"}).utilization == 12.0


class TestRocmSmiBackend:
    def test_discover_names_and_labels(self, backend: RocmSmiBackend) -> None:
        gpus = backend.discover()
        assert [g.label for g in gpus] == ["rocm:0", "rocm:1"]
        assert gpus[0].model == "Navi 31 [Radeon RX 7900 XT/7900 XTX]"
        assert gpus[1].model == "D7070100"
        assert gpus[0].memory_total_gb == pytest.approx(24.0)
        assert all(g.vendor == "AMD" for g in gpus)

    def test_collect_uses_card_handle(self, backend: RocmSmiBackend) -> None:
        gpu = backend.discover()[0]
        snapshot = backend.collect(gpu.handle)
        assert snapshot.utilization == 37.0
        assert snapshot.memory_used_gb == pytest.approx(6.0)

    def test_collect_unknown_card_is_empty(self, backend: RocmSmiBackend) -> None:
        assert backend.collect("card9").memory_total_gb == 0.0

    def test_requires_linux(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(rocm_mod.platform, "system", lambda: "Darwin")
        with pytest.raises(RuntimeError, match="Linux"):
            RocmSmiBackend()

    def test_requires_rocm_smi(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(rocm_mod.platform, "system", lambda: "Linux")
        monkeypatch.setattr(rocm_mod.shutil, "which", lambda name: None)
        with pytest.raises(RuntimeError, match="not found"):
            RocmSmiBackend()
