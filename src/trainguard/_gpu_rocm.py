"""AMD GPU backend — parses ``rocm-smi --json`` output."""

from __future__ import annotations

import json
import logging
import platform
import shutil
import subprocess
from typing import Any

from trainguard._gpu_backend import DiscoveredGPU, GPUSnapshot

logger = logging.getLogger("trainguard.gpu.rocm")

_GIB = 1024**3
_NAME_KEYS = ("Card series", "Card SKU", "Card model")


def _rocm_smi(*args: str) -> dict[str, dict[str, str]]:
    """Run rocm-smi with JSON output and return the per-card mapping."""
    result = subprocess.run(
        ["rocm-smi", *args, "--json"],  # noqa: S603, S607
        capture_output=True,
        text=True,
        timeout=5,
        check=True,
    )
    data = json.loads(result.stdout)
    return {k: v for k, v in data.items() if k.startswith("card") and isinstance(v, dict)}


def _find(card: dict[str, str], *fragments: str) -> str | None:
    """Return the first value whose key contains all ``fragments`` (case-insensitive)."""
    for key, value in card.items():
        lowered = key.lower()
        if all(f in lowered for f in fragments):
            return value
    return None


def _as_float(value: str | None) -> float:
    if value is None:
        return 0.0
    try:
        return float(value.strip().rstrip("%"))
    except ValueError:
        return 0.0


def parse_card_snapshot(card: dict[str, str]) -> GPUSnapshot:
    """Convert one card entry of ``rocm-smi --json`` into a snapshot."""
    total = _as_float(_find(card, "vram total memory"))
    used = _as_float(_find(card, "vram total used"))
    temp = _find(card, "temperature", "edge") or _find(card, "temperature")
    return GPUSnapshot(
        memory_used_gb=used / _GIB,
        memory_total_gb=total / _GIB,
        utilization=_as_float(_find(card, "gpu use")),
        temperature_celsius=_as_float(temp),
    )


class RocmSmiBackend:
    """AMD GPU backend backed by the ``rocm-smi`` command line tool."""

    vendor = "AMD"

    def __init__(self) -> None:
        if platform.system() != "Linux":
            raise RuntimeError("rocm-smi backend requires Linux")
        if shutil.which("rocm-smi") is None:
            raise RuntimeError("rocm-smi not found on PATH")

    def discover(self) -> list[DiscoveredGPU]:
        cards = _rocm_smi("--showproductname", "--showmeminfo", "vram")
        gpus: list[DiscoveredGPU] = []
        for idx, card_id in enumerate(sorted(cards)):
            card = cards[card_id]
            model = next((card[k] for k in _NAME_KEYS if card.get(k)), "AMD GPU")
            gpus.append(DiscoveredGPU(
                label=f"rocm:{idx}",
                model=model,
                vendor=self.vendor,
                memory_total_gb=_as_float(_find(card, "vram total memory")) / _GIB,
                handle=card_id,
            ))
        return gpus

    def collect(self, handle: Any) -> GPUSnapshot:
        cards = _rocm_smi("--showmeminfo", "vram", "--showuse", "--showtemp")
        return parse_card_snapshot(cards.get(str(handle), {}))

    def shutdown(self) -> None:
        pass
