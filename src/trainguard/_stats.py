"""Shared compute stats and training progress read by the UI thread."""

from __future__ import annotations

import dataclasses
import threading
from collections.abc import Iterable
from typing import Any

from trainguard._types import ComputeStats, TrainingStatus


class ComputeStatsRecord:
    """Single owned :class:`ComputeStats` behind a write lock.

    Writers swap in a new frozen snapshot while holding the lock. Readers take
    the current reference without locking; a reference read is atomic in
    CPython, so a reader sees the old snapshot or the new one, never a mix.
    """

    def __init__(self, initial: ComputeStats | None = None) -> None:
        self._lock = threading.Lock()
        self._stats = initial if initial is not None else ComputeStats()

    def read(self) -> ComputeStats:
        """Non-blocking snapshot of the current stats."""
        return self._stats

    def write(self, **changes: Any) -> ComputeStats:
        """Atomically replace the named fields and return the new snapshot."""
        with self._lock:
            self._stats = dataclasses.replace(self._stats, **changes)
            return self._stats

    def replace(self, stats: ComputeStats) -> None:
        with self._lock:
            self._stats = stats

    def begin_run(self, **changes: Any) -> ComputeStats:
        """Start a new invocation: bump ``run_id`` and apply ``changes`` in one swap."""
        with self._lock:
            self._stats = dataclasses.replace(
                self._stats, run_id=self._stats.run_id + 1, **changes
            )
            return self._stats


class TrainingProgress:
    """Everything a training run publishes for the UI.

    Bundles the compute stats record, the per-epoch loss history and the
    per-symbol predictions. Accessors return copies so the render loop never
    holds a lock while drawing.
    """

    def __init__(self, stats: ComputeStatsRecord | None = None) -> None:
        self.stats = stats if stats is not None else ComputeStatsRecord()
        self._lock = threading.Lock()
        self._losses: list[float] = []
        self._predictions: list[tuple[str, float]] = []
        self._cancel_event = threading.Event()

    @property
    def status(self) -> TrainingStatus:
        return self.stats.read().status

    def set_status(self, status: TrainingStatus) -> None:
        self.stats.write(status=status)

    def push_loss(self, loss: float) -> None:
        with self._lock:
            self._losses.append(loss)

    def losses(self) -> list[float]:
        with self._lock:
            return list(self._losses)

    def set_predictions(self, predictions: Iterable[tuple[str, float]]) -> None:
        new = list(predictions)
        with self._lock:
            self._predictions = new

    def predictions(self) -> list[tuple[str, float]]:
        with self._lock:
            return list(self._predictions)

    def cancel(self) -> None:
        """Ask the running training routine to stop after the current batch."""
        self._cancel_event.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def clear_history(self) -> None:
        """Drop losses and predictions from the previous run; a pending cancel is kept."""
        with self._lock:
            self._losses.clear()
            self._predictions = []

    def begin(self) -> None:
        """Prepare for a new run: clear history and any stale cancel request."""
        self.clear_history()
        self._cancel_event.clear()

    def reset(self) -> None:
        """Return to idle, as the UI's Retrain button does."""
        self.begin()
        self.set_status(TrainingStatus.idle())
