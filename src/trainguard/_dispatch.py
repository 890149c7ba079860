"""Training dispatcher — picks the engine for a run and starts training on it."""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from trainguard._config import TrainingConfig
from trainguard._engine import CpuEngine, GpuEngine, TensorEngine
from trainguard._stats import TrainingProgress
from trainguard._training import train
from trainguard._types import (
    CPU_BACKEND_NAME,
    Capable,
    ComputeStats,
    FailureKind,
    Incapable,
    TrainingSample,
    TrainingStatus,
    Verdict,
)
from trainguard._validator import validate_gpu

logger = logging.getLogger("trainguard.dispatch")

Validator = Callable[[], Verdict]
EngineFactory = Callable[[], TensorEngine]
TrainingRoutine = Callable[..., TrainingStatus]


class DispatchState(enum.Enum):
    """Steps of one dispatch; each is visited at most once."""

    START = "start"
    REQUESTED_CPU = "requested_cpu"
    REQUESTED_GPU = "requested_gpu"
    VALIDATING = "validating"
    CPU_SELECTED = "cpu_selected"
    GPU_SELECTED = "gpu_selected"
    FALLBACK_SELECTED = "fallback_selected"
    TRAINING = "training"
    DONE = "done"


@dataclass(frozen=True)
class TrainingRequest:
    """Immutable input of one training invocation."""

    use_gpu: bool
    samples: Sequence[TrainingSample]
    progress: TrainingProgress
    config: TrainingConfig = field(default_factory=TrainingConfig)
    symbols: tuple[str, ...] = ()


@dataclass(frozen=True)
class DispatchOutcome:
    """What a dispatch decided and how the run ended."""

    engine_name: str
    verdict: Verdict | None
    stats: ComputeStats
    status: TrainingStatus
    states: tuple[DispatchState, ...]


def fallback_backend_name(reason: str) -> str:
    return f"{CPU_BACKEND_NAME} (fallback: {reason})"


class TrainingDispatcher:
    """Routes training to the GPU engine when it passes the probe, else to the CPU.

    The validator runs at most once per dispatch; a failed probe is never
    retried within the same invocation.
    """

    def __init__(
        self,
        *,
        validator: Validator = validate_gpu,
        cpu_engine_factory: EngineFactory = CpuEngine,
        gpu_engine_factory: EngineFactory = GpuEngine,
        routine: TrainingRoutine = train,
    ) -> None:
        self._validator = validator
        self._cpu_engine_factory = cpu_engine_factory
        self._gpu_engine_factory = gpu_engine_factory
        self._routine = routine

    def dispatch(self, request: TrainingRequest) -> DispatchOutcome:
        """Select the engine, publish it to the stats record, then train synchronously."""
        progress = request.progress
        record = progress.stats
        progress.clear_history()
        states = [DispatchState.START]
        verdict: Verdict | None = None
        starting = TrainingStatus.training(0, request.config.epochs)

        if not request.use_gpu:
            states.append(DispatchState.REQUESTED_CPU)
            engine = self._cpu_engine_factory()
            states.append(DispatchState.CPU_SELECTED)
            stats = record.begin_run(
                backend_name=CPU_BACKEND_NAME, using_gpu=False, status=starting
            )
        else:
            states += [DispatchState.REQUESTED_GPU, DispatchState.VALIDATING]
            verdict = self._validator()
            gpu_engine: TensorEngine | None = None
            if isinstance(verdict, Capable):
                gpu_engine = self._acquire_gpu()
                if gpu_engine is None:
                    verdict = Incapable("device unavailable", FailureKind.DEVICE_UNAVAILABLE)

            if isinstance(verdict, Capable) and gpu_engine is not None:
                engine = gpu_engine
                states.append(DispatchState.GPU_SELECTED)
                stats = record.begin_run(
                    backend_name=verdict.device_name,
                    using_gpu=True,
                    gpu_detected=True,
                    status=starting,
                )
            else:
                assert isinstance(verdict, Incapable)
                logger.warning("GPU validation failed: %s; falling back to CPU", verdict.reason)
                engine = self._cpu_engine_factory()
                states.append(DispatchState.FALLBACK_SELECTED)
                stats = record.begin_run(
                    backend_name=fallback_backend_name(verdict.reason),
                    using_gpu=False,
                    gpu_detected=False,
                    status=starting,
                )

        logger.info("Run %d training on %s", stats.run_id, stats.backend_name)
        states.append(DispatchState.TRAINING)
        try:
            status = self._routine(
                request.samples, engine, progress, request.config, symbols=request.symbols
            )
        finally:
            engine.release()
            if progress.status.is_active:
                progress.set_status(TrainingStatus.error("Training stopped unexpectedly"))
        states.append(DispatchState.DONE)

        return DispatchOutcome(
            engine_name=engine.name,
            verdict=verdict,
            stats=stats,
            status=status,
            states=tuple(states),
        )

    def _acquire_gpu(self) -> TensorEngine | None:
        try:
            return self._gpu_engine_factory()
        except Exception:  # noqa: BLE001
            logger.debug("GPU engine acquisition failed after a passing probe", exc_info=True)
            return None

    def start(self, request: TrainingRequest) -> TrainingWorker:
        """Run :meth:`dispatch` on a dedicated daemon thread and return immediately.

        Stale cancel requests are cleared here, on the caller's thread, so a
        cancel issued after this returns always reaches the run.
        """
        request.progress.begin()
        worker = TrainingWorker(self, request)
        worker.start()
        return worker


class TrainingWorker:
    """Daemon thread that performs one dispatch off the UI thread."""

    def __init__(self, dispatcher: TrainingDispatcher, request: TrainingRequest) -> None:
        self._dispatcher = dispatcher
        self._request = request
        self._thread: threading.Thread | None = None
        self._outcome: DispatchOutcome | None = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="trainguard-worker", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        try:
            self._outcome = self._dispatcher.dispatch(self._request)
        except Exception:  # noqa: BLE001
            logger.exception("Training worker failed")

    def join(self, timeout: float | None = None) -> DispatchOutcome | None:
        """Wait for the run and return its outcome (None if it failed or timed out)."""
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        return self._outcome

    def cancel(self) -> None:
        self._request.progress.cancel()

    @property
    def outcome(self) -> DispatchOutcome | None:
        return self._outcome

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


def start_training(
    samples: Sequence[TrainingSample],
    *,
    use_gpu: bool,
    progress: TrainingProgress | None = None,
    config: TrainingConfig | None = None,
    symbols: Sequence[str] = (),
    **dispatcher_options: Any,
) -> TrainingWorker:
    """Start a training run in the background, as the UI's Train button does."""
    request = TrainingRequest(
        use_gpu=use_gpu,
        samples=samples,
        progress=progress if progress is not None else TrainingProgress(),
        config=config if config is not None else TrainingConfig(),
        symbols=tuple(symbols),
    )
    return TrainingDispatcher(**dispatcher_options).start(request)
