"""GPU capability probe — a tiny matmul whose exact answer is known.

Two all-ones 4x4 matrices multiply to a matrix of 4.0s. Running that product
through the same device-acquisition path training uses exercises allocation,
compute and readback, and the value check rejects devices that execute but
return wrong numbers.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Sequence
from typing import Protocol

from trainguard._engine import GpuEngine, TensorEngine
from trainguard._gpu import enumerate_adapters
from trainguard._types import Capable, FailureKind, Incapable, Verdict

logger = logging.getLogger("trainguard.validator")

PROBE_SHAPE = (4, 4)
PROBE_EXPECTED = 4.0
PROBE_TOLERANCE = 0.01
UNKNOWN_GPU_NAME = "Unknown GPU"


class _NamedAdapter(Protocol):
    name: str


EngineFactory = Callable[[], TensorEngine]
AdapterEnumerator = Callable[[], Iterable[_NamedAdapter]]


def check_probe_result(values: Sequence[float]) -> bool:
    """True iff ``values`` holds exactly 16 entries, each within 0.01 of 4.0."""
    if len(values) != PROBE_SHAPE[0] * PROBE_SHAPE[1]:
        return False
    return all(abs(v - PROBE_EXPECTED) <= PROBE_TOLERANCE for v in values)


def _run_probe(engine: TensorEngine) -> Incapable | None:
    try:
        a = engine.full(PROBE_SHAPE, 1.0)
        b = engine.full(PROBE_SHAPE, 1.0)
    except Exception as exc:  # noqa: BLE001
        return Incapable(f"allocation failed: {exc}", FailureKind.ALLOCATION)
    try:
        product = engine.matmul(a, b)
    except Exception as exc:  # noqa: BLE001
        return Incapable(f"compute failed: {exc}", FailureKind.COMPUTE)
    try:
        values = engine.to_host(product)
    except Exception as exc:  # noqa: BLE001
        return Incapable(f"readback failed: {exc}", FailureKind.READBACK)
    if not check_probe_result(values):
        logger.debug("GPU probe returned %r", values)
        return Incapable("incorrect computation result", FailureKind.INCORRECT_RESULT)
    return None


def _device_name(enumerate_fn: AdapterEnumerator) -> str:
    try:
        adapters = enumerate_fn()
    except Exception:  # noqa: BLE001
        logger.debug("Adapter enumeration failed", exc_info=True)
        return UNKNOWN_GPU_NAME
    first = next(iter(adapters), None)
    if first is None or not first.name:
        return UNKNOWN_GPU_NAME
    return first.name


def validate_gpu(
    *,
    engine_factory: EngineFactory = GpuEngine,
    enumerate_fn: AdapterEnumerator = enumerate_adapters,
) -> Verdict:
    """Probe the GPU engine and return a capability verdict. Never raises."""
    start = time.perf_counter()
    try:
        engine = engine_factory()
    except Exception:  # noqa: BLE001
        logger.debug("GPU engine could not be acquired", exc_info=True)
        return Incapable("device unavailable", FailureKind.DEVICE_UNAVAILABLE)

    try:
        failure = _run_probe(engine)
    finally:
        try:
            engine.release()
        except Exception:  # noqa: BLE001
            logger.debug("Releasing probe engine failed", exc_info=True)

    if failure is not None:
        return failure

    name = _device_name(enumerate_fn)
    logger.info(
        "GPU probe passed on %s in %.1f ms", name, (time.perf_counter() - start) * 1000
    )
    return Capable(name)
