#!/usr/bin/env python3
"""UI-thread overhead benchmark.

Measures the cost the render loop pays to observe a training run:
  1. ComputeStatsRecord.read()   (lock-free reference read)
  2. ComputeStatsRecord.write()  (worker-side atomic replace)
  3. validate_gpu() on the CPU engine (probe cost without device setup)

Usage:
    uv run python benchmarks/bench_overhead.py
"""

from __future__ import annotations

import time

from trainguard._engine import CpuEngine
from trainguard._stats import ComputeStatsRecord
from trainguard._types import TrainingStatus
from trainguard._validator import validate_gpu


def bench_stats_read(iterations: int = 1_000_000) -> float:
    """Benchmark: one snapshot read, as done every frame."""
    record = ComputeStatsRecord()
    record.write(backend_name="Bench GPU", using_gpu=True, gpu_detected=True)

    # Warmup
    for _ in range(5000):
        record.read()

    start = time.perf_counter_ns()
    for _ in range(iterations):
        record.read()
    elapsed = time.perf_counter_ns() - start

    return elapsed / iterations


def bench_stats_write(iterations: int = 200_000) -> float:
    """Benchmark: per-epoch status publish from the worker thread."""
    record = ComputeStatsRecord()
    statuses = [TrainingStatus.training(i, iterations, 0.5) for i in range(1000)]

    # Warmup
    for status in statuses:
        record.write(status=status)

    start = time.perf_counter_ns()
    for i in range(iterations):
        record.write(status=statuses[i % 1000])
    elapsed = time.perf_counter_ns() - start

    return elapsed / iterations


def bench_cpu_probe(iterations: int = 2_000) -> float:
    """Benchmark: the 4x4 matmul probe on the host engine."""
    adapters = lambda: []  # noqa: E731

    # Warmup
    for _ in range(50):
        validate_gpu(engine_factory=CpuEngine, enumerate_fn=adapters)

    start = time.perf_counter_ns()
    for _ in range(iterations):
        validate_gpu(engine_factory=CpuEngine, enumerate_fn=adapters)
    elapsed = time.perf_counter_ns() - start

    return elapsed / iterations


def main() -> None:
    print("=" * 60)
    print("trainguard UI Overhead Benchmark")
    print("=" * 60)

    results: list[tuple[str, float, str]] = []

    # 1. Snapshot read
    ns = bench_stats_read()
    target = "< 200ns"
    status = "PASS" if ns < 200 else "WARN" if ns < 1000 else "FAIL"
    results.append(("ComputeStatsRecord.read", ns, f"{status} (target {target})"))

    # 2. Snapshot write
    ns = bench_stats_write()
    target = "< 5μs"
    status = "PASS" if ns < 5000 else "WARN" if ns < 10000 else "FAIL"
    results.append(("ComputeStatsRecord.write", ns, f"{status} (target {target})"))

    # 3. Probe on CPU
    ns = bench_cpu_probe()
    target = "< 1ms"
    status = "PASS" if ns < 1_000_000 else "WARN" if ns < 5_000_000 else "FAIL"
    results.append(("validate_gpu (CPU engine)", ns, f"{status} (target {target})"))

    print()
    for name, ns_val, note in results:
        if ns_val >= 1000:
            display = f"{ns_val / 1000:.2f}μs"
        else:
            display = f"{ns_val:.0f}ns"
        print(f"  {name:40s}  {display:>10s}   {note}")

    print()
    all_pass = all("PASS" in r[2] or "WARN" in r[2] for r in results)
    if all_pass:
        print("All benchmarks within acceptable range.")
    else:
        print("WARNING: Some benchmarks exceeded target. Review above.")


if __name__ == "__main__":
    main()
