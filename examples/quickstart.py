"""trainguard Quick Start — train on the GPU when it passes the probe, else on the CPU."""

import logging
import math
import time

import trainguard

logging.basicConfig(level=logging.INFO)

# 1. Build a small synthetic dataset: two features per day, volatility target
days = 400
rows = [[math.sin(d / 10), math.cos(d / 17)] for d in range(days)]
volatility = [0.2 + 0.05 * math.sin(d / 23) for d in range(days)]
config = trainguard.TrainingConfig(
    epochs=20, batch_size=16, hidden_size=32, lookback_days=30, forward_days=5
)
samples = trainguard.build_windows(rows, volatility, config=config)

# 2. Start training in the background; the GPU is validated first
progress = trainguard.TrainingProgress()
worker = trainguard.start_training(
    samples,
    use_gpu=True,
    progress=progress,
    config=config,
    symbols=["XLK", "XLF", "XLE"],
)

# 3. Poll the shared record the way a render loop would, with live GPU stats if any
monitor = trainguard.create_gpu_monitor(config)
if monitor is not None:
    monitor.start()
while worker.is_running:
    stats = progress.stats.read()
    gpu = monitor.snapshot if monitor is not None else None
    load = f" | GPU {gpu.utilization:.0f}%" if gpu is not None else ""
    print(f"[{stats.backend_name}] {stats.status.describe()}{load}")
    time.sleep(0.5)
if monitor is not None:
    monitor.stop()

outcome = worker.join()
if outcome is not None:
    print(f"Trained on {outcome.engine_name}: {outcome.status.describe()}")
for symbol, predicted in progress.predictions():
    print(f"  {symbol}: predicted volatility {predicted:.4f}")
