"""Sliding-window samples and host-side batching."""

from __future__ import annotations

from collections.abc import Iterator, Sequence

import torch

from trainguard._config import TrainingConfig
from trainguard._types import TrainingSample

EMPTY_DATASET_MESSAGE = "Not enough data to build training dataset. Load more market data."


class DatasetError(ValueError):
    """The samples cannot support a training run; the message is user-facing."""


def build_windows(
    rows: Sequence[Sequence[float]],
    volatility: Sequence[float],
    *,
    config: TrainingConfig | None = None,
    lookback: int | None = None,
    forward: int | None = None,
) -> list[TrainingSample]:
    """Cut per-day feature rows into ``lookback``-day windows.

    The target of each window is the mean of the next ``forward`` values of
    ``volatility``. Both inputs are aligned on their common prefix.
    ``lookback`` and ``forward`` default to ``config.lookback_days`` and
    ``config.forward_days``.

    Feature engineering is the caller's job: ``rows`` must already hold the
    final per-day feature vector (for the sector dashboard, the fixed-width
    per-sector layout padded to a constant sector count) and ``volatility``
    the target series (e.g. realized volatility averaged over all sectors).
    """
    config = config if config is not None else TrainingConfig()
    lookback = config.lookback_days if lookback is None else lookback
    forward = config.forward_days if forward is None else forward
    n = min(len(rows), len(volatility))
    effective = n - forward
    if effective <= lookback:
        return []

    samples: list[TrainingSample] = []
    for start in range(effective - lookback):
        end = start + lookback
        window = tuple(tuple(float(x) for x in rows[t]) for t in range(start, end))
        future = volatility[end:min(end + forward, n)]
        target = sum(future) / len(future) if future else 0.0
        samples.append(TrainingSample(features=window, target=float(target)))
    return samples


def split_chronological(
    samples: Sequence[TrainingSample],
    *,
    train_fraction: float,
    batch_size: int,
) -> tuple[list[TrainingSample], list[TrainingSample]]:
    """Split without shuffling so validation always follows training in time."""
    if not samples:
        raise DatasetError(EMPTY_DATASET_MESSAGE)
    total = len(samples)
    train_size = int(total * train_fraction)
    if train_size < batch_size or total - train_size < 1:
        raise DatasetError(f"Dataset too small ({total} samples). Need more data.")
    return list(samples[:train_size]), list(samples[train_size:])


def stack_samples(samples: Sequence[TrainingSample]) -> tuple[torch.Tensor, torch.Tensor]:
    """Host float32 tensors: inputs ``[n, lookback, features]`` and targets ``[n, 1]``."""
    inputs = torch.tensor([s.features for s in samples], dtype=torch.float32)
    targets = torch.tensor([[s.target] for s in samples], dtype=torch.float32)
    if inputs.dim() != 3:
        raise DatasetError("Samples must be non-empty [lookback][features] windows.")
    return inputs, targets


def iter_batches(
    n: int,
    batch_size: int,
    *,
    shuffle: bool,
    generator: torch.Generator | None = None,
) -> Iterator[torch.Tensor]:
    """Yield index tensors covering ``range(n)``; the last batch may be short."""
    order = torch.randperm(n, generator=generator) if shuffle else torch.arange(n)
    for start in range(0, n, batch_size):
        yield order[start:start + batch_size]
