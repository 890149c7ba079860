"""Training routine — one algorithm body for every tensor engine."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

import torch
import torch.nn.functional as F

from trainguard._config import TrainingConfig
from trainguard._dataset import DatasetError, iter_batches, split_chronological, stack_samples
from trainguard._engine import TensorEngine
from trainguard._model import VolatilityModel
from trainguard._stats import TrainingProgress
from trainguard._types import TrainingSample, TrainingStatus

logger = logging.getLogger("trainguard.training")


def train(
    samples: Sequence[TrainingSample],
    engine: TensorEngine,
    progress: TrainingProgress,
    config: TrainingConfig,
    *,
    symbols: Sequence[str] = (),
) -> TrainingStatus:
    """Fit the volatility model on ``engine`` and publish progress.

    Always leaves ``progress`` in a terminal status (complete, error or
    cancelled), including when the run is interrupted, and returns it.
    """
    progress.set_status(TrainingStatus.training(0, config.epochs))
    status = TrainingStatus.error("Training interrupted")
    try:
        status = _fit(samples, engine, progress, config, symbols)
    except DatasetError as exc:
        status = TrainingStatus.error(str(exc))
    except Exception as exc:  # noqa: BLE001
        logger.exception("Training on %s failed", engine.name)
        status = TrainingStatus.error(str(exc) or type(exc).__name__)
    finally:
        progress.set_status(status)
    logger.info("Training on %s finished: %s", engine.name, status.describe())
    return status


def _fit(
    samples: Sequence[TrainingSample],
    engine: TensorEngine,
    progress: TrainingProgress,
    config: TrainingConfig,
    symbols: Sequence[str],
) -> TrainingStatus:
    train_samples, _ = split_chronological(
        samples, train_fraction=config.train_fraction, batch_size=config.batch_size
    )
    inputs, targets = stack_samples(train_samples)
    n, seq_len, num_features = inputs.shape

    # Initialise on the host so every engine starts from identical weights.
    with torch.random.fork_rng(devices=[]):
        torch.manual_seed(config.seed)
        model = VolatilityModel(num_features, config.hidden_size)
    model = model.to(engine.device)
    optimizer = torch.optim.Adam(model.parameters(), lr=config.learning_rate)
    generator = torch.Generator().manual_seed(config.seed)

    best_loss = math.inf
    for epoch in range(config.epochs):
        epoch_loss = 0.0
        batch_count = 0
        model.train()
        for idx in iter_batches(n, config.batch_size, shuffle=config.shuffle, generator=generator):
            if progress.cancel_requested:
                logger.info("Training on %s cancelled at epoch %d", engine.name, epoch + 1)
                return TrainingStatus.cancelled()
            size = len(idx)
            x = engine.from_host(inputs[idx], (size, seq_len, num_features))
            y = engine.from_host(targets[idx], (size, 1))

            loss = F.mse_loss(model(x), y)
            optimizer.zero_grad()
            loss.backward()
            optimizer.step()

            epoch_loss += engine.to_host(loss)[0]
            batch_count += 1

        avg_loss = epoch_loss / batch_count if batch_count else math.nan
        if avg_loss < best_loss:
            best_loss = avg_loss
        progress.push_loss(avg_loss)
        progress.set_status(TrainingStatus.training(epoch + 1, config.epochs, avg_loss))

    if config.generate_predictions and symbols:
        _publish_predictions(model, samples[-1], engine, progress, symbols)

    return TrainingStatus.complete(best_loss)


def _publish_predictions(
    model: VolatilityModel,
    latest: TrainingSample,
    engine: TensorEngine,
    progress: TrainingProgress,
    symbols: Sequence[str],
) -> None:
    """Run the newest window through the model and publish it for every symbol."""
    seq_len = len(latest.features)
    num_features = len(latest.features[0]) if seq_len else 0
    model.eval()
    with torch.no_grad():
        x = engine.from_host(latest.features, (1, seq_len, num_features))
        predicted = engine.to_host(model(x))[0]
    progress.set_predictions((symbol, predicted) for symbol in symbols)
