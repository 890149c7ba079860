"""Volatility regressor: LSTM over the lookback window, linear head."""

from __future__ import annotations

import torch
from torch import nn


class VolatilityModel(nn.Module):
    """Predicts forward realized volatility from a ``[batch, seq, features]`` window."""

    def __init__(self, input_size: int, hidden_size: int, output_size: int = 1) -> None:
        super().__init__()
        self.lstm = nn.LSTM(input_size, hidden_size, batch_first=True)
        self.head = nn.Linear(hidden_size, output_size)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        out, _ = self.lstm(x)
        return self.head(out[:, -1, :])
