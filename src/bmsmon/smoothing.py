"""Rolling current smoothing for once-per-second BMS readings."""
from __future__ import annotations

from collections import deque
from typing import Deque, Iterator

import numpy as np

HISTORY_SIZE = 10


class CurrentHistory:
    """Bounded FIFO of recent non-zero current magnitudes."""

    def __init__(self, maxlen: int = HISTORY_SIZE) -> None:
        if maxlen < 1:
            raise ValueError("Current history needs room for at least one sample")
        self._samples: Deque[float] = deque(maxlen=maxlen)

    @property
    def maxlen(self) -> int:
        return self._samples.maxlen or HISTORY_SIZE

    def push_nonzero(self, magnitude: float) -> None:
        if magnitude <= 0:
            raise ValueError(f"Only positive magnitudes are kept, got {magnitude}")
        self._samples.append(float(magnitude))

    def reset(self) -> None:
        self._samples.clear()

    def mean(self) -> float:
        if not self._samples:
            return 0.0
        return float(np.mean(self._samples))

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[float]:
        return iter(self._samples)

    def __repr__(self) -> str:
        return f"CurrentHistory({list(self._samples)!r}, maxlen={self.maxlen})"


def smooth_current(history: CurrentHistory, magnitude: float) -> float:
    """
    Fold one current reading into *history* and return the smoothed value.

    A zero reading empties the history so "no current" shows up at once
    instead of decaying through the older samples.
    """
    if magnitude < 0:
        raise ValueError(f"Current magnitude must be non-negative, got {magnitude}")
    if magnitude == 0:
        history.reset()
    else:
        history.push_nonzero(magnitude)
    return history.mean()


class CurrentSmoother:
    """Owns one history for the lifetime of a device connection."""

    def __init__(self, history_size: int = HISTORY_SIZE) -> None:
        self.history = CurrentHistory(history_size)

    def update(self, magnitude: float) -> float:
        return smooth_current(self.history, magnitude)

    @property
    def value(self) -> float:
        return self.history.mean()

    def reset(self) -> None:
        self.history.reset()
