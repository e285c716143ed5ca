"""
Fixed-capacity sliding window of recent prices.

Backed by a numpy ring buffer: pushes are O(1), the oldest price is evicted
once the window is full, and snapshots are always returned in chronological order.
"""

import numpy as np


class PriceWindow:
    """Circular buffer of the most recent ``capacity`` prices."""

    def __init__(self, capacity: int = 100):
        if capacity <= 0:
            raise ValueError("capacity must be positive")

        self._capacity = capacity
        self._buffer = np.zeros(capacity, dtype=np.float64)
        self._start = 0
        self._length = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def is_full(self) -> bool:
        return self._length == self._capacity

    def __len__(self) -> int:
        return self._length

    def push(self, price: float) -> None:
        """Append a price, evicting the oldest one on overflow."""
        if self._length < self._capacity:
            self._buffer[(self._start + self._length) % self._capacity] = price
            self._length += 1
        else:
            self._buffer[self._start] = price
            self._start = (self._start + 1) % self._capacity

    def extend(self, prices) -> None:
        for price in prices:
            self.push(price)

    def to_sequence(self) -> np.ndarray:
        """
        Chronological snapshot of the window (oldest first).

        Returns:
            A copy of the buffered prices; mutating it does not affect the window
        """
        if self._length < self._capacity:
            return self._buffer[self._start:self._start + self._length].copy()
        return np.concatenate(
            (self._buffer[self._start:], self._buffer[:self._start])
        )

    def latest(self) -> float:
        if self._length == 0:
            raise IndexError("price window is empty")
        return float(self._buffer[(self._start + self._length - 1) % self._capacity])

    def clear(self) -> None:
        """Drop all buffered prices."""
        self._start = 0
        self._length = 0
