"""Cached Hann window tables."""

from typing import Dict

import numpy as np


class WindowCache:
    """Computes each window length once and hands out the same table after.

    Tables are read-only so one instance can be shared safely between
    consumers of the same length.
    """

    def __init__(self) -> None:
        self._tables: Dict[int, np.ndarray] = {}

    def __len__(self) -> int:
        return len(self._tables)

    def __contains__(self, length: int) -> bool:
        return length in self._tables

    def get_window(self, length: int) -> np.ndarray:
        """Return the symmetric Hann window ``0.5 * (1 - cos(2*pi*n / (N-1)))``."""
        length = int(length)
        table = self._tables.get(length)
        if table is not None:
            return table
        if length < 2:
            raise ValueError(f"window length must be >= 2, got {length}")
        table = np.hanning(length).astype(np.float64)
        table.flags.writeable = False
        self._tables[length] = table
        return table

    def clear(self) -> None:
        """Drop every cached table."""
        self._tables.clear()
