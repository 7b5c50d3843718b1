"""Fixed-capacity circular buffer holding the most recent window of samples."""

import numpy as np


class SampleRing:
    """Circular sample buffer with a write cursor and a fill counter.

    Logically holds the most recent ``size`` samples in arrival order.
    """

    def __init__(self, size: int, dtype: type = np.float32):
        if size < 1:
            raise ValueError("size must be >= 1")
        self.size = size
        self.dtype = dtype
        self._data = np.zeros(size, dtype=dtype)
        self._write_idx = 0
        self._filled = 0

    @property
    def write_index(self) -> int:
        return self._write_idx

    @property
    def filled(self) -> int:
        return self._filled

    @property
    def is_full(self) -> bool:
        return self._filled >= self.size

    def push(self, chunk: np.ndarray) -> None:
        """Append samples; the oldest data is overwritten."""
        n = len(chunk)
        if n == 0:
            return
        if n >= self.size:
            self._data[:] = chunk[-self.size :]
            self._write_idx = 0
            self._filled = self.size
            return
        start = self._write_idx
        end = start + n
        if end <= self.size:
            self._data[start:end] = chunk
        else:
            head = self.size - start
            self._data[start:] = chunk[:head]
            self._data[: end - self.size] = chunk[head:]
        self._write_idx = end % self.size
        self._filled = min(self._filled + n, self.size)

    def linearize(self, out: np.ndarray) -> np.ndarray:
        """Copy the buffer into ``out`` starting at the oldest sample.

        ``out`` must have length ``size``. Returns ``out``.
        """
        start = self._write_idx
        head = self.size - start
        out[:head] = self._data[start:]
        if start > 0:
            out[head:] = self._data[:start]
        return out

    def clear(self) -> None:
        """Zero the data and reset cursor and fill counter."""
        self._data.fill(0)
        self._write_idx = 0
        self._filled = 0
