"""Real-input radix-2 FFT with persistent buffers for streaming analysis.

Only the magnitude spectrum is exposed. Buffers, the bit-reversal table and
the twiddle table are sized once per transform length and reused across
calls, so a steady stream of equal-length frames allocates nothing new.

Minimal dependencies: numpy only.
"""

from __future__ import annotations

import logging

import numpy as np

logger = logging.getLogger(__name__)


def next_power_of_two(n: int) -> int:
    """Smallest power of two >= n (n >= 1)."""
    return 1 << (n - 1).bit_length()


def _bit_reversal_table(size: int) -> np.ndarray:
    bits = size.bit_length() - 1
    idx = np.arange(size, dtype=np.int64)
    rev = np.zeros(size, dtype=np.int64)
    for b in range(bits):
        rev |= ((idx >> b) & 1) << (bits - 1 - b)
    return rev


class RealFFT:
    """Iterative Cooley-Tukey FFT of a real frame, magnitudes only.

    Interface:
      fft = RealFFT()
      mags = fft.transform(frame)   # view, valid until the next transform()

    Frames whose length is not a power of two are zero-padded up to the
    next one.
    """

    def __init__(self) -> None:
        self.size = 0
        self._re = np.zeros(0)
        self._im = np.zeros(0)
        self._padded = np.zeros(0)
        self._magnitudes = np.zeros(0)
        self._bitrev = np.zeros(0, dtype=np.int64)
        self._tw_re = np.zeros(0)
        self._tw_im = np.zeros(0)
        self._vr = np.zeros(0)
        self._vi = np.zeros(0)
        self._tmp = np.zeros(0)

    def ensure_size(self, size: int) -> None:
        """Size internal buffers for a transform of ``size`` points (power of two)."""
        if size == self.size:
            return
        if size < 1 or size & (size - 1):
            raise ValueError(f"FFT size must be a positive power of two, got {size}")
        logger.debug("Reallocating FFT buffers: %d -> %d points", self.size, size)
        half = size // 2
        self.size = size
        self._re = np.zeros(size)
        self._im = np.zeros(size)
        self._padded = np.zeros(size)
        self._magnitudes = np.zeros(half)
        self._bitrev = _bit_reversal_table(size)

        # W_N^k for k < N/2; stage L reads every (N/L)-th entry. Factors come
        # straight from this table, not from rotating by W_L per butterfly.
        angles = -2.0 * np.pi * np.arange(half) / size
        self._tw_re = np.cos(angles)
        self._tw_im = np.sin(angles)

        self._vr = np.zeros(half)
        self._vi = np.zeros(half)
        self._tmp = np.zeros(half)

    def transform(self, frame: np.ndarray) -> np.ndarray:
        """Return the magnitude spectrum ``|X[k]|`` for k < N/2.

        Args:
            frame: Real samples, any length >= 1.

        Returns:
            View into the internal magnitude buffer. The caller must copy it
            if it needs the values after the next ``transform`` call.
        """
        frame = np.asarray(frame, dtype=np.float64).reshape(-1)
        if frame.size == 0:
            raise ValueError("cannot transform an empty frame")

        n = next_power_of_two(frame.size)
        self.ensure_size(n)

        self._padded[: frame.size] = frame
        self._padded[frame.size :] = 0.0
        np.take(self._padded, self._bitrev, out=self._re)
        self._im.fill(0.0)

        length = 2
        while length <= n:
            self._butterflies(length)
            length <<= 1

        half = n // 2
        np.hypot(self._re[:half], self._im[:half], out=self._magnitudes)
        return self._magnitudes

    def _butterflies(self, length: int) -> None:
        """One radix-2 stage over all blocks of ``length`` points."""
        h = length // 2
        stride = self.size // length
        wr = self._tw_re[::stride]
        wi = self._tw_im[::stride]

        re = self._re.reshape(-1, length)
        im = self._im.reshape(-1, length)
        top_r, bot_r = re[:, :h], re[:, h:]
        top_i, bot_i = im[:, :h], im[:, h:]

        vr = self._vr.reshape(-1, h)
        vi = self._vi.reshape(-1, h)
        tmp = self._tmp.reshape(-1, h)

        # v = bottom * w
        np.multiply(bot_r, wr, out=vr)
        np.multiply(bot_i, wi, out=tmp)
        np.subtract(vr, tmp, out=vr)
        np.multiply(bot_r, wi, out=vi)
        np.multiply(bot_i, wr, out=tmp)
        np.add(vi, tmp, out=vi)

        np.subtract(top_r, vr, out=bot_r)
        np.subtract(top_i, vi, out=bot_i)
        np.add(top_r, vr, out=top_r)
        np.add(top_i, vi, out=top_i)
