"""Magnitude spectrum -> 12-bin pitch-class distribution (PCD).

Each FFT bin is assigned to the pitch class of its nearest equal-tempered
note. The bin -> class table is cached and only rebuilt when the spectrum
length, sample rate or reference pitch changes.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

NUM_PITCH_CLASSES = 12


def build_pitch_class_lookup(length: int, sample_rate: float, ref_a4: float) -> np.ndarray:
    """Pitch class (0-11) of every bin of a ``length``-bin half spectrum.

    Bin 0 (DC) maps to class 0.
    """
    bin_hz = sample_rate / (2 * length)
    lookup = np.zeros(length, dtype=np.uint8)
    if length > 1:
        freqs = np.arange(1, length) * bin_hz
        midi = 69.0 + 12.0 * (np.log2(freqs) - np.log2(ref_a4))
        lookup[1:] = np.mod(np.floor(midi + 0.5), NUM_PITCH_CLASSES).astype(np.uint8)
    return lookup


class PitchClassMapper:
    """Aggregates spectral power into a normalized 12-element PCD.

    Interface:
      mapper = PitchClassMapper()
      pcd = mapper.compute(mags, 48_000, min_hz=50, max_hz=5000,
                           threshold=0.005, normalize=1.0, ref_a4=440)

    ``compute`` and ``silent_output`` return internal buffers that are
    overwritten by the next call.
    """

    def __init__(self) -> None:
        self._lookup: Optional[np.ndarray] = None
        self._key: Optional[Tuple[int, float, float]] = None
        self._output = np.zeros(NUM_PITCH_CLASSES)
        self._zero = np.zeros(NUM_PITCH_CLASSES)

    @property
    def lookup(self) -> Optional[np.ndarray]:
        """The current bin -> pitch-class table (None before the first compute)."""
        return self._lookup

    def ensure_lookup(self, length: int, sample_rate: float, ref_a4: float) -> np.ndarray:
        key = (int(length), float(sample_rate), float(ref_a4))
        if self._lookup is None or key != self._key:
            logger.debug(
                "Rebuilding pitch-class lookup (bins=%d, sr=%s, A4=%s)", *key
            )
            self._lookup = build_pitch_class_lookup(*key)
            self._key = key
        return self._lookup

    def compute(
        self,
        magnitudes: np.ndarray,
        sample_rate: float,
        *,
        min_hz: float,
        max_hz: float,
        threshold: float,
        normalize: float = 1.0,
        ref_a4: float = 440.0,
    ) -> np.ndarray:
        """Compute the PCD of one magnitude spectrum.

        Power (``mag**2``) of every bin in ``[min_hz, max_hz]`` whose magnitude
        exceeds ``threshold`` is summed into its pitch class. When
        ``normalize != 1`` each class is raised to that exponent. A non-zero
        result is scaled to sum to 1; otherwise all twelve values stay zero.
        """
        length = len(magnitudes)
        lookup = self.ensure_lookup(length, sample_rate, ref_a4)
        out = self._output
        out.fill(0.0)

        bin_hz = sample_rate / (2 * length)
        min_bin = max(1, int(np.floor(min_hz / bin_hz)))
        max_bin = min(length - 1, int(np.floor(max_hz / bin_hz)))
        if max_bin >= min_bin:
            mags = np.asarray(magnitudes[min_bin : max_bin + 1], dtype=np.float64)
            keep = mags > threshold
            if keep.any():
                classes = lookup[min_bin : max_bin + 1][keep]
                power = mags[keep] ** 2
                out += np.bincount(classes, weights=power, minlength=NUM_PITCH_CLASSES)

        if normalize != 1:
            np.power(out, normalize, out=out)

        total = out.sum()
        if total > 0:
            out *= 1.0 / total
        return out

    def compute_for(self, magnitudes: np.ndarray, sample_rate: float, config) -> np.ndarray:
        """``compute`` with bounds and thresholds taken from an AnalysisConfig."""
        return self.compute(
            magnitudes,
            sample_rate,
            min_hz=config.min_hz,
            max_hz=config.max_hz,
            threshold=config.pcd_threshold,
            normalize=config.pcd_normalize,
            ref_a4=config.ref_a4,
        )

    def silent_output(self) -> np.ndarray:
        """Zero PCD for gated frames, without touching the spectrum."""
        self._zero.fill(0.0)
        return self._zero
