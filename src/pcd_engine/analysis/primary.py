"""Dominant spectral peak: prominence and sub-bin frequency estimate."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

# Peaks below this magnitude are treated as "no signal".
MIN_PEAK_MAGNITUDE = 1e-6
# Neighborhood (in bins) sampled for the local noise floor, every 2nd bin.
NEIGHBORHOOD_BINS = 10
NEIGHBOR_STRIDE = 2
EPS = 1e-12


@dataclass(frozen=True)
class PrimaryEstimate:
    """Strongest peak inside the search band."""

    freq: float          # Hz, parabolic-refined
    bin_index: float     # refined fractional bin
    peak_bin: int        # integer bin of the raw maximum
    prominence_db: float


def estimate_primary(
    magnitudes: np.ndarray,
    sample_rate: float,
    min_hz: float,
    max_hz: float,
) -> Optional[PrimaryEstimate]:
    """Find the dominant peak of a half spectrum between ``min_hz`` and ``max_hz``.

    Args:
        magnitudes: Half spectrum, ``len == N/2`` of the transform size.
        sample_rate: Sample rate of the analyzed frame in Hz.
        min_hz, max_hz: Search band.

    Returns:
        PrimaryEstimate, or None when the band is empty or the peak is
        below ``MIN_PEAK_MAGNITUDE``.
    """
    length = len(magnitudes)
    bin_hz = sample_rate / (2 * length)
    k_min = max(2, int(math.floor(min_hz / bin_hz)))
    k_max = min(length - 3, int(math.floor(max_hz / bin_hz)))
    if k_max < k_min:
        return None

    band = magnitudes[k_min : k_max + 1]
    k = k_min + int(np.argmax(band))
    peak = float(magnitudes[k])
    if peak < MIN_PEAK_MAGNITUDE:
        return None

    lo = max(k_min, k - NEIGHBORHOOD_BINS)
    hi = min(k_max, k + NEIGHBORHOOD_BINS)
    neighbors = [float(magnitudes[i]) for i in range(lo, hi + 1, NEIGHBOR_STRIDE) if i != k]
    avg_neighbor = sum(neighbors) / len(neighbors) if neighbors else 0.0
    if avg_neighbor > 0:
        prominence_db = 20.0 * math.log10((peak + EPS) / (avg_neighbor + EPS))
    else:
        prominence_db = 0.0

    a = float(magnitudes[k - 1])
    b = peak
    c = float(magnitudes[k + 1])
    denom = (a - 2.0 * b + c) or EPS
    delta = 0.5 * (a - c) / denom
    refined = k + max(-1.0, min(1.0, delta))

    return PrimaryEstimate(
        freq=refined * bin_hz,
        bin_index=refined,
        peak_bin=k,
        prominence_db=prominence_db,
    )
