"""PCD <-> frequency-domain conversion (12-point real DFT).

The seven coefficients k=0..6 of a 12-bin PCD describe how strongly the
distribution aligns with chromatic (k=1), whole-tone (k=6), fifths (k=5),
etc. structure. Amplitudes and phases round-trip back to the PCD.
"""

from __future__ import annotations

from typing import Sequence, Tuple

import numpy as np

PCD_SIZE = 12
NUM_COEFFS = PCD_SIZE // 2 + 1


def normalize12(values: Sequence[float]) -> np.ndarray:
    """Scale 12 values so they sum to 1 (all-zero input is returned as is)."""
    arr = np.asarray(values, dtype=np.float64)
    if arr.shape != (PCD_SIZE,):
        raise ValueError(f"PCD must have exactly {PCD_SIZE} values, got shape {arr.shape}")
    total = arr.sum()
    if total == 0:
        return arr.copy()
    return arr / total


def pcd_to_frequency_domain(pcd: Sequence[float]) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Forward DFT of a normalized PCD.

    Returns:
        (amplitudes, phases, normalized): 7 amplitudes, 7 phases in radians
        (k=0..6) and the sum-to-one input they were computed from.
    """
    normalized = normalize12(pcd)
    spectrum = np.fft.rfft(normalized)
    return np.abs(spectrum), np.angle(spectrum), normalized


def frequency_domain_to_pcd(amplitudes: Sequence[float], phases: Sequence[float]) -> np.ndarray:
    """Inverse of ``pcd_to_frequency_domain``: 7 amplitudes/phases -> 12 values."""
    amps = np.asarray(amplitudes, dtype=np.float64)
    phs = np.asarray(phases, dtype=np.float64)
    if amps.shape != (NUM_COEFFS,):
        raise ValueError(f"amplitudes must have exactly {NUM_COEFFS} values, got shape {amps.shape}")
    if phs.shape != (NUM_COEFFS,):
        raise ValueError(f"phases must have exactly {NUM_COEFFS} values, got shape {phs.shape}")
    spectrum = amps * np.exp(1j * phs)
    return np.fft.irfft(spectrum, n=PCD_SIZE)
