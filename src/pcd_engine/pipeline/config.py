"""Analysis and tuner configuration.

Both records are frozen and normalize themselves on construction: values are
clamped into range rather than rejected, so whatever a caller reads back is
the authoritative setting. ``merged(**updates)`` is the hot-update path.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace

from pcd_engine.stabilizer.cents_smoother import clamp_reactivity

MIN_WINDOW_SIZE = 32
MAX_SMOOTHING = 0.999
MIN_PCD_NORMALIZE = 0.1


def to_power_of_two(value: float) -> int:
    """Nearest power of two to ``value``, never below 32."""
    clamped = max(MIN_WINDOW_SIZE, int(value))
    exponent = int(math.floor(math.log2(clamped) + 0.5))
    return 1 << max(5, exponent)


def _clamp(value: float, lo: float, hi: float) -> float:
    return min(hi, max(lo, value))


@dataclass(frozen=True)
class AnalysisConfig:
    """Per-hop analysis parameters."""

    # Framing
    window_size: int = 16_384  # samples, power of two
    hop_size: int = 1024       # samples between analyses, <= window_size

    # Band used for the PCD
    min_hz: float = 50.0
    max_hz: float = 5000.0

    # EMA factor for the smoothed PCD (closer to 1 = slower)
    smoothing: float = 0.6

    # PCD gating / shaping
    pcd_min_rms: float = 0.001     # frames quieter than this yield a zero PCD
    pcd_threshold: float = 0.005   # bins at or below this magnitude are ignored
    pcd_normalize: float = 1.0     # exponent applied per class before normalizing

    # Tuning reference (A4)
    ref_a4: float = 440.0

    def __post_init__(self) -> None:
        window = to_power_of_two(self.window_size)
        hop = min(max(1, int(self.hop_size)), window)
        min_hz = max(0.0, float(self.min_hz))
        max_hz = max(min_hz + 1.0, float(self.max_hz))
        object.__setattr__(self, "window_size", window)
        object.__setattr__(self, "hop_size", hop)
        object.__setattr__(self, "min_hz", min_hz)
        object.__setattr__(self, "max_hz", max_hz)
        object.__setattr__(self, "smoothing", _clamp(float(self.smoothing), 0.0, MAX_SMOOTHING))
        object.__setattr__(self, "pcd_min_rms", max(0.0, float(self.pcd_min_rms)))
        object.__setattr__(self, "pcd_threshold", max(0.0, float(self.pcd_threshold)))
        object.__setattr__(self, "pcd_normalize", max(MIN_PCD_NORMALIZE, float(self.pcd_normalize)))
        object.__setattr__(self, "ref_a4", max(1.0, float(self.ref_a4)))

    def merged(self, **updates) -> "AnalysisConfig":
        """Return a normalized copy with ``updates`` applied.

        Raises:
            TypeError: an update names a field that does not exist.
        """
        return replace(self, **updates)

    @property
    def spectrum_length(self) -> int:
        """Number of magnitude bins produced per hop."""
        return self.window_size // 2

    def bin_hz(self, sample_rate: float) -> float:
        """Frequency spacing of the magnitude spectrum."""
        return sample_rate / self.window_size

    def hop_seconds(self, sample_rate: float) -> float:
        return self.hop_size / sample_rate


@dataclass(frozen=True)
class TunerConfig:
    """Primary-pitch (tuner) parameters."""

    enabled: bool = True
    min_hz: float = 70.0
    max_hz: float = 1800.0
    min_prominence: float = 6.0   # dB above the local neighborhood
    min_rms: float = 0.003
    reactivity: float = 0.35      # EMA step for the smoothed cents readout

    def __post_init__(self) -> None:
        min_hz = max(0.0, float(self.min_hz))
        object.__setattr__(self, "enabled", bool(self.enabled))
        object.__setattr__(self, "min_hz", min_hz)
        object.__setattr__(self, "max_hz", max(min_hz + 1.0, float(self.max_hz)))
        object.__setattr__(self, "min_prominence", float(self.min_prominence))
        object.__setattr__(self, "min_rms", max(0.0, float(self.min_rms)))
        object.__setattr__(self, "reactivity", clamp_reactivity(self.reactivity))

    def merged(self, **updates) -> "TunerConfig":
        return replace(self, **updates)
