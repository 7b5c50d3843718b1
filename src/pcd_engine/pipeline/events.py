"""Records delivered to subscribers of an AudioProcessor."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

ANALYSIS = "analysis"
STATE_CHANGE = "statechange"
ERROR = "error"

EVENT_KINDS = (ANALYSIS, STATE_CHANGE, ERROR)


@dataclass(frozen=True)
class PrimaryPitch:
    """Accepted primary-pitch reading for one hop."""

    frequency: float       # Hz
    prominence_db: float
    midi: float            # real-valued MIDI number
    nearest_midi: int
    pitch_class: int       # 0 = C
    cents: float           # (midi - nearest_midi) * 100, positive = sharp
    smoothed_cents: float  # EMA of cents at the tuner reactivity
    note_name: str         # e.g. "C4"


@dataclass
class AnalysisEvent:
    """One hop of analysis output.

    ``pcd``, ``raw_pcd`` and ``magnitudes`` are the processor's own buffers
    and are overwritten by the next hop; copy them to keep a snapshot.
    """

    pcd: np.ndarray          # smoothed, 12 values
    raw_pcd: np.ndarray      # this hop only, 12 values
    rms: float
    sample_rate: int
    primary: Optional[PrimaryPitch]
    magnitudes: np.ndarray   # window_size / 2 bins
    hop_index: int
    stream_time: float       # seconds of audio consumed since start


@dataclass(frozen=True)
class StateChangeEvent:
    running: bool


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    exception: Optional[BaseException] = None
