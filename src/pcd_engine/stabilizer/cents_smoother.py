"""Cents smoother: exponential moving average for the tuner readout.

Reduces needle jitter by moving the displayed deviation a fixed fraction
(the reactivity) of the way toward each new reading.

Pipeline: primary pitch -> smoother -> display

Minimal deps: none (stdlib only).
"""

from __future__ import annotations

from typing import Optional

MIN_REACTIVITY = 0.05
MAX_REACTIVITY = 1.0


def clamp_reactivity(value: float) -> float:
    return max(MIN_REACTIVITY, min(MAX_REACTIVITY, float(value)))


class CentsSmoother:
    """Smooth a stream of cent deviations.

    - The first reading after a reset is taken as is.
    - Later readings move the state by ``reactivity * (cents - state)``.
    - ``reactivity`` of 1.0 disables smoothing.

    Interface:
      smoother = CentsSmoother(reactivity=0.35)
      shown = smoother.update(cents)
      smoother.reset()   # pitch lost; next reading re-seeds
    """

    def __init__(self, reactivity: float = 0.35):
        """
        Args:
            reactivity: EMA step, clamped to [0.05, 1.0].
        """
        self._reactivity = clamp_reactivity(reactivity)
        self._value: Optional[float] = None

    @property
    def reactivity(self) -> float:
        return self._reactivity

    @reactivity.setter
    def reactivity(self, value: float) -> None:
        self._reactivity = clamp_reactivity(value)

    @property
    def value(self) -> Optional[float]:
        """Current smoothed cents, or None when unseeded."""
        return self._value

    def update(self, cents: float) -> float:
        """Feed one reading; return the smoothed value."""
        if self._value is None:
            self._value = float(cents)
        else:
            self._value += self._reactivity * (cents - self._value)
        return self._value

    def reset(self) -> None:
        self._value = None
