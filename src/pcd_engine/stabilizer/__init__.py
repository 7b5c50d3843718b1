"""Readout stabilizers."""

from pcd_engine.stabilizer.cents_smoother import CentsSmoother

__all__ = ["CentsSmoother"]
