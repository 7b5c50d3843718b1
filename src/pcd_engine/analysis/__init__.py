"""Spectrum analysis: pitch-class distribution, primary pitch, note helpers."""

from pcd_engine.analysis.pitch_class import PitchClassMapper, build_pitch_class_lookup
from pcd_engine.analysis.primary import PrimaryEstimate, estimate_primary
from pcd_engine.analysis.pcd_dft import (
    frequency_domain_to_pcd,
    normalize12,
    pcd_to_frequency_domain,
)

__all__ = [
    "PitchClassMapper",
    "build_pitch_class_lookup",
    "PrimaryEstimate",
    "estimate_primary",
    "frequency_domain_to_pcd",
    "normalize12",
    "pcd_to_frequency_domain",
]
