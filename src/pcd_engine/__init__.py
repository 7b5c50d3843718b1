"""Pitch-class distribution engine - capture, FFT, PCD, primary pitch, streaming processor."""

from pcd_engine.pipeline import AnalysisConfig, AudioProcessor, TunerConfig

__version__ = "0.1.0"
__all__ = ["AnalysisConfig", "AudioProcessor", "TunerConfig"]
