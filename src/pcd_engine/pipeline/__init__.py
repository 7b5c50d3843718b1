"""Streaming analysis pipeline: configuration, events and the processor."""

from pcd_engine.pipeline.config import AnalysisConfig, TunerConfig
from pcd_engine.pipeline.events import (
    AnalysisEvent,
    ErrorEvent,
    PrimaryPitch,
    StateChangeEvent,
)
from pcd_engine.pipeline.processor import AudioProcessor

__all__ = [
    "AnalysisConfig",
    "TunerConfig",
    "AnalysisEvent",
    "ErrorEvent",
    "PrimaryPitch",
    "StateChangeEvent",
    "AudioProcessor",
]
