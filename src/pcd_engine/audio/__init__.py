"""Audio capture, buffering, windowing and spectral transform."""

from pcd_engine.audio.config import CaptureConfig
from pcd_engine.audio.collector import AudioCollector, list_input_devices
from pcd_engine.audio.fft import RealFFT
from pcd_engine.audio.ring_buffer import SampleRing
from pcd_engine.audio.window import WindowCache

__all__ = [
    "CaptureConfig",
    "AudioCollector",
    "list_input_devices",
    "RealFFT",
    "SampleRing",
    "WindowCache",
]
