"""Capture configuration for the live input stream.

Capture standards:
- Audio: mono float32, device native rate (48 kHz default)
- Blocks: 128 samples, delivered by callback
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class CaptureConfig:
    """Microphone capture configuration."""

    # Recording
    sample_rate: int = 48_000
    channels: int = 1
    dtype: str = "float32"

    # Stream
    block_size: int = 128
    device: Optional[int] = None  # None = default input device
    latency: str = "low"

    @property
    def block_seconds(self) -> float:
        """Duration of one delivered block in seconds."""
        return self.block_size / self.sample_rate

    @property
    def blocks_per_second(self) -> float:
        return self.sample_rate / self.block_size
