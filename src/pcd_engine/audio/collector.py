"""Live microphone capture delivering mono float32 chunks to a callback."""

import logging
from typing import Callable, Optional

import numpy as np

try:
    import sounddevice as sd
except (ImportError, OSError):  # OSError: PortAudio library missing
    sd = None  # type: ignore

from pcd_engine.audio.config import CaptureConfig

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[np.ndarray], None]


def list_input_devices() -> list[tuple[int, str]]:
    """Return (index, name) for every device with at least one input channel."""
    if sd is None:
        raise ImportError("sounddevice is required for capture. pip install sounddevice")
    return [
        (i, dev["name"])
        for i, dev in enumerate(sd.query_devices())
        if dev["max_input_channels"] >= 1
    ]


class AudioCollector:
    """Opens a sounddevice InputStream and forwards each block as mono audio.

    Interface:
      collector = AudioCollector(CaptureConfig(sample_rate=48_000))
      collector.start(processor.feed)
      ...
      collector.stop()

    The callback runs on the PortAudio thread; the receiver is responsible
    for serializing access to its own state.
    """

    def __init__(self, config: Optional[CaptureConfig] = None):
        self.config = config or CaptureConfig()
        self._stream = None
        self._callback: Optional[ChunkCallback] = None

    @property
    def sample_rate(self) -> int:
        return self.config.sample_rate

    @property
    def active(self) -> bool:
        return self._stream is not None

    def start(self, callback: ChunkCallback) -> None:
        """Open and start the input stream.

        Raises:
            ImportError: sounddevice is not installed.
            RuntimeError: the stream could not be opened or started.
        """
        if sd is None:
            raise ImportError("sounddevice is required for capture. pip install sounddevice")
        if self._stream is not None:
            return

        self._callback = callback
        try:
            stream = sd.InputStream(
                device=self.config.device,
                channels=self.config.channels,
                samplerate=self.config.sample_rate,
                blocksize=self.config.block_size,
                dtype=self.config.dtype,
                latency=self.config.latency,
                callback=self._audio_callback,
            )
            stream.start()
        except Exception as exc:
            self._callback = None
            raise RuntimeError(f"Could not open input stream: {exc}") from exc

        self._stream = stream
        logger.info(
            "Capture started (device=%s, %d Hz, block=%d)",
            self.config.device,
            self.config.sample_rate,
            self.config.block_size,
        )

    def stop(self) -> None:
        """Stop and close the input stream. No-op when not started."""
        stream, self._stream = self._stream, None
        self._callback = None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()
        logger.info("Capture stopped")

    def _audio_callback(self, indata: np.ndarray, frames: int, time_info: object, status: object) -> None:
        if status:
            logger.warning("Input stream status: %s", status)
        callback = self._callback
        if callback is None:
            return
        if indata.ndim > 1 and indata.shape[1] > 1:
            mono = indata.mean(axis=1)
        else:
            mono = indata.reshape(-1).copy()
        callback(mono)
