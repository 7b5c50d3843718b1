"""Streaming orchestrator: samples -> ring buffer -> per-hop analysis -> events.

Per hop: linearize ring -> Hann window -> RMS -> FFT -> PCD -> EMA smoothing
-> primary pitch -> one AnalysisEvent.

The FFT engine, the pitch-class mapper and the analysis frame are reused
scratch state, so every hop runs to completion under the processor lock
before the next sample is consumed.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional, Protocol

import numpy as np

from pcd_engine.analysis.notes import (
    NOTE_LABELS,
    hz_to_midi,
    midi_note_name,
    nearest_midi,
    pitch_class_of,
)
from pcd_engine.analysis.pitch_class import NUM_PITCH_CLASSES, PitchClassMapper
from pcd_engine.analysis.primary import estimate_primary
from pcd_engine.audio.fft import RealFFT
from pcd_engine.audio.ring_buffer import SampleRing
from pcd_engine.audio.window import WindowCache
from pcd_engine.pipeline.config import AnalysisConfig, TunerConfig
from pcd_engine.pipeline.events import (
    ANALYSIS,
    ERROR,
    EVENT_KINDS,
    STATE_CHANGE,
    AnalysisEvent,
    ErrorEvent,
    PrimaryPitch,
    StateChangeEvent,
)
from pcd_engine.stabilizer.cents_smoother import CentsSmoother

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_RATE = 48_000

AnalysisCallback = Callable[[AnalysisEvent], None]
StateCallback = Callable[[StateChangeEvent], None]
ErrorCallback = Callable[[ErrorEvent], None]


class SampleSource(Protocol):
    """Anything that can push mono chunks into a callback (e.g. AudioCollector)."""

    sample_rate: int

    def start(self, callback: Callable[[np.ndarray], None]) -> None: ...

    def stop(self) -> None: ...


class AudioProcessor:
    """Owns the sample buffer, the analysis state and the start/stop lifecycle.

    Interface:
      processor = AudioProcessor(
          config=AnalysisConfig(window_size=16384, hop_size=1024),
          tuner=TunerConfig(),
          source=AudioCollector(),          # optional; None = push via feed()
          on_analysis=handle_frame,
          on_state_change=print,
          on_error=print,
      )
      processor.start()                    # or start(sample_rate=48000) without a source
      processor.feed(chunk)                # called by the source, or by you
      processor.update_config(hop_size=2048)
      processor.stop()
    """

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        tuner: Optional[TunerConfig] = None,
        source: Optional[SampleSource] = None,
        *,
        on_analysis: Optional[AnalysisCallback] = None,
        on_state_change: Optional[StateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        note_names: str = "sharps",
        window_cache: Optional[WindowCache] = None,
    ):
        if note_names not in NOTE_LABELS:
            raise ValueError(
                f"unknown note-name convention {note_names!r}; expected one of {sorted(NOTE_LABELS)}"
            )
        self._config = config or AnalysisConfig()
        self._tuner = tuner or TunerConfig()
        self.source = source
        self.note_names = note_names

        self._subscribers: Dict[str, List[Callable]] = {kind: [] for kind in EVENT_KINDS}
        for kind, callback in (
            (ANALYSIS, on_analysis),
            (STATE_CHANGE, on_state_change),
            (ERROR, on_error),
        ):
            if callback is not None:
                self._subscribers[kind].append(callback)

        self._lock = threading.RLock()
        self._running = False
        self._starting = False
        self._stopping = False
        self._sample_rate = int(getattr(source, "sample_rate", DEFAULT_SAMPLE_RATE))

        self.fft = RealFFT()
        self.pcd_mapper = PitchClassMapper()
        self._windows = window_cache or WindowCache()
        self._cents = CentsSmoother(self._tuner.reactivity)

        self._current_pcd = np.zeros(NUM_PITCH_CLASSES)
        self._raw_pcd = np.zeros(NUM_PITCH_CLASSES)
        self._last_rms = 0.0
        self._hop_counter = 0
        self._hop_index = 0
        self._samples_seen = 0
        self._allocate(self._config.window_size)

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def subscribe(self, kind: str, callback: Callable) -> Callable:
        """Register ``callback`` for ``analysis``, ``statechange`` or ``error`` events."""
        if kind not in self._subscribers:
            raise ValueError(f"unknown event kind {kind!r}; expected one of {EVENT_KINDS}")
        self._subscribers[kind].append(callback)
        return callback

    def unsubscribe(self, kind: str, callback: Callable) -> None:
        try:
            self._subscribers[kind].remove(callback)
        except (KeyError, ValueError):
            pass

    def _emit(self, kind: str, event: object) -> None:
        """Deliver ``event`` to every subscriber of ``kind``.

        A raising subscriber does not stop delivery to the others. Its
        failure is logged and reported as an error event, except for
        failures of error subscribers, which are only logged.
        """
        for callback in list(self._subscribers[kind]):
            try:
                callback(event)
            except Exception as exc:
                logger.exception("%s subscriber %r failed", kind, callback)
                if kind != ERROR:
                    self._emit_error(f"{kind} subscriber failed: {exc}", exc)

    def _emit_error(self, message: str, exc: Optional[BaseException] = None) -> None:
        self._emit(ERROR, ErrorEvent(message=message, exception=exc))

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def config(self) -> AnalysisConfig:
        return self._config

    @property
    def tuner(self) -> TunerConfig:
        return self._tuner

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def current_pcd(self) -> np.ndarray:
        """Smoothed PCD buffer (same array every hop)."""
        return self._current_pcd

    @property
    def raw_pcd(self) -> np.ndarray:
        return self._raw_pcd

    @property
    def last_rms(self) -> float:
        return self._last_rms

    @property
    def hop_counter(self) -> int:
        """Samples received since the last analysis pass."""
        return self._hop_counter

    @property
    def filled(self) -> int:
        """Valid samples in the ring buffer (saturates at window_size)."""
        return self._ring.filled

    @property
    def write_index(self) -> int:
        return self._ring.write_index

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def update_config(self, **updates) -> AnalysisConfig:
        """Merge ``updates`` into the analysis config and return the result.

        A window-size change reallocates the buffers and discards the
        samples accumulated for the in-flight hop.
        """
        with self._lock:
            new = self._config.merged(**updates)
            resize = new.window_size != self._config.window_size
            self._config = new
            if resize:
                self._allocate(new.window_size)
                self._reset_buffers()
            return self._config

    def update_tuner(self, **updates) -> TunerConfig:
        """Merge ``updates`` into the tuner config and return the result."""
        with self._lock:
            self._tuner = self._tuner.merged(**updates)
            self._cents.reactivity = self._tuner.reactivity
            if not self._tuner.enabled:
                self._cents.reset()
            return self._tuner

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, sample_rate: Optional[int] = None) -> None:
        """Acquire the source (if any) and enter Running.

        Args:
            sample_rate: Rate of the samples that will be fed. Defaults to
                the source's rate, or the last known rate without a source.

        Raises:
            ValueError: ``sample_rate`` is not positive.
            Exception: whatever the source raised while starting; an error
                event is emitted first and the processor stays idle.
        """
        if sample_rate is None:
            sample_rate = getattr(self.source, "sample_rate", self._sample_rate)
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")

        with self._lock:
            if self._running or self._starting:
                return
            self._starting = True
            self._sample_rate = int(sample_rate)
            self._reset_buffers()
            self._hop_index = 0
            self._samples_seen = 0

        # The source is acquired outside the lock; its callback thread calls feed().
        if self.source is not None:
            try:
                self.source.start(self.feed)
            except Exception as exc:
                logger.error("Could not start audio source: %s", exc)
                with self._lock:
                    self._starting = False
                self.stop()
                self._emit_error(f"Could not start audio source: {exc}", exc)
                raise

        with self._lock:
            self._starting = False
            self._stopping = False
            self._set_running(True)

    def stop(self) -> None:
        """Release the source, reset all analysis state and enter Idle.

        Safe to call when idle or after a failed start.
        """
        with self._lock:
            self._stopping = True
        try:
            if self.source is not None:
                self.source.stop()
        finally:
            with self._lock:
                self._reset_buffers()
                self._hop_index = 0
                self._samples_seen = 0
                self._stopping = False
                self._set_running(False)

    def _set_running(self, value: bool) -> None:
        if self._running == value:
            return
        self._running = value
        logger.info("Processor %s", "running" if value else "idle")
        self._emit(STATE_CHANGE, StateChangeEvent(running=value))

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def feed(self, chunk: np.ndarray) -> None:
        """Consume one chunk of mono samples, analyzing at every hop boundary.

        A hop fires on the sample at which at least ``hop_size`` samples have
        arrived since the previous hop and the ring buffer holds a full
        window. Ignored unless the processor is running.
        """
        samples = np.asarray(chunk, dtype=np.float32).reshape(-1)
        with self._lock:
            pos = 0
            n = samples.size
            while pos < n and self._running and not self._stopping:
                ring = self._ring
                needed = max(
                    self._config.hop_size - self._hop_counter,
                    ring.size - ring.filled,
                    1,
                )
                take = min(needed, n - pos)
                ring.push(samples[pos : pos + take])
                self._hop_counter += take
                self._samples_seen += take
                pos += take
                if take == needed:
                    self._hop_counter = 0
                    self._process_frame()

    def run(self, chunks: Iterable[np.ndarray]) -> int:
        """Feed every chunk of ``chunks`` until exhausted or stopped.

        Returns:
            Number of hops analyzed.
        """
        before = self._hop_index
        for chunk in chunks:
            if not self._running:
                break
            self.feed(chunk)
        return self._hop_index - before

    def _process_frame(self) -> None:
        try:
            cfg = self._config
            frame = self._ring.linearize(self._frame)
            np.multiply(frame, self._window, out=frame)

            rms = float(np.sqrt(np.dot(frame, frame) / frame.size))
            self._last_rms = rms

            magnitudes = self.fft.transform(frame)

            if rms >= cfg.pcd_min_rms:
                raw = self.pcd_mapper.compute_for(magnitudes, self._sample_rate, cfg)
            else:
                raw = self.pcd_mapper.silent_output()
            self._raw_pcd[:] = raw

            smoothing = cfg.smoothing
            self._current_pcd *= smoothing
            self._current_pcd += (1.0 - smoothing) * self._raw_pcd

            primary = self._primary_pitch(magnitudes, rms)

            self._hop_index += 1
            event = AnalysisEvent(
                pcd=self._current_pcd,
                raw_pcd=self._raw_pcd,
                rms=rms,
                sample_rate=self._sample_rate,
                primary=primary,
                magnitudes=magnitudes,
                hop_index=self._hop_index,
                stream_time=self._samples_seen / self._sample_rate,
            )
            self._emit(ANALYSIS, event)
        except Exception as exc:
            logger.exception("Analysis hop failed")
            self._emit_error(f"Analysis hop failed: {exc}", exc)

    def _primary_pitch(self, magnitudes: np.ndarray, rms: float) -> Optional[PrimaryPitch]:
        tuner = self._tuner
        if not tuner.enabled or rms < tuner.min_rms:
            self._cents.reset()
            return None

        est = estimate_primary(magnitudes, self._sample_rate, tuner.min_hz, tuner.max_hz)
        if est is None or est.prominence_db < tuner.min_prominence:
            self._cents.reset()
            return None

        midi = hz_to_midi(est.freq, self._config.ref_a4)
        nearest = nearest_midi(midi)
        cents = (midi - nearest) * 100.0
        return PrimaryPitch(
            frequency=est.freq,
            prominence_db=est.prominence_db,
            midi=midi,
            nearest_midi=nearest,
            pitch_class=pitch_class_of(nearest),
            cents=cents,
            smoothed_cents=self._cents.update(cents),
            note_name=midi_note_name(nearest, self.note_names),
        )

    # ------------------------------------------------------------------
    # Buffers
    # ------------------------------------------------------------------

    def _allocate(self, window_size: int) -> None:
        logger.debug("Allocating analysis buffers for window=%d", window_size)
        self._ring = SampleRing(window_size, dtype=np.float32)
        self._frame = np.zeros(window_size)
        self._window = self._windows.get_window(window_size)

    def _reset_buffers(self) -> None:
        self._ring.clear()
        self._frame.fill(0.0)
        self._hop_counter = 0
        self._current_pcd.fill(0.0)
        self._raw_pcd.fill(0.0)
        self._last_rms = 0.0
        self._cents.reset()
