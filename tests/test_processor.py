"""Unit tests and toy scenario for the streaming AudioProcessor."""

from __future__ import annotations

import threading
import unittest
from typing import Callable, List, Optional

import numpy as np

from pcd_engine.pipeline import (
    AnalysisConfig,
    AnalysisEvent,
    AudioProcessor,
    ErrorEvent,
    StateChangeEvent,
    TunerConfig,
)

SR = 48_000
BLOCK = 128
C4 = 261.6255653


def _tone(freq: float, n: int, sr: int = SR, amp: float = 0.5, start: int = 0) -> np.ndarray:
    """Sine samples [start, start + n) of a continuous tone."""
    t = (np.arange(n) + start) / sr
    return (amp * np.sin(2 * np.pi * freq * t)).astype(np.float32)


def _chunks(samples: np.ndarray, size: int = BLOCK) -> List[np.ndarray]:
    return [samples[i : i + size] for i in range(0, len(samples), size)]


class _Recorder:
    """Collects copies of everything a processor emits."""

    def __init__(self) -> None:
        self.events: List[AnalysisEvent] = []
        self.pcds: List[np.ndarray] = []
        self.raw: List[np.ndarray] = []
        self.states: List[bool] = []
        self.errors: List[ErrorEvent] = []

    def on_analysis(self, event: AnalysisEvent) -> None:
        self.events.append(event)
        self.pcds.append(event.pcd.copy())
        self.raw.append(event.raw_pcd.copy())

    def on_state_change(self, event: StateChangeEvent) -> None:
        self.states.append(event.running)

    def on_error(self, event: ErrorEvent) -> None:
        self.errors.append(event)


class _FakeSource:
    """Capture stand-in: records start/stop and pushes chunks on demand."""

    def __init__(self, sample_rate: int = 44_100, fail: bool = False) -> None:
        self.sample_rate = sample_rate
        self.fail = fail
        self.callback: Optional[Callable[[np.ndarray], None]] = None
        self.started = 0
        self.stopped = 0

    def start(self, callback: Callable[[np.ndarray], None]) -> None:
        if self.fail:
            raise RuntimeError("device unavailable")
        self.callback = callback
        self.started += 1

    def stop(self) -> None:
        self.callback = None
        self.stopped += 1

    def push(self, chunk: np.ndarray) -> None:
        if self.callback is not None:
            self.callback(chunk)


def _processor(rec: _Recorder, config: AnalysisConfig, tuner: Optional[TunerConfig] = None, source=None):
    return AudioProcessor(
        config=config,
        tuner=tuner,
        source=source,
        on_analysis=rec.on_analysis,
        on_state_change=rec.on_state_change,
        on_error=rec.on_error,
    )


class TestHopScheduling(unittest.TestCase):
    """Per-sample hop counting and buffer fill."""

    def setUp(self) -> None:
        self.rec = _Recorder()
        self.proc = _processor(self.rec, AnalysisConfig(window_size=1024, hop_size=256))
        self.proc.start(sample_rate=SR)

    def test_first_hop_waits_for_full_window(self) -> None:
        self.proc.feed(np.zeros(1023, dtype=np.float32))
        self.assertEqual(len(self.rec.events), 0)
        self.proc.feed(np.zeros(1, dtype=np.float32))
        self.assertEqual(len(self.rec.events), 1)
        self.assertEqual(self.proc.hop_counter, 0)

    def test_one_event_per_hop(self) -> None:
        rng = np.random.default_rng(0)
        noise = (rng.standard_normal(1024 + 3 * 256) * 0.1).astype(np.float32)
        for chunk in _chunks(noise, 100):
            self.proc.feed(chunk)
        self.assertEqual([e.hop_index for e in self.rec.events], [1, 2, 3, 4])
        self.assertAlmostEqual(self.rec.events[-1].stream_time, (1024 + 768) / SR)

    def test_matches_per_sample_schedule_with_hop_changes(self) -> None:
        """Random chunking plus mid-stream hop updates fire on the same samples
        as a sample-by-sample counter."""
        rng = np.random.default_rng(3)
        window = 256
        proc = AudioProcessor(config=AnalysisConfig(window_size=window, hop_size=64))
        fired: List[int] = []
        proc.subscribe("analysis", lambda e: fired.append(int(round(e.stream_time * SR))))
        proc.start(sample_rate=SR)

        expected: List[int] = []
        hop, counter, filled, seen = 64, 0, 0, 0
        for _ in range(120):
            n = int(rng.integers(1, 200))
            proc.feed(np.zeros(n, dtype=np.float32))
            for _ in range(n):
                seen += 1
                counter += 1
                filled = min(filled + 1, window)
                if counter >= hop and filled >= window:
                    counter = 0
                    expected.append(seen)
            if rng.random() < 0.3:
                hop = int(rng.integers(1, window + 1))
                proc.update_config(hop_size=hop)

        self.assertGreater(len(expected), 20)
        self.assertEqual(fired, expected)

    def test_chunk_size_does_not_matter(self) -> None:
        """Same samples in different chunkings -> identical raw PCDs."""
        rng = np.random.default_rng(1)
        noise = (rng.standard_normal(4096) * 0.2).astype(np.float32)
        for chunk in _chunks(noise, 128):
            self.proc.feed(chunk)
        other = _Recorder()
        proc2 = _processor(other, AnalysisConfig(window_size=1024, hop_size=256))
        proc2.start(sample_rate=SR)
        proc2.feed(noise)
        self.assertEqual(len(self.rec.raw), len(other.raw))
        for a, b in zip(self.rec.raw, other.raw):
            np.testing.assert_allclose(a, b)

    def test_feed_ignored_when_idle(self) -> None:
        self.proc.stop()
        self.proc.feed(np.ones(4096, dtype=np.float32))
        self.assertEqual(len(self.rec.events), 0)
        self.assertEqual(self.proc.filled, 0)

    def test_event_fields(self) -> None:
        self.proc.feed(_tone(1000.0, 1024))
        event = self.rec.events[0]
        self.assertEqual(event.sample_rate, SR)
        self.assertEqual(len(event.magnitudes), 512)
        self.assertEqual(len(event.pcd), 12)
        self.assertGreater(event.rms, 0.0)
        self.assertEqual(event.rms, self.proc.last_rms)

    def test_pcd_buffers_are_stable_references(self) -> None:
        self.proc.feed(_tone(1000.0, 2048))
        first, last = self.rec.events[0], self.rec.events[-1]
        self.assertIs(first.pcd, last.pcd)
        self.assertIs(first.pcd, self.proc.current_pcd)
        self.assertIs(first.raw_pcd, self.proc.raw_pcd)


class TestSmoothing(unittest.TestCase):
    """EMA smoothing and RMS gating."""

    def setUp(self) -> None:
        self.rec = _Recorder()
        # hop == window: every hop analyzes fresh samples only
        self.cfg = AnalysisConfig(window_size=1024, hop_size=1024, smoothing=0.6)
        self.proc = _processor(self.rec, self.cfg)
        self.proc.start(sample_rate=SR)

    def test_smoothed_sum_converges(self) -> None:
        self.proc.feed(_tone(1000.0, 1024 * 6))
        self.assertEqual(len(self.rec.events), 6)
        for m, (raw, pcd) in enumerate(zip(self.rec.raw, self.rec.pcds), start=1):
            self.assertAlmostEqual(float(raw.sum()), 1.0)
            self.assertAlmostEqual(float(pcd.sum()), 1.0 - 0.6 ** m)
            self.assertTrue(np.all(pcd >= 0.0))

    def test_silence_decays_smoothed_pcd(self) -> None:
        self.proc.feed(_tone(1000.0, 1024 * 3))
        self.proc.feed(np.zeros(1024 * 3, dtype=np.float32))
        sums = [float(p.sum()) for p in self.rec.pcds]
        for prev, cur, raw in zip(sums[2:], sums[3:], self.rec.raw[3:]):
            self.assertTrue(np.all(raw == 0.0))
            self.assertAlmostEqual(cur, 0.6 * prev)

    def test_rms_gate_zeroes_raw_pcd(self) -> None:
        self.proc.update_config(pcd_min_rms=1.0)
        self.proc.feed(_tone(1000.0, 2048))
        for raw in self.rec.raw:
            self.assertTrue(np.all(raw == 0.0))
        for pcd in self.rec.pcds:
            self.assertTrue(np.all(pcd == 0.0))


class TestPrimaryPitch(unittest.TestCase):
    """Tuner gating and conversion."""

    def setUp(self) -> None:
        self.rec = _Recorder()
        self.cfg = AnalysisConfig(window_size=16_384, hop_size=4096)

    def _run(self, tuner: TunerConfig, freq: float = 440.0) -> List[AnalysisEvent]:
        proc = _processor(self.rec, self.cfg, tuner)
        proc.start(sample_rate=SR)
        proc.feed(_tone(freq, 16_384 + 4096))
        return self.rec.events

    def test_a440(self) -> None:
        events = self._run(TunerConfig())
        p = events[-1].primary
        self.assertIsNotNone(p)
        self.assertLess(abs(p.frequency - 440.0), 1.0)
        self.assertEqual(p.nearest_midi, 69)
        self.assertEqual(p.pitch_class, 9)
        self.assertEqual(p.note_name, "A4")
        self.assertLess(abs(p.cents), 5.0)
        self.assertAlmostEqual(p.cents, (p.midi - 69) * 100.0)

    def test_sharp_tone_reports_positive_cents(self) -> None:
        freq = 440.0 * 2 ** (20 / 1200)
        p = self._run(TunerConfig(), freq)[-1].primary
        self.assertEqual(p.nearest_midi, 69)
        self.assertAlmostEqual(p.cents, 20.0, delta=5.0)

    def test_reference_pitch_applies(self) -> None:
        self.cfg = self.cfg.merged(ref_a4=430.0)
        p = self._run(TunerConfig(), 430.0)[-1].primary
        self.assertEqual(p.nearest_midi, 69)
        self.assertLess(abs(p.cents), 5.0)

    def test_disabled(self) -> None:
        events = self._run(TunerConfig(enabled=False))
        self.assertTrue(all(e.primary is None for e in events))

    def test_prominence_threshold(self) -> None:
        events = self._run(TunerConfig(min_prominence=200.0))
        self.assertTrue(all(e.primary is None for e in events))

    def test_rms_gate(self) -> None:
        events = self._run(TunerConfig(min_rms=10.0))
        self.assertTrue(all(e.primary is None for e in events))

    def test_out_of_band(self) -> None:
        events = self._run(TunerConfig(min_hz=1000.0, max_hz=1800.0), freq=440.0)
        for e in events:
            if e.primary is not None:
                self.assertGreaterEqual(e.primary.frequency, 990.0)

    def test_smoothed_cents_tracks(self) -> None:
        events = self._run(TunerConfig(reactivity=1.0))
        p = events[-1].primary
        self.assertEqual(p.smoothed_cents, p.cents)


class TestScenario(unittest.TestCase):
    """Silence for 4 hops, then a C4 tone (window 16384, hop 4096, 48 kHz)."""

    def test_silence_then_c4(self) -> None:
        rec = _Recorder()
        proc = _processor(rec, AnalysisConfig(window_size=16_384, hop_size=4096))
        proc.start(sample_rate=SR)

        silence = np.zeros(16_384 + 3 * 4096, dtype=np.float32)
        tone = _tone(C4, 8 * 4096)
        for chunk in _chunks(np.concatenate([silence, tone])):
            proc.feed(chunk)

        self.assertEqual(len(rec.events), 12)
        for i in range(4):
            self.assertTrue(np.all(rec.pcds[i] == 0.0))
            self.assertIsNone(rec.events[i].primary)

        last = rec.events[-1]
        self.assertEqual(int(np.argmax(rec.raw[-1])), 0)
        self.assertEqual(int(np.argmax(rec.pcds[-1])), 0)
        self.assertGreater(rec.raw[-1][0], 0.9)
        self.assertIsNotNone(last.primary)
        self.assertLess(abs(last.primary.frequency - C4), 1.0)
        self.assertLess(abs(last.primary.cents), 5.0)
        self.assertEqual(last.primary.pitch_class, 0)
        self.assertEqual(last.primary.note_name, "C4")
        self.assertEqual(rec.errors, [])


class TestReconfiguration(unittest.TestCase):
    """Hot config updates."""

    def setUp(self) -> None:
        self.rec = _Recorder()
        self.proc = _processor(self.rec, AnalysisConfig(window_size=1024, hop_size=256))
        self.proc.start(sample_rate=SR)

    def test_window_change_resets_counters(self) -> None:
        self.proc.feed(_tone(1000.0, 1500))
        self.assertGreater(self.proc.filled, 0)
        cfg = self.proc.update_config(window_size=2048)
        self.assertEqual(cfg.window_size, 2048)
        self.assertEqual(self.proc.filled, 0)
        self.assertEqual(self.proc.write_index, 0)
        self.assertEqual(self.proc.hop_counter, 0)
        self.assertTrue(np.all(self.proc.current_pcd == 0.0))

        before = len(self.rec.events)
        self.proc.feed(_tone(1000.0, 4096))
        new_events = self.rec.events[before:]
        self.assertEqual(len(new_events), 1 + (4096 - 2048) // 256)
        self.assertEqual(len(new_events[-1].magnitudes), 1024)
        self.assertEqual(self.rec.errors, [])

    def test_update_returns_authoritative_values(self) -> None:
        cfg = self.proc.update_config(hop_size=5000, min_hz=300.0, max_hz=100.0)
        self.assertEqual(cfg.hop_size, 1024)
        self.assertEqual(cfg.max_hz, 301.0)
        self.assertIs(self.proc.config, cfg)

    def test_same_window_keeps_buffer(self) -> None:
        self.proc.feed(np.ones(300, dtype=np.float32))
        self.proc.update_config(window_size=1000)  # rounds to 1024
        self.assertEqual(self.proc.filled, 300)

    def test_update_tuner(self) -> None:
        tuner = self.proc.update_tuner(reactivity=5.0, min_prominence=3.0)
        self.assertEqual(tuner.reactivity, 1.0)
        self.assertEqual(tuner.min_prominence, 3.0)
        self.assertIs(self.proc.tuner, tuner)

    def test_unknown_key_raises(self) -> None:
        with self.assertRaises(TypeError):
            self.proc.update_config(windowSize=1024)

    def test_reconfigure_from_another_thread(self) -> None:
        rng = np.random.default_rng(2)
        noise = (rng.standard_normal(BLOCK * 400) * 0.1).astype(np.float32)

        def produce() -> None:
            for chunk in _chunks(noise):
                self.proc.feed(chunk)

        producer = threading.Thread(target=produce)
        producer.start()
        for i in range(50):
            self.proc.update_config(hop_size=128 + 64 * (i % 4), window_size=512 * (1 + i % 2))
        producer.join()
        self.assertEqual(self.rec.errors, [])


class TestLifecycle(unittest.TestCase):
    """Start/stop, sources and error reporting."""

    def test_state_changes(self) -> None:
        rec = _Recorder()
        proc = _processor(rec, AnalysisConfig(window_size=1024, hop_size=256))
        self.assertFalse(proc.running)
        proc.start(sample_rate=SR)
        proc.start(sample_rate=SR)
        self.assertTrue(proc.running)
        proc.stop()
        proc.stop()
        self.assertFalse(proc.running)
        self.assertEqual(rec.states, [True, False])

    def test_stop_resets_state(self) -> None:
        rec = _Recorder()
        proc = _processor(rec, AnalysisConfig(window_size=1024, hop_size=256))
        proc.start(sample_rate=SR)
        proc.feed(_tone(1000.0, 2000))
        self.assertGreater(float(proc.current_pcd.sum()), 0.0)
        proc.stop()
        self.assertTrue(np.all(proc.current_pcd == 0.0))
        self.assertEqual(proc.filled, 0)
        self.assertEqual(proc.last_rms, 0.0)

    def test_source_drives_processor(self) -> None:
        rec = _Recorder()
        source = _FakeSource(sample_rate=44_100)
        proc = _processor(rec, AnalysisConfig(window_size=1024, hop_size=512), source=source)
        proc.start()
        self.assertEqual(proc.sample_rate, 44_100)
        self.assertEqual(source.started, 1)
        for chunk in _chunks(_tone(1000.0, 2048, sr=44_100)):
            source.push(chunk)
        self.assertEqual(len(rec.events), 3)
        self.assertEqual(rec.events[0].sample_rate, 44_100)
        proc.stop()
        self.assertEqual(source.stopped, 1)
        self.assertEqual(rec.states, [True, False])

    def test_source_failure(self) -> None:
        rec = _Recorder()
        proc = _processor(rec, AnalysisConfig(), source=_FakeSource(fail=True))
        with self.assertRaises(RuntimeError):
            proc.start()
        self.assertFalse(proc.running)
        self.assertEqual(rec.states, [])
        self.assertEqual(len(rec.errors), 1)
        self.assertIn("device unavailable", rec.errors[0].message)
        self.assertIsInstance(rec.errors[0].exception, RuntimeError)

    def test_invalid_sample_rate(self) -> None:
        proc = AudioProcessor()
        with self.assertRaises(ValueError):
            proc.start(sample_rate=0)
        self.assertFalse(proc.running)

    def test_hop_failure_keeps_running(self) -> None:
        rec = _Recorder()
        calls = []

        def flaky(event: AnalysisEvent) -> None:
            calls.append(event.hop_index)
            if len(calls) == 1:
                raise RuntimeError("boom")

        proc = AudioProcessor(
            config=AnalysisConfig(window_size=1024, hop_size=256),
            on_analysis=flaky,
            on_error=rec.on_error,
        )
        proc.start(sample_rate=SR)
        proc.feed(_tone(1000.0, 1024 + 512))
        self.assertTrue(proc.running)
        self.assertEqual(calls, [1, 2, 3])
        self.assertEqual(len(rec.errors), 1)
        self.assertIn("boom", rec.errors[0].message)

    def test_failing_subscriber_does_not_starve_others(self) -> None:
        proc = AudioProcessor(config=AnalysisConfig(window_size=1024, hop_size=512))
        seen: List[int] = []
        errors: List[ErrorEvent] = []

        def broken(event: AnalysisEvent) -> None:
            raise RuntimeError("display gone")

        proc.subscribe("analysis", broken)
        proc.subscribe("analysis", lambda e: seen.append(e.hop_index))
        proc.subscribe("error", errors.append)
        proc.start(sample_rate=SR)
        proc.feed(np.zeros(2048, dtype=np.float32))
        self.assertEqual(seen, [1, 2, 3])
        self.assertEqual(len(errors), 3)
        self.assertIn("display gone", errors[0].message)

    def test_failing_error_subscriber_stays_inside_feed(self) -> None:
        def broken_analysis(event: AnalysisEvent) -> None:
            raise RuntimeError("analysis sink")

        def broken_error(event: ErrorEvent) -> None:
            raise RuntimeError("error sink")

        proc = AudioProcessor(
            config=AnalysisConfig(window_size=1024, hop_size=1024),
            on_analysis=broken_analysis,
            on_error=broken_error,
        )
        proc.start(sample_rate=SR)
        proc.feed(np.zeros(2048, dtype=np.float32))
        self.assertTrue(proc.running)

    def test_unknown_note_names_rejected(self) -> None:
        with self.assertRaises(ValueError):
            AudioProcessor(note_names="german")

    def test_flat_note_names(self) -> None:
        rec = _Recorder()
        proc = AudioProcessor(
            config=AnalysisConfig(window_size=16_384, hop_size=4096),
            on_analysis=rec.on_analysis,
            note_names="flats",
        )
        proc.start(sample_rate=SR)
        proc.feed(_tone(466.1638, 16_384))
        self.assertEqual(rec.events[-1].primary.note_name, "Bb4")

    def test_concurrent_start_acquires_source_once(self) -> None:
        entered = threading.Event()
        release = threading.Event()

        class SlowSource(_FakeSource):
            def start(self, callback: Callable[[np.ndarray], None]) -> None:
                entered.set()
                release.wait(timeout=5.0)
                super().start(callback)

        rec = _Recorder()
        source = SlowSource(sample_rate=SR)
        proc = _processor(rec, AnalysisConfig(window_size=1024, hop_size=256), source=source)
        first = threading.Thread(target=proc.start)
        first.start()
        self.assertTrue(entered.wait(timeout=5.0))
        proc.start()
        release.set()
        first.join(timeout=5.0)
        self.assertEqual(source.started, 1)
        self.assertTrue(proc.running)
        self.assertEqual(rec.states, [True])
        proc.stop()

    def test_subscribe_and_unsubscribe(self) -> None:
        proc = AudioProcessor(config=AnalysisConfig(window_size=1024, hop_size=1024))
        seen: List[int] = []
        callback = proc.subscribe("analysis", lambda e: seen.append(e.hop_index))
        proc.start(sample_rate=SR)
        proc.feed(np.zeros(1024, dtype=np.float32))
        proc.unsubscribe("analysis", callback)
        proc.feed(np.zeros(1024, dtype=np.float32))
        self.assertEqual(seen, [1])
        with self.assertRaises(ValueError):
            proc.subscribe("pcd", print)


def run_toy_example() -> None:
    """Toy: four silent hops then a C4 tone, printed hop by hop."""
    from pcd_engine.analysis.notes import note_name

    print("=== Toy example: silence then C4 ===\n")

    def show(event: AnalysisEvent) -> None:
        top = int(np.argmax(event.pcd)) if event.pcd.sum() > 0 else None
        primary = event.primary
        print(
            f"  hop {event.hop_index:2d}  rms={event.rms:.4f}  "
            f"pc={note_name(top) if top is not None else '-':2s}  "
            + (f"{primary.note_name} {primary.cents:+.1f}c ~{primary.frequency:.2f} Hz" if primary else "")
        )

    proc = AudioProcessor(config=AnalysisConfig(window_size=16_384, hop_size=4096), on_analysis=show)
    proc.start(sample_rate=SR)
    samples = np.concatenate([np.zeros(16_384 + 3 * 4096, dtype=np.float32), _tone(C4, 8 * 4096)])
    hops = proc.run(iter(_chunks(samples)))
    proc.stop()
    print(f"\n{hops} hops analyzed.")


if __name__ == "__main__":
    run_toy_example()
    print("\n--- Running unit tests ---")
    unittest.main(argv=[""], exit=False, verbosity=2)
