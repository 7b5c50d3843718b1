"""CLI: analyze a WAV file or the live microphone and print PCD / tuner readings."""

import argparse
import logging
import sys
import time
from pathlib import Path

import numpy as np

from pcd_engine.analysis.notes import NOTE_LABELS, note_name
from pcd_engine.analysis.pcd_dft import pcd_to_frequency_domain
from pcd_engine.audio import AudioCollector, CaptureConfig, list_input_devices
from pcd_engine.pipeline import AnalysisConfig, AnalysisEvent, AudioProcessor, TunerConfig


def load_wav(path: Path) -> tuple[int, np.ndarray]:
    """Load a WAV file as mono float32 in [-1, 1]. Returns (sample_rate, audio)."""
    import scipy.io.wavfile as wavfile

    sr, audio = wavfile.read(str(path))
    if audio.dtype == np.int16:
        audio = audio.astype(np.float32) / 32768.0
    elif audio.dtype == np.int32:
        audio = audio.astype(np.float32) / 2147483648.0
    elif audio.dtype == np.uint8:
        audio = (audio.astype(np.float32) - 128.0) / 128.0
    if audio.ndim > 1:
        audio = audio.mean(axis=1)
    return sr, audio.astype(np.float32)


def iter_chunks(audio: np.ndarray, chunk_samples: int):
    """Yield consecutive chunks of at most chunk_samples samples."""
    for i in range(0, len(audio), chunk_samples):
        yield audio[i : i + chunk_samples]


def format_event(event: AnalysisEvent, convention: str, show_dft: bool) -> str:
    """One console line per hop."""
    dominant = int(np.argmax(event.pcd)) if event.pcd.sum() > 0 else None
    pcd_text = "[" + ", ".join(f"{v:.3f}" for v in event.pcd) + "]"
    parts = [f"t={event.stream_time:7.3f}s", f"rms={event.rms:.4f}", pcd_text]
    if dominant is not None:
        parts.append(f"pc={note_name(dominant, convention)}")
    if show_dft:
        amplitudes, _, _ = pcd_to_frequency_domain(event.pcd)
        parts.append("dft=[" + ", ".join(f"{a:.3f}" for a in amplitudes) + "]")
    p = event.primary
    if p is not None:
        sign = "+" if p.smoothed_cents >= 0 else ""
        parts.append(
            f"primary: {p.note_name} {sign}{p.smoothed_cents:.1f}c "
            f"(~{p.frequency:.1f} Hz, {p.prominence_db:.1f} dB)"
        )
    return "  ".join(parts)


def main() -> None:
    parser = argparse.ArgumentParser(description="Pitch-class distribution and tuner analysis")
    parser.add_argument(
        "--file",
        type=Path,
        default=None,
        help="Analyze this WAV file instead of the microphone",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=10.0,
        help="Live capture duration in seconds (default: 10)",
    )
    parser.add_argument(
        "--device",
        type=int,
        default=None,
        help="Input device index (list with --list-devices)",
    )
    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List available audio input devices and exit",
    )
    parser.add_argument("--window", type=int, default=AnalysisConfig.window_size, help="Window size in samples")
    parser.add_argument("--hop", type=int, default=AnalysisConfig.hop_size, help="Hop size in samples")
    parser.add_argument("--smoothing", type=float, default=AnalysisConfig.smoothing, help="PCD smoothing 0-0.999")
    parser.add_argument("--ref-a4", type=float, default=AnalysisConfig.ref_a4, help="Reference pitch for A4 in Hz")
    parser.add_argument(
        "--note-names",
        choices=sorted(NOTE_LABELS),
        default="sharps",
        help="Note spelling (default: sharps)",
    )
    parser.add_argument("--dft", action="store_true", help="Also print the PCD DFT amplitudes")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.list_devices:
        try:
            for index, name in list_input_devices():
                print(f"{index:3d}  {name}")
        except ImportError as exc:
            print(str(exc), file=sys.stderr)
            sys.exit(1)
        return

    config = AnalysisConfig(
        window_size=args.window,
        hop_size=args.hop,
        smoothing=args.smoothing,
        ref_a4=args.ref_a4,
    )

    def on_analysis(event: AnalysisEvent) -> None:
        print(format_event(event, args.note_names, args.dft))

    def on_error(event) -> None:
        print(f"[error] {event.message}", file=sys.stderr)

    if args.file is not None:
        sample_rate, audio = load_wav(args.file)
        if audio.size == 0:
            print(f"No audio in {args.file}", file=sys.stderr)
            sys.exit(1)
        processor = AudioProcessor(
            config=config,
            tuner=TunerConfig(),
            on_analysis=on_analysis,
            on_error=on_error,
            note_names=args.note_names,
        )
        print(f"Analyzing {args.file} ({sample_rate} Hz, window={config.window_size}, hop={config.hop_size})...")
        processor.start(sample_rate=sample_rate)
        hops = processor.run(iter_chunks(audio, CaptureConfig().block_size))
        processor.stop()
        print(f"Done: {hops} hops.")
        return

    collector = AudioCollector(CaptureConfig(device=args.device))
    processor = AudioProcessor(
        config=config,
        tuner=TunerConfig(),
        source=collector,
        on_analysis=on_analysis,
        on_error=on_error,
        note_names=args.note_names,
    )
    print(f"Listening for {args.duration}s (mono {collector.sample_rate} Hz)... Ctrl+C to quit")
    try:
        processor.start()
    except (ImportError, RuntimeError):
        sys.exit(1)
    try:
        time.sleep(args.duration)
    except KeyboardInterrupt:
        pass
    finally:
        processor.stop()


if __name__ == "__main__":
    main()
