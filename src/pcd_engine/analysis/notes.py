"""Equal-tempered note helpers: Hz <-> MIDI, pitch classes and note names."""

from __future__ import annotations

import math

NOTE_LABELS = {
    "sharps": ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"),
    "flats": ("C", "Db", "D", "Eb", "E", "F", "Gb", "G", "Ab", "A", "Bb", "B"),
    "mixed": (
        "C", "C#/Db", "D", "D#/Eb", "E", "F", "F#/Gb", "G", "G#/Ab", "A", "A#/Bb", "B",
    ),
}

A4_MIDI = 69


def hz_to_midi(freq: float, ref_a4: float = 440.0) -> float:
    """Real-valued MIDI number; A4 (69) sits at ``ref_a4``."""
    return A4_MIDI + 12.0 * math.log2(freq / ref_a4)


def midi_to_hz(midi: float, ref_a4: float = 440.0) -> float:
    return ref_a4 * 2.0 ** ((midi - A4_MIDI) / 12.0)


def nearest_midi(midi: float) -> int:
    """Round half up, so 60.5 -> 61 and -0.5 -> 0."""
    return int(math.floor(midi + 0.5))


def pitch_class_of(midi: int) -> int:
    """Wrap a MIDI note into [0, 11] (0 = C)."""
    return int(midi) % 12


def note_name(pitch_class: int, convention: str = "sharps") -> str:
    """Name of a pitch class under ``sharps``, ``flats`` or ``mixed`` spelling."""
    try:
        labels = NOTE_LABELS[convention]
    except KeyError:
        raise ValueError(
            f"unknown note-name convention {convention!r}; expected one of {sorted(NOTE_LABELS)}"
        ) from None
    return labels[pitch_class % 12]


def midi_note_name(midi: int, convention: str = "sharps") -> str:
    """Scientific pitch name, e.g. 60 -> 'C4', 69 -> 'A4'."""
    octave = midi // 12 - 1
    return f"{note_name(midi % 12, convention)}{octave}"
