from __future__ import annotations

import math
import re

from note_synth.note import Note
from note_synth.tuning import Tuning

PITCH_DEGREES: dict[str, int] = {"c": 0, "d": 2, "e": 4, "f": 5, "g": 7, "a": 9, "b": 11}
ACCIDENTAL_OFFSETS: dict[str, int] = {"": 0, "#": 1, "b": -1}

_PITCH_RE = re.compile(r"^([A-Za-z])([#b]?)([+-]?[0-9]+)$")


class InvalidNoteDescriptor(ValueError):
    """A note token could not be decoded."""


def parse_pitch(token: str) -> tuple[int, int]:
    """Decode ``<letter><accidental?><octave>`` into ``(octave, degree)``."""
    text = token.strip()
    match = _PITCH_RE.match(text)
    if match is None:
        raise InvalidNoteDescriptor(f"Invalid pitch: {token!r}")
    letter, accidental, octave_text = match.groups()
    degree = PITCH_DEGREES.get(letter.lower())
    if degree is None:
        raise InvalidNoteDescriptor(f"Invalid pitch letter {letter!r} in {token!r}")
    offset = ACCIDENTAL_OFFSETS.get(accidental)
    if offset is None:
        raise InvalidNoteDescriptor(f"Invalid accidental {accidental!r} in {token!r}")
    octave_shift, degree = divmod(degree + offset, 12)
    return int(octave_text) + octave_shift, degree


def _parse_seconds(text: str, what: str, token: str) -> float:
    try:
        value = float(text)
    except ValueError:
        raise InvalidNoteDescriptor(f"Invalid {what} {text.strip()!r} in {token!r}") from None
    if not math.isfinite(value) or value < 0:
        raise InvalidNoteDescriptor(f"{what.capitalize()} must be a finite value >= 0 in {token!r}")
    return value


def parse_note_token(
    token: str,
    tuning: Tuning,
    tempo_change: float = 1.0,
    length_change: float = 1.0,
) -> Note:
    parts = token.split(":")
    if len(parts) != 3:
        raise InvalidNoteDescriptor(f"Expected <pitch>:<start>:<sustain>, got {token.strip()!r}")
    octave, degree = parse_pitch(parts[0])
    start_s = _parse_seconds(parts[1], "start time", token)
    sustain_s = _parse_seconds(parts[2], "sustain", token)
    return Note(
        frequency=tuning.get_frequency(octave, degree),
        start_time=start_s / tempo_change,
        sustain_length=sustain_s * length_change,
    )


def parse_notation(
    text: str,
    tuning: Tuning,
    tempo_change: float = 1.0,
    length_change: float = 1.0,
) -> list[Note]:
    """Decode ``"C0:0:0.7, D0:1:0.7"`` style note lists.

    Any malformed token fails the whole decode; no partial list is returned.
    """
    if tempo_change <= 0:
        raise ValueError("tempo_change must be > 0.")
    if length_change < 0:
        raise ValueError("length_change must be >= 0.")
    if not text.strip():
        raise InvalidNoteDescriptor("Notation is empty.")
    return [parse_note_token(token, tuning, tempo_change, length_change) for token in text.split(",")]
