from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from note_synth.notation import parse_pitch
from note_synth.note import Note
from note_synth.tuning import Tuning


def _note_frequency(item: dict[str, Any], idx: int, tuning: Tuning) -> float:
    if "note" in item:
        octave, degree = parse_pitch(str(item["note"]))
        return tuning.get_frequency(octave, degree)
    if "midi_note" in item:
        return tuning.frequency_for_pitch(int(item["midi_note"]))
    raise ValueError(f"Notes JSON item {idx} needs a 'note' or 'midi_note' field.")


def load_notes_json(
    path: str | Path,
    tuning: Tuning,
    tempo_change: float = 1.0,
    length_change: float = 1.0,
) -> list[Note]:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise ValueError("Notes JSON must be a list.")
    notes: list[Note] = []
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValueError(f"Notes JSON item {idx} must be an object.")
        notes.append(
            Note(
                frequency=_note_frequency(item, idx, tuning),
                start_time=float(item["start_s"]) / tempo_change,
                sustain_length=float(item["sustain_s"]) * length_change,
                velocity=float(item.get("velocity", 1.0)),
            )
        )
    return notes
