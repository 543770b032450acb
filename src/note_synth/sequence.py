from __future__ import annotations

from dataclasses import dataclass

from note_synth.instrument import Instrument
from note_synth.notation import parse_notation
from note_synth.note import Note


@dataclass(frozen=True)
class _PendingNote:
    frequency: float
    start_time: float
    velocity: float


class Sequence:
    """Notes played by one instrument, plus how the sequence sits in the mix.

    Decoders either append complete notes with ``add_note`` or stream
    ``note_on``/``note_off`` pairs; a note is only added to ``notes`` once its
    note-off arrives.
    """

    def __init__(
        self,
        instrument: Instrument,
        volume_gain: float = 1.0,
        stereo_pan: float = 0.0,
        length_change: float = 1.0,
    ):
        if volume_gain < 0:
            raise ValueError("volume_gain must be >= 0.")
        if not (-1.0 <= stereo_pan <= 1.0):
            raise ValueError("stereo_pan must be in [-1,1].")
        if length_change < 0:
            raise ValueError("length_change must be >= 0.")
        self.instrument = instrument
        self.volume_gain = float(volume_gain)
        self.stereo_pan = float(stereo_pan)
        self.length_change = float(length_change)
        self.notes: list[Note] = []
        self.total_length = 0.0
        self._pending: dict[int, _PendingNote] = {}

    @classmethod
    def from_notation(
        cls,
        instrument: Instrument,
        text: str,
        tempo_change: float = 1.0,
        length_change: float = 1.0,
        volume_gain: float = 1.0,
        stereo_pan: float = 0.0,
    ) -> Sequence:
        notes = parse_notation(text, instrument.tuning, tempo_change=tempo_change, length_change=length_change)
        seq = cls(instrument, volume_gain=volume_gain, stereo_pan=stereo_pan, length_change=length_change)
        seq.extend(notes)
        return seq

    def _note_end(self, note: Note) -> float:
        return note.start_time + self.instrument.minimal_note_length + note.sustain_length

    def add_note(self, note: Note) -> None:
        self.notes.append(note)
        self.total_length = max(self.total_length, self._note_end(note))

    def extend(self, notes: list[Note]) -> None:
        for note in notes:
            self.add_note(note)

    def note_on(self, pitch: int, time_s: float, velocity: int = 127) -> None:
        if not (0 <= velocity <= 127):
            raise ValueError("MIDI velocity must be in [0,127].")
        if velocity == 0:
            self.note_off(pitch, time_s)
            return
        self._pending[pitch] = _PendingNote(
            frequency=self.instrument.tuning.frequency_for_pitch(pitch),
            start_time=time_s,
            velocity=velocity / 127.0,
        )

    def note_off(self, pitch: int, time_s: float) -> Note | None:
        pending = self._pending.pop(pitch, None)
        if pending is None:
            return None
        note = Note(
            frequency=pending.frequency,
            start_time=pending.start_time,
            sustain_length=max(0.0, time_s - pending.start_time) * self.length_change,
            velocity=pending.velocity,
        )
        self.add_note(note)
        return note

    @property
    def pending_pitches(self) -> list[int]:
        return sorted(self._pending)

    def discard_pending(self) -> None:
        self._pending.clear()
