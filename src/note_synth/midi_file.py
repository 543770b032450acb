from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from pathlib import Path

from note_synth.instrument import Instrument
from note_synth.sequence import Sequence

DEFAULT_TEMPO_US_PER_QUARTER = 500_000
PERCUSSION_CHANNEL = 9

_NOTE_OFF = 0x80
_NOTE_ON = 0x90
_META = 0xFF
_META_TEMPO = 0x51
_META_END_OF_TRACK = 0x2F
_SYSEX = (0xF0, 0xF7)

# Channel message type -> number of data bytes.
_DATA_LENGTHS = {0x80: 2, 0x90: 2, 0xA0: 2, 0xB0: 2, 0xC0: 1, 0xD0: 1, 0xE0: 2}


@dataclass(frozen=True)
class MidiNoteEvent:
    """A note-on or note-off message placed on the timeline.

    ``channel`` is the 0-based MIDI channel (9 is General MIDI percussion).
    A note-on with velocity 0 is already decoded as a note-off.
    """

    time_s: float
    is_on: bool
    channel: int
    note: int
    velocity: int


@dataclass(frozen=True)
class MidiFile:
    """Note events of a MIDI file, one list per track, in playing order."""

    tracks: list[list[MidiNoteEvent]]
    duration_s: float
    ticks_per_quarter: int


class _ByteReader:
    def __init__(self, data: bytes, what: str) -> None:
        self.data = data
        self.pos = 0
        self.what = what

    def at_end(self) -> bool:
        return self.pos >= len(self.data)

    def peek(self) -> int:
        if self.at_end():
            raise ValueError(f"Unexpected EOF in {self.what}.")
        return self.data[self.pos]

    def take(self, size: int) -> bytes:
        chunk = self.data[self.pos : self.pos + size]
        if len(chunk) != size:
            raise ValueError(f"Unexpected EOF in {self.what}.")
        self.pos += size
        return chunk

    def byte(self) -> int:
        value = self.peek()
        self.pos += 1
        return value

    def uint(self, size: int) -> int:
        return int.from_bytes(self.take(size), "big")

    def var_len(self) -> int:
        value = 0
        for _ in range(4):
            b = self.byte()
            value = (value << 7) | (b & 0x7F)
            if not b & 0x80:
                return value
        raise ValueError(f"Invalid var-len integer in {self.what}.")


class _TempoMap:
    """Piecewise-constant tempo shared by every track of a file."""

    def __init__(self, changes: list[tuple[int, int]], ticks_per_quarter: int) -> None:
        by_tick: dict[int, int] = {0: DEFAULT_TEMPO_US_PER_QUARTER}
        for tick, tempo in sorted(changes, key=lambda change: change[0]):
            by_tick[tick] = tempo
        self.ticks = sorted(by_tick)
        self.tempos = [by_tick[tick] for tick in self.ticks]
        self.ticks_per_quarter = ticks_per_quarter

        self.offsets_s = [0.0]
        for i in range(1, len(self.ticks)):
            span = self.ticks[i] - self.ticks[i - 1]
            self.offsets_s.append(self.offsets_s[-1] + span * self.tempos[i - 1] / (1_000_000.0 * ticks_per_quarter))

    def seconds(self, tick: int) -> float:
        i = max(0, bisect_right(self.ticks, tick) - 1)
        return self.offsets_s[i] + (tick - self.ticks[i]) * self.tempos[i] / (1_000_000.0 * self.ticks_per_quarter)


def _parse_track(chunk: bytes) -> tuple[list[tuple[int, bool, int, int, int]], list[tuple[int, int]], int]:
    """Decode one MTrk body.

    Returns ``(notes, tempo_changes, last_tick)`` where ``notes`` holds
    ``(tick, is_on, channel, note, velocity)`` and ``tempo_changes`` holds
    ``(tick, microseconds_per_quarter)``.
    """
    reader = _ByteReader(chunk, "MIDI track")
    tick = 0
    running_status: int | None = None
    notes: list[tuple[int, bool, int, int, int]] = []
    tempo_changes: list[tuple[int, int]] = []

    while not reader.at_end():
        tick += reader.var_len()
        if reader.at_end():
            break

        if reader.peek() & 0x80:
            status = reader.byte()
            running_status = status if status < 0xF0 else None
        elif running_status is None:
            raise ValueError("Running-status data byte encountered without status.")
        else:
            status = running_status

        if status == _META:
            kind = reader.byte()
            payload = reader.take(reader.var_len())
            if kind == _META_TEMPO and len(payload) == 3:
                tempo_changes.append((tick, int.from_bytes(payload, "big")))
            elif kind == _META_END_OF_TRACK:
                break
            continue
        if status in _SYSEX:
            reader.take(reader.var_len())
            continue

        message_type = status & 0xF0
        size = _DATA_LENGTHS.get(message_type)
        if size is None:
            raise ValueError(f"Unsupported MIDI status byte: 0x{status:02X}")
        data = reader.take(size)
        if message_type == _NOTE_ON:
            notes.append((tick, data[1] > 0, status & 0x0F, data[0], data[1]))
        elif message_type == _NOTE_OFF:
            notes.append((tick, False, status & 0x0F, data[0], data[1]))

    return notes, tempo_changes, tick


def read_midi_file(path: str | Path) -> MidiFile:
    reader = _ByteReader(Path(path).read_bytes(), "MIDI file")
    if reader.take(4) != b"MThd":
        raise ValueError("Invalid MIDI header chunk.")
    header = _ByteReader(reader.take(reader.uint(4)), "MIDI header")
    fmt = header.uint(2)
    n_tracks = header.uint(2)
    ticks_per_quarter = header.uint(2)

    if fmt not in (0, 1):
        raise ValueError(f"Unsupported MIDI format: {fmt}")
    if ticks_per_quarter & 0x8000:
        raise ValueError("SMPTE time division is not supported.")
    if ticks_per_quarter <= 0:
        raise ValueError("Invalid ticks-per-quarter value.")

    parsed: list[list[tuple[int, bool, int, int, int]]] = []
    tempo_changes: list[tuple[int, int]] = []
    last_tick = 0
    for _ in range(n_tracks):
        if reader.take(4) != b"MTrk":
            raise ValueError("Invalid MIDI track chunk header.")
        notes, changes, track_last_tick = _parse_track(reader.take(reader.uint(4)))
        parsed.append(notes)
        tempo_changes.extend(changes)
        last_tick = max(last_tick, track_last_tick)

    # Format 1 keeps the tempo map in the first track; it applies to all tracks.
    tempo = _TempoMap(tempo_changes, ticks_per_quarter)
    tracks = []
    for notes in parsed:
        # Note-offs first so a re-struck pitch is released before it restarts.
        notes.sort(key=lambda ev: (ev[0], ev[1]))
        tracks.append(
            [
                MidiNoteEvent(time_s=tempo.seconds(tick), is_on=is_on, channel=channel, note=note, velocity=velocity)
                for tick, is_on, channel, note, velocity in notes
            ]
        )
    return MidiFile(tracks=tracks, duration_s=tempo.seconds(last_tick), ticks_per_quarter=ticks_per_quarter)


def load_midi_sequence(
    path: str | Path,
    instrument: Instrument,
    channel: int | None = None,
    tempo_change: float = 1.0,
    length_change: float = 1.0,
    skip_percussion: bool = True,
    volume_gain: float = 1.0,
    stereo_pan: float = 0.0,
) -> Sequence:
    """Decode a MIDI file into a sequence played by ``instrument``.

    ``tempo_change`` > 1 plays faster; ``length_change`` scales note sustains.
    The percussion channel is skipped unless ``channel`` selects it. Note-offs
    without a pending note-on are ignored and notes still sounding at the end
    of a track are dropped.
    """
    if tempo_change <= 0:
        raise ValueError("tempo_change must be > 0.")
    if channel is not None and not (0 <= channel <= 15):
        raise ValueError("channel must be in [0,15].")

    midi = read_midi_file(path)
    seq = Sequence(instrument, volume_gain=volume_gain, stereo_pan=stereo_pan, length_change=length_change)
    for events in midi.tracks:
        for ev in events:
            if channel is not None:
                if ev.channel != channel:
                    continue
            elif skip_percussion and ev.channel == PERCUSSION_CHANNEL:
                continue
            time_s = ev.time_s / tempo_change
            if ev.is_on:
                seq.note_on(ev.note, time_s, ev.velocity)
            else:
                seq.note_off(ev.note, time_s)
        seq.discard_pending()
    return seq
