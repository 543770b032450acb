from __future__ import annotations

import math
from enum import IntEnum
from pathlib import Path

import numpy as np

from note_synth.instrument import Instrument
from note_synth.sequence import Sequence
from note_synth.wav_file import save_wav

EXPORT_PEAK = 0.95
PCM16_SCALE = 32256.0


class SampleRate(IntEnum):
    R_22050_HZ = 22_050
    R_44100_HZ = 44_100
    R_48000_HZ = 48_000


class EmptyBufferExport(RuntimeError):
    """Raised when a track is exported before it has been rendered."""


def normalize_channel(samples: np.ndarray, peak: float = EXPORT_PEAK) -> np.ndarray:
    """Scale ``samples`` so their largest magnitude becomes ``peak``."""
    if samples.size == 0:
        return samples.astype(np.float64)
    magnitude = float(max(np.max(samples), abs(np.min(samples))))
    if magnitude <= 0:
        return samples.astype(np.float64)
    return samples * (peak / magnitude)


def to_pcm16(samples: np.ndarray) -> np.ndarray:
    return np.rint(samples * PCM16_SCALE).astype(np.int16)


class Track:
    def __init__(self, sample_rate: SampleRate | int = SampleRate.R_44100_HZ):
        self.sample_rate = SampleRate(int(sample_rate))
        self.sequences: list[Sequence] = []
        self._left: np.ndarray | None = None
        self._right: np.ndarray | None = None

    def add_sequence(self, sequence: Sequence) -> Sequence:
        self.sequences.append(sequence)
        return sequence

    def add_notation(
        self,
        instrument: Instrument,
        text: str,
        tempo_change: float = 1.0,
        length_change: float = 1.0,
        volume_gain: float = 1.0,
        stereo_pan: float = 0.0,
    ) -> Sequence:
        return self.add_sequence(
            Sequence.from_notation(
                instrument,
                text,
                tempo_change=tempo_change,
                length_change=length_change,
                volume_gain=volume_gain,
                stereo_pan=stereo_pan,
            )
        )

    @property
    def total_length(self) -> float:
        return max((seq.total_length for seq in self.sequences), default=0.0)

    @property
    def left(self) -> np.ndarray:
        if self._left is None:
            raise EmptyBufferExport("Track has not been rendered.")
        return self._left

    @property
    def right(self) -> np.ndarray:
        if self._right is None:
            raise EmptyBufferExport("Track has not been rendered.")
        return self._right

    def render(self, delay: float = 0.0, length: float | None = None) -> int:
        """Mix every sequence into fresh left/right buffers.

        ``length`` defaults to the longest sequence. Notes running past
        ``delay + length`` are cut off. Returns the buffer length in samples.
        """
        if delay < 0:
            raise ValueError("delay must be >= 0.")
        if length is None:
            length = self.total_length
        if length < 0:
            raise ValueError("length must be >= 0.")

        sr = int(self.sample_rate)
        n_samples = int(math.ceil((length + delay) * sr))
        left = np.zeros(n_samples, dtype=np.float64)
        right = np.zeros(n_samples, dtype=np.float64)

        for seq in self.sequences:
            instrument = seq.instrument
            pan = (seq.stereo_pan + 1.0) * 0.5
            for note in seq.notes:
                start = delay + note.start_time
                note_length = instrument.minimal_note_length + note.sustain_length
                sample_count = int(math.ceil(note_length * sr))
                start_index = int(math.floor(start * sr))
                end_index = min(start_index + sample_count, n_samples)
                if end_index <= start_index:
                    continue
                times = np.arange(end_index - start_index, dtype=np.float64) / sr
                value = instrument.play(times, note.frequency, note.sustain_length) * note.velocity * seq.volume_gain
                left[start_index:end_index] += value * (1.0 - pan)
                right[start_index:end_index] += value * pan

        self._left = left
        self._right = right
        return n_samples

    def to_pcm16(self) -> tuple[np.ndarray, np.ndarray]:
        if self._left is None or self._right is None:
            raise EmptyBufferExport("Track.to_pcm16(): empty buffer, call render() first.")
        return to_pcm16(normalize_channel(self._left)), to_pcm16(normalize_channel(self._right))

    def save_wav(self, path: str | Path) -> Path:
        left, right = self.to_pcm16()
        return save_wav(path, left, right, int(self.sample_rate))
