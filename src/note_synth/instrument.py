from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from note_synth.tuning import Tuning
from note_synth.waveforms import Generator, adsr

ANALYSIS_SAMPLE_RATE = 65_536
ANALYSIS_FREQUENCY_HZ = 440.0
ANALYSIS_SUSTAIN_S = 0.5
ANALYSIS_MARGIN_S = 0.5


def _validate_envelope(attack: float, decay: float, sustain_level: float, release: float) -> None:
    if attack < 0 or decay < 0 or release < 0:
        raise ValueError("Instrument attack, decay and release must be >= 0.")
    if not (0.0 <= sustain_level <= 1.0):
        raise ValueError("Instrument sustain_level must be in [0,1].")


def _vectorized(generator: Generator) -> Generator:
    """Return ``generator`` if it maps a time array to a same-shaped array.

    Per-sample callables (scalar in, scalar out) are wrapped with
    ``np.vectorize`` so they can be rendered like the built-in waveforms.
    """
    times = np.arange(8, dtype=np.float64) / ANALYSIS_SAMPLE_RATE
    try:
        shape = np.shape(generator(times, ANALYSIS_FREQUENCY_HZ))
    except (TypeError, ValueError):
        shape = None
    if shape == times.shape:
        return generator
    return np.vectorize(generator, otypes=[np.float64])


def _raw_output(
    generator: Generator,
    times: np.ndarray,
    frequency: float,
    attack: float,
    decay: float,
    sustain_length: float,
    sustain_level: float,
    release: float,
) -> np.ndarray:
    raw = np.broadcast_to(np.asarray(generator(times, frequency), dtype=np.float64), times.shape)
    return raw * adsr(times, attack, decay, sustain_length, sustain_level, release)


def analyse_peak(
    generator: Generator,
    attack: float,
    decay: float,
    sustain_level: float,
    release: float,
) -> float:
    """Peak magnitude of the un-normalized output over the fixed probe note."""
    interval_s = attack + decay + release + ANALYSIS_MARGIN_S
    sample_count = int(math.ceil(interval_s * ANALYSIS_SAMPLE_RATE))
    times = np.arange(sample_count, dtype=np.float64) / ANALYSIS_SAMPLE_RATE
    samples = _raw_output(
        generator,
        times,
        ANALYSIS_FREQUENCY_HZ,
        attack,
        decay,
        ANALYSIS_SUSTAIN_S,
        sustain_level,
        release,
    )
    if samples.size == 0:
        return 0.0
    return float(max(np.max(samples), abs(np.min(samples))))


@dataclass(frozen=True)
class Instrument:
    """Sound of a sequence: a generator shaped by an ADSR envelope.

    Build instances with ``Instrument.create`` so ``normalize_scale`` comes from
    the amplitude analysis pass; the object is read-only afterwards. ``create``
    also accepts per-sample generators and stores them vectorized.
    """

    tuning: Tuning
    attack: float
    decay: float
    sustain_level: float
    release: float
    generator: Generator
    normalize_scale: float = 1.0
    minimal_note_length: float = field(init=False)

    def __post_init__(self) -> None:
        _validate_envelope(self.attack, self.decay, self.sustain_level, self.release)
        if not math.isfinite(self.normalize_scale) or self.normalize_scale <= 0:
            raise ValueError("Instrument normalize_scale must be a positive finite number.")
        object.__setattr__(self, "minimal_note_length", self.attack + self.decay + self.release)

    @classmethod
    def create(
        cls,
        tuning: Tuning,
        attack: float,
        decay: float,
        sustain_level: float,
        release: float,
        generator: Generator,
    ) -> Instrument:
        _validate_envelope(attack, decay, sustain_level, release)
        generator = _vectorized(generator)
        peak = analyse_peak(generator, attack, decay, sustain_level, release)
        scale = 1.0 / peak if peak > 0 else 1.0
        return cls(
            tuning=tuning,
            attack=attack,
            decay=decay,
            sustain_level=sustain_level,
            release=release,
            generator=generator,
            normalize_scale=scale,
        )

    def play(self, time: Any, frequency: float, sustain_length: float) -> Any:
        t = np.asarray(time, dtype=np.float64)
        out = (
            _raw_output(
                self.generator,
                t,
                frequency,
                self.attack,
                self.decay,
                sustain_length,
                self.sustain_level,
                self.release,
            )
            * self.normalize_scale
        )
        if out.ndim == 0:
            return float(out)
        return out
