from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping
from typing import Any

import numpy as np

# Curvature base of the ADSR segments; higher values give steeper curves.
ADSR_EXP = 9.0

# (time, frequency) -> amplitude. Built-in generators take a numpy array of
# sample times and return an array of the same shape.
Generator = Callable[[Any, float], Any]


def _as_output(values: np.ndarray) -> Any:
    if values.ndim == 0:
        return float(values)
    return values


def _phase(time: Any, frequency: float) -> np.ndarray:
    return np.asarray(time, dtype=np.float64) * float(frequency)


def sine(time: Any, frequency: float) -> Any:
    return _as_output(np.sin(2.0 * np.pi * _phase(time, frequency)))


def semi_sine(time: Any, frequency: float) -> Any:
    return _as_output(np.abs(np.sin(np.pi * _phase(time, frequency))) * 2.0 - 1.0)


def square(time: Any, frequency: float) -> Any:
    half_periods = np.floor(2.0 * _phase(time, frequency))
    return _as_output(np.where(np.mod(half_periods, 2.0) == 0.0, 1.0, -1.0))


def sawtooth(time: Any, frequency: float) -> Any:
    periods = _phase(time, frequency)
    fractional = periods - np.floor(periods)
    return _as_output(fractional * 2.0 - 1.0)


def triangle(time: Any, frequency: float) -> Any:
    periods = _phase(time, frequency)
    fractional = periods - np.floor(periods)
    rising = np.mod(np.floor(2.0 * periods), 2.0) == 0.0
    return _as_output(np.where(rising, fractional * 4.0 - 1.0, 3.0 - fractional * 4.0))


class NoiseSource:
    """Uniform white noise in [-1, 1] drawn from an explicitly owned random stream.

    Instruments that mix noise into their timbre capture one of these in their
    generator closure. Seeding it makes a render reproducible; ``spawn`` gives
    an independent child stream for renders running on other threads.
    """

    def __init__(self, seed: int | np.random.SeedSequence | None = None):
        if isinstance(seed, np.random.SeedSequence):
            self._seed_sequence = seed
        else:
            self._seed_sequence = np.random.SeedSequence(seed)
        self._rng = np.random.default_rng(self._seed_sequence)
        self._lock = threading.Lock()

    def __call__(self, time: Any, frequency: float | None = None) -> Any:
        shape = np.shape(time)
        with self._lock:
            values = self._rng.uniform(-1.0, 1.0, size=shape)
        return _as_output(np.asarray(values, dtype=np.float64))

    def spawn(self) -> NoiseSource:
        with self._lock:
            child_seed = self._seed_sequence.spawn(1)[0]
        return NoiseSource(child_seed)


WAVEFORMS: dict[str, Generator] = {
    "sine": sine,
    "semi_sine": semi_sine,
    "square": square,
    "sawtooth": sawtooth,
    "triangle": triangle,
}


def build_generator(voices: Iterable[Mapping[str, Any]], noise: NoiseSource | None = None) -> Generator:
    """Compose weighted, detuned waveform voices into a single generator.

    Each voice is a mapping with ``waveform`` (a key of ``WAVEFORMS`` or
    ``"noise"``), and optional ``weight`` (default 1.0), ``detune`` frequency
    ratio (default 1.0) and ``offset_hz`` (default 0.0).
    """
    layers: list[tuple[Generator, float, float, float]] = []
    for idx, voice in enumerate(voices):
        name = str(voice.get("waveform", "")).lower()
        if name == "noise":
            if noise is None:
                raise ValueError(f"Voice {idx} uses noise but no NoiseSource was provided.")
            fn: Generator = noise
        else:
            lookup = WAVEFORMS.get(name)
            if lookup is None:
                raise ValueError(f"Unknown waveform in voice {idx}: {name!r} (valid: {sorted(WAVEFORMS) + ['noise']})")
            fn = lookup
        layers.append(
            (
                fn,
                float(voice.get("weight", 1.0)),
                float(voice.get("detune", 1.0)),
                float(voice.get("offset_hz", 0.0)),
            )
        )
    if not layers:
        raise ValueError("At least one voice is required.")

    def generator(time: Any, frequency: float) -> Any:
        total = np.zeros(np.shape(time), dtype=np.float64)
        for fn, weight, detune, offset_hz in layers:
            total = total + weight * np.asarray(fn(time, frequency * detune + offset_hz), dtype=np.float64)
        return _as_output(total)

    return generator


def _exp_increase(time: np.ndarray, width: float, height: float) -> np.ndarray:
    return height * (ADSR_EXP / (ADSR_EXP - 1.0)) * (1.0 - np.power(ADSR_EXP, -time / width))


def _exp_decrease(time: np.ndarray, width: float, height: float) -> np.ndarray:
    return height * (ADSR_EXP / (ADSR_EXP - 1.0)) * (np.power(ADSR_EXP, -time / width) - 1.0 / ADSR_EXP)


def adsr(
    time: Any,
    attack: float,
    decay: float,
    sustain_length: float,
    sustain_level: float,
    release: float,
) -> Any:
    """Attack-decay-sustain-release envelope value(s) in [0, 1].

    ``time`` is seconds since the note started, as a float or an array.
    """
    t = np.asarray(time, dtype=np.float64)
    env = np.zeros(t.shape, dtype=np.float64)
    to_decay = attack + decay
    to_sustain = to_decay + sustain_length
    to_release = to_sustain + release

    mask = (t >= 0.0) & (t < attack)
    env[mask] = _exp_increase(t[mask], attack, 1.0)

    mask = (t >= attack) & (t < to_decay)
    env[mask] = sustain_level + _exp_decrease(t[mask] - attack, decay, 1.0 - sustain_level)

    mask = (t >= to_decay) & (t < to_sustain)
    env[mask] = sustain_level

    mask = (t >= to_sustain) & (t < to_release)
    env[mask] = _exp_decrease(t[mask] - to_sustain, release, sustain_level)

    return _as_output(env)
