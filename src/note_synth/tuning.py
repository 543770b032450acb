from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Scale(Enum):
    PTOLEMAIC = "ptolemaic"
    CHROMATIC_12 = "chromatic_12"


# 5-limit just intonation; the diatonic steps are Ptolemy's intense diatonic.
PTOLEMAIC_RATIOS: tuple[float, ...] = (
    1.0,
    16.0 / 15.0,
    9.0 / 8.0,
    6.0 / 5.0,
    5.0 / 4.0,
    4.0 / 3.0,
    45.0 / 32.0,
    3.0 / 2.0,
    8.0 / 5.0,
    5.0 / 3.0,
    9.0 / 5.0,
    15.0 / 8.0,
)

CHROMATIC_12_RATIOS: tuple[float, ...] = tuple(2.0 ** (i / 12.0) for i in range(12))


def ratio_table(scale: Scale) -> tuple[float, ...]:
    if scale is Scale.PTOLEMAIC:
        return PTOLEMAIC_RATIOS
    if scale is Scale.CHROMATIC_12:
        return CHROMATIC_12_RATIOS
    raise ValueError(f"Unsupported scale: {scale!r}")


def parse_scale(name: str | Scale) -> Scale:
    if isinstance(name, Scale):
        return name
    key = str(name).strip().lower().replace("-", "_")
    for scale in Scale:
        if scale.value == key or scale.name.lower() == key:
            return scale
    raise ValueError(f"Unknown scale: {name!r} (valid: {[s.value for s in Scale]})")


@dataclass(frozen=True)
class Tuning:
    """Maps pitches to frequencies through a 12-step ratio table.

    ``base_frequency`` is the frequency of degree 0 in octave 0.
    ``base_note`` is the absolute (MIDI-style) pitch number that sounds at
    ``base_frequency``; 69 makes 440 Hz the A above middle C.
    """

    scale: Scale = Scale.CHROMATIC_12
    base_frequency: float = 440.0
    base_note: int = 69
    ratios: tuple[float, ...] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.base_frequency <= 0:
            raise ValueError("Tuning base_frequency must be positive.")
        object.__setattr__(self, "ratios", ratio_table(self.scale))

    def get_frequency(self, octave: int, degree: int) -> float:
        if not (0 <= degree <= 11):
            raise ValueError(f"Scale degree must be in [0,11], got {degree}.")
        if octave == 0:
            return self.base_frequency * self.ratios[degree]
        return self.base_frequency * (2.0 ** octave) * self.ratios[degree]

    def frequency_for_pitch(self, pitch: int, octave_shift: int = 0) -> float:
        octave, degree = divmod(int(pitch) - self.base_note, 12)
        return self.get_frequency(octave + octave_shift, degree)
