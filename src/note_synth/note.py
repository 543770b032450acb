from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Note:
    """One sealed note event of a sequence.

    - ``frequency`` is the pitch in Hz.
    - ``start_time`` is seconds from the sequence origin.
    - ``sustain_length`` is how long the envelope holds its sustain level, in
      seconds; the audible note is ``attack + decay + sustain_length + release``.
    - ``velocity`` is the note intensity from 0 to 1.
    """

    frequency: float
    start_time: float
    sustain_length: float
    velocity: float = 1.0

    def __post_init__(self) -> None:
        if self.frequency <= 0:
            raise ValueError("Note frequency must be > 0.")
        if self.start_time < 0:
            raise ValueError("Note start_time must be >= 0.")
        if self.sustain_length < 0:
            raise ValueError("Note sustain_length must be >= 0.")
        if not (0.0 <= self.velocity <= 1.0):
            raise ValueError("Note velocity must be in [0,1].")
