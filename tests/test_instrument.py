import dataclasses
import math
import random
import unittest

import numpy as np

from note_synth.instrument import (
    ANALYSIS_FREQUENCY_HZ,
    ANALYSIS_MARGIN_S,
    ANALYSIS_SAMPLE_RATE,
    ANALYSIS_SUSTAIN_S,
    Instrument,
)
from note_synth.tuning import Scale, Tuning
from note_synth.waveforms import adsr, build_generator, sine


def _probe_peak(instrument: Instrument) -> float:
    count = int(math.ceil((instrument.minimal_note_length + ANALYSIS_MARGIN_S) * ANALYSIS_SAMPLE_RATE))
    times = np.arange(count) / ANALYSIS_SAMPLE_RATE
    out = instrument.play(times, ANALYSIS_FREQUENCY_HZ, ANALYSIS_SUSTAIN_S)
    return float(np.max(np.abs(out)))


class TestInstrument(unittest.TestCase):
    def setUp(self) -> None:
        self.tuning = Tuning(scale=Scale.PTOLEMAIC, base_frequency=440.0)

    def test_minimal_note_length(self) -> None:
        inst = Instrument.create(self.tuning, attack=0.04, decay=0.2, sustain_level=0.6, release=0.3, generator=sine)
        self.assertAlmostEqual(inst.minimal_note_length, 0.54, places=12)

    def test_composite_generator_is_normalized_at_probe(self) -> None:
        loud = build_generator(
            [
                {"waveform": "sine", "weight": 1.0},
                {"waveform": "sine", "weight": 1.0, "detune": 1.005},
                {"waveform": "sawtooth", "weight": 0.8},
            ]
        )
        inst = Instrument.create(self.tuning, attack=0.01, decay=0.1, sustain_level=0.7, release=0.2, generator=loud)
        self.assertLess(inst.normalize_scale, 1.0)
        self.assertLessEqual(_probe_peak(inst), 1.0 + 1e-9)
        self.assertGreater(_probe_peak(inst), 0.99)

    def test_quiet_generator_is_scaled_up(self) -> None:
        quiet = build_generator([{"waveform": "sine", "weight": 0.25}])
        inst = Instrument.create(self.tuning, attack=0.02, decay=0.1, sustain_level=0.5, release=0.1, generator=quiet)
        self.assertGreater(inst.normalize_scale, 3.9)
        self.assertLessEqual(_probe_peak(inst), 1.0 + 1e-9)

    def test_play_is_generator_times_envelope_times_scale(self) -> None:
        inst = Instrument.create(self.tuning, attack=0.05, decay=0.1, sustain_level=0.5, release=0.2, generator=sine)
        t = 0.0731
        expected = sine(t, 330.0) * adsr(t, 0.05, 0.1, 0.4, 0.5, 0.2) * inst.normalize_scale
        self.assertAlmostEqual(inst.play(t, 330.0, 0.4), expected, places=12)

    def test_silent_generator_keeps_unit_scale(self) -> None:
        inst = Instrument.create(
            self.tuning, attack=0.01, decay=0.01, sustain_level=0.5, release=0.01, generator=lambda t, f: 0.0 * t
        )
        self.assertEqual(inst.normalize_scale, 1.0)
        self.assertEqual(inst.play(0.005, 440.0, 0.1), 0.0)

    def test_per_sample_generator_matches_vectorized(self) -> None:
        scalar = Instrument.create(
            self.tuning,
            attack=0.01,
            decay=0.05,
            sustain_level=0.5,
            release=0.05,
            generator=lambda t, f: math.sin(2.0 * math.pi * f * t),
        )
        vectorized = Instrument.create(
            self.tuning, attack=0.01, decay=0.05, sustain_level=0.5, release=0.05, generator=sine
        )
        times = np.arange(200) / 8000
        np.testing.assert_allclose(scalar.play(times, 330.0, 0.1), vectorized.play(times, 330.0, 0.1), atol=1e-12)
        self.assertAlmostEqual(scalar.normalize_scale, vectorized.normalize_scale, places=9)

    def test_scalar_returning_generator_is_called_per_sample(self) -> None:
        rng = random.Random(3)
        inst = Instrument.create(
            self.tuning,
            attack=0.01,
            decay=0.01,
            sustain_level=0.5,
            release=0.01,
            generator=lambda t, f: rng.uniform(-1.0, 1.0),
        )
        out = inst.play(np.arange(1, 101) / 22050, 440.0, 0.1)
        self.assertEqual(out.shape, (100,))
        self.assertGreater(len(np.unique(out)), 90)

    def test_instrument_is_frozen(self) -> None:
        inst = Instrument.create(self.tuning, attack=0.01, decay=0.1, sustain_level=0.5, release=0.1, generator=sine)
        with self.assertRaises(dataclasses.FrozenInstanceError):
            inst.normalize_scale = 2.0  # type: ignore[misc]

    def test_invalid_envelope_raises(self) -> None:
        with self.assertRaises(ValueError):
            Instrument.create(self.tuning, attack=-0.1, decay=0.1, sustain_level=0.5, release=0.1, generator=sine)
        with self.assertRaises(ValueError):
            Instrument.create(self.tuning, attack=0.1, decay=0.1, sustain_level=1.5, release=0.1, generator=sine)


if __name__ == "__main__":
    unittest.main()
