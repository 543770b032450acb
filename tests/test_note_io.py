import tempfile
import unittest
from pathlib import Path

from note_synth.notation import InvalidNoteDescriptor
from note_synth.note_io import load_notes_json
from note_synth.tuning import Scale, Tuning


class TestNoteIo(unittest.TestCase):
    def setUp(self) -> None:
        self.tuning = Tuning(scale=Scale.CHROMATIC_12, base_frequency=440.0, base_note=69)

    def _load(self, payload: str, **kwargs):
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "notes.json"
            p.write_text(payload, encoding="utf-8")
            return load_notes_json(p, self.tuning, **kwargs)

    def test_load_notes_json(self) -> None:
        payload = (
            '[{"note": "C0", "start_s": 0.0, "sustain_s": 0.4},'
            ' {"midi_note": 81, "start_s": 0.5, "sustain_s": 0.2, "velocity": 0.5}]'
        )
        notes = self._load(payload)

        self.assertEqual(len(notes), 2)
        self.assertEqual(notes[0].frequency, 440.0)
        self.assertEqual(notes[0].velocity, 1.0)
        self.assertAlmostEqual(notes[1].frequency, 880.0, places=9)
        self.assertEqual(notes[1].start_time, 0.5)
        self.assertEqual(notes[1].velocity, 0.5)

    def test_tempo_and_length_change(self) -> None:
        notes = self._load('[{"note": "A0", "start_s": 1.0, "sustain_s": 0.4}]', tempo_change=2.0, length_change=2.0)
        self.assertEqual(notes[0].start_time, 0.5)
        self.assertEqual(notes[0].sustain_length, 0.8)

    def test_rejects_bad_payloads(self) -> None:
        with self.assertRaises(ValueError):
            self._load('{"note": "C0"}')
        with self.assertRaises(ValueError):
            self._load("[1, 2]")
        with self.assertRaises(ValueError):
            self._load('[{"start_s": 0.0, "sustain_s": 0.4}]')
        with self.assertRaises(InvalidNoteDescriptor):
            self._load('[{"note": "H2", "start_s": 0.0, "sustain_s": 0.4}]')


if __name__ == "__main__":
    unittest.main()
