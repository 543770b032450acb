import io
import tempfile
import unittest
from pathlib import Path

import numpy as np
import soundfile as sf

from note_synth.wav_file import encode_wav, parse_wav_header, read_wav_header, save_wav


class TestWavFile(unittest.TestCase):
    def test_stereo_round_trip_keeps_channel_order(self) -> None:
        left = np.array([1, -2, 300], dtype=np.int16)
        right = np.array([-1, 2, -300], dtype=np.int16)
        data = encode_wav(left, right, 22050)

        self.assertEqual(data[0:4], b"RIFF")
        self.assertEqual(data[8:12], b"WAVE")
        frames, sr = sf.read(io.BytesIO(data), dtype="int16")
        self.assertEqual(sr, 22050)
        np.testing.assert_array_equal(frames, [[1, -1], [-2, 2], [300, -300]])

        header = parse_wav_header(data)
        self.assertEqual(header.channels, 2)
        self.assertEqual(header.byte_rate, 22050 * 4)
        self.assertEqual(header.block_align, 4)
        self.assertEqual(header.bits_per_sample, 16)
        self.assertEqual(header.sample_count, 3)

    def test_mono_header_round_trip(self) -> None:
        header = parse_wav_header(encode_wav(np.zeros(10, dtype=np.int16), None, 44100))
        self.assertEqual(header.channels, 1)
        self.assertEqual(header.sample_rate, 44100)
        self.assertEqual(header.byte_rate, 88200)
        self.assertEqual(header.block_align, 2)
        self.assertEqual(header.sample_count, 10)

    def test_save_creates_missing_directories(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            out = save_wav(Path(td) / "deep/nested/out.wav", np.zeros(3, dtype=np.int16), None, 48000)
            self.assertTrue(out.exists())
            header = read_wav_header(out)
        self.assertEqual(header.sample_count, 3)
        self.assertEqual(header.sample_rate, 48000)

    def test_rejects_invalid_input(self) -> None:
        with self.assertRaises(ValueError):
            parse_wav_header(b"not a wav file at all")
        with self.assertRaises(ValueError):
            encode_wav(np.zeros(3, dtype=np.int16), np.zeros(4, dtype=np.int16), 44100)
        with self.assertRaises(ValueError):
            encode_wav(np.zeros(3, dtype=np.float64), None, 44100)
        with self.assertRaises(ValueError):
            encode_wav(np.zeros(3, dtype=np.int16), None, 0)

    def test_missing_file_raises(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(FileNotFoundError):
                read_wav_header(Path(td) / "missing.wav")


if __name__ == "__main__":
    unittest.main()
