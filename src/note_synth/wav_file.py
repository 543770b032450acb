from __future__ import annotations

import io
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import soundfile as sf

# libsndfile subtype -> bits per sample, linear PCM only.
PCM_SUBTYPE_BITS = {"PCM_U8": 8, "PCM_16": 16, "PCM_24": 24, "PCM_32": 32}


@dataclass(frozen=True)
class WavHeader:
    """Format fields of a PCM WAV file.

    ``sample_count`` counts frames (one sample per channel each).
    """

    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    sample_count: int


def _frames(left: np.ndarray, right: np.ndarray | None) -> np.ndarray:
    channels = [np.asarray(left)] if right is None else [np.asarray(left), np.asarray(right)]
    if any(len(ch) != len(channels[0]) for ch in channels):
        raise ValueError("All channels must have the same length.")
    for ch in channels:
        if ch.ndim != 1 or ch.dtype != np.int16:
            raise ValueError("WAV samples must be 1-D int16 arrays.")
    return channels[0] if right is None else np.column_stack(channels)


def _write(target, left: np.ndarray, right: np.ndarray | None, sample_rate: int) -> None:
    if sample_rate <= 0:
        raise ValueError("sample_rate must be > 0.")
    sf.write(target, _frames(left, right), int(sample_rate), subtype="PCM_16", format="WAV")


def encode_wav(left: np.ndarray, right: np.ndarray | None, sample_rate: int) -> bytes:
    """Serialize int16 samples as a 16-bit PCM WAV file (mono if ``right`` is None)."""
    buffer = io.BytesIO()
    _write(buffer, left, right, sample_rate)
    return buffer.getvalue()


def save_wav(path: str | Path, left: np.ndarray, right: np.ndarray | None, sample_rate: int) -> Path:
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    _write(str(output), left, right, sample_rate)
    return output


def parse_wav_header(data: bytes) -> WavHeader:
    try:
        info = sf.info(io.BytesIO(data))
    except sf.LibsndfileError as exc:
        raise ValueError(f"Invalid WAV data: {exc}") from exc
    if info.format != "WAV":
        raise ValueError(f"Unsupported container: {info.format}")
    bits = PCM_SUBTYPE_BITS.get(info.subtype)
    if bits is None:
        raise ValueError(f"Unsupported WAV encoding: {info.subtype}")
    block_align = info.channels * bits // 8
    return WavHeader(
        channels=info.channels,
        sample_rate=info.samplerate,
        byte_rate=info.samplerate * block_align,
        block_align=block_align,
        bits_per_sample=bits,
        sample_count=info.frames,
    )


def read_wav_header(path: str | Path) -> WavHeader:
    return parse_wav_header(Path(path).read_bytes())
