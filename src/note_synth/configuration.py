from __future__ import annotations

import json
from copy import deepcopy
from pathlib import Path
from typing import Any

from note_synth.instrument import Instrument
from note_synth.tuning import Tuning, parse_scale
from note_synth.waveforms import NoiseSource, build_generator

DEFAULT_CONFIG: dict[str, dict[str, Any]] = {
    "tuning": {
        "scale": "ptolemaic",
        "base_frequency": 440.0,
        "base_note": 69,
    },
    "instrument": {
        "attack": 0.04,
        "decay": 0.2,
        "sustain_level": 0.6,
        "release": 0.3,
        "noise_seed": None,
        "voices": [
            {"waveform": "sine", "weight": 1.0},
        ],
    },
    "sequence": {
        "tempo_change": 1.0,
        "length_change": 1.0,
        "volume_gain": 1.0,
        "stereo_pan": 0.0,
        "channel": None,
        "skip_percussion": True,
    },
    "render": {
        "sample_rate": 44100,
        "delay_seconds": 0.0,
        "length_seconds": None,
        "tail_seconds": 0.0,
    },
}


def get_default_config() -> dict[str, dict[str, Any]]:
    return deepcopy(DEFAULT_CONFIG)


def _deep_merge_dict(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    out = deepcopy(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _deep_merge_dict(out[key], value)
        else:
            out[key] = value
    return out


def load_config_file(path: str | Path) -> dict[str, dict[str, Any]]:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Config root must be a JSON object.")
    return _deep_merge_dict(get_default_config(), payload)


def save_config_file(path: str | Path, config: dict[str, Any]) -> Path:
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(config, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    return output


def build_tuning(config: dict[str, Any]) -> Tuning:
    section = config["tuning"]
    return Tuning(
        scale=parse_scale(section["scale"]),
        base_frequency=float(section["base_frequency"]),
        base_note=int(section["base_note"]),
    )


def build_instrument(config: dict[str, Any], tuning: Tuning | None = None) -> Instrument:
    section = config["instrument"]
    voices = section["voices"]
    noise = None
    if any(str(v.get("waveform", "")).lower() == "noise" for v in voices):
        noise = NoiseSource(section.get("noise_seed"))
    return Instrument.create(
        tuning=tuning if tuning is not None else build_tuning(config),
        attack=float(section["attack"]),
        decay=float(section["decay"]),
        sustain_level=float(section["sustain_level"]),
        release=float(section["release"]),
        generator=build_generator(voices, noise=noise),
    )
