import argparse
from typing import Any

from note_synth.configuration import (
    build_instrument,
    build_tuning,
    get_default_config,
    load_config_file,
    save_config_file,
)
from note_synth.instrument import Instrument
from note_synth.notation import InvalidNoteDescriptor, parse_pitch
from note_synth.sequence import Sequence
from note_synth.track import SampleRate, Track
from note_synth.wav_file import read_wav_header

# CLI flag -> (config section, key)
_RENDER_OVERRIDES: dict[str, tuple[str, str]] = {
    "scale": ("tuning", "scale"),
    "base_frequency": ("tuning", "base_frequency"),
    "base_note": ("tuning", "base_note"),
    "attack": ("instrument", "attack"),
    "decay": ("instrument", "decay"),
    "sustain_level": ("instrument", "sustain_level"),
    "release": ("instrument", "release"),
    "seed": ("instrument", "noise_seed"),
    "tempo_change": ("sequence", "tempo_change"),
    "length_change": ("sequence", "length_change"),
    "gain": ("sequence", "volume_gain"),
    "pan": ("sequence", "stereo_pan"),
    "channel": ("sequence", "channel"),
    "sample_rate": ("render", "sample_rate"),
    "delay": ("render", "delay_seconds"),
    "length": ("render", "length_seconds"),
    "tail_seconds": ("render", "tail_seconds"),
}


def _resolve_config(args: argparse.Namespace, overrides: dict[str, tuple[str, str]]) -> dict[str, Any]:
    config = load_config_file(args.config) if args.config else get_default_config()
    for flag, (section, key) in overrides.items():
        value = getattr(args, flag, None)
        if value is not None:
            config[section][key] = value
    if getattr(args, "include_percussion", False):
        config["sequence"]["skip_percussion"] = False
    return config


def _load_sequence(
    config: dict[str, Any],
    instrument: Instrument,
    notation: str | None,
    midi_path: str | None,
    notes_json_path: str | None,
) -> Sequence:
    from note_synth.midi_file import load_midi_sequence
    from note_synth.note_io import load_notes_json

    if sum(source is not None for source in (notation, midi_path, notes_json_path)) != 1:
        raise ValueError("Provide exactly one of notation, midi_path or notes_json_path.")

    seq_cfg = config["sequence"]
    tempo_change = float(seq_cfg["tempo_change"])
    length_change = float(seq_cfg["length_change"])
    volume_gain = float(seq_cfg["volume_gain"])
    stereo_pan = float(seq_cfg["stereo_pan"])

    if midi_path is not None:
        channel = seq_cfg["channel"]
        return load_midi_sequence(
            midi_path,
            instrument,
            channel=None if channel is None else int(channel),
            tempo_change=tempo_change,
            length_change=length_change,
            skip_percussion=bool(seq_cfg["skip_percussion"]),
            volume_gain=volume_gain,
            stereo_pan=stereo_pan,
        )

    if notes_json_path is not None:
        seq = Sequence(instrument, volume_gain=volume_gain, stereo_pan=stereo_pan, length_change=length_change)
        seq.extend(
            load_notes_json(notes_json_path, instrument.tuning, tempo_change=tempo_change, length_change=length_change)
        )
        return seq

    return Sequence.from_notation(
        instrument,
        notation,
        tempo_change=tempo_change,
        length_change=length_change,
        volume_gain=volume_gain,
        stereo_pan=stereo_pan,
    )


def render_audio(
    config: dict[str, Any],
    notation: str | None,
    midi_path: str | None,
    notes_json_path: str | None,
    output_wav: str,
) -> int:
    try:
        instrument = build_instrument(config)
        seq = _load_sequence(config, instrument, notation, midi_path, notes_json_path)
    except InvalidNoteDescriptor as exc:
        print(f"Invalid note: {exc}")
        return 1
    except OSError as exc:
        print(f"Could not read input: {exc}")
        return 1
    except (ValueError, KeyError) as exc:
        print(f"Could not load notes: {exc}")
        return 1

    render_cfg = config["render"]
    try:
        track = Track(SampleRate(int(render_cfg["sample_rate"])))
    except ValueError as exc:
        print(f"Unsupported sample rate: {exc}")
        return 1
    track.add_sequence(seq)

    delay_s = float(render_cfg["delay_seconds"])
    if render_cfg["length_seconds"] is not None:
        length_s = float(render_cfg["length_seconds"])
    else:
        length_s = track.total_length + float(render_cfg["tail_seconds"])

    sample_count = track.render(delay=delay_s, length=length_s)
    out = track.save_wav(output_wav)
    print(f"Rendered {len(seq.notes)} notes into {sample_count} samples at {int(track.sample_rate)} Hz")
    print(f"Wrote audio to {out}")
    return 0


def probe_notes(tokens: list[str], config: dict[str, Any]) -> int:
    tuning = build_tuning(config)

    print("note,octave,degree,frequency_hz")
    code = 0
    for token in tokens:
        try:
            octave, degree = parse_pitch(token)
        except InvalidNoteDescriptor:
            print(f"{token},,,invalid")
            code = 2
            continue
        print(f"{token},{octave},{degree},{tuning.get_frequency(octave, degree):.6f}")
    return code


def inspect_wav(path: str) -> int:
    try:
        header = read_wav_header(path)
    except FileNotFoundError:
        print(f"File not found: {path}")
        return 1
    except ValueError as exc:
        print(f"Not a PCM WAV file: {exc}")
        return 1
    print(f"channels={header.channels}")
    print(f"sample_rate={header.sample_rate}")
    print(f"bits_per_sample={header.bits_per_sample}")
    print(f"sample_count={header.sample_count}")
    print(f"duration_s={header.sample_count / header.sample_rate:.6f}")
    return 0


def _add_tuning_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", type=str, default=None, help="JSON config file merged over defaults.")
    parser.add_argument(
        "--scale",
        type=str,
        choices=["ptolemaic", "chromatic_12"],
        default=None,
        help="Tuning ratio table (default: ptolemaic).",
    )
    parser.add_argument(
        "--base-frequency",
        type=float,
        default=None,
        help="Frequency of degree 0 in octave 0, in Hz (default: 440).",
    )
    parser.add_argument(
        "--base-note",
        type=int,
        default=None,
        help="MIDI note number sounding at the base frequency (default: 69).",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Offline note sequence synthesizer")
    subparsers = parser.add_subparsers(dest="command")

    render = subparsers.add_parser("render", help="Render notes to a stereo 16-bit WAV file")
    source_group = render.add_mutually_exclusive_group(required=True)
    source_group.add_argument("--notation", type=str, help='Note list such as "C0:0:0.7, D0:1:0.7".')
    source_group.add_argument("--midi", type=str, help="Input MIDI file path (.mid/.midi).")
    source_group.add_argument(
        "--notes-json",
        type=str,
        help="Input JSON file with notes: [{note|midi_note,start_s,sustain_s,velocity?}, ...].",
    )
    render.add_argument("--output", type=str, required=True, help="Output WAV path.")
    _add_tuning_args(render)
    render.add_argument("--save-config", type=str, default=None, help="Write the resolved config to this path.")
    render.add_argument(
        "--sample-rate",
        type=int,
        choices=[int(rate) for rate in SampleRate],
        default=None,
        help="Output sample rate in Hz (default: 44100).",
    )
    render.add_argument("--delay", type=float, default=None, help="Silence before the first note, in seconds.")
    render.add_argument(
        "--length",
        type=float,
        default=None,
        help="Render length after the delay, in seconds. If omitted, derived from the notes.",
    )
    render.add_argument(
        "--tail-seconds",
        type=float,
        default=None,
        help="Extra silence after the last note when --length is omitted (default: 0).",
    )
    render.add_argument("--tempo-change", type=float, default=None, help="Tempo multiplier (default: 1.0).")
    render.add_argument("--length-change", type=float, default=None, help="Note length multiplier (default: 1.0).")
    render.add_argument("--channel", type=int, default=None, help="Only render this MIDI channel (0-15).")
    render.add_argument(
        "--include-percussion",
        action="store_true",
        help="Also render MIDI channel 9 (General MIDI percussion).",
    )
    render.add_argument("--attack", type=float, default=None, help="Attack time in seconds (default: 0.04).")
    render.add_argument("--decay", type=float, default=None, help="Decay time in seconds (default: 0.2).")
    render.add_argument("--sustain-level", type=float, default=None, help="Sustain level in [0,1] (default: 0.6).")
    render.add_argument("--release", type=float, default=None, help="Release time in seconds (default: 0.3).")
    render.add_argument("--pan", type=float, default=None, help="Stereo pan in [-1,1] (default: 0).")
    render.add_argument("--gain", type=float, default=None, help="Sequence volume gain (default: 1.0).")
    render.add_argument("--seed", type=int, default=None, help="Seed for noise voices.")

    probe = subparsers.add_parser("probe", help="Print frequencies of note names for a tuning")
    probe.add_argument(
        "--note",
        dest="notes",
        type=str,
        action="append",
        required=True,
        help="Note name such as C0 or F#-1. Pass multiple --note values to probe several.",
    )
    _add_tuning_args(probe)

    inspect = subparsers.add_parser("inspect", help="Print the header fields of a WAV file")
    inspect.add_argument("path", type=str, help="WAV file path.")
    return parser


def _validate_tuning_args(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    if args.base_frequency is not None and args.base_frequency <= 0:
        parser.error("--base-frequency must be > 0.")


def _validate_render_args(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    _validate_tuning_args(parser, args)
    if args.delay is not None and args.delay < 0:
        parser.error("--delay must be >= 0.")
    if args.length is not None and args.length < 0:
        parser.error("--length must be >= 0 when provided.")
    if args.tail_seconds is not None and args.tail_seconds < 0:
        parser.error("--tail-seconds must be >= 0.")
    if args.tempo_change is not None and args.tempo_change <= 0:
        parser.error("--tempo-change must be > 0.")
    if args.length_change is not None and args.length_change < 0:
        parser.error("--length-change must be >= 0.")
    if args.channel is not None and not (0 <= args.channel <= 15):
        parser.error("--channel must be between 0 and 15.")
    for flag, value in (("--attack", args.attack), ("--decay", args.decay), ("--release", args.release)):
        if value is not None and value < 0:
            parser.error(f"{flag} must be >= 0.")
    if args.sustain_level is not None and not (0.0 <= args.sustain_level <= 1.0):
        parser.error("--sustain-level must be between 0 and 1.")
    if args.pan is not None and not (-1.0 <= args.pan <= 1.0):
        parser.error("--pan must be between -1 and 1.")
    if args.gain is not None and args.gain < 0:
        parser.error("--gain must be >= 0.")


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "render":
        _validate_render_args(parser, args)
        config = _resolve_config(args, _RENDER_OVERRIDES)
        if args.save_config:
            saved = save_config_file(args.save_config, config)
            print(f"Saved config to {saved}")
        raise SystemExit(
            render_audio(
                config=config,
                notation=args.notation,
                midi_path=args.midi,
                notes_json_path=args.notes_json,
                output_wav=args.output,
            )
        )

    if args.command == "probe":
        _validate_tuning_args(parser, args)
        config = _resolve_config(
            args,
            {key: value for key, value in _RENDER_OVERRIDES.items() if value[0] == "tuning"},
        )
        raise SystemExit(probe_notes(tokens=args.notes, config=config))

    if args.command == "inspect":
        raise SystemExit(inspect_wav(args.path))

    if args.command is None:
        parser.print_help()
        raise SystemExit(2)

    parser.error(f"Unsupported command: {args.command}")


if __name__ == "__main__":
    main()
