#!/usr/bin/env python3
"""
Decode a recorded CW audio file offline, without the API.

Runs the same worker as the server through a synchronous in-process call.
Run from project root:
  python3 scripts/decode_wav.py recording.wav --freq 700 --width 250
"""

import argparse
import logging
import sys

# Ensure project root is on path
sys.path.insert(0, ".")


def main():
    import librosa

    import config
    from core.model_runtime import load_sequence_model
    from core.profiles import load_profiles
    from streaming.inference_worker import InferenceWorker, decode_samples
    from core.text_decoder import segments_to_text

    ap = argparse.ArgumentParser(description="Decode Morse code from an audio file")
    ap.add_argument("audio", help="Path to audio file (any format librosa can read)")
    ap.add_argument("--model", default=config.MODEL_PATH, help="TorchScript model for the default profile")
    ap.add_argument("--profiles", default=config.PROFILES_PATH or None, help="JSON file with extra profiles")
    ap.add_argument("--lang", default=config.DEFAULT_LANG)
    ap.add_argument("--freq", type=float, default=None, help="Band-pass center frequency (Hz)")
    ap.add_argument("--width", type=float, default=250.0, help="Band-pass width (Hz)")
    ap.add_argument("--window", type=float, default=None,
                    help="Decode only the last N seconds (default: whole file)")
    ap.add_argument("--device", default=config.DEVICE)
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    cfg = config.get_pipeline_config()
    profiles = load_profiles(args.model, args.profiles)
    if args.lang not in profiles:
        print(f"Unknown language {args.lang!r}; available: {', '.join(sorted(profiles))}")
        return 2

    worker = InferenceWorker(
        profiles,
        lambda ref: load_sequence_model(ref, device=args.device),
        sample_rate=cfg.sample_rate,
        fft_size=cfg.fft_size,
        hop_size=cfg.hop_size,
    )
    samples, _ = librosa.load(args.audio, sr=cfg.sample_rate, mono=True)
    if args.window:
        samples = samples[-int(args.window * cfg.sample_rate):]

    response = decode_samples(worker, args.lang, samples, args.freq, args.width)
    if not response.ok:
        print(f"Decode failed: {response.error}")
        return 1

    print(segments_to_text(response.segments))
    if args.verbose:
        for seg in response.segments:
            print(f"  {'ABBR' if seg.is_abbreviation else 'TEXT'} | {seg.text!r}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
