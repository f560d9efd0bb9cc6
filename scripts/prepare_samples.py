#!/usr/bin/env python3
"""Prepare audio samples for testing.

Converts audio files to 16kHz mono PCM16 WAV and records one-shot DeepSpeech
transcripts as references for the streaming stress test and the golden
integration test.

Usage:
    uv run scripts/prepare_samples.py --in-dir raw_audio/ --out-dir samples/ \
        --model deepspeech.pbmm [--scorer deepspeech.scorer]

Dependencies:
    uv pip install -e .
    Also requires ffmpeg: sudo apt-get install ffmpeg
"""

import argparse
import hashlib
import json
import subprocess
from pathlib import Path

from dspeech import Model
from dspeech.audio import read_wav


def sh(*cmd: str) -> None:
    """Run a shell command."""
    subprocess.check_call(cmd)


def sha256_file(p: Path) -> str:
    """Compute SHA256 hash of a file."""
    h = hashlib.sha256()
    with p.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def ffmpeg_to_wav(src: Path, dst: Path, sample_rate: int) -> None:
    """Convert any audio file to mono PCM16 WAV at ``sample_rate``."""
    dst.parent.mkdir(parents=True, exist_ok=True)
    sh(
        "ffmpeg",
        "-y",
        "-loglevel",
        "error",
        "-i",
        str(src),
        "-ac",
        "1",  # mono
        "-ar",
        str(sample_rate),
        "-c:a",
        "pcm_s16le",  # 16-bit PCM
        str(dst),
    )


def main() -> None:
    ap = argparse.ArgumentParser(description="Prepare audio samples for STT testing")
    ap.add_argument("--in-dir", required=True, help="Directory with raw audio files")
    ap.add_argument("--out-dir", default="samples", help="Output samples directory")
    ap.add_argument("--model", help="DeepSpeech model used for reference transcripts")
    ap.add_argument("--scorer", help="External scorer for reference transcripts")
    ap.add_argument(
        "--sample-rate",
        type=int,
        default=16000,
        help="Target sample rate when no --model is given",
    )
    args = ap.parse_args()

    in_dir = Path(args.in_dir)
    out_dir = Path(args.out_dir)
    wav_dir = out_dir / "wav"
    manifest_path = out_dir / "manifest.jsonl"
    wav_dir.mkdir(parents=True, exist_ok=True)

    exts = {".wav", ".mp3", ".m4a", ".flac", ".ogg", ".opus", ".aac", ".webm"}
    raw_files = [p for p in sorted(in_dir.rglob("*")) if p.suffix.lower() in exts]

    if not raw_files:
        print(f"No audio files found in {in_dir}")
        return

    print(f"Found {len(raw_files)} audio files")

    model = Model(args.model) if args.model else None
    try:
        if model and args.scorer:
            model.enable_external_scorer(args.scorer)
        sample_rate = model.sample_rate if model else args.sample_rate

        records = []
        for i, src in enumerate(raw_files, 1):
            sample_id = src.stem
            wav = wav_dir / f"{sample_id}.wav"

            print(f"[{i}/{len(raw_files)}] Converting {src.name}...")
            ffmpeg_to_wav(src, wav, sample_rate)
            samples, _ = read_wav(wav)

            ref_text = ""
            if model:
                ref_text = model.transcribe(samples)
                print(f"  Reference: {ref_text[:80]}")

            rec = {
                "id": sample_id,
                "wav_path": str(wav),
                "ref_text": ref_text,
                "sha256": sha256_file(wav),
                "duration_s": len(samples) / sample_rate,
            }
            records.append(rec)
            print(f"  Duration: {rec['duration_s']:.2f}s")
    finally:
        if model:
            model.close()

    with manifest_path.open("w", encoding="utf-8") as mf:
        for rec in records:
            mf.write(json.dumps(rec, ensure_ascii=False) + "\n")

    print(f"\nWrote {manifest_path} with {len(records)} samples")


if __name__ == "__main__":
    main()
