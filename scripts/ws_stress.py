#!/usr/bin/env python3
"""Concurrent streaming check for the DeepSpeech WebSocket server.

Every connection owns one native Stream on the shared Model. For each
session this reports:

- how long each partial took, measured from the chunk that triggered the
  intermediate decode, against the seconds of audio fed so far (an
  intermediate decode re-decodes the whole stream, so this grows with
  stream length)
- how often a partial came back shorter than the one before it
- whether the final transcript equals the one-shot transcript recorded in
  the samples manifest

Latencies assume the server keeps up with the send pace; use --realtime
for meaningful numbers.

Usage:
    uv run scripts/ws_stress.py --uri ws://127.0.0.1:8000/v1/stream --concurrency 4 --realtime

Dependencies:
    uv pip install websockets soundfile numpy rich
"""

import argparse
import asyncio
import difflib
import json
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
import soundfile as sf
import websockets
from rich.console import Console
from rich.table import Table

SAMPLE_RATE = 16000
BYTES_PER_SAMPLE = 2
DECODE_THRESHOLD_BYTES = 10240

console = Console()


@dataclass
class Partial:
    audio_s: float
    latency_s: float
    words: int


@dataclass
class SessionResult:
    sample_id: str
    audio_s: float
    ref_text: str
    final_text: str = ""
    partials: list[Partial] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def exact(self) -> bool:
        return " ".join(self.final_text.split()) == " ".join(self.ref_text.split())

    @property
    def similarity(self) -> float:
        matcher = difflib.SequenceMatcher(None, self.ref_text.split(), self.final_text.split())
        return matcher.ratio()

    @property
    def shrinking(self) -> int:
        """Partials with fewer words than the partial before them."""
        return sum(1 for a, b in zip(self.partials, self.partials[1:]) if b.words < a.words)


def load_pcm16(wav_path: Path) -> bytes:
    audio, sr = sf.read(str(wav_path), dtype="int16", always_2d=False)
    if sr != SAMPLE_RATE:
        raise ValueError(f"{wav_path} sample rate is {sr}, expected {SAMPLE_RATE}")
    if audio.ndim != 1:
        raise ValueError(f"{wav_path} must be mono")
    return np.ascontiguousarray(audio, dtype="<i2").tobytes()


async def run_session(uri: str, sample: dict, chunk_ms: int, realtime: bool) -> SessionResult:
    pcm = load_pcm16(Path(sample["wav_path"]))
    result = SessionResult(
        sample_id=sample["id"],
        audio_s=len(pcm) / (SAMPLE_RATE * BYTES_PER_SAMPLE),
        ref_text=sample.get("ref_text", ""),
    )
    step = chunk_ms * SAMPLE_RATE * BYTES_PER_SAMPLE // 1000

    # Mirrors the server: a decode runs whenever undecoded audio reaches the threshold.
    last_trigger = {"at": time.perf_counter(), "audio_s": 0.0}

    async with websockets.connect(uri, max_size=2**24) as ws:

        async def sender():
            pending = 0
            sent = 0
            for i in range(0, len(pcm), step):
                chunk = pcm[i : i + step]
                await ws.send(chunk)
                sent += len(chunk)
                pending += len(chunk)
                if pending >= DECODE_THRESHOLD_BYTES:
                    pending = 0
                    last_trigger["at"] = time.perf_counter()
                    last_trigger["audio_s"] = sent / (SAMPLE_RATE * BYTES_PER_SAMPLE)
                if realtime:
                    await asyncio.sleep(chunk_ms / 1000.0)
            await ws.send(b"EOS")

        async def receiver():
            while True:
                data = json.loads(await ws.recv())
                if "error" in data:
                    result.errors.append(data["error"])
                elif data.get("final") is True:
                    result.final_text = data.get("text", "")
                elif "text" in data:
                    result.partials.append(
                        Partial(
                            audio_s=last_trigger["audio_s"],
                            latency_s=time.perf_counter() - last_trigger["at"],
                            words=len(data["text"].split()),
                        )
                    )
                if data.get("status") == "complete":
                    return

        await asyncio.gather(sender(), receiver())

    return result


def latency_slope_ms(results: list[SessionResult]) -> float | None:
    """Fitted partial latency growth, in ms per second of audio fed."""
    points = [(p.audio_s, p.latency_s) for r in results for p in r.partials]
    if len({x for x, _ in points}) < 2:
        return None
    xs, ys = np.array(points).T
    slope, _ = np.polyfit(xs, ys, 1)
    return float(slope * 1000.0)


def report(results: list[SessionResult]) -> None:
    table = Table(title="Streaming sessions")
    table.add_column("sample")
    table.add_column("audio", justify="right")
    table.add_column("partials", justify="right")
    table.add_column("first lat.", justify="right")
    table.add_column("last lat.", justify="right")
    table.add_column("shrinking", justify="right")
    table.add_column("final")

    for r in results:
        first = f"{r.partials[0].latency_s * 1000:.0f} ms" if r.partials else "-"
        last = f"{r.partials[-1].latency_s * 1000:.0f} ms" if r.partials else "-"
        if r.errors:
            final = f"[red]error: {r.errors[0]}[/red]"
        elif r.exact:
            final = "[green]matches one-shot[/green]"
        else:
            final = f"[yellow]differs ({r.similarity:.2f})[/yellow]"
        table.add_row(
            r.sample_id,
            f"{r.audio_s:.1f} s",
            str(len(r.partials)),
            first,
            last,
            str(r.shrinking),
            final,
        )

    console.print(table)
    slope = latency_slope_ms(results)
    if slope is not None:
        console.print(f"Partial latency grows by {slope:.1f} ms per second of audio fed")


async def main() -> None:
    ap = argparse.ArgumentParser(description="Concurrent streaming check for the dspeech server")
    ap.add_argument("--uri", default="ws://127.0.0.1:8000/v1/stream", help="WebSocket URI")
    ap.add_argument("--manifest", default="samples/manifest.jsonl", help="Path to samples manifest")
    ap.add_argument("--concurrency", type=int, default=4, help="Number of concurrent streams")
    ap.add_argument("--chunk-ms", type=int, default=320, help="Audio chunk size in milliseconds")
    ap.add_argument("--realtime", action="store_true", help="Send audio at real-time pace")
    args = ap.parse_args()

    manifest_path = Path(args.manifest)
    if not manifest_path.exists():
        console.print(f"[red]Manifest not found at {manifest_path}[/red]")
        console.print("Run scripts/prepare_samples.py first")
        sys.exit(1)

    samples = [
        json.loads(line)
        for line in manifest_path.read_text(encoding="utf-8").splitlines()
        if line.strip()
    ]
    if not samples:
        console.print("[red]No samples in manifest[/red]")
        sys.exit(1)

    jobs = [samples[i % len(samples)] for i in range(args.concurrency)]
    console.print(f"{args.concurrency} concurrent streams to {args.uri}, {args.chunk_ms} ms chunks")

    results = await asyncio.gather(
        *(run_session(args.uri, s, args.chunk_ms, args.realtime) for s in jobs)
    )
    report(results)

    failed = [r for r in results if r.errors or not r.exact]
    if failed:
        console.print(f"[red]{len(failed)} of {len(results)} finals differ from one-shot[/red]")
        sys.exit(2)


if __name__ == "__main__":
    asyncio.run(main())
