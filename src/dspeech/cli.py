"""Command-line speech-to-text with DeepSpeech.

Usage:
    dspeech --model deepspeech.pbmm --audio speech.wav [--scorer kenlm.scorer]
    dspeech --model deepspeech.pbmm --audio speech.wav --stream --chunk-ms 320
    dspeech --model deepspeech.pbmm --mic [--device 2]
    dspeech --list-devices
    dspeech --version

Environment variables:
    DEEPSPEECH_LIBRARY  Path to libdeepspeech.so
"""

import argparse
import logging
import sys
from typing import Optional

import numpy as np
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

from dspeech.audio import chunk_samples, duration_samples, read_wav
from dspeech.constants import (
    CHUNK_MS,
    DEFAULT_LM_ALPHA,
    DEFAULT_LM_BETA,
    DEFAULT_NUM_RESULTS,
    LIBRARY_ENV,
)
from dspeech.errors import DeepSpeechError
from dspeech.metadata import Metadata
from dspeech.model import Model, version
from dspeech.native.library import load_library

logger = logging.getLogger("dspeech.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dspeech",
        description="Speech-to-text using the DeepSpeech native library",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"Environment variables:\n    {LIBRARY_ENV}  Path to libdeepspeech.so",
    )
    parser.add_argument("--model", help="Path to the model (protocol buffer binary file)")
    parser.add_argument("--audio", help="Path to the audio file to run (WAV format)")
    parser.add_argument("--scorer", help="Path to the external scorer file")
    parser.add_argument("--beam-width", type=int, default=None, help="Beam width for the CTC decoder")
    parser.add_argument(
        "--lm-alpha",
        type=float,
        default=None,
        help=f"Language model weight (default {DEFAULT_LM_ALPHA}, requires --scorer)",
    )
    parser.add_argument(
        "--lm-beta",
        type=float,
        default=None,
        help=f"Word insertion weight (default {DEFAULT_LM_BETA}, requires --scorer)",
    )
    parser.add_argument("--version", action="store_true", help="Print version and exit")
    parser.add_argument("--extended", action="store_true", help="Output candidate transcripts with metadata")
    parser.add_argument(
        "--max-results",
        type=int,
        default=DEFAULT_NUM_RESULTS,
        help="Number of candidate transcripts to include in extended output",
    )
    parser.add_argument(
        "--sample-rate",
        type=int,
        default=None,
        help="Expected sample rate of the audio (default: the model's)",
    )
    parser.add_argument("--stream", action="store_true", help="Decode the file through a stream in chunks")
    parser.add_argument("--chunk-ms", type=int, default=CHUNK_MS, help="Chunk size for --stream")
    parser.add_argument("--mic", action="store_true", help="Transcribe live from the microphone")
    parser.add_argument("--device", type=int, default=None, help="Audio input device ID for --mic")
    parser.add_argument("--list-devices", action="store_true", help="List audio input devices and exit")
    parser.add_argument("--library", default=None, help=f"Path to libdeepspeech (or set {LIBRARY_ENV})")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def setup_logging(verbose: bool) -> None:
    handler = RichHandler(console=Console(stderr=True), show_path=False)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )


def configure_model(model: Model, args: argparse.Namespace) -> None:
    """Apply beam width and scorer settings from the command line."""
    if args.beam_width is not None:
        model.set_beam_width(args.beam_width)
    if args.scorer:
        model.enable_external_scorer(args.scorer)
        alpha = DEFAULT_LM_ALPHA if args.lm_alpha is None else args.lm_alpha
        beta = DEFAULT_LM_BETA if args.lm_beta is None else args.lm_beta
        model.set_scorer_alpha_beta(alpha, beta)
    elif args.lm_alpha is not None or args.lm_beta is not None:
        raise ValueError("--lm-alpha and --lm-beta require --scorer")
    logger.debug(
        "Model ready: sample_rate=%d beam_width=%d scorer=%s",
        model.sample_rate,
        model.beam_width,
        model.scorer_path,
    )


def load_audio(path: str, expected_rate: int) -> np.ndarray:
    try:
        samples, sample_rate = read_wav(path)
    except (OSError, RuntimeError, ValueError) as e:
        raise ValueError(f"reading {path} failed: {e}") from e
    if sample_rate != expected_rate:
        raise ValueError(
            f"{path} has sample rate {sample_rate} Hz, expected {expected_rate} Hz"
        )
    return samples


def print_metadata(console: Console, metadata: Metadata) -> None:
    table = Table(title="Candidate transcripts")
    table.add_column("#", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Text")
    for i, candidate in enumerate(metadata.transcripts):
        table.add_row(str(i), f"{candidate.confidence:.3f}", Text(candidate.text))
    console.print(table)

    if metadata.num_transcripts:
        tokens = Table(title="Token timings (best candidate)")
        tokens.add_column("Token")
        tokens.add_column("Timestep", justify="right")
        tokens.add_column("Start (s)", justify="right")
        for token in metadata.transcripts[0].tokens:
            tokens.add_row(Text(repr(token.text)), str(token.timestep), f"{token.start_time:.2f}")
        console.print(tokens)


def run_file(model: Model, samples: np.ndarray, args: argparse.Namespace, console: Console) -> str:
    if args.extended:
        with model.transcribe_with_metadata(samples, args.max_results) as metadata:
            print_metadata(console, metadata)
            return metadata.text
    return model.transcribe(samples)


def run_stream(model: Model, samples: np.ndarray, args: argparse.Namespace, console: Console) -> str:
    """Feed the file in chunks, printing an intermediate decode after each.

    Every intermediate decode re-decodes all audio fed so far.
    """
    chunk_size = duration_samples(args.chunk_ms, model.sample_rate)
    with model.create_stream() as stream:
        for chunk in chunk_samples(samples, chunk_size):
            stream.feed_audio(chunk)
            partial = stream.intermediate_decode()
            seconds = stream.samples_fed / model.sample_rate
            line = Text(f"{seconds:6.2f}s ", style="dim")
            line.append(partial)
            console.print(line)
        if args.extended:
            with stream.finish_with_metadata(args.max_results) as metadata:
                print_metadata(console, metadata)
                return metadata.text
        return stream.finish()


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    console = Console()

    try:
        library = load_library(args.library) if args.library else None

        if args.version:
            console.print(f"DeepSpeech {version(library)}", highlight=False)
            return 0

        if args.list_devices:
            from dspeech.microphone import AudioCapture

            AudioCapture.list_devices(console)
            return 0

        if not args.model or not (args.audio or args.mic):
            parser.print_usage(sys.stderr)
            return 0

        if args.max_results < 1:
            raise ValueError("--max-results must be at least 1")

        with Model(args.model, library=library) as model:
            configure_model(model, args)

            if args.mic:
                from dspeech.microphone import transcribe_microphone

                text = transcribe_microphone(model, console, device=args.device)
            else:
                expected_rate = args.sample_rate or model.sample_rate
                if expected_rate != model.sample_rate:
                    logger.warning(
                        "Expected audio rate %d Hz differs from the model's %d Hz",
                        expected_rate,
                        model.sample_rate,
                    )
                samples = load_audio(args.audio, expected_rate)
                if args.stream:
                    text = run_stream(model, samples, args, console)
                else:
                    text = run_file(model, samples, args, console)

        console.print(f"Text: {text}", highlight=False, markup=False)
        return 0
    except (DeepSpeechError, ValueError) as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
