"""Live microphone transcription on top of a DeepSpeech stream.

Audio is captured by sounddevice on its own callback thread and handed over
through a queue; only the calling thread touches the ``Stream``.
"""

import logging
import queue
import time
from typing import Optional

import numpy as np
import sounddevice as sd
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from dspeech.constants import CHUNK_MS
from dspeech.model import Model

logger = logging.getLogger(__name__)

CHANNELS = 1
# Seconds between intermediate decodes; each one re-decodes the whole stream
DECODE_INTERVAL_S = 1.0


class AudioCapture:
    """Capture int16 audio from a microphone into a queue."""

    def __init__(self, sample_rate: int, device: Optional[int] = None, chunk_ms: int = CHUNK_MS):
        self.sample_rate = sample_rate
        self.device = device
        self.blocksize = sample_rate * chunk_ms // 1000
        self.chunks: "queue.Queue[np.ndarray]" = queue.Queue()
        self.stream = None

    @staticmethod
    def list_devices(console: Console) -> None:
        """List available audio input devices."""
        console.print("Available audio input devices:")
        for i, device in enumerate(sd.query_devices()):
            if device["max_input_channels"] > 0:
                default = " (default)" if i == sd.default.device[0] else ""
                console.print(f"  [{i}] {device['name']}{default}")

    def start(self) -> None:
        def audio_callback(indata, frames, time_info, status):
            if status:
                logger.warning("Audio status: %s", status)
            audio = indata[:, 0] if indata.ndim > 1 else indata.flatten()
            self.chunks.put(audio.copy())

        self.stream = sd.InputStream(
            device=self.device,
            samplerate=self.sample_rate,
            channels=CHANNELS,
            dtype="int16",
            blocksize=self.blocksize,
            callback=audio_callback,
        )
        self.stream.start()
        logger.info("Audio capture started (device: %s)", self.device or "default")

    def stop(self) -> None:
        if self.stream:
            self.stream.stop()
            self.stream.close()
            self.stream = None


def _panel(text: str, status: str) -> Panel:
    body = Text(text) if text else Text("(listening...)", style="dim")
    return Panel(body, title="[white]Transcript[/white]", subtitle=status, border_style="cyan")


def transcribe_microphone(model: Model, console: Console, device: Optional[int] = None) -> str:
    """Stream microphone audio into ``model`` until Ctrl+C.

    Returns:
        The final transcript.
    """
    capture = AudioCapture(model.sample_rate, device=device)
    text = ""
    with model.create_stream() as stream:
        capture.start()
        last_decode = time.monotonic()
        try:
            with Live(_panel("", "Press Ctrl+C to stop"), console=console, refresh_per_second=10) as live:
                while True:
                    try:
                        chunk = capture.chunks.get(timeout=0.1)
                    except queue.Empty:
                        continue
                    stream.feed_audio(chunk)
                    if time.monotonic() - last_decode >= DECODE_INTERVAL_S:
                        text = stream.intermediate_decode()
                        last_decode = time.monotonic()
                        seconds = stream.samples_fed / model.sample_rate
                        live.update(_panel(text, f"{seconds:.1f}s of audio"))
        except KeyboardInterrupt:
            pass
        finally:
            capture.stop()
        while not capture.chunks.empty():
            stream.feed_audio(capture.chunks.get_nowait())
        text = stream.finish()
    return text
