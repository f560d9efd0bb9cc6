"""Audio conversion, chunking and WAV loading utilities.

DeepSpeech consumes 16-bit mono PCM as int16 numpy arrays or raw
little-endian bytes. Helpers here return views instead of copies wherever
numpy allows it.
"""

from collections.abc import Iterator
from pathlib import Path

import numpy as np
import soundfile as sf

from dspeech.constants import BYTES_PER_SAMPLE, SAMPLE_RATE


def pcm16_to_int16(data: bytes) -> np.ndarray:
    """View PCM16 little-endian bytes as an int16 array (no copy).

    Args:
        data: Raw PCM16 little-endian audio bytes.

    Returns:
        Read-only int16 numpy array sharing memory with ``data``.
    """
    return np.frombuffer(data, dtype="<i2")


def int16_to_pcm16(samples: np.ndarray) -> bytes:
    """Serialize int16 samples to PCM16 little-endian bytes."""
    return samples.astype("<i2", copy=False).tobytes()


def float32_to_int16(audio: np.ndarray) -> np.ndarray:
    """Convert float32 audio in [-1, 1] to int16 samples.

    Args:
        audio: Float32 numpy array with values in [-1, 1].

    Returns:
        Int16 numpy array; out-of-range values are clipped.
    """
    clipped = np.clip(audio, -1.0, 1.0)
    return (clipped * 32767.0).astype(np.int16)


def chunk_samples(samples: np.ndarray, chunk_size: int) -> Iterator[np.ndarray]:
    """Split samples into fixed-size chunks.

    Args:
        samples: 1-D sample array.
        chunk_size: Number of samples per chunk.

    Yields:
        Views of the specified size. The last chunk may be smaller.
    """
    for i in range(0, len(samples), chunk_size):
        yield samples[i : i + chunk_size]


def validate_audio_format(data: bytes) -> bool:
    """Check if audio data has valid PCM16 format.

    Args:
        data: Raw audio bytes to validate.

    Returns:
        True if data length is even (valid PCM16), False otherwise.
    """
    return len(data) % BYTES_PER_SAMPLE == 0


def duration_samples(duration_ms: int, sample_rate: int = SAMPLE_RATE) -> int:
    """Calculate number of samples for a given duration in milliseconds."""
    return sample_rate * duration_ms // 1000


def read_wav(path: "str | Path") -> tuple[np.ndarray, int]:
    """Load a mono WAV file as int16 samples.

    Args:
        path: Path to the audio file.

    Returns:
        Tuple of (int16 samples, sample rate in Hz).

    Raises:
        ValueError: If the file has more than one channel.
    """
    samples, sample_rate = sf.read(str(path), dtype="int16", always_2d=False)
    if samples.ndim != 1:
        raise ValueError(f"{path} must be mono, got {samples.shape[1]} channels")
    return np.ascontiguousarray(samples), int(sample_rate)
