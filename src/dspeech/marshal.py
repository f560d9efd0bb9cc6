"""Marshaling between Python objects and native call arguments.

Audio buffers are borrowed, not copied: the native call receives a pointer
into the caller's own memory, valid only while that call runs. Native
strings are copied into Python ``str`` and the native copy freed at once.
"""

import ctypes
from typing import Sequence, Union

import numpy as np

from dspeech.constants import BYTES_PER_SAMPLE
from dspeech.native.structs import SamplePointer

SampleBuffer = Union[np.ndarray, bytes, bytearray, memoryview, Sequence[int]]

_INT16_MIN = np.iinfo(np.int16).min
_INT16_MAX = np.iinfo(np.int16).max


def as_samples(buffer: SampleBuffer) -> np.ndarray:
    """Return a 1-D C-contiguous int16 view of ``buffer``.

    Args:
        buffer: An int16 numpy array, PCM16 little-endian bytes-like data,
            or a sequence of integers in int16 range.

    Returns:
        The input array itself when it is already int16 and contiguous,
        a zero-copy view over bytes-like input, or a converted copy.

    Raises:
        TypeError: If the samples are not integers.
        ValueError: If the buffer is not mono, has an odd byte count, or
            holds values outside int16 range.
    """
    if isinstance(buffer, (bytes, bytearray, memoryview)):
        raw = memoryview(buffer).cast("B")
        if len(raw) % BYTES_PER_SAMPLE:
            raise ValueError(
                f"PCM16 data must have an even byte count, got {len(raw)}"
            )
        return np.frombuffer(raw, dtype="<i2")

    samples = np.asarray(buffer)
    if samples.ndim != 1:
        raise ValueError(f"expected mono audio (1-D), got shape {samples.shape}")
    if samples.dtype == np.int16:
        return np.ascontiguousarray(samples)
    if samples.size == 0:
        return np.empty(0, dtype=np.int16)
    if not np.issubdtype(samples.dtype, np.integer):
        raise TypeError(
            f"expected 16-bit integer samples, got {samples.dtype}; "
            "convert float audio with dspeech.audio.float32_to_int16"
        )
    if samples.min() < _INT16_MIN or samples.max() > _INT16_MAX:
        raise ValueError("sample values exceed the int16 range")
    return samples.astype(np.int16)


def sample_pointer(samples: np.ndarray) -> tuple[SamplePointer, int]:
    """Borrow a ``short*`` and sample count for a single native call.

    ``samples`` must stay referenced by the caller until the call returns.
    """
    return samples.ctypes.data_as(SamplePointer), int(samples.size)


def adopt_string(lib, ptr: int) -> str:
    """Copy a native UTF-8 string into Python and free the native one.

    Invalid byte sequences are replaced with U+FFFD, matching
    ``TokenMetadata.text``.
    """
    try:
        return ctypes.string_at(ptr).decode("utf-8", errors="replace")
    finally:
        lib.DS_FreeString(ptr)


def check_num_results(num_results: int) -> int:
    """Validate the candidate count passed to "with metadata" calls."""
    if num_results < 1:
        raise ValueError(f"num_results must be at least 1, got {num_results}")
    return num_results
