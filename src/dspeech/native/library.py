"""Loading of the real libdeepspeech shared object via ctypes.

Every function gets explicit argtypes/restype. Functions that hand back
native allocations are declared as returning ``void*`` (not ``c_char_p``)
so the address survives and can be passed to DS_FreeString/DS_FreeMetadata.
"""

import ctypes
import ctypes.util
import logging
import os
from functools import lru_cache
from typing import Optional

from dspeech.constants import LIBRARY_ENV, LIBRARY_FALLBACK, LIBRARY_NAME
from dspeech.errors import InitializationError
from dspeech.native.protocol import NativeLibrary
from dspeech.native.structs import HandleOut, SamplePointer

logger = logging.getLogger(__name__)

_c_int = ctypes.c_int
_c_uint = ctypes.c_uint
_c_float = ctypes.c_float
_c_char_p = ctypes.c_char_p
_c_void_p = ctypes.c_void_p

# name -> (restype, argtypes)
SIGNATURES: dict[str, tuple] = {
    "DS_CreateModel": (_c_int, [_c_char_p, HandleOut]),
    "DS_FreeModel": (None, [_c_void_p]),
    "DS_GetModelBeamWidth": (_c_uint, [_c_void_p]),
    "DS_SetModelBeamWidth": (_c_int, [_c_void_p, _c_uint]),
    "DS_GetModelSampleRate": (_c_int, [_c_void_p]),
    "DS_EnableExternalScorer": (_c_int, [_c_void_p, _c_char_p]),
    "DS_DisableExternalScorer": (_c_int, [_c_void_p]),
    "DS_SetScorerAlphaBeta": (_c_int, [_c_void_p, _c_float, _c_float]),
    "DS_SpeechToText": (_c_void_p, [_c_void_p, SamplePointer, _c_uint]),
    "DS_SpeechToTextWithMetadata": (
        _c_void_p,
        [_c_void_p, SamplePointer, _c_uint, _c_uint],
    ),
    "DS_CreateStream": (_c_int, [_c_void_p, HandleOut]),
    "DS_FeedAudioContent": (None, [_c_void_p, SamplePointer, _c_uint]),
    "DS_IntermediateDecode": (_c_void_p, [_c_void_p]),
    "DS_IntermediateDecodeWithMetadata": (_c_void_p, [_c_void_p, _c_uint]),
    "DS_FinishStream": (_c_void_p, [_c_void_p]),
    "DS_FinishStreamWithMetadata": (_c_void_p, [_c_void_p, _c_uint]),
    "DS_FreeStream": (None, [_c_void_p]),
    "DS_FreeMetadata": (None, [_c_void_p]),
    "DS_FreeString": (None, [_c_void_p]),
    "DS_Version": (_c_void_p, []),
    "DS_ErrorCodeToErrorMessage": (_c_void_p, [_c_int]),
}


def resolve_library_path(path: Optional[str] = None) -> str:
    """Pick the shared object to load.

    Order: explicit argument, $DEEPSPEECH_LIBRARY, the system linker search
    path, then the bare soname.
    """
    if path:
        return str(path)
    env_path = os.environ.get(LIBRARY_ENV)
    if env_path:
        return env_path
    return ctypes.util.find_library(LIBRARY_NAME) or LIBRARY_FALLBACK


def configure(lib: ctypes.CDLL) -> ctypes.CDLL:
    """Declare argtypes/restype for every DS_* function on ``lib``."""
    for name, (restype, argtypes) in SIGNATURES.items():
        try:
            func = getattr(lib, name)
        except AttributeError as e:
            raise InitializationError(
                f"native library is missing {name}; "
                "a DeepSpeech build with external scorer support is required"
            ) from e
        func.restype = restype
        func.argtypes = argtypes
    return lib


def load_library(path: Optional[str] = None) -> NativeLibrary:
    """Load and configure libdeepspeech.

    Args:
        path: Explicit path to the shared object, or None to search.

    Returns:
        The configured library.

    Raises:
        InitializationError: If the library cannot be loaded or lacks the
            expected symbols.
    """
    resolved = resolve_library_path(path)
    try:
        lib = ctypes.CDLL(resolved)
    except OSError as e:
        raise InitializationError(f"loading native library {resolved} failed: {e}") from e
    logger.debug("Loaded native library %s", resolved)
    return configure(lib)


@lru_cache(maxsize=1)
def default_library() -> NativeLibrary:
    """Process-wide library used when callers do not pass one explicitly."""
    return load_library()
