"""DeepSpeech model wrapper.

A ``Model`` exclusively owns one native model state from construction until
``close()``. Every other method requires the model to be open and raises
``ResourceError`` otherwise, without calling into native code.

Models are not thread-safe: callers sharing one across threads must
serialize access themselves. Several streams from one model may be
used independently, each from its own thread.
"""

import ctypes
import logging
import os
import threading
import weakref
from typing import Optional

from dspeech.errors import (
    ConfigurationError,
    InferenceError,
    InitializationError,
    ResourceError,
    check,
    error_from_code,
)
from dspeech.marshal import (
    SampleBuffer,
    adopt_string,
    as_samples,
    check_num_results,
    sample_pointer,
)
from dspeech.metadata import Metadata
from dspeech.native.library import default_library
from dspeech.native.protocol import NativeLibrary
from dspeech.stream import Stream

logger = logging.getLogger(__name__)


def version(library: Optional[NativeLibrary] = None) -> str:
    """Return the semantic version of the native DeepSpeech library."""
    lib = library if library is not None else default_library()
    ptr = lib.DS_Version()
    if not ptr:
        raise InitializationError("native library did not report a version")
    return adopt_string(lib, ptr)


class Model:
    """A loaded DeepSpeech acoustic model.

    Args:
        model_path: Path to the exported model graph (.pbmm or .tflite).
        library: Native library to use; defaults to the process-wide
            libdeepspeech.

    Raises:
        InitializationError: If the model file is missing, corrupt or
            incompatible with the native library.
    """

    def __init__(self, model_path: "str | os.PathLike[str]", library: Optional[NativeLibrary] = None):
        self._lib = library if library is not None else default_library()
        self._handle: Optional[int] = None
        self._scorer_path: Optional[str] = None
        self._streams: "weakref.WeakSet[Stream]" = weakref.WeakSet()
        # Streams on separate threads may end concurrently
        self._streams_lock = threading.Lock()
        self.model_path = os.fspath(model_path)

        out = ctypes.c_void_p()
        code = self._lib.DS_CreateModel(os.fsencode(self.model_path), ctypes.pointer(out))
        err = error_from_code(
            self._lib, code, InitializationError, f"loading model {self.model_path} failed"
        )
        if err is not None:
            if out.value:
                self._lib.DS_FreeModel(out.value)
            raise err
        if not out.value:
            raise InitializationError(
                f"loading model {self.model_path} failed: no model state returned"
            )

        self._handle = out.value
        logger.debug("Loaded model %s (%#x)", self.model_path, self._handle)

    def _require(self) -> int:
        if self._handle is None:
            raise ResourceError("model has been closed")
        return self._handle

    @property
    def closed(self) -> bool:
        return self._handle is None

    @property
    def library(self) -> NativeLibrary:
        return self._lib

    # --- configuration ---------------------------------------------------

    @property
    def beam_width(self) -> int:
        """Beam width used for decoding.

        Until ``set_beam_width`` is called this is the default stored in the
        model file.
        """
        return int(self._lib.DS_GetModelBeamWidth(self._require()))

    def set_beam_width(self, width: int) -> None:
        """Set the decoder beam width.

        A larger width gives better results at the cost of decoding time.
        Streams created before the change keep their previous setting.
        """
        handle = self._require()
        if width < 0:
            raise ConfigurationError(f"beam width must not be negative, got {width}")
        code = self._lib.DS_SetModelBeamWidth(handle, width)
        check(self._lib, code, ConfigurationError, f"setting beam width to {width} failed")

    @property
    def sample_rate(self) -> int:
        """Sample rate the model was trained on, in Hz."""
        return int(self._lib.DS_GetModelSampleRate(self._require()))

    @property
    def scorer_path(self) -> Optional[str]:
        """Path of the enabled external scorer, or None."""
        return self._scorer_path

    def enable_external_scorer(self, scorer_path: "str | os.PathLike[str]") -> None:
        """Decode with the external scorer (language model) at ``scorer_path``.

        An already enabled scorer is replaced.
        """
        handle = self._require()
        path = os.fspath(scorer_path)
        code = self._lib.DS_EnableExternalScorer(handle, os.fsencode(path))
        check(self._lib, code, ConfigurationError, f"enabling external scorer {path} failed")
        self._scorer_path = path
        logger.debug("Enabled external scorer %s", path)

    def disable_external_scorer(self) -> None:
        """Stop using the external scorer.

        Raises:
            PreconditionError: If no scorer is enabled.
        """
        handle = self._require()
        code = self._lib.DS_DisableExternalScorer(handle)
        check(self._lib, code, ConfigurationError, "disabling external scorer failed")
        self._scorer_path = None

    def set_scorer_alpha_beta(self, alpha: float, beta: float) -> None:
        """Set the scorer hyperparameters.

        Args:
            alpha: Language model weight.
            beta: Word insertion weight.

        Raises:
            PreconditionError: If no scorer is enabled.
        """
        handle = self._require()
        code = self._lib.DS_SetScorerAlphaBeta(handle, alpha, beta)
        check(
            self._lib,
            code,
            ConfigurationError,
            f"setting scorer alpha={alpha} beta={beta} failed",
        )

    # --- inference -------------------------------------------------------

    def transcribe(self, buffer: SampleBuffer) -> str:
        """Convert a whole utterance to text.

        Blocks for the duration of inference.

        Args:
            buffer: 16-bit mono samples at ``sample_rate``.

        Raises:
            InferenceError: If the native call returns no result.
        """
        handle = self._require()
        samples = as_samples(buffer)
        ptr, size = sample_pointer(samples)
        result = self._lib.DS_SpeechToText(handle, ptr, size)
        if not result:
            raise InferenceError("speech to text failed")
        return adopt_string(self._lib, result)

    def transcribe_with_metadata(self, buffer: SampleBuffer, num_results: int = 1) -> Metadata:
        """Convert a whole utterance to ranked candidate transcripts.

        Args:
            buffer: 16-bit mono samples at ``sample_rate``.
            num_results: Maximum number of candidates to return; fewer may
                come back.

        Returns:
            Metadata the caller must release.

        Raises:
            InferenceError: If the native call returns no result.
        """
        handle = self._require()
        check_num_results(num_results)
        samples = as_samples(buffer)
        ptr, size = sample_pointer(samples)
        result = self._lib.DS_SpeechToTextWithMetadata(handle, ptr, size, num_results)
        if not result:
            raise InferenceError("speech to text with metadata failed")
        return Metadata(self._lib, result)

    # --- streaming -------------------------------------------------------

    def create_stream(self) -> Stream:
        """Start a streaming inference session bound to this model."""
        return Stream(self)

    def _register_stream(self, stream: Stream) -> None:
        with self._streams_lock:
            self._streams.add(stream)

    def _forget_stream(self, stream: Stream) -> None:
        with self._streams_lock:
            self._streams.discard(stream)

    # --- lifecycle -------------------------------------------------------

    def close(self) -> None:
        """Free the native model.

        Streams still open on this model are discarded first. Calling
        ``close`` again is a no-op.
        """
        if self._handle is None:
            return
        with self._streams_lock:
            open_streams = list(self._streams)
        for stream in open_streams:
            logger.warning("Discarding stream left open on model %s", self.model_path)
            stream.discard()
        handle, self._handle = self._handle, None
        self._lib.DS_FreeModel(handle)
        logger.debug("Freed model %s (%#x)", self.model_path, handle)

    def __enter__(self) -> "Model":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<Model {self.model_path!r} {state}>"
