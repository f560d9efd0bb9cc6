"""Streaming inference session.

A ``Stream`` owns one native decoder state created from a ``Model``. It
accepts audio any number of times and ends with exactly one terminal call:
``finish``, ``finish_with_metadata`` or ``discard``. The native state is gone
after that call, successful or not, and every further call raises
``ResourceError``.

The decoder is not incremental: each intermediate decode starts again from
the beginning of all audio fed so far, so its cost grows with the stream
length. Polling intermediate results in a tight loop is slow.

Streams are not thread-safe; feed and decode from one thread at a time.
"""

import ctypes
import logging
from typing import TYPE_CHECKING, Optional

from dspeech.errors import DecodeError, InitializationError, ResourceError, error_from_code
from dspeech.marshal import (
    SampleBuffer,
    adopt_string,
    as_samples,
    check_num_results,
    sample_pointer,
)
from dspeech.metadata import Metadata

if TYPE_CHECKING:
    from dspeech.model import Model

logger = logging.getLogger(__name__)


class Stream:
    """Streaming decoder state bound to one model.

    The stream snapshots the model's beam width and scorer at creation; later
    changes to the model do not affect it. The model must stay open for the
    stream's whole life.

    Raises:
        InitializationError: If the native stream cannot be created.
        ResourceError: If ``model`` has been closed.
    """

    def __init__(self, model: "Model"):
        self._model = model
        self._lib = model.library
        self._handle: Optional[int] = None
        self._samples_fed = 0

        out = ctypes.c_void_p()
        code = self._lib.DS_CreateStream(model._require(), ctypes.pointer(out))
        err = error_from_code(self._lib, code, InitializationError, "creating stream failed")
        if err is not None:
            if out.value:
                self._lib.DS_FreeStream(out.value)
            raise err
        if not out.value:
            raise InitializationError("creating stream failed: no stream state returned")

        self._handle = out.value
        model._register_stream(self)
        logger.debug("Created stream %#x", self._handle)

    def _require(self) -> int:
        if self._handle is None:
            raise ResourceError("stream has already been finished")
        return self._handle

    def _consume(self) -> int:
        """Hand the native state to a terminal call; the stream is finished after."""
        handle = self._require()
        self._handle = None
        self._model._forget_stream(self)
        return handle

    @property
    def finished(self) -> bool:
        return self._handle is None

    @property
    def model(self) -> "Model":
        return self._model

    @property
    def samples_fed(self) -> int:
        """Number of samples fed so far."""
        return self._samples_fed

    def feed_audio(self, buffer: SampleBuffer) -> None:
        """Append 16-bit mono samples to the stream.

        The audio is only buffered and run through the acoustic model; text
        is produced by the decode calls.
        """
        handle = self._require()
        samples = as_samples(buffer)
        ptr, size = sample_pointer(samples)
        self._lib.DS_FeedAudioContent(handle, ptr, size)
        self._samples_fed += size

    def intermediate_decode(self) -> str:
        """Decode everything fed so far without ending the stream.

        Raises:
            DecodeError: If the native call returns no result.
        """
        result = self._lib.DS_IntermediateDecode(self._require())
        if not result:
            raise DecodeError("intermediate decode failed")
        return adopt_string(self._lib, result)

    def intermediate_decode_with_metadata(self, num_results: int = 1) -> Metadata:
        """Decode everything fed so far, returning candidate transcripts.

        Returns:
            Metadata the caller must release.

        Raises:
            DecodeError: If the native call returns no result.
        """
        handle = self._require()
        check_num_results(num_results)
        result = self._lib.DS_IntermediateDecodeWithMetadata(handle, num_results)
        if not result:
            raise DecodeError("intermediate decode with metadata failed")
        return Metadata(self._lib, result)

    def finish(self) -> str:
        """Compute the final transcript and end the stream.

        A stream that was never fed audio finishes with an empty string.

        Raises:
            DecodeError: If the native call returns no result. The stream
                is finished regardless.
        """
        handle = self._consume()
        result = self._lib.DS_FinishStream(handle)
        logger.debug("Finished stream %#x", handle)
        if not result:
            raise DecodeError("finishing stream failed")
        return adopt_string(self._lib, result)

    def finish_with_metadata(self, num_results: int = 1) -> Metadata:
        """Compute final candidate transcripts and end the stream.

        Returns:
            Metadata the caller must release.

        Raises:
            DecodeError: If the native call returns no result. The stream
                is finished regardless.
        """
        self._require()
        check_num_results(num_results)
        handle = self._consume()
        result = self._lib.DS_FinishStreamWithMetadata(handle, num_results)
        logger.debug("Finished stream %#x with metadata", handle)
        if not result:
            raise DecodeError("finishing stream with metadata failed")
        return Metadata(self._lib, result)

    def discard(self) -> None:
        """End the stream without decoding."""
        handle = self._consume()
        self._lib.DS_FreeStream(handle)
        logger.debug("Discarded stream %#x", handle)

    def __enter__(self) -> "Stream":
        return self

    def __exit__(self, *exc_info) -> None:
        if not self.finished:
            self.discard()

    def __repr__(self) -> str:
        state = "finished" if self.finished else "open"
        return f"<Stream {state} samples_fed={self._samples_fed}>"
