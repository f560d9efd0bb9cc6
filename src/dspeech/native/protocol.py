"""Protocol describing the DeepSpeech C API surface used by the bindings.

This is the "sealed boundary" between the Python wrappers and native code.
The real shared library (loaded with ctypes) and the in-process fake used by
the test-suite both satisfy it, so Model/Stream/Metadata never know which
one they are talking to.

Conventions shared by every implementation:
  - Handles (model state, stream state) are opaque addresses passed as int.
  - Functions returning ``char*`` or ``Metadata*`` return the raw address as
    an int, or None for NULL. The caller owns it and must free it with
    DS_FreeString / DS_FreeMetadata.
  - Audio is passed as a ``short*`` pointer plus a sample count.
"""

from typing import Optional, Protocol

from dspeech.native.structs import HandleOut, SamplePointer


class NativeLibrary(Protocol):
    """The subset of libdeepspeech the bindings call."""

    def DS_CreateModel(self, model_path: bytes, out: HandleOut) -> int:
        """Load a model file, storing the new model state in ``out``.

        Returns:
            Zero on success, a native status code otherwise.
        """
        ...

    def DS_FreeModel(self, model: int) -> None:
        ...

    def DS_GetModelBeamWidth(self, model: int) -> int:
        ...

    def DS_SetModelBeamWidth(self, model: int, beam_width: int) -> int:
        ...

    def DS_GetModelSampleRate(self, model: int) -> int:
        ...

    def DS_EnableExternalScorer(self, model: int, scorer_path: bytes) -> int:
        ...

    def DS_DisableExternalScorer(self, model: int) -> int:
        ...

    def DS_SetScorerAlphaBeta(self, model: int, alpha: float, beta: float) -> int:
        ...

    def DS_SpeechToText(
        self, model: int, buffer: SamplePointer, buffer_size: int
    ) -> Optional[int]:
        """One-shot inference. Returns a native string address."""
        ...

    def DS_SpeechToTextWithMetadata(
        self, model: int, buffer: SamplePointer, buffer_size: int, num_results: int
    ) -> Optional[int]:
        """One-shot inference. Returns a native Metadata address."""
        ...

    def DS_CreateStream(self, model: int, out: HandleOut) -> int:
        ...

    def DS_FeedAudioContent(
        self, stream: int, buffer: SamplePointer, buffer_size: int
    ) -> None:
        ...

    def DS_IntermediateDecode(self, stream: int) -> Optional[int]:
        ...

    def DS_IntermediateDecodeWithMetadata(
        self, stream: int, num_results: int
    ) -> Optional[int]:
        ...

    def DS_FinishStream(self, stream: int) -> Optional[int]:
        """Final decode. Frees the stream state whatever the outcome."""
        ...

    def DS_FinishStreamWithMetadata(
        self, stream: int, num_results: int
    ) -> Optional[int]:
        """Final decode with metadata. Frees the stream state whatever the outcome."""
        ...

    def DS_FreeStream(self, stream: int) -> None:
        """Destroy a stream without decoding."""
        ...

    def DS_FreeMetadata(self, metadata: int) -> None:
        ...

    def DS_FreeString(self, string: int) -> None:
        ...

    def DS_Version(self) -> Optional[int]:
        ...

    def DS_ErrorCodeToErrorMessage(self, code: int) -> Optional[int]:
        ...
