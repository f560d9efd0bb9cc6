"""Fake native library for CPU-only testing.

Implements the DS_* surface in pure Python with deterministic output based
on audio length and content hash, so the wrappers can be tested without
libdeepspeech or model files. Strings and metadata are allocated as real
ctypes memory, exactly as the wrappers would receive them from C.

Unlike the real library, misuse is detected instead of crashing: calls on
freed or unknown handles and double frees raise ``NativeMisuseError``.
"""

import ctypes
import hashlib
import itertools
import os
import time
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from dspeech.constants import SAMPLE_RATE, TIMESTEP_MS
from dspeech.native import structs
from dspeech.native.codes import MESSAGES, UNKNOWN_MESSAGE, ErrorCode

DEFAULT_BEAM_WIDTH = 500
DEFAULT_VERSION = "0.9.3"
MAX_CANDIDATES = 3


class NativeMisuseError(RuntimeError):
    """A call that would be undefined behaviour in the real library."""


@dataclass
class FakeModelState:
    path: str
    beam_width: int
    scorer_path: Optional[str] = None
    alpha: Optional[float] = None
    beta: Optional[float] = None


@dataclass
class FakeStreamState:
    model: int
    beam_width: int
    scorer_path: Optional[str]
    chunks: list[np.ndarray] = field(default_factory=list)

    def audio(self) -> np.ndarray:
        if not self.chunks:
            return np.empty(0, dtype=np.int16)
        return np.concatenate(self.chunks)


class FakeDeepSpeech:
    """Deterministic stand-in for libdeepspeech.

    Failure injection:
        null_results: names of DS_* functions that return NULL.
        status_overrides: DS_* function name -> status code to return.
        partial_handles: on an injected Create* failure, still hand back a
            state the caller is expected to free.
    """

    def __init__(
        self,
        sample_rate: int = SAMPLE_RATE,
        beam_width: int = DEFAULT_BEAM_WIDTH,
        version: str = DEFAULT_VERSION,
        latency_ms: float = 0.0,
    ):
        self.sample_rate = sample_rate
        self.default_beam_width = beam_width
        self.version = version
        self._latency_ms = latency_ms

        self.models: dict[int, FakeModelState] = {}
        self.streams: dict[int, FakeStreamState] = {}
        self._allocations: dict[int, tuple[str, list]] = {}
        self._addresses = itertools.count(0x10000, 0x10)

        self.null_results: set[str] = set()
        self.status_overrides: dict[str, int] = {}
        self.partial_handles = False
        self.calls: list[str] = []

    # --- bookkeeping -----------------------------------------------------

    @property
    def live_allocations(self) -> int:
        """Strings and metadata handed out and not yet freed."""
        return len(self._allocations)

    def assert_clean(self) -> None:
        """Fail if any model, stream, string or metadata is still allocated."""
        leaks = []
        if self.models:
            leaks.append(f"{len(self.models)} model(s)")
        if self.streams:
            leaks.append(f"{len(self.streams)} stream(s)")
        if self._allocations:
            leaks.append(f"{len(self._allocations)} allocation(s)")
        if leaks:
            raise AssertionError("native resources leaked: " + ", ".join(leaks))

    def _call(self, name: str) -> None:
        self.calls.append(name)

    def _model(self, handle: int) -> FakeModelState:
        try:
            return self.models[handle]
        except KeyError:
            raise NativeMisuseError(f"invalid model handle {handle!r}") from None

    def _stream(self, handle: int) -> FakeStreamState:
        try:
            return self.streams[handle]
        except KeyError:
            raise NativeMisuseError(f"invalid stream handle {handle!r}") from None

    def _alloc_bytes(self, raw: bytes) -> int:
        """Allocate a NUL-terminated native string holding ``raw`` verbatim."""
        buf = ctypes.create_string_buffer(raw)
        address = ctypes.addressof(buf)
        self._allocations[address] = ("string", [buf])
        return address

    def _alloc_string(self, text: str) -> int:
        return self._alloc_bytes(text.encode("utf-8"))

    def _alloc_metadata(self, candidates: list[tuple[str, float]], frames: int) -> int:
        keep: list = []
        transcripts = (structs.CandidateTranscript * len(candidates))()
        for i, (text, confidence) in enumerate(candidates):
            tokens = (structs.TokenMetadata * len(text))()
            for j, char in enumerate(text):
                encoded = char.encode("utf-8")
                keep.append(encoded)
                timestep = j * frames // max(len(text), 1)
                tokens[j].text = encoded
                tokens[j].timestep = timestep
                tokens[j].start_time = timestep * TIMESTEP_MS / 1000
            keep.append(tokens)
            transcripts[i].tokens = ctypes.cast(tokens, ctypes.POINTER(structs.TokenMetadata))
            transcripts[i].num_tokens = len(text)
            transcripts[i].confidence = confidence
        metadata = structs.Metadata(
            ctypes.cast(transcripts, ctypes.POINTER(structs.CandidateTranscript)),
            len(candidates),
        )
        keep.extend([transcripts, metadata])
        address = ctypes.addressof(metadata)
        self._allocations[address] = ("metadata", keep)
        return address

    def _free(self, address: int, kind: str) -> None:
        entry = self._allocations.pop(address, None)
        if entry is None:
            raise NativeMisuseError(f"double free or invalid {kind} pointer {address!r}")
        if entry[0] != kind:
            self._allocations[address] = entry
            raise NativeMisuseError(f"{entry[0]} pointer {address:#x} freed as {kind}")

    def _create_state(self, name: str, out, factory) -> int:
        code = self.status_overrides.get(name, ErrorCode.OK)
        if code != ErrorCode.OK:
            if self.partial_handles:
                handle = next(self._addresses)
                factory(handle)
                out.contents.value = handle
            return code
        handle = next(self._addresses)
        factory(handle)
        out.contents.value = handle
        return ErrorCode.OK

    @staticmethod
    def _read_samples(buffer, buffer_size: int) -> np.ndarray:
        if buffer_size == 0:
            return np.empty(0, dtype=np.int16)
        return np.ctypeslib.as_array(buffer, shape=(buffer_size,)).copy()

    # --- deterministic "inference" ----------------------------------------

    def transcript_for(self, audio: np.ndarray) -> str:
        """Text the fake produces for ``audio``."""
        if self._latency_ms > 0:
            time.sleep(self._latency_ms / 1000.0)
        if len(audio) == 0:
            return ""
        duration_s = len(audio) / self.sample_rate
        audio_hash = hashlib.sha256(audio.tobytes()).hexdigest()
        return f"fake {audio_hash[:8]} {duration_s:.2f}s"

    def _candidates(self, audio: np.ndarray, num_results: int) -> list[tuple[str, float]]:
        text = self.transcript_for(audio)
        if not text:
            return [("", 0.0)][:num_results]
        count = min(num_results, MAX_CANDIDATES)
        return [(text + "s" * k, -0.1 * len(text) - k) for k in range(count)]

    def _frames(self, audio: np.ndarray) -> int:
        return len(audio) * 1000 // (self.sample_rate * TIMESTEP_MS)

    # --- model -----------------------------------------------------------

    def DS_CreateModel(self, model_path: bytes, out) -> int:
        self._call("DS_CreateModel")
        path = os.fsdecode(model_path)
        if "DS_CreateModel" not in self.status_overrides and not os.path.isfile(path):
            return ErrorCode.FAIL_INIT_MMAP

        def factory(handle):
            self.models[handle] = FakeModelState(path, self.default_beam_width)

        return self._create_state("DS_CreateModel", out, factory)

    def DS_FreeModel(self, model: int) -> None:
        self._call("DS_FreeModel")
        self._model(model)
        live = [s for s in self.streams.values() if s.model == model]
        if live:
            raise NativeMisuseError(f"model {model:#x} freed with {len(live)} live stream(s)")
        del self.models[model]

    def DS_GetModelBeamWidth(self, model: int) -> int:
        self._call("DS_GetModelBeamWidth")
        return self._model(model).beam_width

    def DS_SetModelBeamWidth(self, model: int, beam_width: int) -> int:
        self._call("DS_SetModelBeamWidth")
        state = self._model(model)
        code = self.status_overrides.get("DS_SetModelBeamWidth", ErrorCode.OK)
        if code == ErrorCode.OK:
            state.beam_width = beam_width
        return code

    def DS_GetModelSampleRate(self, model: int) -> int:
        self._call("DS_GetModelSampleRate")
        self._model(model)
        return self.sample_rate

    def DS_EnableExternalScorer(self, model: int, scorer_path: bytes) -> int:
        self._call("DS_EnableExternalScorer")
        state = self._model(model)
        path = os.fsdecode(scorer_path)
        code = self.status_overrides.get("DS_EnableExternalScorer", ErrorCode.OK)
        if code != ErrorCode.OK:
            return code
        if not os.path.isfile(path):
            return ErrorCode.SCORER_UNREADABLE
        state.scorer_path = path
        return ErrorCode.OK

    def DS_DisableExternalScorer(self, model: int) -> int:
        self._call("DS_DisableExternalScorer")
        state = self._model(model)
        if state.scorer_path is None:
            return ErrorCode.SCORER_NOT_ENABLED
        state.scorer_path = None
        state.alpha = state.beta = None
        return ErrorCode.OK

    def DS_SetScorerAlphaBeta(self, model: int, alpha: float, beta: float) -> int:
        self._call("DS_SetScorerAlphaBeta")
        state = self._model(model)
        if state.scorer_path is None:
            return ErrorCode.SCORER_NOT_ENABLED
        state.alpha, state.beta = alpha, beta
        return ErrorCode.OK

    def DS_SpeechToText(self, model: int, buffer, buffer_size: int) -> Optional[int]:
        self._call("DS_SpeechToText")
        self._model(model)
        audio = self._read_samples(buffer, buffer_size)
        if "DS_SpeechToText" in self.null_results:
            return None
        return self._alloc_string(self.transcript_for(audio))

    def DS_SpeechToTextWithMetadata(
        self, model: int, buffer, buffer_size: int, num_results: int
    ) -> Optional[int]:
        self._call("DS_SpeechToTextWithMetadata")
        self._model(model)
        audio = self._read_samples(buffer, buffer_size)
        if "DS_SpeechToTextWithMetadata" in self.null_results:
            return None
        return self._alloc_metadata(self._candidates(audio, num_results), self._frames(audio))

    # --- streams ---------------------------------------------------------

    def DS_CreateStream(self, model: int, out) -> int:
        self._call("DS_CreateStream")
        state = self._model(model)

        def factory(handle):
            self.streams[handle] = FakeStreamState(model, state.beam_width, state.scorer_path)

        return self._create_state("DS_CreateStream", out, factory)

    def DS_FeedAudioContent(self, stream: int, buffer, buffer_size: int) -> None:
        self._call("DS_FeedAudioContent")
        self._stream(stream).chunks.append(self._read_samples(buffer, buffer_size))

    def DS_IntermediateDecode(self, stream: int) -> Optional[int]:
        self._call("DS_IntermediateDecode")
        state = self._stream(stream)
        if "DS_IntermediateDecode" in self.null_results:
            return None
        return self._alloc_string(self.transcript_for(state.audio()))

    def DS_IntermediateDecodeWithMetadata(self, stream: int, num_results: int) -> Optional[int]:
        self._call("DS_IntermediateDecodeWithMetadata")
        audio = self._stream(stream).audio()
        if "DS_IntermediateDecodeWithMetadata" in self.null_results:
            return None
        return self._alloc_metadata(self._candidates(audio, num_results), self._frames(audio))

    def DS_FinishStream(self, stream: int) -> Optional[int]:
        self._call("DS_FinishStream")
        audio = self._stream(stream).audio()
        del self.streams[stream]
        if "DS_FinishStream" in self.null_results:
            return None
        return self._alloc_string(self.transcript_for(audio))

    def DS_FinishStreamWithMetadata(self, stream: int, num_results: int) -> Optional[int]:
        self._call("DS_FinishStreamWithMetadata")
        audio = self._stream(stream).audio()
        del self.streams[stream]
        if "DS_FinishStreamWithMetadata" in self.null_results:
            return None
        return self._alloc_metadata(self._candidates(audio, num_results), self._frames(audio))

    def DS_FreeStream(self, stream: int) -> None:
        self._call("DS_FreeStream")
        self._stream(stream)
        del self.streams[stream]

    # --- memory and misc -------------------------------------------------

    def DS_FreeMetadata(self, metadata: int) -> None:
        self._call("DS_FreeMetadata")
        self._free(metadata, "metadata")

    def DS_FreeString(self, string: int) -> None:
        self._call("DS_FreeString")
        self._free(string, "string")

    def DS_Version(self) -> Optional[int]:
        self._call("DS_Version")
        return self._alloc_string(self.version)

    def DS_ErrorCodeToErrorMessage(self, code: int) -> Optional[int]:
        self._call("DS_ErrorCodeToErrorMessage")
        return self._alloc_string(MESSAGES.get(code, UNKNOWN_MESSAGE))
