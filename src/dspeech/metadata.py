"""Views over native transcription metadata.

A ``Metadata`` owns one native allocation holding every candidate
transcript and token. ``CandidateTranscript`` and ``TokenMetadata`` are
non-owning views into it: they read native memory directly and become
unusable once the owning ``Metadata`` is released.
"""

import ctypes
import logging
from typing import Any

from dspeech.errors import ResourceError
from dspeech.native import structs

logger = logging.getLogger(__name__)


class TokenMetadata:
    """A single decoded token with its timing."""

    __slots__ = ("_owner", "_struct")

    def __init__(self, owner: "Metadata", struct: structs.TokenMetadata):
        self._owner = owner
        self._struct = struct

    @property
    def raw_text(self) -> bytes:
        """Token bytes as produced by the decoder.

        UTF-8 alphabets can split one character over several tokens, so a
        single token is not guaranteed to be valid UTF-8 on its own.
        """
        self._owner._check_live()
        return self._struct.text or b""

    @property
    def text(self) -> str:
        return self.raw_text.decode("utf-8", errors="replace")

    @property
    def timestep(self) -> int:
        """Position of the token in 20ms frames from the start of the audio."""
        self._owner._check_live()
        return int(self._struct.timestep)

    @property
    def start_time(self) -> float:
        """Position of the token in seconds."""
        self._owner._check_live()
        return float(self._struct.start_time)

    def __repr__(self) -> str:
        if self._owner.released:
            return "<TokenMetadata released>"
        return f"<TokenMetadata {self.text!r} t={self.start_time:.2f}s>"


class CandidateTranscript:
    """One ranked transcript with its confidence and tokens."""

    __slots__ = ("_owner", "_struct")

    def __init__(self, owner: "Metadata", struct: structs.CandidateTranscript):
        self._owner = owner
        self._struct = struct

    @property
    def confidence(self) -> float:
        """Approximate confidence of this transcript.

        Roughly the sum of acoustic model logits for each timestep/character
        that contributed to it. Higher is better; only comparable between
        candidates from the same decode call.
        """
        self._owner._check_live()
        return float(self._struct.confidence)

    @property
    def num_tokens(self) -> int:
        self._owner._check_live()
        return int(self._struct.num_tokens)

    @property
    def tokens(self) -> tuple[TokenMetadata, ...]:
        count = self.num_tokens
        array = self._struct.tokens
        return tuple(TokenMetadata(self._owner, array[i]) for i in range(count))

    @property
    def text(self) -> str:
        """Concatenated token text."""
        return b"".join(t.raw_text for t in self.tokens).decode(
            "utf-8", errors="replace"
        )

    def __repr__(self) -> str:
        if self._owner.released:
            return "<CandidateTranscript released>"
        return f"<CandidateTranscript {self.text!r} confidence={self.confidence:.3f}>"


class Metadata:
    """Candidate transcripts returned by a "with metadata" call.

    The caller must release it exactly once, either with ``release()`` or by
    using it as a context manager. Views obtained from it must not be used
    after release.
    """

    def __init__(self, lib, address: int):
        self._lib = lib
        self._address = address
        self._struct = ctypes.cast(address, ctypes.POINTER(structs.Metadata)).contents
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def _check_live(self) -> None:
        if self._released:
            raise ResourceError("metadata has been released")

    @property
    def num_transcripts(self) -> int:
        self._check_live()
        return int(self._struct.num_transcripts)

    @property
    def transcripts(self) -> tuple[CandidateTranscript, ...]:
        """Candidate transcripts, best first."""
        count = self.num_transcripts
        array = self._struct.transcripts
        return tuple(CandidateTranscript(self, array[i]) for i in range(count))

    @property
    def text(self) -> str:
        """Text of the best candidate, or an empty string if there is none."""
        transcripts = self.transcripts
        return transcripts[0].text if transcripts else ""

    def to_dict(self) -> dict[str, Any]:
        """Copy the whole result into plain Python objects."""
        return {
            "transcripts": [
                {
                    "confidence": c.confidence,
                    "text": c.text,
                    "tokens": [
                        {
                            "text": t.text,
                            "timestep": t.timestep,
                            "start_time": t.start_time,
                        }
                        for t in c.tokens
                    ],
                }
                for c in self.transcripts
            ]
        }

    def release(self) -> None:
        """Free the native result. Further calls are no-ops."""
        if self._released:
            return
        self._released = True
        self._struct = None
        self._lib.DS_FreeMetadata(self._address)
        logger.debug("Freed metadata %#x", self._address)

    def __enter__(self) -> "Metadata":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

    def __len__(self) -> int:
        return self.num_transcripts

    def __iter__(self):
        return iter(self.transcripts)

    def __repr__(self) -> str:
        if self._released:
            return "<Metadata released>"
        return f"<Metadata transcripts={self.num_transcripts}>"
