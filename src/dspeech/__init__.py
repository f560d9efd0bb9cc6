"""Python bindings for the DeepSpeech speech-to-text library."""

from dspeech.constants import CHUNK_BYTES, CHUNK_SAMPLES, SAMPLE_RATE, TIMESTEP_MS
from dspeech.errors import (
    ConfigurationError,
    DecodeError,
    DeepSpeechError,
    InferenceError,
    InitializationError,
    PreconditionError,
    ResourceError,
)
from dspeech.metadata import CandidateTranscript, Metadata, TokenMetadata
from dspeech.model import Model, version
from dspeech.native.library import load_library
from dspeech.stream import Stream

__all__ = [
    "Model",
    "Stream",
    "Metadata",
    "CandidateTranscript",
    "TokenMetadata",
    "version",
    "load_library",
    "DeepSpeechError",
    "InitializationError",
    "ConfigurationError",
    "PreconditionError",
    "InferenceError",
    "DecodeError",
    "ResourceError",
    "SAMPLE_RATE",
    "TIMESTEP_MS",
    "CHUNK_SAMPLES",
    "CHUNK_BYTES",
]
