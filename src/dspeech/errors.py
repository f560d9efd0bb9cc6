"""Error types raised by the DeepSpeech bindings.

The native library reports failures either as a nonzero status code or as a
NULL result. Codes are turned into exceptions carrying the library's own
message; the code itself is only used to pick the exception class.
"""

from typing import Optional

from dspeech.marshal import adopt_string
from dspeech.native.codes import ErrorCode


class DeepSpeechError(Exception):
    """Base class for every error raised by the bindings."""


class InitializationError(DeepSpeechError):
    """Raised when the library, a model or a stream cannot be created."""


class ConfigurationError(DeepSpeechError):
    """Raised when the native layer rejects a configuration change."""


class PreconditionError(ConfigurationError):
    """Raised when a scorer operation is attempted with no scorer enabled."""


class InferenceError(DeepSpeechError):
    """Raised when one-shot transcription yields no result."""


class DecodeError(DeepSpeechError):
    """Raised when a streaming decode yields no result."""


class ResourceError(DeepSpeechError):
    """Raised on use of a closed model, a finished stream or released metadata."""


def error_message(lib, code: int) -> str:
    """Look up the native description of a status code."""
    ptr = lib.DS_ErrorCodeToErrorMessage(code)
    if not ptr:
        return f"native error {code:#06x}"
    return adopt_string(lib, ptr)


def error_from_code(
    lib,
    code: int,
    kind: type[DeepSpeechError],
    context: Optional[str] = None,
) -> Optional[DeepSpeechError]:
    """Convert a native status code into an exception instance.

    Args:
        lib: The native library that produced the code.
        code: Status code returned by a DS_* call.
        kind: Exception class for the failing operation.
        context: Operation description prefixed to the message.

    Returns:
        None if ``code`` is zero, otherwise the exception to raise.
    """
    if code == ErrorCode.OK:
        return None
    if code == ErrorCode.SCORER_NOT_ENABLED and issubclass(
        PreconditionError, kind
    ):
        kind = PreconditionError
    message = error_message(lib, code)
    if context:
        message = f"{context}: {message}"
    return kind(message)


def check(lib, code: int, kind: type[DeepSpeechError], context: Optional[str] = None) -> None:
    """Raise ``kind`` if ``code`` signals a native failure."""
    err = error_from_code(lib, code, kind, context)
    if err is not None:
        raise err
