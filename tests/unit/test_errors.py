"""Unit tests for status-code translation."""

import pytest

from dspeech.errors import (
    ConfigurationError,
    DeepSpeechError,
    InferenceError,
    InitializationError,
    PreconditionError,
    ResourceError,
    check,
    error_from_code,
    error_message,
)
from dspeech.native.codes import MESSAGES, UNKNOWN_MESSAGE, ErrorCode


class TestErrorMessage:
    def test_known_code(self, fake):
        assert error_message(fake, ErrorCode.SCORER_UNREADABLE) == "Could not read scorer file."
        assert fake.live_allocations == 0

    def test_unknown_code(self, fake):
        assert error_message(fake, 0x9999) == UNKNOWN_MESSAGE

    def test_every_code_has_a_message(self):
        assert set(MESSAGES) == set(ErrorCode)


class TestErrorFromCode:
    def test_ok_is_none(self, fake):
        assert error_from_code(fake, ErrorCode.OK, InitializationError) is None
        assert fake.calls == []

    def test_kind_and_context(self, fake):
        err = error_from_code(
            fake, ErrorCode.FAIL_INIT_MMAP, InitializationError, "loading model x failed"
        )
        assert isinstance(err, InitializationError)
        assert str(err) == "loading model x failed: Failed to initialize memory mapped model."

    def test_scorer_not_enabled_is_precondition(self, fake):
        err = error_from_code(fake, ErrorCode.SCORER_NOT_ENABLED, ConfigurationError)
        assert isinstance(err, PreconditionError)
        assert isinstance(err, ConfigurationError)

    def test_scorer_not_enabled_keeps_unrelated_kind(self, fake):
        err = error_from_code(fake, ErrorCode.SCORER_NOT_ENABLED, InitializationError)
        assert type(err) is InitializationError

    def test_message_falls_back_when_lookup_is_null(self, fake, monkeypatch):
        monkeypatch.setattr(fake, "DS_ErrorCodeToErrorMessage", lambda code: None)
        err = error_from_code(fake, 0x3003, InferenceError)
        assert str(err) == "native error 0x3003"


class TestCheck:
    def test_raises(self, fake):
        with pytest.raises(ConfigurationError, match="Invalid scorer file"):
            check(fake, ErrorCode.INVALID_SCORER, ConfigurationError, "enabling scorer")

    def test_ok_passes(self, fake):
        check(fake, ErrorCode.OK, ConfigurationError)


class TestHierarchy:
    @pytest.mark.parametrize(
        "cls",
        [InitializationError, ConfigurationError, PreconditionError, InferenceError, ResourceError],
    )
    def test_all_derive_from_base(self, cls):
        assert issubclass(cls, DeepSpeechError)
