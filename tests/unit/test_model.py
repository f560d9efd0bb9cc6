"""Unit tests for Model against the fake native library."""

import re
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from dspeech import model as model_module
from dspeech.errors import (
    ConfigurationError,
    InferenceError,
    InitializationError,
    PreconditionError,
    ResourceError,
)
from dspeech.model import Model, version
from dspeech.native.codes import ErrorCode
from dspeech.native.fake import FakeDeepSpeech


def native_state(fake):
    (state,) = fake.models.values()
    return state


class TestLoading:
    """Tests for model creation and release."""

    def test_load(self, fake, model_path):
        with Model(model_path, library=fake) as model:
            assert not model.closed
            assert model.model_path == str(model_path)
            assert len(fake.models) == 1
        fake.assert_clean()

    def test_missing_file(self, fake, tmp_path):
        with pytest.raises(InitializationError, match="Failed to initialize memory mapped model"):
            Model(tmp_path / "missing.pbmm", library=fake)
        fake.assert_clean()

    def test_error_message_names_path(self, fake, tmp_path):
        path = tmp_path / "missing.pbmm"
        with pytest.raises(InitializationError, match=re.escape(f"loading model {path}")):
            Model(path, library=fake)

    def test_partial_state_freed_on_failure(self, fake, model_path):
        fake.status_overrides["DS_CreateModel"] = ErrorCode.FAIL_CREATE_MODEL
        fake.partial_handles = True
        with pytest.raises(InitializationError, match="Could not allocate model state"):
            Model(model_path, library=fake)
        assert "DS_FreeModel" in fake.calls
        fake.assert_clean()

    def test_no_free_without_partial_state(self, fake, model_path):
        fake.status_overrides["DS_CreateModel"] = ErrorCode.INVALID_ALPHABET
        with pytest.raises(InitializationError):
            Model(model_path, library=fake)
        assert "DS_FreeModel" not in fake.calls

    def test_default_library(self, fake, model_path, monkeypatch):
        monkeypatch.setattr(model_module, "default_library", lambda: fake)
        with Model(model_path) as model:
            assert model.library is fake

    def test_close_is_idempotent(self, fake, model_path):
        model = Model(model_path, library=fake)
        model.close()
        model.close()
        assert fake.calls.count("DS_FreeModel") == 1
        assert model.closed

    def test_repr(self, model):
        assert "open" in repr(model)
        model.close()
        assert "closed" in repr(model)


class TestConfiguration:
    """Tests for beam width and scorer settings."""

    def test_sample_rate(self, model):
        assert model.sample_rate == 16000

    def test_custom_sample_rate(self, model_path):
        fake = FakeDeepSpeech(sample_rate=8000)
        with Model(model_path, library=fake) as model:
            assert model.sample_rate == 8000

    def test_default_beam_width(self, model):
        assert model.beam_width == 500

    def test_set_beam_width(self, model):
        model.set_beam_width(1024)
        assert model.beam_width == 1024

    def test_beam_width_zero_is_forwarded(self, fake, model):
        model.set_beam_width(0)
        assert model.beam_width == 0
        assert "DS_SetModelBeamWidth" in fake.calls

    def test_negative_beam_width_rejected(self, fake, model):
        with pytest.raises(ConfigurationError, match="must not be negative"):
            model.set_beam_width(-1)
        assert "DS_SetModelBeamWidth" not in fake.calls
        assert model.beam_width == 500

    def test_native_rejects_beam_width(self, fake, model):
        fake.status_overrides["DS_SetModelBeamWidth"] = ErrorCode.INVALID_SHAPE
        with pytest.raises(ConfigurationError, match="setting beam width to 10 failed"):
            model.set_beam_width(10)

    def test_enable_scorer(self, fake, model, scorer_path):
        assert model.scorer_path is None
        model.enable_external_scorer(scorer_path)
        assert model.scorer_path == str(scorer_path)
        assert native_state(fake).scorer_path == str(scorer_path)

    def test_enable_unreadable_scorer(self, model, tmp_path):
        with pytest.raises(ConfigurationError, match="Could not read scorer file"):
            model.enable_external_scorer(tmp_path / "missing.scorer")
        assert model.scorer_path is None

    def test_enable_invalid_scorer(self, fake, model, scorer_path):
        fake.status_overrides["DS_EnableExternalScorer"] = ErrorCode.SCORER_VERSION_MISMATCH
        with pytest.raises(ConfigurationError, match="version does not match"):
            model.enable_external_scorer(scorer_path)

    def test_enable_replaces_scorer(self, fake, model, scorer_path, tmp_path):
        other = tmp_path / "other.scorer"
        other.write_bytes(b"x")
        model.enable_external_scorer(scorer_path)
        model.enable_external_scorer(other)
        assert model.scorer_path == str(other)
        assert native_state(fake).scorer_path == str(other)

    def test_disable_scorer(self, fake, model, scorer_path):
        model.enable_external_scorer(scorer_path)
        model.disable_external_scorer()
        assert model.scorer_path is None
        assert native_state(fake).scorer_path is None

    def test_disable_without_scorer(self, model):
        with pytest.raises(PreconditionError, match="External scorer is not enabled"):
            model.disable_external_scorer()

    def test_alpha_beta(self, fake, model, scorer_path):
        model.enable_external_scorer(scorer_path)
        model.set_scorer_alpha_beta(0.93, 1.18)
        state = native_state(fake)
        assert state.alpha == pytest.approx(0.93)
        assert state.beta == pytest.approx(1.18)

    def test_alpha_beta_without_scorer(self, model):
        with pytest.raises(PreconditionError):
            model.set_scorer_alpha_beta(0.75, 1.85)


class TestTranscribe:
    """Tests for one-shot inference."""

    def test_transcribe(self, fake, model, speech):
        assert model.transcribe(speech) == fake.transcript_for(speech)
        assert fake.live_allocations == 0

    def test_transcribe_bytes(self, model, speech):
        assert model.transcribe(speech.tobytes()) == model.transcribe(speech)

    def test_transcribe_empty(self, model):
        assert model.transcribe(np.empty(0, dtype=np.int16)) == ""

    def test_transcribe_rejects_float(self, fake, model):
        with pytest.raises(TypeError):
            model.transcribe(np.zeros(16, dtype=np.float32))
        assert "DS_SpeechToText" not in fake.calls

    def test_null_result(self, fake, model, speech):
        fake.null_results.add("DS_SpeechToText")
        with pytest.raises(InferenceError):
            model.transcribe(speech)

    def test_with_metadata(self, fake, model, speech):
        with model.transcribe_with_metadata(speech, num_results=2) as metadata:
            assert metadata.num_transcripts == 2
            best, second = metadata.transcripts
            assert best.confidence > second.confidence
            assert metadata.text == model.transcribe(speech)
            assert "".join(t.text for t in best.tokens) == best.text
        assert fake.live_allocations == 0

    def test_with_metadata_returns_at_most_requested(self, model, speech):
        with model.transcribe_with_metadata(speech, num_results=10) as metadata:
            assert 1 <= len(metadata) <= 10

    def test_with_metadata_default_single(self, model, speech):
        with model.transcribe_with_metadata(speech) as metadata:
            assert len(metadata) == 1

    def test_with_metadata_invalid_count(self, fake, model, speech):
        with pytest.raises(ValueError):
            model.transcribe_with_metadata(speech, num_results=0)
        assert "DS_SpeechToTextWithMetadata" not in fake.calls

    def test_with_metadata_null_result(self, fake, model, speech):
        fake.null_results.add("DS_SpeechToTextWithMetadata")
        with pytest.raises(InferenceError):
            model.transcribe_with_metadata(speech)


class TestClosedModel:
    """Every operation on a closed model raises without calling native code."""

    @pytest.mark.parametrize(
        "op",
        [
            lambda m: m.beam_width,
            lambda m: m.set_beam_width(10),
            lambda m: m.sample_rate,
            lambda m: m.enable_external_scorer("x.scorer"),
            lambda m: m.disable_external_scorer(),
            lambda m: m.set_scorer_alpha_beta(0.5, 0.5),
            lambda m: m.transcribe(b""),
            lambda m: m.transcribe_with_metadata(b""),
            lambda m: m.create_stream(),
        ],
    )
    def test_raises_resource_error(self, fake, model, op):
        model.close()
        calls = len(fake.calls)
        with pytest.raises(ResourceError):
            op(model)
        assert len(fake.calls) == calls

    def test_close_discards_open_streams(self, fake, model, speech):
        first = model.create_stream()
        second = model.create_stream()
        first.feed_audio(speech)
        second.finish()
        model.close()
        assert first.finished
        fake.assert_clean()

    def test_streams_survive_until_close(self, fake, model):
        stream = model.create_stream()
        assert len(fake.streams) == 1
        stream.discard()
        model.close()
        fake.assert_clean()

    def test_streams_finished_on_worker_threads(self, fake, model, speech, caplog):
        streams = [model.create_stream() for _ in range(16)]
        for stream in streams:
            stream.feed_audio(speech[:1600])
        with ThreadPoolExecutor(max_workers=8) as pool:
            texts = list(pool.map(lambda s: s.finish(), streams))
        assert texts == [fake.transcript_for(speech[:1600])] * 16
        model.close()
        assert "Discarding stream" not in caplog.text
        fake.assert_clean()


class TestVersion:
    def test_version(self, fake):
        assert version(fake) == "0.9.3"
        assert fake.live_allocations == 0

    def test_version_default_library(self, monkeypatch):
        monkeypatch.setattr(model_module, "default_library", lambda: FakeDeepSpeech(version="1.2.3"))
        assert version() == "1.2.3"

    def test_null_version(self, fake, monkeypatch):
        monkeypatch.setattr(fake, "DS_Version", lambda: None)
        with pytest.raises(InitializationError):
            version(fake)
