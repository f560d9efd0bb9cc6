"""Golden-output tests against the real libdeepspeech.

Skipped unless a native build and model are available:

    DEEPSPEECH_LIBRARY=/opt/deepspeech/libdeepspeech.so \
    DEEPSPEECH_MODEL=deepspeech-0.9.3-models.pbmm \
    DEEPSPEECH_AUDIO=audio/2830-3980-0043.wav \
    DEEPSPEECH_EXPECTED="experience proves this" \
    pytest -m native tests/integration/test_native.py -v

DEEPSPEECH_SCORER is optional and enables the external scorer.
"""

import os

import pytest

from dspeech import Model, ResourceError, load_library, version
from dspeech.audio import chunk_samples, read_wav
from dspeech.constants import CHUNK_SAMPLES

REQUIRED = ("DEEPSPEECH_LIBRARY", "DEEPSPEECH_MODEL", "DEEPSPEECH_AUDIO")

pytestmark = [
    pytest.mark.native,
    pytest.mark.skipif(
        not all(os.environ.get(name) for name in REQUIRED),
        reason="set " + ", ".join(REQUIRED) + " to run native tests",
    ),
]


@pytest.fixture(scope="module")
def library():
    return load_library(os.environ["DEEPSPEECH_LIBRARY"])


@pytest.fixture(scope="module")
def model(library):
    m = Model(os.environ["DEEPSPEECH_MODEL"], library=library)
    scorer = os.environ.get("DEEPSPEECH_SCORER")
    if scorer:
        m.enable_external_scorer(scorer)
    yield m
    m.close()


@pytest.fixture(scope="module")
def audio(model):
    samples, sample_rate = read_wav(os.environ["DEEPSPEECH_AUDIO"])
    assert sample_rate == model.sample_rate
    return samples


@pytest.fixture(scope="module")
def reference(model, audio):
    return model.transcribe(audio)


def test_version(library):
    assert version(library).count(".") >= 2


def test_expected_transcript(reference):
    expected = os.environ.get("DEEPSPEECH_EXPECTED")
    if expected is None:
        pytest.skip("DEEPSPEECH_EXPECTED not set")
    assert reference == expected


def test_metadata_matches_transcript(model, audio, reference):
    with model.transcribe_with_metadata(audio, num_results=3) as metadata:
        assert 1 <= len(metadata) <= 3
        assert metadata.text == reference
        starts = [t.start_time for t in metadata.transcripts[0].tokens]
        assert starts == sorted(starts)


def test_stream_matches_one_shot(model, audio, reference):
    stream = model.create_stream()
    for chunk in chunk_samples(audio, CHUNK_SAMPLES):
        stream.feed_audio(chunk)
    assert stream.intermediate_decode() == reference
    assert stream.finish() == reference
    with pytest.raises(ResourceError):
        stream.finish()


def test_empty_stream(model):
    stream = model.create_stream()
    assert stream.finish() == ""
