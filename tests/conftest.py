"""Shared fixtures: a fake native library and model/scorer files to load."""

import numpy as np
import pytest

from dspeech.model import Model
from dspeech.native.fake import FakeDeepSpeech


@pytest.fixture
def fake():
    return FakeDeepSpeech()


@pytest.fixture
def model_path(tmp_path):
    path = tmp_path / "model.pbmm"
    path.write_bytes(b"fake model")
    return path


@pytest.fixture
def scorer_path(tmp_path):
    path = tmp_path / "kenlm.scorer"
    path.write_bytes(b"fake scorer")
    return path


@pytest.fixture
def model(fake, model_path):
    m = Model(model_path, library=fake)
    yield m
    m.close()


@pytest.fixture
def speech():
    """One second of deterministic int16 noise at 16kHz."""
    rng = np.random.default_rng(0)
    return rng.integers(-2000, 2000, size=16000, dtype=np.int16)
