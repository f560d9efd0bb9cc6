"""Core constants for the DeepSpeech bindings.

DeepSpeech models consume 16-bit mono PCM. The actual sample rate is
embedded in the model file; SAMPLE_RATE is the value shipped models use.
"""

# Audio format requirements
SAMPLE_RATE: int = 16000  # Hz - released English models
BYTES_PER_SAMPLE: int = 2  # 16-bit PCM

# Token timesteps are reported in 20ms acoustic frames
TIMESTEP_MS: int = 20

# Recommended streaming chunk: 320ms
CHUNK_MS: int = 320
CHUNK_SAMPLES: int = 5120  # 16000 * 0.320
CHUNK_BYTES: int = 10240  # 5120 * 2 bytes

# Native library lookup
LIBRARY_NAME: str = "deepspeech"
LIBRARY_FALLBACK: str = "libdeepspeech.so"
LIBRARY_ENV: str = "DEEPSPEECH_LIBRARY"

# Scorer hyperparameters used by the demonstration tool
DEFAULT_LM_ALPHA: float = 0.75
DEFAULT_LM_BETA: float = 1.85

# Candidate transcripts requested by "with metadata" calls
DEFAULT_NUM_RESULTS: int = 1
