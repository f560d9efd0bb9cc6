"""Native boundary: the libdeepspeech C API and its in-process fake."""
