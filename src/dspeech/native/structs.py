"""ctypes mirrors of the result structures allocated by the native library."""

import ctypes


class TokenMetadata(ctypes.Structure):
    _fields_ = [
        ("text", ctypes.c_char_p),
        ("timestep", ctypes.c_uint),
        ("start_time", ctypes.c_float),
    ]


class CandidateTranscript(ctypes.Structure):
    _fields_ = [
        ("tokens", ctypes.POINTER(TokenMetadata)),
        ("num_tokens", ctypes.c_uint),
        ("confidence", ctypes.c_double),
    ]


class Metadata(ctypes.Structure):
    _fields_ = [
        ("transcripts", ctypes.POINTER(CandidateTranscript)),
        ("num_transcripts", ctypes.c_uint),
    ]


SamplePointer = ctypes.POINTER(ctypes.c_short)
HandleOut = ctypes.POINTER(ctypes.c_void_p)
