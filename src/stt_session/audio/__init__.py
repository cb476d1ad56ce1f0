#!/usr/bin/env python3
"""PCM frame helpers.

Audio capture itself lives outside this package; these helpers only turn
captured buffers into the binary frames the recognizer expects.
"""

from .conversion import AudioFrame, float32_to_int16, frame_duration_ms, frame_to_pcm_bytes

__all__ = [
    "AudioFrame",
    "float32_to_int16",
    "frame_duration_ms",
    "frame_to_pcm_bytes",
]
