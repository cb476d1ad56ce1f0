"""Audio conversion helpers for PCM frames sent to the recognizer."""

from typing import cast

import numpy as np

AudioFrame = bytes | bytearray | memoryview | np.ndarray


def float32_to_int16(audio: np.ndarray) -> np.ndarray:
    """Convert float PCM in [-1.0, 1.0] to int16."""
    if audio.dtype == np.int16:
        return audio
    audio_f32 = audio.astype(np.float32)
    return cast("np.ndarray", np.clip(audio_f32 * 32768.0, -32768, 32767).astype(np.int16))


def frame_to_pcm_bytes(frame: AudioFrame) -> bytes:
    """Return the little-endian 16-bit PCM payload for one audio frame.

    Byte-like frames are assumed to already be PCM and pass through untouched.
    Integer arrays other than int16 are treated as raw sample values.
    """
    if isinstance(frame, np.ndarray):
        if frame.dtype == np.int16:
            samples = frame
        elif np.issubdtype(frame.dtype, np.floating):
            samples = float32_to_int16(frame)
        else:
            samples = np.clip(frame, -32768, 32767).astype(np.int16)
        return samples.astype("<i2", copy=False).tobytes()
    if isinstance(frame, (bytes, bytearray, memoryview)):
        return bytes(frame)
    raise TypeError(f"Unsupported audio frame type: {type(frame).__name__}")


def frame_duration_ms(pcm: bytes, sample_rate: int, channels: int = 1) -> float:
    """Duration of a 16-bit PCM payload in milliseconds."""
    if sample_rate <= 0 or channels <= 0:
        return 0.0
    samples = len(pcm) // (2 * channels)
    return samples * 1000.0 / sample_rate
