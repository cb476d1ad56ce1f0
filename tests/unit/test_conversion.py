"""Tests for PCM frame conversion."""

import numpy as np
import pytest

from stt_session.audio import float32_to_int16, frame_duration_ms, frame_to_pcm_bytes


def test_bytes_pass_through():
    assert frame_to_pcm_bytes(bytearray(b"\x01\x02")) == b"\x01\x02"
    assert frame_to_pcm_bytes(memoryview(b"\x03\x04")) == b"\x03\x04"


def test_int16_array_is_little_endian():
    pcm = frame_to_pcm_bytes(np.array([1, -2], dtype=np.int16))

    assert pcm == b"\x01\x00\xfe\xff"


def test_float_array_is_clipped_and_scaled():
    pcm = frame_to_pcm_bytes(np.array([2.0, -2.0, 0.25], dtype=np.float64))

    assert np.frombuffer(pcm, dtype="<i2").tolist() == [32767, -32768, 8192]


def test_wide_int_array_is_clipped():
    pcm = frame_to_pcm_bytes(np.array([40000, -40000, 7], dtype=np.int32))

    assert np.frombuffer(pcm, dtype="<i2").tolist() == [32767, -32768, 7]


def test_unsupported_type():
    with pytest.raises(TypeError):
        frame_to_pcm_bytes([1, 2, 3])


def test_float32_to_int16():
    as_int = float32_to_int16(np.array([0.5, -1.0, 1.5], dtype=np.float32))

    assert as_int.dtype == np.int16
    assert as_int.tolist() == [16384, -32768, 32767]


def test_int16_passes_through_unchanged():
    samples = np.array([1, -1], dtype=np.int16)

    assert float32_to_int16(samples) is samples


def test_frame_duration_ms():
    assert frame_duration_ms(b"\x00" * 3200, 16000) == 100.0
    assert frame_duration_ms(b"\x00" * 3200, 16000, channels=2) == 50.0
    assert frame_duration_ms(b"\x00" * 10, 0) == 0.0
