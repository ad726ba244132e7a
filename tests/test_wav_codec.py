"""
tests/test_wav_codec.py
========================
WAV Codec Tests — header layout, decode validation, round-trip law.

All tests are OFFLINE; WAV fixtures are built in memory.
"""

import io
import os
import struct
import sys
import unittest
import wave

import numpy as np

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from voicenorm.audio import wav_codec
from voicenorm.audio.wav_codec import PcmBuffer, WavHeader
from voicenorm.errors import MalformedContainerError


# ===================================================================
# Test fixtures
# ===================================================================


def _random_ints(n: int, seed: int = 7) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.integers(-32768, 32768, size=n, dtype=np.int64).astype("<i2")


def _wav(
    payload: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    bits: int = 16,
    format_tag: int = 1,
    extra_chunks: bytes = b"",
) -> bytes:
    """Hand-built WAV with arbitrary fmt fields and optional chunks before data."""
    block_align = channels * bits // 8
    fmt = struct.pack(
        "<HHIIHH", format_tag, channels, sample_rate, sample_rate * block_align, block_align, bits
    )
    body = (
        b"WAVE"
        + b"fmt " + struct.pack("<I", len(fmt)) + fmt
        + extra_chunks
        + b"data" + struct.pack("<I", len(payload)) + payload
    )
    return b"RIFF" + struct.pack("<I", len(body)) + body


# ===================================================================
# Encoding
# ===================================================================


class TestEncode(unittest.TestCase):

    def test_header_fields_computed_from_sample_count(self):
        samples = [0, 1, -1, 32767, -32768]
        data = wav_codec.encode(samples, 22050)

        self.assertEqual(len(data), 44 + 2 * len(samples))
        fields = struct.unpack("<4sI4s4sIHHIIHH4sI", data[:44])
        (riff, riff_size, wave_id, fmt_id, fmt_size, tag, channels,
         rate, byte_rate, block_align, bits, data_id, data_size) = fields
        self.assertEqual(riff, b"RIFF")
        self.assertEqual(riff_size, 36 + 10)
        self.assertEqual(wave_id, b"WAVE")
        self.assertEqual(fmt_id, b"fmt ")
        self.assertEqual(fmt_size, 16)
        self.assertEqual(tag, 1)
        self.assertEqual(channels, 1)
        self.assertEqual(rate, 22050)
        self.assertEqual(byte_rate, 22050 * 2)
        self.assertEqual(block_align, 2)
        self.assertEqual(bits, 16)
        self.assertEqual(data_id, b"data")
        self.assertEqual(data_size, 10)

    def test_payload_is_little_endian_int16(self):
        data = wav_codec.encode([1, -2, 0x1234], 16000)
        self.assertEqual(data[44:], b"\x01\x00\xfe\xff\x34\x12")

    def test_empty_sample_sequence(self):
        data = wav_codec.encode([], 16000)
        self.assertEqual(len(data), 44)
        self.assertEqual(struct.unpack_from("<I", data, 40)[0], 0)
        self.assertEqual(struct.unpack_from("<I", data, 4)[0], 36)

    def test_readable_by_stdlib_wave(self):
        ints = _random_ints(1600)
        data = wav_codec.encode(ints, 16000)
        with wave.open(io.BytesIO(data), "rb") as wf:
            self.assertEqual(wf.getnchannels(), 1)
            self.assertEqual(wf.getsampwidth(), 2)
            self.assertEqual(wf.getframerate(), 16000)
            self.assertEqual(wf.getnframes(), 1600)
            self.assertEqual(wf.readframes(1600), ints.tobytes())

    def test_header_dataclass_matches_encode(self):
        header = WavHeader.for_samples(100, 8000)
        self.assertEqual(header.pack(), wav_codec.encode([0] * 100, 8000)[:44])
        self.assertEqual(len(header.pack()), wav_codec.HEADER_SIZE)

    def test_out_of_range_samples_rejected(self):
        with self.assertRaises(ValueError):
            wav_codec.encode([0, 40000], 16000)
        with self.assertRaises(ValueError):
            wav_codec.encode([-32769], 16000)

    def test_float_samples_rejected(self):
        with self.assertRaises(ValueError):
            wav_codec.encode(np.array([0.5, -0.5]), 16000)

    def test_non_positive_sample_rate_rejected(self):
        with self.assertRaises(ValueError):
            wav_codec.encode([0], 0)


# ===================================================================
# Decoding
# ===================================================================


class TestDecode(unittest.TestCase):

    def test_scaling_by_32768(self):
        payload = np.array([-32768, 0, 16384, 32767], dtype="<i2").tobytes()
        pcm = wav_codec.decode(_wav(payload))

        self.assertEqual(pcm.sample_rate, 16000)
        self.assertEqual(pcm.channels, 1)
        self.assertEqual(pcm.samples[0], -1.0)
        self.assertEqual(pcm.samples[1], 0.0)
        self.assertEqual(pcm.samples[2], 0.5)
        self.assertLess(pcm.samples[3], 1.0)
        self.assertAlmostEqual(float(pcm.samples[3]), 32767 / 32768, places=6)

    def test_stereo_frames(self):
        payload = np.array([100, -100, 200, -200, 300, -300], dtype="<i2").tobytes()
        pcm = wav_codec.decode(_wav(payload, sample_rate=44100, channels=2))
        self.assertEqual(pcm.channels, 2)
        self.assertEqual(pcm.frames, 3)
        self.assertEqual(pcm.sample_rate, 44100)

    def test_skips_unknown_chunks(self):
        list_chunk = b"LIST" + struct.pack("<I", 5) + b"INFOx" + b"\x00"  # odd size → pad byte
        payload = np.array([1, 2, 3], dtype="<i2").tobytes()
        pcm = wav_codec.decode(_wav(payload, extra_chunks=list_chunk))
        np.testing.assert_array_equal(wav_codec.to_int16(pcm.samples), [1, 2, 3])

    def test_trailing_partial_frame_truncated(self):
        payload = np.array([1, 2, 3], dtype="<i2").tobytes() + b"\x07"
        pcm = wav_codec.decode(_wav(payload))
        self.assertEqual(pcm.frames, 3)

    def test_not_riff(self):
        with self.assertRaises(MalformedContainerError):
            wav_codec.decode(b"ID3\x04" + b"\x00" * 60)

    def test_too_short(self):
        with self.assertRaises(MalformedContainerError):
            wav_codec.decode(b"RIFF")

    def test_float_format_rejected(self):
        payload = np.array([0.25], dtype="<f4").tobytes()
        with self.assertRaises(MalformedContainerError) as ctx:
            wav_codec.decode(_wav(payload, bits=32, format_tag=3))
        self.assertIn("format tag", str(ctx.exception))

    def test_24_bit_rejected(self):
        with self.assertRaises(MalformedContainerError) as ctx:
            wav_codec.decode(_wav(b"\x00" * 6, bits=24))
        self.assertIn("bit depth", str(ctx.exception))

    def test_missing_data_chunk(self):
        fmt = struct.pack("<HHIIHH", 1, 1, 16000, 32000, 2, 16)
        body = b"WAVE" + b"fmt " + struct.pack("<I", 16) + fmt
        data = b"RIFF" + struct.pack("<I", len(body)) + body
        with self.assertRaises(MalformedContainerError):
            wav_codec.decode(data)

    def test_data_before_fmt(self):
        body = b"WAVE" + b"data" + struct.pack("<I", 2) + b"\x00\x00"
        data = b"RIFF" + struct.pack("<I", len(body)) + body
        with self.assertRaises(MalformedContainerError):
            wav_codec.decode(data)

    def test_error_carries_path(self):
        with self.assertRaises(MalformedContainerError) as ctx:
            wav_codec.decode(b"garbage-garbage", path="/tmp/in.wav")
        self.assertEqual(ctx.exception.path, "/tmp/in.wav")

    def test_read_header(self):
        info = wav_codec.read_header(wav_codec.encode([0] * 480, 48000))
        self.assertEqual(info.sample_rate, 48000)
        self.assertEqual(info.channels, 1)
        self.assertEqual(info.bits_per_sample, 16)
        self.assertEqual(info.frames, 480)


# ===================================================================
# Round-trip law
# ===================================================================


class TestRoundTrip(unittest.TestCase):

    def test_mono_bytes_reproduced(self):
        original = wav_codec.encode(_random_ints(4000), 16000)
        pcm = wav_codec.decode(original)
        self.assertEqual(wav_codec.encode(wav_codec.to_int16(pcm.samples), pcm.sample_rate), original)

    def test_stereo_payload_reproduced(self):
        payload = _random_ints(2 * 1000, seed=11).tobytes()
        pcm = wav_codec.decode(_wav(payload, sample_rate=44100, channels=2))
        rebuilt = wav_codec.encode_pcm(
            wav_codec.to_int16(pcm.samples).tobytes(), pcm.sample_rate, pcm.channels
        )
        self.assertEqual(rebuilt[44:], payload)
        self.assertEqual(wav_codec.read_header(rebuilt).channels, 2)

    def test_extremes_survive(self):
        ints = np.array([-32768, -1, 0, 1, 32767], dtype="<i2")
        pcm = wav_codec.decode(wav_codec.encode(ints, 16000))
        np.testing.assert_array_equal(wav_codec.to_int16(pcm.samples), ints)


class TestPcmBuffer(unittest.TestCase):

    def test_partial_frame_rejected(self):
        with self.assertRaises(ValueError):
            PcmBuffer(samples=np.zeros(3, dtype=np.float32), sample_rate=16000, channels=2)

    def test_positive_rate_and_channels(self):
        with self.assertRaises(ValueError):
            PcmBuffer(samples=np.zeros(2, dtype=np.float32), sample_rate=0, channels=1)
        with self.assertRaises(ValueError):
            PcmBuffer(samples=np.zeros(2, dtype=np.float32), sample_rate=16000, channels=0)

    def test_duration(self):
        pcm = PcmBuffer(samples=np.zeros(44100 * 2, dtype=np.float32), sample_rate=44100, channels=2)
        self.assertEqual(pcm.frames, 44100)
        self.assertAlmostEqual(pcm.duration_seconds, 1.0)


if __name__ == "__main__":
    unittest.main(verbosity=2)
