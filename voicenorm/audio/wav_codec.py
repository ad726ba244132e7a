"""
voicenorm/audio/wav_codec.py
=============================
WAV Codec — VoiceNorm

Responsibility:
    - Parse RIFF/WAVE/PCM 16-bit containers into a PcmBuffer of floats
    - Build the canonical 44-byte header + little-endian int16 payload

This is the single source of truth for the WAV byte layout. Both the
normalizer and the synthesis writer encode through ``encode`` so the two
paths agree byte-for-byte.

This module does NOT:
    - Resample, downmix or re-quantize (handled by voicenorm.audio.normalizer)
    - Read float, 8-bit, 24-bit or 32-bit WAV files
"""

import logging
import struct
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from voicenorm.errors import MalformedContainerError

logger = logging.getLogger("voicenorm.audio.wav_codec")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

HEADER_SIZE = 44
PCM_FORMAT_TAG = 1
BITS_PER_SAMPLE = 16
BYTES_PER_SAMPLE = BITS_PER_SAMPLE // 8
FMT_CHUNK_SIZE = 16
INT16_SCALE = 32768.0

_HEADER_STRUCT = struct.Struct("<4sI4s4sIHHIIHH4sI")
_CHUNK_STRUCT = struct.Struct("<4sI")
_FMT_STRUCT = struct.Struct("<HHIIHH")


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PcmBuffer:
    """
    Interleaved float samples in [-1.0, 1.0] with their sample rate and
    channel count. ``len(samples)`` is always a multiple of ``channels``.
    """

    samples: np.ndarray
    sample_rate: int
    channels: int

    def __post_init__(self):
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.channels <= 0:
            raise ValueError(f"channels must be positive, got {self.channels}")
        if len(self.samples) % self.channels != 0:
            raise ValueError(
                f"{len(self.samples)} samples is not a whole number of "
                f"{self.channels}-channel frames"
            )

    @property
    def frames(self) -> int:
        return len(self.samples) // self.channels

    @property
    def duration_seconds(self) -> float:
        return self.frames / self.sample_rate


@dataclass(frozen=True)
class WavHeader:
    """Canonical 44-byte RIFF/WAVE/PCM header."""

    riff_size: int
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_size: int

    @classmethod
    def for_samples(cls, num_samples: int, sample_rate: int, channels: int = 1) -> "WavHeader":
        """
        Build the header describing exactly ``num_samples`` int16 samples.

        Every size field is derived from the sample count; a header is never
        constructed independently of its payload.
        """
        data_size = num_samples * BYTES_PER_SAMPLE
        return cls(
            riff_size=36 + data_size,
            channels=channels,
            sample_rate=sample_rate,
            byte_rate=sample_rate * channels * BYTES_PER_SAMPLE,
            block_align=channels * BYTES_PER_SAMPLE,
            bits_per_sample=BITS_PER_SAMPLE,
            data_size=data_size,
        )

    def pack(self) -> bytes:
        return _HEADER_STRUCT.pack(
            b"RIFF",
            self.riff_size,
            b"WAVE",
            b"fmt ",
            FMT_CHUNK_SIZE,
            PCM_FORMAT_TAG,
            self.channels,
            self.sample_rate,
            self.byte_rate,
            self.block_align,
            self.bits_per_sample,
            b"data",
            self.data_size,
        )


@dataclass(frozen=True)
class WavInfo:
    """Format parameters read from a WAV header."""
    format_tag: int
    sample_rate: int
    channels: int
    bits_per_sample: int
    frames: int


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def decode(data: bytes, path: Optional[str] = None) -> PcmBuffer:
    """
    Decode a 16-bit PCM WAV byte buffer.

    Args:
        data: Complete WAV file bytes.
        path: Optional source path, included in error messages.

    Returns:
        PcmBuffer with samples scaled by 1/32768, i.e. in [-1.0, 1.0).

    Raises:
        MalformedContainerError: If the container is not a well-formed
            16-bit PCM WAV.
    """
    info, payload = _parse(data, path)

    if info.format_tag != PCM_FORMAT_TAG:
        raise MalformedContainerError(
            f"Unsupported WAV audio format tag {info.format_tag}; only PCM (1) is supported.",
            path,
        )
    if info.bits_per_sample != BITS_PER_SAMPLE:
        raise MalformedContainerError(
            f"Unsupported WAV bit depth {info.bits_per_sample}; only 16-bit PCM is supported.",
            path,
        )

    block_align = info.channels * BYTES_PER_SAMPLE
    usable = len(payload) - (len(payload) % block_align)
    if usable != len(payload):
        logger.warning(
            "WAV data chunk has %d trailing bytes (not a whole frame), truncated.",
            len(payload) - usable,
        )

    ints = np.frombuffer(payload[:usable], dtype="<i2")
    samples = ints.astype(np.float32) / INT16_SCALE
    return PcmBuffer(samples=samples, sample_rate=info.sample_rate, channels=info.channels)


def read_header(data: bytes, path: Optional[str] = None) -> WavInfo:
    """Return the format parameters of a WAV buffer without converting samples."""
    info, _ = _parse(data, path)
    return info


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def encode(samples: Union[Sequence[int], np.ndarray], sample_rate: int) -> bytes:
    """
    Encode int16 samples as a canonical mono 16-bit little-endian WAV.

    Args:
        samples:     Sequence of integers in [-32768, 32767].
        sample_rate: Sample rate in Hz.

    Returns:
        44-byte header followed by the PCM payload.

    Raises:
        ValueError: If the sample rate is not positive or a sample does not
            fit in int16.
    """
    return encode_pcm(_as_int16(samples).tobytes(), sample_rate, channels=1)


def encode_pcm(pcm_bytes: bytes, sample_rate: int, channels: int = 1) -> bytes:
    """Wrap an already-packed little-endian int16 payload in a WAV header."""
    if sample_rate <= 0:
        raise ValueError(f"sample_rate must be positive, got {sample_rate}")
    if channels <= 0:
        raise ValueError(f"channels must be positive, got {channels}")
    if len(pcm_bytes) % (channels * BYTES_PER_SAMPLE) != 0:
        raise ValueError(
            f"PCM payload of {len(pcm_bytes)} bytes is not a whole number of frames."
        )
    header = WavHeader.for_samples(len(pcm_bytes) // BYTES_PER_SAMPLE, sample_rate, channels)
    return header.pack() + pcm_bytes


def to_int16(samples: np.ndarray) -> np.ndarray:
    """
    Exact inverse of the decode scaling: ``round(x * 32768)``, clamped.

    A sample decoded from int16 maps back to the same integer.
    """
    scaled = np.rint(np.asarray(samples, dtype=np.float64) * INT16_SCALE)
    return np.clip(scaled, -32768, 32767).astype("<i2")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _parse(data: bytes, path: Optional[str]) -> tuple[WavInfo, bytes]:
    """Walk the RIFF chunks and return the fmt parameters and data payload."""
    if len(data) < 12 or data[:4] != b"RIFF" or data[8:12] != b"WAVE":
        raise MalformedContainerError("Missing RIFF/WAVE header.", path)

    fmt: Optional[tuple] = None
    payload: Optional[bytes] = None
    offset = 12

    while offset + _CHUNK_STRUCT.size <= len(data):
        chunk_id, chunk_size = _CHUNK_STRUCT.unpack_from(data, offset)
        body_start = offset + _CHUNK_STRUCT.size
        body_end = body_start + chunk_size

        if chunk_id == b"fmt ":
            if chunk_size < _FMT_STRUCT.size or body_end > len(data):
                raise MalformedContainerError("Truncated 'fmt ' chunk.", path)
            fmt = _FMT_STRUCT.unpack_from(data, body_start)
        elif chunk_id == b"data":
            if fmt is None:
                raise MalformedContainerError("'data' chunk precedes 'fmt ' chunk.", path)
            if body_end > len(data):
                logger.warning(
                    "WAV data chunk declares %d bytes but only %d are present.",
                    chunk_size, len(data) - body_start,
                )
            payload = data[body_start:body_end]
            break

        # Chunks are word-aligned
        offset = body_end + (chunk_size & 1)

    if fmt is None:
        raise MalformedContainerError("Missing 'fmt ' chunk.", path)
    if payload is None:
        raise MalformedContainerError("Missing 'data' chunk.", path)

    format_tag, channels, sample_rate, _byte_rate, _block_align, bits = fmt
    if channels == 0 or sample_rate == 0:
        raise MalformedContainerError(
            f"Invalid WAV parameters: {channels} channels at {sample_rate} Hz.", path
        )

    frame_bytes = channels * max(bits // 8, 1)
    info = WavInfo(
        format_tag=format_tag,
        sample_rate=sample_rate,
        channels=channels,
        bits_per_sample=bits,
        frames=len(payload) // frame_bytes,
    )
    return info, payload


def _as_int16(samples: Union[Sequence[int], np.ndarray]) -> np.ndarray:
    arr = np.asarray(samples)
    if arr.ndim != 1:
        raise ValueError(f"Expected a 1-D sample sequence, got shape {arr.shape}")
    if arr.size == 0:
        return np.zeros(0, dtype="<i2")
    if not np.issubdtype(arr.dtype, np.integer):
        raise ValueError(f"Expected integer samples, got dtype {arr.dtype}")
    if arr.dtype != np.int16:
        lo, hi = int(arr.min()), int(arr.max())
        if lo < -32768 or hi > 32767:
            raise ValueError(f"Sample values {lo}..{hi} do not fit in int16")
    return arr.astype("<i2", copy=False)
