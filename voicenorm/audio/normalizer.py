"""
voicenorm/audio/normalizer.py
==============================
Audio Normalizer — VoiceNorm

Responsibility:
    - Downmix any decoded PcmBuffer to mono
    - Resample to 16 kHz
    - Re-quantize to 16-bit signed PCM (saturating, never wrapping)
    - Return the canonical WAV bytes (44-byte header + payload)

A buffer that is already 16 kHz mono is passed through without resampling
or downmixing, so its payload comes back bit-exact.

normalize() accepts every valid buffer, including an empty one. The upload
entry points (normalize_file, normalize_bytes, to_mono_16khz_file) reject
empty or over-long audio after decoding.

This module does NOT:
    - Detect formats (handled by voicenorm.audio.formats)
    - Decode containers (handled by voicenorm.audio.decoders)
    - Perform gain, filtering or any other processing
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

import numpy as np

from voicenorm import config
from voicenorm.audio import decoders, wav_codec
from voicenorm.audio.wav_codec import PcmBuffer
from voicenorm.errors import AudioIOError, AudioValidationError

logger = logging.getLogger("voicenorm.audio.normalizer")

PathLike = Union[str, os.PathLike]

REQUANTIZE_SCALE = 32767.0


# ---------------------------------------------------------------------------
# Signal steps
# ---------------------------------------------------------------------------


def downmix(pcm: PcmBuffer) -> np.ndarray:
    """Average all channels of each frame into one mono sample."""
    if pcm.channels == 1:
        return np.asarray(pcm.samples, dtype=np.float32)
    frames = np.asarray(pcm.samples, dtype=np.float32).reshape(-1, pcm.channels)
    return frames.mean(axis=1, dtype=np.float64).astype(np.float32)


def resample(samples: np.ndarray, src_rate: int, dst_rate: int) -> np.ndarray:
    """
    Resample mono samples by linear interpolation.

    The output holds exactly ``round(len(samples) * dst_rate / src_rate)``
    frames; output frame ``i`` is read at input position
    ``i * src_rate / dst_rate``.
    """
    if src_rate == dst_rate:
        return samples
    n_in = len(samples)
    n_out = int(round(n_in * dst_rate / src_rate))
    if n_in == 0 or n_out == 0:
        return np.zeros(0, dtype=np.float32)

    positions = np.arange(n_out, dtype=np.float64) * (src_rate / dst_rate)
    resampled = np.interp(positions, np.arange(n_in, dtype=np.float64), samples)
    return resampled.astype(np.float32)


def requantize(samples: np.ndarray) -> np.ndarray:
    """
    Scale floats in [-1.0, 1.0] to int16 by ``round(x * 32767)``.

    Out-of-range input saturates at the int16 limits.
    """
    scaled = np.rint(np.asarray(samples, dtype=np.float64) * REQUANTIZE_SCALE)
    return np.clip(scaled, -32768, 32767).astype("<i2")


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def normalize(pcm: PcmBuffer) -> bytes:
    """
    Convert a decoded buffer to canonical 16 kHz mono 16-bit WAV bytes.

    Steps (each applied only when needed):
        1. Downmix to mono
        2. Resample to 16 kHz
        3. Re-quantize to int16
        4. Encode through the WAV codec

    Args:
        pcm: Decoded audio at any sample rate and channel count.

    Returns:
        Canonical WAV bytes. Every valid buffer is accepted; an empty
        one encodes to a header-only WAV.
    """
    target = config.TARGET_SAMPLE_RATE
    if pcm.channels == 1 and pcm.sample_rate == target:
        # Passthrough: undo the codec's 1/32768 scaling exactly
        return wav_codec.encode(wav_codec.to_int16(pcm.samples), target)

    mono = downmix(pcm)
    if pcm.sample_rate != target:
        mono = resample(mono, pcm.sample_rate, target)

    logger.debug(
        "Normalized %d Hz / %d ch (%d frames) → %d Hz mono (%d frames)",
        pcm.sample_rate, pcm.channels, pcm.frames, target, len(mono),
    )
    return wav_codec.encode(requantize(mono), target)


def normalize_file(path: PathLike, declared_type: Optional[str] = None) -> bytes:
    """
    Decode a file and return canonical WAV bytes.

    The format comes from ``declared_type`` when given, otherwise from the
    file extension or signature.

    Raises:
        AudioValidationError: If the decoded audio is empty or longer than
            MAX_DURATION_SECONDS.
    """
    fmt = decoders.resolve_format(path, declared_type)
    pcm = decoders.decode(path, fmt)
    _validate_duration(pcm)
    logger.info(
        "Decoded %s as %s: %.2fs | %d Hz | %d ch",
        Path(path).name, fmt.value, pcm.duration_seconds, pcm.sample_rate, pcm.channels,
    )
    return normalize(pcm)


def normalize_bytes(
    audio_bytes: bytes,
    declared_type: Optional[str] = None,
    filename: Optional[str] = None,
) -> bytes:
    """
    Normalize an in-memory upload.

    The bytes are spooled to a temporary file because every decode path is
    file-based. ``filename`` only contributes its extension, used when no
    media type was declared.
    """
    if not audio_bytes:
        raise AudioValidationError("Audio file is empty.")

    suffix = Path(filename).suffix if filename else ""
    with tempfile.TemporaryDirectory(prefix="voicenorm-") as tmp_dir:
        tmp_path = Path(tmp_dir) / f"upload{suffix}"
        tmp_path.write_bytes(audio_bytes)
        return normalize_file(tmp_path, declared_type)


def to_mono_16khz_file(
    input_path: PathLike,
    output_path: Optional[PathLike] = None,
    declared_type: Optional[str] = None,
) -> Path:
    """
    Write the canonical WAV for ``input_path`` to a file.

    When ``output_path`` is omitted a new ``*-16k.wav`` file is created in
    the system temp directory; the caller owns and must delete it.

    Returns:
        Path of the written file.
    """
    data = normalize_file(input_path, declared_type)

    if output_path is None:
        fd, name = tempfile.mkstemp(prefix=f"{Path(input_path).stem}-", suffix="-16k.wav")
        os.close(fd)
        output = Path(name)
    else:
        output = Path(output_path)

    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{output.name}.", suffix=".part", dir=output.parent)
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_name, output)
    except OSError as exc:
        raise AudioIOError(f"Failed to write normalized audio to {output}: {exc}", path=str(output)) from exc
    finally:
        if tmp_name and os.path.exists(tmp_name):
            os.remove(tmp_name)

    logger.info("Wrote canonical WAV (%d bytes) to %s", len(data), output)
    return output


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _validate_duration(pcm: PcmBuffer) -> None:
    duration_seconds = pcm.duration_seconds
    if duration_seconds == 0:
        raise AudioValidationError("Audio file has zero duration.")
    if duration_seconds > config.MAX_DURATION_SECONDS:
        raise AudioValidationError(
            f"Audio duration ({duration_seconds:.1f}s) exceeds the "
            f"maximum allowed ({config.MAX_DURATION_SECONDS:.0f}s)."
        )
