"""
voicenorm/audio/decoders.py
============================
Format Decoders — VoiceNorm

Responsibility:
    - Decode an audio file of a known AudioFormat into a PcmBuffer
    - Select the one authoritative decode path per format through a total
      dispatch table (no fallback chain)
    - Probe, once per process, whether the optional ffmpeg transcoding
      capability is present

Decode paths:
    WAV              → voicenorm.audio.wav_codec (pure Python)
    MP3, FLAC, OGG   → libsndfile through soundfile (in-process)
    M4A, WEBM, AAC   → ffmpeg through pydub (optional capability)

This module does NOT:
    - Resample, downmix or re-quantize (handled by voicenorm.audio.normalizer)
    - Guess a format for UNKNOWN input
"""

import logging
import os
import shutil
import tempfile
import threading
from functools import lru_cache
from pathlib import Path
from typing import Callable, Optional, Union

import numpy as np
import soundfile as sf
from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError
from pydub.utils import which

from voicenorm import config
from voicenorm.audio import wav_codec
from voicenorm.audio.formats import AudioFormat, classify, from_filename, sniff
from voicenorm.audio.wav_codec import PcmBuffer
from voicenorm.errors import (
    AudioIOError,
    CapabilityUnavailableError,
    MalformedContainerError,
    TranscodingError,
    UnsupportedFormatError,
)

logger = logging.getLogger("voicenorm.audio.decoders")

PathLike = Union[str, os.PathLike]

# ---------------------------------------------------------------------------
# Transcoding capability probe (process-wide, probed lazily, never re-probed)
# ---------------------------------------------------------------------------

_probe_lock = threading.Lock()
_transcoding_available: Optional[bool] = None


def transcoding_available() -> bool:
    """
    Return True if ffmpeg and ffprobe can be used for container formats.

    The result is computed on first call and cached for the life of the
    process.
    """
    global _transcoding_available

    if _transcoding_available is not None:
        return _transcoding_available

    with _probe_lock:
        if _transcoding_available is None:
            _transcoding_available = _probe_ffmpeg()
            logger.info(
                "Transcoding capability (ffmpeg): %s",
                "available" if _transcoding_available else "unavailable",
            )
    return _transcoding_available


def reset_capability_probe() -> None:
    """Forget the cached probe result. Intended for tests."""
    global _transcoding_available
    with _probe_lock:
        _transcoding_available = None


def _probe_ffmpeg() -> bool:
    converter = config.FFMPEG_PATH or which("ffmpeg")
    prober = which("ffprobe")
    if config.FFMPEG_PATH and not os.access(config.FFMPEG_PATH, os.X_OK):
        logger.warning("VOICENORM_FFMPEG_PATH=%s is not executable.", config.FFMPEG_PATH)
        return False
    if not converter or not prober:
        return False
    AudioSegment.converter = converter
    return True


@lru_cache(maxsize=1)
def _libsndfile_formats() -> frozenset:
    return frozenset(sf.available_formats())


# ---------------------------------------------------------------------------
# Transcoding boundary
# ---------------------------------------------------------------------------


def transcode(input_path: PathLike, output_path: PathLike) -> None:
    """
    Transcode any ffmpeg-readable file into a 16-bit PCM WAV file.

    The output is written to a temporary sibling and renamed into place, so
    a failed conversion never leaves a partial file at ``output_path``.

    Raises:
        CapabilityUnavailableError: If ffmpeg is not installed.
        AudioIOError:               If the input file does not exist.
        TranscodingError:           If ffmpeg fails to convert the file.
    """
    if not transcoding_available():
        raise CapabilityUnavailableError(
            "ffmpeg",
            "Install ffmpeg (with ffprobe) or set VOICENORM_FFMPEG_PATH to decode container formats.",
        )

    src = Path(input_path)
    dst = Path(output_path)
    _require_file(src)

    try:
        segment = AudioSegment.from_file(str(src))
        segment = segment.set_sample_width(wav_codec.BYTES_PER_SAMPLE)
    except CouldntDecodeError as exc:
        raise TranscodingError(f"ffmpeg could not decode audio: {exc}", str(src)) from exc
    except Exception as exc:
        raise TranscodingError(f"Unexpected error transcoding audio: {exc}", str(src)) from exc

    _atomic_write(dst, lambda tmp: segment.export(tmp, format="wav").close())
    logger.debug("Transcoded %s → %s", src, dst)


# ---------------------------------------------------------------------------
# Decode handlers (one per AudioFormat)
# ---------------------------------------------------------------------------


def _decode_wav(path: Path) -> PcmBuffer:
    return wav_codec.decode(_read_bytes(path), str(path))


def _decode_libsndfile(path: Path) -> PcmBuffer:
    """In-process decode through libsndfile; no external process is spawned."""
    _require_file(path)
    try:
        data, sample_rate = sf.read(str(path), dtype="float32", always_2d=True)
    except RuntimeError as exc:
        # LibsndfileError subclasses RuntimeError
        raise MalformedContainerError(f"Could not decode audio: {exc}", str(path)) from exc

    frames, channels = data.shape
    logger.debug("libsndfile decoded %s: %d frames, %d ch, %d Hz", path, frames, channels, sample_rate)
    return PcmBuffer(
        samples=np.ascontiguousarray(data).reshape(-1),
        sample_rate=int(sample_rate),
        channels=int(channels),
    )


def _decode_mp3(path: Path) -> PcmBuffer:
    if "MP3" not in _libsndfile_formats():
        raise CapabilityUnavailableError(
            "libsndfile-mp3", "libsndfile >= 1.1.0 is required for MP3 decoding."
        )
    return _decode_libsndfile(path)


def _decode_container(path: Path) -> PcmBuffer:
    if not transcoding_available():
        raise CapabilityUnavailableError(
            "ffmpeg",
            f"Cannot decode '{path.name}' without ffmpeg.",
        )
    with tempfile.TemporaryDirectory(prefix="voicenorm-") as tmp_dir:
        wav_path = Path(tmp_dir) / "decoded.wav"
        transcode(path, wav_path)
        return wav_codec.decode(wav_path.read_bytes(), str(path))


def _reject_unknown(path: Path) -> PcmBuffer:
    raise UnsupportedFormatError(path.name)


_DECODERS: dict[AudioFormat, Callable[[Path], PcmBuffer]] = {
    AudioFormat.WAV: _decode_wav,
    AudioFormat.MP3: _decode_mp3,
    AudioFormat.FLAC: _decode_libsndfile,
    AudioFormat.OGG: _decode_libsndfile,
    AudioFormat.M4A: _decode_container,
    AudioFormat.WEBM: _decode_container,
    AudioFormat.AAC: _decode_container,
    AudioFormat.UNKNOWN: _reject_unknown,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def decode(path: PathLike, fmt: AudioFormat) -> PcmBuffer:
    """
    Decode ``path`` with the authoritative handler for ``fmt``.

    Raises:
        UnsupportedFormatError:     If ``fmt`` is UNKNOWN.
        AudioIOError:               If the file cannot be read.
        MalformedContainerError:    If the bytes fail structural validation.
        CapabilityUnavailableError: If the format needs ffmpeg and it is absent.
    """
    return _DECODERS[fmt](Path(path))


def decode_declared(path: PathLike, declared_type: Optional[str]) -> PcmBuffer:
    """Decode ``path`` using the format named by a declared media type."""
    return decode(path, resolve_format(path, declared_type))


def resolve_format(path: PathLike, declared_type: Optional[str] = None) -> AudioFormat:
    """
    Decide the format of ``path``.

    A declared media type is authoritative when given: an unrecognised one
    is rejected rather than second-guessed. Without one, the file extension
    is used, then the leading signature bytes.

    Raises:
        UnsupportedFormatError: If no known format matches.
    """
    if declared_type:
        fmt = classify(declared_type)
        if fmt is AudioFormat.UNKNOWN:
            raise UnsupportedFormatError(declared_type)
        return fmt

    p = Path(path)
    fmt = from_filename(p.name)
    if fmt is AudioFormat.UNKNOWN and p.is_file():
        with open(p, "rb") as fh:
            fmt = sniff(fh.read(16))
    if fmt is AudioFormat.UNKNOWN:
        raise UnsupportedFormatError(p.name)
    return fmt


def convert_to_wav(
    input_path: PathLike,
    output_path: PathLike,
    declared_type: Optional[str] = None,
) -> Path:
    """
    Convert a file to a 16-bit PCM WAV at its native rate and channel count.

    WAV input is copied through unchanged. The output appears at
    ``output_path`` only once it is complete.
    """
    src = Path(input_path)
    dst = Path(output_path)
    fmt = resolve_format(src, declared_type)

    if fmt is AudioFormat.WAV:
        _require_file(src)
        _atomic_write(dst, lambda tmp: shutil.copyfile(src, tmp))
    else:
        pcm = decode(src, fmt)
        payload = wav_codec.to_int16(pcm.samples).tobytes()
        data = wav_codec.encode_pcm(payload, pcm.sample_rate, pcm.channels)
        _atomic_write(dst, lambda tmp: Path(tmp).write_bytes(data))

    logger.info("Converted %s (%s) → %s", src.name, fmt.value, dst)
    return dst


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_file(path: Path) -> None:
    if not path.is_file():
        raise AudioIOError(f"Audio file not found: {path}", path=str(path))


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise AudioIOError(f"Failed to read audio file {path}: {exc}", path=str(path)) from exc


def _atomic_write(dst: Path, writer: Callable[[str], object]) -> None:
    """Run ``writer`` against a temporary sibling of ``dst`` and rename it into place."""
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{dst.name}.", suffix=".part", dir=dst.parent)
    except OSError as exc:
        raise AudioIOError(f"Cannot write to {dst.parent}: {exc}", path=str(dst)) from exc
    os.close(fd)
    try:
        writer(tmp_name)
        os.replace(tmp_name, dst)
    except OSError as exc:
        raise AudioIOError(f"Failed to write {dst}: {exc}", path=str(dst)) from exc
    finally:
        if os.path.exists(tmp_name):
            os.remove(tmp_name)
