"""
voicenorm/audio/formats.py
===========================
Format Sniffer — VoiceNorm

Responsibility:
    - Map a declared media type (e.g. "audio/x-wav; charset=UTF-8") to
      exactly one AudioFormat
    - Recognise a file by its leading signature bytes or its extension
      when no media type was declared

Unknown inputs always yield AudioFormat.UNKNOWN. Nothing here raises:
callers decide whether UNKNOWN is fatal.
"""

from enum import Enum
from typing import Optional


class AudioFormat(str, Enum):
    """Closed set of audio formats; the value is the file extension."""
    WAV = "wav"
    MP3 = "mp3"
    M4A = "m4a"
    FLAC = "flac"
    OGG = "ogg"
    WEBM = "webm"
    AAC = "aac"
    UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# Declared media type table
# ---------------------------------------------------------------------------

_MEDIA_TYPES: dict[str, AudioFormat] = {
    "audio/wav": AudioFormat.WAV,
    "audio/vnd.wav": AudioFormat.WAV,
    "audio/vnd.wave": AudioFormat.WAV,
    "audio/wave": AudioFormat.WAV,
    "audio/x-wav": AudioFormat.WAV,
    "audio/x-pn-wav": AudioFormat.WAV,
    "audio/mp3": AudioFormat.MP3,
    "audio/mpeg": AudioFormat.MP3,
    "audio/m4a": AudioFormat.M4A,
    "audio/x-m4a": AudioFormat.M4A,
    "audio/mp4": AudioFormat.M4A,
    "audio/flac": AudioFormat.FLAC,
    "audio/x-flac": AudioFormat.FLAC,
    "audio/ogg": AudioFormat.OGG,
    "audio/webm": AudioFormat.WEBM,
    "audio/aac": AudioFormat.AAC,
}

_EXTENSIONS: dict[str, AudioFormat] = {
    ".wav": AudioFormat.WAV,
    ".wave": AudioFormat.WAV,
    ".mp3": AudioFormat.MP3,
    ".m4a": AudioFormat.M4A,
    ".mp4": AudioFormat.M4A,
    ".flac": AudioFormat.FLAC,
    ".ogg": AudioFormat.OGG,
    ".oga": AudioFormat.OGG,
    ".webm": AudioFormat.WEBM,
    ".aac": AudioFormat.AAC,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def classify(declared_type: Optional[str]) -> AudioFormat:
    """
    Classify a declared media type.

    Parameters after ';' are ignored and matching is case-insensitive, so
    "audio/MP3" and "audio/mp3;x=1" both yield MP3.

    Returns:
        The matching AudioFormat, or AudioFormat.UNKNOWN.
    """
    if not declared_type:
        return AudioFormat.UNKNOWN
    essence = declared_type.split(";", 1)[0].strip().lower()
    return _MEDIA_TYPES.get(essence, AudioFormat.UNKNOWN)


def is_wav(declared_type: Optional[str]) -> bool:
    return classify(declared_type) is AudioFormat.WAV


def file_extension(declared_type: Optional[str]) -> str:
    """Return the file extension (without dot) for a declared type, or 'unknown'."""
    return classify(declared_type).value


def from_filename(filename: Optional[str]) -> AudioFormat:
    """Classify a file by its extension."""
    if not filename:
        return AudioFormat.UNKNOWN
    dot_index = filename.rfind(".")
    if dot_index == -1:
        return AudioFormat.UNKNOWN
    return _EXTENSIONS.get(filename[dot_index:].lower(), AudioFormat.UNKNOWN)


def sniff(header: bytes) -> AudioFormat:
    """
    Classify raw bytes by their leading signature.

    At least 12 bytes are needed to recognise WAV and MP4-family files.
    """
    if len(header) >= 12 and header[:4] == b"RIFF" and header[8:12] == b"WAVE":
        return AudioFormat.WAV
    if header[:4] == b"fLaC":
        return AudioFormat.FLAC
    if header[:4] == b"OggS":
        return AudioFormat.OGG
    if header[:4] == b"\x1a\x45\xdf\xa3":
        return AudioFormat.WEBM
    if len(header) >= 8 and header[4:8] == b"ftyp":
        return AudioFormat.M4A
    if header[:3] == b"ID3":
        return AudioFormat.MP3
    if len(header) >= 2 and header[0] == 0xFF:
        # ADTS (AAC) sets layer bits to 00; MPEG audio layers are non-zero
        if header[1] & 0xF6 == 0xF0:
            return AudioFormat.AAC
        if header[1] & 0xE0 == 0xE0:
            return AudioFormat.MP3
    return AudioFormat.UNKNOWN
