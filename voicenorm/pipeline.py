"""
voicenorm/pipeline.py
======================
Inbound audio pipeline — VoiceNorm

    upload bytes → FormatSniffer → FormatDecoder → Normalizer
                 → canonical WAV → transcription collaborator

Every step raises its own typed error; nothing is caught here.
"""

import logging
from typing import Callable, Optional

from voicenorm.audio.normalizer import normalize_bytes

logger = logging.getLogger("voicenorm.pipeline")

Transcriber = Callable[[bytes], str]


def transcribe_audio(
    audio_bytes: bytes,
    declared_type: Optional[str] = None,
    filename: Optional[str] = None,
    transcriber: Optional[Transcriber] = None,
) -> str:
    """
    Normalize an upload and hand the canonical WAV to a transcriber.

    Args:
        audio_bytes:   Raw uploaded audio.
        declared_type: Declared media type, e.g. "audio/mpeg".
        filename:      Original filename (extension used if no type declared).
        transcriber:   ``wav_bytes -> text``; defaults to OpenAI Whisper.

    Returns:
        Transcribed text.
    """
    if transcriber is None:
        from voicenorm.stt.whisper_client import transcribe as transcriber

    wav_bytes = normalize_bytes(audio_bytes, declared_type, filename)
    logger.info("Normalized audio ready for transcription: %.2f KB", len(wav_bytes) / 1024)
    return transcriber(wav_bytes)
