"""
voicenorm/stt/whisper_client.py
================================
OpenAI Whisper transcription client — VoiceNorm

Responsibility:
    - Send canonical WAV bytes (mono 16 kHz) to the Whisper API
    - Return the transcribed text

This module does NOT:
    - Normalize audio (callers pass canonical WAV from voicenorm.audio)
    - Retry failed requests
"""

import io
import logging
import os

from dotenv import load_dotenv
from openai import OpenAI

load_dotenv()

logger = logging.getLogger("voicenorm.stt.whisper_client")

WHISPER_MODEL = "whisper-1"


def transcribe(wav_bytes: bytes) -> str:
    """
    Transcribe canonical WAV audio using OpenAI Whisper.

    Args:
        wav_bytes: Normalized audio (mono 16 kHz WAV bytes).

    Returns:
        Transcribed text, stripped of surrounding whitespace.

    Raises:
        RuntimeError: If the API key is missing or the Whisper call fails.
    """
    api_key = os.environ.get("OPENAI_API_KEY")
    if not api_key:
        raise RuntimeError("OPENAI_API_KEY environment variable is not set.")

    client = OpenAI(api_key=api_key)

    try:
        audio_file = io.BytesIO(wav_bytes)
        audio_file.name = "audio.wav"

        logger.debug("Sending %d bytes to Whisper (%s)...", len(wav_bytes), WHISPER_MODEL)
        response = client.audio.transcriptions.create(
            model=WHISPER_MODEL,
            file=audio_file,
            response_format="json",
        )
    except Exception as exc:
        raise RuntimeError(f"Whisper transcription failed: {exc}") from exc

    # Handle both dict and object attribute access patterns
    if isinstance(response, dict):
        text = response.get("text", "")
    else:
        text = getattr(response, "text", "") or ""
    return text.strip()
