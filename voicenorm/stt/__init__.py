# voicenorm/stt/__init__.py
# ==========================
# Transcription collaborator — VoiceNorm
#
# Public API:
#   transcribe(wav_bytes) → str

from voicenorm.stt.whisper_client import transcribe  # noqa: F401

__all__ = ["transcribe"]
