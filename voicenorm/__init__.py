"""VoiceNorm — canonical 16 kHz mono WAV codec and voice-model cache."""

__version__ = "1.0.0"
