# voicenorm/tts/__init__.py
# ==========================
# Synthesis Output Layer — VoiceNorm
#
#   wav_writer    int16 samples + rate → canonical WAV bytes
#   providers     voice lifecycle (remote cached / local) and connections
#   piper_engine  optional Piper adapter (imported lazily)

from voicenorm.tts.providers import (  # noqa: F401
    LocalVoiceProvider,
    RemoteVoiceProvider,
    SynthesisEngine,
    VoiceConnection,
    VoiceProvider,
    provider_from_settings,
)

__all__ = [
    "LocalVoiceProvider",
    "RemoteVoiceProvider",
    "SynthesisEngine",
    "VoiceConnection",
    "VoiceProvider",
    "provider_from_settings",
]
