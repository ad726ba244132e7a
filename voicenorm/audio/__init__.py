# voicenorm/audio/__init__.py
# ============================
# Audio Codec Layer — VoiceNorm
#
#   formats     declared type / signature → AudioFormat
#   wav_codec   RIFF/WAVE 16-bit PCM decode + canonical encode
#   decoders    AudioFormat → PcmBuffer (one decode path per format)
#   normalizer  PcmBuffer → canonical 16 kHz mono 16-bit WAV bytes

from voicenorm.audio.formats import AudioFormat, classify  # noqa: F401
from voicenorm.audio.wav_codec import PcmBuffer  # noqa: F401
from voicenorm.audio.normalizer import (  # noqa: F401
    normalize,
    normalize_bytes,
    normalize_file,
    to_mono_16khz_file,
)

__all__ = [
    "AudioFormat",
    "PcmBuffer",
    "classify",
    "normalize",
    "normalize_bytes",
    "normalize_file",
    "to_mono_16khz_file",
]
