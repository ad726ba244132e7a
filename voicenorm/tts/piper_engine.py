"""
voicenorm/tts/piper_engine.py
==============================
Piper engine adapter — VoiceNorm

Wraps the ``piper-tts`` package behind SynthesisEngine. The package is
optional (``pip install voicenorm[piper]``) and imported only when a voice
is loaded.
"""

import logging
from pathlib import Path
from typing import Any

import numpy as np

from voicenorm.errors import CapabilityUnavailableError
from voicenorm.tts.providers import SynthesisEngine

logger = logging.getLogger("voicenorm.tts.piper_engine")


class PiperEngine(SynthesisEngine):
    """Piper neural TTS (ONNX voices + .onnx.json configs)."""

    def load_voice(self, model_path: Path, config_path: Path) -> Any:
        try:
            from piper import PiperVoice
        except ImportError as exc:
            raise CapabilityUnavailableError(
                "piper", "Install with: pip install piper-tts"
            ) from exc

        logger.info("Loading Piper voice from %s", model_path)
        return PiperVoice.load(str(model_path), config_path=str(config_path))

    def synthesize(self, voice: Any, text: str) -> np.ndarray:
        chunks = [chunk.audio_int16_array for chunk in voice.synthesize(text)]
        if not chunks:
            return np.zeros(0, dtype=np.int16)
        return np.concatenate(chunks).astype(np.int16, copy=False)

    def sample_rate(self, voice: Any) -> int:
        return int(voice.config.sample_rate)
