"""
voicenorm/tts/wav_writer.py
============================
Synthesis output → canonical WAV.

Goes straight through ``wav_codec.encode`` so synthesized audio and
normalized uploads share one header implementation.
"""

import logging
from typing import Sequence, Union

import numpy as np

from voicenorm.audio import wav_codec

logger = logging.getLogger("voicenorm.tts.wav_writer")


def write(samples: Union[Sequence[int], np.ndarray], sample_rate: int) -> bytes:
    """Encode int16 synthesis samples at ``sample_rate`` as mono 16-bit WAV bytes."""
    logger.debug("Writing %d samples at %d Hz", len(samples), sample_rate)
    return wav_codec.encode(samples, sample_rate)
