"""
voicenorm/config.py
====================
Runtime configuration — VoiceNorm

Responsibility:
    - Load the .env file once at import time
    - Expose codec constants shared by every audio module
    - Provide an immutable Settings object for the service entry point

The canonical output format (16 kHz, mono, 16-bit) is fixed and is NOT
configurable: every consumer downstream relies on it byte-for-byte.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


# ---------------------------------------------------------------------------
# Canonical output format
# ---------------------------------------------------------------------------

TARGET_SAMPLE_RATE = 16000  # Hz
TARGET_CHANNELS = 1  # mono
TARGET_BITS_PER_SAMPLE = 16


# ---------------------------------------------------------------------------
# Environment-driven limits
# ---------------------------------------------------------------------------

MAX_DURATION_SECONDS: float = float(
    os.environ.get("VOICENORM_MAX_DURATION_SECONDS", "1800")
)  # 30 minutes
DOWNLOAD_TIMEOUT_SECONDS: float = float(
    os.environ.get("VOICENORM_DOWNLOAD_TIMEOUT", "120")
)
DOWNLOAD_CHUNK_BYTES: int = int(
    os.environ.get("VOICENORM_DOWNLOAD_CHUNK_BYTES", str(1024 * 1024))
)
FFMPEG_PATH: Optional[str] = os.environ.get("VOICENORM_FFMPEG_PATH") or None

DEFAULT_VOICE_NAME = "en_US-lessac-medium"


@dataclass(frozen=True)
class Settings:
    """
    Voice provider configuration for the HTTP service.

    Constructed once at startup by ``Settings.load_from_env()``.
    ``voice_mode`` is ``"remote"``, ``"local"`` or ``None`` (synthesis
    disabled).
    """

    voice_mode: Optional[str]
    voice_name: str

    # remote: downloaded once into model_dir
    model_url: Optional[str]
    config_url: Optional[str]
    model_dir: Optional[str]

    # local: filesystem paths or resource:// URIs
    local_model_path: Optional[str]
    local_config_path: Optional[str]

    @staticmethod
    def load_from_env() -> "Settings":
        mode = (os.environ.get("VOICENORM_VOICE_MODE") or "").strip().lower()
        return Settings(
            voice_mode=mode or None,
            voice_name=os.environ.get("VOICENORM_VOICE_NAME", DEFAULT_VOICE_NAME),
            model_url=os.environ.get("VOICENORM_MODEL_URL"),
            config_url=os.environ.get("VOICENORM_CONFIG_URL"),
            model_dir=os.environ.get("VOICENORM_MODEL_DIR"),
            local_model_path=os.environ.get("VOICENORM_LOCAL_MODEL_PATH"),
            local_config_path=os.environ.get("VOICENORM_LOCAL_CONFIG_PATH"),
        )
