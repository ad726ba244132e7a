"""
voicenorm/tts/providers.py
===========================
Voice Providers — VoiceNorm

Responsibility:
    - Own the lifecycle of one loaded voice: start() → connect() → stop()
    - RemoteVoiceProvider: fetch the model once into a cache directory
    - LocalVoiceProvider: load from disk or from packaged resources
    - VoiceConnection: turn text into canonical WAV bytes, optionally on a
      worker thread

The synthesis engine itself is an external collaborator behind the
SynthesisEngine interface; nothing here inspects how it produces samples.

This module does NOT:
    - Delete cached downloads (they persist across restarts)
    - Cancel in-flight synthesis
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional, Sequence

from voicenorm.config import Settings
from voicenorm.errors import AudioIOError, ModelSetupError, SynthesisError, VoiceNormError
from voicenorm.models.cache import ModelAsset, ensure_model
from voicenorm.models.resources import TemporaryExtraction, extract_resource, is_resource_uri
from voicenorm.tts import wav_writer

logger = logging.getLogger("voicenorm.tts.providers")


# ---------------------------------------------------------------------------
# Engine boundary
# ---------------------------------------------------------------------------


class SynthesisEngine(ABC):
    """
    Abstract synthesis boundary.
    Providers depend ONLY on this interface.
    """

    @abstractmethod
    def load_voice(self, model_path: Path, config_path: Path) -> Any:
        """Load a voice and return an opaque handle."""
        raise NotImplementedError

    @abstractmethod
    def synthesize(self, voice: Any, text: str) -> Sequence[int]:
        """Return int16 PCM samples for ``text``."""
        raise NotImplementedError

    @abstractmethod
    def sample_rate(self, voice: Any) -> int:
        raise NotImplementedError

    def close_voice(self, voice: Any) -> None:
        """Release a voice handle. Default: nothing to release."""
        return None


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


class VoiceConnection:
    """A loaded voice bound to its engine."""

    def __init__(self, engine: SynthesisEngine, voice: Any, voice_name: str):
        self._engine = engine
        self._voice = voice
        self.voice_name = voice_name
        logger.debug("VoiceConnection created with voice: %s", voice_name)

    def generate(self, text: str) -> bytes:
        """
        Synthesize ``text`` into canonical WAV bytes.

        Raises:
            ValueError:     If ``text`` is blank.
            SynthesisError: If the engine fails or returns samples that are
                not int16 PCM.
        """
        if not text or not text.strip():
            raise ValueError("Text to synthesize is empty.")

        logger.debug("Generating speech for text length: %d characters", len(text))
        try:
            samples = self._engine.synthesize(self._voice, text)
            sample_rate = self._engine.sample_rate(self._voice)
        except Exception as exc:
            logger.error("Failed to generate speech: %s", exc, exc_info=True)
            raise SynthesisError(f"Text-to-speech generation failed: {exc}") from exc

        logger.debug("Generated %d samples at %d Hz", len(samples), sample_rate)
        try:
            return wav_writer.write(samples, sample_rate)
        except ValueError as exc:
            logger.error("Engine returned unusable audio: %s", exc)
            raise SynthesisError(f"Engine returned invalid PCM: {exc}") from exc

    async def agenerate(self, text: str) -> bytes:
        """
        Run ``generate`` on a worker thread.

        Abandoning the awaitable does not stop the engine; the computation
        runs to completion.
        """
        return await asyncio.to_thread(self.generate, text)


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class VoiceProvider:
    """Shared start/connect/stop plumbing."""

    def __init__(self, engine: SynthesisEngine):
        self.engine = engine
        self.voice: Any = None

    @property
    def voice_name(self) -> str:
        raise NotImplementedError

    @property
    def started(self) -> bool:
        return self.voice is not None

    def connect(self) -> VoiceConnection:
        if not self.started:
            raise RuntimeError(f"{type(self).__name__} has not been started.")
        return VoiceConnection(self.engine, self.voice, self.voice_name)

    def _load(self, model_path: Path, config_path: Path) -> None:
        try:
            self.voice = self.engine.load_voice(model_path, config_path)
            sample_rate = self.engine.sample_rate(self.voice)
        except VoiceNormError:
            raise
        except Exception as exc:
            raise ModelSetupError(
                f"Failed to load voice model {model_path}: {exc}", path=str(model_path)
            ) from exc
        logger.info(
            "Voice initialized successfully. Voice: %s, Sample Rate: %d Hz",
            self.voice_name, sample_rate,
        )

    def _close_voice(self) -> None:
        if self.voice is None:
            return
        try:
            self.engine.close_voice(self.voice)
            logger.debug("Voice closed")
        except Exception as exc:
            logger.warning("Error closing voice: %s", exc, exc_info=True)
        finally:
            self.voice = None


class RemoteVoiceProvider(VoiceProvider):
    """Voice whose model and config are downloaded once into a cache directory."""

    def __init__(self, asset: ModelAsset, engine: SynthesisEngine):
        super().__init__(engine)
        self.asset = asset

    @property
    def voice_name(self) -> str:
        return self.asset.voice_name

    def start(self) -> None:
        """
        Download the model if absent, then load it.

        Raises:
            ModelSetupError: If the download or the load fails.
        """
        ensure_model(self.asset)
        self._load(self.asset.model_path, self.asset.config_path)

    def stop(self) -> None:
        logger.info("Stopping remote voice provider")
        self._close_voice()


class LocalVoiceProvider(VoiceProvider):
    """
    Voice loaded from local files.

    ``model_path`` and ``config_path`` are filesystem paths or
    ``resource://package/path`` URIs; resources are extracted to temporary
    files which are deleted on ``stop()``.
    """

    def __init__(
        self,
        model_path: str,
        config_path: str,
        voice_name: str,
        engine: SynthesisEngine,
    ):
        super().__init__(engine)
        self.model_path = model_path
        self.config_path = config_path
        self._voice_name = voice_name
        self._extractions: list[TemporaryExtraction] = []

    @property
    def voice_name(self) -> str:
        return self._voice_name

    def start(self) -> None:
        logger.info("Initializing local voice: %s", self._voice_name)
        try:
            model = self._resolve(self.model_path, "voice-model-")
            config = self._resolve(self.config_path, "voice-config-")
            self._load(model, config)
        except Exception:
            self._release_extractions()
            raise

    def stop(self) -> None:
        logger.info("Stopping local voice provider")
        self._close_voice()
        self._release_extractions()

    def _resolve(self, location: str, prefix: str) -> Path:
        if is_resource_uri(location):
            extraction = extract_resource(location, prefix)
            self._extractions.append(extraction)
            return extraction.path
        path = Path(location)
        if not path.is_file():
            raise AudioIOError(f"File not found: {location}", path=location)
        return path

    def _release_extractions(self) -> None:
        while self._extractions:
            self._extractions.pop().release()


def provider_from_settings(
    settings: Settings,
    engine: Optional[SynthesisEngine] = None,
) -> Optional[VoiceProvider]:
    """
    Build the provider described by ``settings``, or None when synthesis is
    disabled. The default engine is Piper.

    Raises:
        ValueError: If the mode is unknown or required settings are missing.
    """
    if settings.voice_mode is None:
        return None

    if engine is None:
        from voicenorm.tts.piper_engine import PiperEngine
        engine = PiperEngine()

    if settings.voice_mode == "remote":
        if not (settings.model_url and settings.config_url and settings.model_dir):
            raise ValueError(
                "Remote voice mode requires VOICENORM_MODEL_URL, "
                "VOICENORM_CONFIG_URL and VOICENORM_MODEL_DIR."
            )
        asset = ModelAsset(settings.model_url, settings.config_url, settings.model_dir)
        return RemoteVoiceProvider(asset, engine)

    if settings.voice_mode == "local":
        if not (settings.local_model_path and settings.local_config_path):
            raise ValueError(
                "Local voice mode requires VOICENORM_LOCAL_MODEL_PATH and "
                "VOICENORM_LOCAL_CONFIG_PATH."
            )
        return LocalVoiceProvider(
            settings.local_model_path,
            settings.local_config_path,
            settings.voice_name,
            engine,
        )

    raise ValueError(f"Unknown VOICENORM_VOICE_MODE: '{settings.voice_mode}'")
