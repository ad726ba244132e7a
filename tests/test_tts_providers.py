"""
tests/test_tts_providers.py
============================
Voice Provider Tests — connections, remote/local lifecycles, resources.

All tests are OFFLINE and use a fake SynthesisEngine; Piper is never
imported.
"""

import asyncio
import importlib
import os
import sys
import tempfile
import unittest
import uuid
from pathlib import Path
from unittest import mock

import numpy as np

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from voicenorm.audio import wav_codec
from voicenorm.config import Settings
from voicenorm.errors import AudioIOError, ModelSetupError, SynthesisError
from voicenorm.models import resources
from voicenorm.models.cache import ModelAsset
from voicenorm.tts.providers import (
    LocalVoiceProvider,
    RemoteVoiceProvider,
    SynthesisEngine,
    VoiceConnection,
    provider_from_settings,
)

MODEL_URL = "https://example.com/voices/en_GB-alan-low.onnx"
CONFIG_URL = "https://example.com/voices/en_GB-alan-low.onnx.json"


class FakeEngine(SynthesisEngine):
    """One int16 sample per character at a fixed rate."""

    def __init__(self, rate: int = 22050, fail_synthesis: bool = False, fail_load: bool = False):
        self.rate = rate
        self.fail_synthesis = fail_synthesis
        self.fail_load = fail_load
        self.loaded = []
        self.closed = []

    def load_voice(self, model_path, config_path):
        if self.fail_load:
            raise RuntimeError("bad model")
        self.loaded.append((Path(model_path).read_bytes(), Path(config_path).read_bytes()))
        return {"model": str(model_path)}

    def synthesize(self, voice, text):
        if self.fail_synthesis:
            raise RuntimeError("engine crashed")
        return np.array([ord(c) for c in text], dtype=np.int16)

    def sample_rate(self, voice):
        return self.rate

    def close_voice(self, voice):
        self.closed.append(voice)


def _settings(**overrides) -> Settings:
    values = dict(
        voice_mode=None,
        voice_name="en_US-lessac-medium",
        model_url=None,
        config_url=None,
        model_dir=None,
        local_model_path=None,
        local_config_path=None,
    )
    values.update(overrides)
    return Settings(**values)


class _TempDirCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()


# ===================================================================
# VoiceConnection
# ===================================================================


class TestVoiceConnection(unittest.TestCase):

    def test_generate_returns_wav_at_engine_rate(self):
        conn = VoiceConnection(FakeEngine(rate=22050), voice=object(), voice_name="v")
        data = conn.generate("hi")

        info = wav_codec.read_header(data)
        self.assertEqual((info.sample_rate, info.channels, info.frames), (22050, 1, 2))
        self.assertEqual(data[44:], np.array([ord("h"), ord("i")], dtype="<i2").tobytes())

    def test_agenerate(self):
        conn = VoiceConnection(FakeEngine(), voice=object(), voice_name="v")
        data = asyncio.run(conn.agenerate("hello"))
        self.assertEqual(wav_codec.read_header(data).frames, 5)

    def test_blank_text(self):
        conn = VoiceConnection(FakeEngine(), voice=object(), voice_name="v")
        for text in ("", "   ", None):
            with self.subTest(text=text):
                with self.assertRaises(ValueError):
                    conn.generate(text)

    def test_engine_failure(self):
        conn = VoiceConnection(FakeEngine(fail_synthesis=True), voice=object(), voice_name="v")
        with self.assertRaises(SynthesisError) as ctx:
            conn.generate("hello")
        self.assertIn("engine crashed", str(ctx.exception))

    def test_engine_returns_invalid_pcm(self):
        cases = {
            "float samples": (np.array([0.1, -0.2]), 22050),
            "out of range": (np.array([40000], dtype=np.int32), 22050),
            "zero rate": (np.array([1, 2], dtype=np.int16), 0),
        }
        for label, (samples, rate) in cases.items():
            with self.subTest(label):
                engine = mock.Mock()
                engine.synthesize.return_value = samples
                engine.sample_rate.return_value = rate
                conn = VoiceConnection(engine, voice=object(), voice_name="v")
                with self.assertRaises(SynthesisError):
                    conn.generate("hello")


# ===================================================================
# RemoteVoiceProvider
# ===================================================================


class TestRemoteVoiceProvider(_TempDirCase):

    def setUp(self):
        super().setUp()
        self.asset = ModelAsset(MODEL_URL, CONFIG_URL, str(self.tmp / "voices"))

    def _prefill(self):
        self.asset.model_path.parent.mkdir(parents=True)
        self.asset.model_path.write_bytes(b"model")
        self.asset.config_path.write_bytes(b"{}")

    def test_uses_cached_files(self):
        self._prefill()
        engine = FakeEngine()
        provider = RemoteVoiceProvider(self.asset, engine)

        provider.start()
        conn = provider.connect()

        self.assertEqual(engine.loaded, [(b"model", b"{}")])
        self.assertEqual(conn.voice_name, "en_GB-alan-low")
        self.assertTrue(provider.started)

    def test_start_downloads_through_cache(self):
        def fake_ensure(asset):
            self._prefill()
            return asset

        provider = RemoteVoiceProvider(self.asset, FakeEngine())
        with mock.patch("voicenorm.tts.providers.ensure_model", side_effect=fake_ensure) as ensure:
            provider.start()
        ensure.assert_called_once_with(self.asset)

    def test_stop_keeps_files(self):
        self._prefill()
        engine = FakeEngine()
        provider = RemoteVoiceProvider(self.asset, engine)
        provider.start()
        provider.stop()

        self.assertFalse(provider.started)
        self.assertEqual(len(engine.closed), 1)
        self.assertTrue(self.asset.model_path.is_file())
        self.assertTrue(self.asset.config_path.is_file())

    def test_connect_before_start(self):
        provider = RemoteVoiceProvider(self.asset, FakeEngine())
        with self.assertRaises(RuntimeError):
            provider.connect()

    def test_load_failure_becomes_model_setup_error(self):
        self._prefill()
        provider = RemoteVoiceProvider(self.asset, FakeEngine(fail_load=True))
        with self.assertRaises(ModelSetupError):
            provider.start()
        self.assertFalse(provider.started)


# ===================================================================
# LocalVoiceProvider and packaged resources
# ===================================================================


class _ResourcePackageCase(_TempDirCase):
    """Creates an importable package holding a fake voice under voices/."""

    def setUp(self):
        super().setUp()
        self.package = f"vn_voices_{uuid.uuid4().hex[:8]}"
        pkg_dir = self.tmp / self.package
        (pkg_dir / "voices").mkdir(parents=True)
        (pkg_dir / "__init__.py").write_text("")
        (pkg_dir / "voices" / "alan.onnx").write_bytes(b"packaged-model")
        (pkg_dir / "voices" / "alan.onnx.json").write_bytes(b'{"packaged": true}')
        sys.path.insert(0, str(self.tmp))
        importlib.invalidate_caches()

    def tearDown(self):
        sys.path.remove(str(self.tmp))
        sys.modules.pop(self.package, None)
        super().tearDown()

    def uri(self, name: str) -> str:
        return f"resource://{self.package}/voices/{name}"


class TestLocalVoiceProvider(_ResourcePackageCase):

    def test_filesystem_paths(self):
        model = self.tmp / "m.onnx"
        config = self.tmp / "m.onnx.json"
        model.write_bytes(b"disk-model")
        config.write_bytes(b"{}")
        engine = FakeEngine()

        provider = LocalVoiceProvider(str(model), str(config), "disk-voice", engine)
        provider.start()
        provider.stop()

        self.assertEqual(engine.loaded, [(b"disk-model", b"{}")])
        self.assertTrue(model.exists())

    def test_missing_file(self):
        provider = LocalVoiceProvider(
            str(self.tmp / "absent.onnx"), str(self.tmp / "absent.json"), "v", FakeEngine()
        )
        with self.assertRaises(AudioIOError):
            provider.start()

    def test_resources_extracted_then_deleted_on_stop(self):
        engine = FakeEngine()
        provider = LocalVoiceProvider(
            self.uri("alan.onnx"), self.uri("alan.onnx.json"), "alan", engine
        )
        provider.start()

        self.assertEqual(engine.loaded, [(b"packaged-model", b'{"packaged": true}')])
        extracted = [e.path for e in provider._extractions]
        self.assertEqual(len(extracted), 2)
        self.assertTrue(all(p.exists() for p in extracted))
        self.assertEqual(provider.connect().voice_name, "alan")

        provider.stop()
        self.assertFalse(any(p.exists() for p in extracted))

    def test_failed_start_releases_extractions(self):
        provider = LocalVoiceProvider(
            self.uri("alan.onnx"), self.uri("missing.json"), "alan", FakeEngine()
        )
        with self.assertRaises(AudioIOError):
            provider.start()
        self.assertEqual(provider._extractions, [])


class TestExtractResource(_ResourcePackageCase):

    def test_context_manager_deletes(self):
        with resources.extract_resource(self.uri("alan.onnx"), "voice-model-") as extraction:
            self.assertEqual(extraction.path.read_bytes(), b"packaged-model")
            self.assertTrue(extraction.path.name.startswith("voice-model-"))
            self.assertTrue(extraction.path.name.endswith("alan.onnx"))
        self.assertFalse(extraction.path.exists())

    def test_malformed_uris(self):
        for uri in ("/plain/path.onnx", "resource://", "resource://pkg-only"):
            with self.subTest(uri=uri):
                with self.assertRaises(ValueError):
                    resources.extract_resource(uri, "x-")

    def test_unknown_package(self):
        with self.assertRaises(AudioIOError):
            resources.extract_resource("resource://no_such_pkg_xyz/a.onnx", "x-")

    def test_exit_handler_removes_leftovers(self):
        extraction = resources.extract_resource(self.uri("alan.onnx.json"), "voice-config-")
        self.assertTrue(extraction.path.exists())
        resources._remove_tracked_at_exit()
        self.assertFalse(extraction.path.exists())


# ===================================================================
# provider_from_settings()
# ===================================================================


class TestProviderFromSettings(unittest.TestCase):

    def test_disabled(self):
        self.assertIsNone(provider_from_settings(_settings()))

    def test_remote(self):
        provider = provider_from_settings(
            _settings(voice_mode="remote", model_url=MODEL_URL, config_url=CONFIG_URL, model_dir="/tmp/v"),
            engine=FakeEngine(),
        )
        self.assertIsInstance(provider, RemoteVoiceProvider)
        self.assertEqual(provider.voice_name, "en_GB-alan-low")

    def test_remote_incomplete(self):
        with self.assertRaises(ValueError):
            provider_from_settings(_settings(voice_mode="remote", model_url=MODEL_URL), engine=FakeEngine())

    def test_local(self):
        provider = provider_from_settings(
            _settings(voice_mode="local", local_model_path="/m.onnx", local_config_path="/m.json"),
            engine=FakeEngine(),
        )
        self.assertIsInstance(provider, LocalVoiceProvider)
        self.assertEqual(provider.voice_name, "en_US-lessac-medium")

    def test_unknown_mode(self):
        with self.assertRaises(ValueError):
            provider_from_settings(_settings(voice_mode="cloud"), engine=FakeEngine())

    def test_load_from_env(self):
        env = {
            "VOICENORM_VOICE_MODE": " Remote ",
            "VOICENORM_MODEL_URL": MODEL_URL,
            "VOICENORM_CONFIG_URL": CONFIG_URL,
            "VOICENORM_MODEL_DIR": "/var/cache/voices",
        }
        with mock.patch.dict(os.environ, env, clear=False):
            settings = Settings.load_from_env()
        self.assertEqual(settings.voice_mode, "remote")
        self.assertEqual(settings.model_dir, "/var/cache/voices")


if __name__ == "__main__":
    unittest.main(verbosity=2)
