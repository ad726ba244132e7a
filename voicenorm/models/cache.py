"""
voicenorm/models/cache.py
==========================
Voice Model Cache — VoiceNorm

Responsibility:
    - Download a voice model and its config sibling into an installation
      directory at most once, however many callers race to start
    - Keep the downloaded files across restarts (never deleted here)

State per destination:  ABSENT → DOWNLOADING → PRESENT

The cache is keyed by destination path, not by content: callers choose
distinct installation directories for distinct voices. Within a process,
callers targeting the same destination serialize on a per-destination
lock and re-check existence after acquiring it. Across processes, each
file is streamed to a unique temporary sibling and renamed into place, so
a race costs at most a duplicate download, never a torn file.

This module does NOT:
    - Load the model into a synthesis engine (handled by voicenorm.tts)
    - Retry failed downloads
"""

import logging
import os
import posixpath
import tempfile
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import unquote, urlparse

import requests

from voicenorm import config
from voicenorm.errors import AudioIOError, ModelSetupError

logger = logging.getLogger("voicenorm.models.cache")

Fetcher = Callable[[str, Path], None]


class ModelState(str, Enum):
    ABSENT = "absent"
    DOWNLOADING = "downloading"
    PRESENT = "present"


# ---------------------------------------------------------------------------
# Asset identity
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelAsset:
    """
    A (model URL, config URL, installation directory) triple.

    Files land at ``{installation_dir}/{basename of each URL path}``.
    """

    model_url: str
    config_url: str
    installation_dir: str

    @property
    def model_file_name(self) -> str:
        return file_name_from_url(self.model_url)

    @property
    def config_file_name(self) -> str:
        return file_name_from_url(self.config_url)

    @property
    def model_path(self) -> Path:
        return Path(self.installation_dir) / self.model_file_name

    @property
    def config_path(self) -> Path:
        return Path(self.installation_dir) / self.config_file_name

    @property
    def voice_name(self) -> str:
        """Model file name without its .onnx suffix, e.g. 'en_US-lessac-medium'."""
        name = self.model_file_name
        if name.endswith(".onnx"):
            return name[: -len(".onnx")]
        return name


def file_name_from_url(url: str) -> str:
    """
    Return the trailing path segment of ``url``.

    Raises:
        ValueError: If the URL is malformed or has no file name.
    """
    parsed = urlparse(url or "")
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Invalid URL: {url}")
    file_name = posixpath.basename(unquote(parsed.path))
    if not file_name:
        raise ValueError(f"No filename found in URL: {url}")
    return file_name


# ---------------------------------------------------------------------------
# Per-destination locks
# ---------------------------------------------------------------------------

_locks_guard = threading.Lock()
_destination_locks: dict[tuple[str, str], threading.Lock] = {}


def _lock_for(asset: ModelAsset) -> threading.Lock:
    key = (os.path.abspath(asset.model_path), os.path.abspath(asset.config_path))
    with _locks_guard:
        lock = _destination_locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _destination_locks[key] = lock
        return lock


# ---------------------------------------------------------------------------
# Network fetch boundary
# ---------------------------------------------------------------------------


def fetch_url(
    url: str,
    destination: Path,
    timeout: Optional[float] = None,
) -> None:
    """
    Stream ``url`` into ``destination``.

    The body is written to a unique temporary file in the destination
    directory and renamed over ``destination`` only once complete.

    Raises:
        AudioIOError: On DNS, connection, HTTP status or disk write failure.
            The message always names the URL.
    """
    destination = Path(destination)
    timeout = config.DOWNLOAD_TIMEOUT_SECONDS if timeout is None else timeout

    logger.info("Downloading file from: %s", url)
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{destination.name}.", suffix=".part", dir=destination.parent
        )
        with os.fdopen(fd, "wb") as fh:
            with requests.get(url, stream=True, timeout=timeout) as resp:
                resp.raise_for_status()
                for chunk in resp.iter_content(chunk_size=config.DOWNLOAD_CHUNK_BYTES):
                    if chunk:
                        fh.write(chunk)
        os.replace(tmp_name, destination)
    except requests.RequestException as exc:
        raise AudioIOError(
            f"Failed to download file from URL: {url} ({exc})",
            path=str(destination),
            url=url,
        ) from exc
    except OSError as exc:
        raise AudioIOError(
            f"Failed to write file from URL: {url} to {destination} ({exc})",
            path=str(destination),
            url=url,
        ) from exc
    finally:
        if tmp_name and os.path.exists(tmp_name):
            os.remove(tmp_name)

    logger.info("File downloaded from %s and installed at %s", url, destination)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def is_present(asset: ModelAsset) -> bool:
    return asset.model_path.is_file() and asset.config_path.is_file()


def model_state(asset: ModelAsset) -> ModelState:
    """Report where ``asset`` is in its ABSENT → DOWNLOADING → PRESENT lifecycle."""
    if is_present(asset):
        return ModelState.PRESENT
    if _lock_for(asset).locked():
        return ModelState.DOWNLOADING
    return ModelState.ABSENT


def ensure_model(asset: ModelAsset, fetch: Optional[Fetcher] = None) -> ModelAsset:
    """
    Make sure both files of ``asset`` exist locally, downloading them once.

    Concurrent callers for the same destination block until the first one
    finishes, then return without downloading again.

    Args:
        asset: The model/config pair and where to install it.
        fetch: Download function ``(url, destination) -> None``; defaults
               to ``fetch_url``.

    Returns:
        ``asset``, now PRESENT.

    Raises:
        ModelSetupError: If the directory cannot be created or either file
            cannot be fetched. The error names the failing path or URL.
    """
    fetch = fetch or fetch_url

    logger.info("Checking for voice model at: %s", asset.model_path)
    if is_present(asset):
        logger.info("Voice model found in cache, skipping download")
        return asset

    with _lock_for(asset):
        # Another caller may have finished while we waited
        if is_present(asset):
            logger.info("Voice model installed by a concurrent caller, skipping download")
            return asset

        logger.info("Downloading voice model from remote repository")
        _install(asset, fetch)

    return asset


def _install(asset: ModelAsset, fetch: Fetcher) -> None:
    install_dir = Path(asset.installation_dir)
    if not install_dir.is_dir():
        try:
            install_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ModelSetupError(
                f"Failed to create installation directory: {install_dir} ({exc})",
                path=str(install_dir),
            ) from exc
        logger.info("Created installation directory: %s", install_dir)

    for url, path in (
        (asset.model_url, asset.model_path),
        (asset.config_url, asset.config_path),
    ):
        try:
            fetch(url, path)
        except Exception as exc:
            raise ModelSetupError(
                f"Failed to download file from URL: {url}",
                url=url,
                path=str(path),
            ) from exc

    logger.info("Voice model setup complete at %s", install_dir)
