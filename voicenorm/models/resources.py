"""
voicenorm/models/resources.py
==============================
Packaged Resource Extraction — VoiceNorm

Voice models can ship inside an installed Python package and be referred
to as ``resource://<package>/<path/inside/package>``. Synthesis engines
need a real file, so the resource is copied to a temporary file that the
owning provider deletes when it stops.

Any extraction still alive at interpreter exit is removed by an ``atexit``
handler registered once, when this module is first imported.
"""

import atexit
import logging
import os
import posixpath
import shutil
import tempfile
import threading
from importlib import resources
from pathlib import Path

from voicenorm.errors import AudioIOError

logger = logging.getLogger("voicenorm.models.resources")

RESOURCE_SCHEME = "resource://"

_tracked_lock = threading.Lock()
_tracked: set[Path] = set()


def is_resource_uri(value: str) -> bool:
    return bool(value) and value.startswith(RESOURCE_SCHEME)


class TemporaryExtraction:
    """A temporary copy of a packaged resource, deleted on ``release()``."""

    def __init__(self, path: Path, source: str):
        self.path = path
        self.source = source

    def release(self) -> None:
        with _tracked_lock:
            _tracked.discard(self.path)
        if not self.path.exists():
            return
        try:
            self.path.unlink()
            logger.info("Deleted temporary file: %s", self.path)
        except OSError as exc:
            logger.warning("Failed to delete temporary file %s: %s", self.path, exc)

    def __enter__(self) -> "TemporaryExtraction":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"TemporaryExtraction(source={self.source!r}, path={str(self.path)!r})"


def extract_resource(uri: str, prefix: str) -> TemporaryExtraction:
    """
    Copy a ``resource://`` URI to a new temporary file.

    Args:
        uri:    e.g. ``resource://my_voices/models/en_US-lessac-medium.onnx``.
        prefix: Temporary file name prefix, e.g. ``"voice-model-"``.

    Raises:
        ValueError:   If ``uri`` is not a well-formed resource URI.
        AudioIOError: If the package or resource does not exist, or the copy fails.
    """
    if not is_resource_uri(uri):
        raise ValueError(f"Not a resource URI: {uri}")

    package, _, resource_path = uri[len(RESOURCE_SCHEME):].partition("/")
    if not package or not resource_path:
        raise ValueError(f"Resource URI must name a package and a path: {uri}")

    logger.debug("Loading file from package resource: %s/%s", package, resource_path)
    try:
        resource = resources.files(package).joinpath(resource_path)
    except ModuleNotFoundError as exc:
        raise AudioIOError(f"Package not found for resource: {uri}", path=uri) from exc
    if not resource.is_file():
        raise AudioIOError(f"File not found in package resources: {uri}", path=uri)

    fd, name = tempfile.mkstemp(prefix=prefix, suffix="-" + posixpath.basename(resource_path))
    path = Path(name)
    try:
        with os.fdopen(fd, "wb") as out, resource.open("rb") as src:
            shutil.copyfileobj(src, out)
    except OSError as exc:
        path.unlink(missing_ok=True)
        raise AudioIOError(f"Failed to extract {uri}: {exc}", path=uri) from exc

    with _tracked_lock:
        _tracked.add(path)
    logger.debug("Extracted package resource to temporary file: %s", path)
    return TemporaryExtraction(path, uri)


def _remove_tracked_at_exit() -> None:
    with _tracked_lock:
        leftovers = list(_tracked)
        _tracked.clear()
    for path in leftovers:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Failed to delete temporary file %s at exit: %s", path, exc)


atexit.register(_remove_tracked_at_exit)
