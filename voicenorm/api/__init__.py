# voicenorm/api/__init__.py
# ==========================
# HTTP surface — VoiceNorm
#
# Exposes the FastAPI application defined in voicenorm.api.upload.

from voicenorm.api.upload import app  # noqa: F401

__all__ = ["app"]
