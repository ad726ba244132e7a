"""
voicenorm/errors.py
====================
Error taxonomy — VoiceNorm

Every failure raised by the codec, the decoders and the model cache is one
of the types below. Each carries the offending path, URL or declared type
so the caller can report it without parsing the message.

This module does NOT:
    - Map errors to HTTP status codes (handled by voicenorm.api.upload)
    - Retry anything
"""

from typing import Optional


class VoiceNormError(Exception):
    """Base class for all VoiceNorm failures."""
    pass


class UnsupportedFormatError(VoiceNormError):
    """Raised when a declared or sniffed format has no decoder."""

    def __init__(self, declared_type: Optional[str]):
        self.declared_type = declared_type
        super().__init__(f"Unsupported audio format: '{declared_type}'.")


class MalformedContainerError(VoiceNormError):
    """Raised when bytes claim to be a format but fail structural validation."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.message = message
        self.path = path
        if path:
            message = f"{message} (file: {path})"
        super().__init__(message)


class TranscodingError(MalformedContainerError):
    """Raised when the transcoding engine is present but the conversion fails."""
    pass


class CapabilityUnavailableError(VoiceNormError):
    """Raised when an optional native capability is required but not present."""

    def __init__(self, capability: str, hint: str = ""):
        self.capability = capability
        message = f"Required capability '{capability}' is not available."
        if hint:
            message = f"{message} {hint}"
        super().__init__(message)


class AudioIOError(VoiceNormError):
    """Raised on missing files, permission problems, network or write failures."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        url: Optional[str] = None,
    ):
        self.message = message
        self.path = path
        self.url = url
        super().__init__(message)


class ModelSetupError(VoiceNormError):
    """Raised when a voice model cannot be downloaded or installed."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        path: Optional[str] = None,
    ):
        self.message = message
        self.url = url
        self.path = path
        super().__init__(message)


class AudioValidationError(VoiceNormError):
    """Raised when decoded audio is empty or exceeds the duration limit."""
    pass


class SynthesisError(VoiceNormError):
    """Raised when the synthesis engine fails to produce audio."""
    pass
