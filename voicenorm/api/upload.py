"""
voicenorm/api/upload.py
========================
HTTP surface — VoiceNorm

Endpoints:
    POST /api/v1/normalize   multipart audio_file → canonical WAV (audio/wav)
    POST /api/v1/transcribe  multipart audio_file → {"text": ...}
    POST /api/v1/synthesize  {"text": ...}        → canonical WAV (audio/wav)
    GET  /health

The voice provider (if configured through VOICENORM_VOICE_MODE) is started
once in the application lifespan; a startup failure aborts the service.
CPU-bound conversion and synthesis run on worker threads.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from voicenorm import __version__
from voicenorm.audio.decoders import transcoding_available
from voicenorm.audio.normalizer import normalize_bytes
from voicenorm.config import Settings
from voicenorm.errors import (
    AudioIOError,
    AudioValidationError,
    CapabilityUnavailableError,
    MalformedContainerError,
    SynthesisError,
    UnsupportedFormatError,
    VoiceNormError,
)
from voicenorm.pipeline import transcribe_audio
from voicenorm.tts.providers import provider_from_settings

logger = logging.getLogger("voicenorm.api")

_UNDECLARED_TYPES = {"", "application/octet-stream"}


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    provider = provider_from_settings(Settings.load_from_env())
    if provider is not None:
        await asyncio.to_thread(provider.start)
    app.state.voice_provider = provider
    try:
        yield
    finally:
        if provider is not None:
            provider.stop()


app = FastAPI(
    title="VoiceNorm",
    description="Canonical 16 kHz mono WAV normalization and voice synthesis.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class SynthesisRequest(BaseModel):
    text: str


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/health")
async def health(request: Request):
    provider = getattr(request.app.state, "voice_provider", None)
    return {
        "status": "ok",
        "transcoding": transcoding_available(),
        "voice": provider.voice_name if provider is not None else None,
    }


@app.post("/api/v1/normalize")
async def normalize_upload(audio_file: UploadFile = File(...)):
    """Return the uploaded audio as canonical 16 kHz mono 16-bit WAV."""
    audio_bytes, declared_type = await _read_upload(audio_file)
    try:
        wav_bytes = await asyncio.to_thread(
            normalize_bytes, audio_bytes, declared_type, audio_file.filename
        )
    except VoiceNormError as exc:
        raise _http_error(exc)

    logger.info("Normalized %s → %.2f KB canonical WAV", audio_file.filename, len(wav_bytes) / 1024)
    return Response(content=wav_bytes, media_type="audio/wav")


@app.post("/api/v1/transcribe")
async def transcribe_upload(audio_file: UploadFile = File(...)):
    """Normalize the upload and return its transcription."""
    audio_bytes, declared_type = await _read_upload(audio_file)
    try:
        text = await asyncio.to_thread(
            transcribe_audio, audio_bytes, declared_type, audio_file.filename
        )
    except VoiceNormError as exc:
        raise _http_error(exc)
    except RuntimeError as exc:
        logger.error("Transcription failed: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc))

    return JSONResponse(status_code=200, content={"text": text})


@app.post("/api/v1/synthesize")
async def synthesize(body: SynthesisRequest, request: Request):
    """Synthesize text with the configured voice and return canonical WAV."""
    provider = getattr(request.app.state, "voice_provider", None)
    if provider is None:
        raise HTTPException(status_code=503, detail="No voice provider is configured.")

    connection = provider.connect()
    try:
        wav_bytes = await connection.agenerate(body.text)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except SynthesisError as exc:
        raise HTTPException(status_code=500, detail=str(exc))

    return Response(content=wav_bytes, media_type="audio/wav")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _read_upload(audio_file: UploadFile) -> tuple[bytes, Optional[str]]:
    # Guard: file must be provided
    if audio_file is None or audio_file.filename is None:
        raise HTTPException(status_code=400, detail="Audio file is required.")

    logger.info("Audio file received: %s (%s)", audio_file.filename, audio_file.content_type)
    try:
        audio_bytes = await audio_file.read()
    except Exception:
        raise HTTPException(status_code=400, detail="Failed to read uploaded file.")

    declared_type = (audio_file.content_type or "").strip()
    if declared_type.split(";", 1)[0].strip().lower() in _UNDECLARED_TYPES:
        declared_type = None
    return audio_bytes, declared_type


def _http_error(exc: VoiceNormError) -> HTTPException:
    if isinstance(exc, UnsupportedFormatError):
        return HTTPException(status_code=415, detail=str(exc))
    if isinstance(exc, (MalformedContainerError, AudioValidationError)):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, CapabilityUnavailableError):
        return HTTPException(status_code=501, detail=str(exc))
    if isinstance(exc, AudioIOError):
        return HTTPException(status_code=400, detail=str(exc))
    logger.error("Unexpected conversion error: %s", exc, exc_info=True)
    return HTTPException(status_code=500, detail=str(exc))
