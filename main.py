"""
main.py
========
Central entry point for the VoiceNorm service.

Run with:
    uvicorn main:app --reload

or ``python main.py``, which honours VOICENORM_HOST / VOICENORM_PORT.
"""

import logging
import os

from dotenv import load_dotenv

load_dotenv()  # Load .env before any module reads env vars

logging.basicConfig(
    level=os.environ.get("VOICENORM_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

# Transport-level chatter from the HTTP clients and ffmpeg invocations
for _noisy_logger_name in (
    "openai",
    "httpx",
    "httpcore",
    "urllib3",
    "pydub.converter",
):
    logging.getLogger(_noisy_logger_name).setLevel(logging.WARNING)

from voicenorm.api.upload import app  # noqa: F401, E402

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=os.environ.get("VOICENORM_HOST", "127.0.0.1"),
        port=int(os.environ.get("VOICENORM_PORT", "8000")),
    )
