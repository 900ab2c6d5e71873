import logging
from typing import Optional

from .openai_client import OpenAIClient

logger = logging.getLogger(__name__)

DEFAULT_AUDIO_MIME_TYPE = "audio/webm"
DEFAULT_AUDIO_EXTENSION = "webm"

AUDIO_EXTENSIONS = {
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/oga": "ogg",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/mp4": "mp4",
    "audio/m4a": "mp4",
    "audio/flac": "flac",
}


def normalize_mime_type(value: Optional[str]) -> str:
    """Strip parameters (codecs=...) and lowercase. Empty string when absent."""
    if not value:
        return ""
    return str(value).split(";")[0].strip().lower()


def extension_for_mime_type(mime_type: str) -> str:
    # Unknown types still go through; the provider sniffs the container
    return AUDIO_EXTENSIONS.get(mime_type, DEFAULT_AUDIO_EXTENSION)


class ASRService:
    """Speech-to-text through the OpenAI audio transcription API."""

    def __init__(self, client: OpenAIClient, model: str):
        self.client = client
        self.model = model

    async def transcribe(self, audio_bytes: bytes, mime_type: str = "", source_lang: Optional[str] = None) -> str:
        mime = normalize_mime_type(mime_type) or DEFAULT_AUDIO_MIME_TYPE
        extension = extension_for_mime_type(mime)

        data = await self.client.transcribe(
            audio_bytes,
            filename=f"audio.{extension}",
            mime_type=mime,
            model=self.model,
            language=source_lang or None,
        )
        text = data.get("text") if isinstance(data, dict) else None
        if not isinstance(text, str):
            logger.warning("Transcription response had no text field")
            return ""
        logger.debug(f"Transcribed {len(audio_bytes)} bytes of {mime}: {text[:40]!r}")
        return text
