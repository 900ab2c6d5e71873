import base64
import logging

from .openai_client import OpenAIClient

logger = logging.getLogger(__name__)


class TTSService:
    """Speech synthesis through the OpenAI audio speech API, returned as base64."""

    def __init__(self, client: OpenAIClient, model: str, voice: str):
        self.client = client
        self.model = model
        self.voice = voice

    async def synthesize(self, text: str, voice: str | None = None) -> str:
        audio = await self.client.speech(text, model=self.model, voice=voice or self.voice)
        logger.debug(f"Synthesized {len(audio)} bytes of speech for {len(text)} chars")
        return base64.b64encode(audio).decode("ascii")
