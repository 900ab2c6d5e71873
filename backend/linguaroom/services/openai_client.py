import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from ..contracts import TokenUsage
from ..errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)


class ChatCompletion:
    def __init__(self, content: str, usage: TokenUsage):
        self.content = content
        self.usage = usage


class OpenAIClient:
    """Thin async client for the OpenAI-compatible endpoints the session uses.

    One httpx.AsyncClient is shared by every request and closed on shutdown.
    Non-2xx responses become UpstreamError carrying the status and body text.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def ensure_configured(self) -> None:
        if not self.api_key:
            raise ConfigurationError("Missing OPENAI_API_KEY")

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def _post(self, path: str, **kwargs: Any) -> httpx.Response:
        start_time = time.perf_counter()
        try:
            response = await self._client.post(path, headers=self._headers(), **kwargs)
        except httpx.TimeoutException as exc:
            logger.error(f"OpenAI request to {path} timed out")
            raise UpstreamError(None, f"request to {path} timed out") from exc
        except httpx.HTTPError as exc:
            logger.error(f"OpenAI request to {path} crashed: {exc}")
            raise UpstreamError(None, str(exc) or exc.__class__.__name__) from exc

        if response.is_error:
            logger.error(f"OpenAI request to {path} failed ({response.status_code}): {response.text}")
            raise UpstreamError(response.status_code, response.text)

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(f"OpenAI {path} took {duration_ms:.1f}ms")
        return response

    async def _post_json(self, path: str, **kwargs: Any) -> Dict[str, Any]:
        response = await self._post(path, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            # 2xx with a non-JSON body, e.g. an HTML page from a proxy
            logger.error(f"OpenAI request to {path} returned a non-JSON body: {response.text[:200]}")
            raise UpstreamError(response.status_code, f"invalid JSON response: {response.text[:200]}") from exc

    async def transcribe(
        self,
        audio_bytes: bytes,
        *,
        filename: str,
        mime_type: str,
        model: str,
        language: Optional[str] = None,
    ) -> Dict[str, Any]:
        files = {"file": (filename, audio_bytes, mime_type)}
        data = {"model": model}
        if language:
            data["language"] = language
        return await self._post_json("/audio/transcriptions", files=files, data=data)

    async def chat(self, messages: List[Dict[str, str]], *, model: str, temperature: float) -> ChatCompletion:
        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }
        data = await self._post_json("/chat/completions", json=payload)

        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            content = ""
        return ChatCompletion(content=content.strip(), usage=TokenUsage.from_response(data))

    async def speech(self, text: str, *, model: str, voice: str) -> bytes:
        payload = {"model": model, "input": text, "voice": voice}
        response = await self._post("/audio/speech", json=payload)
        return response.content

    async def close(self) -> None:
        await self._client.aclose()
