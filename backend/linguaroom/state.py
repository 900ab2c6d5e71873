from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request

from .config import Settings
from .services.asr_service import ASRService
from .services.broadcaster import ChannelBroadcaster
from .services.openai_client import OpenAIClient
from .services.orchestrator import TranslationOrchestrator
from .services.rooms import RoomRegistry
from .services.translation_service import TranslationService
from .services.tts_service import TTSService
from .services.usage import UsageAccumulator


@dataclass
class SessionState:
    """Process-scoped registries and clients. One per app; tests build a fresh one each."""

    settings: Settings
    client: OpenAIClient
    rooms: RoomRegistry
    broadcaster: ChannelBroadcaster
    usage: UsageAccumulator
    orchestrator: TranslationOrchestrator

    async def close(self) -> None:
        self.broadcaster.close_all()
        await self.client.close()


def build_state(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> SessionState:
    client = OpenAIClient(
        api_key=settings.openai_api_key,
        base_url=settings.openai_api_base_url,
        timeout=settings.upstream_timeout_s,
        transport=transport,
    )
    rooms = RoomRegistry(ttl_seconds=settings.room_ttl_s)
    broadcaster = ChannelBroadcaster(
        ping_interval=settings.sse_ping_interval_s,
        max_pending=settings.listener_queue_size,
    )
    usage = UsageAccumulator(model=settings.openai_translate_model)
    orchestrator = TranslationOrchestrator(
        client=client,
        asr=ASRService(client, model=settings.openai_transcribe_model),
        translator=TranslationService(
            client,
            model=settings.openai_translate_model,
            refine_temperature=settings.refine_temperature,
            translate_temperature=settings.translate_temperature,
            empty_retries=settings.translation_empty_retries,
        ),
        tts=TTSService(client, model=settings.openai_tts_model, voice=settings.openai_tts_voice),
        rooms=rooms,
        broadcaster=broadcaster,
        usage=usage,
    )
    return SessionState(
        settings=settings,
        client=client,
        rooms=rooms,
        broadcaster=broadcaster,
        usage=usage,
        orchestrator=orchestrator,
    )


def get_state(request: Request) -> SessionState:
    return request.app.state.session
