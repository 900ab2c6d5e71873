import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from ..contracts import TranslationRequest, dedupe_languages
from ..services.rooms import DEFAULT_ROOM
from ..state import SessionState, get_state

logger = logging.getLogger(__name__)


class LanguageResultModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    language: str
    translation: str
    audio_base64: Optional[str] = Field(None, alias="audioBase64")
    error: Optional[str] = Field(None, description="Speech synthesis failure for this language only")


class UsageModel(BaseModel):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    cost: float
    model: str


class TranslateAudioResponse(BaseModel):
    transcript: str
    results: List[LanguageResultModel]
    usage: UsageModel


router = APIRouter(tags=["translate"])


def parse_target_languages(target_lang: List[str], target_langs: List[str]) -> tuple[str, ...]:
    """Merge repeated and comma-joined language params, dropping case-insensitive duplicates."""
    return dedupe_languages(part for value in [*target_lang, *target_langs] for part in value.split(","))


@router.post(
    "/translate-audio",
    response_model=TranslateAudioResponse,
    response_model_by_alias=True,
)
async def translate_audio(
    request: Request,
    target_lang: List[str] = Query([], alias="targetLang"),
    target_langs: List[str] = Query([], alias="targetLangs"),
    source_lang: str = Query("", alias="sourceLang"),
    output_mode: str = Query("text", alias="outputMode"),
    room: str = Query(DEFAULT_ROOM),
    passcode: str = Query(""),
    context: str = Query(""),
    state: SessionState = Depends(get_state),
) -> TranslateAudioResponse:
    audio_bytes = await request.body()
    mime_type = request.headers.get("x-audio-mime-type") or request.headers.get("content-type") or ""

    outcome = await state.orchestrator.process(
        TranslationRequest(
            audio=audio_bytes,
            mime_type=mime_type,
            passcode=passcode.strip(),
            target_languages=parse_target_languages(target_lang, target_langs),
            source_lang=source_lang.strip(),
            output_mode=output_mode.strip().lower() or "text",
            room=room.strip() or DEFAULT_ROOM,
            context=context,
        )
    )

    return TranslateAudioResponse(
        transcript=outcome.transcript,
        results=[
            LanguageResultModel(
                language=result.language,
                translation=result.translation,
                audio_base64=result.audio_base64,
                error=result.error,
            )
            for result in outcome.results
        ],
        usage=UsageModel(**outcome.usage),
    )


@router.get("/usage", response_model=UsageModel)
async def get_usage(state: SessionState = Depends(get_state)) -> UsageModel:
    """Token consumption and estimated cost since start (or the last reset)."""
    return UsageModel(**state.usage.snapshot())


@router.post("/usage/reset")
async def reset_usage(state: SessionState = Depends(get_state)):
    """Reset session usage counters."""
    state.usage.reset()
    return {"status": "ok", "usage": state.usage.snapshot()}
