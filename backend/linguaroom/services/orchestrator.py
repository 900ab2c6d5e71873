"""
Translation session orchestrator.

One submitted audio segment goes through:
- one transcription call
- one refinement call (soft fallback to the raw transcript)
- one translation branch per target language, run concurrently, each
  optionally followed by speech synthesis and published to its channel as
  soon as it is ready
- usage accounting, then the aggregate response
"""

import asyncio
import logging

from ..contracts import (
    OUTPUT_MODES,
    BranchOutcome,
    LanguageResult,
    TranslationOutcome,
    TranslationRequest,
)
from ..errors import AuthorizationError, RequestValidationFailed
from .asr_service import ASRService
from .broadcaster import ChannelBroadcaster, channel_name
from .openai_client import OpenAIClient
from .rooms import RoomRegistry
from .translation_service import TranslationService, normalize_target_language
from .tts_service import TTSService
from .usage import UsageAccumulator

logger = logging.getLogger(__name__)


class TranslationOrchestrator:
    def __init__(
        self,
        client: OpenAIClient,
        asr: ASRService,
        translator: TranslationService,
        tts: TTSService,
        rooms: RoomRegistry,
        broadcaster: ChannelBroadcaster,
        usage: UsageAccumulator,
    ):
        self.client = client
        self.asr = asr
        self.translator = translator
        self.tts = tts
        self.rooms = rooms
        self.broadcaster = broadcaster
        self.usage = usage

    def _authorize(self, request: TranslationRequest) -> None:
        """Validate and bind the room passcode. Runs without awaiting, so check and bind are atomic."""
        if not request.passcode:
            raise RequestValidationFailed("Missing passcode")
        if request.output_mode not in OUTPUT_MODES:
            raise RequestValidationFailed(f"Invalid outputMode '{request.output_mode}' (expected text, audio or both)")
        if not self.rooms.check(request.room, request.passcode):
            raise AuthorizationError("Room passcode mismatch")
        if not request.audio:
            raise RequestValidationFailed("No audio content received.")
        self.rooms.bind_or_check(request.room, request.passcode)

    async def process(self, request: TranslationRequest) -> TranslationOutcome:
        self.client.ensure_configured()
        self._authorize(request)

        languages = request.target_languages
        logger.info(
            f"Processing {len(request.audio)} bytes for room '{request.room}' -> {', '.join(languages)} "
            f"(mode={request.output_mode})"
        )

        raw_transcript = await self.asr.transcribe(request.audio, request.mime_type, request.source_lang)
        transcript, refine_usage = await self.translator.refine(raw_transcript, request.source_lang)
        self.usage.add_usage(refine_usage)

        outcomes = await asyncio.gather(
            *(self._run_branch(request, transcript, language) for language in languages)
        )

        # Usage from every branch is recorded before deciding success
        for outcome in outcomes:
            self.usage.add_usage(outcome.usage)

        failed = [outcome for outcome in outcomes if not outcome.ok]
        if failed:
            logger.error(f"{len(failed)} of {len(outcomes)} language branch(es) failed for room '{request.room}'")
            raise failed[0].failure

        return TranslationOutcome(
            transcript=transcript,
            results=[outcome.result for outcome in outcomes],
            usage=self.usage.snapshot(),
        )

    async def _run_branch(self, request: TranslationRequest, transcript: str, language: str) -> BranchOutcome:
        outcome = BranchOutcome(language=language)
        has_text = bool(transcript.strip())

        try:
            if has_text:
                translation, outcome.usage = await self.translator.translate(
                    transcript, normalize_target_language(language), request.context
                )
            else:
                translation = ""
        except Exception as exc:
            logger.error(f"Translation to {language} failed: {exc}")
            outcome.failure = exc
            return outcome

        audio_base64 = None
        error = None
        # Nothing to speak for an empty translation, so audioBase64 stays null even in audio mode
        if request.wants_audio and translation:
            # A synthesis failure stays inside this language's result
            try:
                audio_base64 = await self.tts.synthesize(translation)
            except Exception as exc:
                logger.error(f"Speech synthesis for {language} failed: {exc}")
                error = str(exc)

        outcome.result = LanguageResult(
            language=language,
            translation=translation,
            audio_base64=audio_base64,
            error=error,
        )

        # Silent segments (empty transcript) are not published
        if has_text:
            self.broadcaster.publish(
                channel_name(request.room, language),
                {
                    "type": "translation",
                    "room": request.room,
                    "language": language,
                    "transcript": transcript,
                    "translation": translation,
                    "audioBase64": audio_base64,
                },
            )
        return outcome
