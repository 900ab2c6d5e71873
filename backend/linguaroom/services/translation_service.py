import logging
from typing import Dict, List, Optional, Tuple

from ..contracts import TokenUsage
from ..errors import UpstreamError
from .openai_client import OpenAIClient

logger = logging.getLogger(__name__)

REFINE_PROMPT = (
    "You clean ASR transcripts. Fix obvious recognition mistakes, punctuation, and casing "
    "while preserving meaning. Do NOT add or remove sentences. Keep language same as input."
)

TRANSLATE_PROMPT_PARTS = (
    "You are a translation engine. Translate user text to {language}.",
    "Use the provided context for coherence (names, pronouns, tense).",
    "Return ONLY the translation of the new text, not the context.",
    "If the text is already in the target language, return it unchanged.",
    "Never reply with explanations, apologies, or placeholders. Never return empty output.",
)

CANTONESE_PROMPT_PARTS = (
    "Write in spoken Cantonese using Traditional Chinese characters (e.g., 喺/嘅/佢/佢哋/唔/冇/咗/啦/喇/啱).",
    "Avoid Mainland Mandarin lexical choices; prefer colloquial Cantonese phrasing and particles.",
    "Do not mix Simplified Chinese; keep vocabulary natural for Cantonese listeners.",
)

RETRY_SUFFIX = " Output must not be empty. Provide best-effort translation."

MIN_REFINE_CHARS = 2


def normalize_target_language(language: str) -> str:
    """Disambiguate Chinese variants, which a bare label leaves open to the model."""
    lower = (language or "").lower()
    if "cantonese" in lower:
        return "Cantonese (Traditional Chinese, Cantonese phrasing)"
    if "mandarin" in lower:
        return "Mandarin Chinese (Simplified Chinese, Mainland usage)"
    return language


def build_translation_messages(text: str, language: str, context: str = "") -> List[Dict[str, str]]:
    system_parts = [part.format(language=language) for part in TRANSLATE_PROMPT_PARTS]
    if "cantonese" in (language or "").lower():
        system_parts.extend(CANTONESE_PROMPT_PARTS)

    if context:
        user_content = (
            f"Context (previous transcript):\n{context}\n\n"
            f"New text to translate:\n{text}\n\n"
            "Translate only the new text, keep consistent with context."
        )
    else:
        user_content = text

    return [
        {"role": "system", "content": " ".join(system_parts)},
        {"role": "user", "content": user_content},
    ]


class TranslationService:
    """Transcript refinement and per-language translation over chat completions.

    Translation retries are bounded: an empty answer is retried at most
    `empty_retries` times with a stricter system instruction, after which the
    empty string is accepted.
    """

    def __init__(
        self,
        client: OpenAIClient,
        model: str,
        *,
        refine_temperature: float = 0.2,
        translate_temperature: float = 0.2,
        empty_retries: int = 1,
    ):
        self.client = client
        self.model = model
        self.refine_temperature = refine_temperature
        self.translate_temperature = translate_temperature
        self.empty_retries = max(0, empty_retries)

    async def refine(self, raw_transcript: str, source_lang: Optional[str] = None) -> Tuple[str, TokenUsage]:
        """Clean up an ASR transcript. Falls back to the raw text on failure or empty output."""
        raw_transcript = raw_transcript or ""
        if len(raw_transcript.strip()) < MIN_REFINE_CHARS:
            return raw_transcript, TokenUsage()

        messages = [
            {"role": "system", "content": REFINE_PROMPT},
            {
                "role": "user",
                "content": f"Language: {source_lang or 'unknown / mixed'}\nTranscript:\n{raw_transcript}",
            },
        ]
        try:
            completion = await self.client.chat(messages, model=self.model, temperature=self.refine_temperature)
        except UpstreamError as exc:
            logger.warning(f"Transcript refinement failed, using raw transcript: {exc}")
            return raw_transcript, TokenUsage()

        if not completion.content:
            logger.warning("Transcript refinement came back empty, using raw transcript")
            return raw_transcript, completion.usage
        return completion.content, completion.usage

    async def translate(self, text: str, target_language: str, context: str = "") -> Tuple[str, TokenUsage]:
        """Translate to an already-normalized language label.

        Returns the translation (possibly empty once retries are spent) and the
        token usage of every attempt.
        """
        messages = build_translation_messages(text, target_language, context)
        strict_system = messages[0]["content"] + RETRY_SUFFIX
        usage = TokenUsage()
        result = ""

        for attempt in range(self.empty_retries + 1):
            if attempt > 0:
                logger.warning(
                    f"Empty translation to {target_language}, retrying ({attempt}/{self.empty_retries})"
                )
                messages[0] = {"role": "system", "content": strict_system}

            completion = await self.client.chat(messages, model=self.model, temperature=self.translate_temperature)
            usage = usage + completion.usage
            result = completion.content
            if result:
                break

        return result, usage
