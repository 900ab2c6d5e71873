from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

OUTPUT_MODES = ("text", "audio", "both")
DEFAULT_TARGET_LANGUAGES: Tuple[str, ...] = ("English",)


def dedupe_languages(languages: Iterable[str]) -> Tuple[str, ...]:
    """Trim and drop case-insensitive duplicates, keeping the first spelling and the order."""
    seen = set()
    unique = []
    for language in languages:
        language = (language or "").strip()
        if language and language.lower() not in seen:
            seen.add(language.lower())
            unique.append(language)
    return tuple(unique) or DEFAULT_TARGET_LANGUAGES


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_response(cls, data: dict) -> "TokenUsage":
        usage = data.get("usage") if isinstance(data, dict) else None
        if not isinstance(usage, dict):
            return cls()
        return cls(
            prompt_tokens=int(usage.get("prompt_tokens") or 0),
            completion_tokens=int(usage.get("completion_tokens") or 0),
            total_tokens=int(usage.get("total_tokens") or 0),
        )

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


@dataclass(frozen=True)
class TranslationRequest:
    audio: bytes
    mime_type: str
    passcode: str
    target_languages: Tuple[str, ...] = DEFAULT_TARGET_LANGUAGES
    source_lang: str = ""
    output_mode: str = "text"
    room: str = "default"
    # Previous transcript, used as grounding for names, pronouns and tense
    context: str = ""

    def __post_init__(self):
        object.__setattr__(self, "target_languages", dedupe_languages(self.target_languages))

    @property
    def wants_audio(self) -> bool:
        return self.output_mode in ("audio", "both")


@dataclass(frozen=True)
class LanguageResult:
    language: str
    translation: str
    audio_base64: Optional[str] = None
    # Set when speech synthesis failed for this language only
    error: Optional[str] = None


@dataclass
class BranchOutcome:
    """Tagged outcome of one target-language branch of the fan-out."""

    language: str
    result: Optional[LanguageResult] = None
    failure: Optional[Exception] = None
    usage: TokenUsage = field(default_factory=TokenUsage)

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass(frozen=True)
class TranslationOutcome:
    transcript: str
    results: List[LanguageResult]
    usage: dict
