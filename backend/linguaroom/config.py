from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PUBLIC_DIR = Path(__file__).resolve().parent.parent.parent / "public"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Empty key is allowed at startup; every submit request rejects it with a 500
    openai_api_key: str = Field("", alias="OPENAI_API_KEY")
    openai_api_base_url: str = Field("https://api.openai.com/v1", alias="OPENAI_API_BASE_URL")
    openai_transcribe_model: str = Field("whisper-1", alias="OPENAI_TRANSCRIBE_MODEL")
    openai_translate_model: str = Field("gpt-4o-mini", alias="OPENAI_TRANSLATE_MODEL")
    openai_tts_model: str = Field("gpt-4o-mini-tts", alias="OPENAI_TTS_MODEL")
    openai_tts_voice: str = Field("alloy", alias="OPENAI_TTS_VOICE")

    backend_host: str = Field("0.0.0.0", alias="BACKEND_HOST")
    backend_port: int = Field(3000, alias="BACKEND_PORT")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], alias="CORS_ORIGINS")
    public_dir: Path = Field(DEFAULT_PUBLIC_DIR, alias="PUBLIC_DIR")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Upstream call budget (transcription, refinement, translation, speech)
    upstream_timeout_s: float = Field(60.0, alias="UPSTREAM_TIMEOUT_S")

    # Translation tuning
    refine_temperature: float = Field(0.2, alias="REFINE_TEMPERATURE")
    translate_temperature: float = Field(0.2, alias="TRANSLATE_TEMPERATURE")
    translation_empty_retries: int = Field(1, alias="TRANSLATION_EMPTY_RETRIES", ge=0)

    # Push channels
    sse_ping_interval_s: float = Field(25.0, alias="SSE_PING_INTERVAL_S", gt=0)
    listener_queue_size: int = Field(64, alias="LISTENER_QUEUE_SIZE", ge=1)

    # Rooms are kept for the process lifetime unless a TTL is set
    room_ttl_s: float = Field(0.0, alias="ROOM_TTL_S", ge=0)

    @field_validator("openai_api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


settings = Settings()
