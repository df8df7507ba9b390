"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)

    # AmiVoice speech recognition
    amivoice_api_key: str | None = Field(default=None)
    amivoice_url: str = Field(default="wss://acp-api.amivoice.com/v1/")
    amivoice_grammar: str = Field(
        default="-a-general",
        description="Grammar file / engine name sent with the 's' command.",
    )
    amivoice_audio_format: str = Field(
        default="mulaw",
        description="Audio format token; Twilio media streams deliver 8kHz mu-law.",
    )
    amivoice_connect_timeout: float = Field(default=10.0, gt=0)

    # LLM connectivity
    llm_provider: Literal["openai", "self_hosted_vllm"] = Field(default="openai")
    llm_endpoint: str | None = Field(
        default=None, description="Base URL for a self-hosted or proxied inference server."
    )
    llm_api_key: str | None = Field(default=None)
    llm_model: str = Field(default="gpt-3.5-turbo")

    # Twilio (Voice)
    twilio_account_sid: str | None = Field(default=None)
    twilio_auth_token: str | None = Field(default=None)
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for Twilio webhooks (e.g. https://<ngrok>.ngrok-free.app).",
    )
    twilio_say_voice: str = Field(default="Polly.Takumi-Neural")
    twilio_say_language: str = Field(default="ja-JP")
    twilio_greeting: str = Field(default="こんにちは。匠です。何でも聞いてください。")
    twilio_pause_seconds: int = Field(
        default=40,
        description="How long the call pauses after each spoken message.",
    )

    # Call session policies
    duplicate_start_policy: Literal["reject", "replace"] = Field(
        default="reject",
        description="What to do with a second 'start' event on an active media stream.",
    )
    reply_overlap_policy: Literal["supersede", "serialize"] = Field(
        default="supersede",
        description="How overlapping transcriptions of the same call are answered.",
    )

    @field_validator("twilio_pause_seconds")
    @classmethod
    def ensure_positive_pause(cls, value: int) -> int:
        return max(1, value)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
