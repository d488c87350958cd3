from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional
import os

GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"


class LLMConfig(BaseModel):
    api_key: str = Field("", description="API key for the OpenAI-compatible LLM endpoint.")
    base_url: Optional[str] = Field(
        GEMINI_OPENAI_BASE_URL,
        description="Base URL for the OpenAI-compatible endpoint.",
    )
    model: str = Field("gemini-2.5-flash", description="Vision-capable chat model.")
    timeout: float = Field(30.0, gt=0, description="Per-call timeout in seconds.")
    max_retries: int = Field(
        0, ge=0, description="Transport retries performed by the SDK client."
    )

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.api_key.strip())


class FalConfig(BaseModel):
    api_key: str = Field("", description="fal.ai key used for FLUX.1 Kontext calls.")
    timeout: float = Field(60.0, gt=0, description="Per-call timeout in seconds.")

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.api_key.strip())


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="KONTEXTAI__",
        env_nested_delimiter="__",
        extra="ignore",
    )

    llm: LLMConfig = Field(default_factory=LLMConfig)
    fal: FalConfig = Field(default_factory=FalConfig)
    download_timeout: float = Field(
        10.0, gt=0, description="Timeout for fetching one reference image."
    )
    max_upload_bytes: int = Field(10 * 1024 * 1024, gt=0)
    max_request_bytes: int = Field(
        16 * 1024 * 1024, gt=0, description="Hard cap on any request body."
    )
    allowed_upload_types: List[str] = [
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/webp",
    ]
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 5000
    debug: bool = False

    @property
    def llm_configured(self) -> bool:
        return self.llm.configured

    @property
    def fal_configured(self) -> bool:
        return self.fal.configured


# Unprefixed variables other tooling already exports, in priority order.
_FALLBACK_ENV = {
    ("llm", "api_key"): ("OPENAI_API_KEY", "GEMINI_API_KEY"),
    ("llm", "base_url"): ("OPENAI_BASE_URL", "GEMINI_BASE_URL"),
    ("fal", "api_key"): ("FAL_KEY",),
}


def load_settings(**overrides) -> Settings:
    """Build settings from the environment, then fill blanks from well-known variables."""
    settings = Settings(**overrides)
    for (section, key), names in _FALLBACK_ENV.items():
        if f"KONTEXTAI__{section.upper()}__{key.upper()}" in os.environ:
            continue
        if section in overrides:
            continue
        for name in names:
            value = os.environ.get(name)
            if value:
                setattr(getattr(settings, section), key, value)
                break
    return settings
