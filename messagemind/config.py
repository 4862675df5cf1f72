"""Application settings loaded from environment variables."""

import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """MessageMind configuration. All values come from environment variables."""

    # Provider cascade, best quality first
    analysis_providers: str = Field(default="gemini,anthropic,huggingface")

    # Google Gemini
    gemini_api_key: str = Field(default="")
    gemini_model: str = Field(default="gemini-1.5-flash")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/models"
    )

    # Anthropic
    anthropic_api_key: str = Field(default="")
    claude_model: str = Field(default="claude-haiku-4-5-20251001")

    # Hugging Face Inference API
    hf_api_key: str = Field(default="")
    hf_base_url: str = Field(default="https://api-inference.huggingface.co/models")
    hf_summarization_model: str = Field(default="facebook/bart-large-cnn")
    hf_sentiment_model: str = Field(default="cardiffnlp/twitter-roberta-base-sentiment-latest")
    hf_embedding_model: str = Field(default="sentence-transformers/all-MiniLM-L6-v2")

    # Provider calls
    provider_timeout_seconds: float = Field(default=10.0, gt=0, le=10.0)
    retry_attempts: int = Field(default=3, ge=1)
    retry_base_delay_ms: int = Field(default=200, ge=0)
    provider_cooldown_seconds: float = Field(default=300.0, ge=0)

    # Conversation segmentation
    conversation_window_ms: int = Field(default=3_600_000, gt=0)
    min_conversation_messages: int = Field(default=3, ge=1)
    max_prompt_messages: int = Field(default=20, ge=1)

    # Vector index
    embedding_dimension: int = Field(default=384, gt=0)
    embedding_batch_size: int = Field(default=10, ge=1)
    embedding_batch_delay_ms: int = Field(default=100, ge=0)
    similarity_floor: float = Field(default=0.1, ge=-1.0, le=1.0)
    default_search_limit: int = Field(default=10, ge=1)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def get_analysis_providers(self) -> list[str]:
        """Parse ANALYSIS_PROVIDERS into an ordered list of provider names."""
        if not self.analysis_providers.strip():
            return []
        return [
            name.strip().lower()
            for name in self.analysis_providers.split(",")
            if name.strip()
        ]


settings = Settings()
