"""Engine settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Memory engine configuration. All values come from environment variables."""

    # Storage
    memory_db_path: Path = Field(default=Path("data/memory.db"))

    # Embeddings
    embedding_provider: str = Field(default="hash")  # "hash" or "ollama"
    embedding_dimensions: int = Field(default=128)
    ollama_base_url: str = Field(default="http://localhost:11434")
    ollama_embedding_model: str = Field(default="all-minilm")
    ollama_embedding_dimensions: int = Field(default=384)
    ollama_timeout_seconds: float = Field(default=30.0)

    # Anthropic (memory extraction)
    anthropic_api_key: str = Field(default="")
    memory_extraction_model: str = Field(default="claude-haiku-4-5")

    # Capture
    capture_enabled: bool = Field(default=True)
    capture_dedup_threshold: float = Field(default=0.90)
    capture_min_confidence: float = Field(default=0.6)
    capture_max_per_turn: int = Field(default=5)
    capture_categories: str = Field(default="")

    # Recall
    recall_enabled: bool = Field(default=True)
    recall_max_results: int = Field(default=5)
    recall_min_score: float = Field(default=0.3)
    recall_vector_weight: float = Field(default=0.7)
    recall_keyword_weight: float = Field(default=0.3)

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

    def get_capture_categories(self) -> list[str]:
        """Parse CAPTURE_CATEGORIES into a list. Empty means every category."""
        if not self.capture_categories.strip():
            return []
        return [name.strip() for name in self.capture_categories.split(",") if name.strip()]


settings = Settings()
