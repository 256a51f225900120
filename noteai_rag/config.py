from __future__ import annotations

from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # API Keys
    anthropic_api_key: str = ""
    openai_api_key: str = ""

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""

    # App config
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"
    vector_backend: str = "memory"  # "memory" or "supabase"

    # Embeddings
    embedding_model: str = "text-embedding-3-small"
    embedding_batch_size: int = 10
    embedding_timeout: float = 30.0
    embedding_cache_ttl: float = 3600.0
    embedding_cache_max_entries: int = 10_000

    # Generation
    llm_model: str = "claude-sonnet-4-20250514"
    llm_input_cost_per_mtok: float = 3.0
    llm_output_cost_per_mtok: float = 15.0

    # Retrieval
    chunk_size: int = 1000
    chunk_overlap: int = 200
    context_max_tokens: int = 4000

    # Analytics
    analytics_max_concurrent: int = 3
    analytics_cache_ttl: float = 3600.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @model_validator(mode="after")
    def _check_chunk_overlap(self) -> Settings:
        if self.chunk_size <= 0:
            msg = f"chunk_size must be positive, got {self.chunk_size}"
            raise ValueError(msg)
        if not 0 <= self.chunk_overlap < self.chunk_size:
            msg = (
                f"chunk_overlap ({self.chunk_overlap}) must be non-negative and "
                f"smaller than chunk_size ({self.chunk_size})"
            )
            raise ValueError(msg)
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except OSError:
        # .env is unreadable; build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
