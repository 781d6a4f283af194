"""
Runtime configuration for Legal Search.

Settings are read from the environment (after loading a local .env file)
and fanned out into the per-component dataclass configs.
"""

import os
from typing import Optional
from dataclasses import dataclass, field

from dotenv import load_dotenv

from .embeddings import PROVIDER_DEFAULTS
from .indexer import IndexerConfig
from .llm import LLMConfig
from .search import SearchConfig

DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://localhost:3000"
SUPPORTED_STORES = ("postgres", "memory")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def cors_origins_from_env() -> list[str]:
    """Comma-separated CORS_ORIGINS, blank entries dropped."""
    raw = os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@dataclass
class Settings:
    """Process-wide settings."""
    embedding_provider: str = "openai"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536

    llm_base_url: Optional[str] = None
    llm_model: str = "gpt-4o-mini"
    llm_simple_model: str = "gpt-3.5-turbo"

    vector_store: str = "postgres"
    database_url: Optional[str] = None

    similarity_threshold: float = 0.7
    search_top_k: int = 10

    embed_delay_seconds: float = 0.2
    rate_limit_backoff_seconds: float = 5.0

    cors_origins: list[str] = field(
        default_factory=lambda: DEFAULT_CORS_ORIGINS.split(",")
    )

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        """
        Build settings from environment variables.

        Provider-specific defaults apply when EMBEDDING_MODEL or
        EMBEDDING_DIMENSIONS are not set.

        Raises:
            ValueError: unknown provider or store, or a non-numeric number
        """
        if dotenv:
            load_dotenv()

        provider = os.getenv("EMBEDDING_PROVIDER", "openai").strip().lower()
        if provider not in PROVIDER_DEFAULTS:
            raise ValueError(f"Unknown EMBEDDING_PROVIDER: {provider}")
        default_model, default_dims = PROVIDER_DEFAULTS[provider]

        store = os.getenv("VECTOR_STORE", "postgres").strip().lower()
        if store not in SUPPORTED_STORES:
            raise ValueError(f"VECTOR_STORE must be one of {SUPPORTED_STORES}, got {store!r}")

        return cls(
            embedding_provider=provider,
            embedding_model=os.getenv("EMBEDDING_MODEL") or default_model,
            embedding_dimensions=_env_int("EMBEDDING_DIMENSIONS", default_dims),
            llm_base_url=os.getenv("LLM_BASE_URL") or None,
            llm_model=os.getenv("LLM_MODEL") or "gpt-4o-mini",
            llm_simple_model=os.getenv("LLM_SIMPLE_MODEL") or "gpt-3.5-turbo",
            vector_store=store,
            database_url=os.getenv("POSTGRES_URL") or os.getenv("DATABASE_URL"),
            similarity_threshold=_env_float("SIMILARITY_THRESHOLD", 0.7),
            search_top_k=_env_int("SEARCH_TOP_K", 10),
            embed_delay_seconds=_env_float("EMBED_DELAY_SECONDS", 0.2),
            rate_limit_backoff_seconds=_env_float("RATE_LIMIT_BACKOFF_SECONDS", 5.0),
            cors_origins=cors_origins_from_env(),
        )

    def search_config(self) -> SearchConfig:
        return SearchConfig(threshold=self.similarity_threshold, top_k=self.search_top_k)

    def indexer_config(self) -> IndexerConfig:
        return IndexerConfig(
            inter_call_delay=self.embed_delay_seconds,
            rate_limit_backoff=self.rate_limit_backoff_seconds,
        )

    def llm_config(self) -> LLMConfig:
        return LLMConfig(
            model=self.llm_model,
            simple_model=self.llm_simple_model,
            base_url=self.llm_base_url,
        )
