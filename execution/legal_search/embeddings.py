"""
Embedding Service for Legal Search

Provides one vector per text via OpenAI (text-embedding-3-small), Voyage AI
(voyage-law-2) or Cohere. The pipeline treats the provider as a black box
with a fixed output dimension.

Architecture:
    BaseEmbeddingService  -- shared caching, dimension check, error translation
        OpenAIEmbeddingService   -- OpenAI embeddings API (default, 1536 dims)
        VoyageEmbeddingService   -- Voyage AI voyage-law-2 (1024 dims)
        CohereEmbeddingService   -- Cohere embed-v3 (1024 dims)

Provider SDK exceptions are translated into RateLimited / ProviderError so
the indexer can apply its retry policy without knowing the SDK.
"""

import os
import json
import hashlib
import logging
from typing import Optional
from dataclasses import dataclass
from pathlib import Path

from .errors import ProviderError, RateLimited, DimensionMismatch, is_rate_limit_error

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingConfig:
    """Configuration for embedding service."""
    provider: str = "openai"  # "openai", "voyage" or "cohere"
    model: str = "text-embedding-3-small"
    dimensions: int = 1536
    api_key: Optional[str] = None
    cache_dir: Optional[str] = None
    use_cache: bool = True


class BaseEmbeddingService:
    """
    Base class for API-based embedding services.

    Provides shared functionality:
    - Memory and file-based caching
    - Cache key generation
    - Document vs query input type distinction
    - Fixed-dimension validation of provider output

    Subclasses implement:
    - _init_client(): Initialize the provider-specific API client
    - _request(texts, input_type): One provider call returning raw vectors
    """

    _provider_name: str = "Base"
    _env_var_name: str = ""
    _doc_input_type: str = "document"
    _query_input_type: str = "query"

    def __init__(self, config: Optional[EmbeddingConfig] = None):
        self.config = config or EmbeddingConfig()
        self._client = None
        self._cache = {}

        if self.config.cache_dir:
            self._cache_path = Path(self.config.cache_dir)
            self._cache_path.mkdir(parents=True, exist_ok=True)
        else:
            self._cache_path = None

        self._init_client()

    def _init_client(self):
        raise NotImplementedError("Subclasses must implement _init_client()")

    def _request(self, texts: list[str], input_type: str) -> list[list[float]]:
        raise NotImplementedError("Subclasses must implement _request()")

    def _api_key(self) -> Optional[str]:
        return self.config.api_key or os.getenv(self._env_var_name)

    def embed(self, text: str) -> list[float]:
        """
        Embed a single document chunk.

        Raises:
            RateLimited: Provider signalled rate limiting
            ProviderError: Any other provider failure
            DimensionMismatch: Provider returned an unexpected vector size
        """
        return self._embed_one(text, self._doc_input_type)

    def embed_query(self, query: str) -> list[float]:
        """Embed a search query (uses the provider's query input type)."""
        return self._embed_one(query, self._query_input_type)

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts one call at a time."""
        return [self.embed(text) for text in texts]

    def _embed_one(self, text: str, input_type: str) -> list[float]:
        if not self._client:
            raise ProviderError(
                f"{self._provider_name} client not initialized. "
                f"Check {self._env_var_name}.",
                provider=self._provider_name,
            )

        cache_key = self._get_cache_key(text, input_type)
        cached = self._get_cached(cache_key)
        if cached is not None:
            return cached

        try:
            vectors = self._request([text], input_type)
        except Exception as e:
            status = getattr(e, "status_code", None) or getattr(e, "http_status", None)
            if is_rate_limit_error(e):
                raise RateLimited(
                    f"{self._provider_name} rate limit: {e}",
                    provider=self._provider_name,
                    status_code=429,
                ) from e
            logger.error(f"{self._provider_name} embedding failed: {e}")
            raise ProviderError(
                f"{self._provider_name} embedding failed: {e}",
                provider=self._provider_name,
                status_code=status,
            ) from e

        if not vectors:
            raise ProviderError(
                f"{self._provider_name} returned no embedding",
                provider=self._provider_name,
            )

        vector = [float(v) for v in vectors[0]]
        if len(vector) != self.config.dimensions:
            raise DimensionMismatch(self.config.dimensions, len(vector))

        self._set_cached(cache_key, vector)
        return vector

    def _get_cache_key(self, text: str, input_type: str) -> str:
        content = f"{self.config.model}:{input_type}:{text}"
        return hashlib.sha256(content.encode()).hexdigest()[:32]

    def _get_cached(self, key: str) -> Optional[list[float]]:
        if not self.config.use_cache:
            return None

        if key in self._cache:
            return self._cache[key]

        if self._cache_path:
            cache_file = self._cache_path / f"{key}.json"
            if cache_file.exists():
                try:
                    with open(cache_file) as f:
                        embedding = json.load(f)
                        self._cache[key] = embedding
                        return embedding
                except (OSError, ValueError) as e:
                    logger.debug(f"Failed to read embedding cache file {cache_file}: {e}")

        return None

    def _set_cached(self, key: str, embedding: list[float]) -> None:
        if not self.config.use_cache:
            return

        self._cache[key] = embedding

        if self._cache_path:
            cache_file = self._cache_path / f"{key}.json"
            try:
                with open(cache_file, "w") as f:
                    json.dump(embedding, f)
            except OSError as e:
                logger.warning(f"Failed to cache embedding: {e}")

    @property
    def dimensions(self) -> int:
        return self.config.dimensions


class OpenAIEmbeddingService(BaseEmbeddingService):
    """Embeddings via OpenAI's text-embedding-3 models (1536 dims for -small)."""

    _provider_name = "OpenAI"
    _env_var_name = "OPENAI_API_KEY"

    def _init_client(self):
        api_key = self._api_key()
        if not api_key:
            logger.warning(
                "OPENAI_API_KEY not found. Embeddings will fail. "
                "Set the environment variable or use a different provider."
            )
            return

        try:
            from openai import OpenAI
            self._client = OpenAI(api_key=api_key)
            logger.info(f"OpenAI client initialized with model {self.config.model}")
        except ImportError:
            logger.error("openai package not installed. Run: pip install openai")
            raise

    def _request(self, texts: list[str], input_type: str) -> list[list[float]]:
        response = self._client.embeddings.create(model=self.config.model, input=texts)
        return [item.embedding for item in response.data]


class VoyageEmbeddingService(BaseEmbeddingService):
    """
    Embedding service using Voyage AI's voyage-law-2 model.

    voyage-law-2 is tuned for legal text and distinguishes document and
    query input types.
    """

    _provider_name = "Voyage AI"
    _env_var_name = "VOYAGE_API_KEY"
    _doc_input_type = "document"
    _query_input_type = "query"

    def _init_client(self):
        api_key = self._api_key()
        if not api_key:
            logger.warning(
                "VOYAGE_API_KEY not found. Embeddings will fail. "
                "Get your free API key at https://dash.voyageai.com/"
            )
            return

        try:
            import voyageai
            self._client = voyageai.Client(api_key=api_key)
            logger.info(f"Voyage AI client initialized with model {self.config.model}")
        except ImportError:
            logger.error("voyageai package not installed. Run: pip install voyageai")
            raise

    def _request(self, texts: list[str], input_type: str) -> list[list[float]]:
        response = self._client.embed(texts=texts, model=self.config.model, input_type=input_type)
        return response.embeddings


class CohereEmbeddingService(BaseEmbeddingService):
    """Generates embeddings using Cohere's embed-v3 model (1024 dims)."""

    _provider_name = "Cohere"
    _env_var_name = "COHERE_API_KEY"
    _doc_input_type = "search_document"
    _query_input_type = "search_query"

    def _init_client(self):
        api_key = self._api_key()
        if not api_key:
            logger.warning(
                "COHERE_API_KEY not found. Embeddings will fail. "
                "Set the environment variable or use a different provider."
            )
            return

        try:
            import cohere
            self._client = cohere.Client(api_key)
            logger.info(f"Cohere client initialized with model {self.config.model}")
        except ImportError:
            logger.error("Cohere package not installed. Run: pip install cohere")
            raise

    def _request(self, texts: list[str], input_type: str) -> list[list[float]]:
        response = self._client.embed(texts=texts, model=self.config.model, input_type=input_type)
        return response.embeddings


PROVIDER_DEFAULTS = {
    "openai": ("text-embedding-3-small", 1536),
    "voyage": ("voyage-law-2", 1024),
    "cohere": ("embed-english-v3.0", 1024),
}

PROVIDERS = {
    "openai": OpenAIEmbeddingService,
    "voyage": VoyageEmbeddingService,
    "cohere": CohereEmbeddingService,
}


def get_embedding_service(
    provider: str = "openai",
    model: Optional[str] = None,
    dimensions: Optional[int] = None,
    cache_dir: Optional[str] = None,
) -> BaseEmbeddingService:
    """
    Factory function to get the embedding service for a provider.

    Args:
        provider: "openai" (default), "voyage" or "cohere"
        model: Override the provider's default model
        dimensions: Override the provider's default output dimension
        cache_dir: Optional directory for the file cache

    Returns:
        Configured embedding service
    """
    if provider not in PROVIDERS:
        raise ValueError(f"Unknown embedding provider: {provider}")

    default_model, default_dims = PROVIDER_DEFAULTS[provider]
    config = EmbeddingConfig(
        provider=provider,
        model=model or default_model,
        dimensions=dimensions or default_dims,
        cache_dir=cache_dir,
    )
    return PROVIDERS[provider](config)


# CLI for testing
if __name__ == "__main__":
    import sys
    from dotenv import load_dotenv

    load_dotenv()
    logging.basicConfig(level=logging.INFO)

    provider = os.getenv("EMBEDDING_PROVIDER", "openai")
    print(f"Using embedding provider: {provider}")

    service = get_embedding_service(provider=provider)

    if len(sys.argv) > 1:
        query = " ".join(sys.argv[1:])
    else:
        query = "What were the ages of the two minors?"

    print(f"Query: {query}")
    embedding = service.embed_query(query)
    print(f"Embedding dimensions: {len(embedding)}")
    print(f"First 10 values: {embedding[:10]}")
