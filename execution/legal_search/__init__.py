"""
Legal Search - Semantic Search with Grounded Citations for Legal Documents

This module provides:
- Sliding-window chunking of document text
- Rate-limited embedding indexing with atomic per-document replacement
- Owner/client-scoped cosine similarity search
- LLM answers whose facts are grounded back to source sentences
- Per-document consolidation with relevance labels and excerpts
"""

__version__ = "0.1.0"

from .chunker import DocumentChunker, ChunkConfig
from .embeddings import get_embedding_service
from .vector_store import InMemoryVectorStore, PostgresVectorStore, get_vector_store
from .search import SimilaritySearchEngine, SearchConfig, cosine_similarity
from .indexer import EmbeddingIndexer, IndexerConfig
from .entities import extract_entities
from .grounding import GroundingConfig, ground_sentences
from .consolidator import consolidate
from .llm import AnswerGenerator, LLMConfig
from .pipeline import LegalSearchPipeline

__all__ = [
    "DocumentChunker",
    "ChunkConfig",
    "get_embedding_service",
    "InMemoryVectorStore",
    "PostgresVectorStore",
    "get_vector_store",
    "SimilaritySearchEngine",
    "SearchConfig",
    "cosine_similarity",
    "EmbeddingIndexer",
    "IndexerConfig",
    "extract_entities",
    "GroundingConfig",
    "ground_sentences",
    "consolidate",
    "AnswerGenerator",
    "LLMConfig",
    "LegalSearchPipeline",
]
