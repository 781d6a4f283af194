"""
Similarity Search Engine

Ranks stored chunk vectors against a query vector by cosine similarity.

The corpus is always restricted to the requesting scope before scoring;
this is an access-control boundary, not an optimization.
"""

import re
import logging
from typing import Optional
from dataclasses import dataclass, field

import numpy as np

from .errors import DimensionMismatch
from .models import EmbeddedChunk, SearchResult, SearchScope

logger = logging.getLogger(__name__)

NO_DOCUMENTS_MESSAGE = (
    "I couldn't find any documents to search through. "
    "Please upload and process documents first."
)
NO_CLIENT_DOCUMENTS_MESSAGE = (
    "I couldn't find any documents for this client. "
    "Please upload and process documents first."
)

# Words that carry no signal when judging whether a hit has real content
COMMON_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "what", "were", "is", "are", "was", "how", "when", "where",
    "who", "which", "document", "documents", "contract", "case",
})


@dataclass
class SearchConfig:
    """Similarity search parameters."""
    threshold: float = 0.7  # results must score strictly above this
    top_k: int = 10


@dataclass
class SearchOutcome:
    """Ranked results plus an informational message for an empty corpus."""
    results: list[SearchResult] = field(default_factory=list)
    message: Optional[str] = None


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """
    Compute cosine similarity between two vectors.

    Raises:
        DimensionMismatch: if the vectors differ in length
    """
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b))

    a_arr = np.asarray(a, dtype=float)
    b_arr = np.asarray(b, dtype=float)
    norm_a = np.linalg.norm(a_arr)
    norm_b = np.linalg.norm(b_arr)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(a_arr, b_arr) / (norm_a * norm_b))


def filter_by_scope(corpus: list[EmbeddedChunk], scope: SearchScope) -> list[EmbeddedChunk]:
    """Keep only chunks owned by ``scope.owner_id`` (and ``scope.client_id`` if set)."""
    return [
        chunk for chunk in corpus
        if chunk.owner_id == scope.owner_id
        and (not scope.client_id or chunk.client_id == scope.client_id)
    ]


def meaningful_terms(text: str) -> list[str]:
    """Lowercase words longer than two characters, minus common words."""
    terms = []
    for word in text.lower().split():
        cleaned = re.sub(r"[^\w]", "", word)
        if len(cleaned) > 2 and cleaned not in COMMON_WORDS:
            terms.append(cleaned)
    return terms


def filter_quality_results(
    results: list[SearchResult],
    min_content_chars: int = 50,
    min_meaningful_words: int = 3,
) -> list[SearchResult]:
    """Drop hits that are too short or consist mostly of common words."""
    kept = [
        r for r in results
        if len(r.content) >= min_content_chars
        and len(meaningful_terms(r.content)) >= min_meaningful_words
    ]
    if len(kept) < len(results):
        logger.info(f"Quality filter removed {len(results) - len(kept)} results")
    return kept


class SimilaritySearchEngine:
    """Scores a scoped corpus against a query vector and keeps the best hits."""

    def __init__(self, config: Optional[SearchConfig] = None):
        self.config = config or SearchConfig()

    def search(
        self,
        query_vector: list[float],
        corpus: list[EmbeddedChunk],
        scope: SearchScope,
    ) -> SearchOutcome:
        """
        Rank ``corpus`` against ``query_vector`` within ``scope``.

        Returns:
            SearchOutcome with at most ``top_k`` results, each with
            similarity strictly above ``threshold``, best first. An empty
            scoped corpus yields no results and an informational message.

        Raises:
            DimensionMismatch: a stored vector does not match the query dimension
        """
        scoped = filter_by_scope(corpus, scope)

        if not scoped:
            logger.info("No embeddings found for scope")
            message = NO_CLIENT_DOCUMENTS_MESSAGE if scope.client_id else NO_DOCUMENTS_MESSAGE
            return SearchOutcome(results=[], message=message)

        scored = []
        for chunk in scoped:
            similarity = cosine_similarity(query_vector, chunk.vector)
            if similarity > self.config.threshold:
                scored.append((similarity, chunk))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        results = [self._to_result(chunk, similarity) for similarity, chunk in scored[:self.config.top_k]]

        logger.info(
            f"Scored {len(scoped)} chunks, {len(scored)} above {self.config.threshold}, "
            f"returning {len(results)}"
        )
        return SearchOutcome(results=results)

    @staticmethod
    def _to_result(chunk: EmbeddedChunk, similarity: float) -> SearchResult:
        metadata = chunk.metadata or {}
        return SearchResult(
            document_id=chunk.document_id,
            document_title=chunk.document_title,
            file_name=chunk.file_name,
            content=chunk.text,
            similarity=similarity,
            chunk_index=chunk.chunk_index,
            page=chunk.page,
            line_start=chunk.line_start,
            line_end=chunk.line_end,
            client=metadata.get("client"),
            matter=metadata.get("matter"),
            metadata=metadata,
        )
