"""
Legal Search Pipeline

End-to-end entry points:

    search(query, owner_id, client_id)  embed query -> scoped similarity search
                                        -> quality filter -> LLM answer
                                        -> consolidation with grounded excerpts
    reindex(document_id)                chunk -> embed -> atomic replace
    add_document(...)                   store document text, then reindex

Query-time provider failures propagate as ProviderError / RateLimited.
Indexing never raises.
"""

import logging
import threading
from typing import Optional

from .chunker import DocumentChunker
from .config import Settings
from .consolidator import consolidate
from .embeddings import get_embedding_service
from .errors import EmptyCorpus, MalformedQuery
from .grounding import GroundingConfig
from .indexer import EmbeddingIndexer
from .llm import AnswerGenerator
from .models import EmbeddedChunk, IndexingSummary, SearchResponse, SearchScope
from .search import (
    NO_CLIENT_DOCUMENTS_MESSAGE,
    NO_DOCUMENTS_MESSAGE,
    SimilaritySearchEngine,
    filter_quality_results,
)
from .vector_store import VectorStore, get_vector_store

logger = logging.getLogger(__name__)

NO_RESULTS_MESSAGE = "No relevant information found in your documents."


def analysis_message(section_count: int, client_id: Optional[str]) -> str:
    if client_id:
        return f"AI analysis based on {section_count} relevant document sections from selected client"
    return f"AI analysis based on {section_count} relevant document sections across all clients"


class LegalSearchPipeline:
    """Wires store, embeddings, search, answer generation and indexing together."""

    def __init__(
        self,
        store: VectorStore,
        embeddings,
        answer_generator: Optional[AnswerGenerator] = None,
        search_engine: Optional[SimilaritySearchEngine] = None,
        indexer: Optional[EmbeddingIndexer] = None,
        grounding_config: Optional[GroundingConfig] = None,
    ):
        self.store = store
        self.embeddings = embeddings
        self.answer_generator = answer_generator
        self.search_engine = search_engine or SimilaritySearchEngine()
        self.indexer = indexer or EmbeddingIndexer(store, embeddings, DocumentChunker())
        self.grounding_config = grounding_config or GroundingConfig(
            similarity_floor=self.search_engine.config.threshold,
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "LegalSearchPipeline":
        """Build a pipeline from environment settings."""
        settings = settings or Settings.from_env()

        embeddings = get_embedding_service(
            provider=settings.embedding_provider,
            model=settings.embedding_model,
            dimensions=settings.embedding_dimensions,
        )
        store = get_vector_store(
            kind=settings.vector_store,
            dimensions=settings.embedding_dimensions,
            connection_string=settings.database_url,
        )
        search_engine = SimilaritySearchEngine(settings.search_config())
        return cls(
            store=store,
            embeddings=embeddings,
            answer_generator=AnswerGenerator(settings.llm_config()),
            search_engine=search_engine,
            indexer=EmbeddingIndexer(store, embeddings, DocumentChunker(), settings.indexer_config()),
        )

    def _load_corpus(self, scope: SearchScope) -> list[EmbeddedChunk]:
        corpus = self.store.query_all(scope)
        if not corpus:
            raise EmptyCorpus(NO_CLIENT_DOCUMENTS_MESSAGE if scope.client_id else NO_DOCUMENTS_MESSAGE)
        return corpus

    def search(
        self,
        query: str,
        owner_id: str,
        client_id: Optional[str] = None,
        client_context: str = "",
        cancel_event: Optional[threading.Event] = None,
    ) -> SearchResponse:
        """
        Answer a query from the caller's own documents.

        Args:
            query: Natural-language question
            owner_id: Requesting user; only their documents are searched
            client_id: Optional narrowing to one client's documents
            client_context: Optional client profile text for the LLM prompt
            cancel_event: Checked between consolidated documents

        Returns:
            SearchResponse. An empty corpus yields no results and an
            informational message, not an error.

        Raises:
            MalformedQuery: empty query or missing owner (before any provider call)
            ProviderError: embedding or LLM call failed
            OperationCancelled: cancel_event was set during consolidation
        """
        if not isinstance(query, str) or not query.strip():
            raise MalformedQuery("Query must not be empty")
        if not owner_id:
            raise MalformedQuery("owner_id is required")

        query = query.strip()
        scope = SearchScope(owner_id=owner_id, client_id=client_id)

        try:
            corpus = self._load_corpus(scope)
        except EmptyCorpus as e:
            logger.info(f"Empty corpus for owner {owner_id} (client={client_id})")
            return SearchResponse(message=str(e))

        query_vector = self.embeddings.embed_query(query)
        outcome = self.search_engine.search(query_vector, corpus, scope)
        results = filter_quality_results(outcome.results)

        if not results:
            return SearchResponse(message=outcome.message or NO_RESULTS_MESSAGE)

        answer_text = None
        if self.answer_generator is not None:
            answer = self.answer_generator.generate(query, results, client_context)
            answer_text = answer.answer_text
            for position, result in enumerate(results):
                result.relevant_span = answer.relevant_spans.get(position)
                result.legal_metadata = answer.metadata.get(position, {})

        documents = consolidate(
            results,
            query=query,
            answer_text=answer_text,
            cancel_event=cancel_event,
            grounding_config=self.grounding_config,
        )

        return SearchResponse(
            results=results,
            consolidated_documents=documents,
            answer_text=answer_text,
            message=analysis_message(len(results), client_id),
        )

    def reindex(
        self,
        document_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> IndexingSummary:
        """Re-chunk and re-embed a stored document."""
        return self.indexer.index_document(document_id, cancel_event=cancel_event)

    def add_document(
        self,
        document_id: str,
        owner_id: str,
        title: str,
        content: str,
        file_name: str = "",
        client_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> IndexingSummary:
        """Store a document's text and index it."""
        self.store.upsert_document(
            document_id=document_id,
            owner_id=owner_id,
            title=title,
            content=content,
            file_name=file_name,
            client_id=client_id,
            metadata=metadata,
        )
        return self.reindex(document_id)
