"""
Embedding Indexer

Turns a document's chunks into stored embeddings, one provider call per
chunk, paced to stay under provider rate limits:

- fixed delay between consecutive calls
- one retry after a fixed backoff when the provider signals rate limiting
- any other per-chunk failure skips that chunk

The complete new set replaces the previous set atomically, so search never
sees a half-indexed document. Indexing never raises; outcomes are reported
through IndexingSummary.
"""

import time
import logging
import threading
from typing import Callable, Optional
from dataclasses import dataclass

from .chunker import DocumentChunker
from .errors import is_rate_limit_error
from .models import Chunk, EmbeddedChunk, IndexingSummary
from .vector_store import VectorStore

logger = logging.getLogger(__name__)


@dataclass
class IndexerConfig:
    """Pacing and retry policy for embedding calls."""
    inter_call_delay: float = 0.2  # seconds between consecutive provider calls
    rate_limit_backoff: float = 5.0  # seconds to wait before retrying a 429
    max_retries: int = 1


class EmbeddingIndexer:
    """Embeds chunks sequentially and hands the full set to the vector store."""

    def __init__(
        self,
        store: VectorStore,
        embeddings,
        chunker: Optional[DocumentChunker] = None,
        config: Optional[IndexerConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.embeddings = embeddings
        self.chunker = chunker or DocumentChunker()
        self.config = config or IndexerConfig()
        self._sleep = sleep

    def index_document(
        self,
        document_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> IndexingSummary:
        """Fetch a document's text from the store, chunk it and reindex it."""
        try:
            document = self.store.get_document(document_id)
        except Exception as e:
            logger.error(f"Failed to load document {document_id}: {e}")
            return IndexingSummary(document_id=document_id, found=False)

        if document is None:
            logger.error(f"Document {document_id} not found, nothing to index")
            return IndexingSummary(document_id=document_id, found=False)

        chunks = self.chunker.chunk(
            document_id,
            document.get("content") or "",
            document_name=document.get("file_name") or document.get("title"),
            metadata=document.get("metadata") or {},
        )
        return self.reindex(document_id, chunks, cancel_event=cancel_event)

    def reindex(
        self,
        document_id: str,
        chunks: list[Chunk],
        cancel_event: Optional[threading.Event] = None,
    ) -> IndexingSummary:
        """
        Replace the stored embedding set of ``document_id`` with ``chunks``.

        Args:
            document_id: Document being (re)indexed
            chunks: Output of the chunker for the current document text
            cancel_event: Checked between chunks; when set, the previous
                embedding set is left untouched

        Returns:
            IndexingSummary with embeddings_created <= total_chunks
        """
        total = len(chunks)
        logger.info(f"Indexing document {document_id}: {total} chunks")

        embedded = []
        for position, chunk in enumerate(chunks):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(
                    f"Indexing of {document_id} cancelled after {position}/{total} chunks; "
                    f"previous embeddings kept"
                )
                return IndexingSummary(document_id=document_id, total_chunks=total, cancelled=True)

            if position > 0 and self.config.inter_call_delay > 0:
                self._sleep(self.config.inter_call_delay)

            vector = self._embed_with_retry(chunk)
            if vector is not None:
                embedded.append(EmbeddedChunk.from_chunk(chunk, vector))

        try:
            created = self.store.replace_document_embeddings(document_id, embedded)
        except Exception as e:
            logger.error(f"Failed to store embeddings for {document_id}: {e}")
            return IndexingSummary(document_id=document_id, total_chunks=total)

        logger.info(f"Created {created}/{total} embeddings for document {document_id}")
        return IndexingSummary(
            document_id=document_id,
            embeddings_created=created,
            total_chunks=total,
        )

    def _embed_with_retry(self, chunk: Chunk) -> Optional[list[float]]:
        """Embed one chunk; None means the chunk is skipped."""
        retries = 0
        while True:
            try:
                return self.embeddings.embed(chunk.text)
            except Exception as e:
                if is_rate_limit_error(e) and retries < self.config.max_retries:
                    retries += 1
                    logger.warning(
                        f"Rate limited on chunk {chunk.chunk_index}, "
                        f"retrying in {self.config.rate_limit_backoff}s"
                    )
                    self._sleep(self.config.rate_limit_backoff)
                    continue
                logger.warning(f"Skipping chunk {chunk.chunk_index} of {chunk.document_id}: {e}")
                return None
