"""
Re-index stored documents.

Re-chunks each document's stored text, re-embeds every chunk (paced for
provider rate limits) and atomically replaces the document's embedding set.
Use after changing the embedding model or the chunking parameters.

Usage:
    python reindex_documents.py doc-1 doc-2             # Specific documents
    python reindex_documents.py --owner user-123        # All documents of an owner
    python reindex_documents.py --owner user-123 --dry-run   # Chunk counts only
"""

import sys
import time
import argparse
import logging
from pathlib import Path
from dotenv import load_dotenv

# Ensure project root is on path
PROJECT_ROOT = Path(__file__).resolve().parent
sys.path.insert(0, str(PROJECT_ROOT))
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def resolve_document_ids(store, document_ids: list[str], owner_id: str | None) -> list[str]:
    """Explicit ids first, then every document of ``owner_id`` not already listed."""
    resolved = list(dict.fromkeys(document_ids))
    if owner_id:
        for document_id in store.list_document_ids(owner_id):
            if document_id not in resolved:
                resolved.append(document_id)
    return resolved


def preview_document(store, chunker, document_id: str) -> int:
    """Chunk a document without embedding it. Returns the chunk count (-1 if missing)."""
    document = store.get_document(document_id)
    if document is None:
        logger.warning(f"  {document_id}: not found")
        return -1
    chunks = chunker.chunk(
        document_id,
        document.get("content") or "",
        document_name=document.get("file_name") or document.get("title"),
    )
    logger.info(f"  {document_id}: {len(document.get('content') or ''):,} chars -> {len(chunks)} chunks")
    return len(chunks)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Re-chunk and re-embed stored documents")
    parser.add_argument("document_ids", nargs="*", help="Document ids to reindex")
    parser.add_argument("--owner", help="Reindex every document owned by this user id")
    parser.add_argument("--dry-run", action="store_true", help="Show chunk counts without embedding")
    args = parser.parse_args(argv)

    if not args.document_ids and not args.owner:
        parser.error("pass one or more document ids or --owner")

    from execution.legal_search.chunker import DocumentChunker
    from execution.legal_search.config import Settings
    from execution.legal_search.pipeline import LegalSearchPipeline
    from execution.legal_search.vector_store import get_vector_store

    settings = Settings.from_env()

    if args.dry_run:
        logger.info("DRY RUN: no embeddings will be generated, no DB changes")
        store = get_vector_store(
            kind=settings.vector_store,
            dimensions=settings.embedding_dimensions,
            connection_string=settings.database_url,
        )
        chunker = DocumentChunker()
        document_ids = resolve_document_ids(store, args.document_ids, args.owner)
        total = sum(max(preview_document(store, chunker, d), 0) for d in document_ids)
        logger.info(f"{len(document_ids)} documents, {total} chunks")
        return 0

    pipeline = LegalSearchPipeline.from_settings(settings)
    document_ids = resolve_document_ids(pipeline.store, args.document_ids, args.owner)
    if not document_ids:
        logger.info("No documents found. Nothing to do.")
        return 0

    start_time = time.time()
    total_created = 0
    total_chunks = 0
    incomplete = []

    for i, document_id in enumerate(document_ids, start=1):
        logger.info(f"--- Document {i}/{len(document_ids)}: {document_id} ---")
        summary = pipeline.reindex(document_id)
        total_created += summary.embeddings_created
        total_chunks += summary.total_chunks
        if not summary.found or summary.embeddings_created < summary.total_chunks:
            incomplete.append(document_id)

    elapsed = time.time() - start_time
    logger.info(f"{'='*60}")
    logger.info("COMPLETE")
    logger.info(f"  Documents:           {len(document_ids)}")
    logger.info(f"  Embeddings created:  {total_created}/{total_chunks}")
    logger.info(f"  Incomplete:          {len(incomplete)}")
    logger.info(f"  Time:                {elapsed:.1f}s")
    logger.info(f"{'='*60}")

    return 1 if incomplete else 0


if __name__ == "__main__":
    sys.exit(main())
