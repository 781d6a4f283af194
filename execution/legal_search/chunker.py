"""
Sliding-Window Document Chunker

Splits raw document text into overlapping, trimmed windows that are the
unit of embedding and citation.

Each window prefers to end on a sentence terminator or whitespace found in
the last 20% of the window; otherwise the raw boundary is kept (a mid-word
cut is accepted rather than producing tiny chunks). Fragments whose trimmed
length is 50 characters or less are dropped.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .models import Chunk

logger = logging.getLogger(__name__)

WHITESPACE = (" ", "\n", "\t", "\r", "\f")
PAGE_BREAK = "\f"


@dataclass
class ChunkConfig:
    """Configuration for chunking parameters (characters, not tokens)."""
    window_size: int = 1000
    overlap: int = 200

    # Trimmed chunks must be strictly longer than this
    min_chunk_chars: int = 50

    # A boundary is accepted only this far into the window
    boundary_ratio: float = 0.8

    def __post_init__(self):
        if self.window_size <= 0:
            raise ValueError("window_size must be positive")
        if not 0 <= self.overlap < self.window_size:
            raise ValueError("overlap must be >= 0 and smaller than window_size")


class DocumentChunker:
    """
    Chunks document text into overlapping windows.

    Chunking is deterministic: identical input always yields an identical
    chunk sequence, so a document can be safely re-chunked whenever its
    content changes.
    """

    def __init__(self, config: Optional[ChunkConfig] = None):
        self.config = config or ChunkConfig()

    def chunk(
        self,
        document_id: str,
        text: str,
        document_name: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> list[Chunk]:
        """
        Chunk a document's full text.

        Args:
            document_id: Owning document
            text: Full document text
            document_name: File name or title, stored in chunk metadata
            metadata: Extra metadata copied onto every chunk

        Returns:
            Chunks with dense indices starting at 0
        """
        if not text:
            return []

        cfg = self.config
        has_pages = PAGE_BREAK in text
        base_metadata = dict(metadata or {})
        if document_name:
            base_metadata["documentName"] = document_name

        chunks = []
        start = 0
        length = len(text)

        while start < length:
            end = min(start + cfg.window_size, length)
            if end < length:
                end = self._find_boundary(text, start, end)

            raw = text[start:end]
            piece = raw.strip()

            if len(piece) > cfg.min_chunk_chars:
                offset = start + (len(raw) - len(raw.lstrip()))
                last = offset + len(piece) - 1
                chunks.append(Chunk(
                    document_id=document_id,
                    chunk_index=len(chunks),
                    text=piece,
                    page=text.count(PAGE_BREAK, 0, offset) + 1 if has_pages else None,
                    line_start=text.count("\n", 0, offset) + 1,
                    line_end=text.count("\n", 0, last) + 1,
                    metadata=dict(base_metadata),
                ))

            next_start = max(start + cfg.window_size - cfg.overlap, end)
            if next_start <= start:
                # Forced progress; unreachable with a validated config
                next_start = start + 1
            start = next_start

        logger.info(f"Created {len(chunks)} chunks for document {document_id}")
        return chunks

    def _find_boundary(self, text: str, start: int, end: int) -> int:
        """Pull ``end`` back to a sentence end or whitespace inside the window tail."""
        earliest = start + int(self.config.window_size * self.config.boundary_ratio)

        last_period = text.rfind(".", start, end)
        if last_period >= earliest:
            return last_period + 1

        last_space = max(text.rfind(ch, start, end) for ch in WHITESPACE)
        if last_space >= earliest:
            return last_space

        return end


# CLI for testing
if __name__ == "__main__":
    import sys

    logging.basicConfig(level=logging.INFO)

    if len(sys.argv) < 2:
        print("Usage: python -m execution.legal_search.chunker <text_file>")
        sys.exit(1)

    with open(sys.argv[1], encoding="utf-8") as f:
        content = f.read()

    chunker = DocumentChunker()
    chunks = chunker.chunk("cli-document", content, document_name=sys.argv[1])

    print(f"\nCreated {len(chunks)} chunks:")
    for chunk in chunks[:5]:
        print(f"\n--- Chunk {chunk.chunk_index} (lines {chunk.lines}, page {chunk.page}) ---")
        print(f"Length: {len(chunk.text)}")
        print(f"Content preview: {chunk.text[:200]}...")
