"""
Data model for the Legal Search pipeline.

Chunks and embedded chunks are persisted by the vector store; every other
type here is computed per query and never stored.
"""

from enum import Enum
from typing import Optional
from dataclasses import dataclass, field


@dataclass
class Chunk:
    """A contiguous, trimmed slice of a document used for embedding and citation."""
    document_id: str
    chunk_index: int
    text: str
    page: Optional[int] = None
    line_start: Optional[int] = None
    line_end: Optional[int] = None
    metadata: dict = field(default_factory=dict)

    @property
    def lines(self) -> Optional[str]:
        if self.line_start and self.line_end:
            return f"{self.line_start}-{self.line_end}"
        return None

    def to_dict(self) -> dict:
        return {
            "document_id": self.document_id,
            "chunk_index": self.chunk_index,
            "text": self.text,
            "page": self.page,
            "line_start": self.line_start,
            "line_end": self.line_end,
            "metadata": self.metadata,
        }


@dataclass
class EmbeddedChunk:
    """A chunk plus its provider vector and the scope attributes of its document."""
    document_id: str
    chunk_index: int
    text: str
    vector: list[float]
    metadata: dict = field(default_factory=dict)
    page: Optional[int] = None
    line_start: Optional[int] = None
    line_end: Optional[int] = None

    # Scope (access control) and display fields of the owning document
    owner_id: Optional[str] = None
    client_id: Optional[str] = None
    document_title: str = ""
    file_name: str = ""

    @classmethod
    def from_chunk(cls, chunk: Chunk, vector: list[float]) -> "EmbeddedChunk":
        return cls(
            document_id=chunk.document_id,
            chunk_index=chunk.chunk_index,
            text=chunk.text,
            vector=vector,
            metadata=dict(chunk.metadata),
            page=chunk.page,
            line_start=chunk.line_start,
            line_end=chunk.line_end,
        )


@dataclass
class SearchScope:
    """Who is asking. ``owner_id`` is mandatory; ``client_id`` narrows further."""
    owner_id: str
    client_id: Optional[str] = None


@dataclass
class SearchResult:
    """A single chunk that scored above the similarity threshold."""
    document_id: str
    document_title: str
    file_name: str
    content: str
    similarity: float
    chunk_index: int
    page: Optional[int] = None
    line_start: Optional[int] = None
    line_end: Optional[int] = None
    client: Optional[str] = None
    matter: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    # Filled in by answer generation when the LLM cites this chunk
    relevant_span: Optional[str] = None
    legal_metadata: dict = field(default_factory=dict)

    @property
    def lines(self) -> Optional[str]:
        if self.line_start and self.line_end:
            return f"{self.line_start}-{self.line_end}"
        return None

    def to_dict(self) -> dict:
        return {
            "document_id": self.document_id,
            "document_title": self.document_title,
            "file_name": self.file_name,
            "content": self.content,
            "similarity": self.similarity,
            "chunk_index": self.chunk_index,
            "page": self.page,
            "line_start": self.line_start,
            "line_end": self.line_end,
            "client": self.client,
            "matter": self.matter,
            "relevant_span": self.relevant_span,
            "legal_metadata": self.legal_metadata,
        }


class Relevance(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


@dataclass
class Excerpt:
    """A highlighted passage shown as a citation."""
    text: str
    page: Optional[int] = None
    lines: Optional[str] = None
    section: Optional[str] = None
    query_relevance: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "page": self.page,
            "lines": self.lines,
            "section": self.section,
            "query_relevance": self.query_relevance,
        }


@dataclass
class ConsolidatedDocument:
    """One entry per source document with an aggregate relevance label."""
    document_id: str
    title: str
    file_name: str
    client: str
    matter: str
    relevance: Relevance
    excerpts: list[Excerpt] = field(default_factory=list)
    total_pages: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "document_id": self.document_id,
            "title": self.title,
            "file_name": self.file_name,
            "client": self.client,
            "matter": self.matter,
            "relevance": self.relevance.value,
            "excerpts": [e.to_dict() for e in self.excerpts],
            "total_pages": self.total_pages,
        }


class EntityType(str, Enum):
    NAME = "Name"
    AGE = "Age"
    DATE = "Date"
    AMOUNT = "Amount"
    NUMBER = "Number"
    REFERENCE = "Reference"


@dataclass(frozen=True)
class AnswerEntity:
    """A factual entity asserted by the generated answer."""
    type: EntityType
    value: str
    context: str

    def to_dict(self) -> dict:
        return {"type": self.type.value, "value": self.value, "context": self.context}


@dataclass
class RelevantSentence:
    """A source sentence that grounds part of the answer."""
    text: str
    relevance_score: float
    matched_entities: list[AnswerEntity] = field(default_factory=list)
    page: Optional[int] = None
    lines: Optional[str] = None
    section: Optional[str] = None


@dataclass
class IndexingSummary:
    """Completion report of a reindex. Indexing never raises; it reports."""
    document_id: str
    embeddings_created: int = 0
    total_chunks: int = 0
    cancelled: bool = False
    # False when the document could not be found or loaded
    found: bool = True

    def to_dict(self) -> dict:
        return {
            "document_id": self.document_id,
            "embeddings_created": self.embeddings_created,
            "total_chunks": self.total_chunks,
            "cancelled": self.cancelled,
            "found": self.found,
        }


@dataclass
class SearchResponse:
    """What the caller receives from a search."""
    results: list[SearchResult] = field(default_factory=list)
    consolidated_documents: list[ConsolidatedDocument] = field(default_factory=list)
    answer_text: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "results": [r.to_dict() for r in self.results],
            "consolidated_documents": [d.to_dict() for d in self.consolidated_documents],
            "answer_text": self.answer_text,
            "message": self.message,
        }
