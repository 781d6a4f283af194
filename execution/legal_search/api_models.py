"""
Pydantic models for the Legal Search FastAPI backend.
"""

from typing import Optional
from pydantic import BaseModel, Field


class SearchRequest(BaseModel):
    """Request body for the search endpoint."""
    query: str = Field(..., min_length=1, max_length=2000)
    client_id: Optional[str] = None
    client_context: str = ""


class SearchResultInfo(BaseModel):
    """A chunk-level hit."""
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
    relevant_span: Optional[str] = None
    legal_metadata: dict = {}


class ExcerptInfo(BaseModel):
    """A highlighted citation passage."""
    text: str
    page: Optional[int] = None
    lines: Optional[str] = None
    section: Optional[str] = None
    query_relevance: Optional[float] = None


class ConsolidatedDocumentInfo(BaseModel):
    """One entry per source document."""
    document_id: str
    title: str
    file_name: str
    client: str
    matter: str
    relevance: str
    excerpts: list[ExcerptInfo]
    total_pages: Optional[int] = None


class SearchResponseModel(BaseModel):
    """Response body for the search endpoint."""
    results: list[SearchResultInfo]
    consolidated_documents: list[ConsolidatedDocumentInfo]
    answer_text: Optional[str] = None
    message: Optional[str] = None
    latency_ms: float


class DocumentCreate(BaseModel):
    """Request body for storing and indexing a document's text."""
    document_id: Optional[str] = None
    title: str = Field(..., min_length=1, max_length=500)
    content: str
    file_name: str = ""
    client_id: Optional[str] = None
    metadata: dict = {}


class IndexingResponse(BaseModel):
    """Completion report of an indexing run."""
    document_id: str
    embeddings_created: int
    total_chunks: int
    cancelled: bool = False
    found: bool = True


class HealthResponse(BaseModel):
    """Response body for health check."""
    status: str
    version: str
    database: str
