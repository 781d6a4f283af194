"""
FastAPI Backend for Legal Search

REST endpoints for storing document text, (re)indexing it and answering
queries with grounded citations. Authentication happens upstream; the
caller's identity arrives in the x-owner-id header and scopes every
search and document operation.

Run with: uvicorn execution.legal_search.api:app --host 0.0.0.0 --port 8000
"""

import os
import time
import uuid
import logging

from fastapi import FastAPI, HTTPException, Depends, Header
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from . import __version__
from .config import cors_origins_from_env
from .api_models import (
    SearchRequest, SearchResponseModel,
    DocumentCreate, IndexingResponse,
    HealthResponse,
)
from .errors import LegalSearchError, MalformedQuery, ProviderError

# Load environment variables
load_dotenv()
logger = logging.getLogger(__name__)

PROVIDER_FAILURE_DETAIL = "The search provider is temporarily unavailable. Please try again."

app = FastAPI(
    title="Legal Search API",
    description="Semantic search over client legal documents with grounded citations",
    version=__version__,
)

# CORS_ORIGINS is parsed the same way Settings reads it
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins_from_env(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Service Container - builds the pipeline once per process
# =============================================================================

class ServiceContainer:
    """Lazily builds and caches the search pipeline."""

    def __init__(self):
        self._pipeline = None

    def get_pipeline(self):
        if self._pipeline is None:
            from .pipeline import LegalSearchPipeline
            self._pipeline = LegalSearchPipeline.from_settings()
        return self._pipeline

    def set_pipeline(self, pipeline) -> None:
        """Install a prebuilt pipeline (tests, embedding in another app)."""
        self._pipeline = pipeline


_container = ServiceContainer()


# =============================================================================
# Caller identity
# =============================================================================

async def get_owner_id(x_owner_id: str = Header(...)) -> str:
    """The authenticated user, forwarded by the upstream auth layer."""
    owner_id = x_owner_id.strip()
    if not owner_id:
        raise HTTPException(status_code=401, detail="Missing caller identity")
    return owner_id


def _get_owned_document(pipeline, document_id: str, owner_id: str) -> dict:
    document = pipeline.store.get_document(document_id)
    if document is None or document.get("user_id") != owner_id:
        raise HTTPException(status_code=404, detail="Document not found")
    return document


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/api/v1/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    db_status = "unknown"
    try:
        _container.get_pipeline()
        db_status = "connected"
    except Exception as e:
        logger.warning(f"Health check: store unavailable: {e}")
        db_status = "disconnected"

    return HealthResponse(
        status="ok",
        version=__version__,
        database=db_status,
    )


@app.post("/api/v1/search", response_model=SearchResponseModel)
def search_documents(
    request: SearchRequest,
    owner_id: str = Depends(get_owner_id),
):
    """Semantic search with an AI answer and grounded excerpts."""
    start_time = time.time()
    pipeline = _container.get_pipeline()

    try:
        response = pipeline.search(
            query=request.query,
            owner_id=owner_id,
            client_id=request.client_id,
            client_context=request.client_context,
        )
    except MalformedQuery as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderError as e:
        logger.error(f"Search failed at provider {e.provider or 'unknown'}: {e}")
        raise HTTPException(status_code=502, detail=PROVIDER_FAILURE_DETAIL)
    except LegalSearchError as e:
        logger.error(f"Search failed: {type(e).__name__}: {e}")
        raise HTTPException(status_code=500, detail="Search failed")

    return SearchResponseModel(
        **response.to_dict(),
        latency_ms=(time.time() - start_time) * 1000,
    )


@app.post("/api/v1/documents", response_model=IndexingResponse)
def create_document(
    request: DocumentCreate,
    owner_id: str = Depends(get_owner_id),
):
    """Store a document's text and index it."""
    pipeline = _container.get_pipeline()
    document_id = request.document_id or str(uuid.uuid4())

    existing = pipeline.store.get_document(document_id)
    if existing is not None and existing.get("user_id") != owner_id:
        raise HTTPException(status_code=404, detail="Document not found")

    summary = pipeline.add_document(
        document_id=document_id,
        owner_id=owner_id,
        title=request.title,
        content=request.content,
        file_name=request.file_name,
        client_id=request.client_id,
        metadata=request.metadata,
    )
    return IndexingResponse(**summary.to_dict())


@app.post("/api/v1/documents/{document_id}/reindex", response_model=IndexingResponse)
def reindex_document(
    document_id: str,
    owner_id: str = Depends(get_owner_id),
):
    """Re-chunk and re-embed a stored document."""
    pipeline = _container.get_pipeline()
    _get_owned_document(pipeline, document_id, owner_id)
    summary = pipeline.reindex(document_id)
    return IndexingResponse(**summary.to_dict())


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
