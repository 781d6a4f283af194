"""
Shared fixtures and test utilities for Legal Search tests.

Provides a deterministic fake embedding provider, sample legal text and an
in-memory vector store so that all tests run without API keys, databases,
or external network access.
"""

import sys
import hashlib
from pathlib import Path

import numpy as np
import pytest
from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Path setup - ensure the execution package is importable
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

load_dotenv(PROJECT_ROOT / ".env")

OWNER_ID = "user-001"
OTHER_OWNER_ID = "user-002"
CLIENT_ID = "client-johnson"

# ---------------------------------------------------------------------------
# Sample legal documents
# ---------------------------------------------------------------------------
CUSTODY_ORDER = """IN THE FAMILY COURT OF KING COUNTY
Case No. FC-2024-0193

Section 1: Parties
The petitioner is Sarah JOHNSON, age 38, residing at 412 Oak Street, Seattle.
The respondent is Michael JOHNSON, age 41, residing at 88 Pine Avenue, Bellevue.

Section 2: Minor Children
The parties have two minor children: EMMA JOHNSON, age 7, and JACOB JOHNSON, age 5.
Both children currently reside with the petitioner at the Oak Street address.

Section 3: Child Support
The respondent shall pay child support of $1,250.00 per month beginning March 1, 2024.
Payments are due on the first day of each month through the court registry.

Section 4: Parenting Schedule
The children shall reside with the respondent every other weekend from Friday evening until Sunday evening.
Holidays shall alternate between the parties on an annual basis as set out in Schedule A.
"""

LICENSE_AGREEMENT = """SOFTWARE LICENSE AGREEMENT

Section 3.1 License Fees. Licensee shall pay Licensor an annual license fee of $50,000 USD, payable in advance.
Section 3.2 Payment Terms. All payments are due within thirty (30) days of the invoice date.
Section 4.2 Termination for Convenience. Either party may terminate this Agreement upon sixty (60) days written notice.
Section 8.1 Governing Law. This Agreement shall be governed by the laws of the State of Delaware.
"""


@pytest.fixture
def custody_text():
    return CUSTODY_ORDER


@pytest.fixture
def license_text():
    return LICENSE_AGREEMENT


# ---------------------------------------------------------------------------
# Fake embedding service
# ---------------------------------------------------------------------------

class FakeEmbeddingService:
    """
    Deterministic embedding provider -- never calls external APIs.

    Vectors are seeded from a hash of the text, so unrelated texts are close
    to orthogonal. ``query_vectors`` pins the vector returned for a query,
    and ``fail_next`` queues exceptions raised by the next ``embed`` calls.
    """

    def __init__(self, dimensions=64):
        self._dimensions = dimensions
        self.calls = []
        self.query_calls = []
        self.query_vectors = {}
        self._failures = []

    def fail_next(self, *exceptions):
        self._failures.extend(exceptions)

    def embed(self, text):
        self.calls.append(text)
        if self._failures:
            raise self._failures.pop(0)
        return self.vector_for(text)

    def embed_query(self, query):
        self.query_calls.append(query)
        if query in self.query_vectors:
            return self.query_vectors[query]
        return self.vector_for(query)

    def vector_for(self, text):
        seed = int(hashlib.sha256(text.encode()).hexdigest()[:8], 16)
        vector = np.random.default_rng(seed).normal(size=self._dimensions)
        return (vector / np.linalg.norm(vector)).tolist()

    @property
    def dimensions(self):
        return self._dimensions


@pytest.fixture
def fake_embeddings():
    return FakeEmbeddingService(dimensions=64)


@pytest.fixture
def memory_store():
    from execution.legal_search.vector_store import InMemoryVectorStore
    return InMemoryVectorStore(dimensions=64)


class SleepRecorder:
    """Stands in for time.sleep and records requested delays."""

    def __init__(self):
        self.delays = []

    def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


# ---------------------------------------------------------------------------
# Search results for grounding / consolidation tests
# ---------------------------------------------------------------------------

def make_result(
    document_id="doc-001",
    content="",
    similarity=0.9,
    chunk_index=0,
    title="Custody Order",
    **kwargs,
):
    from execution.legal_search.models import SearchResult
    return SearchResult(
        document_id=document_id,
        document_title=title,
        file_name=kwargs.pop("file_name", f"{document_id}.pdf"),
        content=content,
        similarity=similarity,
        chunk_index=chunk_index,
        **kwargs,
    )


@pytest.fixture
def custody_results():
    """Chunk-level hits for the custody order."""
    return [
        make_result(
            content=(
                "Section 2: Minor Children\n"
                "The parties have two minor children: EMMA JOHNSON, age 7, and JACOB JOHNSON, age 5. "
                "Both children currently reside with the petitioner at the Oak Street address."
            ),
            similarity=0.91,
            chunk_index=1,
            page=2,
            line_start=8,
            line_end=10,
            client="Johnson",
            matter="Custody",
        ),
        make_result(
            content=(
                "Section 3: Child Support\n"
                "The respondent shall pay child support of $1,250.00 per month beginning March 1, 2024. "
                "Payments are due on the first day of each month through the court registry."
            ),
            similarity=0.82,
            chunk_index=2,
            page=3,
            line_start=12,
            line_end=14,
            client="Johnson",
            matter="Custody",
        ),
    ]
