"""
Tests for execution/legal_search/search.py

Covers: cosine_similarity, scope filtering, threshold/top-k ranking,
        empty-corpus messages, and the quality filter.
"""

import math

import pytest

from tests.conftest import OWNER_ID, OTHER_OWNER_ID, CLIENT_ID, make_result


def _chunk(document_id, index, vector, owner_id=OWNER_ID, client_id=CLIENT_ID, metadata=None):
    from execution.legal_search.models import EmbeddedChunk
    return EmbeddedChunk(
        document_id=document_id,
        chunk_index=index,
        text=f"Clause {index} of {document_id}",
        vector=vector,
        metadata=metadata or {},
        owner_id=owner_id,
        client_id=client_id,
        document_title=document_id.upper(),
        file_name=f"{document_id}.pdf",
    )


def _unit(angle):
    """2-d unit vector at ``angle`` radians from the x axis."""
    return [math.cos(angle), math.sin(angle)]


# ---------------------------------------------------------------------------
# cosine_similarity
# ---------------------------------------------------------------------------

class TestCosineSimilarity:

    def test_identical_vectors(self):
        from execution.legal_search.search import cosine_similarity
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_and_opposite(self):
        from execution.legal_search.search import cosine_similarity
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_zero_vector(self):
        from execution.legal_search.search import cosine_similarity
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_length_mismatch_is_an_error(self):
        from execution.legal_search.search import cosine_similarity
        from execution.legal_search.errors import DimensionMismatch
        with pytest.raises(DimensionMismatch):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


# ---------------------------------------------------------------------------
# SimilaritySearchEngine
# ---------------------------------------------------------------------------

class TestSimilaritySearchEngine:

    def test_strictly_above_threshold_sorted_descending(self):
        from execution.legal_search.search import SimilaritySearchEngine
        from execution.legal_search.models import SearchScope
        corpus = [
            _chunk("doc-a", 0, _unit(math.acos(0.75))),
            _chunk("doc-a", 1, _unit(0.0)),
            _chunk("doc-b", 0, _unit(math.acos(0.65))),
            _chunk("doc-b", 1, _unit(math.acos(0.5))),
        ]
        outcome = SimilaritySearchEngine().search(_unit(0.0), corpus, SearchScope(OWNER_ID))
        sims = [r.similarity for r in outcome.results]
        assert sims == sorted(sims, reverse=True)
        assert all(s > 0.7 for s in sims)
        assert [(r.document_id, r.chunk_index) for r in outcome.results] == [("doc-a", 1), ("doc-a", 0)]
        assert outcome.message is None

    def test_score_equal_to_threshold_is_excluded(self):
        from execution.legal_search.search import SimilaritySearchEngine, SearchConfig
        from execution.legal_search.models import SearchScope
        corpus = [_chunk("doc-a", 0, [1.0, 0.0])]
        engine = SimilaritySearchEngine(SearchConfig(threshold=1.0))
        assert engine.search([1.0, 0.0], corpus, SearchScope(OWNER_ID)).results == []

    def test_top_k(self):
        from execution.legal_search.search import SimilaritySearchEngine, SearchConfig
        from execution.legal_search.models import SearchScope
        corpus = [_chunk("doc-a", i, _unit(i * 0.01)) for i in range(20)]
        outcome = SimilaritySearchEngine(SearchConfig(top_k=5)).search(_unit(0.0), corpus, SearchScope(OWNER_ID))
        assert [r.chunk_index for r in outcome.results] == [0, 1, 2, 3, 4]

    def test_scope_is_enforced(self):
        from execution.legal_search.search import SimilaritySearchEngine
        from execution.legal_search.models import SearchScope
        corpus = [
            _chunk("mine", 0, _unit(0.0)),
            _chunk("other-client", 0, _unit(0.0), client_id="client-other"),
            _chunk("theirs", 0, _unit(0.0), owner_id=OTHER_OWNER_ID),
        ]
        engine = SimilaritySearchEngine()
        by_owner = engine.search(_unit(0.0), corpus, SearchScope(OWNER_ID))
        assert {r.document_id for r in by_owner.results} == {"mine", "other-client"}
        by_client = engine.search(_unit(0.0), corpus, SearchScope(OWNER_ID, CLIENT_ID))
        assert [r.document_id for r in by_client.results] == ["mine"]

    def test_empty_corpus_message(self):
        from execution.legal_search.search import (
            SimilaritySearchEngine, NO_DOCUMENTS_MESSAGE, NO_CLIENT_DOCUMENTS_MESSAGE,
        )
        from execution.legal_search.models import SearchScope
        engine = SimilaritySearchEngine()
        outcome = engine.search(_unit(0.0), [], SearchScope(OWNER_ID))
        assert outcome.results == []
        assert outcome.message == NO_DOCUMENTS_MESSAGE
        outcome = engine.search(_unit(0.0), [], SearchScope(OWNER_ID, CLIENT_ID))
        assert outcome.message == NO_CLIENT_DOCUMENTS_MESSAGE

    def test_dimension_mismatch_propagates(self):
        from execution.legal_search.search import SimilaritySearchEngine
        from execution.legal_search.errors import DimensionMismatch
        from execution.legal_search.models import SearchScope
        corpus = [_chunk("doc-a", 0, [1.0, 0.0, 0.0])]
        with pytest.raises(DimensionMismatch):
            SimilaritySearchEngine().search(_unit(0.0), corpus, SearchScope(OWNER_ID))

    def test_result_fields(self):
        from execution.legal_search.search import SimilaritySearchEngine
        from execution.legal_search.models import SearchScope
        corpus = [_chunk("doc-a", 3, _unit(0.0), metadata={"client": "Johnson", "matter": "Custody"})]
        result = SimilaritySearchEngine().search(_unit(0.0), corpus, SearchScope(OWNER_ID)).results[0]
        assert result.document_title == "DOC-A"
        assert result.file_name == "doc-a.pdf"
        assert result.client == "Johnson"
        assert result.matter == "Custody"
        assert result.chunk_index == 3


# ---------------------------------------------------------------------------
# Quality filter
# ---------------------------------------------------------------------------

class TestQualityFilter:

    def test_drops_short_and_common_word_content(self):
        from execution.legal_search.search import filter_quality_results
        good = make_result(content="The respondent shall pay child support of $1,250.00 per month to the petitioner.")
        short = make_result(content="Payment due monthly.")
        common = make_result(content="the and for with what were the and for with what were the and for with")
        assert filter_quality_results([good, short, common]) == [good]

    def test_meaningful_terms(self):
        from execution.legal_search.search import meaningful_terms
        assert meaningful_terms("The contract, signed by Sarah.") == ["signed", "sarah"]
