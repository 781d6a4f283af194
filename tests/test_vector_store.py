"""
Tests for execution/legal_search/vector_store.py

Covers: VectorStoreConfig, InMemoryVectorStore (scoping, atomic replacement,
        dimension checks), and PostgresVectorStore SQL behaviour with a
        mocked connection.

All database calls are mocked -- no PostgreSQL required.
"""

import threading
from unittest.mock import MagicMock

import psycopg2
import pytest

from tests.conftest import OWNER_ID, OTHER_OWNER_ID, CLIENT_ID


def _embedded(document_id, index, vector=None, text=None):
    from execution.legal_search.models import EmbeddedChunk
    return EmbeddedChunk(
        document_id=document_id,
        chunk_index=index,
        text=text or f"Chunk {index} of {document_id} with enough words to be indexed.",
        vector=vector or [float(index + 1)] * 4,
    )


# ---------------------------------------------------------------------------
# VectorStoreConfig
# ---------------------------------------------------------------------------

class TestVectorStoreConfig:

    def test_defaults(self):
        from execution.legal_search.vector_store import VectorStoreConfig
        cfg = VectorStoreConfig()
        assert cfg.connection_string is None
        assert cfg.documents_table == "documents"
        assert cfg.table_name == "document_embeddings"
        assert cfg.embedding_dimensions == 1536
        assert cfg.use_pooling is True


# ---------------------------------------------------------------------------
# InMemoryVectorStore
# ---------------------------------------------------------------------------

@pytest.fixture
def store():
    from execution.legal_search.vector_store import InMemoryVectorStore
    store = InMemoryVectorStore(dimensions=4)
    store.upsert_document("doc-a", OWNER_ID, "Custody Order", "text", "custody.pdf", client_id=CLIENT_ID)
    store.upsert_document("doc-b", OWNER_ID, "Lease", "text", "lease.pdf", client_id="client-other")
    store.upsert_document("doc-c", OTHER_OWNER_ID, "Will", "text", "will.pdf", client_id=CLIENT_ID)
    return store


class TestInMemoryVectorStore:

    def test_query_all_scopes_by_owner(self, store):
        from execution.legal_search.models import SearchScope
        for doc in ("doc-a", "doc-b", "doc-c"):
            store.insert_many([_embedded(doc, 0)])
        corpus = store.query_all(SearchScope(owner_id=OWNER_ID))
        assert {c.document_id for c in corpus} == {"doc-a", "doc-b"}
        assert all(c.owner_id == OWNER_ID for c in corpus)

    def test_query_all_scopes_by_client(self, store):
        from execution.legal_search.models import SearchScope
        for doc in ("doc-a", "doc-b", "doc-c"):
            store.insert_many([_embedded(doc, 0)])
        corpus = store.query_all(SearchScope(owner_id=OWNER_ID, client_id=CLIENT_ID))
        assert [c.document_id for c in corpus] == ["doc-a"]
        assert corpus[0].document_title == "Custody Order"
        assert corpus[0].file_name == "custody.pdf"

    def test_replace_swaps_whole_set(self, store):
        from execution.legal_search.models import SearchScope
        store.insert_many([_embedded("doc-a", i) for i in range(5)])
        created = store.replace_document_embeddings("doc-a", [_embedded("doc-a", i) for i in range(2)])
        assert created == 2
        corpus = store.query_all(SearchScope(owner_id=OWNER_ID, client_id=CLIENT_ID))
        assert [c.chunk_index for c in corpus] == [0, 1]

    def test_replace_with_empty_set_clears(self, store):
        from execution.legal_search.models import SearchScope
        store.insert_many([_embedded("doc-a", 0)])
        assert store.replace_document_embeddings("doc-a", []) == 0
        assert store.query_all(SearchScope(owner_id=OWNER_ID, client_id=CLIENT_ID)) == []

    def test_replace_ignores_foreign_chunks(self, store):
        created = store.replace_document_embeddings("doc-a", [_embedded("doc-a", 0), _embedded("doc-b", 0)])
        assert created == 1

    def test_dimension_mismatch_rejected(self, store):
        from execution.legal_search.errors import DimensionMismatch
        with pytest.raises(DimensionMismatch):
            store.insert_many([_embedded("doc-a", 0, vector=[1.0, 2.0])])
        with pytest.raises(DimensionMismatch):
            store.replace_document_embeddings("doc-a", [_embedded("doc-a", 0, vector=[1.0])])

    def test_failed_replace_keeps_previous_set(self, store):
        from execution.legal_search.errors import DimensionMismatch
        from execution.legal_search.models import SearchScope
        store.insert_many([_embedded("doc-a", 0)])
        with pytest.raises(DimensionMismatch):
            store.replace_document_embeddings("doc-a", [_embedded("doc-a", 1, vector=[1.0])])
        corpus = store.query_all(SearchScope(owner_id=OWNER_ID, client_id=CLIENT_ID))
        assert [c.chunk_index for c in corpus] == [0]

    def test_reader_sees_old_or_new_set(self, store):
        from execution.legal_search.models import SearchScope
        old = [_embedded("doc-a", i, vector=[1.0] * 4) for i in range(3)]
        new = [_embedded("doc-a", i, vector=[2.0] * 4) for i in range(5)]
        store.replace_document_embeddings("doc-a", old)
        scope = SearchScope(owner_id=OWNER_ID, client_id=CLIENT_ID)
        observed = []

        def reader():
            for _ in range(200):
                corpus = store.query_all(scope)
                observed.append({tuple(c.vector) for c in corpus} | {len(corpus)})

        def writer():
            for i in range(100):
                store.replace_document_embeddings("doc-a", new if i % 2 else old)

        threads = [threading.Thread(target=reader), threading.Thread(target=writer)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert all(seen in ({(1.0,) * 4, 3}, {(2.0,) * 4, 5}) for seen in observed)

    def test_delete_document_removes_embeddings(self, store):
        from execution.legal_search.models import SearchScope
        store.insert_many([_embedded("doc-a", 0)])
        assert store.delete_document("doc-a") is True
        assert store.get_document("doc-a") is None
        assert store.query_all(SearchScope(owner_id=OWNER_ID, client_id=CLIENT_ID)) == []
        assert store.delete_document("doc-a") is False

    def test_list_document_ids(self, store):
        assert store.list_document_ids(OWNER_ID) == ["doc-a", "doc-b"]


# ---------------------------------------------------------------------------
# PostgresVectorStore (mocked connection)
# ---------------------------------------------------------------------------

@pytest.fixture
def pg_store():
    from execution.legal_search.vector_store import PostgresVectorStore, VectorStoreConfig
    store = PostgresVectorStore(VectorStoreConfig(
        connection_string="postgresql://test/test",
        embedding_dimensions=4,
        use_pooling=False,
    ))
    conn = MagicMock()
    conn.closed = False
    cursor = conn.cursor.return_value.__enter__.return_value
    store._conn = conn
    return store, conn, cursor


class TestPostgresVectorStore:

    def test_connection_string_from_env(self, monkeypatch):
        from execution.legal_search.vector_store import PostgresVectorStore
        monkeypatch.delenv("POSTGRES_URL", raising=False)
        monkeypatch.setenv("DATABASE_URL", "postgresql://env/db")
        assert PostgresVectorStore()._connection_string == "postgresql://env/db"

    def test_query_all_filters_in_sql(self, pg_store):
        from execution.legal_search.models import SearchScope
        store, conn, cursor = pg_store
        cursor.fetchall.return_value = [{
            "document_id": "doc-a", "chunk_index": 0, "content": "text",
            "embedding": "[0.1,0.2,0.3,0.4]", "metadata": {"client": "Johnson"},
            "page_number": 1, "line_start": 1, "line_end": 4,
            "title": "Custody Order", "file_name": "custody.pdf",
            "user_id": OWNER_ID, "client_id": CLIENT_ID,
        }]
        corpus = store.query_all(SearchScope(owner_id=OWNER_ID, client_id=CLIENT_ID))

        sql, params = cursor.execute.call_args.args
        assert "d.user_id = %s" in sql
        assert "d.client_id = %s" in sql
        assert params == [OWNER_ID, CLIENT_ID]
        assert corpus[0].vector == [0.1, 0.2, 0.3, 0.4]
        assert corpus[0].document_title == "Custody Order"

    def test_query_all_without_client_filter(self, pg_store):
        from execution.legal_search.models import SearchScope
        store, conn, cursor = pg_store
        cursor.fetchall.return_value = []
        store.query_all(SearchScope(owner_id=OWNER_ID))
        sql, params = cursor.execute.call_args.args
        assert "d.client_id" not in sql.split("WHERE")[1]
        assert params == [OWNER_ID]

    def test_replace_runs_in_one_transaction(self, pg_store, monkeypatch):
        from execution.legal_search import vector_store
        store, conn, cursor = pg_store
        inserted = MagicMock()
        monkeypatch.setattr(vector_store, "execute_values", inserted)

        created = store.replace_document_embeddings("doc-a", [_embedded("doc-a", i) for i in range(3)])

        statements = [c.args[0] for c in cursor.execute.call_args_list]
        assert statements[0] == "SAVEPOINT replace_embeddings"
        assert statements[1].startswith("DELETE FROM document_embeddings")
        assert len(inserted.call_args.args[2]) == 3
        conn.commit.assert_called_once()
        assert created == 3

    def test_failed_delete_is_logged_and_insert_proceeds(self, pg_store, monkeypatch, caplog):
        from execution.legal_search import vector_store
        store, conn, cursor = pg_store
        inserted = MagicMock()
        monkeypatch.setattr(vector_store, "execute_values", inserted)

        def execute(sql, params=None):
            if sql.startswith("DELETE"):
                raise psycopg2.ProgrammingError("permission denied")

        cursor.execute.side_effect = execute
        created = store.replace_document_embeddings("doc-a", [_embedded("doc-a", 0)])

        assert created == 1
        assert inserted.called
        conn.commit.assert_called_once()
        assert "Error deleting old embeddings" in caplog.text

    def test_insert_failure_rolls_back(self, pg_store, monkeypatch):
        from execution.legal_search import vector_store
        store, conn, cursor = pg_store
        monkeypatch.setattr(vector_store, "execute_values", MagicMock(side_effect=psycopg2.DataError("bad")))
        with pytest.raises(psycopg2.DataError):
            store.replace_document_embeddings("doc-a", [_embedded("doc-a", 0)])
        conn.rollback.assert_called()
        conn.commit.assert_not_called()

    def test_dimension_mismatch_before_sql(self, pg_store):
        from execution.legal_search.errors import DimensionMismatch
        store, conn, cursor = pg_store
        with pytest.raises(DimensionMismatch):
            store.replace_document_embeddings("doc-a", [_embedded("doc-a", 0, vector=[1.0])])
        cursor.execute.assert_not_called()

    def test_parse_vector(self):
        from execution.legal_search.vector_store import _parse_vector
        assert _parse_vector("[1,2.5,-3]") == [1.0, 2.5, -3.0]
        assert _parse_vector([1, 2]) == [1.0, 2.0]
