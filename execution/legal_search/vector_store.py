"""
Vector Store for Legal Search

Persists one embedding per chunk and serves the scoped corpus back to the
similarity search engine. Two implementations share one interface:

- PostgresVectorStore: PostgreSQL + pgvector, multi-tenant via user_id/client_id
- InMemoryVectorStore: dict-backed store for development and tests

A document's embeddings are only ever replaced as a complete set. The
replacement (delete old set, insert new set) is a single atomic unit, so
a concurrent reader sees either the old set or the new one.
"""

import os
import json
import logging
import threading
import dataclasses
from typing import Optional
from dataclasses import dataclass
from contextlib import contextmanager

import psycopg2
import psycopg2.pool
from psycopg2.extras import RealDictCursor, execute_values

from .errors import DimensionMismatch
from .models import EmbeddedChunk, SearchScope

logger = logging.getLogger(__name__)


@dataclass
class VectorStoreConfig:
    """Configuration for the PostgreSQL vector store."""
    connection_string: Optional[str] = None
    documents_table: str = "documents"
    table_name: str = "document_embeddings"
    embedding_dimensions: int = 1536
    # Connection pooling settings
    pool_min_connections: int = 1
    pool_max_connections: int = 10
    use_pooling: bool = True


class VectorStore:
    """Interface shared by the vector store implementations."""

    def upsert_document(
        self,
        document_id: str,
        owner_id: str,
        title: str,
        content: str,
        file_name: str = "",
        client_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        raise NotImplementedError

    def get_document(self, document_id: str) -> Optional[dict]:
        raise NotImplementedError

    def list_document_ids(self, owner_id: str) -> list[str]:
        raise NotImplementedError

    def delete_document(self, document_id: str) -> bool:
        raise NotImplementedError

    def delete_all(self, document_id: str) -> int:
        raise NotImplementedError

    def insert_many(self, chunks: list[EmbeddedChunk]) -> int:
        raise NotImplementedError

    def replace_document_embeddings(self, document_id: str, chunks: list[EmbeddedChunk]) -> int:
        raise NotImplementedError

    def query_all(self, scope: SearchScope) -> list[EmbeddedChunk]:
        raise NotImplementedError


def _check_dimensions(chunks: list[EmbeddedChunk], dimensions: Optional[int]) -> None:
    if not dimensions:
        return
    for chunk in chunks:
        if len(chunk.vector) != dimensions:
            raise DimensionMismatch(dimensions, len(chunk.vector))


class InMemoryVectorStore(VectorStore):
    """
    Dict-backed vector store.

    A single lock guards both replacement and reads; a reader never observes
    a document whose old set was removed but whose new set is not yet in place.
    """

    def __init__(self, dimensions: Optional[int] = None):
        self.dimensions = dimensions
        self._documents: dict[str, dict] = {}
        self._embeddings: dict[str, dict[int, EmbeddedChunk]] = {}
        self._lock = threading.RLock()

    def upsert_document(
        self,
        document_id: str,
        owner_id: str,
        title: str,
        content: str,
        file_name: str = "",
        client_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        with self._lock:
            self._documents[document_id] = {
                "id": document_id,
                "user_id": owner_id,
                "client_id": client_id,
                "title": title,
                "file_name": file_name,
                "content": content,
                "metadata": dict(metadata or {}),
            }

    def get_document(self, document_id: str) -> Optional[dict]:
        with self._lock:
            doc = self._documents.get(document_id)
            return dict(doc) if doc else None

    def list_document_ids(self, owner_id: str) -> list[str]:
        with self._lock:
            return [d["id"] for d in self._documents.values() if d["user_id"] == owner_id]

    def delete_document(self, document_id: str) -> bool:
        with self._lock:
            self._embeddings.pop(document_id, None)
            return self._documents.pop(document_id, None) is not None

    def delete_all(self, document_id: str) -> int:
        with self._lock:
            removed = self._embeddings.pop(document_id, {})
            return len(removed)

    def insert_many(self, chunks: list[EmbeddedChunk]) -> int:
        _check_dimensions(chunks, self.dimensions)
        with self._lock:
            for chunk in chunks:
                self._embeddings.setdefault(chunk.document_id, {})[chunk.chunk_index] = chunk
        return len(chunks)

    def replace_document_embeddings(self, document_id: str, chunks: list[EmbeddedChunk]) -> int:
        _check_dimensions(chunks, self.dimensions)
        new_set = {c.chunk_index: c for c in chunks if c.document_id == document_id}
        with self._lock:
            if new_set:
                self._embeddings[document_id] = new_set
            else:
                self._embeddings.pop(document_id, None)
        logger.info(f"Replaced embeddings for {document_id}: {len(new_set)} rows")
        return len(new_set)

    def query_all(self, scope: SearchScope) -> list[EmbeddedChunk]:
        with self._lock:
            corpus = []
            for document_id, rows in self._embeddings.items():
                doc = self._documents.get(document_id)
                if doc is None or doc["user_id"] != scope.owner_id:
                    continue
                if scope.client_id and doc["client_id"] != scope.client_id:
                    continue
                for index in sorted(rows):
                    corpus.append(dataclasses.replace(
                        rows[index],
                        owner_id=doc["user_id"],
                        client_id=doc["client_id"],
                        document_title=doc["title"],
                        file_name=doc["file_name"],
                    ))
            return corpus


def _parse_vector(value) -> list[float]:
    """pgvector returns '[0.1,0.2,...]' text unless an adapter is registered."""
    if isinstance(value, str):
        return [float(v) for v in json.loads(value)]
    return [float(v) for v in value]


class PostgresVectorStore(VectorStore):
    """
    PostgreSQL vector store with pgvector.

    Features:
    - Tenant scoping via documents.user_id and documents.client_id in SQL
    - Atomic per-document embedding replacement in one transaction
    - One retry on stale pooled connections
    """

    def __init__(self, config: Optional[VectorStoreConfig] = None):
        self.config = config or VectorStoreConfig()
        self._conn = None
        self._pool = None
        self._connection_string = (
            self.config.connection_string or
            os.getenv("POSTGRES_URL") or
            os.getenv("DATABASE_URL") or
            "postgresql://localhost:5432/legal_search"
        )

    def connect(self) -> None:
        """Establish database connection (with optional pooling)."""
        try:
            if self.config.use_pooling:
                self._pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=self.config.pool_min_connections,
                    maxconn=self.config.pool_max_connections,
                    dsn=self._connection_string,
                    cursor_factory=RealDictCursor,
                )
                logger.info(
                    f"Connection pool initialized (min={self.config.pool_min_connections}, "
                    f"max={self.config.pool_max_connections})"
                )
            else:
                self._conn = psycopg2.connect(
                    self._connection_string,
                    cursor_factory=RealDictCursor,
                )
                self._conn.autocommit = False
                logger.info("Connected to PostgreSQL with pgvector (single connection)")
        except psycopg2.Error as e:
            logger.error(f"Database connection failed: {e}")
            raise

    def _get_connection(self):
        if self._pool:
            return self._pool.getconn()

        if self._conn is None or self._conn.closed:
            logger.warning("Connection closed, reconnecting...")
            self.connect()
        return self._conn

    def _release_connection(self, conn):
        if self._pool and conn:
            self._pool.putconn(conn)

    def _ensure_connection(self):
        if not self._conn and not self._pool:
            self.connect()
        return self._get_connection()

    @contextmanager
    def get_connection(self):
        """
        Context manager for getting a database connection.

        Automatically releases connection back to pool when done.
        """
        conn = self._ensure_connection()
        try:
            yield conn
        finally:
            self._release_connection(conn)

    def _safe_rollback(self, conn) -> None:
        """Rollback a connection, ignoring errors if the connection is dead."""
        try:
            conn.rollback()
        except (psycopg2.InterfaceError, psycopg2.OperationalError):
            pass

    def _execute_with_retry(self, operation, label="db_operation"):
        """Execute a DB operation with one retry on stale connection.

        Args:
            operation: Callable(conn) that performs the DB work and returns a result.
            label: Human-readable name for logging.

        Returns:
            Whatever ``operation`` returns.
        """
        for attempt in range(2):
            conn = self._ensure_connection()
            try:
                result = operation(conn)
                self._release_connection(conn)
                return result
            except (psycopg2.OperationalError, psycopg2.InterfaceError) as e:
                self._safe_rollback(conn)
                self._release_connection(conn)
                if attempt == 0:
                    logger.warning(f"{label}: stale conn, reconnecting: {e}")
                    self.connect()
                    continue
                raise
            except Exception:
                self._safe_rollback(conn)
                self._release_connection(conn)
                raise

    def close(self) -> None:
        """Close database connection(s)."""
        if self._pool:
            self._pool.closeall()
            self._pool = None
            logger.info("Connection pool closed")
        if self._conn:
            self._conn.close()
            self._conn = None

    def initialize_schema(self) -> None:
        """Create tables and indexes if they don't exist."""
        docs = self.config.documents_table
        table = self.config.table_name
        schema_sql = f"""
        CREATE EXTENSION IF NOT EXISTS vector;

        CREATE TABLE IF NOT EXISTS {docs} (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            client_id TEXT,
            title TEXT NOT NULL,
            file_name TEXT,
            content TEXT,
            metadata JSONB DEFAULT '{{}}',
            created_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE TABLE IF NOT EXISTS {table} (
            id BIGSERIAL PRIMARY KEY,
            document_id TEXT NOT NULL REFERENCES {docs}(id) ON DELETE CASCADE,
            chunk_index INT NOT NULL,
            content TEXT NOT NULL,
            embedding VECTOR({self.config.embedding_dimensions}),
            metadata JSONB DEFAULT '{{}}',
            page_number INT,
            line_start INT,
            line_end INT,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            UNIQUE (document_id, chunk_index)
        );

        CREATE INDEX IF NOT EXISTS idx_{docs}_user_client
            ON {docs}(user_id, client_id);
        CREATE INDEX IF NOT EXISTS idx_{table}_document
            ON {table}(document_id);
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(schema_sql)
            conn.commit()
            logger.info("Schema initialized successfully")

        self._execute_with_retry(_op, "initialize_schema")

    def upsert_document(
        self,
        document_id: str,
        owner_id: str,
        title: str,
        content: str,
        file_name: str = "",
        client_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        """Insert or update a document record (the text source for indexing)."""
        sql = f"""
        INSERT INTO {self.config.documents_table}
            (id, user_id, client_id, title, file_name, content, metadata)
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (id) DO UPDATE SET
            title = EXCLUDED.title,
            file_name = EXCLUDED.file_name,
            content = EXCLUDED.content,
            client_id = EXCLUDED.client_id,
            metadata = EXCLUDED.metadata
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (
                    document_id, owner_id, client_id, title, file_name, content,
                    json.dumps(metadata or {}),
                ))
            conn.commit()

        self._execute_with_retry(_op, "upsert_document")

    def get_document(self, document_id: str) -> Optional[dict]:
        sql = f"""
        SELECT id, user_id, client_id, title, file_name, content, metadata
        FROM {self.config.documents_table}
        WHERE id = %s
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (document_id,))
                row = cur.fetchone()
            return dict(row) if row else None

        return self._execute_with_retry(_op, "get_document")

    def list_document_ids(self, owner_id: str) -> list[str]:
        sql = f"SELECT id FROM {self.config.documents_table} WHERE user_id = %s ORDER BY created_at"

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (owner_id,))
                return [str(row["id"]) for row in cur.fetchall()]

        return self._execute_with_retry(_op, "list_document_ids")

    def delete_document(self, document_id: str) -> bool:
        """Delete a document; its embeddings go with it (ON DELETE CASCADE)."""
        sql = f"DELETE FROM {self.config.documents_table} WHERE id = %s"

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (document_id,))
                deleted = cur.rowcount > 0
            conn.commit()
            if deleted:
                logger.info(f"Deleted document {document_id}")
            else:
                logger.warning(f"Document {document_id} not found")
            return deleted

        return self._execute_with_retry(_op, "delete_document")

    def delete_all(self, document_id: str) -> int:
        sql = f"DELETE FROM {self.config.table_name} WHERE document_id = %s"

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (document_id,))
                removed = cur.rowcount
            conn.commit()
            return removed

        return self._execute_with_retry(_op, "delete_all")

    def _insert_sql(self) -> str:
        return f"""
        INSERT INTO {self.config.table_name}
            (document_id, chunk_index, content, embedding, metadata,
             page_number, line_start, line_end)
        VALUES %s
        ON CONFLICT (document_id, chunk_index) DO UPDATE SET
            content = EXCLUDED.content,
            embedding = EXCLUDED.embedding,
            metadata = EXCLUDED.metadata,
            page_number = EXCLUDED.page_number,
            line_start = EXCLUDED.line_start,
            line_end = EXCLUDED.line_end
        """

    @staticmethod
    def _row_values(chunks: list[EmbeddedChunk]) -> list[tuple]:
        return [
            (
                c.document_id,
                c.chunk_index,
                c.text,
                c.vector,
                json.dumps(c.metadata or {}),
                c.page,
                c.line_start,
                c.line_end,
            )
            for c in chunks
        ]

    def _execute_insert(self, cur, values: list[tuple]) -> None:
        execute_values(
            cur,
            self._insert_sql(),
            values,
            template="(%s, %s, %s, %s::vector, %s, %s, %s, %s)",
            page_size=500,
        )

    def insert_many(self, chunks: list[EmbeddedChunk]) -> int:
        if not chunks:
            return 0
        _check_dimensions(chunks, self.config.embedding_dimensions)
        values = self._row_values(chunks)

        def _op(conn):
            with conn.cursor() as cur:
                self._execute_insert(cur, values)
            conn.commit()
            logger.info(f"Batch inserted {len(values)} embeddings")
            return len(values)

        return self._execute_with_retry(_op, "insert_many")

    def replace_document_embeddings(self, document_id: str, chunks: list[EmbeddedChunk]) -> int:
        """
        Replace a document's embedding set in one transaction.

        The delete runs under a savepoint: if it fails, the failure is logged
        and the insert still proceeds, overwriting rows whose
        (document_id, chunk_index) keys match.
        """
        _check_dimensions(chunks, self.config.embedding_dimensions)
        delete_sql = f"DELETE FROM {self.config.table_name} WHERE document_id = %s"
        values = self._row_values([c for c in chunks if c.document_id == document_id])

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute("SAVEPOINT replace_embeddings")
                try:
                    cur.execute(delete_sql, (document_id,))
                    cur.execute("RELEASE SAVEPOINT replace_embeddings")
                except (psycopg2.OperationalError, psycopg2.InterfaceError):
                    raise
                except psycopg2.Error as e:
                    cur.execute("ROLLBACK TO SAVEPOINT replace_embeddings")
                    logger.warning(f"Error deleting old embeddings for {document_id}: {e}")
                if values:
                    self._execute_insert(cur, values)
            conn.commit()
            logger.info(f"Replaced embeddings for {document_id}: {len(values)} rows")
            return len(values)

        return self._execute_with_retry(_op, "replace_document_embeddings")

    def query_all(self, scope: SearchScope) -> list[EmbeddedChunk]:
        """Return every embedding visible to ``scope``. Scoping happens in SQL."""
        filters = ["d.user_id = %s"]
        params = [scope.owner_id]
        if scope.client_id:
            filters.append("d.client_id = %s")
            params.append(scope.client_id)

        sql = f"""
        SELECT
            e.document_id,
            e.chunk_index,
            e.content,
            e.embedding::text AS embedding,
            e.metadata,
            e.page_number,
            e.line_start,
            e.line_end,
            d.title,
            d.file_name,
            d.user_id,
            d.client_id
        FROM {self.config.table_name} e
        JOIN {self.config.documents_table} d ON d.id = e.document_id
        WHERE {' AND '.join(filters)}
        ORDER BY e.document_id, e.chunk_index
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()

            return [
                EmbeddedChunk(
                    document_id=str(row["document_id"]),
                    chunk_index=row["chunk_index"],
                    text=row["content"],
                    vector=_parse_vector(row["embedding"]),
                    metadata=row["metadata"] or {},
                    page=row["page_number"],
                    line_start=row["line_start"],
                    line_end=row["line_end"],
                    owner_id=row["user_id"],
                    client_id=row["client_id"],
                    document_title=row["title"] or "",
                    file_name=row["file_name"] or "",
                )
                for row in rows
            ]

        return self._execute_with_retry(_op, "query_all")


def get_vector_store(
    kind: str = "postgres",
    dimensions: int = 1536,
    connection_string: Optional[str] = None,
) -> VectorStore:
    """Factory: "postgres" (connected, schema ensured) or "memory"."""
    if kind == "memory":
        return InMemoryVectorStore(dimensions=dimensions)

    store = PostgresVectorStore(VectorStoreConfig(
        connection_string=connection_string,
        embedding_dimensions=dimensions,
    ))
    store.connect()
    store.initialize_schema()
    return store
