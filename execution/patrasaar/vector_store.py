"""
Vector Index with PostgreSQL + pgvector

Stores one embedding per chunk, keyed by chunk id, with a JSONB payload of
chunk metadata. Search is cosine similarity with optional equality filters
on payload fields (documentId, userId, documentType, ...).

Implementations:
    PgVectorIndex        -- PostgreSQL + pgvector (production)
    InMemoryVectorIndex  -- bounded brute-force numpy index (local runs, tests)
    FallbackVectorIndex  -- primary index with a bounded in-memory cache that
                            serves reads while the primary is unreachable
"""

import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from .db import PostgresDatabase
from .errors import EmbeddingDimensionMismatchError, NotConfiguredError

try:
    from psycopg2 import errors as pg_errors
except ImportError:
    pg_errors = None

logger = logging.getLogger(__name__)


@dataclass
class VectorStoreConfig:
    """Configuration for vector index."""
    connection_string: Optional[str] = None
    table_name: str = "document_vectors"
    embedding_dimensions: int = 384
    # Connection pooling settings
    pool_min_connections: int = 1
    pool_max_connections: int = 10
    use_pooling: bool = True
    # In-memory index bound (oldest points are evicted past this)
    memory_max_points: int = 5000


@dataclass
class SearchResult:
    """A single search result with score."""
    id: str
    content: str
    score: float  # cosine similarity in [-1, 1]
    payload: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content": self.content,
            "score": self.score,
            "payload": self.payload,
        }


def _check_dimensions(expected: int, vector) -> None:
    if len(vector) != expected:
        raise EmbeddingDimensionMismatchError(expected, len(vector))


def _matches(payload: dict, filters: Optional[dict]) -> bool:
    if not filters:
        return True
    return all(payload.get(key) == value for key, value in filters.items())


class PgVectorIndex:
    """
    pgvector-backed index.

    The table is created on first use. Creation is idempotent and guarded
    by a lock; a concurrent creator in another process is tolerated.
    """

    def __init__(
        self,
        config: Optional[VectorStoreConfig] = None,
        database: Optional[PostgresDatabase] = None,
    ):
        self.config = config or VectorStoreConfig()
        self._db = database or PostgresDatabase(
            self.config.connection_string,
            pool_min_connections=self.config.pool_min_connections,
            pool_max_connections=self.config.pool_max_connections,
            use_pooling=self.config.use_pooling,
        )
        self._ready = False
        self._init_lock = threading.Lock()

    @property
    def dimensions(self) -> int:
        return self.config.embedding_dimensions

    @property
    def configured(self) -> bool:
        return self._db.configured

    def _ensure_collection(self) -> None:
        """Create extension, table and payload index if they don't exist."""
        if self._ready:
            return
        with self._init_lock:
            if self._ready:
                return
            if not self._db.configured:
                raise NotConfiguredError("No database URL configured for the vector index")

            table = self.config.table_name
            schema_sql = f"""
            CREATE EXTENSION IF NOT EXISTS vector;

            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                embedding VECTOR({self.config.embedding_dimensions}) NOT NULL,
                payload JSONB NOT NULL DEFAULT '{{}}',
                created_at TIMESTAMPTZ DEFAULT NOW()
            );

            CREATE INDEX IF NOT EXISTS idx_{table}_payload
                ON {table} USING GIN (payload jsonb_path_ops);
            """

            def _op(conn):
                with conn.cursor() as cur:
                    try:
                        cur.execute(schema_sql)
                        conn.commit()
                    except (
                        pg_errors.UniqueViolation,
                        pg_errors.DuplicateTable,
                        pg_errors.DuplicateObject,
                    ) as e:
                        # Another process created it between our check and create
                        conn.rollback()
                        logger.info(f"Vector table {table} created concurrently: {e}")

                    cur.execute(
                        """
                        SELECT atttypmod AS dims FROM pg_attribute
                        WHERE attrelid = %s::regclass AND attname = 'embedding'
                        """,
                        (table,),
                    )
                    row = cur.fetchone()
                    conn.commit()
                return row["dims"] if row else None

            existing = self._db.execute_with_retry(_op, "ensure_collection")
            if existing and existing > 0 and existing != self.config.embedding_dimensions:
                raise EmbeddingDimensionMismatchError(existing, self.config.embedding_dimensions)

            self._ready = True
            logger.info(f"Vector table {table} ready ({self.config.embedding_dimensions} dims)")

    def upsert(self, id: str, vector: list[float], payload: dict) -> None:
        self.upsert_many([(id, vector, payload)])

    def upsert_many(self, items: list[tuple[str, list[float], dict]]) -> None:
        """Batch insert or replace points using execute_values."""
        if not items:
            return
        for _, vector, _ in items:
            _check_dimensions(self.config.embedding_dimensions, vector)
        self._ensure_collection()

        from psycopg2.extras import execute_values

        sql = f"""
        INSERT INTO {self.config.table_name} (id, embedding, payload)
        VALUES %s
        ON CONFLICT (id) DO UPDATE SET
            embedding = EXCLUDED.embedding,
            payload = EXCLUDED.payload
        """
        values = [(point_id, list(vector), json.dumps(payload)) for point_id, vector, payload in items]

        def _op(conn):
            with conn.cursor() as cur:
                execute_values(
                    cur, sql, values,
                    template="(%s, %s::vector, %s::jsonb)",
                    page_size=1000,
                )
                conn.commit()
            logger.info(f"Upserted {len(values)} vectors")

        self._db.execute_with_retry(_op, "upsert_vectors")

    def search(
        self,
        query_vector: list[float],
        limit: int = 5,
        filter: Optional[dict] = None,
    ) -> list[SearchResult]:
        """Return up to ``limit`` points by descending cosine similarity."""
        _check_dimensions(self.config.embedding_dimensions, query_vector)
        self._ensure_collection()

        where_clause = "WHERE payload @> %s::jsonb" if filter else ""
        filter_params = [json.dumps(filter)] if filter else []
        vector = list(query_vector)

        sql = f"""
        SELECT
            id,
            payload,
            1 - (embedding <=> %s::vector) AS score
        FROM {self.config.table_name}
        {where_clause}
        ORDER BY embedding <=> %s::vector
        LIMIT %s
        """
        params = [vector] + filter_params + [vector, limit]

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
                conn.commit()

            results = []
            for row in rows:
                payload = row["payload"] or {}
                score = float(row["score"]) if row["score"] is not None else 0.0
                results.append(SearchResult(
                    id=str(row["id"]),
                    content=payload.get("content", ""),
                    score=score,
                    payload=payload,
                ))
            return results

        return self._db.execute_with_retry(_op, "search")

    def delete_by_filter(self, filter: dict, keep_ids: Optional[list[str]] = None) -> int:
        """
        Delete every point whose payload matches ``filter``; returns the count.

        Points whose id is in ``keep_ids`` survive, so a caller can write a
        new point set first and then drop only what it replaced.
        """
        if not filter:
            raise ValueError("delete_by_filter requires a non-empty filter")
        self._ensure_collection()

        sql = f"DELETE FROM {self.config.table_name} WHERE payload @> %s::jsonb"
        params = [json.dumps(filter)]
        if keep_ids:
            sql += " AND NOT (id = ANY(%s))"
            params.append(list(keep_ids))

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, tuple(params))
                deleted = cur.rowcount
                conn.commit()
            logger.info(f"Deleted {deleted} vectors matching {filter}")
            return deleted

        return self._db.execute_with_retry(_op, "delete_vectors")

    def count(self, filter: Optional[dict] = None) -> int:
        self._ensure_collection()
        where_clause = "WHERE payload @> %s::jsonb" if filter else ""
        params = (json.dumps(filter),) if filter else ()
        sql = f"SELECT COUNT(*) AS n FROM {self.config.table_name} {where_clause}"

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, params)
                row = cur.fetchone()
                conn.commit()
            return int(row["n"])

        return self._db.execute_with_retry(_op, "count_vectors")

    def close(self) -> None:
        self._db.close()


class InMemoryVectorIndex:
    """
    Brute-force cosine index held in process memory.

    Bounded: once ``max_points`` is reached the oldest points are evicted.
    """

    def __init__(self, dimensions: int = 384, max_points: int = 5000):
        self._dimensions = dimensions
        self._max_points = max_points
        self._points: OrderedDict[str, tuple[np.ndarray, dict]] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def upsert(self, id: str, vector: list[float], payload: dict) -> None:
        self.upsert_many([(id, vector, payload)])

    def upsert_many(self, items: list[tuple[str, list[float], dict]]) -> None:
        for _, vector, _ in items:
            _check_dimensions(self._dimensions, vector)

        with self._lock:
            for point_id, vector, payload in items:
                self._points.pop(point_id, None)
                self._points[point_id] = (np.asarray(vector, dtype=np.float64), dict(payload))
            evicted = 0
            while len(self._points) > self._max_points:
                self._points.popitem(last=False)
                evicted += 1
        if evicted:
            logger.warning(f"In-memory index full, evicted {evicted} oldest points")

    def search(
        self,
        query_vector: list[float],
        limit: int = 5,
        filter: Optional[dict] = None,
    ) -> list[SearchResult]:
        _check_dimensions(self._dimensions, query_vector)
        if limit <= 0:
            return []

        with self._lock:
            candidates = [
                (point_id, vector, payload)
                for point_id, (vector, payload) in self._points.items()
                if _matches(payload, filter)
            ]
        if not candidates:
            return []

        query = np.asarray(query_vector, dtype=np.float64)
        matrix = np.vstack([vector for _, vector, _ in candidates])
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
        scores = np.clip(scores, -1.0, 1.0)

        order = np.argsort(-scores, kind="stable")[:limit]
        return [
            SearchResult(
                id=candidates[i][0],
                content=candidates[i][2].get("content", ""),
                score=float(scores[i]),
                payload=candidates[i][2],
            )
            for i in order
        ]

    def delete_by_filter(self, filter: dict, keep_ids: Optional[list[str]] = None) -> int:
        if not filter:
            raise ValueError("delete_by_filter requires a non-empty filter")
        keep = set(keep_ids or ())
        with self._lock:
            doomed = [
                pid for pid, (_, payload) in self._points.items()
                if pid not in keep and _matches(payload, filter)
            ]
            for point_id in doomed:
                del self._points[point_id]
        return len(doomed)

    def count(self, filter: Optional[dict] = None) -> int:
        with self._lock:
            return sum(1 for _, payload in self._points.values() if _matches(payload, filter))

    def close(self) -> None:
        pass


class FallbackVectorIndex:
    """
    Routes to ``primary`` and keeps ``fallback`` as a bounded cache of the
    most recent points: every write that reaches the primary is mirrored
    into the fallback.

    When the primary raises NotConfiguredError the index degrades. Reads
    are served from the cache and writes are applied to the cache and
    queued. The primary is retried at most once per ``retry_interval``
    seconds; on success the queued writes are replayed and the index
    leaves degraded mode. Transient query failures are not masked.

    A degraded search with no cached match raises NotConfiguredError rather
    than answering from an empty cache, unless the primary has no database
    configured at all.
    """

    def __init__(self, primary, fallback, metrics=None, retry_interval: float = 30.0):
        if primary.dimensions != fallback.dimensions:
            raise EmbeddingDimensionMismatchError(primary.dimensions, fallback.dimensions)
        self.primary = primary
        self.fallback = fallback
        self._metrics = metrics
        self._retry_interval = retry_interval
        self._primary_configured = bool(getattr(primary, "configured", True))
        self._pending: list[tuple[str, tuple]] = []
        self._lock = threading.Lock()
        self._failed_at = 0.0
        self.degraded = False

    @property
    def dimensions(self) -> int:
        return self.primary.dimensions

    @property
    def pending_writes(self) -> int:
        with self._lock:
            return len(self._pending)

    def _degrade(self, error: NotConfiguredError) -> None:
        if not self.degraded:
            logger.warning(f"Vector index unavailable, using in-memory fallback: {error}")
            if self._metrics is not None:
                self._metrics.record_fallback("vector_index")
        self.degraded = True
        self._failed_at = time.monotonic()

    def _primary_available(self) -> bool:
        if not self.degraded:
            return True
        if not self._primary_configured:
            return False
        if time.monotonic() - self._failed_at < self._retry_interval:
            return False
        return self._replay()

    def _replay(self) -> bool:
        """Apply queued writes to the primary; True once it is caught up."""
        with self._lock:
            pending = list(self._pending)
        try:
            for method, args in pending:
                getattr(self.primary, method)(*args)
        except NotConfiguredError as e:
            logger.debug(f"Vector index still unavailable: {e}")
            self._failed_at = time.monotonic()
            return False
        with self._lock:
            del self._pending[:len(pending)]
        self.degraded = False
        logger.info(f"Vector index recovered, replayed {len(pending)} queued writes")
        return True

    def _write(self, method: str, *args):
        if self._primary_available():
            try:
                result = getattr(self.primary, method)(*args)
            except NotConfiguredError as e:
                self._degrade(e)
            else:
                getattr(self.fallback, method)(*args)
                return result
        if self._primary_configured:
            with self._lock:
                self._pending.append((method, args))
        return getattr(self.fallback, method)(*args)

    def _read(self, method: str, *args):
        if self._primary_available():
            try:
                return getattr(self.primary, method)(*args)
            except NotConfiguredError as e:
                self._degrade(e)
        return getattr(self.fallback, method)(*args)

    def upsert(self, id: str, vector: list[float], payload: dict) -> None:
        self._write("upsert", id, vector, payload)

    def upsert_many(self, items: list[tuple[str, list[float], dict]]) -> None:
        self._write("upsert_many", items)

    def search(self, query_vector: list[float], limit: int = 5, filter: Optional[dict] = None) -> list[SearchResult]:
        results = self._read("search", query_vector, limit, filter)
        if self.degraded and self._primary_configured and not results and limit > 0:
            raise NotConfiguredError("Vector index unavailable and no cached vectors match the filter")
        return results

    def delete_by_filter(self, filter: dict, keep_ids=None) -> int:
        return self._write("delete_by_filter", filter, keep_ids)

    def count(self, filter: Optional[dict] = None) -> int:
        return self._read("count", filter)

    def close(self) -> None:
        self.primary.close()


def get_vector_index(
    backend: str,
    dimensions: int,
    connection_string: Optional[str] = None,
    table_name: str = "document_vectors",
    memory_fallback: bool = False,
    memory_max_points: int = 5000,
    metrics=None,
):
    """
    Factory function for the configured vector index.

    Args:
        backend: "pgvector" or "memory"
        dimensions: Embedding dimensions of the active provider
        connection_string: PostgreSQL URL (pgvector backend)
        table_name: Vector table name (pgvector backend)
        memory_fallback: Wrap pgvector so it degrades to in-memory search
        memory_max_points: Bound for the in-memory index
        metrics: Optional MetricsCollector notified on fallback
    """
    memory = InMemoryVectorIndex(dimensions=dimensions, max_points=memory_max_points)
    if backend != "pgvector":
        return memory

    primary = PgVectorIndex(VectorStoreConfig(
        connection_string=connection_string,
        table_name=table_name,
        embedding_dimensions=dimensions,
        memory_max_points=memory_max_points,
    ))
    if memory_fallback:
        return FallbackVectorIndex(primary, memory, metrics=metrics)
    return primary
