"""
Metadata Store for documents, chunks, queries and usage events

A repository protocol with two implementations:
    InMemoryMetadataStore  -- dict-backed, for local runs and tests
    PostgresMetadataStore  -- psycopg2, same connection handling as the vector index

Document status only moves forward: pending -> processing -> completed|failed.
A write with a lower rank than the stored status is ignored; a terminal
status may be overwritten by another terminal status (last write wins).
"""

import json
import uuid
import logging
import threading
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional, Protocol

from .db import PostgresDatabase

logger = logging.getLogger(__name__)


DOCUMENT_STATUSES = ("pending", "processing", "completed", "failed")
STATUS_RANK = {"pending": 0, "processing": 1, "completed": 2, "failed": 2}
FEEDBACK_VALUES = ("helpful", "not_helpful")
USAGE_ACTIONS = ("document_upload", "query")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class DocumentRecord:
    """An uploaded document and its processing state."""
    id: str
    owner_id: str
    original_filename: str
    file_type: str
    file_size: int = 0
    title: Optional[str] = None
    storage_path: Optional[str] = None
    document_type: Optional[str] = None  # contract, notice, judgment, ...
    status: str = "pending"
    raw_text: Optional[str] = None
    summary: Optional[str] = None
    error: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def to_dict(self, include_text: bool = False) -> dict:
        data = {
            "id": self.id,
            "owner_id": self.owner_id,
            "title": self.title,
            "original_filename": self.original_filename,
            "file_type": self.file_type,
            "file_size": self.file_size,
            "storage_path": self.storage_path,
            "document_type": self.document_type,
            "status": self.status,
            "summary": self.summary,
            "error": self.error,
            "processed_at": _iso(self.processed_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_text:
            data["raw_text"] = self.raw_text
        return data


@dataclass
class ChunkRecord:
    """Persisted view of a chunk; ``id`` doubles as the vector-index key."""
    id: str
    document_id: str
    chunk_index: int
    content: str
    section: Optional[str] = None
    clause_number: Optional[str] = None
    start_char: int = 0
    end_char: int = 0
    token_count: int = 0
    created_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["created_at"] = _iso(self.created_at)
        return data


@dataclass
class QueryRecord:
    """A question, its answer and the citations behind it."""
    id: str
    owner_id: str
    question: str
    answer: str
    citations: list[dict] = field(default_factory=list)
    confidence: float = 0.0
    tokens_used: int = 0
    processing_time_ms: int = 0
    document_id: Optional[str] = None
    feedback: Optional[str] = None
    created_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["created_at"] = _iso(self.created_at)
        return data


@dataclass
class UsageEvent:
    """Append-only usage log entry."""
    owner_id: str
    action_type: str
    metadata: dict = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_now)


class MetadataStore(Protocol):
    """Repository interface the pipeline and API depend on."""

    def create_document(self, record: DocumentRecord) -> DocumentRecord: ...

    def get_document(self, document_id: str, owner_id: Optional[str] = None) -> Optional[DocumentRecord]: ...

    def list_documents(
        self,
        owner_id: str,
        status: Optional[str] = None,
        created_after: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[DocumentRecord], int]: ...

    def update_status(self, document_id: str, status: str, error: Optional[str] = None) -> bool: ...

    def mark_completed(
        self,
        document_id: str,
        raw_text: str,
        summary: Optional[str],
        processed_at: Optional[datetime] = None,
    ) -> bool: ...

    def delete_document(self, document_id: str, owner_id: Optional[str] = None) -> bool: ...

    def replace_chunks(self, document_id: str, chunks: list[ChunkRecord]) -> None: ...

    def list_chunks(self, document_id: str) -> list[ChunkRecord]: ...

    def delete_chunks(self, document_id: str) -> int: ...

    def insert_query(self, record: QueryRecord) -> QueryRecord: ...

    def get_query(self, query_id: str, owner_id: Optional[str] = None) -> Optional[QueryRecord]: ...

    def list_queries(
        self,
        owner_id: str,
        document_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[QueryRecord]: ...

    def set_query_feedback(self, query_id: str, owner_id: str, feedback: str) -> bool: ...

    def record_usage(self, event: UsageEvent) -> None: ...

    def count_usage(self, owner_id: str, action_type: str, since: Optional[datetime] = None) -> int: ...


def _check_status(status: str) -> None:
    if status not in STATUS_RANK:
        raise ValueError(f"Invalid document status: {status}")


def _check_feedback(feedback: str) -> None:
    if feedback not in FEEDBACK_VALUES:
        raise ValueError(f"Invalid feedback: {feedback}")


def _check_action(action_type: str) -> None:
    if action_type not in USAGE_ACTIONS:
        raise ValueError(f"Invalid usage action: {action_type}")


# =============================================================================
# In-memory implementation
# =============================================================================

class InMemoryMetadataStore:
    """Dict-backed store. Thread-safe; nothing survives the process."""

    def __init__(self):
        self._documents: dict[str, DocumentRecord] = {}
        self._chunks: dict[str, list[ChunkRecord]] = {}
        self._queries: dict[str, QueryRecord] = {}
        self._usage: list[UsageEvent] = []
        self._lock = threading.Lock()

    # Documents

    def create_document(self, record: DocumentRecord) -> DocumentRecord:
        _check_status(record.status)
        with self._lock:
            self._documents[record.id] = record
        return record

    def get_document(self, document_id: str, owner_id: Optional[str] = None) -> Optional[DocumentRecord]:
        record = self._documents.get(document_id)
        if record is None or (owner_id is not None and record.owner_id != owner_id):
            return None
        return record

    def list_documents(
        self,
        owner_id: str,
        status: Optional[str] = None,
        created_after: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[DocumentRecord], int]:
        with self._lock:
            records = [
                r for r in self._documents.values()
                if r.owner_id == owner_id
                and (status is None or r.status == status)
                and (created_after is None or r.created_at >= created_after)
                and (created_before is None or r.created_at <= created_before)
            ]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records[offset:offset + limit], len(records)

    def update_status(self, document_id: str, status: str, error: Optional[str] = None) -> bool:
        _check_status(status)
        with self._lock:
            record = self._documents.get(document_id)
            if record is None:
                return False
            if STATUS_RANK[status] < STATUS_RANK[record.status]:
                logger.debug(f"Ignoring status {status} for {document_id} (already {record.status})")
                return False
            record.status = status
            record.error = error
            record.updated_at = _now()
            return True

    def mark_completed(
        self,
        document_id: str,
        raw_text: str,
        summary: Optional[str],
        processed_at: Optional[datetime] = None,
    ) -> bool:
        with self._lock:
            record = self._documents.get(document_id)
            if record is None:
                return False
            record.status = "completed"
            record.error = None
            record.raw_text = raw_text
            record.summary = summary
            record.processed_at = processed_at or _now()
            record.updated_at = _now()
            return True

    def delete_document(self, document_id: str, owner_id: Optional[str] = None) -> bool:
        with self._lock:
            record = self._documents.get(document_id)
            if record is None or (owner_id is not None and record.owner_id != owner_id):
                return False
            del self._documents[document_id]
            self._chunks.pop(document_id, None)
            for query in self._queries.values():
                if query.document_id == document_id:
                    query.document_id = None
            return True

    # Chunks

    def replace_chunks(self, document_id: str, chunks: list[ChunkRecord]) -> None:
        with self._lock:
            self._chunks[document_id] = sorted(chunks, key=lambda c: c.chunk_index)

    def list_chunks(self, document_id: str) -> list[ChunkRecord]:
        return list(self._chunks.get(document_id, []))

    def delete_chunks(self, document_id: str) -> int:
        with self._lock:
            return len(self._chunks.pop(document_id, []))

    # Queries

    def insert_query(self, record: QueryRecord) -> QueryRecord:
        with self._lock:
            self._queries[record.id] = record
        return record

    def get_query(self, query_id: str, owner_id: Optional[str] = None) -> Optional[QueryRecord]:
        record = self._queries.get(query_id)
        if record is None or (owner_id is not None and record.owner_id != owner_id):
            return None
        return record

    def list_queries(
        self,
        owner_id: str,
        document_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[QueryRecord]:
        with self._lock:
            records = [
                q for q in self._queries.values()
                if q.owner_id == owner_id and (document_id is None or q.document_id == document_id)
            ]
        records.sort(key=lambda q: q.created_at, reverse=True)
        return records[offset:offset + limit]

    def set_query_feedback(self, query_id: str, owner_id: str, feedback: str) -> bool:
        _check_feedback(feedback)
        with self._lock:
            record = self._queries.get(query_id)
            if record is None or record.owner_id != owner_id:
                return False
            record.feedback = feedback
            return True

    # Usage

    def record_usage(self, event: UsageEvent) -> None:
        _check_action(event.action_type)
        with self._lock:
            self._usage.append(event)

    def count_usage(self, owner_id: str, action_type: str, since: Optional[datetime] = None) -> int:
        with self._lock:
            return sum(
                1 for e in self._usage
                if e.owner_id == owner_id
                and e.action_type == action_type
                and (since is None or e.created_at >= since)
            )


# =============================================================================
# PostgreSQL implementation
# =============================================================================

_RANK_SQL = "(CASE status WHEN 'pending' THEN 0 WHEN 'processing' THEN 1 ELSE 2 END)"


class PostgresMetadataStore:
    """
    psycopg2-backed store. Tables are created on first use.

    Rows come back as dicts (RealDictCursor) and are mapped onto the
    record dataclasses.
    """

    def __init__(self, database: PostgresDatabase):
        self._db = database
        self._ready = False
        self._init_lock = threading.Lock()

    def initialize_schema(self) -> None:
        """Create tables and indexes if they don't exist."""
        schema_sql = """
        CREATE TABLE IF NOT EXISTS documents (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            title VARCHAR(500),
            original_filename VARCHAR(500) NOT NULL,
            file_type VARCHAR(50) NOT NULL,
            file_size INTEGER NOT NULL DEFAULT 0,
            storage_path VARCHAR(1000),
            document_type VARCHAR(100),
            status VARCHAR(50) NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'processing', 'completed', 'failed')),
            error TEXT,
            processed_at TIMESTAMPTZ,
            raw_text TEXT,
            summary TEXT,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE TABLE IF NOT EXISTS document_chunks (
            id TEXT PRIMARY KEY,
            document_id TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
            chunk_index INTEGER NOT NULL,
            content TEXT NOT NULL,
            section TEXT,
            clause_number VARCHAR(50),
            start_char INTEGER NOT NULL DEFAULT 0,
            end_char INTEGER NOT NULL DEFAULT 0,
            token_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE TABLE IF NOT EXISTS queries (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            document_id TEXT REFERENCES documents(id) ON DELETE SET NULL,
            query_text TEXT NOT NULL,
            response_text TEXT,
            citations JSONB DEFAULT '[]',
            confidence_score DOUBLE PRECISION,
            tokens_used INTEGER,
            processing_time_ms INTEGER,
            feedback VARCHAR(50) CHECK (feedback IN ('helpful', 'not_helpful')),
            created_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE TABLE IF NOT EXISTS usage_tracking (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            action_type VARCHAR(50) NOT NULL
                CHECK (action_type IN ('document_upload', 'query')),
            metadata JSONB DEFAULT '{}',
            created_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE INDEX IF NOT EXISTS idx_documents_user ON documents(user_id);
        CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(status);
        CREATE INDEX IF NOT EXISTS idx_documents_created ON documents(created_at DESC);
        CREATE INDEX IF NOT EXISTS idx_document_chunks_document ON document_chunks(document_id);
        CREATE INDEX IF NOT EXISTS idx_queries_user ON queries(user_id);
        CREATE INDEX IF NOT EXISTS idx_usage_tracking_user_action ON usage_tracking(user_id, action_type);
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(schema_sql)
                conn.commit()
            logger.info("Metadata schema initialized")

        self._db.execute_with_retry(_op, "initialize_schema")

    def _ensure_schema(self) -> None:
        if self._ready:
            return
        with self._init_lock:
            if not self._ready:
                self.initialize_schema()
                self._ready = True

    def _run(self, operation, label: str):
        self._ensure_schema()
        return self._db.execute_with_retry(operation, label)

    @staticmethod
    def _document_from_row(row: dict) -> DocumentRecord:
        return DocumentRecord(
            id=row["id"],
            owner_id=row["user_id"],
            original_filename=row["original_filename"],
            file_type=row["file_type"],
            file_size=row["file_size"] or 0,
            title=row["title"],
            storage_path=row["storage_path"],
            document_type=row["document_type"],
            status=row["status"],
            raw_text=row.get("raw_text"),
            summary=row["summary"],
            error=row["error"],
            processed_at=row["processed_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _query_from_row(row: dict) -> QueryRecord:
        return QueryRecord(
            id=row["id"],
            owner_id=row["user_id"],
            question=row["query_text"],
            answer=row["response_text"] or "",
            citations=row["citations"] or [],
            confidence=float(row["confidence_score"] or 0.0),
            tokens_used=row["tokens_used"] or 0,
            processing_time_ms=row["processing_time_ms"] or 0,
            document_id=row["document_id"],
            feedback=row["feedback"],
            created_at=row["created_at"],
        )

    # Documents

    def create_document(self, record: DocumentRecord) -> DocumentRecord:
        _check_status(record.status)
        sql = """
        INSERT INTO documents
            (id, user_id, title, original_filename, file_type, file_size, storage_path,
             document_type, status, created_at, updated_at)
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (
                    record.id,
                    record.owner_id,
                    record.title,
                    record.original_filename,
                    record.file_type,
                    record.file_size,
                    record.storage_path,
                    record.document_type,
                    record.status,
                    record.created_at,
                    record.updated_at,
                ))
                conn.commit()
            return record

        return self._run(_op, "create_document")

    def get_document(self, document_id: str, owner_id: Optional[str] = None) -> Optional[DocumentRecord]:
        sql = "SELECT * FROM documents WHERE id = %s"
        params = [document_id]
        if owner_id is not None:
            sql += " AND user_id = %s"
            params.append(owner_id)

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, params)
                row = cur.fetchone()
                conn.commit()
            return self._document_from_row(row) if row else None

        return self._run(_op, "get_document")

    def list_documents(
        self,
        owner_id: str,
        status: Optional[str] = None,
        created_after: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[DocumentRecord], int]:
        filters = ["user_id = %s"]
        params = [owner_id]
        if status:
            filters.append("status = %s")
            params.append(status)
        if created_after:
            filters.append("created_at >= %s")
            params.append(created_after)
        if created_before:
            filters.append("created_at <= %s")
            params.append(created_before)

        sql = f"""
        SELECT id, user_id, title, original_filename, file_type, file_size, storage_path,
               document_type, status, error, processed_at, summary, created_at, updated_at,
               COUNT(*) OVER() AS total
        FROM documents
        WHERE {' AND '.join(filters)}
        ORDER BY created_at DESC
        LIMIT %s OFFSET %s
        """
        params.extend([limit, offset])

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
                conn.commit()
            total = int(rows[0]["total"]) if rows else 0
            return [self._document_from_row(row) for row in rows], total

        return self._run(_op, "list_documents")

    def update_status(self, document_id: str, status: str, error: Optional[str] = None) -> bool:
        _check_status(status)
        sql = f"""
        UPDATE documents SET status = %s, error = %s, updated_at = NOW()
        WHERE id = %s AND {_RANK_SQL} <= %s
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (status, error, document_id, STATUS_RANK[status]))
                updated = cur.rowcount > 0
                conn.commit()
            if not updated:
                logger.debug(f"Status {status} not applied to {document_id}")
            return updated

        return self._run(_op, "update_status")

    def mark_completed(
        self,
        document_id: str,
        raw_text: str,
        summary: Optional[str],
        processed_at: Optional[datetime] = None,
    ) -> bool:
        sql = """
        UPDATE documents
        SET status = 'completed', error = NULL, raw_text = %s, summary = %s,
            processed_at = %s, updated_at = NOW()
        WHERE id = %s
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (raw_text, summary, processed_at or _now(), document_id))
                updated = cur.rowcount > 0
                conn.commit()
            return updated

        return self._run(_op, "mark_completed")

    def delete_document(self, document_id: str, owner_id: Optional[str] = None) -> bool:
        sql = "DELETE FROM documents WHERE id = %s"
        params = [document_id]
        if owner_id is not None:
            sql += " AND user_id = %s"
            params.append(owner_id)

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, params)
                deleted = cur.rowcount > 0
                conn.commit()
            if deleted:
                logger.info(f"Deleted document {document_id}")
            else:
                logger.warning(f"Document {document_id} not found (or wrong owner)")
            return deleted

        return self._run(_op, "delete_document")

    # Chunks

    def replace_chunks(self, document_id: str, chunks: list[ChunkRecord]) -> None:
        from psycopg2.extras import execute_values

        insert_sql = """
        INSERT INTO document_chunks
            (id, document_id, chunk_index, content, section, clause_number,
             start_char, end_char, token_count)
        VALUES %s
        """
        values = [
            (c.id, document_id, c.chunk_index, c.content, c.section, c.clause_number,
             c.start_char, c.end_char, c.token_count)
            for c in chunks
        ]

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute("DELETE FROM document_chunks WHERE document_id = %s", (document_id,))
                if values:
                    execute_values(cur, insert_sql, values, page_size=1000)
                conn.commit()
            logger.info(f"Stored {len(values)} chunks for document {document_id}")

        self._run(_op, "replace_chunks")

    def list_chunks(self, document_id: str) -> list[ChunkRecord]:
        sql = "SELECT * FROM document_chunks WHERE document_id = %s ORDER BY chunk_index"

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (document_id,))
                rows = cur.fetchall()
                conn.commit()
            return [ChunkRecord(**dict(row)) for row in rows]

        return self._run(_op, "list_chunks")

    def delete_chunks(self, document_id: str) -> int:
        def _op(conn):
            with conn.cursor() as cur:
                cur.execute("DELETE FROM document_chunks WHERE document_id = %s", (document_id,))
                deleted = cur.rowcount
                conn.commit()
            return deleted

        return self._run(_op, "delete_chunks")

    # Queries

    def insert_query(self, record: QueryRecord) -> QueryRecord:
        sql = """
        INSERT INTO queries
            (id, user_id, document_id, query_text, response_text, citations,
             confidence_score, tokens_used, processing_time_ms, feedback, created_at)
        VALUES (%s, %s, %s, %s, %s, %s::jsonb, %s, %s, %s, %s, %s)
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (
                    record.id,
                    record.owner_id,
                    record.document_id,
                    record.question,
                    record.answer,
                    json.dumps(record.citations),
                    record.confidence,
                    record.tokens_used,
                    record.processing_time_ms,
                    record.feedback,
                    record.created_at,
                ))
                conn.commit()
            return record

        return self._run(_op, "insert_query")

    def get_query(self, query_id: str, owner_id: Optional[str] = None) -> Optional[QueryRecord]:
        sql = "SELECT * FROM queries WHERE id = %s"
        params = [query_id]
        if owner_id is not None:
            sql += " AND user_id = %s"
            params.append(owner_id)

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, params)
                row = cur.fetchone()
                conn.commit()
            return self._query_from_row(row) if row else None

        return self._run(_op, "get_query")

    def list_queries(
        self,
        owner_id: str,
        document_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[QueryRecord]:
        sql = "SELECT * FROM queries WHERE user_id = %s"
        params = [owner_id]
        if document_id:
            sql += " AND document_id = %s"
            params.append(document_id)
        sql += " ORDER BY created_at DESC LIMIT %s OFFSET %s"
        params.extend([limit, offset])

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
                conn.commit()
            return [self._query_from_row(row) for row in rows]

        return self._run(_op, "list_queries")

    def set_query_feedback(self, query_id: str, owner_id: str, feedback: str) -> bool:
        _check_feedback(feedback)
        sql = "UPDATE queries SET feedback = %s WHERE id = %s AND user_id = %s"

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (feedback, query_id, owner_id))
                updated = cur.rowcount > 0
                conn.commit()
            return updated

        return self._run(_op, "set_query_feedback")

    # Usage

    def record_usage(self, event: UsageEvent) -> None:
        _check_action(event.action_type)
        sql = """
        INSERT INTO usage_tracking (id, user_id, action_type, metadata, created_at)
        VALUES (%s, %s, %s, %s::jsonb, %s)
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (
                    event.id, event.owner_id, event.action_type,
                    json.dumps(event.metadata), event.created_at,
                ))
                conn.commit()

        self._run(_op, "record_usage")

    def count_usage(self, owner_id: str, action_type: str, since: Optional[datetime] = None) -> int:
        sql = "SELECT COUNT(*) AS n FROM usage_tracking WHERE user_id = %s AND action_type = %s"
        params = [owner_id, action_type]
        if since is not None:
            sql += " AND created_at >= %s"
            params.append(since)

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, params)
                row = cur.fetchone()
                conn.commit()
            return int(row["n"])

        return self._run(_op, "count_usage")


def get_metadata_store(backend: str, database_url: Optional[str] = None):
    """Factory: "postgres" needs a database URL, anything else is in-memory."""
    if backend == "postgres":
        return PostgresMetadataStore(PostgresDatabase(database_url))
    return InMemoryMetadataStore()
