"""
PostgreSQL connection handling shared by the pgvector index and the metadata store.

Pooled psycopg2 connections with RealDictCursor rows and a single retry on
stale connections. Driver errors are translated at this boundary:
unreachable/unconfigured database -> NotConfiguredError, anything else the
driver raises -> QueryFailedError.
"""

import logging
import threading
from typing import Optional

from .errors import NotConfiguredError, QueryFailedError

try:
    import psycopg2
    import psycopg2.extras
    import psycopg2.pool
except ImportError:
    psycopg2 = None  # Will be caught at connect() time

logger = logging.getLogger(__name__)


class PostgresDatabase:
    """
    A lazily-connected PostgreSQL connection pool.

    Usage:
        db = PostgresDatabase(os.getenv("DATABASE_URL"))

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute("SELECT 1 AS ok")
                return cur.fetchone()["ok"]

        db.execute_with_retry(_op, "ping")
    """

    def __init__(
        self,
        connection_string: Optional[str],
        pool_min_connections: int = 1,
        pool_max_connections: int = 10,
        use_pooling: bool = True,
    ):
        self._connection_string = connection_string
        self._pool_min = pool_min_connections
        self._pool_max = pool_max_connections
        self._use_pooling = use_pooling
        self._pool = None
        self._conn = None
        self._lock = threading.Lock()

    @property
    def configured(self) -> bool:
        return bool(self._connection_string)

    def connect(self) -> None:
        """Establish the pool (or single connection)."""
        if psycopg2 is None:
            raise NotConfiguredError("psycopg2 not installed. Run: pip install psycopg2-binary")
        if not self._connection_string:
            raise NotConfiguredError("No database URL configured (set DATABASE_URL)")

        from psycopg2.extras import RealDictCursor

        try:
            if self._use_pooling:
                self._pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=self._pool_min,
                    maxconn=self._pool_max,
                    dsn=self._connection_string,
                    cursor_factory=RealDictCursor,
                )
                logger.info(
                    f"Connection pool initialized (min={self._pool_min}, max={self._pool_max})"
                )
            else:
                self._conn = psycopg2.connect(self._connection_string, cursor_factory=RealDictCursor)
                self._conn.autocommit = False
                logger.info("Connected to PostgreSQL (single connection)")
        except psycopg2.Error as e:
            logger.error(f"Database connection failed: {e}")
            raise NotConfiguredError(f"Database unreachable: {e}") from e

    def _ensure_connection(self):
        with self._lock:
            if not self._pool and not self._conn:
                self.connect()

        if self._pool:
            return self._pool.getconn()

        if self._conn.closed:
            logger.warning("Connection closed, reconnecting...")
            self.connect()
        return self._conn

    def _release_connection(self, conn) -> None:
        if self._pool and conn:
            self._pool.putconn(conn)

    def _safe_rollback(self, conn) -> None:
        """Rollback a connection, ignoring errors if the connection is dead."""
        try:
            conn.rollback()
        except (psycopg2.InterfaceError, psycopg2.OperationalError):
            pass

    def _reset(self) -> None:
        with self._lock:
            self.close()

    def execute_with_retry(self, operation, label: str = "db_operation"):
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
                    self._reset()
                    continue
                raise QueryFailedError(f"{label} failed: {e}") from e
            except psycopg2.Error as e:
                self._safe_rollback(conn)
                self._release_connection(conn)
                logger.error(f"{label} failed: {e}")
                raise QueryFailedError(f"{label} failed: {e}") from e
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
