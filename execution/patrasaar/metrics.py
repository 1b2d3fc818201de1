"""
Metrics Collection for PatraSaar

Tracks query latency, retrieval result counts, ingestion outcomes, backend
fallbacks and errors by type. Exposed through ``GET /api/v1/metrics``.
"""

import time
import uuid
import logging
import threading
from dataclasses import dataclass, field
from collections import defaultdict
from typing import Optional
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)


@dataclass
class QueryMetrics:
    """Metrics for a single query."""
    query_id: str
    owner_id: str
    query_text: str
    start_time: float
    end_time: float = 0
    latency_ms: float = 0
    results_count: int = 0
    error: Optional[str] = None


@dataclass
class SystemMetrics:
    """Aggregated system metrics."""
    # Query metrics
    total_queries: int = 0
    successful_queries: int = 0
    failed_queries: int = 0
    empty_result_queries: int = 0
    total_results: int = 0

    # Latency tracking (in ms)
    total_latency_ms: float = 0
    min_latency_ms: float = float('inf')
    max_latency_ms: float = 0
    latencies: list = field(default_factory=list)

    # Ingestion metrics
    documents_ingested: int = 0
    documents_failed: int = 0
    chunks_created: int = 0
    total_ingestion_time_ms: float = 0

    # Degraded paths (component -> count)
    fallbacks: dict = field(default_factory=lambda: defaultdict(int))

    # Error tracking
    errors_by_type: dict = field(default_factory=lambda: defaultdict(int))

    # Per-owner tracking
    queries_by_owner: dict = field(default_factory=lambda: defaultdict(int))
    documents_by_owner: dict = field(default_factory=lambda: defaultdict(int))

    @property
    def avg_latency_ms(self) -> float:
        if self.total_queries == 0:
            return 0
        return self.total_latency_ms / self.total_queries

    def _percentile(self, fraction: float) -> float:
        if not self.latencies:
            return 0
        sorted_latencies = sorted(self.latencies)
        index = int(len(sorted_latencies) * fraction)
        return sorted_latencies[min(index, len(sorted_latencies) - 1)]

    @property
    def p95_latency_ms(self) -> float:
        return self._percentile(0.95)

    @property
    def p99_latency_ms(self) -> float:
        return self._percentile(0.99)

    @property
    def avg_results(self) -> float:
        if self.total_queries == 0:
            return 0
        return self.total_results / self.total_queries

    @property
    def error_rate(self) -> float:
        if self.total_queries == 0:
            return 0
        return self.failed_queries / self.total_queries

    def to_dict(self) -> dict:
        """Convert to dictionary for display."""
        return {
            "queries": {
                "total": self.total_queries,
                "successful": self.successful_queries,
                "failed": self.failed_queries,
                "empty_results": self.empty_result_queries,
                "avg_results": round(self.avg_results, 2),
                "error_rate": f"{self.error_rate:.2%}",
            },
            "latency_ms": {
                "avg": round(self.avg_latency_ms, 2),
                "min": round(self.min_latency_ms, 2) if self.min_latency_ms != float('inf') else 0,
                "max": round(self.max_latency_ms, 2),
                "p95": round(self.p95_latency_ms, 2),
                "p99": round(self.p99_latency_ms, 2),
            },
            "ingestion": {
                "documents": self.documents_ingested,
                "failed": self.documents_failed,
                "chunks": self.chunks_created,
                "avg_time_ms": round(
                    self.total_ingestion_time_ms / max(self.documents_ingested, 1), 2
                ),
            },
            "fallbacks": dict(self.fallbacks),
            "errors": dict(self.errors_by_type),
        }


class MetricsCollector:
    """
    Collects and aggregates system metrics.

    Usage:
        collector = MetricsCollector()

        with collector.track_query(owner_id, question) as tracker:
            results = index.search(vector, limit=5)
            tracker.set_results(len(results))

        collector.get_metrics_dict()
    """

    def __init__(self, max_history: int = 1000):
        self.metrics = SystemMetrics()
        self._query_history: list[QueryMetrics] = []
        self._max_history = max_history
        self._start_time = datetime.now()
        self._lock = threading.Lock()

    def reset(self):
        """Reset all metrics (for testing)."""
        with self._lock:
            self.metrics = SystemMetrics()
            self._query_history = []
            self._start_time = datetime.now()

    class QueryTracker:
        """Context manager for tracking query metrics."""

        def __init__(self, collector: 'MetricsCollector', owner_id: str, query_text: str):
            self.collector = collector
            self.query = QueryMetrics(
                query_id=str(uuid.uuid4()),
                owner_id=owner_id,
                query_text=query_text[:200],  # Truncate for storage
                start_time=time.time(),
            )

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            self.query.end_time = time.time()
            self.query.latency_ms = (self.query.end_time - self.query.start_time) * 1000

            if exc_type:
                self.query.error = str(exc_val)
                self.collector.record_error(exc_type.__name__)

            self.collector._record_query(self.query)
            return False  # Don't suppress exceptions

        def set_results(self, count: int):
            self.query.results_count = count

    def track_query(self, owner_id: str, query_text: str) -> QueryTracker:
        """Create a query tracker context manager."""
        return self.QueryTracker(self, owner_id, query_text)

    def _record_query(self, query: QueryMetrics):
        with self._lock:
            m = self.metrics
            m.total_queries += 1

            if query.error:
                m.failed_queries += 1
            else:
                m.successful_queries += 1
                m.total_results += query.results_count
                if query.results_count == 0:
                    m.empty_result_queries += 1

            m.total_latency_ms += query.latency_ms
            m.min_latency_ms = min(m.min_latency_ms, query.latency_ms)
            m.max_latency_ms = max(m.max_latency_ms, query.latency_ms)
            m.latencies.append(query.latency_ms)
            if len(m.latencies) > self._max_history:
                m.latencies = m.latencies[-self._max_history:]

            m.queries_by_owner[query.owner_id] += 1

            self._query_history.append(query)
            if len(self._query_history) > self._max_history:
                self._query_history = self._query_history[-self._max_history:]

    def record_error(self, error_type: str):
        """Record an error by type."""
        with self._lock:
            self.metrics.errors_by_type[error_type] += 1

    def record_fallback(self, component: str):
        """Record a switch to a degraded path (e.g. in-memory vector search)."""
        with self._lock:
            self.metrics.fallbacks[component] += 1

    def record_ingestion(
        self,
        owner_id: str,
        document_id: str,
        chunks_count: int,
        duration_ms: float,
        succeeded: bool = True,
    ):
        """Record document ingestion metrics."""
        with self._lock:
            if succeeded:
                self.metrics.documents_ingested += 1
                self.metrics.chunks_created += chunks_count
                self.metrics.total_ingestion_time_ms += duration_ms
                self.metrics.documents_by_owner[owner_id] += 1
            else:
                self.metrics.documents_failed += 1
        logger.debug(f"Ingestion recorded for {document_id}: {chunks_count} chunks, {duration_ms:.0f}ms")

    def get_metrics(self) -> SystemMetrics:
        return self.metrics

    def get_metrics_dict(self) -> dict:
        with self._lock:
            return self.metrics.to_dict()

    def get_recent_queries(self, limit: int = 10) -> list[QueryMetrics]:
        return self._query_history[-limit:]

    def get_uptime(self) -> timedelta:
        return datetime.now() - self._start_time

    def get_owner_summary(self) -> dict:
        return {
            "queries_by_owner": dict(self.metrics.queries_by_owner),
            "documents_by_owner": dict(self.metrics.documents_by_owner),
        }


# Process-wide collector for the API layer
_collector = None


def get_metrics_collector() -> MetricsCollector:
    """Get the process-wide metrics collector instance."""
    global _collector
    if _collector is None:
        _collector = MetricsCollector()
    return _collector
