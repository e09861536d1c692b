"""Repo-scoped finding-memory search with an optional owner-wide shared pool."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Protocol, Sequence

import numpy as np
import psycopg
from pgvector.psycopg import register_vector
from psycopg_pool import ConnectionPool

from .types import MemoryRecord, MemoryResult

logger = logging.getLogger(__name__)

# The adaptive cutoff needs a wider pool than the caller's top_k to find gaps.
MIN_ADAPTIVE_POOL = 20
ADAPTIVE_POOL_MULTIPLIER = 4


@dataclass(frozen=True)
class IsolationProvenance:
    repo_sources: List[str]
    shared_pool_used: bool
    total_candidates: int
    repo: str
    top_k: int
    threshold: float
    adaptive: bool
    internal_top_k: int


@dataclass
class RetrievalWithProvenance:
    results: List[MemoryResult]
    provenance: IsolationProvenance | None = None


class IsolationLayer(Protocol):
    def retrieve_with_isolation(
        self,
        *,
        query_embedding: Sequence[float],
        repo: str,
        owner: str,
        sharing_enabled: bool,
        top_k: int,
        distance_threshold: float,
        adaptive: bool = True,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> RetrievalWithProvenance: ...


class MemoryStore(Protocol):
    def retrieve_memories(
        self, *, query_embedding: Sequence[float], repo: str, top_k: int
    ) -> List[MemoryResult]: ...

    def retrieve_memories_for_owner(
        self,
        *,
        query_embedding: Sequence[float],
        owner: str,
        exclude_repo: str,
        top_k: int,
    ) -> List[MemoryResult]: ...


_MEMORY_COLUMNS = """
    id, repo, owner, source_repo, finding_text, severity, category,
    file_path, outcome, language, created_at
"""


def _row_to_result(row: Sequence[Any]) -> MemoryResult:
    (memory_id, repo, owner, source_repo, finding_text, severity, category,
     file_path, outcome, language, created_at, distance) = row
    record = MemoryRecord(
        id=int(memory_id),
        repo=repo,
        owner=owner,
        source_repo=source_repo,
        finding_text=finding_text or "",
        severity=severity or "minor",
        category=category or "correctness",
        file_path=file_path or "",
        outcome=outcome or "accepted",
        language=language,
        created_at=created_at,
    )
    return MemoryResult(
        memory_id=int(memory_id),
        distance=float(distance),
        record=record,
        source_repo=source_repo,
    )


class PostgresMemoryStore:
    """pgvector-backed finding memory (cosine distance, lower is closer)."""

    def __init__(
        self,
        settings: dict,
        use_connection_pool: bool = True,
        pool_min_size: int = 1,
        pool_max_size: int = 4,
    ):
        self.settings = settings
        self._pool: ConnectionPool | None = None
        if use_connection_pool:
            self._pool = ConnectionPool(
                settings["DATABASE_URL"],
                min_size=pool_min_size,
                max_size=pool_max_size,
                max_idle=300,
                max_lifetime=3600,
                configure=register_vector,
                open=True,
            )
            logger.debug(
                "Initialized connection pool (min=%s, max=%s)", pool_min_size, pool_max_size
            )

    def _get_connection(self):
        if self._pool:
            return self._pool.connection()
        conn = psycopg.connect(self.settings["DATABASE_URL"])
        register_vector(conn)
        return conn

    def close(self) -> None:
        if self._pool:
            self._pool.close()
            self._pool = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _search(self, where: str, params: Sequence[Any], embedding, top_k: int):
        vector = np.asarray(embedding, dtype=np.float32)
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SET LOCAL statement_timeout = '30s'")
                cur.execute(
                    f"""
                    SELECT {_MEMORY_COLUMNS},
                           embedding <=> %s AS distance
                    FROM learning_memories
                    WHERE {where}
                      AND NOT stale
                      AND embedding IS NOT NULL
                    ORDER BY embedding <=> %s
                    LIMIT %s
                    """,
                    (vector, *params, vector, top_k),
                )
                return [_row_to_result(row) for row in cur.fetchall()]

    def retrieve_memories(
        self, *, query_embedding: Sequence[float], repo: str, top_k: int
    ) -> List[MemoryResult]:
        return self._search("repo = %s", (repo,), query_embedding, top_k)

    def retrieve_memories_for_owner(
        self,
        *,
        query_embedding: Sequence[float],
        owner: str,
        exclude_repo: str,
        top_k: int,
    ) -> List[MemoryResult]:
        return self._search(
            "owner = %s AND repo <> %s", (owner, exclude_repo), query_embedding, top_k
        )


@dataclass
class RepoIsolationLayer:
    """Isolation layer over a MemoryStore.

    Repo-scoped memories are always searched; the owner's other repos are
    added only when sharing is enabled. With ``adaptive`` the pool is widened
    and distance filtering is left to the adaptive cutoff downstream.
    """

    memory_store: MemoryStore
    base_logger: logging.Logger = field(default=logger)

    def retrieve_with_isolation(
        self,
        *,
        query_embedding: Sequence[float],
        repo: str,
        owner: str,
        sharing_enabled: bool,
        top_k: int,
        distance_threshold: float,
        adaptive: bool = True,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> RetrievalWithProvenance:
        log = logger or self.base_logger
        internal_top_k = (
            max(MIN_ADAPTIVE_POOL, top_k * ADAPTIVE_POOL_MULTIPLIER) if adaptive else top_k
        )

        repo_results = self.memory_store.retrieve_memories(
            query_embedding=query_embedding, repo=repo, top_k=internal_top_k
        )
        if not adaptive:
            repo_results = [r for r in repo_results if r.distance <= distance_threshold]

        shared_results: List[MemoryResult] = []
        if sharing_enabled:
            shared_results = self.memory_store.retrieve_memories_for_owner(
                query_embedding=query_embedding,
                owner=owner,
                exclude_repo=repo,
                top_k=internal_top_k,
            )
            if not adaptive:
                shared_results = [
                    r for r in shared_results if r.distance <= distance_threshold
                ]

        all_candidates = repo_results + shared_results
        seen = set()
        deduped: List[MemoryResult] = []
        for result in all_candidates:
            if result.memory_id in seen:
                continue
            seen.add(result.memory_id)
            deduped.append(result)
        deduped.sort(key=lambda r: r.distance)
        results = deduped[:internal_top_k]

        repo_sources = list(dict.fromkeys(r.source_repo for r in results))
        provenance = IsolationProvenance(
            repo_sources=repo_sources,
            shared_pool_used=sharing_enabled and bool(shared_results),
            total_candidates=len(all_candidates),
            repo=repo,
            top_k=top_k,
            threshold=distance_threshold,
            adaptive=adaptive,
            internal_top_k=internal_top_k,
        )
        log.debug(
            "Memory retrieval for %s: repo=%d shared=%d returned=%d sources=%s",
            repo,
            len(repo_results),
            len(shared_results),
            len(results),
            repo_sources,
        )
        return RetrievalWithProvenance(results=results, provenance=provenance)
