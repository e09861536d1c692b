"""Builders and fakes shared by the retrieval unit tests."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Dict, List, Sequence

from review_evidence.embeddings import EmbeddingResult
from review_evidence.retrieval.isolation import RetrievalWithProvenance
from review_evidence.retrieval.types import (
    MemoryRecord,
    MemoryResult,
    RerankedResult,
    RetrievalCandidate,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_candidate(
    id: str,
    text: str = "",
    *,
    source: str = "code",
    score: float = 0.0,
    label: str | None = None,
    created_at: datetime | None = None,
) -> RetrievalCandidate:
    return RetrievalCandidate(
        id=id,
        text=text or f"text for {id}",
        source=source,
        source_label=label or f"[{source}: {id}]",
        score=score,
        created_at=created_at,
    )


def make_memory(
    memory_id: int,
    distance: float,
    *,
    file_path: str = "src/app.py",
    finding_text: str = "",
    language: str | None = None,
    severity: str = "minor",
    created_at: datetime | None = None,
    source_repo: str = "acme/service",
) -> MemoryResult:
    record = MemoryRecord(
        repo="service",
        owner="acme",
        source_repo=source_repo,
        finding_text=finding_text or f"finding {memory_id}",
        file_path=file_path,
        severity=severity,
        id=memory_id,
        language=language,
        created_at=created_at,
    )
    return MemoryResult(
        memory_id=memory_id, distance=distance, record=record, source_repo=source_repo
    )


def make_reranked(
    memory_id: int,
    adjusted_distance: float,
    *,
    severity: str = "minor",
    created_at: datetime | None = None,
) -> RerankedResult:
    base = make_memory(
        memory_id, adjusted_distance, severity=severity, created_at=created_at
    )
    return RerankedResult(
        memory_id=base.memory_id,
        distance=base.distance,
        record=base.record,
        source_repo=base.source_repo,
        adjusted_distance=adjusted_distance,
    )


class FakeEmbeddingProvider:
    """Maps each known query to a one-element vector; unknown queries get None."""

    model = "fake-embedding"
    dimensions = 1

    def __init__(self, vectors: Dict[str, float]):
        self._vectors = vectors
        self.calls: List[str] = []

    def generate(self, text: str, input_type: str) -> EmbeddingResult | None:
        self.calls.append(text)
        if text not in self._vectors:
            return None
        return EmbeddingResult(
            embedding=[self._vectors[text]], model=self.model, dimensions=1
        )


class FakeIsolationLayer:
    """Returns canned results keyed by the first embedding component."""

    def __init__(self, results: Dict[float, Sequence[MemoryResult]], fail: bool = False):
        self._results = results
        self._fail = fail
        self._lock = threading.Lock()
        self.calls: List[dict] = []

    def retrieve_with_isolation(self, *, query_embedding, **kwargs) -> RetrievalWithProvenance:
        with self._lock:
            self.calls.append({"query_embedding": list(query_embedding), **kwargs})
        if self._fail:
            raise RuntimeError("vector store unavailable")
        return RetrievalWithProvenance(results=list(self._results.get(query_embedding[0], [])))


class FakeMemoryStore:
    def __init__(
        self,
        repo_results: Sequence[MemoryResult] = (),
        owner_results: Sequence[MemoryResult] = (),
    ):
        self.repo_results = list(repo_results)
        self.owner_results = list(owner_results)
        self.repo_calls: List[dict] = []
        self.owner_calls: List[dict] = []

    def retrieve_memories(self, *, query_embedding, repo, top_k):
        self.repo_calls.append({"repo": repo, "top_k": top_k})
        return list(self.repo_results)

    def retrieve_memories_for_owner(self, *, query_embedding, owner, exclude_repo, top_k):
        self.owner_calls.append({"owner": owner, "exclude_repo": exclude_repo, "top_k": top_k})
        return list(self.owner_results)
