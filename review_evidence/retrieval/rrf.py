"""Reciprocal Rank Fusion (RRF) implementation."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Generic, List, Sequence, TypeVar

from .types import RankedSourceList, RetrievalCandidate

# Standard damping constant from the original RRF paper (Cormack et al. 2009).
DEFAULT_RRF_K = 60
DEFAULT_RECENCY_BOOST_DAYS = 30
DEFAULT_RECENCY_BOOST_FACTOR = 0.15

T = TypeVar("T")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ReciprocalRankFusion:
    """Reciprocal Rank Fusion for merging ranked lists from several corpora.

    RRF formula: score = sum(1 / (k + rank)) over every list an id appears in,
    with 0-based ranks. Candidates created within ``recency_boost_days`` of
    ``now`` are then multiplied by ``1 + recency_boost_factor``.
    """

    def __init__(
        self,
        k: int = DEFAULT_RRF_K,
        recency_boost_days: float = DEFAULT_RECENCY_BOOST_DAYS,
        recency_boost_factor: float = DEFAULT_RECENCY_BOOST_FACTOR,
    ):
        if k <= 0:
            raise ValueError("k must be positive")
        if recency_boost_days < 0:
            raise ValueError("recency_boost_days cannot be negative")
        if recency_boost_factor < 0:
            raise ValueError("recency_boost_factor cannot be negative")

        self.k = k
        self.recency_boost_days = recency_boost_days
        self.recency_boost_factor = recency_boost_factor

    def fuse(
        self,
        source_lists: Sequence[RankedSourceList],
        top_k: int | None = None,
        now: datetime | None = None,
    ) -> List[RetrievalCandidate]:
        """Merge ranked source lists into one list sorted by fused score desc.

        Args:
            source_lists: Best-first lists; absolute scores inside are ignored.
            top_k: Optional cap on the returned list.
            now: Reference time for the recency window (defaults to utcnow).

        Returns:
            New candidate objects; source attribution comes from the first
            list an id appears in.
        """
        if not source_lists:
            return []

        merged: Dict[str, RetrievalCandidate] = {}

        for source_list in source_lists:
            for rank, item in enumerate(source_list.items):
                contribution = 1.0 / (self.k + rank)
                existing = merged.get(item.id)
                if existing is None:
                    merged[item.id] = replace(
                        item,
                        score=contribution,
                        metadata=dict(item.metadata),
                        alternate_sources=list(item.alternate_sources),
                    )
                else:
                    existing.score += contribution

        reference = _as_utc(now) if now else datetime.now(timezone.utc)
        window = timedelta(days=self.recency_boost_days)
        for candidate in merged.values():
            if candidate.created_at is None:
                continue
            age = reference - _as_utc(candidate.created_at)
            if timedelta(0) <= age <= window:
                candidate.score *= 1 + self.recency_boost_factor

        results = sorted(merged.values(), key=lambda c: c.score, reverse=True)
        return results[:top_k] if top_k is not None else results


def cross_corpus_rrf(
    source_lists: Sequence[RankedSourceList],
    *,
    k: int = DEFAULT_RRF_K,
    top_k: int | None = None,
    recency_boost_days: float = DEFAULT_RECENCY_BOOST_DAYS,
    recency_boost_factor: float = DEFAULT_RECENCY_BOOST_FACTOR,
    now: datetime | None = None,
) -> List[RetrievalCandidate]:
    fusion = ReciprocalRankFusion(
        k=k,
        recency_boost_days=recency_boost_days,
        recency_boost_factor=recency_boost_factor,
    )
    return fusion.fuse(source_lists, top_k=top_k, now=now)


@dataclass
class HybridSearchResult(Generic[T]):
    item: T
    vector_rank: int | None
    bm25_rank: int | None
    hybrid_score: float


def hybrid_search_merge(
    vector_results: Sequence[T],
    bm25_results: Sequence[T],
    get_key: Callable[[T], str],
    k: int = DEFAULT_RRF_K,
    top_k: int | None = None,
) -> List[HybridSearchResult[T]]:
    """Merge one corpus's vector and full-text rankings with RRF.

    The vector-side item is kept as representative when a key appears in
    both lists.
    """
    if k <= 0:
        raise ValueError("k must be positive")
    if not vector_results and not bm25_results:
        return []

    merged: Dict[str, HybridSearchResult[T]] = {}

    for rank, item in enumerate(vector_results):
        key = get_key(item)
        if key in merged:
            continue
        merged[key] = HybridSearchResult(
            item=item, vector_rank=rank, bm25_rank=None, hybrid_score=1.0 / (k + rank)
        )

    for rank, item in enumerate(bm25_results):
        key = get_key(item)
        existing = merged.get(key)
        if existing is None:
            merged[key] = HybridSearchResult(
                item=item, vector_rank=None, bm25_rank=rank, hybrid_score=1.0 / (k + rank)
            )
        elif existing.bm25_rank is None:
            existing.bm25_rank = rank
            existing.hybrid_score += 1.0 / (k + rank)

    results = sorted(merged.values(), key=lambda r: r.hybrid_score, reverse=True)
    return results[:top_k] if top_k is not None else results
