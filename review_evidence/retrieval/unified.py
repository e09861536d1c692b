"""Cross-corpus assembly: code findings, review comments and wiki pages.

Each corpus is normalised to RetrievalCandidate, hybrid-merged (vector and
full-text) and deduplicated on its own, then all corpora are fused with RRF,
weighted by what triggered the request, and deduplicated across corpora.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from hashlib import sha256
from typing import Dict, List, Protocol, Sequence

from .dedup import deduplicate_candidates
from .rrf import DEFAULT_RRF_K, ReciprocalRankFusion, hybrid_search_merge
from .types import (
    RankedSourceList,
    RetrievalCandidate,
    ReviewCommentMatch,
    MemoryResult,
    WikiKnowledgeMatch,
)

logger = logging.getLogger(__name__)

SOURCE_WEIGHTS: Dict[str, Dict[str, float]] = {
    "pr_review": {"code": 1.2, "review_comment": 1.2, "wiki": 1.0},
    "issue": {"code": 1.0, "review_comment": 1.0, "wiki": 1.2},
    "question": {"code": 1.0, "review_comment": 1.0, "wiki": 1.2},
    "slack": {"code": 1.0, "review_comment": 1.0, "wiki": 1.0},
}

_CORPUS_NAMES = (("code", "code"), ("review_comment", "review comment"), ("wiki", "wiki"))


class ReviewCommentSearcher(Protocol):
    def search(self, query: str, *, repo: str, top_k: int) -> List[ReviewCommentMatch]: ...

    def search_full_text(
        self, query: str, *, repo: str, top_k: int
    ) -> List[ReviewCommentMatch]: ...


class WikiSearcher(Protocol):
    def search(self, query: str, *, top_k: int) -> List[WikiKnowledgeMatch]: ...

    def search_full_text(self, query: str, *, top_k: int) -> List[WikiKnowledgeMatch]: ...


def memory_to_candidate(result: MemoryResult) -> RetrievalCandidate:
    record = result.record
    return RetrievalCandidate(
        id=f"code:{result.memory_id}",
        text=record.finding_text,
        source="code",
        source_label=f"[code: {record.file_path}]",
        vector_distance=result.distance,
        created_at=record.created_at,
        metadata={
            "memory_id": result.memory_id,
            "file_path": record.file_path,
            "severity": record.severity,
            "category": record.category,
            "outcome": record.outcome,
        },
    )


def _text_digest(text: str) -> str:
    return sha256(text.encode("utf-8")).hexdigest()[:16]


def review_match_to_candidate(match: ReviewCommentMatch) -> RetrievalCandidate:
    # Several chunks can share a PR and position (PR-level comments have
    # neither), so the chunk id or a digest of the chunk text is part of the
    # key. Vector and full-text hits of the same chunk still share an id.
    chunk_key = match.chunk_id or _text_digest(match.chunk_text)
    return RetrievalCandidate(
        id=f"review:{match.repo}:{match.pr_number}:{chunk_key}",
        text=match.chunk_text,
        source="review_comment",
        source_label=f"[review: PR #{match.pr_number}]",
        source_url=f"https://github.com/{match.repo}/pull/{match.pr_number}",
        vector_distance=match.distance,
        created_at=match.created_at,
        metadata={
            "pr_number": match.pr_number,
            "pr_title": match.pr_title,
            "file_path": match.file_path,
            "author_login": match.author_login,
            "author_association": match.author_association,
            "start_line": match.start_line,
            "end_line": match.end_line,
        },
    )


def wiki_match_to_candidate(match: WikiKnowledgeMatch) -> RetrievalCandidate:
    chunk_key = match.chunk_id or _text_digest(match.chunk_text)
    return RetrievalCandidate(
        id=f"wiki:{match.page_id}:{chunk_key}",
        text=match.chunk_text,
        source="wiki",
        source_label=f"[wiki: {match.page_title}]",
        source_url=match.page_url,
        vector_distance=match.distance,
        created_at=match.last_modified,
        metadata={
            "page_id": match.page_id,
            "page_title": match.page_title,
            "namespace": match.namespace,
            "section_heading": match.section_heading,
        },
    )


def _hybrid_corpus(
    vector: Sequence[RetrievalCandidate],
    full_text: Sequence[RetrievalCandidate],
    k: int,
) -> List[RetrievalCandidate]:
    merged = hybrid_search_merge(vector, full_text, get_key=lambda c: c.id, k=k)
    return [replace(m.item, score=m.hybrid_score) for m in merged]


@dataclass
class CorpusResults:
    """Vector and full-text hits for one corpus, each best-first."""

    vector: List[RetrievalCandidate] = field(default_factory=list)
    full_text: List[RetrievalCandidate] = field(default_factory=list)


def assemble_unified_results(
    corpora: Dict[str, CorpusResults],
    *,
    top_k: int,
    trigger_type: str = "pr_review",
    k: int = DEFAULT_RRF_K,
    dedup_threshold: float = 0.9,
    recency_boost_days: float = 30,
    recency_boost_factor: float = 0.15,
    now: datetime | None = None,
) -> List[RetrievalCandidate]:
    """Fuse per-corpus rankings into one citation-ready list of at most top_k."""
    if top_k <= 0:
        return []

    source_lists: List[RankedSourceList] = []
    for source, results in corpora.items():
        ranked = _hybrid_corpus(results.vector, results.full_text, k)
        deduped = deduplicate_candidates(
            ranked, similarity_threshold=dedup_threshold, mode="within-corpus"
        )
        if deduped:
            source_lists.append(RankedSourceList(source=source, items=deduped))

    fusion = ReciprocalRankFusion(
        k=k,
        recency_boost_days=recency_boost_days,
        recency_boost_factor=recency_boost_factor,
    )
    fused = fusion.fuse(source_lists, top_k=top_k * 2, now=now)

    weights = SOURCE_WEIGHTS.get(trigger_type, SOURCE_WEIGHTS["slack"])
    for candidate in fused:
        candidate.score *= weights.get(candidate.source, 1.0)
    fused.sort(key=lambda c: c.score, reverse=True)

    unified = deduplicate_candidates(
        fused[:top_k], similarity_threshold=dedup_threshold, mode="cross-corpus"
    )
    logger.debug(
        "Unified %d corpora into %d results (trigger=%s)",
        len(source_lists),
        len(unified),
        trigger_type,
    )
    return unified


def assemble_context_window(
    candidates: Sequence[RetrievalCandidate], max_chars: int
) -> str:
    """Label-prefixed evidence blocks within max_chars, plus a missing-corpus note."""
    parts: List[str] = []
    total = 0
    for candidate in candidates:
        entry = f"{candidate.source_label}: {candidate.text}"
        if total + len(entry) > max_chars:
            break
        parts.append(entry)
        total += len(entry)

    text = "\n\n".join(parts)
    if candidates:
        present = {c.source for c in candidates}
        missing = [label for source, label in _CORPUS_NAMES if source not in present]
        if missing:
            text += f"\n\nNote: {', '.join(missing)} corpus not yet available."
    return text
