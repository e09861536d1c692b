"""Near-duplicate collapsing for retrieval candidates.

Similarity is token-level Jaccard over lower-cased, whitespace-split text, so
no extra embedding calls are needed. The 0.90 default catches copy-paste and
reformatted duplicates without merging merely related content.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, FrozenSet, List, Sequence

from .types import DedupMode, RetrievalCandidate

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.9

_MODES = ("within-corpus", "cross-corpus")


def _tokens(text: str) -> FrozenSet[str]:
    return frozenset(text.lower().split())


def _jaccard(tokens_a: FrozenSet[str], tokens_b: FrozenSet[str]) -> float:
    if not tokens_a and not tokens_b:
        return 1.0
    if not tokens_a or not tokens_b:
        return 0.0
    intersection = len(tokens_a & tokens_b)
    return intersection / (len(tokens_a) + len(tokens_b) - intersection)


def jaccard_similarity(text_a: str, text_b: str) -> float:
    """Jaccard similarity of the two texts' token sets, in [0, 1]."""
    return _jaccard(_tokens(text_a), _tokens(text_b))


def _rank_key(candidate: RetrievalCandidate):
    # Score desc; the remaining fields break ties so the walk order never
    # depends on input order.
    return (
        -candidate.score,
        candidate.id,
        candidate.text,
        candidate.source,
        candidate.source_label,
    )


def _dedup_group(
    ordered: Sequence[RetrievalCandidate], threshold: float
) -> List[RetrievalCandidate]:
    kept: List[RetrievalCandidate] = []
    kept_tokens: List[FrozenSet[str]] = []

    for candidate in ordered:
        tokens = _tokens(candidate.text)
        survivor = None
        for existing, existing_tokens in zip(kept, kept_tokens):
            if _jaccard(tokens, existing_tokens) >= threshold:
                survivor = existing
                break

        if survivor is None:
            kept.append(replace(candidate, alternate_sources=list(candidate.alternate_sources)))
            kept_tokens.append(tokens)
        elif candidate.source_label not in survivor.alternate_sources:
            survivor.alternate_sources.append(candidate.source_label)

    return kept


def deduplicate_candidates(
    candidates: Sequence[RetrievalCandidate],
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    mode: DedupMode = "cross-corpus",
) -> List[RetrievalCandidate]:
    """Collapse near-duplicate candidates, keeping the highest-scored one.

    Args:
        candidates: Candidates in any order.
        similarity_threshold: Jaccard similarity at or above which two
            candidates are considered duplicates.
        mode: "within-corpus" compares only candidates sharing a ``source``;
            "cross-corpus" compares across all sources.

    Returns:
        Survivors sorted by score descending. Each survivor lists the
        ``source_label`` of every candidate it absorbed in ``alternate_sources``.
    """
    if mode not in _MODES:
        raise ValueError(f"Unknown dedup mode: {mode!r}")
    if not 0.0 <= similarity_threshold <= 1.0:
        raise ValueError("similarity_threshold must be within [0, 1]")

    if len(candidates) <= 1:
        return list(candidates)

    ordered = sorted(candidates, key=_rank_key)

    if mode == "cross-corpus":
        kept = _dedup_group(ordered, similarity_threshold)
    else:
        by_source: Dict[str, List[RetrievalCandidate]] = {}
        for candidate in ordered:
            by_source.setdefault(candidate.source, []).append(candidate)
        kept = []
        for group in by_source.values():
            kept.extend(_dedup_group(group, similarity_threshold))
        kept.sort(key=_rank_key)

    if len(kept) < len(candidates):
        logger.debug(
            "Dedup (%s) collapsed %d candidates into %d",
            mode,
            len(candidates),
            len(kept),
        )
    return kept
