"""Multi-query retrieval variants: construction, bounded execution and merging."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Sequence, Set, Tuple

from .types import MemoryResult, MergedResult, RetrievalVariant, VariantOutcome, VariantType

logger = logging.getLogger(__name__)

# Keep small: each variant does one embedding call and one vector search.
MAX_VARIANT_CONCURRENCY = 2

VARIANT_TYPE_SEQUENCE: Tuple[VariantType, ...] = ("intent", "file-path", "code-shape")

VARIANT_PRIORITY: Dict[str, int] = {"intent": 0, "file-path": 1, "code-shape": 2}
VARIANT_WEIGHT: Dict[str, float] = {"intent": 1.0, "file-path": 0.95, "code-shape": 0.9}

MAX_QUERY_LENGTH = 800
MAX_BODY_LENGTH = 200
MAX_LANGUAGES = 5
MAX_RISK_SIGNALS = 5
MAX_FILE_PATHS = 8

VariantExecutor = Callable[[RetrievalVariant], List[MemoryResult]]


def build_query_variants(queries: Sequence[str]) -> List[RetrievalVariant]:
    """One variant per raw query; types are assigned by position."""
    return [
        RetrievalVariant(
            type=VARIANT_TYPE_SEQUENCE[index] if index < len(VARIANT_TYPE_SEQUENCE) else "intent",
            query=query,
            priority=min(index, 2),
        )
        for index, query in enumerate(queries)
    ]


@dataclass
class PullRequestContext:
    """PR signals used to derive the three canonical query variants."""

    title: str
    body: str | None = None
    conventional_type: str | None = None
    author_tier: str | None = None
    pr_languages: List[str] = field(default_factory=list)
    risk_signals: List[str] = field(default_factory=list)
    file_paths: List[str] = field(default_factory=list)


def _normalize_text(value: str | None) -> str:
    return " ".join((value or "").split()).lower()


def _normalize_list(values: Iterable[str], limit: int, sort: bool = True) -> List[str]:
    deduped: List[str] = []
    seen: Set[str] = set()
    for value in values:
        normalized = _normalize_text(value)
        if normalized and normalized not in seen:
            seen.add(normalized)
            deduped.append(normalized)
    if sort:
        deduped.sort()
    return deduped[:limit]


def _bounded_join(parts: Iterable[str]) -> str:
    return "\n".join(p for p in parts if p).strip()[:MAX_QUERY_LENGTH]


def build_retrieval_variants(context: PullRequestContext) -> List[RetrievalVariant]:
    title = _normalize_text(context.title)
    body = _normalize_text(context.body)[:MAX_BODY_LENGTH]
    conventional_type = _normalize_text(context.conventional_type)
    author_tier = _normalize_text(context.author_tier)
    languages = _normalize_list(context.pr_languages, MAX_LANGUAGES)
    risk_signals = _normalize_list(context.risk_signals, MAX_RISK_SIGNALS)
    file_paths = _normalize_list(context.file_paths, MAX_FILE_PATHS, sort=False)

    intent = _bounded_join(
        [
            title,
            body,
            f"[{conventional_type}]" if conventional_type else "",
            f"author: {author_tier}" if author_tier else "",
        ]
    )
    file_path = _bounded_join([title, "files:", *file_paths])
    code_shape = _bounded_join(
        [
            title,
            f"languages: {' '.join(languages)}" if languages else "",
            f"risk: {' '.join(risk_signals)}" if risk_signals else "",
            f"type: {conventional_type}" if conventional_type else "",
        ]
    )

    return [
        RetrievalVariant(type="intent", query=intent, priority=VARIANT_PRIORITY["intent"]),
        RetrievalVariant(type="file-path", query=file_path, priority=VARIANT_PRIORITY["file-path"]),
        RetrievalVariant(
            type="code-shape", query=code_shape, priority=VARIANT_PRIORITY["code-shape"]
        ),
    ]


def _run_variant(execute: VariantExecutor, variant: RetrievalVariant) -> VariantOutcome:
    try:
        return VariantOutcome(variant=variant, results=list(execute(variant)))
    except Exception as e:
        return VariantOutcome(variant=variant, error=e)


def execute_retrieval_variants(
    variants: Sequence[RetrievalVariant],
    execute: VariantExecutor,
    max_concurrency: int = MAX_VARIANT_CONCURRENCY,
) -> List[VariantOutcome]:
    """Run every variant with at most ``max_concurrency`` in flight.

    A failing variant yields an outcome carrying its error; siblings are
    unaffected. Outcomes are returned in input order once all have settled.
    """
    if not variants:
        return []
    if max_concurrency <= 0:
        raise ValueError("max_concurrency must be positive")

    workers = min(max_concurrency, len(variants))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(_run_variant, execute, v) for v in variants]
        return [future.result() for future in futures]


def _stable_key(result: MemoryResult) -> str:
    record_id = result.record.id if result.record.id is not None else result.memory_id
    return f"id:{record_id}"


@dataclass
class _MergeEntry:
    representative: MemoryResult
    weighted_score: float
    best_distance: float
    best_priority: int
    matched: Set[str]


def merge_variant_results(
    outcomes: Sequence[VariantOutcome], top_k: int
) -> List[MergedResult]:
    """Pool successful variant results keyed by memory id.

    Each hit contributes ``variant_weight / (1 + distance)``; the
    representative is the lowest-distance hit. Output is ordered by score,
    then best distance, best variant priority and key, and capped to top_k.
    """
    if top_k <= 0 or not outcomes:
        return []

    merged: Dict[str, _MergeEntry] = {}
    for outcome in outcomes:
        if not outcome.ok or not outcome.results:
            continue

        variant_type = outcome.variant.type
        priority = VARIANT_PRIORITY.get(variant_type, 0)
        weight = VARIANT_WEIGHT.get(variant_type, 1.0)
        ordered = sorted(outcome.results, key=lambda r: (r.distance, _stable_key(r)))

        for result in ordered:
            key = _stable_key(result)
            score = weight / (1 + max(0.0, result.distance))
            entry = merged.get(key)
            if entry is None:
                merged[key] = _MergeEntry(
                    representative=result,
                    weighted_score=score,
                    best_distance=result.distance,
                    best_priority=priority,
                    matched={variant_type},
                )
                continue

            entry.weighted_score += score
            entry.best_distance = min(entry.best_distance, result.distance)
            entry.best_priority = min(entry.best_priority, priority)
            entry.matched.add(variant_type)
            if result.distance < entry.representative.distance:
                entry.representative = result

    ranked = sorted(
        merged.items(),
        key=lambda kv: (
            -round(kv[1].weighted_score, 8),
            kv[1].best_distance,
            kv[1].best_priority,
            kv[0],
        ),
    )

    out: List[MergedResult] = []
    for _key, entry in ranked[:top_k]:
        rep = entry.representative
        out.append(
            MergedResult(
                memory_id=rep.memory_id,
                distance=rep.distance,
                record=rep.record,
                source_repo=rep.source_repo,
                score=round(entry.weighted_score, 8),
                matched_variants=sorted(entry.matched, key=lambda t: VARIANT_PRIORITY.get(t, 0)),
            )
        )
    return out
