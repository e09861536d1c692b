"""Language-affinity reranking of finding-memory results."""

from __future__ import annotations

import logging
from typing import Iterable, List, Sequence

from review_evidence.languages import (
    UNKNOWN_LANGUAGE,
    are_related_languages,
    classify_file_language,
    normalize_language,
)

from .config import RerankConfig
from .types import MergedResult, MemoryResult, RerankedResult

logger = logging.getLogger(__name__)


def resolve_language(result: MemoryResult) -> str:
    """Stored language first, then the file extension for older records."""
    if result.record.language:
        return normalize_language(result.record.language)
    return classify_file_language(result.record.file_path)


def _validate(config: RerankConfig) -> None:
    if not 0.0 < config.same_language_boost <= 1.0:
        raise ValueError("same_language_boost must be within (0, 1]")
    if not 0.0 <= config.related_language_ratio <= 1.0:
        raise ValueError("related_language_ratio must be within [0, 1]")


def rerank_by_language(
    results: Sequence[MemoryResult],
    pr_languages: Iterable[str],
    config: RerankConfig | None = None,
) -> List[RerankedResult]:
    """Scale distances by language affinity with the PR and sort ascending.

    Exact matches get ``same_language_boost``, related languages get a
    partial boost, and everything else (including unknown) keeps its
    distance. No result's distance ever grows.
    """
    config = config or RerankConfig()
    _validate(config)

    pr_langs = {normalize_language(lang) for lang in pr_languages}
    pr_langs.discard(UNKNOWN_LANGUAGE)
    related_boost = config.related_language_boost

    reranked: List[RerankedResult] = []
    for result in results:
        language = resolve_language(result)

        if language == UNKNOWN_LANGUAGE:
            multiplier, language_match = 1.0, False
        elif language in pr_langs:
            multiplier, language_match = config.same_language_boost, True
        elif any(are_related_languages(language, pr_lang) for pr_lang in pr_langs):
            multiplier, language_match = related_boost, False
        else:
            multiplier, language_match = 1.0, False

        score = result.score if isinstance(result, MergedResult) else 0.0
        matched = list(result.matched_variants) if isinstance(result, MergedResult) else []
        reranked.append(
            RerankedResult(
                memory_id=result.memory_id,
                distance=result.distance,
                record=result.record,
                source_repo=result.source_repo,
                score=score,
                matched_variants=matched,
                adjusted_distance=result.distance * multiplier,
                language_match=language_match,
            )
        )

    reranked.sort(key=lambda r: r.adjusted_distance)
    logger.debug(
        "Language rerank: %d results, %d exact matches",
        len(reranked),
        sum(1 for r in reranked if r.language_match),
    )
    return reranked
