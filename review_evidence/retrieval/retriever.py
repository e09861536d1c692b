from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, List, Sequence

from .adaptive_threshold import METHOD_CONFIGURED, ThresholdComputer, compute_adaptive_threshold
from .config import RetrieverConfig
from .isolation import IsolationLayer
from .recency import RecencyWeighter, apply_recency_weighting
from .rerank import rerank_by_language
from .snippets import ReadFile, build_snippet_anchors, trim_snippet_anchors_to_budget
from .types import (
    MemoryResult,
    Provenance,
    RerankedResult,
    RetrievalVariant,
    RetrieveResult,
    ReviewCommentMatch,
    SnippetAnchor,
    WikiKnowledgeMatch,
)
from .unified import (
    CorpusResults,
    ReviewCommentSearcher,
    WikiSearcher,
    assemble_context_window,
    assemble_unified_results,
    memory_to_candidate,
    review_match_to_candidate,
    wiki_match_to_candidate,
)
from .variants import (
    MAX_VARIANT_CONCURRENCY,
    build_query_variants,
    execute_retrieval_variants,
    merge_variant_results,
)

if TYPE_CHECKING:
    from review_evidence.embeddings import EmbeddingProvider

logger = logging.getLogger(__name__)

# Per-corpus cap for review comment and wiki searches.
CORPUS_TOP_K = 5

Logger = logging.Logger | logging.LoggerAdapter


class EmbeddingUnavailableError(RuntimeError):
    """The embedding provider returned no vector for a variant query."""


class Retriever:
    """Evidence retriever: multi-query memory search, reranking and anchoring.

    Collaborators are injected so tests and callers can substitute any of
    them; only their call contracts are relied on.
    """

    def __init__(
        self,
        embedding_provider: "EmbeddingProvider",
        isolation_layer: IsolationLayer,
        config: RetrieverConfig | None = None,
        *,
        recency: RecencyWeighter | None = None,
        threshold: ThresholdComputer | None = None,
        read_file: ReadFile | None = None,
        review_searcher: ReviewCommentSearcher | None = None,
        wiki_searcher: WikiSearcher | None = None,
        max_variant_concurrency: int = MAX_VARIANT_CONCURRENCY,
    ):
        if max_variant_concurrency <= 0:
            raise ValueError("max_variant_concurrency must be positive")

        self.embedding_provider = embedding_provider
        self.isolation_layer = isolation_layer
        self.config = config or RetrieverConfig()
        self._recency = recency or partial(apply_recency_weighting, config=self.config.recency)
        self._threshold = threshold or partial(
            compute_adaptive_threshold, config=self.config.adaptive_threshold
        )
        self._read_file = read_file
        self._review_searcher = review_searcher
        self._wiki_searcher = wiki_searcher
        self._max_variant_concurrency = max_variant_concurrency

    def retrieve(
        self,
        repo: str,
        owner: str,
        queries: Sequence[str],
        *,
        logger: Logger | None = None,
        workspace_dir: str | Path | None = None,
        pr_languages: Sequence[str] | None = None,
        top_k: int | None = None,
        distance_threshold: float | None = None,
        adaptive: bool | None = None,
        max_context_chars: int | None = None,
        trigger_type: str = "pr_review",
        now: datetime | None = None,
    ) -> RetrieveResult | None:
        """Run the retrieval pipeline.

        Returns None when retrieval is disabled or no queries were given.
        Any failure past that point is logged and turned into an empty
        result, so callers never see an exception from here.
        """
        settings = self.config.retrieval
        if not settings.enabled or not queries:
            return None

        log = logger or logging.getLogger(__name__)
        top_k = settings.top_k if top_k is None else top_k
        distance_threshold = (
            settings.distance_threshold if distance_threshold is None else distance_threshold
        )
        adaptive = settings.adaptive if adaptive is None else adaptive
        max_context_chars = (
            settings.max_context_chars if max_context_chars is None else max_context_chars
        )

        try:
            return self._run(
                repo=repo,
                owner=owner,
                queries=list(queries),
                log=log,
                workspace_dir=workspace_dir,
                pr_languages=list(pr_languages or []),
                top_k=top_k,
                distance_threshold=distance_threshold,
                adaptive=adaptive,
                max_context_chars=max_context_chars,
                trigger_type=trigger_type,
                now=now,
            )
        except Exception as e:
            log.warning("Retrieval pipeline failed (fail-open): %s", e, exc_info=True)
            return self._empty_result(len(queries), distance_threshold, trigger_type)

    async def retrieve_async(
        self, repo: str, owner: str, queries: Sequence[str], **kwargs
    ) -> RetrieveResult | None:
        """Run ``retrieve`` in the event loop's default executor."""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None, partial(self.retrieve, repo, owner, queries, **kwargs)
        )

    def _empty_result(
        self, query_count: int, distance_threshold: float, trigger_type: str
    ) -> RetrieveResult:
        return RetrieveResult(
            findings=[],
            snippet_anchors=[],
            provenance=Provenance(
                query_count=query_count,
                candidate_count=0,
                shared_pool_used=False,
                threshold_method=METHOD_CONFIGURED,
                threshold_value=distance_threshold,
                rrf_k=self.config.fusion.rrf_k,
                dedup_threshold=self.config.fusion.dedup_threshold,
                trigger_type=trigger_type,
            ),
        )

    def _run(
        self,
        *,
        repo: str,
        owner: str,
        queries: List[str],
        log: Logger,
        workspace_dir: str | Path | None,
        pr_languages: List[str],
        top_k: int,
        distance_threshold: float,
        adaptive: bool,
        max_context_chars: int,
        trigger_type: str,
        now: datetime | None,
    ) -> RetrieveResult:
        if top_k <= 0:
            raise ValueError("top_k must be positive")

        variants = build_query_variants(queries)
        variant_top_k = max(1, math.ceil(top_k / len(variants)))

        def execute(variant: RetrievalVariant) -> List[MemoryResult]:
            embedded = self.embedding_provider.generate(variant.query, "query")
            if embedded is None:
                raise EmbeddingUnavailableError(
                    f"Embedding unavailable for {variant.type} retrieval variant"
                )
            retrieval = self.isolation_layer.retrieve_with_isolation(
                query_embedding=embedded.embedding,
                repo=repo,
                owner=owner,
                sharing_enabled=self.config.sharing.enabled,
                top_k=variant_top_k,
                distance_threshold=distance_threshold,
                adaptive=adaptive,
                logger=log,
            )
            return retrieval.results

        outcomes = execute_retrieval_variants(
            variants, execute, max_concurrency=self._max_variant_concurrency
        )
        for outcome in outcomes:
            if not outcome.ok:
                log.warning(
                    "Retrieval variant %s failed (fail-open): %s",
                    outcome.variant.type,
                    outcome.error,
                )

        merged = merge_variant_results(outcomes, top_k)
        language_reranked = (
            rerank_by_language(merged, pr_languages, self.config.rerank) if merged else []
        )
        reranked = self._recency(language_reranked, now=now) if language_reranked else []

        threshold_method = METHOD_CONFIGURED
        threshold_value = distance_threshold
        findings: List[RerankedResult] = reranked[:top_k]
        if adaptive and reranked:
            decision = self._threshold(
                [r.adjusted_distance for r in reranked], distance_threshold
            )
            threshold_method = decision.method
            threshold_value = decision.threshold
            findings = [r for r in reranked if r.adjusted_distance <= decision.threshold][
                :top_k
            ]

        snippet_anchors: List[SnippetAnchor] = []
        if workspace_dir and findings:
            snippet_anchors = build_snippet_anchors(
                workspace_dir,
                findings,
                read_file=self._read_file,
                max_snippet_chars=self.config.snippets.max_snippet_chars,
            )
            snippet_anchors = trim_snippet_anchors_to_budget(
                snippet_anchors, max_chars=max_context_chars, max_items=top_k
            )

        review_vector, review_full_text = self._search_reviews(queries[0], repo, log)
        wiki_vector, wiki_full_text = self._search_wiki(queries[0], log)
        fusion = self.config.fusion
        unified = assemble_unified_results(
            {
                "code": CorpusResults(vector=[memory_to_candidate(r) for r in findings]),
                "review_comment": CorpusResults(
                    vector=[review_match_to_candidate(m) for m in review_vector],
                    full_text=[review_match_to_candidate(m) for m in review_full_text],
                ),
                "wiki": CorpusResults(
                    vector=[wiki_match_to_candidate(m) for m in wiki_vector],
                    full_text=[wiki_match_to_candidate(m) for m in wiki_full_text],
                ),
            },
            top_k=top_k,
            trigger_type=trigger_type,
            k=fusion.rrf_k,
            dedup_threshold=fusion.dedup_threshold,
            recency_boost_days=fusion.recency_boost_days,
            recency_boost_factor=fusion.recency_boost_factor,
            now=now,
        )

        own_repo = {repo, f"{owner}/{repo}"}
        successful = [o for o in outcomes if o.ok and o.results]
        provenance = Provenance(
            query_count=len(queries),
            candidate_count=sum(len(o.results or []) for o in outcomes if o.ok),
            shared_pool_used=any(
                r.source_repo not in own_repo for o in successful for r in o.results or []
            ),
            threshold_method=threshold_method,
            threshold_value=threshold_value,
            review_comment_count=len(review_vector),
            wiki_page_count=len(wiki_vector),
            unified_result_count=len(unified),
            hybrid_search_used=bool(review_full_text or wiki_full_text),
            rrf_k=fusion.rrf_k,
            dedup_threshold=fusion.dedup_threshold,
            trigger_type=trigger_type,
        )
        log.debug(
            "Retrieval for %s/%s: %d variants, %d candidates, %d findings, %d anchors",
            owner,
            repo,
            len(variants),
            provenance.candidate_count,
            len(findings),
            len(snippet_anchors),
        )

        return RetrieveResult(
            findings=findings,
            snippet_anchors=snippet_anchors,
            provenance=provenance,
            unified_results=unified,
            context_window=assemble_context_window(unified, max_context_chars),
            review_precedents=review_vector,
            wiki_knowledge=wiki_vector,
        )

    def _search_reviews(
        self, query: str, repo: str, log: Logger
    ) -> tuple[List[ReviewCommentMatch], List[ReviewCommentMatch]]:
        if self._review_searcher is None:
            return [], []
        vector: List[ReviewCommentMatch] = []
        full_text: List[ReviewCommentMatch] = []
        try:
            vector = self._review_searcher.search(query, repo=repo, top_k=CORPUS_TOP_K)
        except Exception as e:
            log.warning("Review comment vector search failed (fail-open): %s", e)
        try:
            full_text = self._review_searcher.search_full_text(
                query, repo=repo, top_k=CORPUS_TOP_K
            )
        except Exception as e:
            log.warning("Review comment full-text search failed (fail-open): %s", e)
        return vector, full_text

    def _search_wiki(
        self, query: str, log: Logger
    ) -> tuple[List[WikiKnowledgeMatch], List[WikiKnowledgeMatch]]:
        if self._wiki_searcher is None:
            return [], []
        vector: List[WikiKnowledgeMatch] = []
        full_text: List[WikiKnowledgeMatch] = []
        try:
            vector = self._wiki_searcher.search(query, top_k=CORPUS_TOP_K)
        except Exception as e:
            log.warning("Wiki vector search failed (fail-open): %s", e)
        try:
            full_text = self._wiki_searcher.search_full_text(query, top_k=CORPUS_TOP_K)
        except Exception as e:
            log.warning("Wiki full-text search failed (fail-open): %s", e)
        return vector, full_text
