"""Evidence retrieval package.

Public API:
- Retriever
- ReciprocalRankFusion / cross_corpus_rrf
- deduplicate_candidates
- rerank_by_language
- build_snippet_anchors / trim_snippet_anchors_to_budget
"""

from .adaptive_threshold import AdaptiveThresholdResult, compute_adaptive_threshold
from .config import DEFAULT_CONFIG_PATH, ConfigError, RetrieverConfig, load_retriever_config
from .dedup import deduplicate_candidates, jaccard_similarity
from .isolation import PostgresMemoryStore, RepoIsolationLayer, RetrievalWithProvenance
from .recency import apply_recency_weighting
from .rerank import rerank_by_language
from .retriever import EmbeddingUnavailableError, Retriever
from .rrf import DEFAULT_RRF_K, ReciprocalRankFusion, cross_corpus_rrf, hybrid_search_merge
from .snippets import build_snippet_anchors, trim_snippet_anchors_to_budget
from .types import (
    Provenance,
    RankedSourceList,
    RetrievalCandidate,
    RetrievalVariant,
    RetrieveResult,
    SnippetAnchor,
)
from .unified import assemble_context_window, assemble_unified_results
from .variants import (
    MAX_VARIANT_CONCURRENCY,
    build_query_variants,
    build_retrieval_variants,
    execute_retrieval_variants,
    merge_variant_results,
)

__all__ = [
    "AdaptiveThresholdResult",
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_RRF_K",
    "EmbeddingUnavailableError",
    "MAX_VARIANT_CONCURRENCY",
    "PostgresMemoryStore",
    "Provenance",
    "RankedSourceList",
    "ReciprocalRankFusion",
    "RepoIsolationLayer",
    "RetrievalCandidate",
    "RetrievalVariant",
    "RetrievalWithProvenance",
    "RetrieveResult",
    "Retriever",
    "RetrieverConfig",
    "SnippetAnchor",
    "apply_recency_weighting",
    "assemble_context_window",
    "assemble_unified_results",
    "build_query_variants",
    "build_retrieval_variants",
    "build_snippet_anchors",
    "compute_adaptive_threshold",
    "cross_corpus_rrf",
    "deduplicate_candidates",
    "execute_retrieval_variants",
    "hybrid_search_merge",
    "jaccard_similarity",
    "load_retriever_config",
    "merge_variant_results",
    "rerank_by_language",
    "trim_snippet_anchors_to_budget",
]
