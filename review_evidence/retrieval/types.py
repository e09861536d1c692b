"""Shared datatypes for evidence retrieval.

These types are intentionally lightweight and dependency-free so they can be
used across the retrieval package (fusion, dedup, reranking, anchoring and the
orchestrator).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal

SourceType = Literal["code", "review_comment", "wiki"]
VariantType = Literal["intent", "file-path", "code-shape"]
DedupMode = Literal["within-corpus", "cross-corpus"]
TriggerType = Literal["pr_review", "issue", "question", "slack"]


@dataclass
class RetrievalCandidate:
    """Unit of ranking shared by all corpora."""

    id: str
    text: str
    source: str
    source_label: str
    source_url: str | None = None
    vector_distance: float | None = None
    score: float = 0.0  # fusion score, higher is better
    created_at: datetime | None = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    alternate_sources: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class RankedSourceList:
    """Best-first candidates from one corpus or query. Only rank position is read."""

    source: str
    items: List[RetrievalCandidate]


@dataclass(frozen=True)
class RetrievalVariant:
    type: VariantType
    query: str
    priority: int


@dataclass(frozen=True)
class SnippetAnchor:
    """Displayable ``path[:line]`` pointer to evidence."""

    path: str
    anchor: str
    distance: float
    line: int | None = None
    snippet: str | None = None


@dataclass(frozen=True)
class MemoryRecord:
    """Stored code finding from a previous review."""

    repo: str
    owner: str
    source_repo: str
    finding_text: str
    file_path: str
    severity: str = "minor"
    category: str = "correctness"
    outcome: str = "accepted"
    id: int | None = None
    language: str | None = None
    created_at: datetime | None = None


@dataclass
class MemoryResult:
    """Single vector-search hit against the finding memory."""

    memory_id: int
    distance: float
    record: MemoryRecord
    source_repo: str


@dataclass
class MergedResult(MemoryResult):
    score: float = 0.0
    matched_variants: List[VariantType] = field(default_factory=list)


@dataclass
class RerankedResult(MergedResult):
    adjusted_distance: float = 0.0
    language_match: bool = False


@dataclass
class VariantOutcome:
    """Outcome of one variant execution: results on success, error on failure."""

    variant: RetrievalVariant
    results: List[MemoryResult] | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ReviewCommentMatch:
    chunk_text: str
    distance: float
    repo: str
    pr_number: int
    author_login: str = "unknown"
    pr_title: str | None = None
    file_path: str | None = None
    author_association: str | None = None
    created_at: datetime | None = None
    start_line: int | None = None
    end_line: int | None = None
    chunk_id: str | None = None


@dataclass(frozen=True)
class WikiKnowledgeMatch:
    chunk_text: str
    distance: float
    page_id: int
    page_title: str
    page_url: str | None = None
    namespace: str = ""
    section_heading: str | None = None
    last_modified: datetime | None = None
    chunk_id: str | None = None


@dataclass
class Provenance:
    """Audit metadata describing how a result was produced."""

    query_count: int
    candidate_count: int
    shared_pool_used: bool
    threshold_method: str
    threshold_value: float
    review_comment_count: int = 0
    wiki_page_count: int = 0
    unified_result_count: int = 0
    hybrid_search_used: bool = False
    rrf_k: int = 60
    dedup_threshold: float = 0.9
    trigger_type: str = "pr_review"

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RetrieveResult:
    findings: List[RerankedResult]
    snippet_anchors: List[SnippetAnchor]
    provenance: Provenance
    unified_results: List[RetrievalCandidate] = field(default_factory=list)
    context_window: str = ""
    review_precedents: List[ReviewCommentMatch] = field(default_factory=list)
    wiki_knowledge: List[WikiKnowledgeMatch] = field(default_factory=list)
