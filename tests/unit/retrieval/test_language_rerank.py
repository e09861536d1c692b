from __future__ import annotations

import pytest

from review_evidence.retrieval.config import RerankConfig
from review_evidence.retrieval.rerank import rerank_by_language, resolve_language
from review_evidence.retrieval.types import MergedResult
from tests.helpers.retrieval_factories import make_memory


def test_exact_language_match_is_boosted():
    result = rerank_by_language([make_memory(1, 0.5, file_path="a.py")], ["Python"])

    assert result[0].adjusted_distance == pytest.approx(0.425)
    assert result[0].language_match is True


def test_related_language_gets_partial_boost():
    result = rerank_by_language([make_memory(1, 0.5, file_path="lib.c")], ["cpp"])

    assert result[0].adjusted_distance == pytest.approx(0.4625)
    assert result[0].language_match is False


@pytest.mark.parametrize("file_path", ["main.go", "Makefile", "notes.unknownext"])
def test_unmatched_and_unknown_languages_keep_their_distance(file_path):
    result = rerank_by_language([make_memory(1, 0.5, file_path=file_path)], ["python"])

    assert result[0].adjusted_distance == pytest.approx(0.5)
    assert result[0].language_match is False


def test_stored_language_takes_precedence_over_extension():
    stored = make_memory(1, 0.5, file_path="script.txt", language="Python")

    assert resolve_language(stored) == "python"
    assert rerank_by_language([stored], ["python"])[0].language_match is True


def test_results_are_sorted_by_adjusted_distance():
    results = [
        make_memory(1, 0.40, file_path="a.go"),
        make_memory(2, 0.45, file_path="b.py"),
    ]

    reranked = rerank_by_language(results, ["python"])

    assert [r.memory_id for r in reranked] == [2, 1]
    assert reranked[0].adjusted_distance == pytest.approx(0.3825)


def test_no_result_is_ever_penalized():
    results = [
        make_memory(i, 0.1 * i, file_path=path)
        for i, path in enumerate(["a.py", "b.ts", "c.js", "d", "e.rs"], start=1)
    ]

    for r in rerank_by_language(results, ["typescript", "python"]):
        assert r.adjusted_distance <= r.distance


def test_empty_pr_languages_leaves_distances_unchanged():
    reranked = rerank_by_language([make_memory(1, 0.3, file_path="a.py")], [])

    assert reranked[0].adjusted_distance == pytest.approx(0.3)


def test_merge_metadata_is_carried_through():
    base = make_memory(7, 0.2, file_path="a.py")
    merged = MergedResult(
        memory_id=base.memory_id,
        distance=base.distance,
        record=base.record,
        source_repo=base.source_repo,
        score=1.5,
        matched_variants=["intent", "file-path"],
    )

    reranked = rerank_by_language([merged], ["python"])

    assert reranked[0].score == 1.5
    assert reranked[0].matched_variants == ["intent", "file-path"]


def test_custom_config_and_validation():
    config = RerankConfig(same_language_boost=0.5, related_language_ratio=1.0)
    reranked = rerank_by_language([make_memory(1, 0.4, file_path="a.js")], ["ts"], config)

    assert reranked[0].adjusted_distance == pytest.approx(0.2)
    with pytest.raises(ValueError):
        rerank_by_language([], ["python"], RerankConfig(same_language_boost=0.0))
