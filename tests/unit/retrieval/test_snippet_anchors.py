from __future__ import annotations

import random

import pytest

from review_evidence.retrieval.snippets import (
    anchor_char_weight,
    build_snippet_anchors,
    find_best_line_number,
    sanitize_snippet,
    tokenize_finding_text,
    trim_snippet_anchors_to_budget,
)
from review_evidence.retrieval.types import SnippetAnchor
from tests.helpers.retrieval_factories import make_memory

SOURCE = "\n".join(
    [
        "def refresh(session):",
        "    if token_refresh is None:  # missing null check",
        "        return None",
    ]
)
FINDING = "Missing null check on token refresh"


@pytest.fixture
def workspace(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.py").write_text(SOURCE, encoding="utf-8")
    return tmp_path


def test_tokenize_keeps_distinct_tokens_of_three_or_more_chars():
    assert tokenize_finding_text("Use a `DB` index; use the DB index!") == [
        "use",
        "index",
        "the",
    ]


def test_best_line_prefers_phrase_matches_and_earliest_tie():
    lines = ["token refresh", "refresh token", "token refresh"]

    assert find_best_line_number(lines, "token refresh") == 1
    assert find_best_line_number(["nothing relevant"], "token refresh") is None
    assert find_best_line_number(lines, "a b") is None


def test_anchor_points_at_matching_line(workspace):
    finding = make_memory(1, 0.2, file_path="src/app.py", finding_text=FINDING)

    anchors = build_snippet_anchors(workspace, [finding])

    assert anchors == [
        SnippetAnchor(
            path="src/app.py",
            anchor="src/app.py:2",
            distance=0.2,
            line=2,
            snippet="if token_refresh is None: # missing null check",
        )
    ]


@pytest.mark.parametrize(
    "file_path, finding_text",
    [
        ("src/missing.py", FINDING),
        ("../outside.py", FINDING),
        ("src/app.py", "completely unrelated wording"),
        ("", FINDING),
    ],
)
def test_unresolvable_findings_fall_back_to_path_anchor(workspace, file_path, finding_text):
    finding = make_memory(1, 0.2, file_path=file_path, finding_text=finding_text)

    anchors = build_snippet_anchors(workspace, [finding])

    assert anchors == [SnippetAnchor(path=file_path, anchor=file_path, distance=0.2)]


def test_read_failures_never_raise(workspace):
    def broken_reader(path: str) -> str:
        raise PermissionError(path)

    finding = make_memory(1, 0.2, file_path="src/app.py", finding_text=FINDING)

    anchors = build_snippet_anchors(workspace, [finding], read_file=broken_reader)

    assert anchors[0].anchor == "src/app.py"
    assert anchors[0].line is None


def test_each_file_is_read_once(workspace):
    reads = []

    def reader(path: str) -> str:
        reads.append(path)
        return SOURCE

    findings = [
        make_memory(i, 0.1 * i, file_path="src/app.py", finding_text=FINDING)
        for i in (1, 2)
    ]

    anchors = build_snippet_anchors(workspace, findings, read_file=reader)

    assert len(reads) == 1
    assert [a.anchor for a in anchors] == ["src/app.py:2", "src/app.py:2"]


def test_sanitize_snippet_replaces_backticks_and_truncates():
    assert sanitize_snippet("call  `eval`\there") == "call 'eval' here"
    assert sanitize_snippet("x" * 200, max_chars=180) == "x" * 180 + "..."


def _anchors():
    return [
        SnippetAnchor("a.py", "a.py:3", 0.30, 3, "first snippet"),
        SnippetAnchor("b.py", "b.py", 0.10),
        SnippetAnchor("c.py", "c.py:9", 0.20, 9, "another snippet here"),
        SnippetAnchor("a.py", "a.py:1", 0.30, 1, "tie on distance"),
    ]


def test_trim_orders_by_distance_then_location():
    trimmed = trim_snippet_anchors_to_budget(_anchors(), max_chars=10_000, max_items=10)

    assert [a.anchor for a in trimmed] == ["b.py", "c.py:9", "a.py:1", "a.py:3"]


def test_trim_respects_item_and_char_caps():
    anchors = _anchors()
    by_items = trim_snippet_anchors_to_budget(anchors, max_chars=10_000, max_items=2)
    budget = anchor_char_weight(anchors[1]) + anchor_char_weight(anchors[2])
    by_chars = trim_snippet_anchors_to_budget(anchors, max_chars=budget, max_items=10)

    assert [a.anchor for a in by_items] == ["b.py", "c.py:9"]
    assert [a.anchor for a in by_chars] == ["b.py", "c.py:9"]
    assert sum(anchor_char_weight(a) for a in by_chars) <= budget


def test_trim_with_empty_budget_returns_nothing():
    assert trim_snippet_anchors_to_budget(_anchors(), max_chars=0, max_items=5) == []
    assert trim_snippet_anchors_to_budget(_anchors(), max_chars=100, max_items=0) == []
    assert trim_snippet_anchors_to_budget([], max_chars=100, max_items=5) == []


@pytest.mark.parametrize("seed", [0, 1, 2, 3])
def test_trim_is_independent_of_input_order(seed):
    anchors = _anchors()
    baseline = trim_snippet_anchors_to_budget(anchors, max_chars=40, max_items=3)

    random.Random(seed).shuffle(anchors)

    assert trim_snippet_anchors_to_budget(anchors, max_chars=40, max_items=3) == baseline
