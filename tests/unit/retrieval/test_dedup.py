from __future__ import annotations

import random

import pytest

from review_evidence.retrieval.dedup import deduplicate_candidates, jaccard_similarity
from tests.helpers.retrieval_factories import make_candidate

BASE = "the retry loop never resets its backoff counter after a successful reconnect attempt"


def test_jaccard_similarity_edge_cases():
    assert jaccard_similarity("", "") == 1.0
    assert jaccard_similarity("abc", "") == 0.0
    assert jaccard_similarity("A b", "a B") == 1.0
    assert jaccard_similarity("a b c", "a b d") == pytest.approx(2 / 4)


def test_near_duplicates_collapse_into_one_survivor():
    assert len(BASE.split()) == 13
    first = make_candidate("a", BASE, score=0.5, label="[code: a.py]")
    second = make_candidate("b", BASE + " today", score=0.4, label="[code: b.py]")

    result = deduplicate_candidates([first, second], similarity_threshold=0.8)

    assert len(result) == 1
    assert result[0].id == "a"
    assert result[0].alternate_sources == ["[code: b.py]"]


def test_highest_score_survives_regardless_of_position():
    low = make_candidate("low", BASE, score=0.1, label="[low]")
    high = make_candidate("high", BASE, score=0.9, label="[high]")

    result = deduplicate_candidates([low, high])

    assert [c.id for c in result] == ["high"]
    assert result[0].alternate_sources == ["[low]"]


def test_distinct_content_is_kept_and_sorted_by_score():
    a = make_candidate("a", "null pointer in the session cache", score=0.2)
    b = make_candidate("b", "missing index on the orders table", score=0.7)

    result = deduplicate_candidates([a, b])

    assert [c.id for c in result] == ["b", "a"]
    assert all(c.alternate_sources == [] for c in result)


def test_within_corpus_mode_keeps_cross_source_duplicates():
    code = make_candidate("code", BASE, source="code", score=0.5)
    wiki = make_candidate("wiki", BASE, source="wiki", score=0.4)

    within = deduplicate_candidates([code, wiki], mode="within-corpus")
    across = deduplicate_candidates([code, wiki], mode="cross-corpus")

    assert [c.id for c in within] == ["code", "wiki"]
    assert [c.id for c in across] == ["code"]
    assert across[0].alternate_sources == [wiki.source_label]


def test_labels_are_not_repeated_in_alternate_sources():
    keep = make_candidate("keep", BASE, score=0.9)
    dupes = [make_candidate(f"d{i}", BASE, score=0.1, label="[same]") for i in range(3)]

    result = deduplicate_candidates([keep, *dupes])

    assert result[0].alternate_sources == ["[same]"]


def test_dedup_is_idempotent():
    candidates = [
        make_candidate("a", BASE, score=0.9),
        make_candidate("b", BASE + " again", score=0.8),
        make_candidate("c", "unrelated finding about sql injection", score=0.7),
    ]

    once = deduplicate_candidates(candidates, similarity_threshold=0.8)
    twice = deduplicate_candidates(once, similarity_threshold=0.8)

    assert [(c.id, c.alternate_sources) for c in twice] == [
        (c.id, c.alternate_sources) for c in once
    ]


@pytest.mark.parametrize("seed", [0, 1, 2, 3, 4])
def test_dedup_result_does_not_depend_on_input_order(seed):
    candidates = [
        make_candidate("a", BASE, score=0.5, label="[a]"),
        make_candidate("b", BASE, score=0.5, label="[b]"),
        make_candidate("c", BASE + " now", score=0.5, label="[c]"),
        make_candidate("d", "different text entirely here", score=0.5, label="[d]"),
        make_candidate("e", "different text entirely here too", score=0.3, label="[e]"),
    ]
    baseline = deduplicate_candidates(candidates, similarity_threshold=0.8)

    shuffled = list(candidates)
    random.Random(seed).shuffle(shuffled)
    result = deduplicate_candidates(shuffled, similarity_threshold=0.8)

    assert [(c.id, c.alternate_sources) for c in result] == [
        (c.id, c.alternate_sources) for c in baseline
    ]


def test_inputs_are_not_mutated():
    keep = make_candidate("keep", BASE, score=0.9)
    drop = make_candidate("drop", BASE, score=0.1)

    deduplicate_candidates([keep, drop])

    assert keep.alternate_sources == []


def test_trivial_inputs_and_validation():
    single = make_candidate("a")

    assert deduplicate_candidates([]) == []
    assert deduplicate_candidates([single]) == [single]
    with pytest.raises(ValueError):
        deduplicate_candidates([single, single], mode="everything")
    with pytest.raises(ValueError):
        deduplicate_candidates([single, single], similarity_threshold=1.5)
