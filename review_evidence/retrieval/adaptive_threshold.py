"""Distance cutoff selection from the shape of the candidate distribution.

With enough candidates the cutoff sits just before the largest gap between
consecutive sorted distances ("gap"). Small pools, or pools whose largest gap
is too small to be meaningful, fall back to a percentile of the distribution
("percentile"). An empty pool keeps the configured threshold ("configured").
Every result is clamped into ``[floor, ceiling]``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Protocol, Sequence

from .config import AdaptiveThresholdConfig

METHOD_GAP = "gap"
METHOD_PERCENTILE = "percentile"
METHOD_CONFIGURED = "configured"


@dataclass(frozen=True)
class AdaptiveThresholdResult:
    threshold: float
    method: str
    candidate_count: int
    gap_size: float | None = None
    gap_index: int | None = None


class ThresholdComputer(Protocol):
    def __call__(
        self, distances: Sequence[float], configured_threshold: float
    ) -> AdaptiveThresholdResult: ...


def _clamp(value: float, config: AdaptiveThresholdConfig) -> float:
    return max(config.floor, min(config.ceiling, value))


def _percentile(sorted_distances: List[float], fraction: float) -> float:
    index = min(int(math.floor(len(sorted_distances) * fraction)), len(sorted_distances) - 1)
    return sorted_distances[index]


def compute_adaptive_threshold(
    distances: Sequence[float],
    configured_threshold: float,
    config: AdaptiveThresholdConfig | None = None,
) -> AdaptiveThresholdResult:
    config = config or AdaptiveThresholdConfig()
    if config.floor > config.ceiling:
        raise ValueError("floor cannot exceed ceiling")

    if not distances:
        return AdaptiveThresholdResult(
            threshold=_clamp(configured_threshold, config),
            method=METHOD_CONFIGURED,
            candidate_count=0,
        )

    ordered = sorted(distances)

    if len(ordered) < config.min_candidates_for_gap:
        return AdaptiveThresholdResult(
            threshold=_clamp(_percentile(ordered, config.fallback_percentile), config),
            method=METHOD_PERCENTILE,
            candidate_count=len(ordered),
        )

    max_gap = 0.0
    max_gap_index = 0
    for i in range(1, len(ordered)):
        gap = ordered[i] - ordered[i - 1]
        if gap > max_gap:
            max_gap = gap
            max_gap_index = i

    if max_gap < config.min_gap_size:
        return AdaptiveThresholdResult(
            threshold=_clamp(_percentile(ordered, config.fallback_percentile), config),
            method=METHOD_PERCENTILE,
            candidate_count=len(ordered),
            gap_size=max_gap,
        )

    return AdaptiveThresholdResult(
        threshold=_clamp(ordered[max_gap_index - 1], config),
        method=METHOD_GAP,
        candidate_count=len(ordered),
        gap_size=max_gap,
        gap_index=max_gap_index,
    )
