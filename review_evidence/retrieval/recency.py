"""Recency weighting for reranked findings (distance space)."""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import datetime, timezone
from typing import List, Protocol, Sequence

from .config import RecencyConfig
from .types import RerankedResult

_SECONDS_PER_DAY = 86_400


class RecencyWeighter(Protocol):
    def __call__(
        self, results: Sequence[RerankedResult], now: datetime | None = None
    ) -> List[RerankedResult]: ...


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def apply_recency_weighting(
    results: Sequence[RerankedResult],
    now: datetime | None = None,
    config: RecencyConfig | None = None,
) -> List[RerankedResult]:
    """Penalise older findings by exponential decay of their adjusted distance.

    The decay multiplier ``exp(-ln2 * age / half_life)`` is floored at
    ``floor_multiplier`` for floor severities and half of it otherwise, then
    inverted to a distance factor ``2 - multiplier``. Records without a
    timestamp are treated as brand new.
    """
    config = config or RecencyConfig()
    if config.half_life_days <= 0:
        raise ValueError("half_life_days must be positive")

    reference = _as_utc(now) if now else datetime.now(timezone.utc)
    decay = math.log(2) / config.half_life_days
    floor_severities = {s.lower() for s in config.floor_severities}

    weighted: List[RerankedResult] = []
    for result in results:
        age_days = 0.0
        created_at = result.record.created_at
        if created_at is not None:
            delta = reference - _as_utc(created_at)
            age_days = max(0.0, delta.total_seconds() / _SECONDS_PER_DAY)

        multiplier = math.exp(-decay * age_days)
        severity = (result.record.severity or "").lower()
        floor = (
            config.floor_multiplier
            if severity in floor_severities
            else config.floor_multiplier * 0.5
        )
        multiplier = max(multiplier, floor)

        weighted.append(
            replace(result, adjusted_distance=result.adjusted_distance * (2 - multiplier))
        )

    weighted.sort(key=lambda r: r.adjusted_distance)
    return weighted
