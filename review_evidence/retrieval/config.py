from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Tuple, Type, TypeVar

import yaml

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _repo_root() -> Path:
    # .../review_evidence/retrieval/config.py -> parents[2] is repo root
    return Path(__file__).resolve().parents[2]


DEFAULT_CONFIG_PATH = _repo_root() / "config" / "retrieval.yaml"


class ConfigError(ValueError):
    """Raised when a config value has the wrong type."""


@dataclass(frozen=True)
class RetrievalSettings:
    enabled: bool = True
    top_k: int = 5
    distance_threshold: float = 0.3
    adaptive: bool = True
    max_context_chars: int = 2000


@dataclass(frozen=True)
class SharingSettings:
    enabled: bool = False


@dataclass(frozen=True)
class FusionSettings:
    """RRF and dedup constants for the cross-corpus path."""

    rrf_k: int = 60
    recency_boost_days: float = 30.0
    recency_boost_factor: float = 0.15
    dedup_threshold: float = 0.9


@dataclass(frozen=True)
class RerankConfig:
    """Language affinity multipliers (applied to distance; lower is better)."""

    same_language_boost: float = 0.85
    related_language_ratio: float = 0.5

    @property
    def related_language_boost(self) -> float:
        return 1 - (1 - self.same_language_boost) * self.related_language_ratio


@dataclass(frozen=True)
class RecencyConfig:
    half_life_days: float = 90.0
    floor_multiplier: float = 0.3
    floor_severities: Tuple[str, ...] = ("critical", "major")


@dataclass(frozen=True)
class AdaptiveThresholdConfig:
    min_candidates_for_gap: int = 8
    fallback_percentile: float = 0.75
    min_gap_size: float = 0.05
    floor: float = 0.15
    ceiling: float = 0.65


@dataclass(frozen=True)
class SnippetConfig:
    max_snippet_chars: int = 180


@dataclass(frozen=True)
class RetrieverConfig:
    retrieval: RetrievalSettings = field(default_factory=RetrievalSettings)
    sharing: SharingSettings = field(default_factory=SharingSettings)
    fusion: FusionSettings = field(default_factory=FusionSettings)
    rerank: RerankConfig = field(default_factory=RerankConfig)
    recency: RecencyConfig = field(default_factory=RecencyConfig)
    adaptive_threshold: AdaptiveThresholdConfig = field(
        default_factory=AdaptiveThresholdConfig
    )
    snippets: SnippetConfig = field(default_factory=SnippetConfig)


_SECTIONS: Dict[str, type] = {
    "retrieval": RetrievalSettings,
    "sharing": SharingSettings,
    "fusion": FusionSettings,
    "rerank": RerankConfig,
    "recency": RecencyConfig,
    "adaptive_threshold": AdaptiveThresholdConfig,
    "snippets": SnippetConfig,
}


def _coerce(section: str, name: str, default: Any, value: Any) -> Any:
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ConfigError(f"{section}.{name} must be a boolean")
        return value
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{section}.{name} must be an integer")
        return value
    if isinstance(default, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"{section}.{name} must be a number")
        return float(value)
    if isinstance(default, tuple):
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ConfigError(f"{section}.{name} must be a list of strings")
        return tuple(value)
    return value


def _build_section(section: str, cls: Type[T], payload: Any) -> T:
    if payload is None:
        return cls()
    if not isinstance(payload, dict):
        raise ConfigError(f"{section} must be a mapping")

    defaults = cls()
    known = {f.name for f in fields(cls)}
    kwargs: Dict[str, Any] = {}
    for key, value in payload.items():
        if key not in known:
            logger.debug("Ignoring unknown config key %s.%s", section, key)
            continue
        kwargs[key] = _coerce(section, key, getattr(defaults, key), value)
    return cls(**kwargs)


def parse_retriever_config(payload: Dict[str, Any]) -> RetrieverConfig:
    """Build a RetrieverConfig from an already-parsed mapping."""
    sections = {
        name: _build_section(name, cls, payload.get(name))
        for name, cls in _SECTIONS.items()
    }
    for key in payload:
        if key not in _SECTIONS:
            logger.debug("Ignoring unknown config section %s", key)
    return RetrieverConfig(**sections)


def load_retriever_config(config_path: str | Path | None = None) -> RetrieverConfig:
    """Load retriever configuration from YAML file.

    Path resolution: explicit argument, then ``REVIEW_EVIDENCE_CONFIG``, then
    the shipped ``config/retrieval.yaml``.
    """
    env_path = os.getenv("REVIEW_EVIDENCE_CONFIG")
    path = Path(config_path or env_path or DEFAULT_CONFIG_PATH)

    if not path.exists():
        logger.warning("Config file not found: %s. Using default configuration.", path)
        return RetrieverConfig()

    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        logger.error("Failed to parse config file %s: %s", path, e)
        return RetrieverConfig()

    if not isinstance(payload, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")

    config = parse_retriever_config(payload)
    logger.debug("Loaded retriever config from %s", path)
    return config
