"""Embedding providers for query-time retrieval.

Providers are fail-open: any API failure yields ``None`` so the caller can
treat embeddings as unavailable instead of handling exceptions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from hashlib import sha256
from typing import Any, List, Literal, Protocol

import tiktoken
from openai import OpenAI, OpenAIError

from review_evidence.config import load_settings
from review_evidence.retrieval.cache import LRUCache

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "text-embedding-3-small"
DEFAULT_DIM = 1536
MAX_INPUT_TOKENS = 8191  # OpenAI embedding model input limit

InputType = Literal["document", "query"]

_encoding_cache: dict[str, tiktoken.Encoding] = {}


@dataclass(frozen=True)
class EmbeddingResult:
    embedding: List[float]
    model: str
    dimensions: int


class EmbeddingProvider(Protocol):
    """Text -> vector. Returns None when embeddings are unavailable."""

    @property
    def model(self) -> str: ...

    @property
    def dimensions(self) -> int: ...

    def generate(self, text: str, input_type: InputType) -> EmbeddingResult | None: ...


def get_encoding(model: str = DEFAULT_MODEL) -> tiktoken.Encoding:
    if model not in _encoding_cache:
        try:
            _encoding_cache[model] = tiktoken.encoding_for_model(model)
        except KeyError:
            # Unknown model: fall back to the encoding used by current OpenAI models.
            _encoding_cache[model] = tiktoken.get_encoding("cl100k_base")
    return _encoding_cache[model]


def truncate_to_max_tokens(
    text: str, max_tokens: int = MAX_INPUT_TOKENS, model: str = DEFAULT_MODEL
) -> str:
    if not text:
        return text
    encoding = get_encoding(model)
    tokens = encoding.encode(text)
    if len(tokens) <= max_tokens:
        return text
    return encoding.decode(tokens[:max_tokens])


class NoOpEmbeddingProvider:
    """Used when embeddings are disabled or no API key is configured."""

    model = "none"
    dimensions = 0

    def generate(self, text: str, input_type: InputType) -> EmbeddingResult | None:
        return None


class OpenAIEmbeddingProvider:
    """OpenAI embeddings with tiktoken truncation and an LRU cache for queries."""

    def __init__(
        self,
        client: OpenAI,
        model: str = DEFAULT_MODEL,
        dimensions: int = DEFAULT_DIM,
        cache_size: int = 256,
    ):
        self._client = client
        self._model = model
        self._dimensions = dimensions
        self._cache = LRUCache(cache_size)

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def _cache_key(self, text: str, input_type: InputType) -> str:
        return sha256(f"{self._model}:{input_type}:{text}".encode()).hexdigest()

    def generate(self, text: str, input_type: InputType) -> EmbeddingResult | None:
        if not text or not text.strip():
            return None

        key = self._cache_key(text, input_type)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        try:
            response = self._client.embeddings.create(
                model=self._model,
                input=truncate_to_max_tokens(text, MAX_INPUT_TOKENS, self._model),
                dimensions=self._dimensions,
            )
        except OpenAIError as e:
            logger.warning("Embedding generation failed (fail-open): %s", e)
            return None
        except Exception as e:
            logger.warning("Unexpected embedding failure (fail-open): %s", e)
            return None

        if not response.data or not response.data[0].embedding:
            logger.warning("Embedding response missing data for model %s", self._model)
            return None

        result = EmbeddingResult(
            embedding=list(response.data[0].embedding),
            model=self._model,
            dimensions=self._dimensions,
        )
        self._cache.put(key, result)
        return result


def build_embedding_provider(settings: dict[str, Any] | None = None) -> EmbeddingProvider:
    """Pick the OpenAI provider when an API key is configured, else the no-op one."""
    settings = settings if settings is not None else load_settings()

    api_key = settings.get("OPENAI_API_KEY")
    if not api_key:
        logger.info("Embedding provider disabled: OPENAI_API_KEY not set")
        return NoOpEmbeddingProvider()

    client = OpenAI(
        api_key=api_key,
        base_url=settings.get("OPENAI_BASE_URL"),
        timeout=settings.get("OPENAI_TIMEOUT") or 10,
        max_retries=settings.get("OPENAI_MAX_RETRIES") or 2,
    )
    return OpenAIEmbeddingProvider(
        client,
        model=settings.get("OPENAI_EMBEDDING_MODEL") or DEFAULT_MODEL,
        dimensions=settings.get("OPENAI_EMBEDDING_DIM") or DEFAULT_DIM,
    )
