"""Embedding providers injected into the phase context extractor."""

from __future__ import annotations

import hashlib
import json
import logging
import math
import os
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from ..config import EmbeddingConfig
from ..errors import EmbeddingUnavailableError

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8

_WORD_PATTERN = re.compile(r"\w+")

Transport = Callable[[Dict[str, Any]], str]


class EmbeddingProvider(Protocol):
    """Capability that turns text into a vector."""

    @property
    def available(self) -> bool: ...

    def embed(self, text: str) -> List[float]: ...


class NoEmbeddings:
    """Absent capability; callers fall back to keyword relevance."""

    @property
    def available(self) -> bool:
        return False

    def embed(self, text: str) -> List[float]:
        raise EmbeddingUnavailableError("No embedding provider is configured.")


class HashEmbeddingProvider:
    """Deterministic offline encoder using signed feature hashing over words.

    Each word lands in one bucket with a +1 or -1 weight, so texts sharing
    vocabulary point in similar directions.
    """

    def __init__(self, dimension: int = 64) -> None:
        if dimension <= 0:
            raise ValueError("Embedding dimension must be positive.")
        self._dimension = dimension

    @property
    def available(self) -> bool:
        return True

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> List[float]:
        vector = [0.0] * self._dimension
        for word in _WORD_PATTERN.findall(text.lower()):
            digest = hashlib.blake2b(word.encode("utf-8"), digest_size=8).digest()
            bucket = int.from_bytes(digest[:4], "big") % self._dimension
            vector[bucket] += 1.0 if digest[4] & 1 else -1.0

        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]


class OpenAIEmbeddingProvider:
    """Thin adapter around an OpenAI-compatible ``/embeddings`` endpoint."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: str = "https://api.openai.com/v1/embeddings",
        model: str = "text-embedding-3-small",
        transport: Optional[Transport] = None,
        timeout: float = 30.0,
    ) -> None:
        self._api_key = api_key or os.getenv("OPENAI_API_KEY")
        self._base_url = base_url
        self._model = model
        self._timeout = timeout
        self._custom_transport = transport is not None
        self._transport = transport or self._http_transport

    @property
    def available(self) -> bool:
        return self._custom_transport or bool(self._api_key)

    def embed(self, text: str) -> List[float]:
        if not self.available:
            raise EmbeddingUnavailableError("OPENAI_API_KEY is not set.")
        payload = {"model": self._model, "input": text[:8000]}
        try:
            raw = self._transport(payload)
        except EmbeddingUnavailableError:
            raise
        except Exception as error:  # pragma: no cover - transport specific failures
            raise EmbeddingUnavailableError(f"Embedding request failed: {error}") from error
        return self._parse_vector(raw)

    @staticmethod
    def _parse_vector(raw: str) -> List[float]:
        try:
            data = json.loads(raw)
            vector = data["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError) as error:
            raise EmbeddingUnavailableError(f"Malformed embedding response: {error}") from error
        if not isinstance(vector, list) or not vector:
            raise EmbeddingUnavailableError("Embedding response did not contain a vector.")
        return [float(component) for component in vector]

    def _http_transport(self, payload: Dict[str, Any]) -> str:
        import urllib.error
        import urllib.request

        request = urllib.request.Request(
            self._base_url,
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                return response.read().decode("utf-8")
        except urllib.error.URLError as error:
            raise EmbeddingUnavailableError(f"Embedding endpoint unreachable: {error}") from error


def build_embedding_provider(config: Optional[EmbeddingConfig] = None) -> EmbeddingProvider:
    """Instantiate the provider named in ``config``; unknown or unset means absent."""
    settings = config or EmbeddingConfig()
    if settings.provider == "hash":
        return HashEmbeddingProvider(settings.dimension)
    if settings.provider == "openai":
        return OpenAIEmbeddingProvider(
            base_url=settings.base_url,
            model=settings.model,
            timeout=settings.timeout,
        )
    return NoEmbeddings()


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    if len(left) != len(right):
        raise ValueError("Vectors must have the same dimension.")
    dot = sum(a * b for a, b in zip(left, right))
    norm_left = math.sqrt(sum(a * a for a in left))
    norm_right = math.sqrt(sum(b * b for b in right))
    if norm_left == 0 or norm_right == 0:
        return 0.0
    return dot / (norm_left * norm_right)


def embed_many(
    provider: EmbeddingProvider,
    texts: Sequence[str],
    *,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> List[List[float]]:
    """Embed ``texts`` concurrently with at most ``max_workers`` requests in flight."""
    if not texts:
        return []
    workers = max(1, min(max_workers, len(texts)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="phaseplan-embed") as executor:
        return list(executor.map(provider.embed, texts))
