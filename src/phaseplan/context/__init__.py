"""Phase-scoped context extraction with optional semantic lookup."""

from .embeddings import (
    EmbeddingProvider,
    HashEmbeddingProvider,
    NoEmbeddings,
    OpenAIEmbeddingProvider,
    build_embedding_provider,
    cosine_similarity,
    embed_many,
)
from .phase_context import (
    PhaseContextExtractor,
    extract_context_for_all_phases,
    extract_phase_context,
    summarize_phase_contexts,
)

__all__ = [
    "EmbeddingProvider",
    "HashEmbeddingProvider",
    "NoEmbeddings",
    "OpenAIEmbeddingProvider",
    "PhaseContextExtractor",
    "build_embedding_provider",
    "cosine_similarity",
    "embed_many",
    "extract_context_for_all_phases",
    "extract_phase_context",
    "summarize_phase_contexts",
]
