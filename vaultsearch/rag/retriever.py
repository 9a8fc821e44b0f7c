"""Retriever for semantic search over the embedding cache.

Handles:
- Query embedding generation
- Cached vector deserialization
- Cosine similarity scoring and ranking
"""
from dataclasses import dataclass
from typing import List, Optional, Sequence
import numpy as np
import structlog

from vaultsearch.config import SearchSettings
from vaultsearch.errors import CacheFormatError, CacheNotFoundError, EmbeddingCountMismatch
from vaultsearch.llm_client import EmbeddingProvider
from vaultsearch.rag.cache import EmbeddingRow, parse_embedding, read_embedding_table
from vaultsearch.store import DocumentStore

logger = structlog.get_logger()

DEFAULT_TOP_K = 10


@dataclass
class Suggestion:
    """A ranked section."""

    document_name: str
    section_label: str
    score: float

    @property
    def link(self) -> str:
        """Wikilink pointing at the section, e.g. ``[[note#Heading]]``."""
        note = self.document_name
        if note.endswith(".md"):
            note = note[: -len(".md")]
        if self.section_label:
            return f"[[{note}#{self.section_label}]]"
        return f"[[{note}]]"

    def to_dict(self) -> dict:
        return {
            "name": self.document_name,
            "header": self.section_label,
            "score": self.score,
            "link": self.link,
        }


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine of the angle between two vectors; 0.0 if either is all zeros."""
    norm = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
    if norm == 0.0:
        return 0.0
    return float(np.dot(a, b) / norm)


def rank_entries(
    query_vector: Sequence[float],
    entries: Sequence[EmbeddingRow],
    top_k: int = DEFAULT_TOP_K,
) -> List[Suggestion]:
    """Score cached sections against a query vector.

    Args:
        query_vector: Embedding of the query
        entries: Cached rows to rank
        top_k: Maximum number of results

    Returns:
        Suggestions sorted by descending score; ties keep cache order

    Raises:
        ValueError: If top_k is not positive
        CacheFormatError: If any row's embedding can't be parsed or its
            dimension differs from the query's
    """
    if top_k < 1:
        raise ValueError(f"top_k must be a positive integer, got {top_k}")

    query = np.asarray(query_vector, dtype=np.float64)

    scored = []
    for row in entries:
        try:
            vector = np.asarray(parse_embedding(row.embedding), dtype=np.float64)
        except ValueError as e:
            raise CacheFormatError(
                f"Failed to deserialize embedding: {e}",
                document_name=row.document_name,
                section_label=row.section_label,
            ) from e

        if vector.shape != query.shape:
            raise CacheFormatError(
                f"Embedding dimension {vector.shape[0]} does not match query dimension {query.shape[0]}",
                document_name=row.document_name,
                section_label=row.section_label,
            )

        scored.append(
            Suggestion(
                document_name=row.document_name,
                section_label=row.section_label,
                score=cosine_similarity(query, vector),
            )
        )

    scored.sort(key=lambda s: s.score, reverse=True)
    return scored[:top_k]


class Retriever:
    """Semantic search over ``embedding.csv``."""

    def __init__(
        self,
        store: DocumentStore,
        provider: EmbeddingProvider,
        settings: SearchSettings,
    ):
        self.store = store
        self.provider = provider
        self.settings = settings

        logger.info(
            "retriever_initialized",
            cache_path=settings.embedding_file_path,
            top_k=settings.results_per_query,
        )

    async def load_entries(self) -> List[EmbeddingRow]:
        """Read the embedding cache.

        Raises:
            CacheNotFoundError: If embeddings haven't been generated
        """
        rows = await read_embedding_table(self.store, self.settings.embedding_file_path)
        if rows is None:
            raise CacheNotFoundError(self.settings.embedding_file_path)
        return rows

    async def query(self, text: str, top_k: Optional[int] = None) -> List[Suggestion]:
        """Rank cached sections for a free-text query.

        Args:
            text: Query text
            top_k: Number of results (default from settings)

        Returns:
            Suggestions, best first; empty for a blank query

        Raises:
            ValueError: If top_k is not positive
            CacheNotFoundError: If embeddings haven't been generated
            CacheFormatError: If a cached embedding is malformed
            ProviderError: If embedding the query fails
            EmbeddingCountMismatch: If the provider returns other than one vector
        """
        if top_k is None:
            top_k = self.settings.results_per_query
        if top_k < 1:
            raise ValueError(f"top_k must be a positive integer, got {top_k}")

        if not text or not text.strip():
            logger.warning("empty_query_provided")
            return []

        entries = await self.load_entries()
        if not entries:
            logger.warning("empty_cache_no_results")
            return []

        vectors = await self.provider.embed([text])
        if len(vectors) != 1:
            raise EmbeddingCountMismatch(requested=1, received=len(vectors))
        logger.debug("query_embedded", dimension=len(vectors[0]))

        results = rank_entries(vectors[0], entries, top_k=top_k)

        logger.info(
            "retrieval_completed",
            query_length=len(text),
            candidates=len(entries),
            results_returned=len(results),
            top_score=results[0].score if results else None,
        )

        return results
