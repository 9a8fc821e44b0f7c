"""Incremental embedding of extracted sections.

Orchestrates:
- Diffing ``input.csv`` against the existing ``embedding.csv``
- Batched, sequential provider calls for stale sections
- Merging fresh and reusable vectors into a single rewrite of the cache
"""
import math
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence
import structlog

from vaultsearch.config import SearchSettings
from vaultsearch.errors import EmbeddingCountMismatch, ProviderResponseError
from vaultsearch.llm_client import EmbeddingProvider
from vaultsearch.rag.cache import (
    DiffResult,
    EmbeddingRow,
    diff_units,
    dump_embedding_rows,
    format_embedding,
    read_embedding_table,
    read_input_table,
    replace_table,
)
from vaultsearch.rag.cost import TokenCounter, estimate_cost
from vaultsearch.rag.sections import InputRow
from vaultsearch.store import DocumentStore

logger = structlog.get_logger()

BatchCallback = Callable[[int, int, int], None]


def plan_batches(total: int, batch_count: int) -> List[int]:
    """Sizes of the batches used to embed ``total`` sections.

    Every batch takes ``ceil(total / batch_count)`` sections except the last,
    which takes whatever remains. Batches past the end are empty.

    Raises:
        ValueError: If batch_count is not positive
    """
    if batch_count < 1:
        raise ValueError(f"Batch count must be positive, got {batch_count}")
    if total == 0:
        return []

    batch_size = math.ceil(total / batch_count)
    sizes = []
    remaining = total
    for batch in range(1, batch_count + 1):
        take = remaining if batch == batch_count else min(batch_size, remaining)
        sizes.append(take)
        remaining -= take
    return sizes


class EmbeddingBatcher:
    """Embeds stale sections batch by batch and rewrites the cache once."""

    def __init__(self, store: DocumentStore, provider: EmbeddingProvider, cache_path: str):
        self.store = store
        self.provider = provider
        self.cache_path = cache_path

    async def embed_units(
        self,
        units: Sequence[InputRow],
        batch_count: int,
        progress_callback: Optional[BatchCallback] = None,
    ) -> List[EmbeddingRow]:
        """Embed sections in order, one provider call per non-empty batch.

        Raises:
            EmbeddingCountMismatch: If a batch comes back with the wrong count
            ProviderError: If the provider call fails
        """
        sizes = plan_batches(len(units), batch_count)
        rows: List[EmbeddingRow] = []
        processed = 0

        for batch, size in enumerate(sizes, 1):
            if size == 0:
                continue

            records = units[processed : processed + size]
            logger.debug(
                "processing_batch",
                batch=batch,
                start=processed,
                end=processed + size,
            )

            vectors = await self.provider.embed([record.body for record in records])

            if len(vectors) != len(records):
                logger.error(
                    "batch_alignment_failed",
                    batch=batch,
                    requested=len(records),
                    received=len(vectors),
                )
                raise EmbeddingCountMismatch(requested=len(records), received=len(vectors))

            for record, vector in zip(records, vectors):
                try:
                    embedding = format_embedding(vector)
                except ValueError as e:
                    logger.error("invalid_embedding", document=record.document_name, section=record.section_label)
                    raise ProviderResponseError(
                        f"{e} (file: {record.document_name}, section: {record.section_label})"
                    ) from e
                rows.append(
                    EmbeddingRow(
                        document_name=record.document_name,
                        modified_at=record.modified_at,
                        section_label=record.section_label,
                        embedding=embedding,
                    )
                )

            processed += size
            logger.info("embeddings_batch_generated", batch=batch, count=len(vectors), total_so_far=processed)

            if progress_callback:
                progress_callback(batch, len(sizes), processed)

        return rows

    async def run(
        self,
        stale_units: Sequence[InputRow],
        reusable_entries: Sequence[EmbeddingRow],
        batch_count: int,
        progress_callback: Optional[BatchCallback] = None,
    ) -> List[EmbeddingRow]:
        """Embed stale sections, merge reusable ones and persist the cache.

        The cache is only rewritten after every batch has succeeded, so a
        failure leaves the previous ``embedding.csv`` untouched.

        Returns:
            All rows written, fresh ones first
        """
        logger.info(
            "embedding_cycle_started",
            stale=len(stale_units),
            reusable=len(reusable_entries),
            batch_count=batch_count,
        )

        rows = await self.embed_units(stale_units, batch_count, progress_callback)
        rows.extend(reusable_entries)

        await replace_table(self.store, self.cache_path, dump_embedding_rows(rows))

        logger.info("embeddings_saved", path=self.cache_path, rows=len(rows))

        return rows


@dataclass
class EmbeddingPreview:
    """What the next embedding cycle would do."""

    modified_count: int
    cost_estimate: float
    has_baseline: bool
    cache_exists: bool


@dataclass
class RefreshResult:
    """Outcome of an embedding cycle."""

    modified_count: int
    cost_estimate: float
    entries_written: int


class EmbeddingPipeline:
    """Reads the input table, diffs it against the cache and refreshes it."""

    def __init__(
        self,
        store: DocumentStore,
        provider: EmbeddingProvider,
        settings: SearchSettings,
        token_counter: Optional[TokenCounter] = None,
    ):
        self.store = store
        self.provider = provider
        self.settings = settings
        self.token_counter = token_counter
        self.batcher = EmbeddingBatcher(store, provider, settings.embedding_file_path)

    async def diff(self) -> DiffResult:
        """Compare ``input.csv`` against ``embedding.csv``.

        Raises:
            CacheNotFoundError: If input hasn't been generated
            CacheFormatError: If either table is malformed
        """
        units = await read_input_table(self.store, self.settings.input_file_path)
        previous = await read_embedding_table(self.store, self.settings.embedding_file_path)
        return diff_units(units, previous)

    def _estimate(self, diff: DiffResult) -> float:
        text = "".join(unit.body for unit in diff.stale_units)
        return estimate_cost(text, self.token_counter)

    async def cache_exists(self) -> bool:
        return await self.store.exists(self.settings.embedding_file_path)

    async def preview(self) -> EmbeddingPreview:
        diff = await self.diff()
        return EmbeddingPreview(
            modified_count=diff.modified_count,
            cost_estimate=self._estimate(diff),
            has_baseline=diff.has_baseline,
            cache_exists=await self.cache_exists(),
        )

    async def refresh_cache(self, progress_callback: Optional[BatchCallback] = None) -> RefreshResult:
        """Run one embedding cycle.

        Raises:
            CacheNotFoundError: If input hasn't been generated
            CacheFormatError: If either table is malformed
            ProviderError: If a provider call fails
            EmbeddingCountMismatch: If a batch comes back misaligned
            StoreError: If the cache can't be written
        """
        diff = await self.diff()
        cost = self._estimate(diff)

        rows = await self.batcher.run(
            diff.stale_units,
            diff.reusable_entries,
            self.settings.num_batches,
            progress_callback,
        )

        return RefreshResult(
            modified_count=diff.modified_count,
            cost_estimate=cost,
            entries_written=len(rows),
        )
