"""Flat-file caches for extracted sections and their embeddings.

Two CSV tables live in the vault:

- ``input.csv``: ``name,mtime,section,body`` rows produced by extraction
- ``embedding.csv``: ``name,mtime,header,embedding`` rows, where the
  embedding column is a comma-joined list of floats inside a quoted field

This module also decides which extracted sections can reuse a cached
vector and which need a fresh embedding.
"""
import csv
import io
import math
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, List, Optional, Sequence, Tuple
import structlog

from vaultsearch.errors import CacheFormatError, CacheNotFoundError
from vaultsearch.rag.sections import InputRow
from vaultsearch.store import DocumentStore

logger = structlog.get_logger()

INPUT_HEADER = ["name", "mtime", "section", "body"]
EMBEDDING_HEADER = ["name", "mtime", "header", "embedding"]


@dataclass(frozen=True)
class EmbeddingRow:
    """A cached section vector, kept in its serialized form."""

    document_name: str
    modified_at: str
    section_label: str
    embedding: str


@dataclass
class DiffResult:
    """Outcome of comparing fresh sections against the embedding cache."""

    stale_units: List[InputRow] = field(default_factory=list)
    reusable_entries: List[EmbeddingRow] = field(default_factory=list)
    modified_count: int = 0
    has_baseline: bool = True


def format_embedding(vector: Iterable[float]) -> str:
    """Serialize a vector as comma-joined decimals.

    Raises:
        ValueError: If any component is not finite
    """
    values = [float(value) for value in vector]
    if not all(math.isfinite(value) for value in values):
        raise ValueError("Embedding contains a non-finite value")
    return ",".join(repr(value) for value in values)


def parse_embedding(serialized: str) -> List[float]:
    """Parse a comma-joined vector.

    Raises:
        ValueError: If any component is not a finite decimal number
    """
    if not serialized.strip():
        raise ValueError("Embedding is empty")
    vector = [float(part) for part in serialized.split(",")]
    if not all(math.isfinite(value) for value in vector):
        raise ValueError("Embedding contains a non-finite value")
    return vector


def _write_table(header: Sequence[str], records: Iterable[Sequence[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(records)
    return buffer.getvalue()


def _read_table(text: str, header: Sequence[str], path: str) -> List[List[str]]:
    reader = csv.reader(io.StringIO(text))
    try:
        found = next(reader)
    except StopIteration:
        raise CacheFormatError(f"{path} is empty")
    except csv.Error as e:
        raise CacheFormatError(f"{path} is not valid CSV: {e}") from e

    if found != list(header):
        raise CacheFormatError(
            f"{path} has unexpected header {found}, expected {list(header)}"
        )

    records = []
    try:
        for line_number, record in enumerate(reader, 2):
            if not record:
                continue
            if len(record) != len(header):
                raise CacheFormatError(
                    f"{path} line {line_number} has {len(record)} columns, "
                    f"expected {len(header)}"
                )
            records.append(record)
    except csv.Error as e:
        raise CacheFormatError(f"{path} is not valid CSV: {e}") from e
    return records


def dump_input_rows(rows: Iterable[InputRow]) -> str:
    return _write_table(
        INPUT_HEADER,
        ([r.document_name, r.modified_at, r.section_label, r.body] for r in rows),
    )


def load_input_rows(text: str, path: str = "input.csv") -> List[InputRow]:
    return [
        InputRow(document_name=name, modified_at=mtime, section_label=section, body=body)
        for name, mtime, section, body in _read_table(text, INPUT_HEADER, path)
    ]


def dump_embedding_rows(rows: Iterable[EmbeddingRow]) -> str:
    return _write_table(
        EMBEDDING_HEADER,
        ([r.document_name, r.modified_at, r.section_label, r.embedding] for r in rows),
    )


def load_embedding_rows(text: str, path: str = "embedding.csv") -> List[EmbeddingRow]:
    return [
        EmbeddingRow(document_name=name, modified_at=mtime, section_label=header, embedding=embedding)
        for name, mtime, header, embedding in _read_table(text, EMBEDDING_HEADER, path)
    ]


async def read_input_table(store: DocumentStore, path: str) -> List[InputRow]:
    """Read ``input.csv``.

    Raises:
        CacheNotFoundError: If input hasn't been generated yet
        CacheFormatError: If the file is malformed
    """
    if not await store.exists(path):
        raise CacheNotFoundError(path)
    rows = load_input_rows(await store.read_path(path), path)
    logger.info("input_table_loaded", path=path, rows=len(rows))
    return rows


async def read_embedding_table(store: DocumentStore, path: str) -> Optional[List[EmbeddingRow]]:
    """Read ``embedding.csv``, or None on first run.

    Raises:
        CacheFormatError: If the file exists but is malformed
    """
    if not await store.exists(path):
        logger.info("embedding_table_missing", path=path)
        return None
    rows = load_embedding_rows(await store.read_path(path), path)
    logger.info("embedding_table_loaded", path=path, rows=len(rows))
    return rows


async def replace_table(store: DocumentStore, path: str, text: str) -> None:
    """Rewrite a cache table in a single write."""
    await store.delete(path)
    await store.write(path, text)


def diff_units(
    new_units: Sequence[InputRow],
    previous_cache: Optional[Sequence[EmbeddingRow]],
) -> DiffResult:
    """Split fresh sections into those needing an embedding and reusable ones.

    A section is reusable when its document's cached mtime equals the
    section's mtime and the cache holds a vector under the same label.
    Repeated labels within a document are matched in cache order. Any mtime
    mismatch makes every section of that document stale.

    Args:
        new_units: Sections from the latest extraction
        previous_cache: Rows of the current ``embedding.csv``, None if absent

    Returns:
        DiffResult; without a previous cache every unit is stale and
        ``has_baseline`` is False
    """
    if previous_cache is None:
        logger.info("no_embedding_baseline", units=len(new_units))
        return DiffResult(
            stale_units=list(new_units),
            reusable_entries=[],
            modified_count=len(new_units),
            has_baseline=False,
        )

    # name -> (mtime, label -> embeddings in cache order)
    cached: Dict[str, Tuple[str, Dict[str, Deque[str]]]] = {}
    for row in previous_cache:
        mtime, by_label = cached.get(row.document_name, (row.modified_at, defaultdict(deque)))
        if row.modified_at != mtime:
            # later rows win
            mtime, by_label = row.modified_at, defaultdict(deque)
        by_label[row.section_label].append(row.embedding)
        cached[row.document_name] = (mtime, by_label)

    result = DiffResult()
    for unit in new_units:
        entry = cached.get(unit.document_name)
        if entry is not None and entry[0] == unit.modified_at:
            vectors = entry[1].get(unit.section_label)
            if vectors:
                result.reusable_entries.append(
                    EmbeddingRow(
                        document_name=unit.document_name,
                        modified_at=unit.modified_at,
                        section_label=unit.section_label,
                        embedding=vectors.popleft(),
                    )
                )
                continue
        result.stale_units.append(unit)

    result.modified_count = len(result.stale_units)

    logger.info(
        "cache_diff_computed",
        total_units=len(new_units),
        stale=len(result.stale_units),
        reusable=len(result.reusable_entries),
    )

    return result
