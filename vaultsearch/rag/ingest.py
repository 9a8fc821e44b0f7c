"""Input generation: turn vault documents into ``input.csv``.

Orchestrates:
- Document discovery through the store
- Section extraction per document
- Rewriting the input table
"""
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Union
import structlog

from vaultsearch.config import SearchSettings
from vaultsearch.errors import StoreError
from vaultsearch.rag.cache import dump_input_rows, replace_table
from vaultsearch.rag.sections import Delimiter, InputRow, compile_delimiter, extract_sections
from vaultsearch.store import DocumentHandle, DocumentStore

logger = structlog.get_logger()

ProgressCallback = Callable[[int, int, DocumentHandle], None]


@dataclass
class GenerateInputResult:
    """Units written to the input table plus per-run statistics."""

    units: List[InputRow]
    files_processed: int = 0
    failed_files: Dict[str, str] = field(default_factory=dict)
    delimiter_fallback: bool = False

    @property
    def stats(self) -> Dict[str, int]:
        return {
            "files_processed": self.files_processed,
            "files_failed": len(self.failed_files),
            "sections_created": len(self.units),
        }


async def process_document(
    store: DocumentStore, handle: DocumentHandle, delimiter: Delimiter
) -> List[InputRow]:
    """Extract the sections of one document.

    Raises:
        StoreError: If the document can't be read
    """
    mtime = await store.modified_time(handle)
    text = await store.read(handle)
    return extract_sections(handle.name, str(mtime), text, delimiter)


async def generate_units(
    store: DocumentStore,
    delimiter: Union[str, Delimiter],
    progress_callback: Optional[ProgressCallback] = None,
) -> GenerateInputResult:
    """Extract sections from every document in the store.

    A document that fails to read is logged and recorded; the others are
    still processed.

    Args:
        store: Document store to read from
        delimiter: Section delimiter regex or compiled ``Delimiter``
        progress_callback: Optional callback(current, total, handle)

    Returns:
        GenerateInputResult with units in store order and failed paths
    """
    if isinstance(delimiter, str):
        delimiter = compile_delimiter(delimiter)

    handles = await store.list_documents()
    units: List[InputRow] = []
    failed: Dict[str, str] = {}

    for idx, handle in enumerate(handles, 1):
        if progress_callback:
            progress_callback(idx, len(handles), handle)
        try:
            units.extend(await process_document(store, handle, delimiter))
        except StoreError as e:
            logger.error("document_processing_failed", path=handle.path, error=str(e))
            failed[handle.path] = str(e)

    logger.info(
        "units_generated",
        documents=len(handles),
        units=len(units),
        failed=len(failed),
    )

    return GenerateInputResult(
        units=units,
        files_processed=len(handles) - len(failed),
        failed_files=failed,
        delimiter_fallback=delimiter.fallback,
    )


class InputGenerator:
    """Rebuilds ``input.csv`` from the vault."""

    def __init__(self, store: DocumentStore, settings: SearchSettings):
        self.store = store
        self.settings = settings

    async def run(self, progress_callback: Optional[ProgressCallback] = None) -> GenerateInputResult:
        """Extract all documents and rewrite the input table.

        Raises:
            StoreError: If the document list can't be read or the table can't be written
        """
        delimiter = compile_delimiter(self.settings.section_delimiter_regex)

        result = await generate_units(self.store, delimiter, progress_callback)

        path = self.settings.input_file_path
        logger.info("writing_input_table", path=path, rows=len(result.units))
        await replace_table(self.store, path, dump_input_rows(result.units))

        logger.info("input_generation_completed", stats=result.stats)

        return result
