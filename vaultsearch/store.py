"""Document storage collaborators.

The pipeline only talks to a ``DocumentStore``; ``FileSystemStore`` is the
implementation backed by a vault directory on disk.
"""
import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Sequence
import structlog

from vaultsearch.errors import StoreError

logger = structlog.get_logger()


@dataclass(frozen=True)
class DocumentHandle:
    """A markdown document inside the vault."""

    path: str  # vault-relative, forward slashes
    name: str  # file name, the document identity


class DocumentStore(Protocol):
    """Operations the pipeline needs from the host storage."""

    async def list_documents(self) -> List[DocumentHandle]: ...

    async def read(self, handle: DocumentHandle) -> str: ...

    async def read_path(self, path: str) -> str: ...

    async def modified_time(self, handle: DocumentHandle) -> int: ...

    async def write(self, path: str, text: str) -> None: ...

    async def delete(self, path: str) -> None: ...

    async def exists(self, path: str) -> bool: ...


class FileSystemStore:
    """Vault directory on the local file system."""

    def __init__(self, root: Path, ignored_folders: Optional[Sequence[str]] = None):
        """Initialize the store.

        Args:
            root: Vault root directory
            ignored_folders: Vault-relative folders excluded from discovery
        """
        self.root = Path(root)
        self.ignored_folders = [f.strip("/") for f in (ignored_folders or []) if f.strip("/")]

    def _resolve(self, path: str) -> Path:
        return self.root / path

    def _is_ignored(self, relative: str) -> bool:
        return any(
            relative == folder or relative.startswith(folder + "/")
            for folder in self.ignored_folders
        )

    def _list_documents(self) -> List[DocumentHandle]:
        if not self.root.exists():
            raise StoreError("list documents in", str(self.root), FileNotFoundError("no such directory"))

        handles = []
        for file_path in sorted(self.root.rglob("*.md")):
            relative = file_path.relative_to(self.root).as_posix()
            if self._is_ignored(relative):
                continue
            handles.append(DocumentHandle(path=relative, name=file_path.name))
        return handles

    async def list_documents(self) -> List[DocumentHandle]:
        """List markdown documents outside the ignored folders.

        Raises:
            StoreError: If the vault root doesn't exist
        """
        handles = await asyncio.to_thread(self._list_documents)
        logger.info(
            "markdown_files_discovered",
            count=len(handles),
            vault_dir=str(self.root),
            ignored_folders=self.ignored_folders,
        )
        return handles

    async def read(self, handle: DocumentHandle) -> str:
        return await self.read_path(handle.path)

    async def read_path(self, path: str) -> str:
        """Read a vault-relative file as UTF-8 text.

        Raises:
            StoreError: If the file can't be read or decoded
        """
        try:
            return await asyncio.to_thread(self._resolve(path).read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error("file_read_failed", path=path, error=str(e))
            raise StoreError("read", path, e) from e

    async def modified_time(self, handle: DocumentHandle) -> int:
        """Modification time in milliseconds since the epoch."""
        try:
            stat = await asyncio.to_thread(self._resolve(handle.path).stat)
        except OSError as e:
            raise StoreError("stat", handle.path, e) from e
        return stat.st_mtime_ns // 1_000_000

    async def write(self, path: str, text: str) -> None:
        target = self._resolve(path)
        try:
            await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(target.write_text, text, encoding="utf-8")
        except OSError as e:
            logger.error("file_write_failed", path=path, error=str(e))
            raise StoreError("write", path, e) from e

    async def delete(self, path: str) -> None:
        """Delete a file; deleting a missing file is a no-op."""
        try:
            await asyncio.to_thread(self._resolve(path).unlink, missing_ok=True)
        except OSError as e:
            raise StoreError("delete", path, e) from e

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self._resolve(path).exists)
