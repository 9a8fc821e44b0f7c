"""
Shared test fixtures.

Provides: a temporary vault with notes, settings pointing at it, a
file-system store, and a deterministic fake embedding provider.
"""
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

from vaultsearch.config import ApiKind, SearchSettings
from vaultsearch.store import FileSystemStore


NOTE_BROADCAST = """## Unreliable Broadcast
Does not guarantee anything. Such events are allowed:
![](https://i.imgur.com/rgh87f2.png)
## Best Effort Broadcast
Guarantees reliability only if sender is correct
"""

NOTE_CONSENSUS = """# Consensus
Processes agree on a single value.
## Paxos
Proposers, acceptors and learners.
"""


class FakeProvider:
    """Deterministic embedding provider that records every batch."""

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None):
        self.vectors = vectors or {}
        self.calls: List[List[str]] = []
        self.drop = 0
        self.fail_on_call: Optional[int] = None

    @staticmethod
    def default_vector(text: str) -> List[float]:
        return [float(len(text)), float(text.count(" ")), 1.0]

    async def embed(self, inputs: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(inputs))
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise RuntimeError("provider exploded")
        vectors = [self.vectors.get(text, self.default_vector(text)) for text in inputs]
        if self.drop:
            vectors = vectors[: len(vectors) - self.drop]
        return vectors


def set_mtime(path: Path, seconds: int) -> None:
    os.utime(path, (seconds, seconds))


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    """Vault with two notes and one ignored folder."""
    root = tmp_path / "vault"
    root.mkdir()
    (root / "broadcast.md").write_text(NOTE_BROADCAST, encoding="utf-8")
    (root / "consensus.md").write_text(NOTE_CONSENSUS, encoding="utf-8")
    (root / "templates").mkdir()
    (root / "templates" / "daily.md").write_text("## Daily\nTODO list", encoding="utf-8")

    set_mtime(root / "broadcast.md", 1_700_000_000)
    set_mtime(root / "consensus.md", 1_700_000_100)
    return root


@pytest.fixture
def settings(vault: Path) -> SearchSettings:
    return SearchSettings(
        vault_dir=vault,
        api_url="http://embeddings.test/v1/embeddings",
        api_key="sk-test",
        model="test-model",
        api_type=ApiKind.OPENAI,
        section_delimiter_regex="^#{1,6} ",
        num_batches=2,
        ignored_folders=["templates"],
        results_per_query=3,
    )


@pytest.fixture
def store(settings: SearchSettings) -> FileSystemStore:
    return FileSystemStore(settings.vault_dir, ignored_folders=settings.ignored_folders)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def token_counter():
    """Whitespace token counter, avoids loading tiktoken encodings."""
    return lambda text: len(text.split())
