"""Application configuration with sensible defaults.

Module-level constants are read from the environment once. Components never
read them directly; they receive a ``SearchSettings`` value built from them.
"""
import os
from enum import Enum
from pathlib import Path
from typing import List, Optional, Any, Dict

import yaml
from pydantic import BaseModel, Field, field_validator

# Paths
BASE_DIR = Path(__file__).parent.parent
VAULT_DIR = Path(os.getenv("VAULT_DIR", str(BASE_DIR / "vault")))

# Cache files, relative to the vault root
INPUT_FILE_PATH = os.getenv("INPUT_FILE_PATH", "input.csv")
EMBEDDING_FILE_PATH = os.getenv("EMBEDDING_FILE_PATH", "embedding.csv")

# Embedding provider
EMBEDDING_API_URL = os.getenv("EMBEDDING_API_URL", "http://localhost:11434/api/embed")
EMBEDDING_API_KEY = os.getenv("EMBEDDING_API_KEY", "")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "mxbai-embed-large:latest")
EMBEDDING_API_TYPE = os.getenv("EMBEDDING_API_TYPE", "ollama")  # ollama | openai
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "60.0"))

# Indexing parameters
SECTION_DELIMITER_REGEX = os.getenv("SECTION_DELIMITER_REGEX", ".")
NUM_BATCHES = int(os.getenv("NUM_BATCHES", "1"))
MAX_SECTION_LENGTH = 8191  # provider token-length proxy, in characters
IGNORED_FOLDERS = os.getenv("IGNORED_FOLDERS", "")  # newline or comma separated

# Search
RESULTS_PER_QUERY = int(os.getenv("RESULTS_PER_QUERY", "10"))

# Logging
DEBUG_MODE = os.getenv("DEBUG_MODE", "false").lower() in ("1", "true", "yes")
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if DEBUG_MODE else "INFO")


class ApiKind(str, Enum):
    """Embedding provider flavours, keyed by their response shape."""

    OLLAMA = "ollama"
    OPENAI = "openai"


def _split_folders(value: str) -> List[str]:
    parts = value.replace(",", "\n").splitlines()
    return [p.strip().strip("/") for p in parts if p.strip().strip("/")]


class SearchSettings(BaseModel):
    """Settings threaded explicitly into every pipeline component."""

    vault_dir: Path = Field(default_factory=lambda: VAULT_DIR)
    input_file_path: str = INPUT_FILE_PATH
    embedding_file_path: str = EMBEDDING_FILE_PATH

    api_url: str = EMBEDDING_API_URL
    api_key: str = EMBEDDING_API_KEY
    model: str = EMBEDDING_MODEL
    api_type: ApiKind = Field(default=EMBEDDING_API_TYPE, validate_default=True)
    request_timeout: float = REQUEST_TIMEOUT

    section_delimiter_regex: str = SECTION_DELIMITER_REGEX
    num_batches: int = Field(default=NUM_BATCHES, ge=1, le=100)
    ignored_folders: List[str] = Field(
        default_factory=lambda: _split_folders(IGNORED_FOLDERS)
    )

    results_per_query: int = Field(default=RESULTS_PER_QUERY, ge=1)
    debug_mode: bool = DEBUG_MODE

    @field_validator("ignored_folders", mode="before")
    @classmethod
    def _parse_folders(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _split_folders(value)
        return value

    @field_validator("api_type", mode="before")
    @classmethod
    def _parse_api_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.lower()
        return value

    @classmethod
    def from_env(cls, **overrides: Any) -> "SearchSettings":
        """Build settings from the environment-derived defaults."""
        return cls(**overrides)

    @classmethod
    def from_yaml(cls, path: Path, **overrides: Any) -> "SearchSettings":
        """Build settings from a YAML file, falling back to defaults.

        Args:
            path: YAML file with keys matching the field names
            **overrides: Values taking precedence over the file

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the file isn't a YAML mapping
        """
        if not path.exists():
            raise FileNotFoundError(f"Settings file not found: {path}")

        data: Optional[Dict[str, Any]] = yaml.safe_load(path.read_text(encoding="utf-8"))
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Settings file must contain a mapping: {path}")

        data.update(overrides)
        return cls(**data)
