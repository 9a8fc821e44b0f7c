"""Error types raised by the semantic search pipeline.

Every error carries the context needed to report it verbatim at the
CLI/API boundary: the failing path, record, or provider response.
"""
from typing import Any, Optional


class SemanticSearchError(RuntimeError):
    """Base class for all pipeline errors."""


class StoreError(SemanticSearchError):
    """Reading or writing a document or cache file failed."""

    def __init__(self, operation: str, path: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.path = path
        message = f"Failed to {operation} {path}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class CacheNotFoundError(SemanticSearchError):
    """A cache file required for the operation does not exist yet."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Cache file not found: {path}")


class CacheFormatError(SemanticSearchError):
    """A persisted cache file or record could not be parsed."""

    def __init__(
        self,
        message: str,
        document_name: Optional[str] = None,
        section_label: Optional[str] = None,
    ):
        self.document_name = document_name
        self.section_label = section_label
        if document_name is not None:
            message = f"{message} (file: {document_name}, section: {section_label})"
        super().__init__(message)


class ProviderError(SemanticSearchError):
    """Base class for embedding provider failures."""


class ProviderTransportError(ProviderError):
    """The request never produced an HTTP response (network, timeout)."""


class ProviderAPIError(ProviderError):
    """The provider answered with a non-success status."""

    def __init__(
        self,
        status_code: int,
        message: str,
        error_type: Optional[str] = None,
        param: Any = None,
        code: Any = None,
    ):
        self.status_code = status_code
        self.message = message
        self.error_type = error_type
        self.param = param
        self.code = code
        super().__init__(
            f"Call to embedding API failed with status {status_code}, "
            f"code: {code}, message: {message}, type: {error_type}, param: {param}"
        )


class ProviderResponseError(ProviderError):
    """A successful response body could not be decoded into embeddings."""


class EmbeddingCountMismatch(SemanticSearchError):
    """The provider returned a different number of vectors than requested."""

    def __init__(self, requested: int, received: int):
        self.requested = requested
        self.received = received
        super().__init__(
            f"Embedding count mismatch: requested {requested}, got {received}"
        )
