"""Embedding API client with response-shape normalization and error handling."""
import json
import math
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence
import httpx
import structlog

from vaultsearch.config import ApiKind, SearchSettings
from vaultsearch.errors import (
    EmbeddingCountMismatch,
    ProviderAPIError,
    ProviderResponseError,
    ProviderTransportError,
)

logger = structlog.get_logger()

Vector = List[float]


class EmbeddingProvider(Protocol):
    """Anything that turns texts into vectors, one per text, in order."""

    async def embed(self, inputs: Sequence[str]) -> List[Vector]: ...


def _as_vector(value: Any) -> Vector:
    if not isinstance(value, list) or not value:
        raise ProviderResponseError(f"Expected a non-empty list of floats, got {type(value).__name__}")
    if any(isinstance(component, bool) for component in value):
        raise ProviderResponseError("Embedding contains a boolean value")
    try:
        vector = [float(component) for component in value]
    except (TypeError, ValueError) as e:
        raise ProviderResponseError(f"Embedding contains a non-numeric value: {e}") from e
    if not all(math.isfinite(component) for component in vector):
        raise ProviderResponseError("Embedding contains a non-finite value")
    return vector


def decode_openai(payload: Any) -> List[Vector]:
    """``{"data": [{"index": 0, "embedding": [...]}, ...]}``"""
    if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
        raise ProviderResponseError("Failed deserializing OpenAI embedding response: missing 'data' list")

    records = payload["data"]
    for record in records:
        if not isinstance(record, dict) or "embedding" not in record:
            raise ProviderResponseError("Failed deserializing OpenAI embedding response: record without 'embedding'")

    if all(isinstance(record.get("index"), int) for record in records):
        records = sorted(records, key=lambda record: record["index"])

    return [_as_vector(record["embedding"]) for record in records]


def decode_ollama(payload: Any) -> List[Vector]:
    """``{"embeddings": [[...], ...]}``"""
    if not isinstance(payload, dict) or not isinstance(payload.get("embeddings"), list):
        raise ProviderResponseError("Failed deserializing Ollama embedding response: missing 'embeddings' list")
    return [_as_vector(vector) for vector in payload["embeddings"]]


DECODERS: Dict[ApiKind, Callable[[Any], List[Vector]]] = {
    ApiKind.OPENAI: decode_openai,
    ApiKind.OLLAMA: decode_ollama,
}


def decode_embeddings(kind: ApiKind, payload: Any) -> List[Vector]:
    """Normalize a provider response body into an ordered list of vectors."""
    return DECODERS[kind](payload)


def parse_api_error(status_code: int, body: bytes) -> ProviderAPIError:
    """Build a typed error from a non-success response body.

    Understands ``{"error": {"message", "type", "param", "code"}}`` and
    ``{"error": "message"}``; anything else is reported as raw text.
    """
    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        payload = None

    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        return ProviderAPIError(
            status_code=status_code,
            message=str(error.get("message", "")),
            error_type=error.get("type"),
            param=error.get("param"),
            code=error.get("code"),
        )
    if isinstance(error, str):
        return ProviderAPIError(status_code=status_code, message=error)

    text = body.decode("utf-8", errors="replace").strip()
    return ProviderAPIError(status_code=status_code, message=text[:500] or "empty response body")


class EmbeddingClient:
    """Async client for an embedding endpoint.

    Sends ``{"model": ..., "input": [...]}`` with a bearer token and returns
    one vector per input, in input order. Never retries.
    """

    def __init__(
        self,
        api_url: str,
        model: str,
        api_kind: ApiKind = ApiKind.OLLAMA,
        api_key: str = "",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the embedding client.

        Args:
            api_url: Full URL of the embeddings endpoint
            model: Model name sent with every request
            api_kind: Which response shape the endpoint returns
            api_key: Bearer token (omitted from headers when empty)
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used by tests
        """
        self.api_url = api_url
        self.model = model
        self.api_kind = api_kind
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(
        cls, settings: SearchSettings, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "EmbeddingClient":
        return cls(
            api_url=settings.api_url,
            model=settings.model,
            api_kind=settings.api_type,
            api_key=settings.api_key,
            timeout=settings.request_timeout,
            transport=transport,
        )

    def _headers(self) -> Dict[str, str]:
        if self.api_key:
            return {"Authorization": f"Bearer {self.api_key}"}
        return {}

    async def post_json(self, body: Dict[str, Any]) -> httpx.Response:
        """POST a JSON body to the endpoint.

        Raises:
            ProviderTransportError: If no response was received
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                return await client.post(self.api_url, json=body, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error("embedding_transport_error", url=self.api_url, error=str(e))
            raise ProviderTransportError(f"Failed POST request to {self.api_url}: {e}") from e

    async def embed(self, inputs: Sequence[str]) -> List[Vector]:
        """Embed a batch of texts.

        Args:
            inputs: Texts to embed

        Returns:
            One vector per input, same order

        Raises:
            ProviderTransportError: On network failure or timeout
            ProviderAPIError: On a non-success status
            ProviderResponseError: If a success body can't be decoded
            EmbeddingCountMismatch: If the vector count differs from the input count
        """
        if not inputs:
            return []

        logger.debug(
            "embedding_request",
            model=self.model,
            api_kind=self.api_kind.value,
            inputs=len(inputs),
        )

        response = await self.post_json({"model": self.model, "input": list(inputs)})

        if not response.is_success:
            error = parse_api_error(response.status_code, response.content)
            logger.error(
                "embedding_api_error",
                status_code=response.status_code,
                message=error.message,
                error_type=error.error_type,
            )
            raise error

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderResponseError(
                f"Failed deserializing {self.api_kind.value} embedding response: {e}"
            ) from e

        vectors = decode_embeddings(self.api_kind, payload)

        if len(vectors) != len(inputs):
            logger.error(
                "embedding_count_mismatch",
                requested=len(inputs),
                received=len(vectors),
            )
            raise EmbeddingCountMismatch(requested=len(inputs), received=len(vectors))

        logger.debug(
            "embedding_response",
            model=self.model,
            count=len(vectors),
            dimension=len(vectors[0]),
        )

        return vectors
