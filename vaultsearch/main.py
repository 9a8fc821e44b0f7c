"""Quart JSON API exposing input generation, embedding and search."""
from typing import Optional
from quart import Quart, jsonify, request
import structlog

from vaultsearch.config import SearchSettings
from vaultsearch.errors import (
    CacheNotFoundError,
    EmbeddingCountMismatch,
    ProviderError,
    SemanticSearchError,
)
from vaultsearch.llm_client import EmbeddingClient, EmbeddingProvider
from vaultsearch.log_config import configure_logging
from vaultsearch.rag.cost import TokenCounter
from vaultsearch.rag.embedder import EmbeddingPipeline
from vaultsearch.rag.ingest import InputGenerator
from vaultsearch.rag.retriever import Retriever
from vaultsearch.store import DocumentStore, FileSystemStore

logger = structlog.get_logger()

MAX_QUERY_LENGTH = 2000


def _error_status(error: SemanticSearchError) -> int:
    if isinstance(error, CacheNotFoundError):
        return 404
    if isinstance(error, (ProviderError, EmbeddingCountMismatch)):
        return 502
    return 500


def create_app(
    settings: Optional[SearchSettings] = None,
    store: Optional[DocumentStore] = None,
    provider: Optional[EmbeddingProvider] = None,
    token_counter: Optional[TokenCounter] = None,
) -> Quart:
    """Build the web app.

    Args:
        settings: Settings (default from environment)
        store: Document store (default: the vault directory)
        provider: Embedding provider (default: HTTP client from settings)
        token_counter: Token counter for cost estimates (default: tiktoken)
    """
    settings = settings or SearchSettings.from_env()
    store = store or FileSystemStore(settings.vault_dir, ignored_folders=settings.ignored_folders)
    provider = provider or EmbeddingClient.from_settings(settings)

    generator = InputGenerator(store, settings)
    pipeline = EmbeddingPipeline(store, provider, settings, token_counter=token_counter)
    retriever = Retriever(store, provider, settings)

    app = Quart(__name__)

    @app.errorhandler(SemanticSearchError)
    async def handle_search_error(error: SemanticSearchError):
        status = _error_status(error)
        logger.error(
            "request_failed",
            path=request.path,
            status=status,
            error=str(error),
            error_type=type(error).__name__,
        )
        return jsonify({"error": str(error), "type": type(error).__name__}), status

    @app.route("/api/status")
    async def status():
        """Report which cache tables exist and the configured provider."""
        return jsonify(
            {
                "input_exists": await store.exists(settings.input_file_path),
                "embeddings_exist": await pipeline.cache_exists(),
                "model": settings.model,
                "api_type": settings.api_type.value,
            }
        )

    @app.route("/api/input", methods=["POST"])
    async def generate_input():
        result = await generator.run()
        return jsonify(
            {
                **result.stats,
                "failed_files": result.failed_files,
                "delimiter_fallback": result.delimiter_fallback,
            }
        )

    @app.route("/api/embeddings/preview")
    async def preview_embeddings():
        preview = await pipeline.preview()
        return jsonify(
            {
                "modified_count": preview.modified_count,
                "cost_estimate": preview.cost_estimate,
                "has_baseline": preview.has_baseline,
                "cache_exists": preview.cache_exists,
            }
        )

    @app.route("/api/embeddings", methods=["POST"])
    async def generate_embeddings():
        result = await pipeline.refresh_cache()
        return jsonify(
            {
                "modified_count": result.modified_count,
                "cost_estimate": result.cost_estimate,
                "entries_written": result.entries_written,
            }
        )

    @app.route("/api/query", methods=["POST"])
    async def query():
        """Rank sections for a query.

        Expects JSON body:
        {
            "query": "free text",
            "top_k": 10  // optional
        }
        """
        data = await request.get_json(silent=True)

        if not isinstance(data, dict) or "query" not in data:
            return jsonify({"error": "Missing 'query' in request body"}), 400

        text = str(data["query"]).strip()
        if not text:
            return jsonify({"error": "Query cannot be empty"}), 400
        if len(text) > MAX_QUERY_LENGTH:
            return jsonify({"error": f"Query too long (max {MAX_QUERY_LENGTH} characters)"}), 400

        top_k = data.get("top_k")
        if top_k is not None and (isinstance(top_k, bool) or not isinstance(top_k, int) or top_k < 1):
            return jsonify({"error": "'top_k' must be a positive integer"}), 400

        results = await retriever.query(text, top_k=top_k)
        return jsonify({"results": [s.to_dict() for s in results]})

    return app


def run() -> None:
    """Serve the API with Quart's development server."""
    settings = SearchSettings.from_env()
    configure_logging("DEBUG" if settings.debug_mode else "INFO")
    create_app(settings).run()
