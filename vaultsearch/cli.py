"""Command line interface for generating the index and querying it.

Usage:
    vaultsearch generate-input                 # Rebuild input.csv from the vault
    vaultsearch generate-embeddings            # Embed new or modified sections
    vaultsearch generate-embeddings --yes      # Skip the confirmation prompt
    vaultsearch query "distributed consensus"  # Rank sections for a query
    vaultsearch cost "some text"               # Estimated cost of embedding text
"""
import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional
import structlog

from vaultsearch import config
from vaultsearch.config import SearchSettings
from vaultsearch.errors import SemanticSearchError
from vaultsearch.llm_client import EmbeddingClient
from vaultsearch.log_config import configure_logging
from vaultsearch.rag.cost import estimate_cost
from vaultsearch.rag.embedder import EmbeddingPipeline
from vaultsearch.rag.ingest import InputGenerator
from vaultsearch.rag.retriever import Retriever
from vaultsearch.store import DocumentHandle, FileSystemStore

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.start_time = None

    def start(self, message: str):
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def bar(self, current: int, total: int, label: str):
        percentage = (current / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = int(bar_length * current / total) if total > 0 else 0
        bar = "█" * filled + "░" * (bar_length - filled)

        print(
            f"\r  [{bar}] {percentage:5.1f}% ({current}/{total}) {label[:30]:<30}",
            end="",
            flush=True,
        )

        if self.verbose:
            print()

    def document(self, current: int, total: int, handle: DocumentHandle):
        self.bar(current, total, handle.name)

    def batch(self, batch: int, total: int, processed: int):
        self.bar(batch, total, f"{processed} sections embedded")

    def elapsed(self) -> float:
        return (datetime.now() - self.start_time).total_seconds()


def build_settings(args: argparse.Namespace) -> SearchSettings:
    overrides = {}
    if args.vault is not None:
        overrides["vault_dir"] = args.vault
    if args.config is not None:
        return SearchSettings.from_yaml(args.config, **overrides)
    return SearchSettings.from_env(**overrides)


def build_store(settings: SearchSettings) -> FileSystemStore:
    return FileSystemStore(settings.vault_dir, ignored_folders=settings.ignored_folders)


async def cmd_generate_input(settings: SearchSettings, progress: ProgressReporter) -> int:
    progress.start("Generating Input")

    generator = InputGenerator(build_store(settings), settings)
    result = await generator.run(progress_callback=progress.document)

    print("\n")
    if result.delimiter_fallback:
        print(f"⚠️  Invalid section delimiter regex '{settings.section_delimiter_regex}', "
              f"defaulted to '.'\n")

    stats = result.stats
    print(f"  📁 Files processed:   {stats['files_processed']}")
    print(f"  ❌ Files failed:      {stats['files_failed']}")
    print(f"  📝 Sections created:  {stats['sections_created']}")
    print(f"  ⏱️  Time elapsed:      {progress.elapsed():.1f}s\n")

    for path, error in result.failed_files.items():
        print(f"  ⚠️  {path}: {error}")

    print(f"✅ Successfully created {settings.input_file_path}\n")
    return 1 if result.failed_files else 0


async def cmd_generate_embeddings(
    settings: SearchSettings, progress: ProgressReporter, assume_yes: bool
) -> int:
    store = build_store(settings)
    pipeline = EmbeddingPipeline(store, EmbeddingClient.from_settings(settings), settings)

    preview = await pipeline.preview()

    if preview.modified_count == 0:
        print("\nDetected 0 sections that are new or modified.")
        print("Make sure to run 'generate-input' after modifications.\n")
        return 0

    detected = "all" if not preview.has_baseline else preview.modified_count
    print(f"\nDetected {detected} section(s) that are new or modified")
    print(f"Estimated cost of embedding: ${preview.cost_estimate:.6f}")
    if preview.cache_exists:
        print(f"Warning: the file '{settings.embedding_file_path}' already exists.")

    if not assume_yes:
        answer = input("Generate embeddings? [y/N] ").strip().lower()
        if answer not in ("y", "yes"):
            print("Cancelled.\n")
            return 1

    progress.start("Generating Embeddings")
    result = await pipeline.refresh_cache(progress_callback=progress.batch)

    print("\n")
    print(f"  🧮 Sections embedded: {result.modified_count}")
    print(f"  📦 Rows written:      {result.entries_written}")
    print(f"  ⏱️  Time elapsed:      {progress.elapsed():.1f}s\n")
    print(f"✅ Successfully generated embeddings in '{settings.embedding_file_path}'\n")
    return 0


async def cmd_query(settings: SearchSettings, text: str, top_k: Optional[int]) -> int:
    store = build_store(settings)
    retriever = Retriever(store, EmbeddingClient.from_settings(settings), settings)

    results = await retriever.query(text, top_k=top_k)
    if not results:
        print("No results.")
        return 0

    for rank, suggestion in enumerate(results, 1):
        print(f"{rank:3}. {suggestion.score:6.3f}  {suggestion.link}")
    return 0


def cmd_cost(text: str) -> int:
    print(f"Estimated cost of query: ${estimate_cost(text)}")
    return 0


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vaultsearch",
        description="Semantic search over a vault of markdown notes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--vault",
        type=Path,
        default=None,
        help=f"Vault directory (default: {config.VAULT_DIR})",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML settings file",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show verbose progress output",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("generate-input", help="Extract sections into the input table")

    embed = sub.add_parser("generate-embeddings", help="Embed new or modified sections")
    embed.add_argument("--yes", "-y", action="store_true", help="Don't ask for confirmation")

    query = sub.add_parser("query", help="Rank sections for a query")
    query.add_argument("text", help="Query text")
    query.add_argument("-k", "--top-k", type=positive_int, default=None, help="Number of results")

    cost = sub.add_parser("cost", help="Estimate the cost of embedding a text")
    cost.add_argument("text", help="Text to estimate")

    return parser


async def run(args: argparse.Namespace) -> int:
    settings = build_settings(args)
    configure_logging("DEBUG" if settings.debug_mode else config.LOG_LEVEL)
    progress = ProgressReporter(verbose=args.verbose)

    if args.command == "generate-input":
        return await cmd_generate_input(settings, progress)
    if args.command == "generate-embeddings":
        return await cmd_generate_embeddings(settings, progress, args.yes)
    if args.command == "query":
        return await cmd_query(settings, args.text, args.top_k)
    return cmd_cost(args.text)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        return asyncio.run(run(args))

    except KeyboardInterrupt:
        print("\n\n⚠️  Cancelled by user.\n")
        return 1

    except (SemanticSearchError, FileNotFoundError, ValueError) as e:
        print(f"\n❌ Error: {e}\n")
        logger.error("command_failed", command=args.command, error=str(e), error_type=type(e).__name__)
        return 1


if __name__ == "__main__":
    sys.exit(main())
