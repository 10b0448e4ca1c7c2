"""RAG CLI Entry Point

Provides the command-line interface for the Cellito knowledge base. Handles
argument parsing, logging configuration, corpus construction (from a cache
file when it is still valid) and running queries against the corpus.

Usage:
    python -m src.run_rag --input data/documents.json --query "refund policy"
    python -m src.run_rag --articles data/articles.json --cache cache/rag_cache.json \
        --query "how do I cancel?" --answer
"""

# run_rag.py
import argparse
import json
import logging
import time
from pathlib import Path

from src.cellito_rag.answers import answer_from_result
from src.cellito_rag.cache import cache_documents, is_cache_valid, load_cache, save_cache
from src.cellito_rag.config import DEFAULT_MAX_CHUNKS
from src.cellito_rag.engine import RagEngine
from src.cellito_rag.loaders import load_articles, load_raw_documents
from src.cellito_rag.models import ChunkingOptions


def configure_logging() -> None:
    """Configure logging with both console and file output.

    Sets up:
      - Root logger at DEBUG level
      - Console handler at INFO level for user-facing messages
      - File handler at DEBUG level for detailed troubleshooting
      - Reduced verbosity for httpx and openai loggers
    """
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)
    log_file = log_dir / "rag.log"

    # Root logger
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    )

    # Console handler: high-level INFO+
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)

    # File handler: detailed DEBUG+
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    # Clear existing handlers to avoid duplicates if run multiple times
    logger.handlers.clear()
    logger.addHandler(console_handler)
    logger.addHandler(file_handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Cellito knowledge base: build the RAG corpus and search it"
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--input",
        type=Path,
        help="JSON file of raw documents ({fileName, text, ...}).",
    )
    source.add_argument(
        "--articles",
        type=Path,
        help="JSON export of the ArticlesList (Title, ArticleContent, ...).",
    )
    parser.add_argument(
        "--query",
        action="append",
        default=[],
        help="Question to search for (repeatable).",
    )
    parser.add_argument(
        "--max-chunks",
        type=int,
        default=DEFAULT_MAX_CHUNKS,
        help=f"Maximum matches per query (default: {DEFAULT_MAX_CHUNKS})",
    )
    parser.add_argument("--chunk-size", type=int, default=800)
    parser.add_argument("--overlap", type=int, default=150)
    parser.add_argument("--min-chunk-size", type=int, default=100)
    parser.add_argument("--max-chunk-size", type=int, default=1200)
    parser.add_argument(
        "--cache",
        type=Path,
        default=None,
        help="Corpus cache file; reused when the article set is unchanged, "
             "rewritten after a rebuild.",
    )
    parser.add_argument(
        "--diagnose",
        action="store_true",
        help="Report per-document chunking results and exit.",
    )
    parser.add_argument(
        "--answer",
        action="store_true",
        help="Generate an answer with the chat model for each query.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write search results (and answers) to this JSON file.",
    )
    return parser


def main(argv=None) -> int:
    """
    CLI entrypoint for the Cellito RAG engine.

    Parses command-line arguments, builds (or restores) the corpus, runs the
    requested queries and returns a Unix-style exit code (0 on success,
    non-zero on failure).
    """
    configure_logging()
    logger = logging.getLogger(__name__)

    args = build_parser().parse_args(argv)

    logger.info("=== Starting Cellito RAG ===")
    logger.info("Input: %s", args.input or args.articles)
    logger.info("Cache: %s", args.cache or "None")
    logger.info("Queries: %d", len(args.query))

    try:
        start_time = time.time()

        options = ChunkingOptions(
            chunk_size=args.chunk_size,
            overlap=args.overlap,
            min_chunk_size=args.min_chunk_size,
            max_chunk_size=args.max_chunk_size,
        )

        if args.articles:
            documents, snapshot = load_articles(args.articles)
        else:
            documents = load_raw_documents(args.input)
            snapshot = {"count": len(documents), "articleIds": None, "lastModified": None}

        engine = RagEngine(chunking_options=options)

        if args.diagnose:
            for report in engine.diagnose(documents):
                logger.info("  %s", json.dumps(report, ensure_ascii=False))
            return 0

        cached = load_cache(args.cache) if args.cache else None
        if cached is not None and is_cache_valid(cached, snapshot):
            result = engine.load_from_cache(cache_documents(cached))
        else:
            result = engine.initialize(documents)
            if result.success and args.cache:
                save_cache(args.cache, engine.processed_articles, snapshot)

        if not result.success:
            logger.error("Initialization failed: %s", result.error)
            return 1

        outputs = []
        for query in args.query:
            search = engine.search(query, max_chunks=args.max_chunks)
            entry = {"search": search.model_dump(mode="json")}

            if search.success:
                logger.info("")
                logger.info("Query: %s", query)
                for match in search.relevant_chunks or []:
                    logger.info(
                        "  [%d] %s (section %d/%d)",
                        match.score,
                        match.document.file_name,
                        match.chunk_index + 1,
                        match.document.total_chunks,
                    )
            else:
                logger.info("Query: %s -> %s", query, search.message or search.error)

            if args.answer:
                answer = answer_from_result(search)
                logger.info("Answer (confidence %d%%): %s", answer.confidence, answer.content)
                entry["answer"] = answer.model_dump(mode="json")

            outputs.append(entry)

        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            with args.output.open("w", encoding="utf-8") as f:
                json.dump(outputs, f, ensure_ascii=False, indent=2)

        elapsed_time = time.time() - start_time
        status = engine.status

        # Comprehensive summary
        logger.info("=" * 70)
        logger.info("RAG run completed successfully in %.2fs", elapsed_time)
        logger.info("")
        logger.info("Summary:")
        logger.info("  Articles:   %d (%s)", status.total_articles,
                    "from cache" if status.from_cache else "processed")
        logger.info("  Chunks:     %d", status.total_chunks)
        logger.info("  Skipped:    %s", status.processing_errors or 0)
        logger.info("  Queries:    %d", len(args.query))
        if args.output:
            logger.info("  Output:     %s", args.output)
        logger.info("=" * 70)

    except Exception as e:
        logger.exception(f"RAG run failed with an unhandled exception: {e}")
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
