"""
Document Processing Pipeline for the Cellito knowledge base

Turns raw articles into processed documents ready for search:
normalized text is chunked, a keyword table is built from the full text,
and per-document statistics are computed.

Features:
- Sequential processing with a short pause every few documents
- Per-document chunking timeout (document skipped, batch continues)
- Error isolation: failures are collected as skip records, never raised
- Cooperative cancellation between documents
- Diagnostic pass for troubleshooting stuck or failing articles
"""

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError

from .chunking import OptionsLike, resolve_chunking_options, create_text_chunks
from .config import (
    CHUNK_TIMEOUT_SECONDS,
    DIAGNOSTIC_TIMEOUT_SECONDS,
    MIN_DOCUMENT_LENGTH,
    YIELD_EVERY,
    YIELD_SECONDS,
)
from .keywords import extract_keywords
from .models import (
    Chunk,
    ChunkingOptions,
    ProcessedDocument,
    ProcessingError,
    ProcessingReport,
    RawDocument,
)

logger = logging.getLogger(__name__)

DocumentLike = Union[RawDocument, Dict[str, Any]]


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (2.5 -> 3, not 2)."""
    return math.floor(value + 0.5)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _document_name(raw: Any) -> Optional[str]:
    if isinstance(raw, RawDocument):
        return raw.file_name
    if isinstance(raw, dict):
        return raw.get("fileName") or raw.get("file_name")
    return None


def _chunk_with_timeout(
    text: str,
    options: ChunkingOptions,
    timeout: float,
) -> List[Chunk]:
    """Run the chunker in a worker thread and give up after ``timeout`` seconds."""
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="rag-chunker")
    try:
        future = executor.submit(create_text_chunks, text, options)
        return future.result(timeout=timeout)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def _build_processed_document(doc: RawDocument, chunks: List[Chunk]) -> ProcessedDocument:
    text = doc.text or ""
    return ProcessedDocument.model_validate({
        **doc.model_dump(),
        "chunks": chunks,
        "total_chunks": len(chunks),
        "keywords": extract_keywords(text),
        "original_text_length": len(text),
        "average_chunk_size": round_half_up(sum(c.size for c in chunks) / len(chunks)),
        "quality_score": round_half_up(sum(c.completeness for c in chunks) / len(chunks)),
        "processed_at": utc_now_iso(),
    })


def process_articles_for_rag(
    documents: Sequence[DocumentLike],
    chunking_options: OptionsLike = None,
    *,
    timeout: float = CHUNK_TIMEOUT_SECONDS,
    should_cancel: Optional[Callable[[], bool]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProcessingReport:
    """
    Process a batch of raw documents into corpus entries.

    Documents are handled one at a time. A document is skipped, with an
    error record, when its text is missing or shorter than 50 characters,
    when chunking fails or exceeds ``timeout``, or when it yields no usable
    chunks. A failure never aborts the rest of the batch.

    Args:
        documents: RawDocument instances or plain dicts
        chunking_options: ChunkingOptions or a dict of its fields
        timeout: Per-document chunking budget in seconds
        should_cancel: Checked before each document; returning True stops
            the batch and marks the report as cancelled
        sleep: Pause function used every few documents

    Returns:
        ProcessingReport with processed documents and skip records
    """
    options = resolve_chunking_options(chunking_options)
    total = len(documents)
    processed_docs: List[ProcessedDocument] = []
    errors: List[ProcessingError] = []
    cancelled = False
    t0 = time.time()

    logger.info("Processing %d articles for RAG", total)

    def record(index: int, message: str, article: Optional[str]) -> None:
        errors.append(ProcessingError(
            index=index,
            error=message,
            article=article,
            is_last=index == total - 1,
        ))

    for index, raw in enumerate(documents):
        if should_cancel is not None and should_cancel():
            logger.warning(
                "Processing cancelled after %d/%d articles", index, total
            )
            cancelled = True
            break

        # Brief pause every few articles
        if index > 0 and index % YIELD_EVERY == 0:
            sleep(YIELD_SECONDS)

        name = _document_name(raw)
        logger.debug("Processing %d/%d: %s", index + 1, total, name)

        try:
            doc = raw if isinstance(raw, RawDocument) else RawDocument.model_validate(raw)
        except ValidationError as e:
            logger.warning("Skipping article idx=%d: invalid document (%s)", index, e)
            record(index, f"Invalid document: {e.error_count()} validation error(s)", name)
            continue

        if not doc.text or len(doc.text) < MIN_DOCUMENT_LENGTH:
            logger.info("Skipping %s: insufficient content", name)
            record(index, "Insufficient content", name)
            continue

        try:
            chunks = _chunk_with_timeout(doc.text, options, timeout)
        except FuturesTimeoutError:
            logger.error(
                "Chunking timed out after %.1fs for %s, skipping", timeout, name
            )
            record(index, "Processing timeout", name)
            continue
        except Exception as e:
            logger.exception("Error processing %s", name)
            record(index, str(e) or type(e).__name__, name)
            continue

        if not chunks:
            logger.warning("No chunks created for %s", name)
            record(index, "No chunks created", name)
            continue

        valid_chunks = [c for c in chunks if c.text.strip()]
        if not valid_chunks:
            logger.warning("No valid chunks for %s", name)
            record(index, "No valid chunks", name)
            continue

        processed_docs.append(_build_processed_document(doc, valid_chunks))
        logger.debug("✓ %s: %d chunks created", name, len(valid_chunks))

    logger.info(
        "✓ Processing complete in %.2fs: %d/%d articles processed (errors=%d)",
        time.time() - t0,
        len(processed_docs),
        total,
        len(errors),
    )

    if errors:
        logger.info("Processing errors: %s", [e.model_dump() for e in errors])
        last_error = next((e for e in errors if e.is_last), None)
        if last_error is not None:
            logger.error(
                "Last article failed - the run ended on this item: %s",
                last_error.model_dump(),
            )

    return ProcessingReport(
        processed_docs=processed_docs,
        errors=errors,
        cancelled=cancelled,
    )


def diagnose_articles(
    documents: Sequence[DocumentLike],
    timeout: float = DIAGNOSTIC_TIMEOUT_SECONDS,
) -> List[Dict[str, Any]]:
    """
    Run the chunker over each document and report what happened.

    Intended for troubleshooting batches that stall or drop articles. Each
    report holds the article name, text length, and either the skip reason
    or the chunk count, duration and chunk sizes. The last article gets a
    text preview as well.
    """
    reports: List[Dict[str, Any]] = []
    total = len(documents)

    for i, raw in enumerate(documents):
        name = _document_name(raw)
        text = raw.text if isinstance(raw, RawDocument) else (raw.get("text") if isinstance(raw, dict) else None)
        text = text if isinstance(text, str) else ""

        report: Dict[str, Any] = {
            "index": i,
            "name": name,
            "text_length": len(text),
            "is_last": i == total - 1,
        }

        if not text or len(text) < MIN_DOCUMENT_LENGTH:
            report["status"] = "skipped"
            report["reason"] = "No text" if not text else "Too short"
            logger.info("DEBUG %d/%d %s: skipped (%s)", i + 1, total, name, report["reason"])
            reports.append(report)
            continue

        start = time.time()
        try:
            chunks = _chunk_with_timeout(
                text, ChunkingOptions(strategy="simple"), timeout
            )
        except FuturesTimeoutError:
            report["status"] = "timeout"
            logger.error("DEBUG %d/%d %s: TIMEOUT", i + 1, total, name)
            reports.append(report)
            continue
        except Exception as e:
            report["status"] = "error"
            report["error"] = str(e)
            logger.exception("DEBUG %d/%d %s: failed", i + 1, total, name)
            reports.append(report)
            continue

        report["status"] = "ok"
        report["chunks"] = len(chunks)
        report["duration_ms"] = round((time.time() - start) * 1000)
        report["chunk_sizes"] = [c.size for c in chunks]
        if report["is_last"]:
            report["preview"] = text[:100]

        logger.info(
            "DEBUG %d/%d %s: %d chunks in %dms",
            i + 1,
            total,
            name,
            len(chunks),
            report["duration_ms"],
        )
        reports.append(report)

    return reports
