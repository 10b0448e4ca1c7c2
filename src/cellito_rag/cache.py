"""Processed-corpus cache.

Rebuilding the corpus means re-chunking every article, so the processed
documents are persisted to a JSON file together with a snapshot of the
article set they were built from. On start-up the snapshot is compared with
the current article set; a matching cache is installed directly.

File layout::

    {
      "metadata": {
        "totalArticles": 12, "articleIds": [...], "lastModified": "...",
        "processedArticles": 11, "totalChunks": 40,
        "lastUpdated": "...", "version": "2.0"
      },
      "processedDocuments": [ {...}, ... ]
    }
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from .config import CACHE_VERSION
from .models import ProcessedDocument
from .pipeline import utc_now_iso

logger = logging.getLogger(__name__)


def build_cache(
    documents: Sequence[ProcessedDocument],
    articles: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Assemble the cache payload.

    Args:
        documents: Processed corpus
        articles: Snapshot from ``loaders.articles_metadata`` describing the
            article set the corpus was built from
    """
    articles = articles or {}
    return {
        "metadata": {
            "totalArticles": articles.get("count", len(documents)),
            "articleIds": articles.get("articleIds"),
            "lastModified": articles.get("lastModified"),
            "processedArticles": len(documents),
            "totalChunks": sum(d.total_chunks for d in documents),
            "lastUpdated": utc_now_iso(),
            "version": CACHE_VERSION,
        },
        "processedDocuments": [d.model_dump(mode="json") for d in documents],
    }


def save_cache(
    path: Path | str,
    documents: Sequence[ProcessedDocument],
    articles: Optional[Dict[str, Any]] = None,
) -> bool:
    """Write the cache file. Failures are logged and reported as False."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(build_cache(documents, articles), f, ensure_ascii=False, indent=2)
        logger.info("✓ Saved corpus cache: %s (%d documents)", path, len(documents))
        return True
    except OSError:
        logger.warning("Failed to save corpus cache (non-fatal)", exc_info=True)
        return False


def load_cache(path: Path | str) -> Optional[Dict[str, Any]]:
    """Read a cache file; None when it is missing or unreadable."""
    path = Path(path)
    if not path.exists():
        logger.info("No corpus cache at %s", path)
        return None

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError):
        logger.error("Error reading corpus cache %s", path, exc_info=True)
        return None

    if not isinstance(data, dict):
        logger.error("Corpus cache %s is not a JSON object", path)
        return None

    logger.info("✓ Corpus cache found: %s", path)
    return data


def cache_documents(cache: Dict[str, Any]) -> List[ProcessedDocument]:
    """Validate the cached documents, dropping entries that no longer parse."""
    documents: List[ProcessedDocument] = []
    for idx, raw in enumerate(cache.get("processedDocuments") or []):
        try:
            documents.append(ProcessedDocument.model_validate(raw))
        except ValidationError as e:
            logger.warning("Dropping cached document idx=%d: %s", idx, e)
    return documents


def is_cache_valid(
    cache: Optional[Dict[str, Any]],
    current: Optional[Dict[str, Any]],
) -> bool:
    """
    Check a cache against the current article set.

    The cache is stale when the article count differs or, when both sides
    carry them, when the article id lists differ.
    """
    if not cache or not cache.get("metadata") or not current:
        logger.info("Cache invalid: missing cache data or metadata")
        return False

    meta = cache["metadata"]

    if meta.get("totalArticles") != current.get("count"):
        logger.info(
            "Cache invalid: article count changed (%s -> %s)",
            meta.get("totalArticles"),
            current.get("count"),
        )
        return False

    cached_ids = meta.get("articleIds")
    current_ids = current.get("articleIds")
    if cached_ids is not None and current_ids is not None and cached_ids != current_ids:
        cached_set = set(map(str, cached_ids))
        current_set = set(map(str, current_ids))
        logger.info(
            "Cache invalid: article list changed (added=%s, removed=%s)",
            sorted(current_set - cached_set),
            sorted(cached_set - current_set),
        )
        return False

    return True
